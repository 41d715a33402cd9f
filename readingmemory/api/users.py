"""Account management."""

from flask import Blueprint, jsonify

from readingmemory.api.images import delete_user_images
from readingmemory.services.auth_service import token_required
from readingmemory.services.firebase_service import (
    delete_collection,
    get_auth_client,
    get_firestore_client,
    get_storage_bucket,
    user_ref,
)
from readingmemory.utils.logger import get_logger

logger = get_logger(__name__)

users_bp = Blueprint('users', __name__)

# Sub-collections under users/{uid}; userBooks also carry nested chats
USER_COLLECTIONS = ['userBooks', 'goals', 'activities', 'achievements', 'streaks']


def _delete_storage_files(bucket, user_id):
    blobs = list(bucket.list_blobs(prefix=f'users/{user_id}/'))
    for blob in blobs:
        blob.delete()
    return len(blobs)


# ******************************************************************************
# * DELETE /api/v1/users/me - Delete the caller's account and all their data
# ******************************************************************************
@users_bp.route('/me', methods=['DELETE'])
@token_required
def delete_account(user_id):
    """
    Delete everything the user owns, then the Auth account itself.

    Each step runs even if an earlier one failed; failures are collected in
    ``errors`` and ``success`` is true only when there were none.

    Returns:
      { success, deletedCollections, errors }
    """
    db = get_firestore_client()
    deleted_collections = []
    errors = []

    logger.info('Starting account deletion', extra={'userId': user_id})

    for name in USER_COLLECTIONS:
        try:
            delete_collection(user_ref(db, user_id).collection(name))
            deleted_collections.append(name)
        except Exception as e:
            logger.error(f'Error deleting {name}', extra={'userId': user_id, 'error': str(e)})
            errors.append(f'Failed to delete {name}')

    try:
        user_ref(db, user_id).delete()
        deleted_collections.append('users')
    except Exception as e:
        logger.error('Error deleting user document', extra={'userId': user_id, 'error': str(e)})
        errors.append('Failed to delete user document')

    try:
        db.collection('userProfiles').document(user_id).delete()
        deleted_collections.append('userProfiles')
    except Exception as e:
        logger.error('Error deleting userProfile', extra={'userId': user_id, 'error': str(e)})
        errors.append('Failed to delete userProfile')

    bucket = get_storage_bucket()
    try:
        count = delete_user_images(db, bucket, user_id)
        deleted_collections.append('images')
        logger.info('Deleted uploaded images', extra={'userId': user_id, 'count': count})
    except Exception as e:
        logger.error('Error deleting images', extra={'userId': user_id, 'error': str(e)})
        errors.append('Failed to delete images')

    if bucket is not None:
        try:
            count = _delete_storage_files(bucket, user_id)
            logger.info('Deleted files from Storage', extra={'userId': user_id, 'count': count})
        except Exception as e:
            logger.error('Error deleting Storage files', extra={'userId': user_id, 'error': str(e)})
            errors.append('Failed to delete some Storage files')

    # Auth account last
    try:
        get_auth_client().delete_user(user_id)
        logger.info('Deleted auth account', extra={'userId': user_id})
    except Exception as e:
        logger.error('Error deleting auth account', extra={
            'userId': user_id,
            'error': str(e),
            'code': getattr(e, 'code', None),
        })
        errors.append('Failed to delete authentication account')

    result = {
        'success': not errors,
        'deletedCollections': deleted_collections,
        'errors': errors,
    }
    logger.info('Account deletion completed', extra={'userId': user_id, **result})

    return jsonify(result), 200
