"""Image uploads kept in Cloud Storage, with metadata in the ``images`` collection."""

import uuid
from urllib.parse import quote

from firebase_admin import firestore
from flask import Blueprint, current_app, jsonify, request

from readingmemory.errors import ApiError, ErrorCode
from readingmemory.services.auth_service import token_required
from readingmemory.services.firebase_service import get_firestore_client, get_storage_bucket, require_document
from readingmemory.utils.logger import get_logger
from readingmemory.utils.timestamp import normalize_timestamps

logger = get_logger(__name__)

images_bp = Blueprint('images', __name__)

IMAGE_NOT_FOUND = 'Image not found.'

# Accepted upload types and the object extension each is stored under
IMAGE_EXTENSIONS = {
    'image/jpeg': 'jpg',
    'image/jpg': 'jpg',
    'image/png': 'png',
}

CACHE_CONTROL = 'public, max-age=31536000'


def download_url(bucket_name, storage_path):
    return (f'https://firebasestorage.googleapis.com/v0/b/{bucket_name}/o/'
            f'{quote(storage_path, safe="")}?alt=media')


def _owned_image(db, image_id, user_id):
    snapshot = require_document(db.collection('images').document(image_id), IMAGE_NOT_FOUND)
    image = snapshot.to_dict() or {}
    if image.get('uploadedBy') != user_id:
        raise ApiError(ErrorCode.PERMISSION_DENIED, 'You do not have access to this image.')
    return snapshot.reference, image


def _delete_blob(bucket, storage_path):
    try:
        bucket.blob(storage_path).delete()
    except Exception as e:
        logger.warning('Failed to delete image file', extra={'storagePath': storage_path, 'error': str(e)})


def delete_user_images(db, bucket, user_id):
    """Remove every image ``user_id`` uploaded. Returns the number of images deleted."""
    snapshots = list(db.collection('images').where('uploadedBy', '==', user_id).stream())
    for snapshot in snapshots:
        storage_path = (snapshot.to_dict() or {}).get('storagePath')
        if bucket is not None and storage_path:
            _delete_blob(bucket, storage_path)
        snapshot.reference.delete()
    return len(snapshots)


# ******************************************************************************
# * POST /api/v1/images - Upload an image (multipart field "image")
# ******************************************************************************
@images_bp.route('', methods=['POST'])
@token_required
def upload_image(user_id):
    """
    Store a JPEG or PNG of at most MAX_IMAGE_SIZE bytes.

    Returns:
      { success, imageId, url }
    """
    file = request.files.get('image')
    if file is None or not file.filename:
        raise ApiError(ErrorCode.INVALID_ARGUMENT, 'No image file provided.')

    content_type = (file.mimetype or '').lower()
    extension = IMAGE_EXTENSIONS.get(content_type)
    if extension is None:
        raise ApiError(ErrorCode.INVALID_ARGUMENT, 'Only JPEG and PNG images are allowed.')

    data = file.read()
    if not data:
        raise ApiError(ErrorCode.INVALID_ARGUMENT, 'No image file provided.')
    if len(data) > current_app.config['MAX_IMAGE_SIZE']:
        raise ApiError(ErrorCode.INVALID_ARGUMENT, 'The image file is too large.')

    bucket = get_storage_bucket()
    if bucket is None:
        raise ApiError(ErrorCode.INTERNAL, 'Image storage is not configured.')

    image_id = str(uuid.uuid4())
    storage_path = f'images/{image_id}.{extension}'

    blob = bucket.blob(storage_path)
    blob.cache_control = CACHE_CONTROL
    blob.metadata = {'uploadedBy': user_id}
    blob.upload_from_string(data, content_type=content_type)

    url = download_url(bucket.name, storage_path)
    get_firestore_client().collection('images').document(image_id).set({
        'id': image_id,
        'uploadedBy': user_id,
        'storagePath': storage_path,
        'url': url,
        'contentType': content_type,
        'size': len(data),
        'createdAt': firestore.SERVER_TIMESTAMP,
        'updatedAt': firestore.SERVER_TIMESTAMP,
    })

    logger.info('Image uploaded', extra={'userId': user_id, 'imageId': image_id, 'size': len(data)})
    return jsonify({'success': True, 'imageId': image_id, 'url': url}), 200


@images_bp.route('/<imageId>', methods=['GET'])
@token_required
def get_image(user_id, imageId):
    _, image = _owned_image(get_firestore_client(), imageId, user_id)

    return jsonify(normalize_timestamps({
        'id': imageId,
        'url': image.get('url'),
        'contentType': image.get('contentType'),
        'size': image.get('size'),
        'metadata': {'uploadedBy': image.get('uploadedBy')},
        'createdAt': image.get('createdAt'),
        'updatedAt': image.get('updatedAt'),
    })), 200


@images_bp.route('/<imageId>', methods=['DELETE'])
@token_required
def delete_image(user_id, imageId):
    """The Storage object goes first; a missing object does not block the delete."""
    image_ref, image = _owned_image(get_firestore_client(), imageId, user_id)

    bucket = get_storage_bucket()
    if bucket is not None and image.get('storagePath'):
        _delete_blob(bucket, image['storagePath'])
    image_ref.delete()

    logger.info('Image deleted', extra={'userId': user_id, 'imageId': imageId})
    return jsonify({'success': True}), 200
