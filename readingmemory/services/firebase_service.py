"""Firebase Admin wiring: Firestore, Auth and Storage clients.

The clients are created once at process start by ``init_firebase`` and handed
to the Flask app through ``app.extensions``; views fetch them with the
``get_*`` helpers below instead of touching module globals.
"""

import firebase_admin
from firebase_admin import auth, credentials, firestore, storage
from flask import current_app

from readingmemory.errors import ApiError, ErrorCode
from readingmemory.utils.logger import get_logger

logger = get_logger(__name__)

FIRESTORE_EXTENSION = 'firestore'
AUTH_EXTENSION = 'firebase_auth'
STORAGE_EXTENSION = 'storage_bucket'


def init_firebase(credentials_path=None, project_id=None, storage_bucket=None):
    """
    Initialize the Firebase Admin SDK.

    Args:
        credentials_path (str): Optional service account JSON file. When
            omitted, Application Default Credentials are used.
        project_id (str): GCP project id
        storage_bucket (str): Default Cloud Storage bucket name

    Returns:
        firestore.Client: The Firestore client

    Raises:
        Exception: If Firebase initialization fails
    """
    options = {}
    if project_id:
        options['projectId'] = project_id
    if storage_bucket:
        options['storageBucket'] = storage_bucket

    try:
        cred = credentials.Certificate(credentials_path) if credentials_path else None
        try:
            firebase_admin.get_app()
        except ValueError:
            firebase_admin.initialize_app(cred, options or None)

        db = firestore.client()
        logger.info('Firebase Admin SDK initialized', extra={'projectId': project_id})
        return db

    except Exception:
        logger.exception('Failed to initialize Firebase')
        raise


def default_storage_bucket():
    """Return the default bucket, or None when Storage is not configured."""
    try:
        return storage.bucket()
    except ValueError:
        logger.warning('Cloud Storage bucket is not configured')
        return None


def get_firestore_client():
    """
    Get the Firestore client registered on the current app.

    Raises:
        RuntimeError: If Firebase hasn't been initialized
    """
    db = current_app.extensions.get(FIRESTORE_EXTENSION)
    if db is None:
        raise RuntimeError("Firebase has not been initialized. Call init_firebase() first.")
    return db


def get_auth_client():
    """Identity provider used to verify ID tokens and delete accounts."""
    return current_app.extensions.get(AUTH_EXTENSION, auth)


def get_storage_bucket():
    return current_app.extensions.get(STORAGE_EXTENSION)


# -----------------------------------------------------------------------------
# Document helpers
# -----------------------------------------------------------------------------
def user_ref(db, user_id):
    return db.collection('users').document(user_id)


def user_book_ref(db, user_id, user_book_id):
    return user_ref(db, user_id).collection('userBooks').document(user_book_id)


def snapshot_to_dict(snapshot):
    """Flatten a document snapshot into ``{'id': ..., **fields}``."""
    data = {'id': snapshot.id}
    data.update(snapshot.to_dict() or {})
    return data


def delete_collection(coll_ref, batch_size=500):
    """
    Delete every document in a collection, including nested sub-collections.

    Returns:
        int: Number of documents deleted at this level
    """
    deleted = 0
    while True:
        docs = list(coll_ref.limit(batch_size).stream())
        if not docs:
            return deleted

        for doc in docs:
            for sub_collection in doc.reference.collections():
                delete_collection(sub_collection, batch_size)
            doc.reference.delete()
            deleted += 1

        if len(docs) < batch_size:
            return deleted


def require_document(doc_ref, message='Resource not found.'):
    """Fetch ``doc_ref`` or raise NOT_FOUND with ``message``."""
    snapshot = doc_ref.get()
    if not snapshot.exists:
        raise ApiError(ErrorCode.NOT_FOUND, message)
    return snapshot
