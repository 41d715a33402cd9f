"""The caller's public-facing profile (``userProfiles/{uid}``)."""

from typing import List, Optional

from firebase_admin import firestore
from flask import Blueprint, jsonify
from pydantic import BaseModel, Field

from readingmemory.errors import ApiError, ErrorCode
from readingmemory.services.auth_service import token_required
from readingmemory.services.firebase_service import get_firestore_client, snapshot_to_dict
from readingmemory.utils.timestamp import normalize_timestamps
from readingmemory.utils.validation import validate_request

profile_bp = Blueprint('profile', __name__)


class ProfileUpdate(BaseModel):
    displayName: Optional[str] = Field(default=None, min_length=1)
    avatarImageId: Optional[str] = None
    bio: Optional[str] = None
    favoriteGenres: Optional[List[str]] = None
    readingGoal: Optional[int] = Field(default=None, ge=0)
    isPublic: Optional[bool] = None


def _profile_ref(user_id):
    return get_firestore_client().collection('userProfiles').document(user_id)


@profile_bp.route('', methods=['GET'])
@token_required
def get_profile(user_id):
    snapshot = _profile_ref(user_id).get()
    if not snapshot.exists:
        raise ApiError(ErrorCode.NOT_FOUND, 'Profile not found.')
    return jsonify({'profile': normalize_timestamps(snapshot_to_dict(snapshot))}), 200


@profile_bp.route('', methods=['POST', 'PUT'])
@token_required
@validate_request(body=ProfileUpdate)
def update_profile(user_id, body):
    """Merge the given fields into the profile, creating it when missing."""
    updates = body.model_dump(exclude_unset=True)
    updates['updatedAt'] = firestore.SERVER_TIMESTAMP

    doc_ref = _profile_ref(user_id)
    if not doc_ref.get().exists:
        updates.update({'id': user_id, 'createdAt': firestore.SERVER_TIMESTAMP})
    doc_ref.set(updates, merge=True)

    return jsonify({'profile': normalize_timestamps(snapshot_to_dict(doc_ref.get()))}), 200
