"""User bootstrap and onboarding."""

import calendar
from datetime import datetime, timezone
from typing import List, Optional

from firebase_admin import firestore
from flask import Blueprint, g, jsonify
from pydantic import BaseModel, Field, field_validator

from readingmemory.services.auth_service import token_required
from readingmemory.services.firebase_service import get_firestore_client, user_ref
from readingmemory.utils.logger import get_logger
from readingmemory.utils.validation import validate_request

logger = get_logger(__name__)

auth_bp = Blueprint('auth', __name__)


class OnboardingBody(BaseModel):
    displayName: str
    favoriteGenres: List[str]
    monthlyGoal: int = Field(ge=0)
    avatarImageId: Optional[str] = None
    bio: Optional[str] = None

    @field_validator('displayName')
    @classmethod
    def display_name_not_blank(cls, value):
        value = value.strip()
        if not value:
            raise ValueError('Display name is required')
        return value


def current_month_bounds(now: datetime):
    """First and last instant of ``now``'s month, in UTC."""
    last_day = calendar.monthrange(now.year, now.month)[1]
    start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    end = datetime(now.year, now.month, last_day, 23, 59, 59, 999000, tzinfo=timezone.utc)
    return start, end


# ******************************************************************************
# * POST /api/v1/auth/initialize - Create the user document on first sign-in
# ******************************************************************************
@auth_bp.route('/initialize', methods=['POST'])
@token_required
def initialize_user(user_id):
    db = get_firestore_client()

    doc_ref = user_ref(db, user_id)
    if not doc_ref.get().exists:
        doc_ref.set({
            'id': user_id,
            'email': g.current_user.email or '',
            'createdAt': firestore.SERVER_TIMESTAMP,
            'updatedAt': firestore.SERVER_TIMESTAMP,
        })
        logger.info('Created user document', extra={'userId': user_id})

    has_profile = db.collection('userProfiles').document(user_id).get().exists

    return jsonify({
        'initialized': True,
        'hasProfile': has_profile,
        'message': 'User initialized with profile' if has_profile else 'User initialized, needs onboarding',
    }), 200


# ******************************************************************************
# * GET /api/v1/auth/onboarding-status
# ******************************************************************************
@auth_bp.route('/onboarding-status', methods=['GET'])
@token_required
def get_onboarding_status(user_id):
    db = get_firestore_client()

    has_profile = db.collection('userProfiles').document(user_id).get().exists
    has_goals = len(list(user_ref(db, user_id).collection('goals').limit(1).stream())) > 0

    return jsonify({
        'needsOnboarding': not has_profile,
        'hasProfile': has_profile,
        'hasGoals': has_goals,
    }), 200


# ******************************************************************************
# * POST /api/v1/auth/complete-onboarding
# ******************************************************************************
@auth_bp.route('/complete-onboarding', methods=['POST'])
@token_required
@validate_request(body=OnboardingBody)
def complete_onboarding(user_id, body):
    """
    Store the profile, the first monthly goal and an empty reading streak.

    Expected JSON payload:
    {
      "displayName": "Reader",
      "favoriteGenres": ["novel", "essay"],
      "monthlyGoal": 3,
      "avatarImageId": "..." (optional),
      "bio": "..." (optional)
    }

    All writes go through one batch, so onboarding either fully happens or
    not at all.
    """
    db = get_firestore_client()
    batch = db.batch()

    profile = {
        'id': user_id,
        'displayName': body.displayName,
        'avatarImageId': body.avatarImageId,
        'bio': body.bio,
        'favoriteGenres': body.favoriteGenres,
        'readingGoal': body.monthlyGoal,
        'isPublic': False,
        'createdAt': firestore.SERVER_TIMESTAMP,
        'updatedAt': firestore.SERVER_TIMESTAMP,
    }
    batch.set(db.collection('userProfiles').document(user_id), profile, merge=True)

    if body.monthlyGoal > 0:
        start, end = current_month_bounds(datetime.now(timezone.utc))
        goal_ref = user_ref(db, user_id).collection('goals').document()
        batch.set(goal_ref, {
            'id': goal_ref.id,
            'userId': user_id,
            'type': 'bookCount',
            'period': 'monthly',
            'targetValue': body.monthlyGoal,
            'currentValue': 0,
            'startDate': start,
            'endDate': end,
            'isActive': True,
            'createdAt': firestore.SERVER_TIMESTAMP,
            'updatedAt': firestore.SERVER_TIMESTAMP,
        })

    streak_ref = user_ref(db, user_id).collection('streaks').document()
    batch.set(streak_ref, {
        'id': streak_ref.id,
        'userId': user_id,
        'type': 'reading',
        'currentStreak': 0,
        'longestStreak': 0,
        'lastActivityDate': None,
        'streakDates': [],
        'createdAt': firestore.SERVER_TIMESTAMP,
        'updatedAt': firestore.SERVER_TIMESTAMP,
    })

    batch.commit()
    logger.info('Completed onboarding', extra={'userId': user_id, 'monthlyGoal': body.monthlyGoal})

    return jsonify({'success': True, 'message': 'Onboarding completed successfully'}), 200
