"""Badges and the user's progress towards them."""

from typing import Literal, Optional

from firebase_admin import firestore
from flask import Blueprint, jsonify
from pydantic import BaseModel, Field

from readingmemory.errors import ApiError, ErrorCode
from readingmemory.services.auth_service import token_required
from readingmemory.services.firebase_service import (
    get_firestore_client,
    require_document,
    snapshot_to_dict,
    user_ref,
)
from readingmemory.utils.timestamp import normalize_timestamps
from readingmemory.utils.validation import validate_request

achievements_bp = Blueprint('achievements', __name__)


def _badge(badge_id, name, description, icon_name, category, requirement_type, value, tier, sort_order):
    return {
        'id': badge_id,
        'name': name,
        'description': description,
        'iconName': icon_name,
        'category': category,
        'requirement': {'type': requirement_type, 'value': value},
        'tier': tier,
        'sortOrder': sort_order,
    }


BADGES = {badge['id']: badge for badge in [
    # Milestones
    _badge('first_book', 'Reading Debut', 'Registered your first book', 'book.fill',
           'milestone', 'booksRead', 1, 'bronze', 1),
    _badge('books_10', 'Bookworm', 'Finished 10 books', 'books.vertical.fill',
           'milestone', 'booksRead', 10, 'bronze', 2),
    _badge('books_50', 'Avid Reader', 'Finished 50 books', 'book.pages.fill',
           'milestone', 'booksRead', 50, 'silver', 3),
    _badge('books_100', 'Reading Master', 'Finished 100 books', 'crown.fill',
           'milestone', 'booksRead', 100, 'gold', 4),
    # Streaks
    _badge('streak_7', 'Reading Habit', 'Read 7 days in a row', 'flame.fill',
           'streak', 'streakDays', 7, 'bronze', 10),
    _badge('streak_30', 'Reading Expert', 'Read 30 days in a row', 'flame.circle.fill',
           'streak', 'streakDays', 30, 'silver', 11),
    _badge('streak_100', 'Reading Fiend', 'Read 100 days in a row', 'star.circle.fill',
           'streak', 'streakDays', 100, 'gold', 12),
    # Special
    _badge('yearly_goal', 'Goal Achieved', 'Reached your yearly reading goal', 'target',
           'special', 'yearlyGoal', 1, 'gold', 20),
    _badge('memo_master', 'Memo Master', 'Wrote 100 reading notes', 'note.text',
           'special', 'memos', 100, 'silver', 21),
]}


class BadgeQuery(BaseModel):
    category: Optional[Literal['milestone', 'streak', 'genre', 'special']] = None
    isUnlocked: Optional[bool] = None


class UnlockedQuery(BaseModel):
    isUnlocked: Optional[bool] = None


class ProgressBody(BaseModel):
    progress: float = Field(ge=0, le=1)


def _achievements(db, user_id):
    return user_ref(db, user_id).collection('achievements')


def set_badge_progress(db, user_id: str, badge_id: str, progress: float) -> dict:
    """Create or update the achievement for ``badge_id``; progress 1 unlocks it."""
    existing = list(_achievements(db, user_id).where('badgeId', '==', badge_id).limit(1).stream())
    unlocked = progress >= 1

    if existing:
        achievement_ref = existing[0].reference
        updates = {'progress': progress, 'updatedAt': firestore.SERVER_TIMESTAMP}
        # unlockedAt keeps the first unlock time
        if unlocked and not (existing[0].to_dict() or {}).get('isUnlocked'):
            updates['isUnlocked'] = True
            updates['unlockedAt'] = firestore.SERVER_TIMESTAMP
        achievement_ref.update(updates)
    else:
        achievement_ref = _achievements(db, user_id).document()
        achievement_ref.set({
            'id': achievement_ref.id,
            'badgeId': badge_id,
            'userId': user_id,
            'progress': progress,
            'isUnlocked': unlocked,
            'unlockedAt': firestore.SERVER_TIMESTAMP if unlocked else None,
            'createdAt': firestore.SERVER_TIMESTAMP,
            'updatedAt': firestore.SERVER_TIMESTAMP,
        })

    return snapshot_to_dict(achievement_ref.get())


def badge_progress(books_count: int, memos_count: int):
    """Badge progress implied by the number of finished books and notes.

    Each tier only starts counting once the previous one is reached, so a
    new reader is not shown 1% towards the 100-book badge.
    """
    updates = []

    if books_count >= 1:
        updates.append(('first_book', 1))
    for badge_id, target, floor in (('books_10', 10, 0), ('books_50', 50, 10), ('books_100', 100, 50)):
        if books_count >= target:
            updates.append((badge_id, 1))
        elif books_count > floor:
            updates.append((badge_id, books_count / target))

    if memos_count >= 100:
        updates.append(('memo_master', 1))
    elif memos_count > 0:
        updates.append(('memo_master', memos_count / 100))

    return updates


@achievements_bp.route('/badges', methods=['GET'])
@token_required
@validate_request(query=BadgeQuery)
def get_badges_with_achievements(user_id, query):
    """Every badge of the catalogue paired with the user's achievement for it."""
    user_achievements = {}
    for doc in _achievements(get_firestore_client(), user_id).stream():
        data = snapshot_to_dict(doc)
        user_achievements[data.get('badgeId')] = data

    result = []
    for badge in sorted(BADGES.values(), key=lambda b: b['sortOrder']):
        if query.category and badge['category'] != query.category:
            continue
        achievement = user_achievements.get(badge['id']) or {
            'id': None,
            'badgeId': badge['id'],
            'userId': user_id,
            'unlockedAt': None,
            'progress': 0,
            'isUnlocked': False,
        }
        if query.isUnlocked is not None and bool(achievement.get('isUnlocked')) != query.isUnlocked:
            continue
        result.append({'badge': badge, 'achievement': normalize_timestamps(achievement)})

    return jsonify({'badgesWithAchievements': result}), 200


@achievements_bp.route('', methods=['GET'])
@token_required
@validate_request(query=UnlockedQuery)
def get_achievements(user_id, query):
    achievements_query = _achievements(get_firestore_client(), user_id)
    if query.isUnlocked is not None:
        achievements_query = achievements_query.where('isUnlocked', '==', query.isUnlocked)

    achievements = [snapshot_to_dict(doc) for doc in achievements_query.stream()]
    return jsonify({'achievements': normalize_timestamps(achievements)}), 200


@achievements_bp.route('/statistics', methods=['GET'])
@token_required
def get_achievement_statistics(user_id):
    unlocked_badge_ids = set()
    unlocked_count = 0
    for doc in _achievements(get_firestore_client(), user_id).stream():
        data = doc.to_dict() or {}
        if data.get('isUnlocked'):
            unlocked_count += 1
            unlocked_badge_ids.add(data.get('badgeId'))

    by_tier = {'bronze': 0, 'silver': 0, 'gold': 0}
    for badge_id in unlocked_badge_ids:
        badge = BADGES.get(badge_id)
        if badge:
            by_tier[badge['tier']] += 1

    total = len(BADGES)
    return jsonify({
        'statistics': {
            'totalBadges': total,
            'unlockedCount': unlocked_count,
            'lockedCount': total - unlocked_count,
            'completionRate': unlocked_count / total if total else 0,
            'byTier': by_tier,
        }
    }), 200


@achievements_bp.route('/check', methods=['POST'])
@token_required
def check_achievements(user_id):
    """Recompute badge progress from finished books and written notes."""
    db = get_firestore_client()
    user_books = user_ref(db, user_id).collection('userBooks')

    books_count = len(list(user_books.where('status', '==', 'completed').stream()))
    memos_count = 0
    for book in user_books.stream():
        memos_count += len(list(book.reference.collection('chats').stream()))

    updates = badge_progress(books_count, memos_count)
    updated = [set_badge_progress(db, user_id, badge_id, progress) for badge_id, progress in updates]

    return jsonify(normalize_timestamps({
        'checkedBadges': len(updates),
        'updatedAchievements': updated,
    })), 200


@achievements_bp.route('/<achievementId>', methods=['GET'])
@token_required
def get_achievement(user_id, achievementId):
    snapshot = require_document(
        _achievements(get_firestore_client(), user_id).document(achievementId),
        'Achievement not found.',
    )
    return jsonify({'achievement': normalize_timestamps(snapshot_to_dict(snapshot))}), 200


@achievements_bp.route('/badge/<badgeId>/progress', methods=['PATCH'])
@token_required
@validate_request(body=ProgressBody)
def update_achievement_progress(user_id, badgeId, body):
    if badgeId not in BADGES:
        raise ApiError(ErrorCode.NOT_FOUND, 'Badge not found.')

    achievement = set_badge_progress(get_firestore_client(), user_id, badgeId, body.progress)
    return jsonify({'achievement': normalize_timestamps(achievement)}), 200
