"""Consecutive-day reading streaks (``users/{uid}/streaks``)."""

from datetime import datetime, timedelta, timezone
from typing import Literal, Optional

from firebase_admin import firestore
from flask import Blueprint, jsonify
from pydantic import BaseModel

from readingmemory.services.auth_service import token_required
from readingmemory.services.firebase_service import (
    get_firestore_client,
    require_document,
    snapshot_to_dict,
    user_ref,
)
from readingmemory.utils.timestamp import day_key, normalize_timestamps, period_start, start_of_day
from readingmemory.utils.validation import IsoDatetime, validate_request

streaks_bp = Blueprint('streaks', __name__)

StreakType = Literal['reading', 'chatMemo', 'combined']
STREAK_TYPES = ('reading', 'chatMemo', 'combined')

MAX_STREAK_DATES = 365
ACTIVE_WINDOW = timedelta(hours=48)
STREAK_NOT_FOUND = 'Streak not found.'


class TypeQuery(BaseModel):
    type: Optional[StreakType] = None


class TypeParams(BaseModel):
    type: StreakType


class PeriodQuery(BaseModel):
    period: Literal['week', 'month', 'year'] = 'month'


class RecordBody(BaseModel):
    type: StreakType
    date: Optional[IsoDatetime] = None


def _streaks(db, user_id):
    return user_ref(db, user_id).collection('streaks')


def _find_by_type(db, user_id, streak_type):
    docs = list(_streaks(db, user_id).where('type', '==', streak_type).limit(1).stream())
    return docs[0] if docs else None


def empty_streak(user_id: str, streak_type: str) -> dict:
    return {
        'userId': user_id,
        'type': streak_type,
        'currentStreak': 0,
        'longestStreak': 0,
        'lastActivityDate': None,
        'streakDates': [],
    }


def advance_streak(streak: dict, day: datetime) -> Optional[dict]:
    """
    The field updates for recording activity on ``day``.

    Returns None when ``day`` is already counted, i.e. it is the last
    recorded day or earlier. The day after the last one extends the streak;
    any later day starts a new streak at 1.
    """
    day = start_of_day(day)
    last = streak.get('lastActivityDate')
    current = 1

    if last is not None:
        gap = (day - start_of_day(last)).days
        if gap <= 0:
            return None
        if gap == 1:
            current = (streak.get('currentStreak') or 0) + 1

    streak_dates = list(streak.get('streakDates') or []) + [day]

    return {
        'currentStreak': current,
        'longestStreak': max(streak.get('longestStreak') or 0, current),
        'lastActivityDate': day,
        'streakDates': streak_dates[-MAX_STREAK_DATES:],
    }


def streak_statistics(streaks, period: str, now: datetime) -> dict:
    start = period_start(period, now)
    by_type = {t: {'current': 0, 'longest': 0, 'activeDays': 0} for t in STREAK_TYPES}
    active_types = 0
    active_days = set()

    for streak in streaks:
        in_period = [d for d in streak.get('streakDates') or [] if start <= d <= now]
        active_days.update(day_key(d) for d in in_period)

        stats = by_type.get(streak.get('type'))
        if stats is None:
            continue
        stats['current'] = streak.get('currentStreak') or 0
        stats['longest'] = streak.get('longestStreak') or 0
        stats['activeDays'] = len(in_period)

        last = streak.get('lastActivityDate')
        if last is not None and now - last < ACTIVE_WINDOW:
            active_types += 1

    return {
        'byType': by_type,
        'totalActiveDays': len(active_days),
        'currentActiveTypes': active_types,
    }


@streaks_bp.route('', methods=['GET'])
@token_required
@validate_request(query=TypeQuery)
def get_streaks(user_id, query):
    streaks_query = _streaks(get_firestore_client(), user_id)
    if query.type:
        streaks_query = streaks_query.where('type', '==', query.type)

    streaks = [snapshot_to_dict(doc) for doc in streaks_query.stream()]
    return jsonify({'streaks': normalize_timestamps(streaks)}), 200


@streaks_bp.route('/statistics', methods=['GET'])
@token_required
@validate_request(query=PeriodQuery)
def get_streak_statistics(user_id, query):
    streaks = [doc.to_dict() or {} for doc in _streaks(get_firestore_client(), user_id).stream()]
    statistics = streak_statistics(streaks, query.period, datetime.now(timezone.utc))
    return jsonify({'statistics': statistics, 'period': query.period}), 200


@streaks_bp.route('/type/<type>', methods=['GET'])
@token_required
@validate_request(path=TypeParams)
def get_streak_by_type(user_id, type):
    snapshot = _find_by_type(get_firestore_client(), user_id, type)
    if snapshot is None:
        return jsonify({'id': None, **empty_streak(user_id, type)}), 200
    return jsonify(normalize_timestamps(snapshot_to_dict(snapshot))), 200


@streaks_bp.route('/<streakId>', methods=['GET'])
@token_required
def get_streak(user_id, streakId):
    snapshot = require_document(_streaks(get_firestore_client(), user_id).document(streakId), STREAK_NOT_FOUND)
    return jsonify({'streak': normalize_timestamps(snapshot_to_dict(snapshot))}), 200


@streaks_bp.route('/record', methods=['POST'])
@token_required
@validate_request(body=RecordBody)
def record_activity(user_id, body):
    """Record activity for ``date`` (today by default) on the streak of ``type``."""
    db = get_firestore_client()
    day = body.date or datetime.now(timezone.utc)

    snapshot = _find_by_type(db, user_id, body.type)
    if snapshot is None:
        streak_ref = _streaks(db, user_id).document()
        streak = empty_streak(user_id, body.type)
    else:
        streak_ref = snapshot.reference
        streak = snapshot.to_dict() or {}

    updates = advance_streak(streak, day)
    if updates is None:
        return jsonify({'streak': normalize_timestamps({
            'id': streak_ref.id,
            **streak,
            'message': 'Activity already recorded for this date',
        })}), 200

    updates['updatedAt'] = firestore.SERVER_TIMESTAMP
    if snapshot is None:
        streak_ref.set({
            **streak,
            **updates,
            'id': streak_ref.id,
            'createdAt': firestore.SERVER_TIMESTAMP,
        })
    else:
        streak_ref.update(updates)

    return jsonify({'streak': normalize_timestamps(snapshot_to_dict(streak_ref.get()))}), 200


@streaks_bp.route('/<streakId>/reset', methods=['POST'])
@token_required
def reset_streak(user_id, streakId):
    streak_ref = _streaks(get_firestore_client(), user_id).document(streakId)
    require_document(streak_ref, STREAK_NOT_FOUND)

    streak_ref.update({
        'currentStreak': 0,
        'lastActivityDate': None,
        'streakDates': [],
        'updatedAt': firestore.SERVER_TIMESTAMP,
    })
    return jsonify({'streak': normalize_timestamps(snapshot_to_dict(streak_ref.get()))}), 200
