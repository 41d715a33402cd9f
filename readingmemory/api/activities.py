"""Daily reading activity counters (``users/{uid}/activities/{uid}_{YYYY-MM-DD}``)."""

from datetime import datetime, timezone
from typing import Literal, Optional

from firebase_admin import firestore
from flask import Blueprint, jsonify
from pydantic import BaseModel, Field

from readingmemory.errors import ApiError, ErrorCode
from readingmemory.services.auth_service import token_required
from readingmemory.services.firebase_service import get_firestore_client, snapshot_to_dict, user_ref
from readingmemory.utils.timestamp import day_key, normalize_timestamps, period_start, start_of_day
from readingmemory.utils.validation import IsoDatetime, validate_request

activities_bp = Blueprint('activities', __name__)

COUNTERS = ('booksRead', 'memosWritten', 'pagesRead', 'readingMinutes')


class ActivityListQuery(BaseModel):
    startDate: Optional[IsoDatetime] = None
    endDate: Optional[IsoDatetime] = None
    limit: int = Field(default=100, ge=1, le=365)


class SummaryQuery(BaseModel):
    period: Literal['week', 'month', 'year'] = 'month'


class DateParams(BaseModel):
    date: str = Field(pattern=r'^\d{4}-\d{2}-\d{2}$')


class ActivityUpsert(BaseModel):
    date: IsoDatetime
    booksRead: Optional[int] = Field(default=None, ge=0)
    memosWritten: Optional[int] = Field(default=None, ge=0)
    pagesRead: Optional[int] = Field(default=None, ge=0)
    readingMinutes: Optional[int] = Field(default=None, ge=0)


class ActivityIncrement(BaseModel):
    type: Literal['booksRead', 'memosWritten', 'pagesRead', 'readingMinutes']
    value: int = Field(default=1, ge=1)
    date: Optional[IsoDatetime] = None


def _activities(db, user_id):
    return user_ref(db, user_id).collection('activities')


def activity_id(user_id: str, day: datetime) -> str:
    return f'{user_id}_{day_key(day)}'


def empty_activity(user_id: str, day: datetime) -> dict:
    return {
        'id': activity_id(user_id, day),
        'userId': user_id,
        'date': start_of_day(day),
        'booksRead': 0,
        'memosWritten': 0,
        'pagesRead': None,
        'readingMinutes': None,
    }


# ******************************************************************************
# * GET /api/v1/activities - Activities in a date range, newest first
# ******************************************************************************
@activities_bp.route('', methods=['GET'])
@token_required
@validate_request(query=ActivityListQuery)
def get_activities(user_id, query):
    activities_query = _activities(get_firestore_client(), user_id)

    if query.startDate:
        activities_query = activities_query.where('date', '>=', query.startDate)
    if query.endDate:
        activities_query = activities_query.where('date', '<=', query.endDate)

    activities_query = activities_query.order_by('date', direction=firestore.Query.DESCENDING).limit(query.limit)

    activities = [snapshot_to_dict(doc) for doc in activities_query.stream()]
    return jsonify({'activities': normalize_timestamps(activities)}), 200


# ******************************************************************************
# * GET /api/v1/activities/summary - Totals for the trailing week/month/year
# ******************************************************************************
@activities_bp.route('/summary', methods=['GET'])
@token_required
@validate_request(query=SummaryQuery)
def get_activity_summary(user_id, query):
    """
    Sum the counters of every activity in the period.

    A day counts as active when at least one book was read or one memo
    written that day.
    """
    end_date = datetime.now(timezone.utc)
    start_date = period_start(query.period, end_date)

    snapshots = (
        _activities(get_firestore_client(), user_id)
        .where('date', '>=', start_date)
        .where('date', '<=', end_date)
        .stream()
    )

    totals = dict.fromkeys(COUNTERS, 0)
    active_days = 0
    for doc in snapshots:
        data = doc.to_dict() or {}
        for counter in COUNTERS:
            totals[counter] += data.get(counter) or 0
        if (data.get('booksRead') or 0) > 0 or (data.get('memosWritten') or 0) > 0:
            active_days += 1

    summary = {
        'totalBooksRead': totals['booksRead'],
        'totalMemosWritten': totals['memosWritten'],
        'totalPagesRead': totals['pagesRead'],
        'totalReadingMinutes': totals['readingMinutes'],
        'activeDays': active_days,
        'averageBooksPerDay': totals['booksRead'] / active_days if active_days else 0,
        'averageMemosPerDay': totals['memosWritten'] / active_days if active_days else 0,
    }

    return jsonify(normalize_timestamps({
        'period': query.period,
        'startDate': start_date,
        'endDate': end_date,
        'summary': summary,
    })), 200


# ******************************************************************************
# * GET /api/v1/activities/<YYYY-MM-DD> - One day's activity
# ******************************************************************************
@activities_bp.route('/<date>', methods=['GET'])
@token_required
@validate_request(path=DateParams)
def get_activity_by_date(user_id, date):
    """Days without a stored activity come back as an all-zero activity."""
    try:
        day = datetime.strptime(date, '%Y-%m-%d').replace(tzinfo=timezone.utc)
    except ValueError:
        raise ApiError(ErrorCode.INVALID_ARGUMENT, 'Date must be in YYYY-MM-DD format.')

    snapshot = _activities(get_firestore_client(), user_id).document(activity_id(user_id, day)).get()
    activity = snapshot_to_dict(snapshot) if snapshot.exists else empty_activity(user_id, day)
    return jsonify(normalize_timestamps(activity)), 200


# ******************************************************************************
# * PUT /api/v1/activities - Create or overwrite a day's counters
# ******************************************************************************
@activities_bp.route('', methods=['PUT'])
@token_required
@validate_request(body=ActivityUpsert)
def upsert_activity(user_id, body):
    activity_ref = _activities(get_firestore_client(), user_id).document(activity_id(user_id, body.date))

    activity = {
        'userId': user_id,
        'date': start_of_day(body.date),
        'booksRead': body.booksRead or 0,
        'memosWritten': body.memosWritten or 0,
        'pagesRead': body.pagesRead,
        'readingMinutes': body.readingMinutes,
        'updatedAt': firestore.SERVER_TIMESTAMP,
    }

    if activity_ref.get().exists:
        activity_ref.update(activity)
    else:
        activity_ref.set({
            **activity,
            'id': activity_ref.id,
            'createdAt': firestore.SERVER_TIMESTAMP,
        })

    return jsonify(normalize_timestamps(snapshot_to_dict(activity_ref.get()))), 200


# ******************************************************************************
# * POST /api/v1/activities/increment - Bump one counter (today by default)
# ******************************************************************************
@activities_bp.route('/increment', methods=['POST'])
@token_required
@validate_request(body=ActivityIncrement)
def increment_activity(user_id, body):
    day = body.date or datetime.now(timezone.utc)
    activity_ref = _activities(get_firestore_client(), user_id).document(activity_id(user_id, day))

    if activity_ref.get().exists:
        activity_ref.update({
            body.type: firestore.Increment(body.value),
            'updatedAt': firestore.SERVER_TIMESTAMP,
        })
    else:
        activity = empty_activity(user_id, day)
        activity[body.type] = body.value
        activity['createdAt'] = firestore.SERVER_TIMESTAMP
        activity['updatedAt'] = firestore.SERVER_TIMESTAMP
        activity_ref.set(activity)

    return jsonify(normalize_timestamps(snapshot_to_dict(activity_ref.get()))), 200
