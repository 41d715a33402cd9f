"""Reading goals (``users/{uid}/goals``)."""

from typing import Literal, Optional

from firebase_admin import firestore
from flask import Blueprint, jsonify
from pydantic import BaseModel, Field, model_validator

from readingmemory.errors import ApiError, ErrorCode
from readingmemory.services.auth_service import token_required
from readingmemory.services.firebase_service import (
    get_firestore_client,
    require_document,
    snapshot_to_dict,
    user_ref,
)
from readingmemory.utils.timestamp import normalize_timestamps
from readingmemory.utils.validation import IsoDatetime, validate_request

goals_bp = Blueprint('goals', __name__)

GoalType = Literal['bookCount', 'readingDays', 'genreCount', 'custom']
GoalPeriod = Literal['yearly', 'monthly', 'quarterly', 'custom']

GOAL_NOT_FOUND = 'Goal not found.'
BAD_DATE_RANGE = 'End date must be after start date.'


class GoalListQuery(BaseModel):
    isActive: Optional[bool] = None
    type: Optional[GoalType] = None
    period: Optional[GoalPeriod] = None


class GoalCreate(BaseModel):
    type: GoalType
    targetValue: int = Field(ge=1)
    period: GoalPeriod
    startDate: IsoDatetime
    endDate: IsoDatetime

    @model_validator(mode='after')
    def end_after_start(self):
        if self.startDate >= self.endDate:
            raise ValueError(BAD_DATE_RANGE)
        return self


class GoalUpdate(BaseModel):
    type: Optional[GoalType] = None
    targetValue: Optional[int] = Field(default=None, ge=1)
    period: Optional[GoalPeriod] = None
    startDate: Optional[IsoDatetime] = None
    endDate: Optional[IsoDatetime] = None
    isActive: Optional[bool] = None


class GoalProgress(BaseModel):
    increment: Optional[int] = None
    setValue: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode='after')
    def one_of(self):
        if self.increment is None and self.setValue is None:
            raise ValueError('Either increment or setValue must be provided')
        return self


def _goals(user_id):
    return user_ref(get_firestore_client(), user_id).collection('goals')


def _goal_response(goal_ref, status=200):
    return jsonify({'goal': normalize_timestamps(snapshot_to_dict(goal_ref.get()))}), status


def goal_statistics(goals):
    """Counts and average progress over a list of goal dicts."""
    total = len(goals)
    active = 0
    completed = 0
    total_progress = 0.0

    for goal in goals:
        target = goal.get('targetValue') or 0
        current = goal.get('currentValue') or 0
        if goal.get('isActive'):
            active += 1
        if target and current >= target:
            completed += 1
        if target:
            total_progress += min(current / target, 1)

    return {
        'totalGoals': total,
        'activeGoals': active,
        'completedGoals': completed,
        'averageProgress': total_progress / total if total else 0,
        'completionRate': completed / total if total else 0,
    }


@goals_bp.route('', methods=['GET'])
@token_required
@validate_request(query=GoalListQuery)
def get_goals(user_id, query):
    goals_query = _goals(user_id)
    if query.isActive is not None:
        goals_query = goals_query.where('isActive', '==', query.isActive)
    if query.type:
        goals_query = goals_query.where('type', '==', query.type)
    if query.period:
        goals_query = goals_query.where('period', '==', query.period)

    goals_query = goals_query.order_by('createdAt', direction=firestore.Query.DESCENDING)

    goals = [snapshot_to_dict(doc) for doc in goals_query.stream()]
    return jsonify({'goals': normalize_timestamps(goals)}), 200


@goals_bp.route('/statistics', methods=['GET'])
@token_required
def get_goal_statistics(user_id):
    goals = [doc.to_dict() or {} for doc in _goals(user_id).stream()]
    return jsonify({'statistics': goal_statistics(goals)}), 200


@goals_bp.route('/<goalId>', methods=['GET'])
@token_required
def get_goal(user_id, goalId):
    snapshot = require_document(_goals(user_id).document(goalId), GOAL_NOT_FOUND)
    return jsonify({'goal': normalize_timestamps(snapshot_to_dict(snapshot))}), 200


@goals_bp.route('', methods=['POST'])
@token_required
@validate_request(body=GoalCreate)
def create_goal(user_id, body):
    goal_ref = _goals(user_id).document()
    goal_ref.set({
        'id': goal_ref.id,
        'userId': user_id,
        'type': body.type,
        'targetValue': body.targetValue,
        'currentValue': 0,
        'period': body.period,
        'startDate': body.startDate,
        'endDate': body.endDate,
        'isActive': True,
        'createdAt': firestore.SERVER_TIMESTAMP,
        'updatedAt': firestore.SERVER_TIMESTAMP,
    })
    return _goal_response(goal_ref, 201)


@goals_bp.route('/<goalId>', methods=['PUT'])
@token_required
@validate_request(body=GoalUpdate)
def update_goal(user_id, goalId, body):
    """Update the given fields; the resulting date range must stay valid."""
    goal_ref = _goals(user_id).document(goalId)
    current = require_document(goal_ref, GOAL_NOT_FOUND).to_dict() or {}

    updates = body.model_dump(exclude_unset=True, exclude_none=True)

    start = updates.get('startDate', current.get('startDate'))
    end = updates.get('endDate', current.get('endDate'))
    if ('startDate' in updates or 'endDate' in updates) and start and end and start >= end:
        raise ApiError(ErrorCode.INVALID_ARGUMENT, BAD_DATE_RANGE)

    updates['updatedAt'] = firestore.SERVER_TIMESTAMP
    goal_ref.update(updates)
    return _goal_response(goal_ref)


@goals_bp.route('/<goalId>/progress', methods=['PATCH'])
@token_required
@validate_request(body=GoalProgress)
def update_goal_progress(user_id, goalId, body):
    goal_ref = _goals(user_id).document(goalId)
    require_document(goal_ref, GOAL_NOT_FOUND)

    if body.increment is not None:
        current_value = firestore.Increment(body.increment)
    else:
        current_value = body.setValue

    goal_ref.update({'currentValue': current_value, 'updatedAt': firestore.SERVER_TIMESTAMP})
    return _goal_response(goal_ref)


@goals_bp.route('/<goalId>', methods=['DELETE'])
@token_required
def delete_goal(user_id, goalId):
    goal_ref = _goals(user_id).document(goalId)
    require_document(goal_ref, GOAL_NOT_FOUND)

    goal_ref.delete()
    return '', 204
