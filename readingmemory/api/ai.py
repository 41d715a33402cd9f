"""AI chat replies and book summaries for a user's own books."""

from flask import Blueprint, jsonify
from pydantic import BaseModel, Field, field_validator

from readingmemory.services import ai_service
from readingmemory.services.auth_service import token_required
from readingmemory.services.firebase_service import get_firestore_client
from readingmemory.services.gemini_service import get_gemini_service
from readingmemory.utils.validation import validate_request

ai_bp = Blueprint('ai', __name__)


class UserBookParams(BaseModel):
    userId: str = Field(min_length=1)
    userBookId: str = Field(min_length=1)


class MessageBody(BaseModel):
    message: str

    @field_validator('message')
    @classmethod
    def message_not_blank(cls, value):
        value = value.strip()
        if not value:
            raise ValueError('Message cannot be empty')
        return value


# ******************************************************************************
# * POST /api/v1/users/<userId>/books/<userBookId>/ai-response
# ******************************************************************************
@ai_bp.route('/<userId>/books/<userBookId>/ai-response', methods=['POST'])
@token_required
@validate_request(path=UserBookParams, body=MessageBody)
def generate_ai_response(user_id, userId, userBookId, body):
    """
    Reply to the user's message about a book and store the reply as an AI chat.

    Expected JSON payload:
    {
      "message": "What did you think about chapter 3?"
    }

    Returns:
      { success, chatId, message }
    """
    ai_service.require_owner(user_id, userId)

    result = ai_service.generate_ai_response(
        get_firestore_client(),
        get_gemini_service(),
        userId,
        userBookId,
        body.message,
    )
    return jsonify(result), 200


# ******************************************************************************
# * POST /api/v1/users/<userId>/books/<userBookId>/summary
# ******************************************************************************
@ai_bp.route('/<userId>/books/<userBookId>/summary', methods=['POST'])
@token_required
@validate_request(path=UserBookParams)
def generate_book_summary(user_id, userId, userBookId):
    ai_service.require_owner(user_id, userId)

    result = ai_service.generate_book_summary(
        get_firestore_client(),
        get_gemini_service(),
        userId,
        userBookId,
    )
    return jsonify(result), 200
