"""Reading-note chats under a user's book."""

from typing import Literal, Optional

from firebase_admin import firestore
from flask import Blueprint, jsonify
from pydantic import BaseModel, Field, field_validator

from readingmemory.services.auth_service import token_required
from readingmemory.services.firebase_service import (
    get_firestore_client,
    require_document,
    snapshot_to_dict,
    user_book_ref,
)
from readingmemory.utils.timestamp import normalize_timestamps
from readingmemory.utils.validation import validate_request

chats_bp = Blueprint('chats', __name__)

BOOK_NOT_FOUND = 'Book not found.'
CHAT_NOT_FOUND = 'Chat not found.'


class ChatListQuery(BaseModel):
    limit: int = Field(default=50, ge=1, le=100)
    startAfter: Optional[str] = None


class ChatLocation(BaseModel):
    message: str
    chapterOrSection: Optional[str] = None
    pageNumber: Optional[int] = Field(default=None, ge=1)

    @field_validator('message')
    @classmethod
    def message_not_blank(cls, value):
        value = value.strip()
        if not value:
            raise ValueError('Message cannot be empty')
        return value


class ChatCreate(ChatLocation):
    messageType: Literal['user', 'ai'] = 'user'
    imageId: Optional[str] = None


def _chats(db, user_id, user_book_id):
    return user_book_ref(db, user_id, user_book_id).collection('chats')


@chats_bp.route('/<userBookId>/chats', methods=['GET'])
@token_required
@validate_request(query=ChatListQuery)
def get_chats(user_id, userBookId, query):
    """Oldest first; ``startAfter`` is the id of the last chat already seen."""
    db = get_firestore_client()
    require_document(user_book_ref(db, user_id, userBookId), BOOK_NOT_FOUND)

    chats_query = _chats(db, user_id, userBookId).order_by('createdAt', direction=firestore.Query.ASCENDING)

    if query.startAfter:
        cursor = _chats(db, user_id, userBookId).document(query.startAfter).get()
        if cursor.exists:
            chats_query = chats_query.start_after(cursor)

    chats = [snapshot_to_dict(doc) for doc in chats_query.limit(query.limit).stream()]
    return jsonify({'chats': normalize_timestamps(chats)}), 200


@chats_bp.route('/<userBookId>/chats', methods=['POST'])
@token_required
@validate_request(body=ChatCreate)
def create_chat(user_id, userBookId, body):
    db = get_firestore_client()
    require_document(user_book_ref(db, user_id, userBookId), BOOK_NOT_FOUND)

    chat_ref = _chats(db, user_id, userBookId).document()
    chat = {
        'id': chat_ref.id,
        'userId': user_id,
        'userBookId': userBookId,
        'message': body.message,
        'messageType': body.messageType,
        'isAI': body.messageType == 'ai',
        'createdAt': firestore.SERVER_TIMESTAMP,
        'updatedAt': firestore.SERVER_TIMESTAMP,
    }
    for field in ('imageId', 'chapterOrSection', 'pageNumber'):
        value = getattr(body, field)
        if value is not None:
            chat[field] = value
    chat_ref.set(chat)

    return jsonify({'chat': normalize_timestamps(snapshot_to_dict(chat_ref.get()))}), 201


@chats_bp.route('/<userBookId>/chats/<chatId>', methods=['PUT'])
@token_required
@validate_request(body=ChatLocation)
def update_chat(user_id, userBookId, chatId, body):
    db = get_firestore_client()
    chat_ref = _chats(db, user_id, userBookId).document(chatId)
    require_document(chat_ref, CHAT_NOT_FOUND)

    updates = body.model_dump(exclude_unset=True)
    updates['updatedAt'] = firestore.SERVER_TIMESTAMP
    chat_ref.update(updates)

    return jsonify({'chat': normalize_timestamps(snapshot_to_dict(chat_ref.get()))}), 200


@chats_bp.route('/<userBookId>/chats/<chatId>', methods=['DELETE'])
@token_required
def delete_chat(user_id, userBookId, chatId):
    db = get_firestore_client()
    chat_ref = _chats(db, user_id, userBookId).document(chatId)
    require_document(chat_ref, CHAT_NOT_FOUND)

    chat_ref.delete()
    return '', 204
