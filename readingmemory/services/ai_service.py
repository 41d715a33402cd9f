"""AI chat replies and summaries for a user's book, shared by REST and callables."""

from typing import Dict, List, Optional

from firebase_admin import firestore

from readingmemory.errors import ApiError, ErrorCode
from readingmemory.services.firebase_service import user_book_ref
from readingmemory.services.gemini_service import NO_NOTES_MESSAGE
from readingmemory.utils.logger import get_logger

logger = get_logger(__name__)

CHAT_HISTORY_LIMIT = 20
UNKNOWN_BOOK = 'Unknown book'
UNKNOWN_AUTHOR = 'Unknown author'


def require_owner(auth_uid: Optional[str], user_id: str):
    """The caller may only touch their own ``users/{uid}`` tree."""
    if auth_uid is None:
        raise ApiError(ErrorCode.UNAUTHENTICATED)
    if auth_uid != user_id:
        raise ApiError(ErrorCode.PERMISSION_DENIED)


def is_ai_chat(data: Dict) -> bool:
    if 'isAI' in data:
        return bool(data['isAI'])
    return data.get('messageType') == 'ai'


def _load_user_book(db, user_id: str, user_book_id: str):
    book_ref = user_book_ref(db, user_id, user_book_id)
    snapshot = book_ref.get()
    if not snapshot.exists:
        raise ApiError(ErrorCode.NOT_FOUND, 'Book not found.')
    data = snapshot.to_dict() or {}
    title = data.get('bookTitle') or UNKNOWN_BOOK
    author = data.get('bookAuthor') or UNKNOWN_AUTHOR
    return book_ref, title, author


def _to_turns(snapshots) -> List[Dict]:
    turns = []
    for doc in snapshots:
        data = doc.to_dict() or {}
        turns.append({'message': data.get('message', ''), 'isAI': is_ai_chat(data)})
    return turns


def generate_ai_response(db, llm, user_id: str, user_book_id: str, message: str) -> Dict:
    """
    Reply to ``message`` in the context of the book and its recent chats.

    The reply is stored as an AI chat under the user-book with a server
    timestamp.

    Returns:
        {'success': True, 'chatId': str, 'message': str}
    """
    book_ref, title, author = _load_user_book(db, user_id, user_book_id)

    recent = (
        book_ref.collection('chats')
        .order_by('createdAt', direction=firestore.Query.DESCENDING)
        .limit(CHAT_HISTORY_LIMIT)
        .stream()
    )
    previous_chats = list(reversed(_to_turns(recent)))

    ai_response = llm.generate_book_chat_response(title, author, previous_chats, message)

    chat_ref = book_ref.collection('chats').document()
    chat_ref.set({
        'id': chat_ref.id,
        'userId': user_id,
        'userBookId': user_book_id,
        'message': ai_response,
        'messageType': 'ai',
        'isAI': True,
        'createdAt': firestore.SERVER_TIMESTAMP,
        'updatedAt': firestore.SERVER_TIMESTAMP,
    })
    logger.info('Stored AI response', extra={'userId': user_id, 'userBookId': user_book_id, 'chatId': chat_ref.id})

    return {'success': True, 'chatId': chat_ref.id, 'message': ai_response}


def generate_book_summary(db, llm, user_id: str, user_book_id: str) -> Dict:
    """
    Summarize every chat of the user-book and store it as ``aiSummary``.

    Returns:
        {'success': True, 'summary': str}
    """
    book_ref, title, author = _load_user_book(db, user_id, user_book_id)

    chats = _to_turns(
        book_ref.collection('chats')
        .order_by('createdAt', direction=firestore.Query.ASCENDING)
        .stream()
    )
    if not chats:
        return {'success': True, 'summary': NO_NOTES_MESSAGE}

    summary = llm.generate_book_summary(title, author, chats)

    book_ref.update({
        'aiSummary': summary,
        'summaryGeneratedAt': firestore.SERVER_TIMESTAMP,
    })
    logger.info('Stored book summary', extra={'userId': user_id, 'userBookId': user_book_id})

    return {'success': True, 'summary': summary}
