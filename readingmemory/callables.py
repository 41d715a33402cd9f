"""Callable Cloud Function handlers.

Each handler takes the request payload, the caller's uid (None when
anonymous) and the clients it needs, so it can run against fakes. Validation
is done inline; ``translate_errors`` turns ``ApiError`` into the callable
error channel.
"""

import functools

from firebase_functions.https_fn import FunctionsErrorCode, HttpsError

from readingmemory.errors import DEFAULT_MESSAGES, ApiError, ErrorCode
from readingmemory.services import ai_service
from readingmemory.services.book_search_service import require_valid_isbn
from readingmemory.services.public_books_service import (
    get_popular_books as list_popular_books,
    get_recent_books as list_recent_books,
    parse_limit,
    require_query,
    search_public_books as search_public_catalogue,
    upsert_master_book,
)
from readingmemory.utils.logger import get_logger
from readingmemory.utils.timestamp import normalize_timestamps

logger = get_logger(__name__)

CALLABLE_ERROR_CODES = {
    ErrorCode.UNAUTHENTICATED: FunctionsErrorCode.UNAUTHENTICATED,
    ErrorCode.INVALID_TOKEN: FunctionsErrorCode.UNAUTHENTICATED,
    ErrorCode.INVALID_ARGUMENT: FunctionsErrorCode.INVALID_ARGUMENT,
    ErrorCode.PERMISSION_DENIED: FunctionsErrorCode.PERMISSION_DENIED,
    ErrorCode.NOT_FOUND: FunctionsErrorCode.NOT_FOUND,
    ErrorCode.INTERNAL: FunctionsErrorCode.INTERNAL,
}


def translate_errors(f):
    """Re-raise every failure of ``f`` as an ``HttpsError``."""
    @functools.wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except HttpsError:
            raise
        except ApiError as e:
            logger.warning('Callable rejected', extra={
                'function': f.__name__,
                'code': e.code.value,
                'error': e.message,
            })
            raise HttpsError(CALLABLE_ERROR_CODES[e.code], e.message)
        except Exception as e:
            logger.exception('Callable failed', extra={'function': f.__name__, 'error': str(e)})
            raise HttpsError(FunctionsErrorCode.INTERNAL, DEFAULT_MESSAGES[ErrorCode.INTERNAL])

    return decorated_function


def _require_auth(uid):
    if not uid:
        raise ApiError(ErrorCode.UNAUTHENTICATED)
    return uid


def _payload(data):
    """The request data as a dict; a missing payload counts as empty."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ApiError(ErrorCode.INVALID_ARGUMENT, 'The request data must be an object.')
    return data


def _require_string(data, field, label):
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ApiError(ErrorCode.INVALID_ARGUMENT, f'{label} is required.')
    return value.strip()


@translate_errors
def search_book_by_isbn(data, uid, db, book_search):
    """Look the ISBN up and keep the first hit as master data in ``books``."""
    _require_auth(uid)
    isbn = require_valid_isbn(_payload(data).get('isbn'))

    books = book_search.search_by_isbn(isbn)
    if not books:
        raise ApiError(ErrorCode.NOT_FOUND, 'No matching book was found.')

    book_id = upsert_master_book(db, {**books[0], 'isbn': books[0].get('isbn') or isbn})
    logger.info('Stored master book', extra={'isbn': isbn, 'bookId': book_id})

    return {'books': books, 'bookId': book_id}


@translate_errors
def search_books_by_query(data, uid, book_search):
    _require_auth(uid)
    query = require_query(_payload(data).get('query'))
    return {'books': book_search.search_by_query(query)}


@translate_errors
def get_popular_books(data, uid, db):
    limit = parse_limit(_payload(data).get('limit'))
    return {'books': normalize_timestamps(list_popular_books(db, limit))}


@translate_errors
def get_recent_books(data, uid, db):
    limit = parse_limit(_payload(data).get('limit'))
    return {'books': normalize_timestamps(list_recent_books(db, limit))}


@translate_errors
def search_public_books(data, uid, db):
    data = _payload(data)
    query = require_query(data.get('query'))
    limit = parse_limit(data.get('limit'))
    return {'books': normalize_timestamps(search_public_catalogue(db, query, limit))}


@translate_errors
def generate_ai_response(data, uid, db, llm):
    _require_auth(uid)
    data = _payload(data)
    user_id = _require_string(data, 'userId', 'userId')
    user_book_id = _require_string(data, 'userBookId', 'userBookId')
    message = _require_string(data, 'message', 'message')

    ai_service.require_owner(uid, user_id)
    return ai_service.generate_ai_response(db, llm, user_id, user_book_id, message)


@translate_errors
def generate_book_summary(data, uid, db, llm):
    _require_auth(uid)
    data = _payload(data)
    user_id = _require_string(data, 'userId', 'userId')
    user_book_id = _require_string(data, 'userBookId', 'userBookId')

    ai_service.require_owner(uid, user_id)
    return ai_service.generate_book_summary(db, llm, user_id, user_book_id)
