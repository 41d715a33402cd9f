"""Queries over the public ``books`` catalogue: listings and prefix search."""

from typing import Any, Dict, List

from firebase_admin import firestore

from readingmemory.errors import ApiError, ErrorCode
from readingmemory.services.firebase_service import snapshot_to_dict

BOOKS_COLLECTION = 'books'
DEFAULT_LIMIT = 20
MAX_LIMIT = 100

# Highest private-use code point; sorts after any realistic title character
PREFIX_SENTINEL = '\uf8ff'


def parse_limit(value, default=DEFAULT_LIMIT) -> int:
    """Coerce a user-supplied limit, rejecting anything outside 1..100."""
    if value is None or value == '':
        return default

    limit = None
    if isinstance(value, int) and not isinstance(value, bool):
        limit = value
    elif isinstance(value, float) and value.is_integer():
        limit = int(value)
    elif isinstance(value, str) and value.strip().isdigit():
        limit = int(value)

    if limit is None or not 1 <= limit <= MAX_LIMIT:
        raise ApiError(ErrorCode.INVALID_ARGUMENT, f'limit must be between 1 and {MAX_LIMIT}.')
    return limit


def require_query(query) -> str:
    """Reject missing, non-string or blank search queries."""
    if not isinstance(query, str) or not query.strip():
        raise ApiError(ErrorCode.INVALID_ARGUMENT, 'A search query is required.')
    return query.strip()


def _public_books(db):
    return db.collection(BOOKS_COLLECTION).where('visibility', '==', 'public')


def get_recent_books(db, limit: int = DEFAULT_LIMIT) -> List[Dict[str, Any]]:
    query = (
        _public_books(db)
        .order_by('createdAt', direction=firestore.Query.DESCENDING)
        .limit(limit)
    )
    return [snapshot_to_dict(doc) for doc in query.stream()]


def get_popular_books(db, limit: int = DEFAULT_LIMIT) -> List[Dict[str, Any]]:
    # TODO: rank by number of readers once userBooks keep a per-book counter
    return get_recent_books(db, limit)


def prefix_search(db, field: str, prefix: str, limit: int):
    """Public books whose ``field`` starts with ``prefix`` (case-sensitive range)."""
    query = (
        _public_books(db)
        .order_by(field)
        .start_at({field: prefix})
        .end_at({field: prefix + PREFIX_SENTINEL})
        .limit(limit)
    )
    return list(query.stream())


def search_public_books(db, query: str, limit: int = DEFAULT_LIMIT) -> List[Dict[str, Any]]:
    """
    Title-prefix search, topped up with author-prefix matches.

    Title matches come first. When they do not fill ``limit``, the author
    search fills the remaining quota; a book matching both fields is only
    returned once.
    """
    prefix = require_query(query).lower()

    books = {}
    for doc in prefix_search(db, 'title', prefix, limit):
        books[doc.id] = snapshot_to_dict(doc)

    if len(books) < limit:
        for doc in prefix_search(db, 'author', prefix, limit - len(books)):
            if doc.id not in books:
                books[doc.id] = snapshot_to_dict(doc)

    return list(books.values())


def upsert_master_book(db, book: Dict[str, Any]) -> str:
    """Store a looked-up book in ``books``, keyed by ISBN. Returns the document id."""
    books_ref = db.collection(BOOKS_COLLECTION)
    fields = {k: v for k, v in book.items() if v is not None}

    existing = list(books_ref.where('isbn', '==', book.get('isbn')).limit(1).stream()) if book.get('isbn') else []
    if existing:
        book_id = existing[0].id
        books_ref.document(book_id).update({**fields, 'updatedAt': firestore.SERVER_TIMESTAMP})
        return book_id

    doc_ref = books_ref.document()
    doc_ref.set({
        **fields,
        'createdAt': firestore.SERVER_TIMESTAMP,
        'updatedAt': firestore.SERVER_TIMESTAMP,
    })
    return doc_ref.id
