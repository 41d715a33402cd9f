"""External book search endpoints."""

from flask import Blueprint, jsonify
from pydantic import BaseModel, Field

from readingmemory.errors import ApiError, ErrorCode
from readingmemory.services.auth_service import token_required
from readingmemory.services.book_search_service import get_book_search_service, require_valid_isbn
from readingmemory.utils.validation import validate_request

# Create the books blueprint
books_bp = Blueprint('books', __name__)


class IsbnParams(BaseModel):
    isbn: str = Field(min_length=1)


class SearchQuery(BaseModel):
    q: str = Field(min_length=1)


# ******************************************************************************
# * GET /api/v1/books/search/isbn/<isbn> - Look a book up by ISBN
# ******************************************************************************
@books_bp.route('/search/isbn/<isbn>', methods=['GET'])
@token_required
@validate_request(path=IsbnParams)
def search_book_by_isbn(user_id, isbn):
    """Accepts ISBN-10/13 with or without hyphens. 404 when no catalogue knows it."""
    normalized = require_valid_isbn(isbn)

    books = get_book_search_service().search_by_isbn(normalized)
    if not books:
        raise ApiError(ErrorCode.NOT_FOUND, 'No matching book was found.')

    return jsonify({'books': books}), 200


# ******************************************************************************
# * GET /api/v1/books/search?q=... - Free text search
# ******************************************************************************
@books_bp.route('/search', methods=['GET'])
@token_required
@validate_request(query=SearchQuery)
def search_books_by_query(user_id, query):
    if not query.q.strip():
        raise ApiError(ErrorCode.INVALID_ARGUMENT, 'A search query is required.')

    books = get_book_search_service().search_by_query(query.q.strip())
    return jsonify({'books': books}), 200
