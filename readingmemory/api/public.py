"""Public catalogue endpoints. Authentication is optional."""

from flask import Blueprint, jsonify
from pydantic import BaseModel, Field

from readingmemory.services.auth_service import token_optional
from readingmemory.services.firebase_service import get_firestore_client
from readingmemory.services.public_books_service import (
    DEFAULT_LIMIT,
    MAX_LIMIT,
    get_popular_books,
    get_recent_books,
    search_public_books,
)
from readingmemory.utils.timestamp import normalize_timestamps
from readingmemory.utils.validation import validate_request

public_bp = Blueprint('public', __name__)


class ListQuery(BaseModel):
    limit: int = Field(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT)


class SearchQuery(ListQuery):
    q: str = Field(min_length=1)


@public_bp.route('/books/popular', methods=['GET'])
@token_optional
@validate_request(query=ListQuery)
def popular_books(query):
    books = get_popular_books(get_firestore_client(), query.limit)
    return jsonify({'books': normalize_timestamps(books)}), 200


@public_bp.route('/books/recent', methods=['GET'])
@token_optional
@validate_request(query=ListQuery)
def recent_books(query):
    books = get_recent_books(get_firestore_client(), query.limit)
    return jsonify({'books': normalize_timestamps(books)}), 200


@public_bp.route('/books/search', methods=['GET'])
@token_optional
@validate_request(query=SearchQuery)
def search_books(query):
    """Title-prefix matches first, then author-prefix matches up to ``limit``."""
    books = search_public_books(get_firestore_client(), query.q, query.limit)
    return jsonify({'books': normalize_timestamps(books)}), 200
