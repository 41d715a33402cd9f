"""Book lookups against OpenBD and the Google Books API."""

import re
from typing import Any, Dict, List, Optional

import requests
from flask import current_app

from readingmemory.errors import ApiError, ErrorCode
from readingmemory.utils.logger import get_logger

logger = get_logger(__name__)

OPENBD_URL = 'https://api.openbd.jp/v1/get'
GOOGLE_BOOKS_URL = 'https://www.googleapis.com/books/v1/volumes'

ISBN_PATTERN = re.compile(r'(978|979)?\d{9}[\dX]')

UNKNOWN_TITLE = 'Unknown title'
UNKNOWN_AUTHOR = 'Unknown author'


def normalize_isbn(isbn: str) -> str:
    return isbn.replace('-', '')


def require_valid_isbn(isbn) -> str:
    """Return the hyphen-free ISBN or raise INVALID_ARGUMENT.

    Only hyphens are removed; surrounding whitespace makes the ISBN invalid.
    """
    if not isbn or not isinstance(isbn, str):
        raise ApiError(ErrorCode.INVALID_ARGUMENT, 'ISBN is required.')
    normalized = normalize_isbn(isbn)
    if not ISBN_PATTERN.fullmatch(normalized):
        raise ApiError(ErrorCode.INVALID_ARGUMENT, 'The ISBN format is invalid.')
    return normalized


def _first(items, **match):
    for item in items or []:
        if all(item.get(k) == v for k, v in match.items()):
            return item
    return None


def parse_openbd_book(book: Dict[str, Any]) -> Dict[str, Any]:
    """Map an OpenBD record (summary + ONIX) onto the book search result shape."""
    summary = book.get('summary') or {}
    onix = book.get('onix') or {}
    descriptive = onix.get('DescriptiveDetail') or {}
    publishing = onix.get('PublishingDetail') or {}
    collateral = onix.get('CollateralDetail') or {}

    title = summary.get('title') or ''
    if not title:
        elements = (descriptive.get('TitleDetail') or {}).get('TitleElement') or []
        if elements:
            title = elements[0].get('TitleText') or ''

    author = summary.get('author') or ''
    if not author:
        names = [c['PersonName'] for c in descriptive.get('Contributor') or [] if c.get('PersonName')]
        author = ', '.join(names)

    publisher = summary.get('publisher') or ''
    if not publisher:
        publisher = (publishing.get('Imprint') or {}).get('ImprintName') or ''

    published_date = summary.get('pubdate') or ''
    if not published_date:
        dates = publishing.get('PublishingDate') or []
        raw = (dates[0].get('Date') or '') if dates else ''
        # YYYYMMDD -> YYYY-MM-DD
        if len(raw) == 8:
            published_date = f'{raw[:4]}-{raw[4:6]}-{raw[6:]}'

    page_count = None
    extent = _first(descriptive.get('Extent'), ExtentType='11')
    if extent and extent.get('ExtentValue'):
        try:
            page_count = int(extent['ExtentValue'])
        except ValueError:
            page_count = None

    description = ''
    text_content = _first(collateral.get('TextContent'), TextType='03')
    if text_content:
        description = text_content.get('Text') or ''

    cover_image_url = summary.get('cover') or ''
    if not cover_image_url:
        resource = _first(collateral.get('SupportingResource'), ResourceContentType='01')
        versions = (resource or {}).get('ResourceVersion') or []
        if versions:
            cover_image_url = versions[0].get('ResourceLink') or ''

    return {
        'isbn': summary.get('isbn') or (onix.get('ProductIdentifier') or {}).get('IDValue'),
        'title': title or UNKNOWN_TITLE,
        'author': author or UNKNOWN_AUTHOR,
        'publisher': publisher or None,
        'publishedDate': published_date or None,
        'pageCount': page_count,
        'description': description or None,
        'coverImageUrl': cover_image_url or None,
        'dataSource': 'openBD',
    }


def parse_google_book(item: Dict[str, Any]) -> Dict[str, Any]:
    """Map a Google Books volume onto the book search result shape."""
    volume = item.get('volumeInfo') or {}

    identifiers = volume.get('industryIdentifiers') or []
    isbn13 = _first(identifiers, type='ISBN_13')
    isbn10 = _first(identifiers, type='ISBN_10')
    isbn = (isbn13 or isbn10 or {}).get('identifier')

    thumbnail = (volume.get('imageLinks') or {}).get('thumbnail')
    if thumbnail:
        thumbnail = thumbnail.replace('http://', 'https://')

    authors = volume.get('authors') or []

    return {
        'isbn': isbn,
        'title': volume.get('title') or UNKNOWN_TITLE,
        'author': ', '.join(authors) or UNKNOWN_AUTHOR,
        'publisher': volume.get('publisher'),
        'publishedDate': volume.get('publishedDate'),
        'pageCount': volume.get('pageCount'),
        'description': volume.get('description'),
        'coverImageUrl': thumbnail,
        'dataSource': 'googleBooks',
    }


class BookSearchService:
    """Searches the external catalogues; OpenBD first for ISBNs, then Google Books."""

    def __init__(self, google_books_api_key: str = '', timeout: float = 10, session=None):
        self.google_books_api_key = google_books_api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def search_by_isbn(self, isbn: str) -> List[Dict[str, Any]]:
        normalized = normalize_isbn(isbn)
        failures = 0

        try:
            book = self._search_openbd(normalized)
            if book:
                return [book]
        except requests.RequestException as e:
            failures += 1
            logger.error('OpenBD search error', extra={'isbn': normalized, 'error': str(e)})

        try:
            return self._search_google_books(f'isbn:{normalized}')
        except requests.RequestException as e:
            failures += 1
            logger.error('Google Books search error', extra={'isbn': normalized, 'error': str(e)})

        if failures == 2:
            raise ApiError(ErrorCode.INTERNAL, 'Failed to fetch book information.')
        return []

    def search_by_query(self, query: str) -> List[Dict[str, Any]]:
        try:
            return self._search_google_books(query)
        except requests.RequestException as e:
            logger.error('Google Books search error', extra={'query': query, 'error': str(e)})
            raise ApiError(ErrorCode.INTERNAL, 'Failed to fetch book information.')

    def _search_openbd(self, isbn: str) -> Optional[Dict[str, Any]]:
        response = self.session.get(OPENBD_URL, params={'isbn': isbn}, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()
        if not data or not data[0]:
            return None
        return parse_openbd_book(data[0])

    def _search_google_books(self, query: str) -> List[Dict[str, Any]]:
        params = {'q': query, 'maxResults': 20, 'printType': 'books'}
        if self.google_books_api_key:
            params['key'] = self.google_books_api_key

        response = self.session.get(GOOGLE_BOOKS_URL, params=params, timeout=self.timeout)
        response.raise_for_status()
        items = response.json().get('items') or []
        return [parse_google_book(item) for item in items]


def get_book_search_service() -> BookSearchService:
    service = current_app.extensions.get('book_search')
    if service is None:
        raise RuntimeError('Book search service is not registered on the app.')
    return service
