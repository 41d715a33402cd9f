"""Application error taxonomy and the Flask error handlers.

Views and services raise ``ApiError``; the handlers registered here are the
only place an error is turned into an HTTP response.
"""

from enum import Enum

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from readingmemory.utils.logger import get_logger

logger = get_logger(__name__)


class ErrorCode(Enum):
    """Every error kind the API can report."""

    UNAUTHENTICATED = 'UNAUTHENTICATED'
    INVALID_TOKEN = 'INVALID_TOKEN'
    INVALID_ARGUMENT = 'INVALID_ARGUMENT'
    PERMISSION_DENIED = 'PERMISSION_DENIED'
    NOT_FOUND = 'NOT_FOUND'
    INTERNAL = 'INTERNAL'

    @property
    def status_code(self) -> int:
        return HTTP_STATUS[self]


HTTP_STATUS = {
    ErrorCode.UNAUTHENTICATED: 401,
    ErrorCode.INVALID_TOKEN: 401,
    ErrorCode.INVALID_ARGUMENT: 400,
    ErrorCode.PERMISSION_DENIED: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.INTERNAL: 500,
}


DEFAULT_MESSAGES = {
    ErrorCode.UNAUTHENTICATED: 'Authentication is required.',
    ErrorCode.INVALID_TOKEN: 'The authentication token is invalid.',
    ErrorCode.INVALID_ARGUMENT: 'The request parameters are invalid.',
    ErrorCode.PERMISSION_DENIED: "You cannot access another user's data.",
    ErrorCode.NOT_FOUND: 'Resource not found.',
    ErrorCode.INTERNAL: 'A server error occurred.',
}


class ApiError(Exception):
    """An expected failure carrying a stable error code for the client."""

    def __init__(self, code: ErrorCode, message: str = None):
        self.code = code
        self.message = message or DEFAULT_MESSAGES[code]
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return self.code.status_code

    def to_dict(self):
        return {'error': {'code': self.code.value, 'message': self.message}}

    def __repr__(self):
        return f'ApiError({self.code.value}, {self.message!r})'


def error_response(code: ErrorCode, message: str = None, details=None):
    """Build the ``{"error": {...}}`` envelope and its status code."""
    body = {'code': code.value, 'message': message or DEFAULT_MESSAGES[code]}
    if details is not None:
        body['details'] = details
    return jsonify({'error': body}), code.status_code


def _http_exception_code(error: HTTPException) -> ErrorCode:
    if error.code in (404, 405):
        return ErrorCode.NOT_FOUND
    if error.code is not None and 400 <= error.code < 500:
        return ErrorCode.INVALID_ARGUMENT
    return ErrorCode.INTERNAL


def _log_error(error):
    logger.error(
        'Error caught by error handler',
        exc_info=error,
        extra={
            'error': str(error),
            'path': request.path,
            'method': request.method,
        },
    )


def register_error_handlers(app):
    """Attach the terminal error handlers to ``app``."""

    @app.errorhandler(ApiError)
    def handle_api_error(error):
        _log_error(error)
        return error_response(error.code, error.message)

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        code = _http_exception_code(error)
        if code is ErrorCode.NOT_FOUND:
            # Unmatched routes are routine, no traceback needed
            logger.info('Route not found', extra={'path': request.path, 'method': request.method})
        else:
            _log_error(error)
        return error_response(code)

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        _log_error(error)
        return error_response(ErrorCode.INTERNAL)
