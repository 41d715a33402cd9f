"""Auth helpers: @token_required and @token_optional decorators."""

import functools
from dataclasses import dataclass
from typing import Optional

from firebase_admin import auth
from flask import g, request

from readingmemory.errors import ErrorCode, error_response
from readingmemory.services.firebase_service import get_auth_client
from readingmemory.utils.logger import get_logger

logger = get_logger(__name__)

# Verification rejections, as opposed to provider or network failures
REJECTED_TOKEN_ERRORS = (auth.InvalidIdTokenError, auth.UserDisabledError, ValueError)


@dataclass(frozen=True)
class Principal:
    """The verified caller of the current request."""

    subject_id: str
    email: Optional[str] = None


def _extract_bearer_token() -> Optional[str]:
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        return None
    token = auth_header[len('Bearer '):].strip()
    return token or None


def _verify(token: str) -> Principal:
    decoded_token = get_auth_client().verify_id_token(token)
    return Principal(subject_id=decoded_token['uid'], email=decoded_token.get('email'))


def token_required(f):
    """Verify the Firebase ID token from Authorization: Bearer <token> and pass user_id to the route."""
    @functools.wraps(f)
    def decorated_function(*args, **kwargs):
        token = _extract_bearer_token()
        if token is None:
            return error_response(ErrorCode.UNAUTHENTICATED)

        logger.info('Auth token info', extra={
            'tokenLength': len(token),
            'path': request.path,
            'method': request.method,
        })

        try:
            principal = _verify(token)
        except REJECTED_TOKEN_ERRORS as e:
            logger.error('Invalid ID token', extra={
                'error': str(e),
                'code': getattr(e, 'code', None),
                'tokenLength': len(token),
            })
            return error_response(ErrorCode.INVALID_TOKEN)
        except Exception:
            logger.exception('Authentication error')
            return error_response(ErrorCode.INTERNAL, 'An error occurred while authenticating.')

        g.current_user = principal

        # Pass user_id as the first argument to the decorated function
        return f(principal.subject_id, *args, **kwargs)

    return decorated_function


def token_optional(f):
    """Like token_required, but anonymous or unverifiable callers continue without a principal."""
    @functools.wraps(f)
    def decorated_function(*args, **kwargs):
        g.current_user = None

        token = _extract_bearer_token()
        if token is not None:
            try:
                g.current_user = _verify(token)
            except Exception as e:
                logger.warning('Optional auth failed, continuing without auth', extra={'error': str(e)})

        return f(*args, **kwargs)

    return decorated_function


def current_principal() -> Optional[Principal]:
    return g.get('current_user')
