"""Declarative request validation built on pydantic models."""

import functools
from datetime import date, datetime, timezone
from typing import Annotated, Optional, Type

from flask import request
from pydantic import BaseModel, BeforeValidator, ValidationError

from readingmemory.errors import ErrorCode, error_response


def parse_iso8601(value):
    """Accept ISO-8601 strings and return a timezone-aware datetime."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.strip())
        except ValueError:
            raise ValueError('Invalid date format')
    else:
        raise ValueError('Invalid date format')
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


IsoDatetime = Annotated[datetime, BeforeValidator(parse_iso8601)]


def _format_errors(exc: ValidationError, location: str):
    details = []
    for err in exc.errors():
        field = '.'.join(str(part) for part in err.get('loc', ()))
        details.append({
            'location': location,
            'field': field,
            'message': err.get('msg', 'Invalid value'),
        })
    return details


def validate_request(path: Optional[Type[BaseModel]] = None,
                     query: Optional[Type[BaseModel]] = None,
                     body: Optional[Type[BaseModel]] = None):
    """Validate path params, query string and JSON body before the view runs.

    Failures short-circuit with 400 ``INVALID_ARGUMENT`` and a ``details``
    list; they never reach the error handlers. Parsed ``query`` and ``body``
    models are passed to the view as keyword arguments of the same name.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated_function(*args, **kwargs):
            details = []
            parsed = {}

            if path is not None:
                try:
                    path.model_validate(kwargs)
                except ValidationError as exc:
                    details.extend(_format_errors(exc, 'params'))

            if query is not None:
                try:
                    parsed['query'] = query.model_validate(request.args.to_dict())
                except ValidationError as exc:
                    details.extend(_format_errors(exc, 'query'))

            if body is not None:
                payload = request.get_json(silent=True)
                if payload is None:
                    payload = {}
                if not isinstance(payload, dict):
                    details.append({'location': 'body', 'field': '', 'message': 'JSON object required'})
                else:
                    try:
                        parsed['body'] = body.model_validate(payload)
                    except ValidationError as exc:
                        details.extend(_format_errors(exc, 'body'))

            if details:
                return error_response(ErrorCode.INVALID_ARGUMENT, details=details)

            kwargs.update(parsed)
            return f(*args, **kwargs)

        return decorated_function

    return decorator
