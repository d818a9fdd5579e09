"""Classify raw HTTP bodies before they are decoded into models.

Order of checks for every response:

1. A top-level JSON array whose elements carry ``errorCode`` and ``message``
   is an error, whatever the HTTP status -> ``ApiError``.
2. A body that is not JSON, or a non-2xx status without such an array
   -> ``TransportError``.
3. Otherwise the JSON is handed to the expected model; a mismatch there
   -> ``DecodeError``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, List, Type, Union

from pydantic import BaseModel, ValidationError

from .exceptions import ApiError, AuthError, DecodeError, TransportError
from .models import ErrorDetail, TokenErrorResponse
from .transport import HttpResponse

_logger = logging.getLogger(__name__)

# a Model subclass, or a callable turning the JSON payload into a value
Converter = Union[Type[BaseModel], Callable[[Any], Any]]


def parse_json(response: HttpResponse) -> Any:
    """Return the JSON payload of ``response``, or ``None`` for an empty body."""
    content = response.content or b""
    if not content.strip():
        return None
    try:
        return json.loads(content)
    except ValueError as e:
        raise TransportError(
            f"response is not JSON: {_snippet(content)}",
            status=response.status_code,
            url=response.url,
        ) from e


def is_error_array(payload: Any) -> bool:
    return (
        isinstance(payload, list)
        and len(payload) > 0
        and all(isinstance(e, dict) and "errorCode" in e and "message" in e for e in payload)
    )


def error_details(payload: List[Any]) -> List[ErrorDetail]:
    return [ErrorDetail.from_json(e) for e in payload]


def check(response: HttpResponse) -> Any:
    """Raise for error responses; return the parsed JSON (or ``None``) otherwise."""
    payload = parse_json(response)

    if is_error_array(payload):
        errors = error_details(payload)
        _logger.error(
            "Salesforce error HTTP %s for %s: %s",
            response.status_code,
            response.url,
            ", ".join(e.error_code for e in errors),
        )
        raise ApiError(response.status_code, response.url, errors)

    if not 200 <= response.status_code < 300:
        detail = _snippet(response.content) if response.content else "empty body"
        raise TransportError(
            f"unexpected status without error body: {detail}",
            status=response.status_code,
            url=response.url,
        )
    return payload


def convert(model: Converter, payload: Any, url: str = "") -> Any:
    """Validate ``payload`` with a model class, or hand it to a plain callable.

    ``pydantic.ValidationError`` and the usual conversion errors become
    ``DecodeError``.
    """
    where = f" from {url}" if url else ""
    try:
        if isinstance(model, type) and issubclass(model, BaseModel):
            return model.model_validate(payload)
        return model(payload)
    except DecodeError:
        raise
    except ValidationError as e:
        raise DecodeError(f"unexpected body{where}: {e}") from e
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise DecodeError(f"unexpected body{where}: {e}") from e


def decode(
    response: HttpResponse,
    model: Converter,
    *,
    allow_empty: bool = False,
) -> Any:
    """Check ``response`` and decode its body with ``model``.

    ``model`` is a ``Model`` subclass or any callable taking the JSON
    payload. An empty body is a ``DecodeError`` unless ``allow_empty`` is
    set, in which case ``None`` is returned.
    """
    payload = check(response)
    if payload is None:
        if allow_empty:
            return None
        raise DecodeError(f"empty body from {response.url}")
    return convert(model, payload, response.url)


def decode_list(response: HttpResponse, model: Converter) -> List[Any]:
    """Decode a JSON array response element by element, preserving order."""
    payload = check(response)
    if not isinstance(payload, list):
        raise DecodeError(
            f"expected array from {response.url}, got {type(payload).__name__}"
        )
    return [convert(model, item, response.url) for item in payload]


def decode_token(response: HttpResponse, model: Converter) -> Any:
    """Decode a token endpoint response; every failure becomes ``AuthError``."""
    try:
        payload = parse_json(response)
    except TransportError as e:
        raise AuthError("invalid_response", e.detail, status=response.status_code) from e

    if not 200 <= response.status_code < 300:
        if isinstance(payload, dict) and isinstance(payload.get("error"), str):
            err = TokenErrorResponse.from_json(payload)
            raise AuthError(err.error, err.error_description, status=response.status_code)
        if is_error_array(payload):
            first = ErrorDetail.from_json(payload[0])
            raise AuthError(first.error_code, str(first.message), status=response.status_code)
        raise AuthError(
            "http_error",
            f"token endpoint returned HTTP {response.status_code}",
            status=response.status_code,
        )

    try:
        return convert(model, payload, response.url)
    except DecodeError as e:
        raise AuthError("invalid_response", str(e), status=response.status_code) from e


def _snippet(content: bytes, limit: int = 200) -> str:
    text = content.decode("utf-8", errors="replace").strip()
    return text if len(text) <= limit else text[:limit] + "..."
