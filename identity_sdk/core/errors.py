"""Translate failed identity service responses into ServiceError."""

from __future__ import annotations

from typing import Any

import httpx

from identity_sdk.exceptions import ServiceError

UNKNOWN_ERROR_MESSAGE = "unknown error"


def _as_int(value: Any) -> int | None:
    """Return value as int when it is an integer or an integer string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        digits = value.strip()
        if digits.isascii() and digits.isdigit():
            return int(digits)
    return None


def _from_error_envelope(payload: dict[str, Any], http_status: int) -> ServiceError | None:
    """Parse the `{status, code, message, developerMessage}` envelope."""
    code = _as_int(payload.get("code"))
    message = payload.get("message")
    if code is None or not isinstance(message, str):
        return None
    status = _as_int(payload.get("status")) or http_status
    developer_message = payload.get("developerMessage")
    more_info = payload.get("moreInfo")
    return ServiceError(
        status=status,
        code=code,
        message=message,
        developer_message=developer_message if isinstance(developer_message, str) else "",
        more_info=more_info if isinstance(more_info, str) else None,
    )


def _from_oauth_envelope(payload: dict[str, Any], http_status: int) -> ServiceError | None:
    """Parse the OAuth token endpoint `{error, error_description}` body."""
    error = payload.get("error")
    if not isinstance(error, str) or not error:
        return None
    description = payload.get("error_description") or payload.get("message")
    message = description if isinstance(description, str) and description else error
    return ServiceError(
        status=http_status,
        code=http_status,
        message=message,
        developer_message=message,
        oauth_error=error,
    )


def classify_error_response(response: httpx.Response) -> ServiceError:
    """Build the ServiceError for a response with status >= 400."""
    http_status = response.status_code
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        error = _from_error_envelope(payload, http_status) or _from_oauth_envelope(
            payload, http_status
        )
        if error is not None:
            return error
    return ServiceError(status=http_status, code=http_status, message=UNKNOWN_ERROR_MESSAGE)
