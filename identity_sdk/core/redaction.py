"""Credential redaction for structured log payloads."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

SENSITIVE_KEYS = {
    "access_token",
    "api_key",
    "authorization",
    "jwt",
    "jwtrequest",
    "jwtresponse",
    "password",
    "refresh_token",
    "secret",
    "token",
    "value",
}
REDACTED = "***REDACTED***"


def is_sensitive_key(key: str) -> bool:
    """Return True when key likely carries credential material."""
    normalized = key.lower().replace("-", "_")
    if normalized in SENSITIVE_KEYS:
        return True
    return "token" in normalized or "password" in normalized or "secret" in normalized


def redact_mapping(values: Mapping[str, Any]) -> dict[str, Any]:
    """Redact sensitive values from a mapping, recursing into nested mappings."""
    redacted: dict[str, Any] = {}
    for key, value in values.items():
        if is_sensitive_key(str(key)):
            redacted[key] = REDACTED
        elif isinstance(value, Mapping):
            redacted[key] = redact_mapping(value)
        elif isinstance(value, list):
            redacted[key] = [
                redact_mapping(item) if isinstance(item, Mapping) else item for item in value
            ]
        else:
            redacted[key] = value
    return redacted


def redact_path(path: str) -> str:
    """Mask the token segment of token-addressed resource paths."""
    segments = path.split("/")
    for index, segment in enumerate(segments[:-1]):
        if segment in {"passwordResetTokens", "accessTokens", "authTokens"}:
            segments[index + 1] = REDACTED
    return "/".join(segments)
