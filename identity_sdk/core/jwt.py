"""Compact HS256 JWS encoding and verification for ID Site tokens."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from jose import jws, jwt
from jose.exceptions import JWSError, JWTError

from identity_sdk.exceptions import MalformedTokenError, SignatureInvalidError
from identity_sdk.models import SigningContext

JWT_ALGORITHM = "HS256"
ALLOWED_ALGORITHMS = frozenset({JWT_ALGORITHM})


def encode_token(claims: Mapping[str, Any], signing_context: SigningContext) -> str:
    """Sign claims into a `header.claims.signature` token."""
    _require_supported_algorithm(signing_context.algorithm)
    return jwt.encode(dict(claims), signing_context.secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str, signing_context: SigningContext) -> dict[str, Any]:
    """Verify token signature and return its claims without validating them."""
    _require_supported_algorithm(signing_context.algorithm)
    if not isinstance(token, str) or token.count(".") != 2:
        raise MalformedTokenError("Token must have exactly three segments.")

    try:
        header = jwt.get_unverified_header(token)
        claims = jwt.get_unverified_claims(token)
    except JWTError as exc:
        raise MalformedTokenError("Token segments could not be decoded.") from exc

    algorithm = header.get("alg")
    if not isinstance(algorithm, str) or algorithm not in ALLOWED_ALGORITHMS:
        raise SignatureInvalidError("Token algorithm is not allowed.")

    try:
        jws.verify(token, signing_context.secret, algorithms=[JWT_ALGORITHM])
    except JWSError as exc:
        raise SignatureInvalidError("Token signature verification failed.") from exc
    return dict(claims)


def _require_supported_algorithm(algorithm: str) -> None:
    """Reject signing contexts configured for anything but HS256."""
    if algorithm not in ALLOWED_ALGORITHMS:
        raise ValueError(f"Unsupported signing algorithm: {algorithm}.")
