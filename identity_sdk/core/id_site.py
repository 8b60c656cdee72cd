"""ID Site redirect construction and callback verification."""

from __future__ import annotations

import hmac
import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import httpx
import structlog

from identity_sdk.core.jwt import decode_token, encode_token
from identity_sdk.exceptions import ArgumentError, LocalValidationError, TokenClaimInvalidError
from identity_sdk.models import IdSiteResult, SigningContext

JWT_REQUEST_PARAM = "jwtRequest"
JWT_RESPONSE_PARAM = "jwtResponse"
SSO_PATH = "/sso"
SSO_LOGOUT_PATH = "/sso/logout"
DEFAULT_CLOCK_SKEW_SECONDS = 60

INVALID_CALLBACK_URI_MESSAGE = "The specified callback URI (cb_uri) is not valid"
INVALID_CALLBACK_URI_DEVELOPER_MESSAGE = (
    "The specified callback URI (cb_uri) is not valid. Make sure the callback URI specified "
    "in your ID Site configuration matches the value specified."
)

TOKEN_INVALID_CODE = 10010
TOKEN_EXPIRED_CODE = 10011
TOKEN_IAT_AFTER_NOW_CODE = 10012
TOKEN_INVALID_MESSAGE = "Token is invalid"
TOKEN_INVALID_DEVELOPER_MESSAGE = "Token is invalid because one or more claims are missing."
TOKEN_EXP_INVALID_DEVELOPER_MESSAGE = (
    "Token is invalid because the expiration time (exp) is not a valid timestamp"
)
TOKEN_EXPIRED_DEVELOPER_MESSAGE = "Token is no longer valid because it has expired"
# Also reported for an audience mismatch; callers match on this wording.
TOKEN_IAT_AFTER_NOW_DEVELOPER_MESSAGE = (
    "Token is invalid because the issued at time (iat) is after the current time"
)

_KNOWN_CALLBACK_CLAIMS = frozenset(
    {"iat", "aud", "sub", "path", "state", "isNewSub", "status", "exp"}
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class IdSiteOptions:
    """Options for a hosted login or logout redirect."""

    callback_uri: str
    path: str = ""
    state: str = ""
    logout: bool = False


@dataclass(frozen=True)
class IdSiteCallbackClaims:
    """Claims carried by a `jwtResponse` token, untrusted until validated."""

    iat: Any = None
    aud: Any = None
    sub: Any = None
    path: Any = None
    state: Any = None
    is_new_sub: Any = None
    status: Any = None
    exp: Any = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, claims: Mapping[str, Any]) -> IdSiteCallbackClaims:
        """Split decoded claims into named fields and unknown extras."""
        return cls(
            iat=claims.get("iat"),
            aud=claims.get("aud"),
            sub=claims.get("sub"),
            path=claims.get("path"),
            state=claims.get("state"),
            is_new_sub=claims.get("isNewSub"),
            status=claims.get("status"),
            exp=claims.get("exp"),
            extra={k: v for k, v in claims.items() if k not in _KNOWN_CALLBACK_CLAIMS},
        )


@dataclass(frozen=True)
class ClaimFailure:
    """First failed check of the callback claim validation sequence."""

    code: int
    message: str
    developer_message: str
    status: int = 400

    def to_error(self) -> TokenClaimInvalidError:
        """Convert into the exception raised to callers."""
        return TokenClaimInvalidError(
            status=self.status,
            code=self.code,
            message=self.message,
            developer_message=self.developer_message,
        )


@dataclass(frozen=True)
class ClaimValidationContext:
    """Inputs shared by every claim check."""

    issuer_id: str
    now: int
    clock_skew_seconds: int = DEFAULT_CLOCK_SKEW_SECONDS


ClaimCheck = Callable[[IdSiteCallbackClaims, ClaimValidationContext], ClaimFailure | None]

_INVALID = ClaimFailure(TOKEN_INVALID_CODE, TOKEN_INVALID_MESSAGE, TOKEN_INVALID_DEVELOPER_MESSAGE)
_INVALID_EXP = ClaimFailure(
    TOKEN_INVALID_CODE, TOKEN_INVALID_MESSAGE, TOKEN_EXP_INVALID_DEVELOPER_MESSAGE
)
_EXPIRED = ClaimFailure(TOKEN_EXPIRED_CODE, TOKEN_INVALID_MESSAGE, TOKEN_EXPIRED_DEVELOPER_MESSAGE)
_IAT_AFTER_NOW = ClaimFailure(
    TOKEN_IAT_AFTER_NOW_CODE, TOKEN_INVALID_MESSAGE, TOKEN_IAT_AFTER_NOW_DEVELOPER_MESSAGE
)


def _is_timestamp(value: Any) -> bool:
    """Return True for finite numeric values, excluding booleans."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return False
    return math.isfinite(value)


def check_audience(
    claims: IdSiteCallbackClaims, context: ClaimValidationContext
) -> ClaimFailure | None:
    """The token must be addressed to this API key."""
    if not isinstance(claims.aud, str):
        return _IAT_AFTER_NOW
    if not hmac.compare_digest(claims.aud.encode("utf-8"), context.issuer_id.encode("utf-8")):
        return _IAT_AFTER_NOW
    return None


def check_expiration_format(
    claims: IdSiteCallbackClaims, context: ClaimValidationContext
) -> ClaimFailure | None:
    """`exp` is optional but must be a timestamp when present."""
    if claims.exp is not None and not _is_timestamp(claims.exp):
        return _INVALID_EXP
    return None


def check_not_expired(
    claims: IdSiteCallbackClaims, context: ClaimValidationContext
) -> ClaimFailure | None:
    if claims.exp is not None and claims.exp <= context.now:
        return _EXPIRED
    return None


def check_issued_at(
    claims: IdSiteCallbackClaims, context: ClaimValidationContext
) -> ClaimFailure | None:
    """`iat` is required and may not be ahead of the local clock beyond the skew."""
    if not _is_timestamp(claims.iat):
        return _INVALID
    if claims.iat > context.now + context.clock_skew_seconds:
        return _IAT_AFTER_NOW
    return None


def check_subject(
    claims: IdSiteCallbackClaims, context: ClaimValidationContext
) -> ClaimFailure | None:
    if not isinstance(claims.sub, str) or not claims.sub:
        return _INVALID
    return None


CALLBACK_CLAIM_CHECKS: tuple[ClaimCheck, ...] = (
    check_audience,
    check_expiration_format,
    check_not_expired,
    check_issued_at,
    check_subject,
)


def validate_callback_claims(
    claims: IdSiteCallbackClaims,
    context: ClaimValidationContext,
    checks: tuple[ClaimCheck, ...] = CALLBACK_CLAIM_CHECKS,
) -> ClaimFailure | None:
    """Run checks in order and return the first failure, if any."""
    for check in checks:
        failure = check(claims, context)
        if failure is not None:
            return failure
    return None


def build_authorization_url(
    sso_base_url: str,
    application_href: str,
    options: IdSiteOptions,
    signing_context: SigningContext,
    now: datetime | None = None,
) -> str:
    """Build the signed ID Site redirect URL for login or logout."""
    if not options.callback_uri or not options.callback_uri.strip():
        raise LocalValidationError(
            status=400,
            code=400,
            message=INVALID_CALLBACK_URI_MESSAGE,
            developer_message=INVALID_CALLBACK_URI_DEVELOPER_MESSAGE,
        )

    issued_at = now or datetime.now(UTC)
    claims = {
        "iat": int(issued_at.timestamp()),
        "jti": str(uuid4()),
        "iss": signing_context.issuer_id,
        "aud": signing_context.issuer_id,
        "sub": application_href,
        "cb_uri": options.callback_uri,
        "path": options.path or "",
        "state": options.state or "",
    }
    token = encode_token(claims, signing_context)
    path = SSO_LOGOUT_PATH if options.logout else SSO_PATH
    url = httpx.URL(sso_base_url.rstrip("/") + path, params={JWT_REQUEST_PARAM: token})
    return str(url)


def handle_callback(
    response_url: str | None,
    signing_context: SigningContext,
    now: datetime | None = None,
    clock_skew_seconds: int = DEFAULT_CLOCK_SKEW_SECONDS,
) -> IdSiteResult:
    """Verify an ID Site callback URL and return the authenticated account result."""
    if not response_url:
        raise ArgumentError("response_url is required.")

    try:
        token = httpx.URL(response_url).params.get(JWT_RESPONSE_PARAM)
    except httpx.InvalidURL as exc:
        raise ArgumentError("response_url is not a valid URL.") from exc
    if not token:
        raise ArgumentError(f"response_url has no {JWT_RESPONSE_PARAM} parameter.")

    claims = IdSiteCallbackClaims.from_mapping(decode_token(token, signing_context))
    context = ClaimValidationContext(
        issuer_id=signing_context.issuer_id,
        now=int((now or datetime.now(UTC)).timestamp()),
        clock_skew_seconds=clock_skew_seconds,
    )
    failure = validate_callback_claims(claims, context)
    if failure is not None:
        logger.warning("id_site_callback_rejected", code=failure.code)
        raise failure.to_error()

    return IdSiteResult(
        account_href=claims.sub,
        status=str(claims.status) if claims.status is not None else "",
        state=str(claims.state) if claims.state else "",
        is_new_account=bool(claims.is_new_sub),
    )
