"""SDK exception hierarchy."""

from __future__ import annotations

from typing import ClassVar

from identity_sdk.types import ErrorKind


class SDKError(Exception):
    """Base class for all SDK-specific exceptions."""

    kind: ClassVar[ErrorKind]


class ArgumentError(SDKError, ValueError):
    """Raised when a required input is missing or empty."""

    kind = "argument"


class LoadError(SDKError, ValueError):
    """Raised when a client cannot be built from a composite application URL."""

    kind = "load"


class IdentityError(SDKError):
    """Error carrying the identity service error shape."""

    kind = "service"

    def __init__(
        self,
        status: int,
        code: int,
        message: str,
        developer_message: str = "",
        more_info: str | None = None,
    ) -> None:
        """Initialize with the stable fields every consumer can branch on."""
        super().__init__(message)
        self.status = status
        self.code = code
        self.message = message
        self.developer_message = developer_message
        self.more_info = more_info

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(status={self.status}, code={self.code}, "
            f"message={self.message!r})"
        )


class LocalValidationError(IdentityError):
    """Raised when input fails a check the service is known to enforce as well."""

    kind = "local_validation"


class TokenClaimInvalidError(IdentityError):
    """Raised when an ID Site callback token fails claim validation."""

    kind = "token_claim_invalid"


class ServiceError(IdentityError):
    """Raised for any 4xx/5xx response returned by the identity service."""

    kind = "service"

    def __init__(
        self,
        status: int,
        code: int,
        message: str,
        developer_message: str = "",
        more_info: str | None = None,
        oauth_error: str | None = None,
    ) -> None:
        """Initialize with optional OAuth error string from token endpoint failures."""
        super().__init__(status, code, message, developer_message, more_info)
        self.oauth_error = oauth_error


class TokenDecodeError(SDKError):
    """Raised when a signed token cannot be decoded."""

    kind = "malformed_token"


class MalformedTokenError(TokenDecodeError):
    """Raised when a token is not a well-formed compact JWS."""

    kind = "malformed_token"


class SignatureInvalidError(TokenDecodeError):
    """Raised when a token signature or algorithm is not accepted."""

    kind = "signature_invalid"


class TransportError(SDKError):
    """Raised when the identity service is unreachable or times out."""

    kind = "transport"


class MalformedResponseError(SDKError):
    """Raised when the identity service returns malformed or unexpected data."""

    kind = "malformed_response"

    def __init__(self, detail: str, status_code: int | None = None) -> None:
        """Initialize with optional HTTP status code context."""
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code
