"""Public SDK exports."""

from identity_sdk.client import ApplicationClient
from identity_sdk.core.id_site import IdSiteOptions
from identity_sdk.exceptions import (
    ArgumentError,
    IdentityError,
    LoadError,
    LocalValidationError,
    MalformedResponseError,
    MalformedTokenError,
    SDKError,
    ServiceError,
    SignatureInvalidError,
    TokenClaimInvalidError,
    TokenDecodeError,
    TransportError,
)
from identity_sdk.models import (
    AccessToken,
    AuthenticationResult,
    CredentialRequest,
    IdSiteResult,
    OrganizationNameKey,
    ResourceRef,
    SigningContext,
)

__all__ = [
    "AccessToken",
    "ApplicationClient",
    "ArgumentError",
    "AuthenticationResult",
    "CredentialRequest",
    "IdSiteOptions",
    "IdSiteResult",
    "IdentityError",
    "LoadError",
    "LocalValidationError",
    "MalformedResponseError",
    "MalformedTokenError",
    "OrganizationNameKey",
    "ResourceRef",
    "SDKError",
    "ServiceError",
    "SignatureInvalidError",
    "SigningContext",
    "TokenClaimInvalidError",
    "TokenDecodeError",
    "TransportError",
]
