"""Value objects exchanged between the SDK and its callers."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

SigningAlgorithm = Literal["HS256"]


@dataclass(frozen=True)
class ResourceRef:
    """Link to a remote resource, with its fields when the service expanded it."""

    href: str
    properties: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def get(self, name: str, default: Any = None) -> Any:
        """Return an expanded property value."""
        return self.properties.get(name, default)

    @classmethod
    def from_payload(cls, payload: Any) -> ResourceRef | None:
        """Build a reference from a `{"href": ...}` object, or None when absent."""
        if not isinstance(payload, Mapping):
            return None
        href = payload.get("href")
        if not isinstance(href, str) or not href:
            return None
        properties = {str(key): value for key, value in payload.items() if key != "href"}
        return cls(href=href, properties=properties)


@dataclass(frozen=True)
class OrganizationNameKey:
    """Organization account store addressed by its name key instead of its href."""

    name_key: str


AccountStoreRef = ResourceRef | OrganizationNameKey


@dataclass(frozen=True)
class CredentialRequest:
    """Login attempt, optionally pinned to one account store."""

    identifier: str
    secret: str = field(repr=False)
    account_store: AccountStoreRef | None = None


@dataclass(frozen=True)
class SigningContext:
    """API key material used to sign and verify ID Site tokens."""

    issuer_id: str
    secret: str | bytes = field(repr=False)
    algorithm: SigningAlgorithm = "HS256"


@dataclass(frozen=True)
class IdSiteResult:
    """Outcome of a verified ID Site callback."""

    account_href: str
    status: str
    state: str
    is_new_account: bool


@dataclass(frozen=True)
class AccessToken:
    """OAuth access/refresh token pair returned by a grant."""

    access_token: str = field(repr=False)
    refresh_token: str | None = field(repr=False)
    token_type: str
    expires_in: int
    access_token_href: str | None


@dataclass(frozen=True)
class AuthenticationResult:
    """Authenticated account, plus token details for bearer validations."""

    account: ResourceRef
    href: str | None = None
    application: ResourceRef | None = None
    tenant: ResourceRef | None = None
    jwt: str | None = field(default=None, repr=False)
    expanded_jwt: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)
