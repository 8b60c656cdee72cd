"""Async client for an application's authentication and token endpoints."""

from __future__ import annotations

import base64
from collections.abc import Mapping
from time import perf_counter
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from identity_sdk.config import Settings
from identity_sdk.core.errors import classify_error_response
from identity_sdk.core.id_site import (
    DEFAULT_CLOCK_SKEW_SECONDS,
    IdSiteOptions,
    build_authorization_url,
    handle_callback,
)
from identity_sdk.core.redaction import redact_mapping, redact_path
from identity_sdk.exceptions import (
    ArgumentError,
    LoadError,
    MalformedResponseError,
    TransportError,
)
from identity_sdk.models import (
    AccessToken,
    AccountStoreRef,
    AuthenticationResult,
    CredentialRequest,
    IdSiteResult,
    OrganizationNameKey,
    ResourceRef,
    SigningContext,
)

DEFAULT_TIMEOUT = httpx.Timeout(connect=2.0, read=5.0, write=5.0, pool=5.0)

OAUTH_TOKEN_PATH = "/oauth/token"
AUTH_TOKENS_PATH = "/authTokens"
LOGIN_ATTEMPTS_PATH = "/loginAttempts"
PASSWORD_RESET_TOKENS_PATH = "/passwordResetTokens"
VERIFICATION_EMAILS_PATH = "/verificationEmails"
APPLICATIONS_SEGMENT = "/applications/"

logger = structlog.get_logger(__name__)


def _origin(url: str) -> str:
    """Return scheme://host[:port] of an absolute URL."""
    parsed = httpx.URL(url)
    host = f"[{parsed.host}]" if ":" in parsed.host else parsed.host
    netloc = host if parsed.port is None else f"{host}:{parsed.port}"
    return f"{parsed.scheme}://{netloc}"


def _require(value: str | None, name: str) -> str:
    """Return value or raise ArgumentError when it is missing or blank."""
    if not isinstance(value, str) or not value.strip():
        raise ArgumentError(f"{name} is required.")
    return value


class ApplicationClient:
    """Authenticate accounts and manage OAuth tokens for one application."""

    def __init__(
        self,
        application_href: str,
        api_key_id: str,
        api_key_secret: str,
        timeout: httpx.Timeout | float | None = None,
        http_client: httpx.AsyncClient | None = None,
        sso_base_url: str | None = None,
        clock_skew_seconds: int = DEFAULT_CLOCK_SKEW_SECONDS,
    ) -> None:
        """Create client with sane defaults and optional injected transport."""
        self._application_href = _require(application_href, "application_href").rstrip("/")
        self._signing_context = SigningContext(
            issuer_id=_require(api_key_id, "api_key_id"),
            secret=_require(api_key_secret, "api_key_secret"),
        )
        self._auth = httpx.BasicAuth(api_key_id, api_key_secret)
        self._sso_base_url = (sso_base_url or _origin(self._application_href)).rstrip("/")
        self._clock_skew_seconds = clock_skew_seconds
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout or DEFAULT_TIMEOUT)

    @classmethod
    def from_settings(
        cls, settings: Settings, http_client: httpx.AsyncClient | None = None
    ) -> ApplicationClient:
        """Build a client from loaded SDK settings."""
        sso_base_url = settings.id_site.sso_base_url
        return cls(
            application_href=settings.client.application_href,
            api_key_id=settings.api_key.id,
            api_key_secret=settings.api_key.secret.get_secret_value(),
            timeout=settings.client.timeout_seconds,
            http_client=http_client,
            sso_base_url=str(sso_base_url) if sso_base_url is not None else None,
            clock_skew_seconds=settings.id_site.clock_skew_seconds,
        )

    @classmethod
    def load(cls, url: str, http_client: httpx.AsyncClient | None = None) -> ApplicationClient:
        """Build a client from `https://<key id>:<key secret>@host/v1/applications/<id>`."""
        try:
            parsed = httpx.URL(url)
        except (httpx.InvalidURL, TypeError) as exc:
            raise LoadError(f"Invalid application URL: {url!r}.") from exc

        if parsed.scheme not in {"http", "https"} or not parsed.host:
            raise LoadError(f"Invalid application URL: {url!r}.")
        if not parsed.username or not parsed.password:
            raise LoadError("Application URL must embed the API key id and secret.")
        if APPLICATIONS_SEGMENT not in parsed.path:
            raise LoadError("Application URL must point at an application resource.")

        application_href = f"{_origin(url)}{parsed.path}"
        return cls(
            application_href=application_href,
            api_key_id=parsed.username,
            api_key_secret=parsed.password,
            http_client=http_client,
        )

    @property
    def application_href(self) -> str:
        return self._application_href

    @property
    def signing_context(self) -> SigningContext:
        return self._signing_context

    async def authenticate_account(
        self, request: CredentialRequest, expand_account: bool = True
    ) -> AuthenticationResult:
        """Authenticate identifier/secret, scoped to one account store when requested."""
        identifier = _require(request.identifier, "identifier")
        secret = _require(request.secret, "secret")
        value = base64.b64encode(f"{identifier}:{secret}".encode()).decode("ascii")
        body: dict[str, Any] = {"type": "basic", "value": value}
        if request.account_store is not None:
            body["accountStore"] = self._account_store_payload(request.account_store)

        response = await self._request(
            "POST",
            self._application_url(LOGIN_ATTEMPTS_PATH),
            json=body,
            params={"expand": "account"} if expand_account else None,
        )
        payload = self._json_object(response)
        return AuthenticationResult(account=self._account_ref(payload, response))

    async def create_login_attempt(
        self,
        username: str,
        password: str,
        account_store: AccountStoreRef | None = None,
    ) -> ResourceRef:
        """Post a basic login attempt and return the unexpanded account link."""
        request = CredentialRequest(
            identifier=username, secret=password, account_store=account_store
        )
        result = await self.authenticate_account(request, expand_account=False)
        return result.account

    async def oauth_password_grant(self, username: str, password: str) -> AccessToken:
        """Exchange account credentials for an access/refresh token pair."""
        response = await self._request(
            "POST",
            self._application_url(OAUTH_TOKEN_PATH),
            data={
                "grant_type": "password",
                "username": _require(username, "username"),
                "password": _require(password, "password"),
            },
        )
        return self._access_token(response)

    async def oauth_refresh_grant(self, refresh_token: str) -> AccessToken:
        """Exchange a refresh token for a new token pair."""
        response = await self._request(
            "POST",
            self._application_url(OAUTH_TOKEN_PATH),
            data={
                "grant_type": "refresh_token",
                "refresh_token": _require(refresh_token, "refresh_token"),
            },
        )
        return self._access_token(response)

    async def validate_access_token(
        self, access_token: AccessToken | str
    ) -> AuthenticationResult:
        """Validate a bearer access token and return the account it was issued to."""
        if isinstance(access_token, AccessToken):
            access_token = access_token.access_token
        raw_token = _require(access_token, "access_token").strip()
        scheme, _, credentials = raw_token.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            raw_token = credentials.strip()

        response = await self._request(
            "GET",
            self._application_url(AUTH_TOKENS_PATH),
            authenticated=False,
            headers={"Authorization": f"Bearer {raw_token}"},
        )
        payload = self._json_object(response)
        expanded_jwt = payload.get("expandedJwt")
        jwt_value = payload.get("jwt")
        href = payload.get("href")
        return AuthenticationResult(
            account=self._account_ref(payload, response),
            href=href if isinstance(href, str) else None,
            application=ResourceRef.from_payload(payload.get("application")),
            tenant=ResourceRef.from_payload(payload.get("tenant")),
            jwt=jwt_value if isinstance(jwt_value, str) else None,
            expanded_jwt=dict(expanded_jwt) if isinstance(expanded_jwt, dict) else {},
        )

    async def revoke_access_token(self, access_token: AccessToken) -> None:
        """Delete the token resource so that later validations fail."""
        href = _require(access_token.access_token_href, "access_token_href")
        await self._request("DELETE", href)

    async def oauth_authenticate(
        self,
        body: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> AccessToken | AuthenticationResult:
        """Dispatch a raw OAuth request by grant type or authorization header."""
        if body:
            grant_type = body.get("grant_type")
            if grant_type == "password":
                return await self.oauth_password_grant(
                    body.get("username", ""), body.get("password", "")
                )
            if grant_type == "refresh_token":
                return await self.oauth_refresh_grant(body.get("refresh_token", ""))
            raise ArgumentError(f"Unsupported grant_type: {grant_type!r}.")

        normalized = {key.lower(): value for key, value in (headers or {}).items()}
        authorization = normalized.get("authorization")
        if authorization:
            return await self.validate_access_token(authorization)
        raise ArgumentError("Either a grant body or an authorization header is required.")

    async def send_password_reset_email(self, email: str) -> ResourceRef:
        """Start a password reset and return the account the email was sent to."""
        response = await self._request(
            "POST",
            self._application_url(PASSWORD_RESET_TOKENS_PATH),
            json={"email": _require(email, "email")},
            params={"expand": "account"},
        )
        return self._account_ref(self._json_object(response), response)

    async def verify_password_reset_token(self, token: str) -> ResourceRef:
        """Return the account a password reset token was issued for."""
        response = await self._request(
            "GET",
            self._password_reset_token_url(token),
            params={"expand": "account"},
        )
        return self._account_ref(self._json_object(response), response)

    async def reset_password(self, token: str, new_password: str) -> ResourceRef:
        """Consume a password reset token by setting a new password."""
        response = await self._request(
            "POST",
            self._password_reset_token_url(token),
            json={"password": _require(new_password, "new_password")},
            params={"expand": "account"},
        )
        return self._account_ref(self._json_object(response), response)

    async def resend_verification_email(self, login: str) -> ResourceRef | None:
        """Ask the service to send the account verification email again."""
        response = await self._request(
            "POST",
            self._application_url(VERIFICATION_EMAILS_PATH),
            json={"login": _require(login, "login")},
        )
        if not response.content:
            return None
        return ResourceRef.from_payload(self._json_object(response))

    def create_id_site_url(self, options: IdSiteOptions) -> str:
        """Build the signed hosted login/logout redirect for this application."""
        return build_authorization_url(
            sso_base_url=self._sso_base_url,
            application_href=self._application_href,
            options=options,
            signing_context=self._signing_context,
        )

    def handle_id_site_callback(self, response_url: str | None) -> IdSiteResult:
        """Verify the hosted login callback URL."""
        return handle_callback(
            response_url,
            self._signing_context,
            clock_skew_seconds=self._clock_skew_seconds,
        )

    async def aclose(self) -> None:
        """Close underlying HTTP client if owned by this instance."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> ApplicationClient:
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        """Exit async context manager and close managed resources."""
        del exc_type, exc, tb
        await self.aclose()

    def _application_url(self, path: str) -> str:
        return f"{self._application_href}{path}"

    def _password_reset_token_url(self, token: str) -> str:
        encoded = quote(_require(token, "token"), safe="")
        return self._application_url(f"{PASSWORD_RESET_TOKENS_PATH}/{encoded}")

    async def _request(
        self,
        method: str,
        url: str,
        authenticated: bool = True,
        **kwargs: Any,
    ) -> httpx.Response:
        """Execute request once and translate failures; nothing is retried."""
        path = redact_path(httpx.URL(url).path)
        body = kwargs.get("data") or kwargs.get("json")
        start = perf_counter()
        try:
            response = await self._client.request(
                method, url, auth=self._auth if authenticated else None, **kwargs
            )
        except httpx.RequestError as exc:
            logger.warning(
                "identity_request_failed",
                method=method,
                path=path,
                error=type(exc).__name__,
            )
            raise TransportError("Identity service unavailable.") from exc

        duration_ms = round((perf_counter() - start) * 1000, 2)
        event_logger = logger.warning if response.status_code >= 400 else logger.info
        event_logger(
            "identity_request_completed",
            method=method,
            path=path,
            status_code=response.status_code,
            duration_ms=duration_ms,
            request_body=redact_mapping(body) if isinstance(body, Mapping) else None,
        )
        if response.status_code >= 400:
            raise classify_error_response(response)
        return response

    @staticmethod
    def _json_object(response: httpx.Response) -> dict[str, Any]:
        """Return response JSON as object."""
        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedResponseError(
                "Identity service returned invalid JSON.", response.status_code
            ) from exc
        if not isinstance(payload, dict):
            raise MalformedResponseError(
                "Identity service returned invalid JSON object.", response.status_code
            )
        return payload

    @staticmethod
    def _account_ref(payload: dict[str, Any], response: httpx.Response) -> ResourceRef:
        """Extract the mandatory account link from a response payload."""
        account = ResourceRef.from_payload(payload.get("account"))
        if account is None:
            raise MalformedResponseError(
                "Identity service response has no account.", response.status_code
            )
        return account

    @staticmethod
    def _account_store_payload(account_store: AccountStoreRef) -> dict[str, str]:
        if isinstance(account_store, OrganizationNameKey):
            return {"nameKey": _require(account_store.name_key, "name_key")}
        return {"href": _require(account_store.href, "account_store.href")}

    @staticmethod
    def _access_token(response: httpx.Response) -> AccessToken:
        """Normalize a token endpoint response."""
        payload = ApplicationClient._json_object(response)
        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise MalformedResponseError(
                "Token response has no access_token.", response.status_code
            )

        expires_in = payload.get("expires_in")
        if isinstance(expires_in, str) and expires_in.isascii() and expires_in.isdigit():
            expires_in = int(expires_in)
        if isinstance(expires_in, bool) or not isinstance(expires_in, int):
            raise MalformedResponseError(
                "Token response has an invalid expires_in.", response.status_code
            )

        refresh_token = payload.get("refresh_token")
        href = payload.get("stormpath_access_token_href") or payload.get("access_token_href")
        return AccessToken(
            access_token=access_token,
            refresh_token=refresh_token if isinstance(refresh_token, str) else None,
            token_type=str(payload.get("token_type") or "Bearer"),
            expires_in=expires_in,
            access_token_href=href if isinstance(href, str) else None,
        )
