"""In-memory identity service used by the integration tests."""

from __future__ import annotations

import base64
import json
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from urllib.parse import parse_qs
from uuid import uuid4

import httpx
import pytest

from identity_sdk.client import ApplicationClient

BASE = "https://api.local/v1"
APP_HREF = f"{BASE}/applications/app-1"
API_KEY_ID = "key-id"
API_KEY_SECRET = "key-secret"

INVALID_LOGIN = {
    "status": 400,
    "code": 7100,
    "message": "Invalid username or password.",
    "developerMessage": "Invalid username or password.",
}
NOT_FOUND = {
    "status": 404,
    "code": 404,
    "message": "The requested resource does not exist.",
    "developerMessage": "The requested resource does not exist.",
}


@dataclass
class FakeAccount:
    """Account stored in the fake service."""

    href: str
    username: str
    email: str
    password: str
    directory: str
    groups: set[str] = field(default_factory=set)


@dataclass
class IssuedToken:
    """Access token issued by the fake token endpoint."""

    access_token: str
    refresh_token: str
    account_href: str
    href: str


class FakeIdentityService:
    """Minimal model of the login, token and password reset endpoints."""

    def __init__(self) -> None:
        self.accounts: dict[str, FakeAccount] = {}
        self.mapped_stores: set[str] = set()
        self.organizations: dict[str, set[str]] = {}
        self.tokens: dict[str, IssuedToken] = {}
        self.refresh_tokens: dict[str, str] = {}
        self.reset_tokens: dict[str, str] = {}
        self.requests: list[httpx.Request] = []

    def create_directory(self, mapped: bool = True) -> str:
        """Create a directory, mapped to the application by default."""
        href = f"{BASE}/directories/{uuid4().hex}"
        if mapped:
            self.mapped_stores.add(href)
        return href

    def create_group(self, directory: str, mapped: bool = True) -> str:
        """Create a group in a directory."""
        del directory
        href = f"{BASE}/groups/{uuid4().hex}"
        if mapped:
            self.mapped_stores.add(href)
        return href

    def create_organization(self, name_key: str, directories: set[str]) -> None:
        """Create an organization mapped to the application."""
        self.organizations[name_key] = directories

    def create_account(self, directory: str, password: str = "P@$$w0rd") -> FakeAccount:
        """Create an account with a random username and email."""
        suffix = uuid4().hex[:8]
        account = FakeAccount(
            href=f"{BASE}/accounts/{suffix}",
            username=f"user-{suffix}",
            email=f"user-{suffix}@example.com",
            password=password,
            directory=directory,
        )
        self.accounts[account.href] = account
        return account

    async def handle(self, request: httpx.Request) -> httpx.Response:
        """Route a request the way the real service would."""
        self.requests.append(request)
        path = request.url.path
        if path == "/v1/applications/app-1/authTokens":
            return self._validate(request)
        if not self._has_api_key(request):
            return httpx.Response(
                401, json={"status": 401, "code": 401, "message": "Unauthorized."}
            )
        if path == "/v1/applications/app-1/loginAttempts":
            return self._login_attempt(request)
        if path == "/v1/applications/app-1/oauth/token":
            return self._token(request)
        if path.startswith("/v1/accessTokens/") and request.method == "DELETE":
            return self._revoke(path)
        if path.startswith("/v1/applications/app-1/passwordResetTokens"):
            return self._password_reset(request)
        return httpx.Response(404, json=NOT_FOUND)

    def _has_api_key(self, request: httpx.Request) -> bool:
        expected = base64.b64encode(f"{API_KEY_ID}:{API_KEY_SECRET}".encode()).decode("ascii")
        return request.headers.get("authorization") == f"Basic {expected}"

    def _find_account(self, login: str) -> FakeAccount | None:
        for account in self.accounts.values():
            if login in {account.username, account.email}:
                return account
        return None

    def _is_reachable(self, account: FakeAccount, store: dict[str, str] | None) -> bool:
        if store is None:
            if account.directory in self.mapped_stores:
                return True
            return any(group in self.mapped_stores for group in account.groups)
        if "nameKey" in store:
            return account.directory in self.organizations.get(store["nameKey"], set())
        href = store.get("href", "")
        if href not in self.mapped_stores:
            return False
        return href == account.directory or href in account.groups

    def _authenticate(
        self, login: str, password: str, store: dict[str, str] | None = None
    ) -> FakeAccount | None:
        account = self._find_account(login)
        if account is None or account.password != password:
            return None
        if not self._is_reachable(account, store):
            return None
        return account

    @staticmethod
    def _account_payload(account: FakeAccount, expand: bool) -> dict[str, str]:
        if not expand:
            return {"href": account.href}
        return {"href": account.href, "email": account.email, "username": account.username}

    def _login_attempt(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        login, _, password = base64.b64decode(body["value"]).decode("utf-8").partition(":")
        account = self._authenticate(login, password, body.get("accountStore"))
        if account is None:
            return httpx.Response(400, json=INVALID_LOGIN)
        expand = request.url.params.get("expand") == "account"
        return httpx.Response(200, json={"account": self._account_payload(account, expand)})

    def _issue(self, account: FakeAccount) -> httpx.Response:
        token_id = uuid4().hex
        issued = IssuedToken(
            access_token=f"at-{uuid4().hex}",
            refresh_token=f"rt-{uuid4().hex}",
            account_href=account.href,
            href=f"{BASE}/accessTokens/{token_id}",
        )
        self.tokens[issued.access_token] = issued
        self.refresh_tokens[issued.refresh_token] = account.href
        return httpx.Response(
            200,
            json={
                "access_token": issued.access_token,
                "refresh_token": issued.refresh_token,
                "token_type": "Bearer",
                "expires_in": 3600,
                "stormpath_access_token_href": issued.href,
            },
        )

    def _token(self, request: httpx.Request) -> httpx.Response:
        form = {key: values[0] for key, values in parse_qs(request.content.decode()).items()}
        if form.get("grant_type") == "password":
            account = self._authenticate(form.get("username", ""), form.get("password", ""))
            if account is None:
                return httpx.Response(
                    400, json={"error": "invalid_grant", "message": "Invalid username or password."}
                )
            return self._issue(account)
        if form.get("grant_type") == "refresh_token":
            account_href = self.refresh_tokens.pop(form.get("refresh_token", ""), None)
            if account_href is None:
                return httpx.Response(
                    400, json={"error": "invalid_grant", "message": "Token is invalid"}
                )
            return self._issue(self.accounts[account_href])
        return httpx.Response(400, json={"error": "unsupported_grant_type"})

    def _validate(self, request: httpx.Request) -> httpx.Response:
        scheme, _, token = request.headers.get("authorization", "").partition(" ")
        issued = self.tokens.get(token) if scheme == "Bearer" else None
        if issued is None:
            return httpx.Response(404, json=NOT_FOUND)
        return httpx.Response(
            200,
            json={
                "href": issued.href,
                "account": {"href": issued.account_href},
                "application": {"href": APP_HREF},
                "tenant": {"href": f"{BASE}/tenants/t-1"},
                "jwt": issued.access_token,
                "expandedJwt": {"claims": {"sub": issued.account_href}},
            },
        )

    def _revoke(self, path: str) -> httpx.Response:
        for access_token, issued in list(self.tokens.items()):
            if issued.href.endswith(path.removeprefix("/v1")):
                del self.tokens[access_token]
                return httpx.Response(204)
        return httpx.Response(404, json=NOT_FOUND)

    def _password_reset(self, request: httpx.Request) -> httpx.Response:
        token = request.url.path.rsplit("/passwordResetTokens", 1)[1].lstrip("/")
        if not token:
            account = self._find_account(json.loads(request.content)["email"])
            if account is None:
                return httpx.Response(
                    400, json={"status": 400, "code": 2016, "message": "Email not found."}
                )
            reset_token = uuid4().hex
            self.reset_tokens[reset_token] = account.href
            return self._reset_payload(reset_token, account)

        account_href = self.reset_tokens.get(token)
        if account_href is None:
            return httpx.Response(404, json=NOT_FOUND)
        account = self.accounts[account_href]
        if request.method == "POST":
            account.password = json.loads(request.content)["password"]
            del self.reset_tokens[token]
        return self._reset_payload(token, account)

    def _reset_payload(self, token: str, account: FakeAccount) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "href": f"{APP_HREF}/passwordResetTokens/{token}",
                "email": account.email,
                "account": self._account_payload(account, expand=True),
            },
        )


@pytest.fixture
def identity_service() -> FakeIdentityService:
    """Fresh fake identity service per test."""
    return FakeIdentityService()


@pytest.fixture
async def app_client(identity_service: FakeIdentityService) -> AsyncIterator[ApplicationClient]:
    """ApplicationClient wired to the fake identity service."""
    transport = httpx.MockTransport(identity_service.handle)
    async with httpx.AsyncClient(transport=transport) as http_client:
        yield ApplicationClient(
            application_href=APP_HREF,
            api_key_id=API_KEY_ID,
            api_key_secret=API_KEY_SECRET,
            http_client=http_client,
        )
