import secrets
from urllib.parse import parse_qsl, urlsplit

import httpx
import pytest

from oauth2_strategy.models.config import ProviderConfig
from oauth2_strategy.services.security import verify_code_challenge
from oauth2_strategy.services.store import InMemoryAttemptStore
from oauth2_strategy.services.tokens import TokenExchanger


class FakeClock:
    """Manually advanced clock for lifetime tests."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubProvider:
    """In-process identity provider.

    Issues single-use codes bound to the PKCE challenge and redirect_uri of
    the authorization URL, and checks them the way a real provider does when
    the code is redeemed.
    """

    def __init__(self, config: ProviderConfig):
        self.config = config
        self._codes: dict[str, tuple[str, str]] = {}
        self.token_requests: list[dict[str, str]] = []

    def authorize(self, authorization_url: str) -> dict[str, str]:
        """Simulate the user approving; returns the callback query parameters."""
        query = dict(parse_qsl(urlsplit(authorization_url).query))
        code = secrets.token_urlsafe(16)
        self._codes[code] = (query["code_challenge"], query["redirect_uri"])
        return {"code": code, "state": query["state"]}

    def handle(self, request: httpx.Request) -> httpx.Response:
        form = dict(parse_qsl(request.content.decode()))
        self.token_requests.append(form)

        if form.get("client_secret") != self.config.client_secret:
            return httpx.Response(401, json={"error": "invalid_client"})

        entry = self._codes.pop(form.get("code", ""), None)
        if entry is None:
            return httpx.Response(400, json={"error": "invalid_grant"})

        challenge, redirect_uri = entry
        if form.get("redirect_uri") != redirect_uri:
            return httpx.Response(
                400,
                json={"error": "invalid_grant", "error_description": "redirect_uri"},
            )
        if not verify_code_challenge(form.get("code_verifier", ""), challenge):
            return httpx.Response(
                400,
                json={"error": "invalid_grant", "error_description": "PKCE failed"},
            )

        return httpx.Response(
            200,
            json={
                "access_token": secrets.token_urlsafe(24),
                "token_type": "Bearer",
                "expires_in": 3600,
                "refresh_token": secrets.token_urlsafe(24),
                "scope": "openid email",
            },
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


@pytest.fixture
def provider_config() -> ProviderConfig:
    return ProviderConfig(
        client_id="client-456",
        client_secret="secret-789",
        authorization_endpoint="https://auth.example.com/authorize",
        token_endpoint="https://auth.example.com/token",
        revocation_endpoint="https://auth.example.com/revoke",
        redirect_uri="https://myapp.com/callback",
        scopes=["openid", "email"],
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> InMemoryAttemptStore:
    return InMemoryAttemptStore(clock=clock)


@pytest.fixture
def stub_provider(provider_config) -> StubProvider:
    return StubProvider(provider_config)


@pytest.fixture
async def exchanger(provider_config, stub_provider):
    http_client = httpx.AsyncClient(transport=stub_provider.transport)
    yield TokenExchanger(provider_config, http_client=http_client)
    await http_client.aclose()
