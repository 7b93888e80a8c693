"""Token request and response models.

Contains the token endpoint request shapes (code exchange, refresh,
revocation), the raw token response and the TokenSet handed to callers.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


@dataclass(frozen=True)
class TokenSet:
    """Tokens issued by a successful exchange or refresh.

    ``access_token`` is always present. ``scopes`` holds what the provider
    granted, which may differ from what was requested. When the provider
    does not echo a scope, ``scopes`` falls back to the requested scopes and
    ``scope_echoed`` is False.
    """

    access_token: str = field(repr=False)
    token_type: str = "Bearer"
    expires_at: float | None = None  # Unix timestamp
    refresh_token: str | None = field(default=None, repr=False)
    id_token: str | None = field(default=None, repr=False)
    scopes: tuple[str, ...] = ()
    scope_echoed: bool = True
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        if not self.access_token:
            raise ValueError("TokenSet requires an access_token")

    def is_expired(self, buffer_seconds: float = 30.0) -> bool:
        """Check if the access token is expired, or will be within the buffer."""
        if self.expires_at is None:
            return False  # No expiry reported
        return time.time() >= (self.expires_at - buffer_seconds)

    def can_refresh(self) -> bool:
        return bool(self.refresh_token)


@dataclass(frozen=True)
class TokenRequest:
    """Authorization code exchange request (RFC 6749 Section 4.1.3).

    Includes the PKCE code_verifier (RFC 7636). The client authenticates
    with ``client_secret_post``.
    """

    token_endpoint: str
    code: str = field(repr=False)
    redirect_uri: str
    client_id: str
    client_secret: str = field(repr=False)
    code_verifier: str = field(repr=False)
    grant_type: str = "authorization_code"

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for an application/x-www-form-urlencoded request."""
        return {
            "grant_type": self.grant_type,
            "code": self.code,
            "redirect_uri": self.redirect_uri,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code_verifier": self.code_verifier,
        }


@dataclass(frozen=True)
class RefreshTokenRequest:
    """Refresh token request (RFC 6749 Section 6)."""

    token_endpoint: str
    refresh_token: str = field(repr=False)
    client_id: str
    client_secret: str = field(repr=False)
    grant_type: str = "refresh_token"
    scope: str | None = None

    def to_form_data(self) -> dict[str, str]:
        data = {
            "grant_type": self.grant_type,
            "refresh_token": self.refresh_token,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        if self.scope:
            data["scope"] = self.scope
        return data


@dataclass(frozen=True)
class RevocationRequest:
    """Token revocation request (RFC 7009 Section 2.1)."""

    revocation_endpoint: str
    token: str = field(repr=False)
    client_id: str
    client_secret: str = field(repr=False)
    token_type_hint: str | None = None

    def to_form_data(self) -> dict[str, str]:
        data = {
            "token": self.token,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        if self.token_type_hint:
            data["token_type_hint"] = self.token_type_hint
        return data


class TokenResponse(BaseModel):
    """Token endpoint response body (RFC 6749 Section 5).

    Covers both successful responses (Section 5.1) and error responses
    (Section 5.2). Unknown provider-specific fields are kept.
    """

    model_config = ConfigDict(extra="allow")

    # Success response fields (RFC 6749 Section 5.1)
    access_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int | None = None  # Seconds until expiry
    refresh_token: str | None = None
    scope: str | None = None
    id_token: str | None = None  # OpenID Connect, passed through unverified

    # Error response fields (RFC 6749 Section 5.2)
    error: str | None = None
    error_description: str | None = None
    error_uri: str | None = None

    @field_validator("expires_in", mode="before")
    @classmethod
    def coerce_expires_in(cls, v: Any) -> Any:
        # Some providers send expires_in as a string
        if isinstance(v, str) and v.strip().isdigit():
            return int(v)
        return v

    def is_success(self) -> bool:
        return self.error is None and bool(self.access_token)

    def is_error(self) -> bool:
        return self.error is not None

    def calculate_expires_at(self, now: float | None = None) -> float | None:
        """Calculate absolute expiry timestamp from expires_in."""
        if self.expires_in is None:
            return None
        if now is None:
            now = time.time()
        return now + self.expires_in

    def to_token_set(
        self, requested_scopes: tuple[str, ...] = (), now: float | None = None
    ) -> TokenSet:
        """Convert a successful response into a TokenSet.

        Raises:
            ValueError: If response is not successful
        """
        if not self.is_success():
            raise ValueError("Cannot convert error response to TokenSet")

        if self.scope is not None:
            scopes = tuple(self.scope.split())
            scope_echoed = True
        else:
            scopes = requested_scopes
            scope_echoed = False

        return TokenSet(
            access_token=self.access_token,
            token_type=self.token_type,
            expires_at=self.calculate_expires_at(now),
            refresh_token=self.refresh_token,
            id_token=self.id_token,
            scopes=scopes,
            scope_echoed=scope_echoed,
            raw=self.model_dump(exclude_none=True),
        )
