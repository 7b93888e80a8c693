"""Provider configuration for the authorization-code flow.

Contains the immutable client credentials and endpoint set that every
component receives at construction.
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterable
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from oauth2_strategy.models.errors import ConfigurationError

GOOGLE_AUTHORIZATION_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
GOOGLE_REVOCATION_ENDPOINT = "https://oauth2.googleapis.com/revoke"
GOOGLE_DEFAULT_SCOPES = ("openid", "email", "profile")


def _check_absolute_url(value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ValueError(f"Must be an absolute http(s) URL: {value!r}")
    if parsed.fragment:
        raise ValueError(f"Must not contain a fragment: {value!r}")
    return value


class ProviderConfig(BaseModel):
    """Client credentials and endpoints for one identity provider.

    Frozen so that a single instance can be shared by the flow controller,
    the token exchanger and the HTTP adapter without anyone mutating it.
    """

    model_config = ConfigDict(frozen=True)

    client_id: str = Field(min_length=1)
    client_secret: str = Field(min_length=1, repr=False)
    authorization_endpoint: str
    token_endpoint: str
    redirect_uri: str
    revocation_endpoint: str | None = None
    scopes: tuple[str, ...] = ()

    # Seconds
    exchange_timeout: float = Field(default=10.0, gt=0)
    attempt_lifetime: float = Field(default=600.0, gt=0)

    @field_validator("authorization_endpoint", "token_endpoint", "redirect_uri")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        return _check_absolute_url(v)

    @field_validator("revocation_endpoint")
    @classmethod
    def validate_optional_endpoint(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return _check_absolute_url(v)

    @field_validator("scopes", mode="before")
    @classmethod
    def normalize_scopes(cls, v: Any) -> tuple[str, ...]:
        """Split string input and drop duplicates, keeping first-seen order."""
        if v is None:
            return ()
        if isinstance(v, str):
            v = re.split(r"[\s,]+", v)
        seen: dict[str, None] = {}
        for scope in v:
            scope = str(scope).strip()
            if scope:
                seen.setdefault(scope, None)
        return tuple(seen)

    @property
    def scope(self) -> str | None:
        """Space-joined scope parameter, or None when no scopes are requested."""
        return " ".join(self.scopes) if self.scopes else None

    @classmethod
    def create(cls, **values: Any) -> ProviderConfig:
        """Build a config, reporting any problem as a ConfigurationError."""
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid provider configuration: {e}") from e

    @classmethod
    def from_env(
        cls,
        prefix: str,
        environ: dict[str, str] | None = None,
        **overrides: Any,
    ) -> ProviderConfig:
        """Load a config from ``<PREFIX>_*`` environment variables.

        Explicit keyword overrides win over the environment.
        """
        if environ is None:
            environ = dict(os.environ)

        prefix = prefix.upper().rstrip("_")
        values: dict[str, Any] = {}
        for name in (
            "client_id",
            "client_secret",
            "authorization_endpoint",
            "token_endpoint",
            "redirect_uri",
            "revocation_endpoint",
            "scopes",
            "exchange_timeout",
            "attempt_lifetime",
        ):
            raw = environ.get(f"{prefix}_{name.upper()}")
            if raw:
                values[name] = raw

        values.update(overrides)
        missing = [
            name
            for name in ("client_id", "client_secret", "redirect_uri")
            if not values.get(name)
        ]
        if missing:
            variables = ", ".join(f"{prefix}_{name.upper()}" for name in missing)
            raise ConfigurationError(f"Missing required settings: {variables}")

        return cls.create(**values)


def google_provider(
    client_id: str,
    client_secret: str,
    redirect_uri: str,
    scopes: Iterable[str] | None = None,
    **options: Any,
) -> ProviderConfig:
    """Build a ProviderConfig with Google's OAuth2 endpoints filled in."""
    values: dict[str, Any] = {
        "authorization_endpoint": GOOGLE_AUTHORIZATION_ENDPOINT,
        "token_endpoint": GOOGLE_TOKEN_ENDPOINT,
        "revocation_endpoint": GOOGLE_REVOCATION_ENDPOINT,
        "scopes": tuple(scopes) if scopes is not None else GOOGLE_DEFAULT_SCOPES,
    }
    values.update(options)
    return ProviderConfig.create(
        client_id=client_id,
        client_secret=client_secret,
        redirect_uri=redirect_uri,
        **values,
    )
