"""Authorization flow models.

Contains the outbound authorization request, the inbound callback
parameters and the redirect directive handed back to the HTTP layer.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

# Set by the flow itself; caller-supplied extras can never replace these.
RESERVED_AUTHORIZATION_PARAMS = frozenset(
    {
        "response_type",
        "client_id",
        "redirect_uri",
        "state",
        "code_challenge",
        "code_challenge_method",
    }
)

CALLBACK_PARAMS = ("state", "code", "error", "error_description", "error_uri")


@dataclass(frozen=True)
class AuthorizationRequest:
    """Authorization request parameters for the code + PKCE flow."""

    authorization_endpoint: str
    client_id: str
    redirect_uri: str
    code_challenge: str = field(repr=False)
    state: str = field(repr=False)
    code_challenge_method: str = "S256"
    scope: str | None = None
    extra_params: Mapping[str, str] = field(default_factory=dict)

    def build_authorization_url(self) -> str:
        """Build the complete authorization URL.

        Query parameters already present on the endpoint are kept. Extra
        parameters go in before the security-critical ones, and reserved
        names among them are dropped.
        """
        scheme, netloc, path, query, _ = urlsplit(self.authorization_endpoint)

        params: dict[str, str] = dict(parse_qsl(query, keep_blank_values=True))
        params.update(
            {
                "response_type": "code",
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
            }
        )
        if self.scope:
            params["scope"] = self.scope

        for key, value in self.extra_params.items():
            if key in RESERVED_AUTHORIZATION_PARAMS:
                continue
            params[key] = str(value)

        # Always last, always ours
        params["state"] = self.state
        params["code_challenge"] = self.code_challenge
        params["code_challenge_method"] = self.code_challenge_method

        return urlunsplit(
            (scheme, netloc, path, urlencode(params, quote_via=quote), "")
        )


@dataclass(frozen=True)
class CallbackParams:
    """Query parameters the provider sends back to the redirect URI."""

    state: str | None = None
    code: str | None = field(default=None, repr=False)
    error: str | None = None
    error_description: str | None = None
    error_uri: str | None = None

    @classmethod
    def from_mapping(cls, query: Mapping[str, str]) -> CallbackParams:
        """Extract callback parameters, treating empty values as absent."""
        return cls(**{key: query.get(key) or None for key in CALLBACK_PARAMS})

    @classmethod
    def from_url(cls, callback_url: str) -> CallbackParams:
        query = urlsplit(callback_url).query
        values: dict[str, str] = {}
        for key, value in parse_qsl(query, keep_blank_values=True):
            # First occurrence wins
            values.setdefault(key, value)
        return cls.from_mapping(values)

    def is_callback(self) -> bool:
        """Check whether the provider has responded at all."""
        return any(
            value is not None for value in (self.state, self.code, self.error)
        )

    def is_error(self) -> bool:
        return self.error is not None
