"""Exception hierarchy for the OAuth2 strategy.

Protocol failures (provider denials, state mismatches, transport problems)
are returned as outcome values, see ``models/outcomes.py``. Exceptions are
reserved for conditions the caller cannot render per request: broken
configuration, an unusable random source, and the HTTP adapter's
raise-a-response contract.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from starlette.responses import Response

    from oauth2_strategy.models.outcomes import FailureOutcome


class OAuth2Error(Exception):
    """Base exception for all OAuth2 strategy errors."""

    pass


class ConfigurationError(OAuth2Error):
    """Raised when provider configuration is malformed or incomplete.

    Fatal at startup, never raised per request.
    """

    pass


class StateGenerationError(OAuth2Error):
    """Raised when the secure random source cannot produce state or PKCE values."""

    pass


class RedirectIssued(OAuth2Error):
    """Raised by the HTTP adapter to send the browser to the provider.

    The caller is expected to return ``response`` as-is.
    """

    def __init__(self, response: Response):
        super().__init__(f"Redirect to {response.headers.get('location')}")
        self.response = response


class AuthenticationFailed(OAuth2Error):
    """Raised by the HTTP adapter when the callback cannot produce a user.

    The message is always generic; inspect ``outcome`` for the failure kind.
    """

    def __init__(self, outcome: FailureOutcome):
        super().__init__(outcome.user_message)
        self.outcome = outcome
