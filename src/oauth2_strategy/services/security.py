"""State and PKCE generation for the authorization-code flow.

Provides cryptographically secure generation of the state token and the
PKCE code verifier, plus constant-time validation helpers.
"""

from __future__ import annotations

import secrets
import string
import time
from collections.abc import Callable

from oauth2_strategy.models.errors import StateGenerationError
from oauth2_strategy.models.security import (
    AuthorizationAttempt,
    derive_code_challenge,
)

STATE_BYTES = 32
CODE_VERIFIER_LENGTH = 128
_VERIFIER_ALPHABET = string.ascii_letters + string.digits + "-._~"


def generate_state() -> str:
    """Generate a cryptographically secure state parameter.

    The state parameter provides CSRF protection by binding the callback to
    the browser session that started the flow.

    Returns:
        URL-safe random string carrying 256 bits of entropy
    """
    return secrets.token_urlsafe(STATE_BYTES)


def generate_code_verifier() -> str:
    """Generate a cryptographically secure code verifier.

    RFC 7636 Section 4.1: code verifier must be 43-128 characters long
    and use only unreserved characters:
        [A-Z] / [a-z] / [0-9] / "-" / "." / "_" / "~"

    Returns:
        A 128-character code verifier (maximum length)
    """
    return "".join(
        secrets.choice(_VERIFIER_ALPHABET) for _ in range(CODE_VERIFIER_LENGTH)
    )


def verify_code_challenge(code_verifier: str, code_challenge: str) -> bool:
    """Check a verifier against a challenge the way a provider does for S256."""
    return secrets.compare_digest(derive_code_challenge(code_verifier), code_challenge)


def states_match(expected: str | None, actual: str | None) -> bool:
    """Compare two state values in constant time.

    A missing value on either side never matches.
    """
    if not expected or not actual:
        return False
    return secrets.compare_digest(expected.encode("utf-8"), actual.encode("utf-8"))


class StateGenerator:
    """Produces a fresh AuthorizationAttempt per login.

    The state and the code verifier are drawn independently from the
    ``secrets`` module, so neither can be derived from the other or from
    anything that appears in the authorization URL.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock

    def generate(self) -> AuthorizationAttempt:
        """Generate a new authorization attempt.

        Raises:
            StateGenerationError: If no secure random source is available
        """
        try:
            state = generate_state()
            code_verifier = generate_code_verifier()
        except NotImplementedError as e:
            raise StateGenerationError(
                f"Secure random source unavailable: {e}"
            ) from e

        return AuthorizationAttempt(
            state=state,
            code_verifier=code_verifier,
            created_at=self._clock(),
        )
