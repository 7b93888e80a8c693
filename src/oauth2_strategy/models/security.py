"""Security-related models for the authorization-code + PKCE flow.

Contains the PKCE parameters and the per-login authorization attempt that
is persisted between the redirect and the callback.
"""

from __future__ import annotations

import base64
import hashlib
import string
import time
from dataclasses import dataclass, field

UNRESERVED_CHARACTERS = frozenset(string.ascii_letters + string.digits + "-._~")


def derive_code_challenge(code_verifier: str) -> str:
    """Derive the S256 code challenge for a code verifier.

    RFC 7636 Section 4.2: BASE64URL-ENCODE(SHA256(ASCII(code_verifier)))
    without padding.
    """
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


@dataclass(frozen=True)
class PKCEParameters:
    """PKCE (Proof Key for Code Exchange) parameters (RFC 7636).

    Only the challenge ever leaves the server; the verifier is sent to the
    token endpoint alone.
    """

    code_verifier: str = field(repr=False)
    code_challenge: str = field()
    code_challenge_method: str = field(default="S256")

    def __post_init__(self) -> None:
        """Validate PKCE parameters meet RFC 7636 requirements."""
        if not (43 <= len(self.code_verifier) <= 128):
            raise ValueError("code_verifier must be 43-128 characters")
        if not set(self.code_verifier) <= UNRESERVED_CHARACTERS:
            raise ValueError("code_verifier must use unreserved characters only")
        if not (43 <= len(self.code_challenge) <= 128):
            raise ValueError("code_challenge must be 43-128 characters")
        if self.code_challenge_method != "S256":
            raise ValueError("Only S256 code challenge method is supported")

    @classmethod
    def from_verifier(cls, code_verifier: str) -> PKCEParameters:
        return cls(
            code_verifier=code_verifier,
            code_challenge=derive_code_challenge(code_verifier),
        )


@dataclass(frozen=True)
class AuthorizationAttempt:
    """One in-flight login: the state token and PKCE verifier it was issued with.

    Created when the authorization redirect is issued, persisted by the
    session store, and consumed exactly once when the callback arrives.
    """

    state: str = field(repr=False)
    code_verifier: str = field(repr=False)
    created_at: float = field(default_factory=time.time)

    @property
    def code_challenge(self) -> str:
        return derive_code_challenge(self.code_verifier)

    @property
    def pkce(self) -> PKCEParameters:
        return PKCEParameters.from_verifier(self.code_verifier)

    def is_expired(self, lifetime: float, now: float | None = None) -> bool:
        """Check whether the attempt is older than ``lifetime`` seconds."""
        if now is None:
            now = time.time()
        return now - self.created_at > lifetime
