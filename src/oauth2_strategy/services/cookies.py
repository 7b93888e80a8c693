"""Signed session cookie linking a browser to its pending authorization attempt.

The cookie carries only a random session identifier plus an HMAC-SHA256
signature; the attempt itself stays in the AttemptStore.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import secrets
from typing import Literal

from starlette.requests import Request
from starlette.responses import Response

from oauth2_strategy.models.errors import ConfigurationError

logger = logging.getLogger(__name__)

MIN_SECRET_LENGTH = 32


class SessionCookie:
    """Issues and verifies the session cookie used across the provider round trip."""

    def __init__(
        self,
        secret: str | bytes,
        name: str = "oauth2_session",
        max_age: int = 600,
        secure: bool = True,
        same_site: Literal["lax", "strict", "none"] = "lax",
        path: str = "/",
    ):
        """Initialize the cookie signer.

        Args:
            secret: HMAC key, at least 32 bytes
            name: Cookie name
            max_age: Cookie lifetime in seconds; match the attempt lifetime
            secure: Only send over HTTPS. Disable for local development only.
            same_site: SameSite attribute. "lax" is required for the cookie
                to survive the top-level redirect back from the provider.
            path: Cookie path

        Raises:
            ConfigurationError: If the secret is too short
        """
        key = secret.encode("utf-8") if isinstance(secret, str) else secret
        if len(key) < MIN_SECRET_LENGTH:
            raise ConfigurationError(
                f"Session cookie secret must be at least {MIN_SECRET_LENGTH} bytes"
            )
        self._key = key
        self.name = name
        self.max_age = max_age
        self.secure = secure
        self.same_site = same_site
        self.path = path

    @staticmethod
    def new_session_id() -> str:
        return secrets.token_urlsafe(32)

    def sign(self, session_id: str) -> str:
        """Sign a session id.

        Returns: session_id.base64url(signature)
        """
        signature = hmac.new(self._key, session_id.encode("utf-8"), hashlib.sha256)
        signature_b64 = base64.urlsafe_b64encode(signature.digest()).decode("ascii")
        return f"{session_id}.{signature_b64.rstrip('=')}"

    def unsign(self, signed_value: str) -> str | None:
        """Verify a signed value and return the session id, or None if tampered."""
        session_id, sep, signature_b64 = signed_value.rpartition(".")
        if not sep or not session_id:
            return None

        try:
            padding = "=" * (-len(signature_b64) % 4)
            provided = base64.urlsafe_b64decode(signature_b64 + padding)
        except (ValueError, TypeError):
            return None

        expected = hmac.new(self._key, session_id.encode("utf-8"), hashlib.sha256)
        if not hmac.compare_digest(expected.digest(), provided):
            return None
        return session_id

    def read(self, request: Request) -> str | None:
        """Return the verified session id carried by the request, if any."""
        raw = request.cookies.get(self.name)
        if not raw:
            return None
        session_id = self.unsign(raw)
        if session_id is None:
            logger.warning(f"Rejected session cookie {self.name} with bad signature")
        return session_id

    def attach(self, response: Response, session_id: str) -> None:
        response.set_cookie(
            self.name,
            self.sign(session_id),
            max_age=self.max_age,
            path=self.path,
            secure=self.secure,
            httponly=True,
            samesite=self.same_site,
        )

    def clear(self, response: Response) -> None:
        response.delete_cookie(
            self.name,
            path=self.path,
            secure=self.secure,
            httponly=True,
            samesite=self.same_site,
        )
