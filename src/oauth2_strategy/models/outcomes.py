"""Typed results of the authorization flow.

``complete()`` and the token exchanger return one of these instead of
raising, so callers can render a response per failure kind.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from oauth2_strategy.models.tokens import TokenSet

GENERIC_FAILURE_MESSAGE = "Sign-in failed, please try again."

# Provider error codes whose description is safe to show to users
DISPLAYABLE_PROVIDER_ERRORS: frozenset[str] = frozenset()


@dataclass(frozen=True)
class RedirectRequired:
    """The browser must be sent to ``url`` to continue."""

    url: str


@dataclass(frozen=True)
class Success:
    token_set: TokenSet
    original_request: Any = None
    user: Any = None


@dataclass(frozen=True)
class ProviderError:
    """The provider rejected or denied the request. Terminal, never retried."""

    code: str
    description: str | None = None
    uri: str | None = None
    allow_list: ClassVar[frozenset[str]] = DISPLAYABLE_PROVIDER_ERRORS

    @property
    def user_message(self) -> str:
        # Provider strings may be attacker-influenced
        if self.code in self.allow_list and self.description:
            return self.description
        return GENERIC_FAILURE_MESSAGE


@dataclass(frozen=True)
class ValidationError:
    """State, code or attempt integrity failure. Possible CSRF or replay."""

    reason: str
    user_message: ClassVar[str] = GENERIC_FAILURE_MESSAGE


@dataclass(frozen=True)
class TransportError:
    """The token endpoint could not be reached or answered unreadably.

    Callers may retry with a fresh attempt, never with the same code.
    """

    reason: str
    user_message: ClassVar[str] = GENERIC_FAILURE_MESSAGE


@dataclass(frozen=True)
class VerificationError:
    """The caller-supplied verify function failed after a good exchange."""

    reason: str
    cause: BaseException | None = field(default=None, repr=False, compare=False)
    user_message: ClassVar[str] = GENERIC_FAILURE_MESSAGE


FailureOutcome = Union[ProviderError, ValidationError, TransportError, VerificationError]
CallbackOutcome = Union[RedirectRequired, Success, FailureOutcome]
ExchangeOutcome = Union[TokenSet, ProviderError, TransportError]
