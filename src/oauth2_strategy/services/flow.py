"""Authorization flow orchestration service.

Coordinates the two phases of the authorization-code + PKCE flow: issuing
the authorization redirect, then validating the callback and completing
the code exchange.
"""

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Union

from oauth2_strategy.models.config import ProviderConfig
from oauth2_strategy.models.flow import AuthorizationRequest, CallbackParams
from oauth2_strategy.models.outcomes import (
    CallbackOutcome,
    ProviderError,
    RedirectRequired,
    Success,
    TransportError,
    ValidationError,
    VerificationError,
)
from oauth2_strategy.models.security import AuthorizationAttempt
from oauth2_strategy.models.tokens import TokenSet
from oauth2_strategy.services.security import StateGenerator, states_match
from oauth2_strategy.services.store import AttemptStore
from oauth2_strategy.services.tokens import TokenExchanger

logger = logging.getLogger(__name__)

MISSING_OR_EXPIRED = "missing or expired attempt"
STATE_MISMATCH = "state mismatch"
MISSING_CODE = "missing code"

# Rejections that leave the stored attempt usable
RETAINED_REASONS = frozenset({STATE_MISMATCH, MISSING_CODE})


@dataclass(frozen=True)
class VerifyOptions:
    """What the verify function receives after a successful exchange."""

    request: Any
    tokens: TokenSet


VerifyFunction = Callable[[VerifyOptions], Union[Any, Awaitable[Any]]]


class AuthorizationFlow:
    """Orchestrates authorization-code + PKCE logins for one provider.

    Handles:
    - State and PKCE generation per login attempt
    - Authorization URL construction
    - Callback validation (provider errors, attempt lifetime, state binding)
    - Single-use consumption of stored attempts
    - Code exchange and the caller's verify hook

    Neither phase keeps anything in memory between calls; the attempt
    travels through the injected AttemptStore.
    """

    def __init__(
        self,
        config: ProviderConfig,
        store: AttemptStore,
        exchanger: TokenExchanger | None = None,
        verify: VerifyFunction | None = None,
        generator: StateGenerator | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.store = store
        self.exchanger = exchanger or TokenExchanger(config)
        self.verify = verify
        self._clock = clock
        self._generator = generator or StateGenerator(clock=clock)

    def begin(
        self, extra_params: Mapping[str, str] | None = None
    ) -> tuple[str, AuthorizationAttempt]:
        """Start a login attempt.

        Generates a fresh state and PKCE verifier and builds the URL the
        user should visit. Nothing is persisted here.

        Args:
            extra_params: Additional authorization parameters (for example
                ``prompt`` or ``login_hint``). They cannot replace state,
                PKCE or client parameters.

        Returns:
            Tuple of (authorization_url, attempt). Store the attempt for
            the callback.
        """
        attempt = self._generator.generate()
        pkce = attempt.pkce

        auth_request = AuthorizationRequest(
            authorization_endpoint=self.config.authorization_endpoint,
            client_id=self.config.client_id,
            redirect_uri=self.config.redirect_uri,
            code_challenge=pkce.code_challenge,
            code_challenge_method=pkce.code_challenge_method,
            state=attempt.state,
            scope=self.config.scope,
            extra_params=dict(extra_params or {}),
        )
        authorization_url = auth_request.build_authorization_url()

        logger.debug(f"Generated authorization URL for client {self.config.client_id}")
        return authorization_url, attempt

    async def begin_session(
        self, session_id: str, extra_params: Mapping[str, str] | None = None
    ) -> RedirectRequired:
        """Start a login attempt and store it under ``session_id``.

        A second call for the same session replaces the first attempt.
        """
        authorization_url, attempt = self.begin(extra_params)
        await self.store.save(session_id, attempt)
        return RedirectRequired(authorization_url)

    async def complete(
        self,
        params: CallbackParams,
        stored_attempt: AuthorizationAttempt | None,
        session_id: str,
        original_request: Any = None,
    ) -> CallbackOutcome:
        """Validate a provider callback and finish the login.

        Checks run in a fixed order. A provider error short-circuits
        everything else, and the state comparison happens before the code
        is looked at. Once state and code have been validated the stored
        attempt is consumed, whatever happens next.

        Args:
            params: Query parameters received on the redirect URI
            stored_attempt: Attempt loaded for this session, if any
            session_id: Key the attempt is stored under
            original_request: Passed through to verify and to Success

        Returns:
            Success, or ProviderError / ValidationError / TransportError /
            VerificationError
        """
        if params.is_error():
            logger.warning(f"Provider returned error on callback: {params.error}")
            if session_id:
                # Terminal for the attempt; the user has to start over
                await self.store.invalidate(session_id)
            return ProviderError(
                params.error, params.error_description, params.error_uri
            )

        if stored_attempt is None or not stored_attempt.state:
            return self._reject(MISSING_OR_EXPIRED)

        if stored_attempt.is_expired(self.config.attempt_lifetime, self._clock()):
            await self.store.invalidate(session_id, stored_attempt.state)
            return self._reject(MISSING_OR_EXPIRED)

        if not states_match(stored_attempt.state, params.state):
            return self._reject(STATE_MISMATCH)

        if not params.code:
            return self._reject(MISSING_CODE)

        # Single use, and only for the attempt validated above; a duplicate
        # callback racing this one loses here
        if not await self.store.invalidate(session_id, stored_attempt.state):
            return self._reject(MISSING_OR_EXPIRED)

        result = await self.exchanger.exchange(
            params.code, stored_attempt.code_verifier
        )
        if isinstance(result, (ProviderError, TransportError)):
            return result

        user = None
        if self.verify is not None:
            try:
                user = self.verify(VerifyOptions(request=original_request, tokens=result))
                if inspect.isawaitable(user):
                    user = await user
            except Exception as e:
                logger.warning(f"Verify function rejected the login: {e!r}")
                return VerificationError(f"Verification failed: {e}", cause=e)

        logger.info(f"Completed authorization for client {self.config.client_id}")
        return Success(token_set=result, original_request=original_request, user=user)

    async def complete_session(
        self,
        params: CallbackParams,
        session_id: str | None,
        original_request: Any = None,
    ) -> CallbackOutcome:
        """Load the session's attempt and complete the callback against it."""
        if params.is_error() or session_id is None:
            stored_attempt = None
        else:
            stored_attempt = await self.store.load(session_id)
        return await self.complete(
            params, stored_attempt, session_id or "", original_request
        )

    def _reject(self, reason: str) -> ValidationError:
        logger.warning(
            f"Rejected authorization callback ({reason}); possible CSRF or replay"
        )
        return ValidationError(reason)

    async def close(self) -> None:
        await self.exchanger.close()


def attempt_retained(outcome: object) -> bool:
    """Whether a failed callback left the session's attempt in the store.

    State mismatches and callbacks without a code do not consume the
    attempt, so the legitimate callback can still complete it.
    """
    return isinstance(outcome, ValidationError) and outcome.reason in RETAINED_REASONS
