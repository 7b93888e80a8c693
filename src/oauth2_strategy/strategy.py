"""Starlette authentication strategy for the OAuth2 authorization-code flow.

Wires the flow controller to real HTTP requests: a request without a
provider response starts a login and raises a redirect, a request carrying
the provider's callback completes it and returns the verified user.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any, Union

from starlette.requests import Request
from starlette.responses import PlainTextResponse, RedirectResponse, Response

from oauth2_strategy.models.config import ProviderConfig, google_provider
from oauth2_strategy.models.errors import AuthenticationFailed, RedirectIssued
from oauth2_strategy.models.flow import CallbackParams
from oauth2_strategy.models.outcomes import Success
from oauth2_strategy.services.cookies import SessionCookie
from oauth2_strategy.services.flow import (
    AuthorizationFlow,
    VerifyFunction,
    attempt_retained,
)
from oauth2_strategy.services.store import AttemptStore, InMemoryAttemptStore
from oauth2_strategy.services.tokens import TokenExchanger

logger = logging.getLogger(__name__)

SuccessHandler = Callable[[Request, Any], Union[Response, Awaitable[Response]]]


def redirect(
    url: str, status_code: int = 302, headers: Mapping[str, str] | None = None
) -> RedirectResponse:
    """Build a redirect response, 302 unless told otherwise."""
    return RedirectResponse(url, status_code=status_code, headers=dict(headers or {}))


class OAuth2Strategy:
    """Authorization-code + PKCE login against one OAuth2 provider.

    ``authenticate`` is called on both legs of the login. On the first leg
    it raises RedirectIssued; the caller returns ``exc.response``. On the
    callback leg it returns whatever ``verify`` returned, or raises
    AuthenticationFailed.
    """

    name = "oauth2"

    def __init__(
        self,
        config: ProviderConfig,
        verify: VerifyFunction,
        cookie: SessionCookie,
        store: AttemptStore | None = None,
        exchanger: TokenExchanger | None = None,
        redirect_status: int = 302,
    ):
        self.config = config
        self.cookie = cookie
        self.redirect_status = redirect_status
        self.flow = AuthorizationFlow(
            config,
            store or InMemoryAttemptStore(max_age=config.attempt_lifetime),
            exchanger=exchanger,
            verify=verify,
        )

    def authorization_params(self, request: Request) -> dict[str, str]:
        """Extra authorization URL parameters for this request.

        Override to pass provider-specific options. State, PKCE and client
        parameters cannot be replaced from here.
        """
        return {}

    async def authenticate(self, request: Request) -> Any:
        """Run whichever leg of the login this request belongs to.

        Raises:
            RedirectIssued: The browser must go to the provider
            AuthenticationFailed: The callback was rejected
        """
        params = CallbackParams.from_mapping(request.query_params)

        if not params.is_callback():
            session_id = self.cookie.new_session_id()
            outcome = await self.flow.begin_session(
                session_id, self.authorization_params(request)
            )
            response = redirect(outcome.url, self.redirect_status)
            self.cookie.attach(response, session_id)
            logger.debug(f"Redirecting to {self.name} for authorization")
            raise RedirectIssued(response)

        outcome = await self.flow.complete_session(
            params, self.cookie.read(request), original_request=request
        )
        if isinstance(outcome, Success):
            return outcome.user

        logger.info(f"{self.name} sign-in failed: {type(outcome).__name__}")
        raise AuthenticationFailed(outcome)

    def endpoint(
        self, on_success: SuccessHandler, failure_url: str | None = None
    ) -> Callable[[Request], Awaitable[Response]]:
        """Build a Starlette endpoint serving both legs of the login.

        Args:
            on_success: Called with (request, user); returns the response
            failure_url: Where to send the browser on failure. Without one a
                generic 401 page is returned. The session cookie is kept
                when the failure left the attempt pending.
        """

        async def handle(request: Request) -> Response:
            try:
                user = await self.authenticate(request)
            except RedirectIssued as e:
                return e.response
            except AuthenticationFailed as e:
                if failure_url is not None:
                    response: Response = redirect(failure_url)
                else:
                    response = PlainTextResponse(str(e), status_code=401)
                # A forged callback must not cut off the pending login
                if not attempt_retained(e.outcome):
                    self.cookie.clear(response)
                return response

            response = on_success(request, user)
            if inspect.isawaitable(response):
                response = await response
            self.cookie.clear(response)
            return response

        return handle

    async def close(self) -> None:
        await self.flow.close()


class GoogleOAuth2Strategy(OAuth2Strategy):
    """OAuth2Strategy preconfigured for Google sign-in.

    Register with the name ``google``.
    """

    name = "google"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        verify: VerifyFunction,
        cookie: SessionCookie,
        scopes: Iterable[str] | None = None,
        access_type: str | None = None,
        prompt: str | None = None,
        include_granted_scopes: bool = False,
        **kwargs: Any,
    ):
        super().__init__(
            google_provider(client_id, client_secret, redirect_uri, scopes),
            verify,
            cookie,
            **kwargs,
        )
        self.access_type = access_type
        self.prompt = prompt
        self.include_granted_scopes = include_granted_scopes

    def authorization_params(self, request: Request) -> dict[str, str]:
        params = {}
        if self.access_type:
            params["access_type"] = self.access_type
        if self.prompt:
            params["prompt"] = self.prompt
        if self.include_granted_scopes:
            params["include_granted_scopes"] = "true"
        login_hint = request.query_params.get("login_hint")
        if login_hint:
            params["login_hint"] = login_hint
        return params
