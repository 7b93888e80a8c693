"""Token exchange service.

Implements the RFC 6749 token endpoint interactions with PKCE (RFC 7636),
plus refresh and RFC 7009 revocation. Every call returns a typed outcome:
provider rejections and transport failures are kept apart so callers know
which ones may be retried.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError as PydanticValidationError

from oauth2_strategy.models.config import ProviderConfig
from oauth2_strategy.models.errors import ConfigurationError
from oauth2_strategy.models.outcomes import (
    ExchangeOutcome,
    ProviderError,
    TransportError,
)
from oauth2_strategy.models.tokens import (
    RefreshTokenRequest,
    RevocationRequest,
    TokenRequest,
    TokenResponse,
)

logger = logging.getLogger(__name__)

FORM_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/json",
}


class TokenExchanger:
    """Talks to the provider's token and revocation endpoints.

    Handles:
    - Authorization code to access token exchange (RFC 6749 Section 4.1.3)
    - Access token refresh (RFC 6749 Section 6)
    - Token revocation (RFC 7009)

    Uses application/x-www-form-urlencoded bodies and client_secret_post
    client authentication. Each call is bounded by
    ``config.exchange_timeout``.
    """

    def __init__(
        self, config: ProviderConfig, http_client: httpx.AsyncClient | None = None
    ):
        """Initialize the token exchanger.

        Args:
            config: Provider credentials and endpoints
            http_client: Optional shared client. Only a client created here
                is closed by ``close()``.
        """
        self.config = config
        self._owns_client = http_client is None
        if http_client is None:
            http_client = httpx.AsyncClient(timeout=config.exchange_timeout)
        self._http_client = http_client

    async def exchange(self, code: str, code_verifier: str) -> ExchangeOutcome:
        """Exchange an authorization code for tokens.

        The configured redirect_uri is sent exactly as it was used in the
        authorization request.

        Args:
            code: Authorization code from the callback
            code_verifier: PKCE verifier of the attempt that produced the code

        Returns:
            TokenSet on success, ProviderError if the provider rejected the
            grant, TransportError if the endpoint could not be used
        """
        token_request = TokenRequest(
            token_endpoint=self.config.token_endpoint,
            code=code,
            redirect_uri=self.config.redirect_uri,
            client_id=self.config.client_id,
            client_secret=self.config.client_secret,
            code_verifier=code_verifier,
        )

        logger.debug(
            f"Exchanging authorization code at {token_request.token_endpoint} "
            f"for client {token_request.client_id}"
        )
        return await self._request_tokens(
            token_request.token_endpoint, token_request.to_form_data()
        )

    async def refresh(
        self, refresh_token: str, scopes: tuple[str, ...] | None = None
    ) -> ExchangeOutcome:
        """Refresh an access token (RFC 6749 Section 6)."""
        refresh_request = RefreshTokenRequest(
            token_endpoint=self.config.token_endpoint,
            refresh_token=refresh_token,
            client_id=self.config.client_id,
            client_secret=self.config.client_secret,
            scope=" ".join(scopes) if scopes else None,
        )

        logger.debug(f"Refreshing access token at {refresh_request.token_endpoint}")
        return await self._request_tokens(
            refresh_request.token_endpoint, refresh_request.to_form_data()
        )

    async def revoke(
        self, token: str, token_type_hint: str | None = None
    ) -> bool | ProviderError | TransportError:
        """Revoke an access or refresh token (RFC 7009).

        Returns:
            True once the provider confirms, otherwise the failure outcome

        Raises:
            ConfigurationError: If no revocation endpoint is configured
        """
        if not self.config.revocation_endpoint:
            raise ConfigurationError("Provider has no revocation endpoint configured")

        revocation_request = RevocationRequest(
            revocation_endpoint=self.config.revocation_endpoint,
            token=token,
            client_id=self.config.client_id,
            client_secret=self.config.client_secret,
            token_type_hint=token_type_hint,
        )

        try:
            response = await self._http_client.post(
                revocation_request.revocation_endpoint,
                data=revocation_request.to_form_data(),
                headers=FORM_HEADERS,
                timeout=self.config.exchange_timeout,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Token revocation transport failure: {e!r}")
            return TransportError(f"HTTP error during token revocation: {e!r}")

        if response.status_code == 200:
            logger.info("Token revoked")
            return True

        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("error"):
            logger.warning(
                f"Token revocation rejected with {response.status_code}: {body['error']}"
            )
            return ProviderError(
                str(body["error"]),
                _optional_str(body.get("error_description")),
                _optional_str(body.get("error_uri")),
            )
        return TransportError(
            f"Unexpected status {response.status_code} from revocation endpoint"
        )

    async def _request_tokens(
        self, endpoint: str, form_data: dict[str, str]
    ) -> ExchangeOutcome:
        try:
            response = await self._http_client.post(
                endpoint,
                data=form_data,
                headers=FORM_HEADERS,
                timeout=self.config.exchange_timeout,
            )
        except httpx.TimeoutException as e:
            logger.warning(f"Token endpoint timed out: {e!r}")
            return TransportError(f"Timed out talking to token endpoint: {e!r}")
        except httpx.HTTPError as e:
            logger.warning(f"Token endpoint transport failure: {e!r}")
            return TransportError(f"HTTP error during token request: {e!r}")

        return self._parse_token_response(response)

    def _parse_token_response(self, response: httpx.Response) -> ExchangeOutcome:
        """Parse token endpoint response into a typed outcome.

        Handles both successful responses (2xx) and error responses (4xx/5xx)
        according to RFC 6749 Section 5.
        """
        try:
            response_data = response.json()
        except ValueError as e:
            logger.warning(
                f"Token endpoint returned non-JSON body with {response.status_code}"
            )
            return TransportError(f"Invalid token response format: {e}")

        if not isinstance(response_data, dict):
            return TransportError("Token response body is not a JSON object")

        is_ok = 200 <= response.status_code < 300
        error = response_data.get("error")
        if error or not is_ok:
            # Error response (RFC 6749 Section 5.2), classified before the
            # success fields are validated
            error_code = str(error) if error else "invalid_response"
            logger.warning(
                f"Token request failed with {response.status_code}: {error_code}"
            )
            return ProviderError(
                error_code,
                _optional_str(response_data.get("error_description")),
                _optional_str(response_data.get("error_uri")),
            )

        try:
            token_response = TokenResponse(**response_data)
        except PydanticValidationError as e:
            return TransportError(f"Invalid token response format: {e}")

        if not token_response.is_success():
            logger.warning("Token response missing required access_token")
            return ProviderError(
                "invalid_token_response",
                "Token response missing required access_token",
            )

        logger.info("Token request successful")
        return token_response.to_token_set(self.config.scopes)

    async def close(self) -> None:
        """Close the HTTP client if this exchanger created it."""
        if self._owns_client:
            await self._http_client.aclose()

    async def __aenter__(self) -> TokenExchanger:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


def _optional_str(value: object) -> str | None:
    return None if value is None else str(value)
