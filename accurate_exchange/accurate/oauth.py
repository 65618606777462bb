"""
OAuth 2.0 authorization-code flow against the Accurate account server.

Only the exchange itself lives here; persisting the resulting tokens is the
credential service's job.
"""

import base64
from typing import Dict, Optional
from urllib.parse import urlencode

from pydantic import ValidationError as PydanticValidationError

from ..config import AccurateConfig, get_config
from ..constants import AccurateEndpoint
from ..context import operation
from ..exceptions import (
    BaseError,
    ConfigurationError,
    OAuthError,
    ProviderError,
    RateLimitExceededError,
    RequestError,
)
from ..schemas import TokenGrant
from .dispatcher import ApiRequest, Dispatcher


def build_authorize_url(
    client_id: str,
    redirect_uri: str,
    state: Optional[str] = None,
    account_url: str = "https://account.accurate.id",
    scope: Optional[str] = None,
) -> str:
    """
    Build the consent URL the user is redirected to.

    Deterministic for identical inputs. ``state`` is passed through unchanged
    and omitted when None.
    """
    params = {
        "client_id": client_id,
        "response_type": "code",
        "redirect_uri": redirect_uri,
        "scope": scope if scope is not None else AccurateConfig.model_fields["scope"].default,
    }
    if state is not None:
        params["state"] = state
    return f"{account_url.rstrip('/')}{AccurateEndpoint.OAUTH_AUTHORIZE.value}?{urlencode(params)}"


def _basic_auth(client_id: str, client_secret: str) -> Dict[str, str]:
    token = base64.b64encode(f"{client_id}:{client_secret}".encode("utf-8")).decode("ascii")
    return {"Authorization": f"Basic {token}"}


class OAuthClient:
    """Exchanges authorization codes and refresh tokens for API tokens."""

    def __init__(self, dispatcher: Dispatcher, config: Optional[AccurateConfig] = None):
        self.dispatcher = dispatcher
        self.config = config or get_config().accurate

    def _require(self, *names: str) -> None:
        missing = [name for name in names if not getattr(self.config, name)]
        if missing:
            raise ConfigurationError(
                f"Missing Accurate OAuth configuration: {', '.join(missing)}", missing=missing
            )

    def authorize_url(self, state: Optional[str] = None) -> str:
        self._require("client_id", "redirect_uri")
        return build_authorize_url(
            self.config.client_id,
            self.config.redirect_uri,
            state=state,
            account_url=self.config.account_url,
            scope=self.config.scope,
        )

    def _token_request(self, form: Dict[str, str], client_id: str, client_secret: str) -> TokenGrant:
        request = ApiRequest(
            method="POST",
            path=AccurateEndpoint.OAUTH_TOKEN.value,
            data=form,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        try:
            response = self.dispatcher.dispatch_account(
                f"oauth:{client_id}", request, _basic_auth(client_id, client_secret)
            )
        except RequestError as e:
            raise OAuthError(
                f"Accurate rejected the token request ({e.status})",
                body=e.body,
                status=e.status,
                cause=e,
            )
        except (ProviderError, RateLimitExceededError) as e:
            raise OAuthError(
                f"Accurate token endpoint unavailable: {e.message}",
                body=getattr(e, "body", None),
                status=getattr(e, "status", None),
                cause=e,
            )

        try:
            data = response.json()
        except BaseError as e:
            raise OAuthError("Token response is not JSON", body=response.text[:2000], cause=e)

        try:
            return TokenGrant.model_validate(data)
        except PydanticValidationError as e:
            raise OAuthError(
                "Token response did not contain an access token",
                body=response.text[:2000],
                status=response.status,
                cause=e,
            )

    @operation(name="oauth.exchange_code_for_token")
    def exchange_code_for_token(
        self,
        code: str,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
    ) -> TokenGrant:
        """
        Exchange an authorization code for an API token.

        Raises:
            OAuthError: On a non-2xx response or a response without a token
            ConfigurationError: If client settings are missing
        """
        client_id = client_id or self.config.client_id
        client_secret = client_secret or self.config.client_secret
        redirect_uri = redirect_uri or self.config.redirect_uri
        if not (client_id and client_secret and redirect_uri):
            self._require("client_id", "client_secret", "redirect_uri")

        return self._token_request(
            {"grant_type": "authorization_code", "code": code, "redirect_uri": redirect_uri},
            client_id,
            client_secret,
        )

    @operation(name="oauth.refresh_access_token")
    def refresh_access_token(
        self,
        refresh_token: str,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
    ) -> TokenGrant:
        """Trade a refresh token for a new API token (and possibly a new refresh token)."""
        client_id = client_id or self.config.client_id
        client_secret = client_secret or self.config.client_secret
        if not (client_id and client_secret):
            self._require("client_id", "client_secret")

        grant = self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            client_id,
            client_secret,
        )
        if grant.refresh_token is None:
            grant.refresh_token = refresh_token
        return grant
