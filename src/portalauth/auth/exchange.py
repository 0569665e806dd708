"""Token exchange and sandbox lookup calls made with raw account secrets.

These calls run before any account credential exists, so they talk to the
API directly instead of going through the authenticated ``PortalHttpClient``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..configuration.settings import Environment
from ..errors import TransportError

logger = logging.getLogger(__name__)


API_ORIGINS = {
    Environment.PROD: "https://api.hubapi.com",
    Environment.QA: "https://api.hubapiqa.com",
}

PERSONAL_ACCESS_KEY_EXCHANGE_PATH = "localdevauth/v1/auth/refresh"
OAUTH_TOKEN_PATH = "oauth/v1/token"
SANDBOX_HUBS_PATH = "sandbox-hubs/v1/self"


def api_origin(env: Optional[Environment]) -> str:
    return API_ORIGINS[Environment(env or Environment.PROD)]


class AccessTokenResponse(BaseModel):
    """Result of exchanging a personal access key."""

    model_config = ConfigDict(populate_by_name=True)

    hub_id: int = Field(..., alias="hubId")
    oauth_access_token: str = Field(..., alias="oauthAccessToken", repr=False)
    expires_at_millis: int = Field(..., alias="expiresAtMillis")
    scope_groups: List[str] = Field(default_factory=list, alias="scopeGroups")
    encoded_oauth_refresh_token: Optional[str] = Field(
        default=None, alias="encodedOauthRefreshToken", repr=False
    )


class OAuthTokenResponse(BaseModel):
    """Result of an OAuth2 refresh-token grant."""

    access_token: str = Field(..., repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)
    expires_in: int = Field(..., description="Lifetime of the access token in seconds")


ResponseT = TypeVar("ResponseT", bound=BaseModel)


@dataclass
class TokenExchangeClient:
    """Performs the personal-access-key and OAuth2 refresh exchanges.

    Malformed or non-JSON responses surface as ``TransportError``.

    Example:
        client = TokenExchangeClient()
        response = await client.fetch_access_token(pak, Environment.PROD, 123)
    """

    timeout: float = 15.0
    transport: Optional[httpx.AsyncBaseTransport] = None

    async def fetch_access_token(
        self,
        personal_access_key: str,
        env: Environment = Environment.PROD,
        portal_id: Optional[int] = None,
    ) -> AccessTokenResponse:
        """Exchange a personal access key for a short-lived access token."""
        params = {"portalId": portal_id} if portal_id else {}
        data = await self._request(
            "POST",
            env,
            PERSONAL_ACCESS_KEY_EXCHANGE_PATH,
            params=params,
            json={"encodedOAuthRefreshToken": personal_access_key},
        )
        return _parse_response(AccessTokenResponse, data, PERSONAL_ACCESS_KEY_EXCHANGE_PATH)

    async def refresh_oauth_token(
        self,
        *,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        env: Environment = Environment.PROD,
    ) -> OAuthTokenResponse:
        """Exchange an OAuth2 refresh token for a new access token."""
        data = await self._request(
            "POST",
            env,
            OAUTH_TOKEN_PATH,
            form={
                "grant_type": "refresh_token",
                "client_id": client_id,
                "client_secret": client_secret,
                "refresh_token": refresh_token,
            },
        )
        return _parse_response(OAuthTokenResponse, data, OAUTH_TOKEN_PATH)

    async def fetch_sandbox_hub_data(
        self,
        access_token: str,
        portal_id: int,
        env: Environment = Environment.PROD,
    ) -> Dict[str, Any]:
        """Fetch sandbox metadata (parent account, sandbox type) for a portal."""
        return await self._request(
            "GET",
            env,
            SANDBOX_HUBS_PATH,
            params={"portalId": portal_id},
            headers={"Authorization": f"Bearer {access_token}"},
        )

    async def _request(
        self,
        method: str,
        env: Environment,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        form: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        url = f"{api_origin(env)}/{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(
                    method, url, params=params, json=json, data=form, headers=headers
                )
        except httpx.HTTPError as exc:
            logger.error(f"Token exchange request to {path} failed: {exc}")
            raise TransportError(
                f"Token exchange request failed: {exc}", method=method, url=url
            ) from exc

        if response.is_error:
            raise TransportError(
                f"Token exchange failed with status {response.status_code}",
                status_code=response.status_code,
                method=method,
                url=url,
                response_body=response.text,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise TransportError(
                "Token exchange returned a non-JSON body",
                status_code=response.status_code,
                method=method,
                url=url,
            ) from exc
        if not isinstance(data, dict):
            raise TransportError(
                f"Token exchange returned an unexpected body from {path}",
                status_code=response.status_code,
                method=method,
                url=url,
            )
        return data


def _parse_response(model: Type[ResponseT], data: Dict[str, Any], path: str) -> ResponseT:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        missing = ", ".join(".".join(str(loc) for loc in err["loc"]) for err in exc.errors())
        raise TransportError(f"Malformed response from {path}: {missing}") from exc


__all__ = [
    "API_ORIGINS",
    "AccessTokenResponse",
    "OAuthTokenResponse",
    "TokenExchangeClient",
    "api_origin",
]
