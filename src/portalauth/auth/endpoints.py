"""Remote operations behind app-token management."""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

from ..errors import TransportError
from .models import TokenRecord
from .resolver import AccountAuthResolver
from .scopes import ScopeSet

logger = logging.getLogger(__name__)


USER_TOKEN_PATH = "localdevauth/v1/app/{app_id}/user-token"
CHECK_SCOPES_PATH = "localdevauth/v1/auth/check-scopes"


class AuthEndpoints(Protocol):
    """Async operations the credential manager needs from the auth API.

    ``fetch_existing_token`` returns None when the app has no token yet;
    every other failure raises.
    """

    async def fetch_existing_token(self, account_id: int, app_id: int) -> Optional[TokenRecord]:
        ...

    async def create_token(self, account_id: int, app_id: int, scopes: ScopeSet) -> TokenRecord:
        ...

    async def update_token(
        self, account_id: int, app_id: int, current_value: str, scopes: ScopeSet
    ) -> TokenRecord:
        ...

    async def check_scopes(self, account_id: int) -> ScopeSet:
        ...


class HttpAuthEndpoints:
    """``AuthEndpoints`` backed by the account HTTP client.

    Args:
        http: Client used for app user-token calls (anything exposing the
            ``PortalHttpClient`` request methods)
        resolver: Resolver whose credential scopes answer ``check_scopes``
    """

    def __init__(self, http: Any, resolver: AccountAuthResolver) -> None:
        self.http = http
        self.resolver = resolver

    async def fetch_existing_token(self, account_id: int, app_id: int) -> Optional[TokenRecord]:
        try:
            payload = await self.http.get(account_id, USER_TOKEN_PATH.format(app_id=app_id))
        except TransportError as exc:
            if exc.status_code == 404:
                logger.debug(f"No existing token for app {app_id} on account {account_id}")
                return None
            raise
        return TokenRecord.from_api_payload(payload)

    async def create_token(self, account_id: int, app_id: int, scopes: ScopeSet) -> TokenRecord:
        payload = await self.http.post(
            account_id,
            USER_TOKEN_PATH.format(app_id=app_id),
            json={"scopeGroups": ScopeSet.of(scopes).to_list()},
        )
        return TokenRecord.from_api_payload(payload)

    async def update_token(
        self, account_id: int, app_id: int, current_value: str, scopes: ScopeSet
    ) -> TokenRecord:
        payload = await self.http.put(
            account_id,
            f"{USER_TOKEN_PATH.format(app_id=app_id)}/{current_value}",
            json={"scopeGroups": ScopeSet.of(scopes).to_list()},
        )
        return TokenRecord.from_api_payload(payload)

    async def check_scopes(self, account_id: int) -> ScopeSet:
        """Scopes granted to the account's resolved credential.

        API-key credentials carry no scope information and yield an empty set.
        """
        credential = await self.resolver.resolve_account_credential(account_id)
        return credential.scopes

    async def fetch_scope_data(self, account_id: int, scope_group: str) -> Any:
        """Ask the API whether the account's portal grants ``scope_group``."""
        return await self.http.get(account_id, CHECK_SCOPES_PATH, query={"scopeGroup": scope_group})


__all__ = ["AuthEndpoints", "HttpAuthEndpoints"]
