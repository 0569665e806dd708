"""Resolve an account's configured authentication into a bearer credential."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Protocol

from ..configuration.settings import AccountConfig, AuthType, Environment
from ..errors import AuthResolutionError
from .exchange import TokenExchangeClient
from .models import BearerCredential
from .scopes import ScopeSet

logger = logging.getLogger(__name__)


class AccountConfigStore(Protocol):
    """Read access to stored account configuration."""

    def get_account(self, name_or_id: Any = None) -> Optional[AccountConfig]:
        ...

    def get_account_auth_type(self, account_id: int) -> Optional[AuthType]:
        ...

    def get_stored_secret(self, account_id: int) -> Optional[str]:
        ...

    def get_env(self, name_or_id: Any = None) -> Environment:
        ...


@dataclass
class AccountAuthResolver:
    """Picks the authentication strategy configured for an account.

    API keys are used as stored. Personal access keys and OAuth2 refresh
    tokens are exchanged for short-lived bearer tokens on every call; the
    results are not cached here.
    """

    config_store: AccountConfigStore
    exchange: TokenExchangeClient = field(default_factory=TokenExchangeClient)
    _now: Any = datetime.now

    async def resolve_account_credential(self, account_id: int) -> BearerCredential:
        auth_type = self.config_store.get_account_auth_type(account_id)
        if auth_type is None:
            if self.config_store.get_account(account_id) is None:
                raise AuthResolutionError(
                    f"Account {account_id} is not configured", account_id=account_id
                )
            raise AuthResolutionError(
                f"Account {account_id} has no auth type configured", account_id=account_id
            )

        secret = self.config_store.get_stored_secret(account_id)
        if not secret:
            raise AuthResolutionError(
                f"Account {account_id} is missing its stored {auth_type.value} secret",
                account_id=account_id,
                auth_type=auth_type.value,
            )

        if auth_type == AuthType.API_KEY:
            logger.debug(f"Using API key for account {account_id}")
            return BearerCredential(auth_type=auth_type, token=secret)
        if auth_type == AuthType.PERSONAL_ACCESS_KEY:
            return await self._from_personal_access_key(account_id, secret)
        if auth_type == AuthType.OAUTH2:
            return await self._from_oauth2(account_id, secret)

        raise AuthResolutionError(
            f"Unsupported auth type {auth_type!r} for account {account_id}",
            account_id=account_id,
            auth_type=str(auth_type),
        )

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def _from_personal_access_key(self, account_id: int, key: str) -> BearerCredential:
        env = self.config_store.get_env(account_id)
        logger.debug(f"Exchanging personal access key for account {account_id} ({env.value})")
        response = await self.exchange.fetch_access_token(key, env, account_id)
        return BearerCredential(
            auth_type=AuthType.PERSONAL_ACCESS_KEY,
            token=response.oauth_access_token,
            expires_at=response.expires_at_millis,
            scopes=response.scope_groups,
        )

    async def _from_oauth2(self, account_id: int, refresh_token: str) -> BearerCredential:
        account = self.config_store.get_account(account_id)
        oauth = account.auth if account is not None else None
        client_secret = oauth.client_secret.get_secret_value() if oauth and oauth.client_secret else None
        if oauth is None or not oauth.client_id or not client_secret:
            raise AuthResolutionError(
                f"Account {account_id} is missing its OAuth2 client id or secret",
                account_id=account_id,
                auth_type=AuthType.OAUTH2.value,
            )

        logger.debug(f"Refreshing OAuth2 access token for account {account_id}")
        response = await self.exchange.refresh_oauth_token(
            client_id=oauth.client_id,
            client_secret=client_secret,
            refresh_token=refresh_token,
            env=self.config_store.get_env(account_id),
        )
        return BearerCredential(
            auth_type=AuthType.OAUTH2,
            token=response.access_token,
            expires_at=self._utcnow() + timedelta(seconds=response.expires_in),
            scopes=ScopeSet(oauth.scopes),
        )

    def _utcnow(self) -> datetime:
        now = self._now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now


__all__ = ["AccountAuthResolver", "AccountConfigStore"]
