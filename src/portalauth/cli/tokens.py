"""CLI commands for resolving account credentials and app tokens."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import typer
from rich.table import Table

from ..auth.credential_manager import CredentialManager
from ..auth.endpoints import HttpAuthEndpoints
from ..auth.exchange import TokenExchangeClient
from ..auth.models import ManagerState
from ..auth.resolver import AccountAuthResolver
from ..configuration.settings import ConfigurationStore, ManagerSettings
from ..errors import MissingConfigError, PortalAuthError
from ..http.client import PortalHttpClient
from .common import console, fail, load_store


token_app = typer.Typer(help="Resolve account credentials and app tokens")


@dataclass
class Services:
    """The credential stack wired against one configuration store."""

    store: ConfigurationStore
    resolver: AccountAuthResolver
    http: PortalHttpClient
    endpoints: HttpAuthEndpoints
    manager: CredentialManager


def build_services(
    store: ConfigurationStore,
    settings: Optional[ManagerSettings] = None,
) -> Services:
    settings = settings or ManagerSettings.from_env()
    timeout = settings.http_timeout_seconds
    if store.config is not None and store.config.http_timeout:
        timeout = store.config.http_timeout / 1000
    resolver = AccountAuthResolver(store, exchange=TokenExchangeClient(timeout=timeout))
    http = PortalHttpClient(store, resolver, timeout=timeout)
    endpoints = HttpAuthEndpoints(http, resolver)
    manager = CredentialManager.from_settings(endpoints, settings)
    return Services(store=store, resolver=resolver, http=http, endpoints=endpoints, manager=manager)


def _resolve_account_id(store: ConfigurationStore, account: Optional[str]) -> int:
    account_id = store.get_account_id(account)
    if account_id is None:
        fail(MissingConfigError(f"No account found for '{account or 'default'}'"))
    return account_id


@token_app.command("account")
def account_token(
    account: Optional[str] = typer.Option(None, "--account", "-a", help="Account name or id"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to config file"),
    use_env: bool = typer.Option(False, "--use-env", help="Read the account from PORTALAUTH_* variables"),
    show: bool = typer.Option(False, "--show", help="Print the token value"),
) -> None:
    """Resolve the account's credential and show its type, expiry and scopes."""
    store = load_store(config_path, use_env)
    account_id = _resolve_account_id(store, account)
    services = build_services(store)

    try:
        credential = asyncio.run(services.resolver.resolve_account_credential(account_id))
    except PortalAuthError as exc:
        fail(exc)

    table = Table(title=f"Credential for account {account_id}")
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("Auth type", credential.auth_type.value)
    table.add_row(
        "Expires at", credential.expires_at.isoformat() if credential.expires_at else "never"
    )
    table.add_row("Scopes", ", ".join(credential.scopes) or "-")
    if show:
        table.add_row("Token", credential.token)
    console.print(table)


@token_app.command("app")
def app_token(
    app_id: int = typer.Argument(..., help="App id to issue a token for"),
    scopes: List[str] = typer.Option([], "--scope", "-s", help="Required scope (repeatable)"),
    account: Optional[str] = typer.Option(None, "--account", "-a", help="Account name or id"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to config file"),
    use_env: bool = typer.Option(False, "--use-env", help="Read the account from PORTALAUTH_* variables"),
) -> None:
    """Obtain an app-scoped token covering the requested scopes."""
    store = load_store(config_path, use_env)
    account_id = _resolve_account_id(store, account)
    manager = build_services(store).manager

    async def run() -> Optional[str]:
        try:
            state = await manager.initialize(account_id)
            if state != ManagerState.ENABLED:
                return None
            return await manager.get_token(account_id, app_id, scopes)
        finally:
            manager.shutdown()

    try:
        token = asyncio.run(run())
    except PortalAuthError as exc:
        fail(exc)

    if token is None:
        console.print(
            f"[yellow]App tokens are not available for account {account_id}. "
            "Its credential lacks the temporary token scopes.[/yellow]"
        )
        raise typer.Exit(code=1)
    typer.echo(token)


__all__ = ["Services", "build_services", "token_app"]
