"""CLI commands for managing configured accounts."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from ..errors import PortalAuthError
from .common import console, fail, load_store


accounts_app = typer.Typer(help="Manage configured accounts")

CONFIG_OPTION = typer.Option(None, "--config", help="Path to config file")


@accounts_app.command("list")
def list_accounts(
    config_path: Optional[Path] = CONFIG_OPTION,
    use_env: bool = typer.Option(False, "--use-env", help="Read the account from PORTALAUTH_* variables"),
) -> None:
    """List configured accounts."""
    store = load_store(config_path, use_env)
    accounts = store.config.accounts if store.config else []
    if not accounts:
        console.print("[yellow]No accounts configured[/yellow]")
        return

    default = store.get_account()
    table = Table(title=f"Accounts ({store.config_path if not store.use_env_config else 'environment'})")
    table.add_column("Name")
    table.add_column("Account ID", justify="right")
    table.add_column("Auth Type")
    table.add_column("Env")
    table.add_column("Default", justify="center")
    for account in accounts:
        table.add_row(
            account.name or "-",
            str(account.account_id),
            account.auth_type.value if account.auth_type else "-",
            account.env.value,
            "*" if default is not None and default.account_id == account.account_id else "",
        )
    console.print(table)


@accounts_app.command("use")
def use_account(
    account: str = typer.Argument(..., help="Account name or id"),
    config_path: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Set the default account."""
    store = load_store(config_path)
    if not store.is_account_in_config(account):
        console.print(f"[red]No account named '{account}' in {store.config_path}[/red]")
        raise typer.Exit(code=1)
    _run(lambda: store.update_default_account(account))
    console.print(f"Default account set to [bold]{account}[/bold]")


@accounts_app.command("rename")
def rename_account(
    current_name: str = typer.Argument(..., help="Current account name"),
    new_name: str = typer.Argument(..., help="New account name"),
    config_path: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Rename an account."""
    store = load_store(config_path)
    _run(lambda: store.rename_account(current_name, new_name))
    console.print(f"Renamed [bold]{current_name}[/bold] to [bold]{new_name}[/bold]")


@accounts_app.command("remove")
def remove_account(
    account: str = typer.Argument(..., help="Account name or id"),
    config_path: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Remove an account from the config."""
    store = load_store(config_path)
    was_default = _run(lambda: store.remove_account(account))
    console.print(f"Removed [bold]{account}[/bold]")
    if was_default:
        console.print(
            "[yellow]That was the default account. Choose a new one with "
            "`portalauth accounts use <name>`[/yellow]"
        )


def _run(action):
    try:
        return action()
    except PortalAuthError as exc:
        fail(exc)


__all__ = ["accounts_app"]
