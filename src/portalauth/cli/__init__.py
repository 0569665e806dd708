"""Command line entry points for portalauth."""

import logging

import typer
from typer import Typer

from .accounts import accounts_app
from .tokens import token_app


cli = Typer(help="Manage portal accounts and app tokens")
cli.add_typer(accounts_app, name="accounts")
cli.add_typer(token_app, name="token")


@cli.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Manage portal accounts and app tokens."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


__all__ = ["cli", "accounts_app", "token_app"]
