"""Helpers shared by the CLI command groups."""

from __future__ import annotations

from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape

from ..configuration.settings import ConfigurationStore
from ..errors import PortalAuthError
from ..errors.user_messages import format_error_for_cli

console = Console()
err_console = Console(stderr=True)


def load_store(config_path: Optional[Path], use_env: bool = False) -> ConfigurationStore:
    store = ConfigurationStore(config_path, use_env=use_env)
    try:
        store.load()
    except PortalAuthError as exc:
        fail(exc)
    return store


def fail(error: PortalAuthError) -> NoReturn:
    err_console.print(escape(format_error_for_cli(error)), style="red", highlight=False)
    raise typer.Exit(code=1)


__all__ = ["console", "err_console", "fail", "load_store"]
