"""Shared fixtures for portalauth tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List
from unittest.mock import AsyncMock

import pytest
import yaml

from portalauth.auth.models import TokenRecord
from portalauth.auth.scopes import TOKEN_MANAGEMENT_READ, TOKEN_MANAGEMENT_WRITE, ScopeSet


START = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Stand-in for ``datetime.now`` that only moves when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def __call__(self, tz: Any = None) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Tokens and endpoints
# ---------------------------------------------------------------------------


@pytest.fixture
def make_record(clock: FakeClock) -> Callable[..., TokenRecord]:
    """Build a TokenRecord expiring ``expires_in`` seconds after the clock."""

    def _make(value: str = "token-1", scopes: Iterable[str] = ("read",), expires_in: float = 3600) -> TokenRecord:
        return TokenRecord(
            value=value,
            scopes=ScopeSet(scopes),
            expires_at=clock.current + timedelta(seconds=expires_in),
        )

    return _make


@pytest.fixture
def endpoints() -> AsyncMock:
    """AuthEndpoints double whose account holds the token management scopes."""
    mock = AsyncMock()
    mock.check_scopes.return_value = ScopeSet([TOKEN_MANAGEMENT_READ, TOKEN_MANAGEMENT_WRITE, "content"])
    mock.fetch_existing_token.return_value = None
    return mock


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture
def wait_for() -> Callable[..., Any]:
    """Poll a predicate on the running loop until it holds."""
    return _wait_until


# ---------------------------------------------------------------------------
# Config files
# ---------------------------------------------------------------------------


SAMPLE_ACCOUNTS: List[Dict[str, Any]] = [
    {
        "account_id": 123,
        "name": "prod-portal",
        "auth_type": "personalaccesskey",
        "env": "prod",
        "personal_access_key": "pak-secret",
    },
    {
        "account_id": 456,
        "name": "legacy",
        "auth_type": "apikey",
        "env": "qa",
        "api_key": "api-secret",
    },
    {
        "account_id": 789,
        "name": "oauth-app",
        "auth_type": "oauth2",
        "env": "prod",
        "auth": {
            "client_id": "client-1",
            "client_secret": "client-secret",
            "scopes": ["content", TOKEN_MANAGEMENT_READ],
            "token_info": {"refresh_token": "refresh-1"},
        },
    },
]


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "portalauth" / "config.yml"
    path.parent.mkdir(parents=True)
    path.write_text(
        yaml.safe_dump(
            {"default_account": "prod-portal", "accounts": SAMPLE_ACCOUNTS},
            default_flow_style=False,
            sort_keys=False,
        )
    )
    return path


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "PORTALAUTH_CONFIG_PATH",
        "PORTALAUTH_ACCOUNT_ID",
        "PORTALAUTH_ENVIRONMENT",
        "PORTALAUTH_PERSONAL_ACCESS_KEY",
        "PORTALAUTH_CLIENT_ID",
        "PORTALAUTH_CLIENT_SECRET",
        "PORTALAUTH_REFRESH_TOKEN",
        "PORTALAUTH_API_KEY",
        "PORTALAUTH_REFRESH_BUFFER_SECONDS",
        "PORTALAUTH_HTTP_TIMEOUT",
        "PORTALAUTH_AUDIT_DIR",
        "GITHUB_TOKEN",
    ):
        monkeypatch.delenv(name, raising=False)
