"""Token and credential models shared by the credential lifecycle components."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..configuration.settings import AuthType
from .scopes import ScopeSet


SAFETY_MARGIN = timedelta(minutes=5)


class ManagerState(str, Enum):
    """Lifecycle state of app-token management for one account."""

    UNINITIALIZED = "uninitialized"
    DISABLED = "disabled"
    ENABLED = "enabled"


class CacheKey(NamedTuple):
    """Identifies a cached app token."""

    account_id: int
    app_id: int

    def __str__(self) -> str:
        return f"{self.account_id}:{self.app_id}"


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_expiry(value: Any) -> datetime:
    """Parse an expiry given as epoch milliseconds, ISO string or datetime."""
    if isinstance(value, datetime):
        return _as_utc(value)  # type: ignore[return-value]
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        if value.isdigit():
            return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
        return _as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))  # type: ignore[return-value]
    raise ValueError(f"Unrecognized expiry value: {value!r}")


class TokenRecord(BaseModel):
    """An app-scoped bearer token with its scopes and expiry.

    Records are immutable: a refresh produces a new record that replaces the
    cached one.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    value: str = Field(..., repr=False, description="Opaque token value")
    scopes: ScopeSet = Field(default_factory=ScopeSet, description="Granted scopes")
    expires_at: datetime = Field(..., description="Absolute expiration timestamp")

    @field_validator("scopes", mode="before")
    @classmethod
    def _coerce_scopes(cls, value: Any) -> ScopeSet:
        return ScopeSet.of(value)

    @field_validator("expires_at", mode="before")
    @classmethod
    def _ensure_timezone(cls, value: Any) -> datetime:
        return parse_expiry(value)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def expires_within(self, margin: timedelta, now: datetime) -> bool:
        """True when the token expires before ``now + margin``."""
        return now + margin > self.expires_at

    @classmethod
    def from_api_payload(cls, payload: Dict[str, Any]) -> "TokenRecord":
        """Build a record from an app user-token API response."""
        scopes = payload.get("scopeGroups")
        if scopes is None:
            scopes = payload.get("cachedScopeGroups", [])
        return cls(
            value=payload["userTokenKey"],
            scopes=scopes,
            expires_at=payload["expiresAt"],
        )


class BearerCredential(BaseModel):
    """Account-level credential produced by the auth resolver."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    auth_type: AuthType
    token: str = Field(..., repr=False)
    expires_at: Optional[datetime] = None
    scopes: ScopeSet = Field(default_factory=ScopeSet)

    @field_validator("scopes", mode="before")
    @classmethod
    def _coerce_scopes(cls, value: Any) -> ScopeSet:
        return ScopeSet.of(value)

    @field_validator("expires_at", mode="before")
    @classmethod
    def _ensure_timezone(cls, value: Any) -> Optional[datetime]:
        if value is None:
            return None
        return parse_expiry(value)

    @property
    def as_query_param(self) -> bool:
        """API keys travel as a query parameter rather than a bearer header."""
        return self.auth_type == AuthType.API_KEY

    def apply(self, headers: Dict[str, str], params: Dict[str, Any]) -> None:
        """Attach this credential to outgoing request headers or params."""
        if self.as_query_param:
            params["hapikey"] = self.token
        else:
            headers["Authorization"] = f"Bearer {self.token}"


__all__ = [
    "BearerCredential",
    "CacheKey",
    "ManagerState",
    "SAFETY_MARGIN",
    "TokenRecord",
    "parse_expiry",
]
