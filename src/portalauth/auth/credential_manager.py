"""App-scoped token lifecycle for configured accounts.

The ``CredentialManager`` decides per account whether app-token management is
available, serves tokens from an in-memory cache when they still cover the
requested scopes, obtains or refreshes them through ``AuthEndpoints``
otherwise, and keeps them fresh in the background until shutdown.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Optional

from ..configuration.settings import ManagerSettings
from ..errors import AppTokenError, PortalAuthError, ScopeInsufficientError, is_recoverable
from .audit import AuditLogger
from .endpoints import AuthEndpoints
from .models import CacheKey, ManagerState, TokenRecord
from .refresh_scheduler import RefreshScheduler
from .scopes import TOKEN_MANAGEMENT_SCOPES, ScopeSet
from .token_cache import TokenCache

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Per-account session state
# ---------------------------------------------------------------------------


@dataclass
class AccountSession:
    """State for one account between ``initialize`` and ``shutdown``."""

    account_id: int
    state: ManagerState = ManagerState.UNINITIALIZED
    closed: bool = False
    requested_scopes: Dict[int, ScopeSet] = field(default_factory=dict)

    def remember_request(self, app_id: int, scopes: ScopeSet) -> ScopeSet:
        """Union ``scopes`` into the app's request history and return it."""
        requested = self.requested_scopes.get(app_id, ScopeSet()) | scopes
        self.requested_scopes[app_id] = requested
        return requested


# ---------------------------------------------------------------------------
# Credential manager
# ---------------------------------------------------------------------------


@dataclass
class CredentialManager:
    """Issues and refreshes app-scoped tokens.

    Example:
        manager = CredentialManager(endpoints=HttpAuthEndpoints(http, resolver))
        await manager.initialize(account_id)
        token = await manager.get_token(account_id, app_id, ["crm.objects.read"])
        ...
        manager.shutdown()

    All cache and timer mutations happen synchronously between awaits on
    the owning event loop. Two concurrent misses for the same app may both
    reach the endpoints; whichever finishes last stays cached.
    """

    endpoints: AuthEndpoints
    cache: TokenCache = field(default_factory=TokenCache)
    scheduler: Optional[RefreshScheduler] = None
    audit_logger: Optional[AuditLogger] = None
    refresh_buffer_seconds: int = 300  # 5 minutes
    _now: Any = datetime.now
    _sessions: Dict[int, AccountSession] = field(default_factory=dict, init=False)

    def __post_init__(self) -> None:
        if self.scheduler is None:
            self.scheduler = RefreshScheduler(safety_margin=self.safety_margin, _now=self._now)

    @classmethod
    def from_settings(
        cls,
        endpoints: AuthEndpoints,
        settings: Optional[ManagerSettings] = None,
    ) -> "CredentialManager":
        settings = settings or ManagerSettings.from_env()
        audit_logger = AuditLogger(settings.audit_dir) if settings.audit_dir else None
        return cls(
            endpoints=endpoints,
            audit_logger=audit_logger,
            refresh_buffer_seconds=settings.refresh_buffer_seconds,
        )

    @property
    def safety_margin(self) -> timedelta:
        return timedelta(seconds=self.refresh_buffer_seconds)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def initialize(self, account_id: int) -> ManagerState:
        """Enable app-token management if the account holds the token scopes.

        Failures while checking scopes leave the account disabled; they are
        logged, never raised.
        """
        session = self._sessions.get(account_id)
        if session is None or session.closed:
            session = AccountSession(account_id=account_id)
            self._sessions[account_id] = session
        elif session.state != ManagerState.UNINITIALIZED:
            return session.state

        try:
            scopes = await self.endpoints.check_scopes(account_id)
        except PortalAuthError as exc:
            logger.warning(
                f"App token management disabled for account {account_id}: scope check failed: {exc}"
            )
            session.state = ManagerState.DISABLED
            return session.state
        except Exception:
            logger.exception(
                f"App token management disabled for account {account_id}: unexpected scope check failure"
            )
            session.state = ManagerState.DISABLED
            return session.state

        if ScopeSet.of(scopes).covers(TOKEN_MANAGEMENT_SCOPES):
            logger.debug(f"App token management enabled for account {account_id}")
            session.state = ManagerState.ENABLED
        else:
            missing = ", ".join(ScopeSet.of(scopes).missing(TOKEN_MANAGEMENT_SCOPES))
            logger.warning(
                f"App token management disabled for account {account_id}: missing scopes {missing}"
            )
            session.state = ManagerState.DISABLED
        return session.state

    async def get_token(
        self,
        account_id: int,
        app_id: int,
        required_scopes: Iterable[str] = (),
    ) -> Optional[str]:
        """Return an app token covering ``required_scopes``.

        Returns None when the account is not enabled.

        Raises:
            AppTokenError: If the token could not be obtained; the underlying
                error is chained as ``__cause__``
        """
        session = self._open_session(account_id)
        if session is None or session.state != ManagerState.ENABLED:
            logger.debug(f"App token management disabled for account {account_id}, app {app_id}")
            return None

        required = ScopeSet.of(required_scopes)
        key = CacheKey(account_id, app_id)
        cached = self.cache.get(key)
        if (
            cached is not None
            and cached.scopes.covers(required)
            and not cached.is_expired(self._utcnow())
        ):
            logger.debug(f"Using cached token for app {app_id}")
            return cached.value

        requested = session.remember_request(app_id, required)
        try:
            record = await self._create_or_get_active_token(key, required, requested)
            if not record.scopes.covers(required):
                raise ScopeInsufficientError(record.scopes.missing(required).to_list())
            self._store_and_arm(session, key, record)
        except Exception as exc:
            raise AppTokenError(
                account_id, app_id, str(exc) or type(exc).__name__, recoverable=is_recoverable(exc)
            ) from exc
        return record.value

    def shutdown(self, account_id: Optional[int] = None) -> None:
        """Stop background refreshes and drop cached tokens.

        With ``account_id`` only that account's session is closed; without it
        every session is closed and the scheduler is stopped. Safe to call
        repeatedly.
        """
        if account_id is None:
            for session in self._sessions.values():
                session.closed = True
            self.scheduler.close()
            self.cache.evict_all()
            logger.debug("Credential manager shut down")
            return

        session = self._sessions.get(account_id)
        if session is not None:
            session.closed = True
        for key in self.cache.evict_account(account_id):
            self.scheduler.disarm(key)
        logger.debug(f"Closed app token session for account {account_id}")

    def is_enabled(self, account_id: int) -> bool:
        return self.state(account_id) == ManagerState.ENABLED

    def state(self, account_id: int) -> ManagerState:
        session = self._open_session(account_id)
        return session.state if session is not None else ManagerState.UNINITIALIZED

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _open_session(self, account_id: int) -> Optional[AccountSession]:
        session = self._sessions.get(account_id)
        if session is None or session.closed:
            return None
        return session

    async def _create_or_get_active_token(
        self,
        key: CacheKey,
        required: ScopeSet,
        requested: ScopeSet,
    ) -> TokenRecord:
        existing = await self.endpoints.fetch_existing_token(key.account_id, key.app_id)
        if existing is None:
            logger.debug(f"Creating token for app {key.app_id}")
            return await self.endpoints.create_token(key.account_id, key.app_id, requested)

        if existing.expires_within(self.safety_margin, self._utcnow()) or not existing.scopes.covers(
            required
        ):
            logger.debug(f"Refreshing token for app {key.app_id}")
            return await self.endpoints.update_token(
                key.account_id, key.app_id, existing.value, existing.scopes | requested
            )
        return existing

    def _store_and_arm(self, session: AccountSession, key: CacheKey, record: TokenRecord) -> None:
        if session.closed:
            logger.debug(f"Session for account {key.account_id} closed, not caching token for {key}")
            return
        if not self.cache.put(key, record, self._utcnow()):
            raise PortalAuthError(
                f"Received a token that expired at {record.expires_at.isoformat()}"
            )
        self.scheduler.arm(key, record, self._background_refresh)

    async def _background_refresh(self, key: CacheKey) -> None:
        session = self._open_session(key.account_id)
        record = self.cache.get(key)
        if session is None or record is None:
            return

        logger.debug(f"Refreshing token for app {key.app_id}")
        try:
            refreshed = await self.endpoints.update_token(
                key.account_id, key.app_id, record.value, record.scopes
            )
        except Exception as exc:
            logger.warning(f"Background refresh failed for account {key.account_id}, app {key.app_id}: {exc}")
            self._audit_refresh_failure(key, exc)
            return

        if session.closed or not self.scheduler.is_armed(key):
            logger.debug(f"Discarding refreshed token for {key}: no longer managed")
            return
        if self.cache.get(key) is not record:
            # A foreground request stored a newer token while this refresh was running.
            logger.debug(f"Discarding refreshed token for {key}: cache entry was replaced")
            return
        if not self.cache.put(key, refreshed, self._utcnow()):
            logger.warning(f"Background refresh for {key} returned an expired token")
            self._audit_refresh_failure(key, PortalAuthError("Refreshed token already expired"))
            return
        self.scheduler.arm(key, refreshed, self._background_refresh)

    def _audit_refresh_failure(self, key: CacheKey, exc: Exception) -> None:
        if self.audit_logger is None:
            return
        try:
            self.audit_logger.record_refresh_failure(
                account_id=key.account_id,
                app_id=key.app_id,
                detail=str(exc) or type(exc).__name__,
                recoverable=is_recoverable(exc),
            )
        except OSError as audit_exc:
            logger.warning(f"Could not write audit event for {key}: {audit_exc}")

    def _utcnow(self) -> datetime:
        """Get current UTC time with timezone."""
        now = self._now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now


__all__ = ["AccountSession", "CredentialManager"]
