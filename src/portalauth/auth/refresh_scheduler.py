"""Background refresh timers for cached app tokens, backed by APScheduler."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional
from uuid import uuid4

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from .models import SAFETY_MARGIN, CacheKey, TokenRecord

logger = logging.getLogger(__name__)


RefreshCallback = Callable[[CacheKey], Awaitable[None]]


@dataclass
class _Timer:
    job_id: str
    run_at: datetime
    fired: bool = False


@dataclass
class RefreshScheduler:
    """Keeps at most one pending refresh timer per cache key.

    Timers run as one-shot ``DateTrigger`` jobs on an ``AsyncIOScheduler``
    bound to the running event loop. A timer whose key was disarmed or
    re-armed before it fired never invokes its callback; exceptions escaping
    a callback are logged and swallowed here.
    """

    safety_margin: timedelta = SAFETY_MARGIN
    scheduler: Optional[AsyncIOScheduler] = None
    _now: Any = datetime.now
    _timers: Dict[CacheKey, _Timer] = field(default_factory=dict, init=False)
    _owns_scheduler: bool = field(default=False, init=False)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def arm(self, key: CacheKey, record: TokenRecord, on_fire: RefreshCallback) -> timedelta:
        """Schedule ``on_fire(key)`` ``safety_margin`` before the record expires.

        Any timer already pending for ``key`` is cancelled first. Returns the
        delay until the timer fires.
        """
        now = self._utcnow()
        delay = max(record.expires_at - now - self.safety_margin, timedelta(0))

        self.disarm(key)
        scheduler = self._ensure_scheduler()

        timer = _Timer(
            job_id=f"token-refresh:{key}:{uuid4().hex[:12]}",
            run_at=datetime.now(timezone.utc) + delay,
        )
        self._timers[key] = timer
        scheduler.add_job(
            self._fire,
            trigger=DateTrigger(run_date=timer.run_at, timezone=timezone.utc),
            args=[key, timer, on_fire],
            id=timer.job_id,
            misfire_grace_time=None,
            coalesce=True,
        )
        logger.debug(
            f"Scheduled refresh for {key}: expires at {record.expires_at.isoformat()}, "
            f"refresh at {timer.run_at.isoformat()}"
        )
        return delay

    def disarm(self, key: CacheKey) -> None:
        timer = self._timers.pop(key, None)
        if timer is None or timer.fired or self.scheduler is None:
            return
        try:
            self.scheduler.remove_job(timer.job_id)
        except JobLookupError:
            # Already dispatched; _fire sees the key is gone and skips the callback.
            pass

    def disarm_all(self) -> None:
        for key in list(self._timers):
            self.disarm(key)

    def close(self) -> None:
        """Cancel every timer and stop the scheduler if this instance started it."""
        self.disarm_all()
        if self._owns_scheduler and self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        self._owns_scheduler = False
        self.scheduler = None

    def is_armed(self, key: CacheKey) -> bool:
        return key in self._timers

    def pending_count(self, key: Optional[CacheKey] = None) -> int:
        """Number of timers that have not fired yet, optionally for one key."""
        if key is not None:
            timer = self._timers.get(key)
            return 1 if timer is not None and not timer.fired else 0
        return sum(1 for timer in self._timers.values() if not timer.fired)

    def scheduled_at(self, key: CacheKey) -> Optional[datetime]:
        """Wall-clock UTC time the timer fires at, independent of the injected clock."""
        timer = self._timers.get(key)
        return timer.run_at if timer else None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_scheduler(self) -> AsyncIOScheduler:
        if self.scheduler is None:
            self.scheduler = AsyncIOScheduler(
                event_loop=asyncio.get_running_loop(), timezone=timezone.utc
            )
            self._owns_scheduler = True
        if not self.scheduler.running:
            self.scheduler.start()
        return self.scheduler

    async def _fire(self, key: CacheKey, timer: _Timer, on_fire: RefreshCallback) -> None:
        if self._timers.get(key) is not timer:
            logger.debug(f"Refresh timer for {key} was cancelled before it fired")
            return
        timer.fired = True
        try:
            await on_fire(key)
        except Exception:
            logger.exception(f"Background refresh for {key} failed")

    def _utcnow(self) -> datetime:
        now = self._now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now


__all__ = ["RefreshCallback", "RefreshScheduler"]
