"""Tests for the APScheduler-backed refresh scheduler."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from portalauth.auth.models import CacheKey
from portalauth.auth.refresh_scheduler import RefreshScheduler


KEY = CacheKey(123, 42)


@pytest.mark.asyncio()
async def test_arm_returns_delay_before_safety_margin(clock, make_record):
    scheduler = RefreshScheduler(_now=clock)
    try:
        delay = scheduler.arm(KEY, make_record(expires_in=3600), AsyncMock())

        assert delay == timedelta(minutes=55)
        assert scheduler.is_armed(KEY)
        assert scheduler.pending_count() == 1
        assert scheduler.scheduled_at(KEY) is not None
    finally:
        scheduler.close()


@pytest.mark.asyncio()
async def test_scheduled_at_is_wall_clock_time(clock, make_record, caplog):
    scheduler = RefreshScheduler(_now=clock)
    try:
        before = datetime.now(timezone.utc)
        with caplog.at_level(logging.DEBUG, logger="portalauth.auth.refresh_scheduler"):
            delay = scheduler.arm(KEY, make_record(expires_in=3600), AsyncMock())
        after = datetime.now(timezone.utc)

        run_at = scheduler.scheduled_at(KEY)
        assert before + delay <= run_at <= after + delay
        assert f"refresh at {run_at.isoformat()}" in caplog.text
    finally:
        scheduler.close()


@pytest.mark.asyncio()
async def test_delay_is_clamped_at_zero(clock, make_record):
    scheduler = RefreshScheduler(_now=clock)
    on_fire = AsyncMock()
    try:
        delay = scheduler.arm(KEY, make_record(expires_in=120), on_fire)

        assert delay == timedelta(0)
    finally:
        scheduler.close()


@pytest.mark.asyncio()
async def test_timer_fires_callback_with_key(clock, make_record, wait_for):
    scheduler = RefreshScheduler(_now=clock)
    on_fire = AsyncMock()
    try:
        scheduler.arm(KEY, make_record(expires_in=300), on_fire)

        await wait_for(lambda: on_fire.await_count == 1)

        on_fire.assert_awaited_once_with(KEY)
        assert scheduler.pending_count() == 0
        assert scheduler.is_armed(KEY)
    finally:
        scheduler.close()


@pytest.mark.asyncio()
async def test_rearming_keeps_one_timer_per_key(clock, make_record):
    scheduler = RefreshScheduler(_now=clock)
    try:
        for _ in range(5):
            scheduler.arm(KEY, make_record(expires_in=3600), AsyncMock())
        scheduler.arm(CacheKey(123, 43), make_record(expires_in=3600), AsyncMock())

        assert scheduler.pending_count(KEY) == 1
        assert scheduler.pending_count() == 2
        assert len(scheduler.scheduler.get_jobs()) == 2
    finally:
        scheduler.close()


@pytest.mark.asyncio()
async def test_replaced_timer_never_fires(clock, make_record, wait_for):
    scheduler = RefreshScheduler(_now=clock)
    first = AsyncMock()
    second = AsyncMock()
    try:
        scheduler.arm(KEY, make_record(expires_in=300), first)
        scheduler.arm(KEY, make_record(expires_in=300), second)

        await wait_for(lambda: second.await_count == 1)
        await asyncio.sleep(0.05)

        first.assert_not_awaited()
    finally:
        scheduler.close()


@pytest.mark.asyncio()
async def test_disarm_prevents_callback(clock, make_record):
    scheduler = RefreshScheduler(_now=clock)
    on_fire = AsyncMock()
    try:
        scheduler.arm(KEY, make_record(expires_in=300), on_fire)
        scheduler.disarm(KEY)
        await asyncio.sleep(0.1)

        on_fire.assert_not_awaited()
        assert not scheduler.is_armed(KEY)
        scheduler.disarm(KEY)
    finally:
        scheduler.close()


@pytest.mark.asyncio()
async def test_disarm_all_and_close(clock, make_record):
    scheduler = RefreshScheduler(_now=clock)
    on_fire = AsyncMock()
    scheduler.arm(CacheKey(1, 1), make_record(expires_in=300), on_fire)
    scheduler.arm(CacheKey(1, 2), make_record(expires_in=300), on_fire)

    scheduler.close()
    await asyncio.sleep(0.1)

    on_fire.assert_not_awaited()
    assert scheduler.pending_count() == 0
    assert scheduler.scheduler is None
    scheduler.close()


@pytest.mark.asyncio()
async def test_callback_exceptions_are_swallowed(clock, make_record, wait_for, caplog):
    scheduler = RefreshScheduler(_now=clock)
    failing = AsyncMock(side_effect=RuntimeError("boom"))
    try:
        scheduler.arm(KEY, make_record(expires_in=300), failing)

        await wait_for(lambda: failing.await_count == 1)
        await wait_for(lambda: "Background refresh for 123:42 failed" in caplog.text)
    finally:
        scheduler.close()
