"""Tests for the in-memory token cache."""

from datetime import timedelta

from portalauth.auth.models import CacheKey
from portalauth.auth.token_cache import TokenCache


def test_put_and_get(clock, make_record):
    cache = TokenCache()
    key = CacheKey(1, 42)
    record = make_record()

    assert cache.put(key, record, clock.current) is True
    assert cache.get(key) is record
    assert key in cache
    assert len(cache) == 1


def test_put_replaces_existing_record(clock, make_record):
    cache = TokenCache()
    key = CacheKey(1, 42)
    cache.put(key, make_record("old"), clock.current)

    cache.put(key, make_record("new"), clock.current)

    assert cache.get(key).value == "new"
    assert len(cache) == 1


def test_expired_records_are_never_stored(clock, make_record):
    cache = TokenCache()
    key = CacheKey(1, 42)

    assert cache.put(key, make_record(expires_in=-1), clock.current) is False
    assert cache.put(key, make_record(expires_in=0), clock.current) is False
    assert cache.get(key) is None


def test_expired_put_keeps_previous_record(clock, make_record):
    cache = TokenCache()
    key = CacheKey(1, 42)
    good = make_record("good")
    cache.put(key, good, clock.current)

    cache.put(key, make_record("bad", expires_in=10), clock.current + timedelta(seconds=30))

    assert cache.get(key) is good


def test_evict_operations(clock, make_record):
    cache = TokenCache()
    for key in (CacheKey(1, 1), CacheKey(1, 2), CacheKey(2, 1)):
        cache.put(key, make_record(), clock.current)

    assert cache.evict(CacheKey(1, 1)) is not None
    assert cache.evict(CacheKey(1, 1)) is None

    assert cache.evict_account(1) == [CacheKey(1, 2)]
    assert list(cache.keys()) == [CacheKey(2, 1)]

    cache.evict_all()
    assert len(cache) == 0
