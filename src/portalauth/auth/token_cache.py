"""In-memory cache of app-scoped tokens."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Iterator, List, Optional

from .models import CacheKey, TokenRecord

logger = logging.getLogger(__name__)


class TokenCache:
    """Maps ``(account_id, app_id)`` to the current TokenRecord.

    Each ``put`` swaps the whole record for a key in one dictionary
    assignment, so readers on the owning event loop never observe a partial
    update.
    """

    def __init__(self) -> None:
        self._records: Dict[CacheKey, TokenRecord] = {}

    def get(self, key: CacheKey) -> Optional[TokenRecord]:
        return self._records.get(key)

    def put(self, key: CacheKey, record: TokenRecord, now: datetime) -> bool:
        """Store ``record`` for ``key``.

        Returns False without storing anything when the record has already
        expired at ``now``.
        """
        if record.is_expired(now):
            logger.debug(f"Refusing to cache expired token for {key}")
            return False
        self._records[key] = record
        return True

    def evict(self, key: CacheKey) -> Optional[TokenRecord]:
        return self._records.pop(key, None)

    def evict_account(self, account_id: int) -> List[CacheKey]:
        keys = [key for key in self._records if key.account_id == account_id]
        for key in keys:
            self._records.pop(key, None)
        return keys

    def evict_all(self) -> None:
        self._records.clear()

    def keys(self) -> Iterator[CacheKey]:
        return iter(list(self._records))

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)


__all__ = ["TokenCache"]
