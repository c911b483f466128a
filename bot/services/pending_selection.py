from __future__ import annotations

import logging

from services.cache import CacheBackend

LOGGER = logging.getLogger(__name__)


class PendingSelectionStore:
    """Remembers which category a user picked until their topic modal comes back.

    Entries expire after ``ttl_seconds`` and are consumed exactly once, so a
    second modal submission without a new selection finds nothing.
    """

    def __init__(self, cache: CacheBackend, ttl_seconds: int) -> None:
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(user_id: int) -> str:
        return f"pending:category:{user_id}"

    async def remember(self, user_id: int, category_index: int) -> None:
        await self.cache.set(self._key(user_id), str(category_index), ttl=self.ttl_seconds)

    async def consume(self, user_id: int) -> int | None:
        raw = await self.cache.pop(self._key(user_id))
        if raw is None:
            return None
        try:
            return int(raw)
        except (TypeError, ValueError):
            LOGGER.warning("Discarding malformed pending selection for user %s: %r", user_id, raw)
            return None
