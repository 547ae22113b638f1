"""Per-visitor fixed-window rate limiting.

Counting is delegated to the ``limits`` fixed-window strategy. The storage
backend is picked from a URI, so the default process-local ``memory://``
counters can be swapped for a shared ``redis://`` store without touching the
gatekeeper; the window semantics stay the same either way.
"""

from __future__ import annotations

import logging

from limits import RateLimitItemPerSecond
from limits.storage import Storage, storage_from_string
from limits.strategies import FixedWindowRateLimiter

logger = logging.getLogger(__name__)

_NAMESPACE = "chat-visitor"


class VisitorRateLimiter:
    """Allow at most ``limit`` requests per visitor inside ``window_seconds``.

    The window starts at a visitor's first request; once it has elapsed the
    next request opens a fresh window with a count of one.
    """

    def __init__(
        self,
        limit: int = 20,
        window_seconds: int = 60,
        *,
        storage: Storage | None = None,
        storage_uri: str = "memory://",
    ) -> None:
        self._item = RateLimitItemPerSecond(limit, window_seconds, namespace=_NAMESPACE)
        self._storage = storage or storage_from_string(storage_uri)
        self._strategy = FixedWindowRateLimiter(self._storage)

    @property
    def limit(self) -> int:
        return self._item.amount

    def allow(self, identifier: str) -> bool:
        """Count one request for ``identifier`` and report whether it may proceed."""

        if not self._strategy.test(self._item, identifier):
            logger.info("Rate limit reached for visitor %s", identifier)
            return False
        return self._strategy.hit(self._item, identifier)

    def remaining(self, identifier: str) -> int:
        stats = self._strategy.get_window_stats(self._item, identifier)
        return stats.remaining

    def reset(self) -> None:
        self._storage.reset()


__all__ = ["VisitorRateLimiter"]
