"""Suppression of repeated assistant replies within a short window."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

PREFIX_LENGTH = 100


@dataclass(frozen=True)
class RecentResponse:
    content: str
    timestamp: float


def _prefix(text: str) -> str:
    return text.strip()[:PREFIX_LENGTH].lower()


class ResponseCache:
    """Per-conversation list of recently emitted assistant replies.

    Two replies count as duplicates when their first 100 characters match
    (trimmed, case-insensitive) and the earlier one is younger than
    ``window_seconds``. Each list keeps at most ``max_entries`` items.
    Without a conversation id every operation is a no-op.
    """

    def __init__(
        self,
        window_seconds: float = 30.0,
        max_entries: int = 10,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window = window_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, list[RecentResponse]] = {}

    def recent(self, conversation_id: str | None) -> list[RecentResponse]:
        """Return the entries still inside the window, dropping expired ones."""

        if not conversation_id:
            return []
        now = self._clock()
        fresh = [
            entry
            for entry in self._entries.get(conversation_id, [])
            if now - entry.timestamp < self._window
        ]
        self._entries[conversation_id] = fresh
        return list(fresh)

    def is_duplicate(self, conversation_id: str | None, content: str) -> bool:
        if not conversation_id:
            return False
        candidate = _prefix(content)
        for entry in self.recent(conversation_id):
            if _prefix(entry.content) == candidate:
                logger.info(
                    "Duplicate reply blocked for conversation %s", conversation_id
                )
                return True
        return False

    def record(self, conversation_id: str | None, content: str) -> None:
        if not conversation_id or not content:
            return
        entries = self._entries.setdefault(conversation_id, [])
        entries.append(RecentResponse(content, self._clock()))
        if len(entries) > self._max_entries:
            del entries[: len(entries) - self._max_entries]

    def clear(self) -> None:
        self._entries.clear()


__all__ = ["PREFIX_LENGTH", "RecentResponse", "ResponseCache"]
