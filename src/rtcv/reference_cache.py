from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional


logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 72 * 60 * 60  # 3 days
SHORT_TTL_SECONDS = 12 * 60 * 60


@dataclass
class _Entry:
    inserted_at: float
    ttl: float


class ReferenceCache:
    """
    In-memory set of CV reference numbers that were already handled.

    - Entries expire lazily: `contains()` drops an entry whose age exceeds
      its TTL and reports it as absent. There is no background sweep.
    - `max_entries` (optional) bounds growth: an insert that overflows it
      first purges stale entries, then drops the entries with the earliest
      `inserted_at`, so a backfill inserted with a past `at` goes first.
    - Not thread-safe; the bridge handles one command at a time.
    """

    def __init__(
        self,
        *,
        ttl: float = DEFAULT_TTL_SECONDS,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be > 0")
        if max_entries is not None and max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        self._ttl = float(ttl)
        self._max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _is_stale(self, entry: _Entry, now: float) -> bool:
        return now - entry.inserted_at > entry.ttl

    def insert(
        self,
        reference: str,
        *,
        at: Optional[float] = None,
        ttl: Optional[float] = None,
    ) -> None:
        """Record `reference` as seen at `at` (defaults to now), replacing any entry."""
        inserted_at = self._clock() if at is None else at
        # Re-inserting moves the key to the end; ties on inserted_at evict in dict order
        self._entries.pop(reference, None)
        self._entries[reference] = _Entry(
            inserted_at=inserted_at,
            ttl=self._ttl if ttl is None else float(ttl),
        )
        self._enforce_capacity()

    def contains(self, reference: str) -> bool:
        entry = self._entries.get(reference)
        if entry is None:
            return False
        if self._is_stale(entry, self._clock()):
            del self._entries[reference]
            return False
        return True

    def purge_expired(self) -> int:
        """Drop every stale entry; returns how many were removed."""
        now = self._clock()
        stale = [ref for ref, entry in self._entries.items() if self._is_stale(entry, now)]
        for ref in stale:
            del self._entries[ref]
        return len(stale)

    def _enforce_capacity(self) -> None:
        if self._max_entries is None or len(self._entries) <= self._max_entries:
            return
        purged = self.purge_expired()
        dropped = 0
        while len(self._entries) > self._max_entries:
            oldest = min(self._entries, key=lambda ref: self._entries[ref].inserted_at)
            del self._entries[oldest]
            dropped += 1
        logger.debug(
            "Reference cache over capacity: purged %d stale, dropped %d oldest", purged, dropped
        )


__all__ = ["ReferenceCache", "DEFAULT_TTL_SECONDS", "SHORT_TTL_SECONDS"]
