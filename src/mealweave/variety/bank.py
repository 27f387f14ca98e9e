"""Cross-session variety bank.

Remembers, per user, the signatures of meals that recent plans used, so the
next plan can steer away from them. Each user's entries are an ordered
``signature -> expires_at`` list stored under one key; it is rewritten
wholesale on every change.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Optional

from mealweave.cache.store import KeyValueStore, MemoryStore

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 14 * 24 * 3600
DEFAULT_CAPACITY = 500


class VarietyBank:
    """TTL- and capacity-bounded signature memory, one list per user."""

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        capacity: int = DEFAULT_CAPACITY,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the bank.

        Args:
            store: Backing store (defaults to an in-memory store)
            ttl_seconds: How long a signature is remembered
            capacity: Maximum signatures per user; oldest are evicted first
            clock: Time source returning seconds
        """
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.store = store if store is not None else MemoryStore()
        self.ttl_seconds = ttl_seconds
        self.capacity = capacity
        self.clock = clock

    def _load(self, user_id: str) -> dict[str, float]:
        """Live entries for a user, oldest first. Expired entries are dropped."""
        raw = self.store.get(user_id) or []
        now = self.clock()
        return {sig: expires for sig, expires in raw if expires > now}

    def _save(self, user_id: str, entries: dict[str, float]) -> None:
        if entries:
            self.store.set(user_id, [[sig, expires] for sig, expires in entries.items()])
        else:
            self.store.delete(user_id)

    def contains(self, user_id: str, signature: str) -> bool:
        return signature in self._load(user_id)

    def add(self, user_id: str, signature: str) -> None:
        self.add_many(user_id, [signature])

    def add_many(self, user_id: str, signatures: Iterable[str]) -> int:
        """Insert signatures, refreshing any already present.

        Returns:
            Number of entries evicted to respect capacity
        """
        entries = self._load(user_id)
        expires = self.clock() + self.ttl_seconds
        for sig in signatures:
            # Re-adding moves the entry to the newest position
            entries.pop(sig, None)
            entries[sig] = expires

        evicted = 0
        while len(entries) > self.capacity:
            del entries[next(iter(entries))]
            evicted += 1
        if evicted:
            logger.debug("Evicted %d variety signatures for %s", evicted, user_id)
        self._save(user_id, entries)
        return evicted

    def signatures(self, user_id: str) -> list[str]:
        """Live signatures for a user, oldest first."""
        return list(self._load(user_id))

    def expiries(self, user_id: str) -> dict[str, float]:
        return self._load(user_id)

    def size(self, user_id: str) -> int:
        return len(self._load(user_id))

    def clear(self, user_id: str) -> None:
        self.store.delete(user_id)
