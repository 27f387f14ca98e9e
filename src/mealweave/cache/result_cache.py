"""Short-lived cache of assembled plans keyed by a request signature.

A hit returns the plan rebuilt from the stored dict, so it serializes to the
same JSON as the first response and costs no generator calls.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
from typing import Awaitable, Callable, Iterable, Optional

from mealweave.cache.store import KeyValueStore, MemoryStore
from mealweave.models import AssembledPlan, PlanRequest, ScheduleSlot

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0
DEFAULT_CAPACITY = 300


def schedule_fingerprint(schedule: Iterable[ScheduleSlot]) -> str:
    """Canonical text for a day schedule.

    Tokens are ``slot:label@time`` with surrounding whitespace removed and
    everything lowercased, sorted by (time, order) and joined with "|".
    Schedules that differ only in whitespace or case share a fingerprint.
    """
    ordered = sorted(schedule, key=lambda s: (s.time.strip(), s.order))
    tokens = []
    for slot in ordered:
        label = " ".join(slot.label.split()).lower()
        token = f"{slot.slot.strip().lower()}:{label}@{slot.time.strip().lower()}"
        if token not in tokens:
            tokens.append(token)
    return "|".join(tokens)


def _request_extras_hash(request: PlanRequest) -> str:
    extras = {
        "allergens": sorted(a.strip().lower() for a in request.allergens),
        "medical_flags": sorted(f.strip().lower() for f in request.medical_flags),
        "targets": request.targets.to_dict(),
        "seed": request.seed,
    }
    stable = json.dumps(extras, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(stable.encode("utf-8")).hexdigest()[:12]


def plan_signature(request: PlanRequest, profile_hash: str) -> str:
    """Composite cache key for a plan request.

    Example:
        "u:alice#d:7#sched:meal:breakfast@08:00|...#mode:ai_varied/templates#fixed:#ob:3f2a9c0d1e4b#req:..."
    """
    fixed = ",".join(sorted(m.slug for m in request.fixed_menu))
    return (
        f"u:{request.user_id}"
        f"#d:{request.day_count}"
        f"#sched:{schedule_fingerprint(request.effective_schedule())}"
        f"#mode:{request.mode.value}/{request.source.value}"
        f"#fixed:{fixed}"
        f"#ob:{profile_hash}"
        f"#req:{_request_extras_hash(request)}"
    )


class ResultCache:
    """TTL- and capacity-bounded plan cache over a key-value store."""

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        capacity: int = DEFAULT_CAPACITY,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store if store is not None else MemoryStore()
        self.ttl_seconds = ttl_seconds
        self.capacity = capacity
        self.clock = clock
        self.hits = 0
        self.misses = 0
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, key: str) -> Optional[AssembledPlan]:
        """Return the cached plan, or None if absent or expired."""
        entry = self.store.get(key)
        if entry is None:
            return None
        if entry["expires_at"] <= self.clock():
            self.store.delete(key)
            return None
        return AssembledPlan.from_dict(entry["plan"])

    def set(self, key: str, plan: AssembledPlan) -> None:
        """Store a plan, replacing any previous entry for the key."""
        self.store.set(key, {"plan": plan.to_dict(), "expires_at": self.clock() + self.ttl_seconds})
        self._evict()

    def _evict(self) -> None:
        keys = self.store.keys()
        overflow = len(keys) - self.capacity
        for key in keys[: max(0, overflow)]:
            self.store.delete(key)

    def invalidate(self, key: str) -> bool:
        return self.store.delete(key)

    def invalidate_user(self, user_id: str) -> int:
        """Drop every cached plan for a user."""
        prefix = f"u:{user_id}#"
        removed = 0
        for key in self.store.keys():
            if key.startswith(prefix) and self.store.delete(key):
                removed += 1
        return removed

    async def get_or_build(
        self,
        key: str,
        builder: Callable[[], Awaitable[AssembledPlan]],
    ) -> AssembledPlan:
        """Return the cached plan or build, store and return a new one.

        Concurrent calls for the same key build once: the rest wait on the
        key's lock and then read the stored entry. A builder that raises
        leaves the cache untouched.
        """
        cached = self.get(key)
        if cached is not None:
            self.hits += 1
            return cached

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            cached = self.get(key)
            if cached is not None:
                self.hits += 1
                return cached
            self.misses += 1
            plan = await builder()
            self.set(key, plan)
            logger.debug("Cached plan under %s", key)
        if not lock.locked():
            self._locks.pop(key, None)
        # Served from the stored form so a later hit is byte-identical
        return AssembledPlan.from_dict(plan.to_dict())
