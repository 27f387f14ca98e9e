"""Candidate pool building with tiered constraint relaxation.

Each tier is a pure filter over the same raw candidates:

1. STRICT       hard safety + soft bands; used when it yields enough meals
2. RELAXED      hard safety + main-meal protein floor
3. SAFETY_ONLY  hard safety alone

The first tier with a usable result wins. Hard safety is applied at every
tier, so an unsafe meal can never come back; an empty result is EMPTY and
the caller decides how to fail.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from mealweave.models import ConstraintProfile, Meal, MealType
from mealweave.planning.rules import (
    DEFAULT_RULES,
    WeeklyRules,
    hard_safety_reason,
    protein_floor_reason,
    soft_band_reason,
)

logger = logging.getLogger(__name__)


class PoolTier(Enum):
    """Relaxation tier that produced a pool."""

    STRICT = "strict"
    RELAXED = "relaxed"
    SAFETY_ONLY = "safety_only"
    EMPTY = "empty"


@dataclass
class PoolResult:
    """Filtered candidates for one meal type."""

    meal_type: MealType
    candidates: list[Meal]
    tier: PoolTier
    rejects: Counter = field(default_factory=Counter)

    @property
    def is_empty(self) -> bool:
        return not self.candidates

    def __len__(self) -> int:
        return len(self.candidates)


def _reason_key(reason: str) -> str:
    # "allergen:peanuts:peanut sauce" -> "allergen:peanuts"
    return ":".join(reason.split(":")[:2])


def build_pool(
    candidates: Iterable[Meal],
    profile: ConstraintProfile,
    meal_type: MealType,
    rules: WeeklyRules = DEFAULT_RULES,
    extra_allergens: Iterable[str] = (),
    medical_flags: Iterable[str] = (),
    min_strict_pool: int = 3,
) -> PoolResult:
    """Filter raw candidates into a pool for one meal type.

    Args:
        candidates: Raw candidates of any type (others are ignored)
        profile: User constraint profile
        meal_type: Slot type to build the pool for
        rules: Weekly rules supplying the soft bands
        extra_allergens: Request-level allergens
        medical_flags: Request-level medical flags
        min_strict_pool: Minimum strict-tier size that is accepted

    Returns:
        PoolResult annotated with the tier used and reject counts
    """
    extra_allergens = list(extra_allergens)
    medical_flags = list(medical_flags)
    base = [c for c in candidates if c.meal_type == meal_type]
    rejects: Counter = Counter()

    safe: list[Meal] = []
    for meal in base:
        reason = hard_safety_reason(meal, profile, extra_allergens, medical_flags)
        if reason:
            rejects[_reason_key(reason)] += 1
        else:
            safe.append(meal)

    strict = []
    for meal in safe:
        reason = soft_band_reason(meal, profile, rules)
        if reason:
            rejects[reason] += 1
        else:
            strict.append(meal)
    if strict and len(strict) >= min_strict_pool:
        return PoolResult(meal_type, strict, PoolTier.STRICT, rejects)

    relaxed = [m for m in safe if protein_floor_reason(m, rules) is None]
    if relaxed:
        logger.warning("Relaxed rules for %s to avoid a thin pool (%d strict)", meal_type.value, len(strict))
        return PoolResult(meal_type, relaxed, PoolTier.RELAXED, rejects)

    if safe:
        logger.warning("Using safety-only pool for %s (%d candidates)", meal_type.value, len(safe))
        return PoolResult(meal_type, safe, PoolTier.SAFETY_ONLY, rejects)

    logger.warning("No safe candidates for %s out of %d", meal_type.value, len(base))
    return PoolResult(meal_type, [], PoolTier.EMPTY, rejects)


def build_pools(
    candidates: Iterable[Meal],
    profile: ConstraintProfile,
    meal_types: Iterable[MealType],
    rules: WeeklyRules = DEFAULT_RULES,
    extra_allergens: Iterable[str] = (),
    medical_flags: Iterable[str] = (),
    min_strict_pool: int = 3,
) -> dict[MealType, PoolResult]:
    """Build one pool per requested meal type."""
    candidates = list(candidates)
    return {
        meal_type: build_pool(
            candidates,
            profile,
            meal_type,
            rules=rules,
            extra_allergens=extra_allergens,
            medical_flags=medical_flags,
            min_strict_pool=min_strict_pool,
        )
        for meal_type in dict.fromkeys(meal_types)
    }
