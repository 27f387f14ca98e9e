"""Weekly plan assembly from ranked pools, with bounded repair.

Days are filled slot by slot. Each pick prefers the top-k ranked candidates
that have not been used yet this week; if all of them are recent it falls
back to any non-recent pool member, then to anything in the pool.

Once a week is filled, the repair loop re-checks the weekly caps and the
variety rules and swaps one random slot per iteration until both pass or
the iteration ceiling is reached. A week that never passes is returned
as-is with ``compliant=False``: plan generation does not fail just because
perfect variety is out of reach.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, replace
from typing import Optional, Sequence

from mealweave.data.macro_reference import MacroReference
from mealweave.errors import VarietyCapsNotMet
from mealweave.models import MacroTargets, Meal, MealType
from mealweave.nutrition.estimator import derive_carb_split
from mealweave.planning.rules import (
    DEFAULT_RULES,
    CapsReport,
    VarietyReport,
    WeeklyRules,
    evaluate_variety,
    evaluate_weekly_caps,
)

logger = logging.getLogger(__name__)


@dataclass
class WeekAssembly:
    """One assembled week and the outcome of its repair loop."""

    days: list[list[Meal]]
    caps: CapsReport
    variety: VarietyReport
    iterations: int
    compliant: bool


class WeeklyAssembler:
    """Fills weeks from ranked per-type pools."""

    def __init__(
        self,
        pools: dict[MealType, list[Meal]],
        rules: WeeklyRules = DEFAULT_RULES,
        rng: Optional[random.Random] = None,
        top_k: int = 5,
        max_iterations: int = 25,
        reference: Optional[MacroReference] = None,
        reject_best_effort: bool = False,
    ):
        """Initialize the assembler.

        Args:
            pools: Ranked candidates per meal type (best first)
            rules: Weekly caps and variety rules
            rng: Random source; pass a seeded instance for reproducible plans
            top_k: How many top-ranked candidates to sample from
            max_iterations: Repair loop ceiling
            reference: Macro reference used for the carb split
            reject_best_effort: Raise instead of returning a non-compliant week
        """
        self.pools = pools
        self.rules = rules
        self.rng = rng or random.Random()
        self.top_k = top_k
        self.max_iterations = max_iterations
        self.reference = reference
        self.reject_best_effort = reject_best_effort
        self._split_cache: dict[str, Meal] = {}

    def _prepare(self, meal: Meal) -> Meal:
        """Copy of a pool entry ready for a slot (main meals get a carb split)."""
        if not meal.meal_type.is_main:
            return meal
        cached = self._split_cache.get(meal.id)
        if cached is None:
            starchy, fibrous = derive_carb_split(meal, self.reference)
            cached = replace(
                meal,
                nutrition=replace(meal.nutrition, starchy_carbs=starchy, fibrous_carbs=fibrous),
            )
            self._split_cache[meal.id] = cached
        return cached

    def sample(self, meal_type: MealType, recent: set[str]) -> Meal:
        """Pick a candidate for one slot, avoiding recently used slugs.

        Raises:
            ValueError: If the pool for this type is empty.
        """
        pool = self.pools.get(meal_type) or []
        if not pool:
            raise ValueError(f"Empty pool for {meal_type.value}")
        top = [m for m in pool[: self.top_k] if m.slug not in recent]
        if not top:
            top = [m for m in pool if m.slug not in recent]
        if not top:
            top = pool
        return self.rng.choice(top)

    def fill_week(self, slot_types: Sequence[MealType], days: int = 7) -> list[list[Meal]]:
        """Fill every slot of every day. The recent set spans the whole week."""
        recent: set[str] = set()
        week: list[list[Meal]] = []
        for _ in range(days):
            day: list[Meal] = []
            for meal_type in slot_types:
                meal = self.sample(meal_type, recent)
                recent.add(meal.slug)
                day.append(self._prepare(meal))
            week.append(day)
        return week

    def _evaluate(self, week: list[list[Meal]]) -> tuple[CapsReport, VarietyReport]:
        pool_sizes = {t: len(p) for t, p in self.pools.items()}
        return (
            evaluate_weekly_caps(week, self.rules),
            evaluate_variety(week, self.rules, pool_sizes),
        )

    def repair(self, week: list[list[Meal]]) -> WeekAssembly:
        """Swap random slots until caps and variety pass or the ceiling is hit."""
        iterations = 0
        caps, variety = self._evaluate(week)
        while not (caps.within_caps and variety.ok) and iterations < self.max_iterations:
            day = self.rng.randrange(len(week))
            if week[day]:
                slot = self.rng.randrange(len(week[day]))
                current = week[day][slot]
                pool = self.pools.get(current.meal_type) or []
                alternatives = [m for m in pool if m.slug != current.slug]
                if alternatives:
                    week[day][slot] = self._prepare(self.rng.choice(alternatives))
            iterations += 1
            caps, variety = self._evaluate(week)

        compliant = caps.within_caps and variety.ok
        if not compliant:
            logger.warning(
                "Weekly caps not met after %d repair iterations "
                "(unique=%d exotic=%d repeats=%d cuisines=%d)",
                iterations, caps.unique_ingredients, caps.exotic_count,
                variety.repeats, variety.cuisines,
            )
        return WeekAssembly(week, caps, variety, iterations, compliant)

    def assemble_week(self, slot_types: Sequence[MealType], days: int = 7) -> WeekAssembly:
        """Fill and repair one week.

        Raises:
            VarietyCapsNotMet: If repair did not converge and best-effort
                weeks are rejected.
        """
        assembly = self.repair(self.fill_week(slot_types, days))
        if not assembly.compliant and self.reject_best_effort:
            raise VarietyCapsNotMet(
                f"weekly caps not met after {assembly.iterations} repair iterations"
            )
        return assembly


def daily_totals(day: Sequence[Meal]) -> dict[str, float]:
    """Sum the declared macros of one day's meals."""
    totals = {"calories": 0.0, "protein": 0.0, "carbs": 0.0, "fat": 0.0}
    for meal in day:
        n = meal.nutrition
        totals["calories"] += n.calories or 0.0
        totals["protein"] += n.protein or 0.0
        totals["carbs"] += n.carbs or 0.0
        totals["fat"] += n.fat or 0.0
    return totals


def weekly_totals(days: Sequence[Sequence[Meal]]) -> dict[str, dict[str, float]]:
    """Macro totals and daily averages for a week."""
    totals = {"calories": 0.0, "protein": 0.0, "carbs": 0.0, "fat": 0.0}
    for day in days:
        for key, value in daily_totals(day).items():
            totals[key] += value
    n_days = max(1, len(days))
    return {
        "totals": {k: round(v, 1) for k, v in totals.items()},
        "daily_average": {k: round(v / n_days, 1) for k, v in totals.items()},
    }


def validate_week(days: Sequence[Sequence[Meal]], targets: Optional[MacroTargets] = None) -> list[str]:
    """Return human-readable warnings for a week.

    Flags empty days and a daily protein average below 80% of the target.
    """
    warnings: list[str] = []
    for i, day in enumerate(days, start=1):
        if not day:
            warnings.append(f"Day {i} has no meals")
    if targets and targets.protein:
        avg = weekly_totals(days)["daily_average"]["protein"]
        if avg < 0.8 * targets.protein:
            warnings.append(
                f"Daily protein average {avg:.0f}g is below 80% of the {targets.protein:.0f}g target"
            )
    return warnings


def macro_hit_pct(
    days: Sequence[Sequence[Meal]],
    daily_calories: Optional[float],
    tolerance_pct: float = 0.10,
) -> Optional[float]:
    """Percent of days whose declared calories fall within tolerance of the target."""
    if not daily_calories or not days:
        return None
    low = daily_calories * (1 - tolerance_pct)
    high = daily_calories * (1 + tolerance_pct)
    hits = sum(1 for day in days if low <= daily_totals(day)["calories"] <= high)
    return round(100.0 * hits / len(days), 1)
