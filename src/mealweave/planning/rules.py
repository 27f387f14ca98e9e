"""Weekly planning rules and the hard/soft predicates built on them.

Hard safety never relaxes. Soft bands (simplicity, cook time, main-meal
protein and vegetables, carb share) are what the pool builder drops when a
strict pool is too small.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from mealweave.data.ontology import (
    canonical_allergy,
    find_safety_violation,
    missing_medical_badge,
)
from mealweave.models import ConstraintProfile, Meal, MealType


@dataclass
class WeeklyRules:
    """Rule set applied to pools and to each assembled week.

    Attributes:
        max_unique_ingredients_per_week: Cap on distinct ingredient names
        min_veg_cups_per_main_meal: Vegetable floor for lunch and dinner
        max_exotic_per_week: Cap on distinct exotic ingredients
        min_unique_per_type: Distinct meals required per type (bounded by pool size)
        max_repeats_per_week: Extra occurrences of already-used meals allowed
        min_distinct_cuisines_per_week: Cuisine diversity floor
        protein_min_main / protein_max_main: Main-meal protein band (g)
        calorie_tolerance_pct: Daily calorie tolerance used for macro hit rate
        carb_pct_min / carb_pct_max: Carb share of calories
        carb_pct_min_calories: Carb share is only checked at or above this
        gi_low_badge: Badge required for diabetes
        max_cook_minutes: Prep + cook ceiling
        max_ingredients: Ingredient count ceiling
        exotic_ingredients: Names counted against max_exotic_per_week
    """

    max_unique_ingredients_per_week: int = 25
    min_veg_cups_per_main_meal: float = 2.0
    max_exotic_per_week: int = 3
    min_unique_per_type: dict[str, int] = field(
        default_factory=lambda: {"breakfast": 3, "lunch": 3, "dinner": 3, "snack": 0}
    )
    max_repeats_per_week: int = 2
    min_distinct_cuisines_per_week: int = 3
    protein_min_main: float = 30.0
    protein_max_main: float = 40.0
    calorie_tolerance_pct: float = 0.10
    carb_pct_min: float = 0.45
    carb_pct_max: float = 0.65
    carb_pct_min_calories: float = 120.0
    gi_low_badge: str = "diabetes-friendly"
    max_cook_minutes: int = 45
    max_ingredients: int = 8
    exotic_ingredients: list[str] = field(
        default_factory=lambda: ["saffron", "black garlic", "sumac", "yuzu", "asafoetida"]
    )


DEFAULT_RULES = WeeklyRules()


def safety_names(meal: Meal) -> list[str]:
    """Names checked by the safety predicates: ingredients plus the dish name."""
    return meal.ingredient_names + [meal.name.lower()]


def hard_safety_reason(
    meal: Meal,
    profile: ConstraintProfile,
    extra_allergens: Iterable[str] = (),
    medical_flags: Iterable[str] = (),
) -> Optional[str]:
    """Return why a meal fails hard safety, or None.

    Checks declared allergens (after alias expansion), ingredient and dish
    names against every ontology predicate, and required medical badges.
    """
    extra_allergens = list(extra_allergens)
    medical_flags = list(medical_flags)
    user = {canonical_allergy(a) for a in list(profile.allergies) + extra_allergens if a}
    declared = {canonical_allergy(a) for a in meal.allergens if a}
    overlap = sorted(user & declared)
    if overlap:
        return f"allergen:{overlap[0]}:declared"

    reason = find_safety_violation(
        safety_names(meal),
        profile,
        extra_allergens=extra_allergens,
        extra_medical_flags=medical_flags,
    )
    if reason:
        return reason
    return missing_medical_badge(meal.badges, list(profile.medical_flags) + medical_flags)


def soft_band_reason(
    meal: Meal,
    profile: ConstraintProfile,
    rules: WeeklyRules = DEFAULT_RULES,
) -> Optional[str]:
    """Return the first soft-band violation, or None."""
    if len(meal.ingredients) > rules.max_ingredients:
        return "too-many-ingredients"
    if meal.total_minutes > rules.max_cook_minutes:
        return "too-long-to-cook"

    n = meal.nutrition
    if meal.meal_type.is_main:
        if n.protein is None:
            return "missing-protein"
        if n.protein < rules.protein_min_main or n.protein > rules.protein_max_main:
            return "protein-out-of-range"
        if not profile.no_vegetables and n.vegetable_cups < rules.min_veg_cups_per_main_meal:
            return "not-enough-veg"

    if n.calories and n.calories >= rules.carb_pct_min_calories and n.carbs is not None:
        carb_pct = (n.carbs * 4) / n.calories
        if carb_pct < rules.carb_pct_min or carb_pct > rules.carb_pct_max:
            return "carb-percent-out-of-range"
    return None


def protein_floor_reason(meal: Meal, rules: WeeklyRules = DEFAULT_RULES) -> Optional[str]:
    """Main meals must still reach the protein floor when soft bands are relaxed."""
    if not meal.meal_type.is_main:
        return None
    protein = meal.nutrition.protein
    if protein is None or protein < rules.protein_min_main:
        return "protein-below-floor"
    return None


@dataclass
class CapsReport:
    """Result of the weekly caps check."""

    unique_ingredients: int
    exotic_count: int
    within_caps: bool


@dataclass
class VarietyReport:
    """Result of the weekly variety check."""

    repeats: int
    cuisines: int
    unique_per_type: dict[str, int]
    ok: bool


def evaluate_weekly_caps(days: Sequence[Sequence[Meal]], rules: WeeklyRules = DEFAULT_RULES) -> CapsReport:
    """Count distinct ingredients and exotic ingredients across a week."""
    unique: set[str] = set()
    exotic = {e.lower() for e in rules.exotic_ingredients}
    exotic_count = 0
    for day in days:
        for meal in day:
            for name in meal.ingredient_names:
                if name not in unique:
                    unique.add(name)
                    if name in exotic:
                        exotic_count += 1
    return CapsReport(
        unique_ingredients=len(unique),
        exotic_count=exotic_count,
        within_caps=(
            len(unique) <= rules.max_unique_ingredients_per_week
            and exotic_count <= rules.max_exotic_per_week
        ),
    )


def count_repeats(meals: Iterable[Meal]) -> int:
    """Extra occurrences of meals already used, keyed by slug."""
    seen = Counter(m.slug for m in meals)
    return sum(n - 1 for n in seen.values() if n > 1)


def evaluate_variety(
    days: Sequence[Sequence[Meal]],
    rules: WeeklyRules = DEFAULT_RULES,
    pool_sizes: Optional[dict[MealType, int]] = None,
) -> VarietyReport:
    """Check repeats, cuisine diversity and distinct meals per type.

    The per-type minimum is capped at the pool size for that type, so a pool
    of two lunches cannot fail the three-distinct-lunches rule forever.
    Types that do not appear in the week are not checked.
    """
    by_type: dict[MealType, set[str]] = {}
    cuisines: set[str] = set()
    meals = [m for day in days for m in day]
    for meal in meals:
        by_type.setdefault(meal.meal_type, set()).add(meal.slug)
        if meal.cuisine:
            cuisines.add(meal.cuisine)
    repeats = count_repeats(meals)

    type_ok = True
    for meal_type, slugs in by_type.items():
        required = rules.min_unique_per_type.get(meal_type.value, 0)
        if pool_sizes is not None and meal_type in pool_sizes:
            required = min(required, pool_sizes[meal_type])
        if len(slugs) < required:
            type_ok = False

    return VarietyReport(
        repeats=repeats,
        cuisines=len(cuisines),
        unique_per_type={t.value: len(s) for t, s in by_type.items()},
        ok=(
            type_ok
            and repeats <= rules.max_repeats_per_week
            and len(cuisines) >= rules.min_distinct_cuisines_per_week
        ),
    )
