"""Validation gates for generated meals.

Gates never raise. Each returns a ``Violation`` (or None) so the pipeline can
count the failure, feed the reason back to the generator as an avoid hint and
try again. The gates run in a fixed order:

1. measurements (the fixer gets one chance to complete amounts)
2. hard safety
3. slot appropriateness
4. per-meal macro band
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from mealweave.data.macro_reference import MacroReference
from mealweave.data.ontology import find_safety_violation, first_match
from mealweave.data.units import is_recognized_unit
from mealweave.errors import (
    AppropriatenessViolation,
    GenerationTimeout,
    GeneratorError,
    MacroOutOfBand,
    MealPlanError,
    MeasurementIncomplete,
    SafetyViolation,
)
from mealweave.generation.normalize import fix_measurements
from mealweave.models import ConstraintProfile, Meal, MealType
from mealweave.nutrition.estimator import estimate_macros
from mealweave.planning.rules import safety_names

# Violation kinds
SCHEMA = "schema"
MEASUREMENTS = "measurements"
SAFETY = "safety"
APPROPRIATENESS = "appropriateness"
MACROS = "macros"
TIMEOUT = "timeout"
TRANSPORT = "transport"

ERROR_CLASSES: dict[str, type[MealPlanError]] = {
    SCHEMA: MealPlanError,
    MEASUREMENTS: MeasurementIncomplete,
    SAFETY: SafetyViolation,
    APPROPRIATENESS: AppropriatenessViolation,
    MACROS: MacroOutOfBand,
    TIMEOUT: GenerationTimeout,
    TRANSPORT: GeneratorError,
}

BREAKFAST_KEYWORDS = [
    "parfait", "yogurt", "oatmeal", "cereal", "pancake", "waffle", "toast",
    "bagel", "muffin", "smoothie", "granola",
]
SNACK_KEYWORDS = ["chip", "cookie", "cracker", "nuts", "trail mix", "fruit cup", "energy bar"]
DINNER_KEYWORDS = ["steak", "roast", "casserole", "curry", "stir fry", "beef", "pork chop"]

MACRO_TOLERANCE = 0.10


@dataclass(frozen=True)
class Violation:
    """A failed gate: its kind and a short machine-readable reason."""

    kind: str
    reason: str

    def __str__(self) -> str:
        return self.reason

    @property
    def error_class(self) -> type[MealPlanError]:
        return ERROR_CLASSES.get(self.kind, MealPlanError)

    def to_error(self) -> MealPlanError:
        return self.error_class(self.reason)


@dataclass
class GateResult:
    """Outcome of running every gate on one meal.

    Attributes:
        meal: The meal after measurement fixing
        violation: First failed gate, or None
        measurements_fixed: True when the fixer had to complete amounts
    """

    meal: Meal
    violation: Optional[Violation] = None
    measurements_fixed: bool = False

    @property
    def ok(self) -> bool:
        return self.violation is None


def incomplete_ingredients(meal: Meal) -> list[str]:
    """Names of ingredients without a positive quantity and a recognized unit."""
    return [
        i.name
        for i in meal.ingredients
        if i.quantity is None or i.quantity <= 0 or not is_recognized_unit(i.unit)
    ]


def check_measurements(meal: Meal) -> tuple[Meal, Optional[Violation], bool]:
    """Check amounts, running the fixer once if any are incomplete.

    Returns:
        (meal, violation, fixed) where ``meal`` is the fixed copy when the
        fixer ran
    """
    if not incomplete_ingredients(meal):
        return meal, None, False
    fixed = fix_measurements(meal)
    missing = incomplete_ingredients(fixed)
    if missing:
        return fixed, Violation(MEASUREMENTS, f"measurements:{missing[0]}"), True
    return fixed, None, True


def check_safety(
    meal: Meal,
    profile: ConstraintProfile,
    extra_allergens: Iterable[str] = (),
    medical_flags: Iterable[str] = (),
) -> Optional[Violation]:
    reason = find_safety_violation(
        safety_names(meal),
        profile,
        extra_allergens=extra_allergens,
        extra_medical_flags=medical_flags,
    )
    return Violation(SAFETY, reason) if reason else None


def check_appropriateness(meal: Meal, meal_type: MealType) -> Optional[Violation]:
    """Reject meals that look like they belong to another slot type.

    Breakfast dishes are rejected for dinner, snack foods for any main slot,
    and heavy dinner dishes for breakfast.
    """
    text = [meal.name.lower()] + meal.ingredient_names
    if meal_type == MealType.DINNER and first_match(BREAKFAST_KEYWORDS, text):
        return Violation(
            APPROPRIATENESS,
            f"meal_type_mismatch:{meal.name} appears to be breakfast but assigned as dinner",
        )
    if meal_type != MealType.SNACK and first_match(SNACK_KEYWORDS, text):
        return Violation(
            APPROPRIATENESS,
            f"meal_type_mismatch:{meal.name} appears to be snack but assigned as {meal_type.value}",
        )
    if meal_type == MealType.BREAKFAST and first_match(DINNER_KEYWORDS, text):
        return Violation(
            APPROPRIATENESS,
            f"meal_type_mismatch:{meal.name} appears to be dinner but assigned as breakfast",
        )
    return None


def check_macros(
    meal: Meal,
    profile: ConstraintProfile,
    slots_per_day: int,
    reference: Optional[MacroReference] = None,
) -> Optional[Violation]:
    """Check calories against the per-meal share and protein against its floor.

    Skipped when no per-meal calorie target exists, or when the meal has no
    declared calories and the estimator recognizes none of its ingredients.
    """
    target = profile.per_meal_calories(slots_per_day)
    if not target:
        return None

    nutrition = meal.nutrition
    estimate = None
    if nutrition.calories is None or nutrition.protein is None:
        estimate = estimate_macros(meal.ingredients, reference)

    calories = nutrition.calories
    if calories is None and estimate is not None:
        calories = estimate.calories
    if calories is None:
        return None

    floor = target * (1 - MACRO_TOLERANCE)
    ceiling = target * (1 + MACRO_TOLERANCE)
    if calories < floor:
        return Violation(MACROS, f"kcal_low:{calories:.0f} < {floor:.0f}")
    if calories > ceiling:
        return Violation(MACROS, f"kcal_high:{calories:.0f} > {ceiling:.0f}")

    if profile.protein_per_meal:
        protein = nutrition.protein
        if protein is None and estimate is not None:
            protein = estimate.protein
        if protein is not None and protein < profile.protein_per_meal:
            return Violation(MACROS, f"protein_low:{protein:.0f} < {profile.protein_per_meal:.0f}")
    return None


def run_gates(
    meal: Meal,
    meal_type: MealType,
    profile: ConstraintProfile,
    slots_per_day: int = 3,
    extra_allergens: Iterable[str] = (),
    medical_flags: Iterable[str] = (),
    reference: Optional[MacroReference] = None,
) -> GateResult:
    """Run every gate in order and stop at the first violation.

    Args:
        meal: Normalized meal
        meal_type: Slot type the meal is meant for
        profile: User constraint profile
        slots_per_day: Slots sharing the daily calorie target
        extra_allergens: Request-level allergens
        medical_flags: Request-level medical flags
        reference: Macro reference for the estimator

    Returns:
        GateResult with the (possibly fixed) meal and the first violation
    """
    meal, violation, fixed = check_measurements(meal)
    if violation:
        return GateResult(meal, violation, fixed)

    violation = (
        check_safety(meal, profile, extra_allergens, medical_flags)
        or check_appropriateness(meal, meal_type)
        or check_macros(meal, profile, slots_per_day, reference)
    )
    return GateResult(meal, violation, fixed)
