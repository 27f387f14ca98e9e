"""Exception taxonomy for plan assembly and meal generation."""

from __future__ import annotations

from typing import Optional


class MealPlanError(Exception):
    """Base exception for mealweave errors."""

    pass


class SafetyViolation(MealPlanError):
    """A meal matched an allergen, diet-pack, exclusion or avoid-list term."""

    pass


class AppropriatenessViolation(MealPlanError):
    """A meal looks like it belongs to a different slot type."""

    pass


class MacroOutOfBand(MealPlanError):
    """Estimated or declared macros fall outside the per-meal band."""

    pass


class MeasurementIncomplete(MealPlanError):
    """An ingredient still lacks a quantity or unit after fixing."""

    pass


class PoolExhausted(MealPlanError):
    """Raised when no safe candidate exists for a slot type at any tier."""

    def __init__(self, meal_type: str, rejects: Optional[dict[str, int]] = None):
        self.meal_type = meal_type
        self.rejects = rejects or {}
        detail = ""
        if self.rejects:
            top = sorted(self.rejects.items(), key=lambda kv: -kv[1])[:3]
            detail = " (rejected: " + ", ".join(f"{r}={n}" for r, n in top) + ")"
        super().__init__(f"no safe candidate available for {meal_type}{detail}")


class GeneratorError(MealPlanError):
    """The external meal generator failed (transport or bad response)."""

    pass


class GenerationTimeout(MealPlanError):
    """An external call or a whole plan request exceeded its deadline."""

    pass


class GenerationExhausted(MealPlanError):
    """Raised when the retry ceiling is reached with no passing meal."""

    def __init__(self, last_violation: str, attempts: int = 0):
        self.last_violation = last_violation
        self.attempts = attempts
        super().__init__(f"generation failed: {last_violation}")


class VarietyCapsNotMet(MealPlanError):
    """Raised when best-effort plans are rejected and repair did not converge."""

    pass
