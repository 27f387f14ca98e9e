"""Preference scoring for candidate pools.

Scores are deterministic and ranking is a stable sort, so equal scores keep
their input order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from mealweave.data.ontology import term_matches
from mealweave.models import ConstraintProfile, Goal, Meal, MealType

LIKED_WEIGHT = 2.0
DIET_TAG_WEIGHT = 2.0
CUISINE_WEIGHT = 1.0
SIMPLICITY_PER_INGREDIENT = 0.1
SIMPLICITY_BASELINE = 8
SIMPLICITY_CAP = 0.8
SPEED_PER_MINUTE = 0.02
SPEED_BASELINE = 45
SPEED_CAP = 0.9
GOAL_BONUS = 0.5

# Calorie ceiling that earns the weight-loss bonus, per meal type
LOW_CALORIE_THRESHOLDS = {
    MealType.BREAKFAST: 350.0,
    MealType.LUNCH: 450.0,
    MealType.DINNER: 450.0,
    MealType.SNACK: 200.0,
}
HIGH_PROTEIN_THRESHOLD = 30.0


@dataclass
class Preferences:
    """What the scorer rewards."""

    liked_ingredients: list[str] = field(default_factory=list)
    diet: Optional[str] = None
    cuisines: list[str] = field(default_factory=list)
    goal: Goal = Goal.MAINTAIN

    @classmethod
    def from_profile(cls, profile: ConstraintProfile) -> "Preferences":
        return cls(
            liked_ingredients=list(profile.liked_ingredients) + list(profile.must_include),
            diet=profile.diet,
            cuisines=[c.lower() for c in profile.cuisines_preferred],
            goal=profile.goal,
        )


def liked_hits(meal: Meal, liked: Iterable[str]) -> int:
    """Number of liked terms found among the meal's ingredients."""
    names = meal.ingredient_names
    return sum(1 for term in liked if any(term_matches(term, n) for n in names))


def score_meal(meal: Meal, prefs: Preferences) -> float:
    """Score one meal against a preference set."""
    score = LIKED_WEIGHT * liked_hits(meal, prefs.liked_ingredients)

    if prefs.diet and prefs.diet.lower() in {t.lower() for t in meal.diet_tags}:
        score += DIET_TAG_WEIGHT
    if meal.cuisine and meal.cuisine.lower() in prefs.cuisines:
        score += CUISINE_WEIGHT

    score += min(
        SIMPLICITY_CAP,
        max(0, SIMPLICITY_BASELINE - len(meal.ingredients)) * SIMPLICITY_PER_INGREDIENT,
    )
    score += min(SPEED_CAP, max(0, SPEED_BASELINE - meal.total_minutes) * SPEED_PER_MINUTE)

    n = meal.nutrition
    if prefs.goal == Goal.LOSS and n.calories is not None:
        if n.calories <= LOW_CALORIE_THRESHOLDS[meal.meal_type]:
            score += GOAL_BONUS
    elif prefs.goal == Goal.GAIN and n.protein is not None:
        if n.protein >= HIGH_PROTEIN_THRESHOLD:
            score += GOAL_BONUS
    return round(score, 6)


def rank_pool(pool: Iterable[Meal], prefs: Preferences) -> list[Meal]:
    """Return the pool sorted by descending score (stable)."""
    return sorted(pool, key=lambda m: score_meal(m, prefs), reverse=True)
