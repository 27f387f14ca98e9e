"""Meal signatures used for de-duplication."""

from __future__ import annotations

from mealweave.models import Meal

SIGNATURE_INGREDIENTS = 5


def meal_signature(meal: Meal) -> str:
    """Name plus the first five ingredient names, lowercased.

    Two meals with equal signatures are treated as the same dish for variety
    purposes. The signature is not an identity: ids and slugs may differ.

    Example:
        "protein oats::rolled oats|whey protein|blueberries|almond milk"
    """
    names = "|".join(meal.ingredient_names[:SIGNATURE_INGREDIENTS])
    return f"{meal.name.strip().lower()}::{names}"
