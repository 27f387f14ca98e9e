"""Macro estimation from ingredient lists.

Each recognized ingredient becomes a row of grams; totals are the grams
vector times the per-100 g density matrix of the matched reference foods.
Unrecognized ingredients are skipped. When nothing is recognized the
estimate is None, which callers treat as "unknown" rather than zero.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

import numpy as np

from mealweave.data.macro_reference import MacroReference, get_reference
from mealweave.data.ontology import first_match
from mealweave.generation.quantities import parse_ingredient_line
from mealweave.models import Ingredient, Meal

logger = logging.getLogger(__name__)

IngredientLike = Union[Ingredient, str]

STARCHY_TERMS = [
    "rice", "oats", "oatmeal", "potato", "sweet potato", "quinoa", "pasta",
    "bread", "toast", "tortilla", "noodle", "couscous", "bulgur", "barley",
    "corn", "black beans", "kidney beans", "pinto beans", "lentil", "chickpea", "granola",
    "crouton", "bagel", "wrap",
]


@dataclass
class MacroTotals:
    """Estimated macro totals for an ingredient list.

    Attributes:
        calories: kcal
        protein: grams
        carbs: grams
        fat: grams
        matched: Number of ingredients found in the reference table
        unmatched: Names of ingredients that were not found
    """

    calories: float
    protein: float
    carbs: float
    fat: float
    matched: int = 0
    unmatched: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "calories": round(self.calories, 1),
            "protein": round(self.protein, 1),
            "carbs": round(self.carbs, 1),
            "fat": round(self.fat, 1),
            "matched": self.matched,
            "unmatched": list(self.unmatched),
        }


def _as_ingredient(item: IngredientLike) -> Ingredient:
    if isinstance(item, Ingredient):
        return item
    return parse_ingredient_line(item)


def ingredient_macro_rows(
    ingredients: Iterable[IngredientLike],
    reference: Optional[MacroReference] = None,
) -> tuple[np.ndarray, list[Ingredient], list[str]]:
    """Per-ingredient macro rows for the recognized ingredients.

    Returns:
        (rows, matched ingredients, unmatched names). ``rows`` has one row
        per matched ingredient with columns kcal, protein, carbs, fat.
    """
    reference = reference or get_reference()
    grams: list[float] = []
    indices: list[int] = []
    matched: list[Ingredient] = []
    unmatched: list[str] = []

    for item in ingredients:
        ingredient = _as_ingredient(item)
        food = reference.lookup(ingredient.name)
        if food is None:
            unmatched.append(ingredient.name)
            continue
        grams.append(reference.grams_for(food, ingredient.quantity, ingredient.unit))
        indices.append(reference.index_of(food))
        matched.append(ingredient)

    if not matched:
        return np.zeros((0, 4)), matched, unmatched

    # Scale each matched density row by grams / 100
    weights = np.asarray(grams, dtype=float)[:, None] / 100.0
    rows = reference.matrix[indices] * weights
    return rows, matched, unmatched


def estimate_macros(
    ingredients: Iterable[IngredientLike],
    reference: Optional[MacroReference] = None,
) -> Optional[MacroTotals]:
    """Estimate calories, protein, carbs and fat for an ingredient list.

    Args:
        ingredients: Ingredient objects or free-text lines ("1/2 cup rice")
        reference: Density table; defaults to the built-in reference

    Returns:
        MacroTotals, or None when no ingredient is recognized
    """
    rows, matched, unmatched = ingredient_macro_rows(ingredients, reference)
    if not matched:
        logger.debug("No reference match for %d ingredients", len(unmatched))
        return None
    kcal, protein, carbs, fat = rows.sum(axis=0)
    return MacroTotals(
        calories=float(kcal),
        protein=float(protein),
        carbs=float(carbs),
        fat=float(fat),
        matched=len(matched),
        unmatched=unmatched,
    )


def derive_carb_split(meal: Meal, reference: Optional[MacroReference] = None) -> tuple[float, float]:
    """Split a meal's carbs into (starchy, fibrous) grams.

    Estimated carbs per ingredient are classified as starchy or fibrous and
    the declared carb total is divided in the same proportion. Without any
    estimate, fibrous carbs are approximated at 5 g per vegetable cup.
    """
    total = meal.nutrition.carbs or 0.0
    if total <= 0:
        return 0.0, 0.0

    rows, matched, _ = ingredient_macro_rows(meal.ingredients, reference)
    starchy_est = 0.0
    fibrous_est = 0.0
    for row, ingredient in zip(rows, matched):
        if first_match(STARCHY_TERMS, [ingredient.name]):
            starchy_est += float(row[2])
        else:
            fibrous_est += float(row[2])

    if starchy_est + fibrous_est > 0:
        starchy = total * starchy_est / (starchy_est + fibrous_est)
    else:
        starchy = max(0.0, total - meal.nutrition.vegetable_cups * 5.0)
    starchy = round(starchy, 1)
    return starchy, round(total - starchy, 1)
