"""Normalization of raw generator output into canonical Meal objects.

Generators return loosely-shaped records: the name may be under ``title``,
ingredients may be objects, strings, a mapping or one newline-separated
blob, and macros may sit at the top level or under ``nutrition``. Everything
goes through ``RawMealPayload`` once; nothing downstream sees the raw record.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import replace
from typing import Any, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from mealweave.data.ontology import term_matches
from mealweave.data.units import is_recognized_unit, normalize_unit, snap_quantity
from mealweave.generation.quantities import parse_amount, parse_ingredient_line, split_descriptors
from mealweave.models import Ingredient, Meal, MealType, Nutrition

# Ingredient term -> unit used when the generator gave a bare number
UNIT_DEFAULTS: list[tuple[str, str]] = [
    ("cucumber", "medium"),
    ("lemon", "medium"),
    ("lime", "medium"),
    ("egg", "large"),
    ("onion", "small"),
    ("garlic", "clove"),
    ("olive oil", "tbsp"),
    ("oil", "tbsp"),
    ("salt", "tsp"),
    ("bell pepper", "medium"),
    ("pepper", "tsp"),
    ("vinegar", "tbsp"),
    ("yogurt", "cup"),
    ("milk", "cup"),
    ("rice", "cup"),
    ("pasta", "oz"),
    ("cheese", "oz"),
    ("chicken", "oz"),
    ("beef", "oz"),
    ("turkey", "oz"),
    ("salmon", "oz"),
    ("pork", "oz"),
    ("tofu", "oz"),
    ("fish", "oz"),
    ("shrimp", "oz"),
]

DEFAULT_NUMERIC_UNIT = "cup"
DEFAULT_MISSING_UNIT = "unit"

_LEADING_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def guess_unit(name: str) -> Optional[str]:
    """Guess a unit from the ingredient name, or None if nothing matches."""
    for term, unit in UNIT_DEFAULTS:
        if term_matches(term, name):
            return unit
    return None


def _coerce_number(value: Any) -> Optional[float]:
    """Read 350, "350", "350 kcal" or "~35g" as a float."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = _LEADING_NUMBER.search(str(value))
    return float(match.group()) if match else None


class RawIngredient(BaseModel):
    """One ingredient as the generator sent it."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(validation_alias=AliasChoices("name", "item", "ingredient"))
    amount: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("amount", "quantity", "qty", "measure")
    )
    unit: Optional[str] = Field(default=None, validation_alias=AliasChoices("unit", "units"))
    notes: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_to_text(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return f"{value:g}"
        return str(value)

    def to_ingredient(self) -> Ingredient:
        name, notes = split_descriptors(self.name)
        quantity, parsed_unit = parse_amount(self.amount) if self.amount else (None, "")
        unit = normalize_unit(self.unit) if self.unit else parsed_unit
        all_notes = ", ".join(n for n in (notes, self.notes or "") if n)
        return Ingredient(name=name, quantity=quantity, unit=unit, notes=all_notes)


class RawMealPayload(BaseModel):
    """Tolerant model of a generator response."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = Field(
        min_length=1, validation_alias=AliasChoices("name", "title", "mealName", "meal_name")
    )
    description: str = ""
    ingredients: list[Any] = Field(min_length=1)
    instructions: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("instructions", "steps", "directions", "method"),
    )
    calories: Optional[float] = Field(default=None, validation_alias=AliasChoices("calories", "kcal"))
    protein: Optional[float] = None
    carbs: Optional[float] = Field(default=None, validation_alias=AliasChoices("carbs", "carbohydrates"))
    fat: Optional[float] = Field(default=None, validation_alias=AliasChoices("fat", "fats"))
    fiber: Optional[float] = None
    badges: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("badges", "medicalBadges", "medical_badges")
    )
    labels: list[str] = Field(default_factory=list, validation_alias=AliasChoices("labels", "dietTags", "tags"))
    cuisine: str = ""
    prep_minutes: int = Field(default=0, validation_alias=AliasChoices("prep_minutes", "prepTime", "prep_time"))
    cook_minutes: int = Field(default=0, validation_alias=AliasChoices("cook_minutes", "cookTime", "cook_time"))
    servings: int = 1

    @model_validator(mode="before")
    @classmethod
    def _lift_nutrition(cls, data: Any) -> Any:
        """Copy macros found under ``nutrition`` or ``macros`` to the top level."""
        if not isinstance(data, Mapping):
            return data
        merged = dict(data)
        for key in ("nutrition", "macros"):
            nested = merged.get(key)
            if isinstance(nested, Mapping):
                for field, value in nested.items():
                    merged.setdefault(field, value)
        return merged

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("ingredients", mode="before")
    @classmethod
    def _coerce_ingredients(cls, value: Any) -> list[Ingredient]:
        if value is None:
            return []
        if isinstance(value, str):
            lines = [line for line in value.splitlines() if line.strip()]
            return [parse_ingredient_line(line) for line in lines]
        if isinstance(value, Mapping):
            items = []
            for name, amount in value.items():
                items.append(RawIngredient(name=str(name), amount=amount).to_ingredient())
            return items
        items = []
        for item in value:
            if isinstance(item, Ingredient):
                items.append(item)
            elif isinstance(item, str):
                if item.strip():
                    items.append(parse_ingredient_line(item))
            else:
                items.append(RawIngredient.model_validate(item).to_ingredient())
        return [i for i in items if i.name]

    @field_validator("instructions", mode="before")
    @classmethod
    def _coerce_instructions(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            lines = [re.sub(r"^\s*(?:\d+[.)]|[-*•])\s*", "", line) for line in value.splitlines()]
            return [line.strip() for line in lines if line.strip()]
        return [str(step).strip() for step in value if str(step).strip()]

    @field_validator("calories", "protein", "carbs", "fat", "fiber", mode="before")
    @classmethod
    def _coerce_macro(cls, value: Any) -> Optional[float]:
        return _coerce_number(value)

    @field_validator("prep_minutes", "cook_minutes", "servings", mode="before")
    @classmethod
    def _coerce_int(cls, value: Any) -> int:
        number = _coerce_number(value)
        return int(number) if number is not None else 0

    @field_validator("badges", "labels", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [t.strip() for t in value.split(",") if t.strip()]
        return [str(t) for t in value]


def normalize_meal(
    raw: Mapping[str, Any],
    meal_type: MealType,
    meal_id: Optional[str] = None,
) -> Meal:
    """Map a raw generator record into a Meal.

    Unparseable amounts are left unset so the measurement check can see them.

    Raises:
        pydantic.ValidationError: If the record has no name or no ingredients.
    """
    payload = RawMealPayload.model_validate(raw)
    return Meal(
        id=meal_id or f"gen-{uuid.uuid4().hex[:12]}",
        name=payload.name,
        meal_type=meal_type,
        nutrition=Nutrition(
            calories=payload.calories,
            protein=payload.protein,
            carbs=payload.carbs,
            fat=payload.fat,
            fiber=payload.fiber or 0.0,
        ),
        diet_tags=payload.labels,
        badges=payload.badges,
        ingredients=payload.ingredients,
        steps=payload.instructions,
        prep_minutes=payload.prep_minutes,
        cook_minutes=payload.cook_minutes,
        servings=payload.servings or 1,
        cuisine=payload.cuisine.lower(),
        description=payload.description,
        source="generated",
    )


def fix_ingredient(ingredient: Ingredient) -> Ingredient:
    """Complete one ingredient's amount.

    - decimals snap to kitchen fractions (0.33 -> 1/3)
    - a bare number gets a unit guessed from the name, default "cup"
    - a missing amount becomes 1 of the guessed unit, default "unit"
    - an unrecognized unit moves to the notes
    """
    quantity = ingredient.quantity
    unit = normalize_unit(ingredient.unit)
    notes = ingredient.notes
    if unit and not is_recognized_unit(unit):
        notes = ", ".join(n for n in (notes, unit) if n)
        unit = ""
    if quantity is None or quantity <= 0:
        quantity = 1.0
        unit = unit or guess_unit(ingredient.name) or DEFAULT_MISSING_UNIT
    else:
        quantity = snap_quantity(quantity)
        unit = unit or guess_unit(ingredient.name) or DEFAULT_NUMERIC_UNIT
    return replace(ingredient, quantity=quantity, unit=unit, notes=notes)


def fix_measurements(meal: Meal) -> Meal:
    """Return a copy of the meal with every ingredient amount completed."""
    return replace(meal, ingredients=tuple(fix_ingredient(i) for i in meal.ingredients))
