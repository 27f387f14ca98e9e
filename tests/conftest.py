"""Pytest fixtures for mealweave tests."""

from __future__ import annotations

import asyncio
import tempfile
from pathlib import Path
from typing import Any, Optional

import pytest

from mealweave.config.settings import Settings, reload_settings
from mealweave.data.catalog import builtin_catalog
from mealweave.db.connection import DatabaseConnection, set_db
from mealweave.generation.client import CallableMealGenerator, GenerationRequest
from mealweave.models import Ingredient, Meal, MealType, Nutrition


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path):
    """Keep tests away from ~/.mealweave: defaults only, database under tmp_path."""
    settings = reload_settings(tmp_path / "missing-config.yaml")
    settings.storage.path = tmp_path / "mealweave.db"
    set_db(None)
    yield
    set_db(None)
    reload_settings(tmp_path / "missing-config.yaml")


@pytest.fixture
def temp_db():
    """Create a temporary database with schema."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    db = DatabaseConnection(db_path)
    db.initialize_schema()

    yield db

    # Cleanup
    db_path.unlink(missing_ok=True)


@pytest.fixture
def settings():
    """Default settings with a short plan timeout."""
    s = Settings()
    s.generation.plan_timeout_seconds = 10.0
    return s


@pytest.fixture
def catalog():
    """The built-in template catalog."""
    return builtin_catalog()


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


def make_meal(
    name: str,
    meal_type: MealType = MealType.LUNCH,
    ingredients: Optional[list[tuple[str, float, str]]] = None,
    calories: Optional[float] = 450.0,
    protein: Optional[float] = 35.0,
    carbs: Optional[float] = 55.0,
    fat: Optional[float] = 12.0,
    vegetable_cups: float = 2.0,
    cuisine: str = "american",
    **kwargs: Any,
) -> Meal:
    """Build a Meal with sensible defaults for tests."""
    ingredients = ingredients if ingredients is not None else [
        ("chicken breast", 5, "oz"),
        ("broccoli", 1, "cup"),
        ("brown rice", 0.5, "cup"),
    ]
    return Meal(
        id=kwargs.pop("id", f"test-{name.lower().replace(' ', '-')}"),
        name=name,
        meal_type=meal_type,
        nutrition=Nutrition(
            calories=calories,
            protein=protein,
            carbs=carbs,
            fat=fat,
            vegetable_cups=vegetable_cups,
        ),
        ingredients=[Ingredient(n, float(q), u) for n, q, u in ingredients],
        cuisine=cuisine,
        **kwargs,
    )


@pytest.fixture
def meal_factory():
    """Factory for test meals (see ``make_meal``)."""
    return make_meal


def meal_record(name: str, *ingredients: tuple[str, str], **extra: Any) -> dict[str, Any]:
    """Raw generator record with ``(name, amount)`` ingredient pairs."""
    record: dict[str, Any] = {
        "name": name,
        "ingredients": [{"name": n, "amount": a} for n, a in ingredients],
        "instructions": ["Prep", "Cook", "Serve"],
        "cuisine": "american",
    }
    record.update(extra)
    return record


# Default records per slot type; names are unique per call via the counter
DEFAULT_RECORDS: dict[str, tuple[str, list[tuple[str, str]]]] = {
    "breakfast": ("Spinach Egg Skillet", [("eggs", "2 large"), ("spinach", "1 cup")]),
    "lunch": ("Chicken Grain Bowl", [("chicken breast", "5 oz"), ("quinoa", "1/2 cup")]),
    "dinner": ("Herb Turkey Plate", [("ground turkey", "5 oz"), ("green beans", "1 cup")]),
    "snack": ("Berry Cup", [("berries", "1 cup"), ("greek yogurt", "1/2 cup")]),
}


class ScriptedGenerator:
    """Async generator that serves queued records per slot type.

    When a type's queue is empty it falls back to a fresh default record
    whose name carries a running number, so every fallback meal is distinct.
    """

    def __init__(self, scripts: Optional[dict[str, list[dict[str, Any]]]] = None, delay: float = 0.0):
        self.scripts = {k: list(v) for k, v in (scripts or {}).items()}
        self.delay = delay
        self.requests: list[GenerationRequest] = []
        self.counter = 0

    async def __call__(self, request: GenerationRequest) -> dict[str, Any]:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        queue = self.scripts.get(request.meal_type.value)
        if queue:
            return queue.pop(0)
        self.counter += 1
        name, ingredients = DEFAULT_RECORDS[request.meal_type.value]
        return meal_record(f"{name} {self.counter}", *ingredients)


@pytest.fixture
def scripted():
    """Factory returning (CallableMealGenerator, ScriptedGenerator) pairs."""

    def make(scripts=None, delay: float = 0.0):
        script = ScriptedGenerator(scripts, delay)
        return CallableMealGenerator(script.__call__), script

    return make
