"""Reference ingredient -> macro density table.

Densities are per 100 g, in the same basis as USDA FoodData Central. Each
entry also knows roughly how much one piece and one cup weigh, so recipe
amounts like "1 medium cucumber" or "1/2 cup rice" can be converted to grams.

The default table covers the staples that show up in templates and generated
meals. A YAML file can extend or override it:

    foods:
      - name: skyr
        kcal: 63
        protein: 11
        carbs: 4
        fat: 0.2
        cup_grams: 245
        aliases: [icelandic yogurt]
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import numpy as np
import yaml

# Grams per unit for mass and volume units (volume assumes water density
# unless the food overrides cup_grams)
UNIT_GRAMS: dict[str, float] = {
    "g": 1.0,
    "kg": 1000.0,
    "oz": 28.35,
    "lb": 453.6,
    "ml": 1.0,
    "l": 1000.0,
    "tsp": 5.0,
    "tbsp": 15.0,
    "cup": 240.0,
    "clove": 5.0,
    "slice": 30.0,
    "scoop": 30.0,
    "packet": 30.0,
    "can": 400.0,
    "pinch": 0.5,
    "dash": 0.5,
}

# Units that mean "one of the thing" and use the food's each_grams
COUNT_UNITS = {"", "piece", "each", "unit", "serving", "medium"}
SIZE_FACTORS = {"small": 0.75, "medium": 1.0, "large": 1.25}

MACRO_COLUMNS = ("kcal", "protein", "carbs", "fat")


@dataclass(frozen=True)
class FoodDensity:
    """Macro density for one reference food.

    Attributes:
        name: Canonical name (matched whole-word against ingredient names)
        kcal: Calories per 100 g
        protein: Protein grams per 100 g
        carbs: Carbohydrate grams per 100 g
        fat: Fat grams per 100 g
        each_grams: Weight of one piece / one medium item
        cup_grams: Weight of one cup
        aliases: Other names that map to this food
    """

    name: str
    kcal: float
    protein: float
    carbs: float
    fat: float
    each_grams: float = 100.0
    cup_grams: float = 240.0
    aliases: tuple[str, ...] = ()

    @property
    def terms(self) -> tuple[str, ...]:
        return (self.name,) + tuple(self.aliases)

    def as_row(self) -> list[float]:
        return [self.kcal, self.protein, self.carbs, self.fat]


def _food(name, kcal, protein, carbs, fat, each=100.0, cup=240.0, aliases=()):
    return FoodDensity(name, kcal, protein, carbs, fat, each, cup, tuple(aliases))


DEFAULT_FOODS: list[FoodDensity] = [
    # Proteins
    _food("chicken breast", 165, 31, 0, 3.6, each=170, cup=140, aliases=["chicken"]),
    _food("chicken thigh", 209, 26, 0, 10.9, each=115, cup=140),
    _food("ground turkey", 189, 27, 0, 8.3, cup=225, aliases=["turkey"]),
    _food("lean beef", 217, 26, 0, 12, each=150, cup=225, aliases=["beef", "steak", "sirloin"]),
    _food("pork loin", 242, 27, 0, 14, each=150, aliases=["pork", "pork chop"]),
    _food("salmon", 208, 20, 0, 13, each=170, cup=225),
    _food("tuna", 132, 28, 0, 1.3, each=140, cup=225),
    _food("cod", 82, 18, 0, 0.7, each=170),
    _food("shrimp", 99, 24, 0.2, 0.3, each=6, cup=145),
    _food("egg", 143, 12.6, 0.7, 9.5, each=50, cup=243),
    _food("egg white", 52, 10.9, 0.7, 0.2, each=33, cup=243),
    _food("tofu", 144, 17, 3, 8.7, each=120, cup=250),
    _food("tempeh", 192, 20, 7.6, 10.8, each=85, cup=166),
    # Dairy
    _food("greek yogurt", 59, 10, 3.6, 0.4, each=170, cup=245),
    _food("yogurt", 61, 3.5, 4.7, 3.3, each=170, cup=245),
    _food("cottage cheese", 98, 11, 3.4, 4.3, cup=225),
    _food("milk", 61, 3.2, 4.8, 3.3, cup=244),
    _food("cheese", 402, 25, 1.3, 33, each=28, cup=113, aliases=["cheddar"]),
    _food("feta", 264, 14, 4.1, 21, cup=150),
    _food("parmesan", 431, 38, 4.1, 29, cup=100),
    _food("butter", 717, 0.9, 0.1, 81, each=14, cup=227),
    # Grains and starches
    _food("brown rice", 112, 2.3, 23.5, 0.8, cup=195),
    _food("rice", 130, 2.7, 28, 0.3, cup=158, aliases=["white rice"]),
    _food("quinoa", 120, 4.4, 21.3, 1.9, cup=185),
    _food("oats", 389, 16.9, 66.3, 6.9, cup=81, aliases=["rolled oats", "oatmeal"]),
    _food("pasta", 131, 5, 25, 1.1, cup=140, aliases=["spaghetti", "penne"]),
    _food("whole wheat bread", 247, 13, 41, 3.4, each=32, aliases=["bread", "toast"]),
    _food("tortilla", 306, 8, 50, 8, each=45),
    _food("potato", 77, 2, 17, 0.1, each=170, cup=150),
    _food("sweet potato", 86, 1.6, 20, 0.1, each=130, cup=133),
    _food("granola", 471, 10, 64, 20, cup=122),
    _food("black beans", 132, 8.9, 23.7, 0.5, cup=172, aliases=["beans"]),
    _food("chickpeas", 164, 8.9, 27.4, 2.6, cup=164, aliases=["chickpea"]),
    _food("lentils", 116, 9, 20, 0.4, cup=198, aliases=["lentil"]),
    # Vegetables
    _food("broccoli", 34, 2.8, 6.6, 0.4, each=150, cup=91),
    _food("spinach", 23, 2.9, 3.6, 0.4, cup=30),
    _food("kale", 49, 4.3, 8.8, 0.9, cup=67),
    _food("mixed greens", 20, 1.5, 3.5, 0.2, cup=36, aliases=["salad greens", "lettuce", "romaine"]),
    _food("bell pepper", 31, 1, 6, 0.3, each=120, cup=149),
    _food("tomato", 18, 0.9, 3.9, 0.2, each=123, cup=180),
    _food("cucumber", 15, 0.7, 3.6, 0.1, each=300, cup=104),
    _food("zucchini", 17, 1.2, 3.1, 0.3, each=200, cup=124),
    _food("carrot", 41, 0.9, 9.6, 0.2, each=61, cup=128),
    _food("onion", 40, 1.1, 9.3, 0.1, each=110, cup=160),
    _food("garlic", 149, 6.4, 33, 0.5, each=5, cup=136),
    _food("asparagus", 20, 2.2, 3.9, 0.1, each=16, cup=134),
    _food("green beans", 31, 1.8, 7, 0.2, cup=100),
    _food("mushroom", 22, 3.1, 3.3, 0.3, each=18, cup=70),
    _food("cauliflower", 25, 1.9, 5, 0.3, cup=107),
    # Fruit
    _food("apple", 52, 0.3, 14, 0.2, each=182, cup=125),
    _food("banana", 89, 1.1, 23, 0.3, each=118, cup=150),
    _food("berries", 57, 0.7, 14.5, 0.3, cup=148, aliases=["blueberries", "strawberries", "mixed berries"]),
    _food("avocado", 160, 2, 8.5, 14.7, each=150, cup=150),
    _food("lemon", 29, 1.1, 9.3, 0.3, each=58),
    # Fats, nuts, condiments
    _food("olive oil", 884, 0, 0, 100, cup=216, aliases=["oil"]),
    _food("almonds", 579, 21, 22, 50, each=1.2, cup=143, aliases=["almond"]),
    _food("walnuts", 654, 15, 14, 65, cup=117),
    _food("peanut butter", 588, 25, 20, 50, cup=258),
    _food("hummus", 166, 7.9, 14.3, 9.6, cup=246),
    _food("honey", 304, 0.3, 82, 0, cup=339),
    _food("protein powder", 400, 80, 8, 6, each=30, aliases=["whey protein"]),
]


def _norm(text: str) -> str:
    return " ".join(str(text).strip().lower().replace("-", " ").split())


def _contains(term: str, text: str) -> bool:
    pattern = rf"(?<![a-z]){re.escape(term)}(?:s|es)?(?![a-z])"
    return re.search(pattern, text) is not None


@dataclass
class MacroReference:
    """Lookup table from ingredient names to macro densities."""

    foods: list[FoodDensity] = field(default_factory=lambda: list(DEFAULT_FOODS))

    def __post_init__(self) -> None:
        self._index = {food.name: i for i, food in enumerate(self.foods)}
        self._matrix = np.array([f.as_row() for f in self.foods], dtype=float).reshape(-1, 4)

    def __len__(self) -> int:
        return len(self.foods)

    @property
    def matrix(self) -> np.ndarray:
        """Density matrix, one row per food, columns MACRO_COLUMNS (per 100 g)."""
        return self._matrix

    def index_of(self, food: FoodDensity) -> int:
        return self._index[food.name]

    def lookup(self, ingredient_name: str) -> Optional[FoodDensity]:
        """Find the reference food for an ingredient name.

        The longest matching term wins, so "sweet potato" beats "potato" and
        "greek yogurt" beats "yogurt".
        """
        text = _norm(ingredient_name)
        if not text:
            return None
        best: Optional[FoodDensity] = None
        best_len = 0
        for food in self.foods:
            for term in food.terms:
                if len(term) > best_len and _contains(term, text):
                    best = food
                    best_len = len(term)
        return best

    def grams_for(self, food: FoodDensity, quantity: Optional[float], unit: str) -> float:
        """Convert a recipe amount of a food to grams.

        Missing quantities count as one of the unit.
        """
        qty = float(quantity) if quantity and quantity > 0 else 1.0
        unit = (unit or "").strip().lower()
        if unit in SIZE_FACTORS:
            return qty * food.each_grams * SIZE_FACTORS[unit]
        if unit in COUNT_UNITS:
            return qty * food.each_grams
        if unit == "cup":
            return qty * food.cup_grams
        if unit in UNIT_GRAMS:
            return qty * UNIT_GRAMS[unit]
        # Unknown unit: treat as one piece
        return qty * food.each_grams

    def merged(self, extra: list[FoodDensity]) -> "MacroReference":
        """Return a new reference where extra foods override same-named defaults."""
        by_name = {f.name: f for f in self.foods}
        for food in extra:
            by_name[food.name] = food
        return MacroReference(list(by_name.values()))


def food_from_record(record: dict[str, Any]) -> FoodDensity:
    """Build a FoodDensity from a YAML/JSON record."""
    return FoodDensity(
        name=_norm(record["name"]),
        kcal=float(record.get("kcal", record.get("calories", 0))),
        protein=float(record.get("protein", 0)),
        carbs=float(record.get("carbs", 0)),
        fat=float(record.get("fat", 0)),
        each_grams=float(record.get("each_grams", 100.0)),
        cup_grams=float(record.get("cup_grams", 240.0)),
        aliases=tuple(_norm(a) for a in record.get("aliases") or ()),
    )


def load_reference(path: Optional[Path] = None) -> MacroReference:
    """Load the default reference, extended by an optional YAML file.

    Args:
        path: YAML file with a top-level ``foods`` list

    Returns:
        MacroReference instance
    """
    reference = MacroReference()
    if path is None:
        return reference
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    extra = [food_from_record(r) for r in data.get("foods") or []]
    return reference.merged(extra)


# Global reference instance (lazy loaded)
_reference: Optional[MacroReference] = None


def get_reference() -> MacroReference:
    """Get the shared default reference table."""
    global _reference
    if _reference is None:
        _reference = MacroReference()
    return _reference
