"""Built-in meal templates and catalog loading.

Templates are pre-authored candidate meals. The built-in set is the fallback
catalog used when no catalog file is given; a YAML or JSON file with a
top-level ``meals`` list (or a bare list) can replace it.

Records are read leniently: ``type`` or ``meal_type``, ``prepTime`` or
``prep_minutes``, macros at the top level or under ``nutrition``, and
ingredient amounts as numbers or free text ("1/2 cup").
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Optional

import yaml

from mealweave.data.units import normalize_unit
from mealweave.generation.quantities import parse_amount, parse_ingredient_line
from mealweave.models import Ingredient, Meal, MealType, Nutrition

logger = logging.getLogger(__name__)


# =============================================================================
# Template builder
# =============================================================================

def _template(
    id: str,
    slug: str,
    name: str,
    meal_type: MealType,
    macros: tuple[float, float, float, float, float, float],
    diet_tags: list[str],
    badges: list[str],
    ingredients: list[tuple[str, float, str]],
    steps: list[str],
    prep: int,
    cook: int,
    cuisine: str,
    difficulty: str = "easy",
    allergens: Optional[list[str]] = None,
) -> Meal:
    """Create a template meal from compact positional data.

    ``macros`` is (calories, protein, carbs, fat, fiber, vegetable cups).
    """
    calories, protein, carbs, fat, fiber, veg = macros
    return Meal(
        id=id,
        slug=slug,
        name=name,
        meal_type=meal_type,
        nutrition=Nutrition(
            calories=float(calories),
            protein=float(protein),
            carbs=float(carbs),
            fat=float(fat),
            fiber=float(fiber),
            vegetable_cups=float(veg),
        ),
        diet_tags=diet_tags,
        badges=badges,
        allergens=allergens or [],
        ingredients=[Ingredient(n, float(q), normalize_unit(u)) for n, q, u in ingredients],
        steps=steps,
        prep_minutes=prep,
        cook_minutes=cook,
        servings=1,
        cuisine=cuisine,
        difficulty=difficulty,
        source="template",
    )


# =============================================================================
# Breakfast
# =============================================================================

BREAKFAST_TEMPLATES = [
    _template(
        "breakfast-1", "protein-oats", "Protein Overnight Oats", MealType.BREAKFAST,
        (340, 28, 35, 8, 6, 0),
        ["balanced", "high-protein"], ["quick-prep", "diabetes-friendly"],
        [
            ("rolled oats", 0.5, "cup"),
            ("protein powder", 1, "scoop"),
            ("almond milk", 1, "cup"),
            ("chia seeds", 1, "tbsp"),
            ("berries", 0.5, "cup"),
        ],
        ["Mix all ingredients", "Refrigerate overnight", "Enjoy cold"],
        prep=5, cook=0, cuisine="american",
    ),
    _template(
        "breakfast-2", "veggie-scramble", "Vegetable Scrambled Eggs", MealType.BREAKFAST,
        (320, 24, 12, 18, 4, 1.5),
        ["balanced", "high-protein"], ["quick-prep", "vegetarian"],
        [
            ("eggs", 3, "large"),
            ("spinach", 1, "cup"),
            ("bell pepper", 0.5, "medium"),
            ("onion", 0.25, "medium"),
            ("cheese", 2, "tbsp"),
        ],
        ["Saute vegetables", "Beat and add eggs", "Scramble together", "Top with cheese"],
        prep=5, cook=10, cuisine="american",
    ),
    _template(
        "breakfast-3", "avocado-toast", "Avocado Toast with Egg", MealType.BREAKFAST,
        (380, 20, 28, 22, 8, 0.5),
        ["balanced", "heart-healthy"], ["quick-prep"],
        [
            ("whole grain bread", 2, "slices"),
            ("avocado", 1, "medium"),
            ("egg", 1, "large"),
            ("tomato", 0.5, "medium"),
        ],
        ["Toast bread", "Mash avocado", "Fry egg", "Assemble and season"],
        prep=5, cook=8, cuisine="american",
    ),
    _template(
        "breakfast-4", "shakshuka", "Shakshuka with Feta", MealType.BREAKFAST,
        (360, 22, 20, 21, 5, 1.5),
        ["mediterranean", "vegetarian"], ["diabetes-friendly"],
        [
            ("eggs", 2, "large"),
            ("crushed tomatoes", 1, "cup"),
            ("bell pepper", 0.5, "medium"),
            ("feta cheese", 1, "oz"),
            ("olive oil", 1, "tsp"),
            ("cumin", 0.5, "tsp"),
        ],
        ["Simmer tomatoes and pepper with cumin", "Crack in eggs and cover",
         "Cook until whites set", "Top with feta"],
        prep=5, cook=15, cuisine="mediterranean",
    ),
    _template(
        "breakfast-5", "tofu-scramble", "Turmeric Tofu Scramble", MealType.BREAKFAST,
        (310, 24, 14, 17, 5, 1),
        ["vegan", "high-protein"], ["quick-prep", "diabetes-friendly"],
        [
            ("firm tofu", 6, "oz"),
            ("spinach", 1, "cup"),
            ("mushrooms", 0.5, "cup"),
            ("turmeric", 0.5, "tsp"),
            ("olive oil", 1, "tsp"),
        ],
        ["Crumble tofu", "Saute mushrooms in oil", "Add tofu, turmeric and spinach",
         "Cook until heated through"],
        prep=5, cook=10, cuisine="asian",
    ),
]


# =============================================================================
# Lunch
# =============================================================================

LUNCH_TEMPLATES = [
    _template(
        "lunch-1", "quinoa-bowl", "Mediterranean Quinoa Bowl", MealType.LUNCH,
        (420, 32, 48, 12, 8, 2.5),
        ["mediterranean", "vegetarian"], ["heart-healthy", "diabetes-friendly"],
        [
            ("quinoa", 0.75, "cup"),
            ("chickpeas", 0.5, "cup"),
            ("cucumber", 1, "medium"),
            ("tomatoes", 1, "cup"),
            ("feta cheese", 2, "oz"),
            ("olive oil", 1, "tbsp"),
        ],
        ["Cook quinoa", "Chop vegetables", "Combine with chickpeas and feta", "Dress with olive oil"],
        prep=15, cook=15, cuisine="mediterranean",
    ),
    _template(
        "lunch-2", "chicken-salad", "Grilled Chicken Caesar Salad", MealType.LUNCH,
        (390, 35, 18, 20, 6, 2),
        ["balanced", "high-protein"], ["heart-healthy"],
        [
            ("chicken breast", 5, "oz"),
            ("romaine lettuce", 3, "cups"),
            ("parmesan cheese", 2, "tbsp"),
            ("caesar dressing", 2, "tbsp"),
            ("croutons", 0.25, "cup"),
        ],
        ["Grill chicken", "Chop romaine", "Toss with dressing", "Top with chicken and parmesan"],
        prep=10, cook=15, cuisine="american",
    ),
    _template(
        "lunch-3", "turkey-wrap", "Turkey and Veggie Wrap", MealType.LUNCH,
        (410, 30, 35, 16, 7, 2),
        ["balanced", "high-protein"], ["quick-prep"],
        [
            ("whole wheat tortilla", 1, "large"),
            ("turkey breast", 4, "oz"),
            ("lettuce", 1, "cup"),
            ("cucumber", 0.5, "medium"),
            ("hummus", 2, "tbsp"),
        ],
        ["Spread hummus on tortilla", "Layer turkey and vegetables", "Roll tightly and slice"],
        prep=8, cook=0, cuisine="american",
    ),
    _template(
        "lunch-4", "lentil-soup", "Lemony Lentil and Spinach Soup", MealType.LUNCH,
        (400, 31, 52, 8, 15, 2),
        ["mediterranean", "vegan"], ["heart-healthy", "diabetes-friendly"],
        [
            ("green lentils", 0.75, "cup"),
            ("carrots", 1, "cup"),
            ("spinach", 2, "cups"),
            ("vegetable broth", 2, "cups"),
            ("lemon", 0.5, "medium"),
            ("olive oil", 1, "tsp"),
        ],
        ["Simmer lentils and carrots in broth", "Stir in spinach", "Finish with lemon juice and oil"],
        prep=10, cook=30, cuisine="mediterranean",
    ),
    _template(
        "lunch-5", "teriyaki-tofu-bowl", "Ginger Tofu Rice Bowl", MealType.LUNCH,
        (430, 30, 50, 12, 6, 2),
        ["vegetarian", "asian"], ["quick-prep"],
        [
            ("extra firm tofu", 7, "oz"),
            ("brown rice", 0.5, "cup"),
            ("broccoli", 1.5, "cups"),
            ("shredded carrots", 0.5, "cup"),
            ("fresh ginger", 1, "tsp"),
            ("rice vinegar", 1, "tbsp"),
        ],
        ["Press and cube tofu", "Sear tofu until golden", "Steam broccoli",
         "Serve over rice with ginger and vinegar"],
        prep=10, cook=20, cuisine="asian",
    ),
]


# =============================================================================
# Dinner
# =============================================================================

DINNER_TEMPLATES = [
    _template(
        "dinner-1", "herb-salmon", "Herb-Crusted Salmon with Vegetables", MealType.DINNER,
        (485, 38, 22, 26, 6, 2),
        ["balanced", "low-carb"], ["heart-healthy", "omega-3"],
        [
            ("salmon fillet", 6, "oz"),
            ("broccoli", 1.5, "cups"),
            ("sweet potato", 1, "medium"),
            ("herbs", 2, "tbsp"),
            ("olive oil", 1, "tbsp"),
        ],
        ["Preheat oven to 400F", "Season salmon with herbs", "Roast with vegetables", "Serve hot"],
        prep=10, cook=25, cuisine="american", difficulty="medium",
    ),
    _template(
        "dinner-2", "chicken-stirfry", "Chicken and Vegetable Stir-Fry", MealType.DINNER,
        (450, 36, 28, 18, 5, 2.5),
        ["balanced", "asian"], ["quick-prep"],
        [
            ("chicken breast", 5, "oz"),
            ("mixed vegetables", 2, "cups"),
            ("brown rice", 0.75, "cup"),
            ("soy sauce", 2, "tbsp"),
            ("sesame oil", 1, "tsp"),
        ],
        ["Cook rice", "Stir-fry chicken", "Add vegetables", "Season with soy sauce"],
        prep=10, cook=15, cuisine="asian",
    ),
    _template(
        "dinner-3", "beef-pasta", "Lean Beef Pasta with Marinara", MealType.DINNER,
        (520, 34, 55, 16, 8, 1.5),
        ["balanced", "italian"], ["comfort-food"],
        [
            ("whole wheat pasta", 2, "oz"),
            ("lean ground beef", 4, "oz"),
            ("marinara sauce", 0.5, "cup"),
            ("zucchini", 1, "medium"),
            ("parmesan cheese", 2, "tbsp"),
        ],
        ["Cook pasta", "Brown beef", "Add marinara and zucchini", "Serve with parmesan"],
        prep=10, cook=20, cuisine="italian",
    ),
    _template(
        "dinner-4", "turkey-chili", "Turkey and Black Bean Chili", MealType.DINNER,
        (480, 38, 50, 12, 14, 2),
        ["high-protein", "mexican"], ["diabetes-friendly", "batch-cook"],
        [
            ("ground turkey", 5, "oz"),
            ("black beans", 0.5, "cup"),
            ("diced tomatoes", 1, "cup"),
            ("bell pepper", 1, "medium"),
            ("chili powder", 1, "tsp"),
            ("olive oil", 1, "tsp"),
        ],
        ["Brown turkey in oil", "Add peppers and spices", "Stir in tomatoes and beans",
         "Simmer 20 minutes"],
        prep=10, cook=30, cuisine="mexican",
    ),
    _template(
        "dinner-5", "cod-ratatouille", "Baked Cod with Ratatouille", MealType.DINNER,
        (430, 36, 30, 16, 8, 3),
        ["mediterranean", "low-carb"], ["heart-healthy", "diabetes-friendly"],
        [
            ("cod fillet", 6, "oz"),
            ("zucchini", 1, "medium"),
            ("eggplant", 1, "cup"),
            ("crushed tomatoes", 0.5, "cup"),
            ("quinoa", 0.33, "cup"),
            ("olive oil", 1, "tbsp"),
        ],
        ["Roast vegetables with tomatoes", "Bake cod 12 minutes", "Serve over quinoa"],
        prep=15, cook=25, cuisine="mediterranean", difficulty="medium",
    ),
]


# =============================================================================
# Snacks
# =============================================================================

SNACK_TEMPLATES = [
    _template(
        "snack-1", "greek-yogurt-nuts", "Greek Yogurt with Nuts", MealType.SNACK,
        (180, 15, 12, 8, 3, 0),
        ["high-protein"], ["quick-prep"],
        [
            ("greek yogurt", 6, "oz"),
            ("almonds", 0.25, "cup"),
            ("honey", 1, "tsp"),
        ],
        ["Top yogurt with almonds", "Drizzle with honey"],
        prep=2, cook=0, cuisine="american",
        allergens=["dairy", "tree nuts"],
    ),
    _template(
        "snack-2", "apple-peanut-butter", "Apple Slices with Peanut Butter", MealType.SNACK,
        (200, 8, 20, 12, 5, 0),
        ["balanced"], ["quick-prep"],
        [
            ("apple", 1, "medium"),
            ("natural peanut butter", 2, "tbsp"),
        ],
        ["Slice apple", "Serve with peanut butter for dipping"],
        prep=3, cook=0, cuisine="american",
        allergens=["peanuts"],
    ),
    _template(
        "snack-3", "hummus-veggies", "Hummus with Veggie Sticks", MealType.SNACK,
        (170, 6, 18, 8, 5, 1),
        ["vegan", "mediterranean"], ["quick-prep", "diabetes-friendly"],
        [
            ("hummus", 0.25, "cup"),
            ("carrots", 0.5, "cup"),
            ("cucumber", 0.5, "medium"),
        ],
        ["Cut vegetables into sticks", "Serve with hummus"],
        prep=5, cook=0, cuisine="mediterranean",
        allergens=["sesame"],
    ),
    _template(
        "snack-4", "cottage-cheese-berries", "Cottage Cheese with Berries", MealType.SNACK,
        (160, 16, 14, 4, 2, 0),
        ["high-protein"], ["quick-prep", "diabetes-friendly"],
        [
            ("cottage cheese", 0.75, "cup"),
            ("berries", 0.5, "cup"),
        ],
        ["Spoon cottage cheese into a bowl", "Top with berries"],
        prep=2, cook=0, cuisine="american",
        allergens=["dairy"],
    ),
]


BUILTIN_TEMPLATES: list[Meal] = (
    BREAKFAST_TEMPLATES + LUNCH_TEMPLATES + DINNER_TEMPLATES + SNACK_TEMPLATES
)


def builtin_catalog() -> list[Meal]:
    """Return the built-in template catalog."""
    return list(BUILTIN_TEMPLATES)


# =============================================================================
# Loading external catalogs
# =============================================================================

def _first(record: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in record and record[key] is not None:
            return record[key]
    return default


def _ingredient_from_record(item: Any) -> Ingredient:
    if isinstance(item, str):
        return parse_ingredient_line(item)
    name = str(_first(item, "name", "item", "ingredient", default="")).strip()
    raw_qty = _first(item, "quantity", "amount", "qty")
    unit = _first(item, "unit", "units", default="")
    if isinstance(raw_qty, (int, float)):
        return Ingredient(name, float(raw_qty), normalize_unit(unit))
    quantity, parsed_unit = parse_amount(str(raw_qty or ""))
    return Ingredient(name, quantity, normalize_unit(unit) or parsed_unit)


def meal_from_record(record: dict[str, Any], default_source: str = "template") -> Meal:
    """Build a Meal from a loosely-shaped catalog record.

    Raises:
        ValueError: If the record has no name or no meal type.
    """
    name = _first(record, "name", "title")
    if not name:
        raise ValueError(f"Catalog record has no name: {record!r}")
    type_value = _first(record, "meal_type", "type", "mealType")
    if not type_value:
        raise ValueError(f"Catalog record {name!r} has no meal type")
    nutrition = record.get("nutrition") or {}

    def macro(*keys: str) -> Optional[float]:
        value = _first(record, *keys)
        if value is None:
            value = _first(nutrition, *keys)
        return float(value) if value is not None else None

    return Meal(
        id=str(_first(record, "id", "slug", default=name)),
        slug=str(_first(record, "slug", default="")),
        name=str(name),
        meal_type=MealType.parse(type_value),
        nutrition=Nutrition(
            calories=macro("calories", "kcal"),
            protein=macro("protein"),
            carbs=macro("carbs"),
            fat=macro("fat", "fats"),
            fiber=macro("fiber") or 0.0,
            vegetable_cups=macro("vegetable_cups", "vegetables") or 0.0,
        ),
        diet_tags=list(_first(record, "diet_tags", "dietTags", default=[])),
        badges=list(_first(record, "badges", default=[])),
        allergens=list(_first(record, "allergens", default=[])),
        ingredients=[_ingredient_from_record(i) for i in record.get("ingredients") or []],
        steps=list(_first(record, "steps", "instructions", default=[])),
        prep_minutes=int(_first(record, "prep_minutes", "prepTime", default=0)),
        cook_minutes=int(_first(record, "cook_minutes", "cookTime", default=0)),
        servings=int(_first(record, "servings", default=1)),
        cuisine=str(_first(record, "cuisine", default="")).lower(),
        difficulty=str(_first(record, "difficulty", default="easy")),
        description=str(_first(record, "description", default="")),
        source=default_source,
    )


def load_catalog(path: Path) -> list[Meal]:
    """Load candidate meals from a YAML or JSON file.

    Records that cannot be read are skipped with a warning.

    Args:
        path: File holding a list of records, or a mapping with a ``meals`` list

    Returns:
        List of Meal objects
    """
    with open(path) as f:
        data = yaml.safe_load(f) or []
    records: Iterable[Any] = data.get("meals", []) if isinstance(data, dict) else data

    meals: list[Meal] = []
    for record in records:
        try:
            meals.append(meal_from_record(record))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping catalog record: %s", e)
    logger.debug("Loaded %d meals from %s", len(meals), path)
    return meals
