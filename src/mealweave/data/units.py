"""Kitchen unit tables and fraction formatting.

Units are normalized to singular short tokens ("cups" -> "cup",
"tablespoons" -> "tbsp"). Quantities between 0 and 1 snap to the usual
kitchen fractions so "0.33 cup" reads as "1/3 cup".
"""

from __future__ import annotations

from typing import Optional

UNIT_ALIASES: dict[str, str] = {
    "teaspoon": "tsp", "teaspoons": "tsp", "tsps": "tsp",
    "tablespoon": "tbsp", "tablespoons": "tbsp", "tbsps": "tbsp", "tbs": "tbsp", "tbl": "tbsp",
    "cup": "cup", "cups": "cup", "c": "cup",
    "ounce": "oz", "ounces": "oz", "ozs": "oz",
    "pound": "lb", "pounds": "lb", "lbs": "lb",
    "gram": "g", "grams": "g", "gr": "g", "gs": "g",
    "kilogram": "kg", "kilograms": "kg", "kgs": "kg",
    "milliliter": "ml", "milliliters": "ml", "millilitre": "ml", "millilitres": "ml", "mls": "ml",
    "liter": "l", "liters": "l", "litre": "l", "litres": "l",
    "piece": "piece", "pieces": "piece", "pc": "piece", "pcs": "piece",
    "clove": "clove", "cloves": "clove",
    "slice": "slice", "slices": "slice",
    "can": "can", "cans": "can",
    "packet": "packet", "packets": "packet",
    "scoop": "scoop", "scoops": "scoop",
    "pinch": "pinch", "pinches": "pinch",
    "dash": "dash", "dashes": "dash",
    "each": "each",
    "small": "small", "medium": "medium", "large": "large",
    "serving": "serving", "servings": "serving",
    "unit": "unit", "units": "unit",
}

# Canonical tokens map to themselves so "2 tbsp" and "100 g" parse directly
UNIT_ALIASES.update({token: token for token in set(UNIT_ALIASES.values())})

# Tokens accepted by the measurement completeness check
RECOGNIZED_UNITS: frozenset[str] = frozenset(UNIT_ALIASES.values())

# Snap targets for fractional quantities: (value, display)
KITCHEN_FRACTIONS: list[tuple[float, str]] = [
    (0.25, "1/4"),
    (1 / 3, "1/3"),
    (0.5, "1/2"),
    (2 / 3, "2/3"),
    (0.75, "3/4"),
]

SNAP_TOLERANCE = 0.02

# Smallest amount a snapped quantity can take
MIN_QUANTITY = 0.01


def normalize_unit(unit: Optional[str]) -> str:
    """Return the singular short token for a unit, or "" if empty.

    Unknown units are returned lowercased and stripped so callers can decide
    whether they are recognized.
    """
    if not unit:
        return ""
    token = str(unit).strip().lower().rstrip(".")
    return UNIT_ALIASES.get(token, token)


def is_recognized_unit(unit: Optional[str]) -> bool:
    """Check whether a unit token is one the measurement check accepts."""
    return normalize_unit(unit) in RECOGNIZED_UNITS


def snap_quantity(value: float) -> float:
    """Snap a quantity to the nearest kitchen fraction or whole number.

    Values more than SNAP_TOLERANCE away from any target are rounded to two
    decimals instead. Positive values never come back as 0.
    """
    if value <= 0:
        return value
    whole = int(value)
    frac = value - whole
    for target, _ in KITCHEN_FRACTIONS:
        if abs(frac - target) <= SNAP_TOLERANCE:
            return round(whole + target, 3)
    if round(value) > 0 and abs(value - round(value)) <= SNAP_TOLERANCE:
        return float(round(value))
    return max(round(value, 2), MIN_QUANTITY)


def format_quantity(value: Optional[float]) -> str:
    """Render a quantity the way a recipe card would ("1 1/2", "2/3", "3")."""
    if value is None:
        return ""
    whole = int(value)
    frac = value - whole
    if frac <= SNAP_TOLERANCE and (whole > 0 or value == 0):
        return str(whole)
    for target, display in KITCHEN_FRACTIONS:
        if abs(frac - target) <= SNAP_TOLERANCE:
            return display if whole == 0 else f"{whole} {display}"
    if abs(frac - 1) <= SNAP_TOLERANCE:
        return str(whole + 1)
    return f"{value:.2f}".rstrip("0").rstrip(".")
