"""Free-text quantity parsing for ingredient amounts.

Handles the shapes generators actually emit:

    "1/2 cup"      -> (0.5, "cup")
    "1 1/2 tbsp"   -> (1.5, "tbsp")
    "1½ cups"      -> (1.5, "cup")
    ".25"          -> (0.25, "")
    "2-3 cloves"   -> (2.0, "clove")
    "a pinch"      -> (1.0, "pinch")
    "to taste"     -> (None, "")
"""

from __future__ import annotations

import re
from typing import Optional

from mealweave.data.units import UNIT_ALIASES, normalize_unit
from mealweave.models import Ingredient

UNICODE_FRACTIONS: dict[str, float] = {
    "½": 0.5, "⅓": 1 / 3, "⅔": 2 / 3, "¼": 0.25, "¾": 0.75,
    "⅕": 0.2, "⅖": 0.4, "⅗": 0.6, "⅘": 0.8, "⅙": 1 / 6, "⅚": 5 / 6,
    "⅛": 0.125, "⅜": 0.375, "⅝": 0.625, "⅞": 0.875,
}

WORD_NUMBERS: dict[str, float] = {
    "a": 1.0, "an": 1.0, "one": 1.0, "two": 2.0, "three": 3.0, "four": 4.0,
    "five": 5.0, "six": 6.0, "half": 0.5, "quarter": 0.25,
}

# Words describing preparation rather than the ingredient itself
DESCRIPTORS = [
    "finely chopped", "roughly chopped", "thinly sliced", "chopped", "diced",
    "minced", "sliced", "grated", "shredded", "crushed", "cubed", "peeled",
    "trimmed", "rinsed", "drained", "halved", "softened", "melted",
    "to taste", "for garnish", "optional", "divided", "fresh", "freshly ground",
]

_NUMBER = r"(?:\d+\s+\d+/\d+|\d+/\d+|\d*\.\d+|\d+)"
_LEADING = re.compile(
    rf"^\s*(?P<num>{_NUMBER})(?:\s*(?:-|to)\s*{_NUMBER})?\s*(?P<rest>.*)$",
    re.IGNORECASE,
)
_PAREN = re.compile(r"\(([^)]*)\)")


def _expand_unicode(text: str) -> str:
    """Rewrite unicode fractions as decimals ("1½" -> "1.5", "½" -> "0.5")."""

    def repl(match: re.Match[str]) -> str:
        whole = match.group(1)
        value = UNICODE_FRACTIONS[match.group(2)] + (int(whole) if whole else 0)
        return f"{value:g}"

    pattern = "(\\d+)?\\s*([" + "".join(UNICODE_FRACTIONS) + "])"
    return re.sub(pattern, repl, text)


def parse_number(token: str) -> Optional[float]:
    """Parse "1 1/2", "3/4", ".25" or "2" into a float."""
    token = _expand_unicode(token.strip())
    if not token:
        return None
    try:
        if " " in token:
            whole, frac = token.split(None, 1)
            return float(whole) + (parse_number(frac) or 0.0)
        if "/" in token:
            num, den = token.split("/", 1)
            if float(den) == 0:
                return None
            return float(num) / float(den)
        return float(token)
    except ValueError:
        return None


def _split_unit(rest: str) -> tuple[str, str]:
    """Split a leading unit token off the remaining text."""
    parts = rest.strip().split(None, 1)
    if not parts:
        return "", ""
    first = parts[0].lower().rstrip(".,")
    if first in UNIT_ALIASES:
        return normalize_unit(first), parts[1] if len(parts) > 1 else ""
    # "fl oz"
    if first == "fl" and len(parts) > 1 and parts[1].lower().startswith("oz"):
        tail = parts[1].split(None, 1)
        return "oz", tail[1] if len(tail) > 1 else ""
    return "", rest.strip()


def parse_amount(text: str) -> tuple[Optional[float], str]:
    """Parse an amount string into (quantity, unit).

    Quantities that cannot be read come back as None; the unit is "" when
    absent or unrecognized.
    """
    if text is None:
        return None, ""
    raw = _expand_unicode(str(text)).strip()
    if not raw:
        return None, ""
    match = _LEADING.match(raw)
    if match:
        quantity = parse_number(match.group("num"))
        unit, _ = _split_unit(match.group("rest"))
        return quantity, unit
    words = raw.lower().split(None, 1)
    if words[0] in WORD_NUMBERS:
        unit, _ = _split_unit(words[1] if len(words) > 1 else "")
        return WORD_NUMBERS[words[0]], unit
    unit, _ = _split_unit(raw)
    return None, unit


def split_descriptors(name: str) -> tuple[str, str]:
    """Move parentheticals and preparation words out of an ingredient name.

    Returns:
        (clean name, notes)
    """
    notes: list[str] = [m.strip() for m in _PAREN.findall(name) if m.strip()]
    clean = _PAREN.sub(" ", name)
    if "," in clean:
        head, tail = clean.split(",", 1)
        if tail.strip():
            notes.append(tail.strip())
        clean = head
    lowered = f" {clean.lower()} "
    for word in DESCRIPTORS:
        needle = f" {word} "
        if needle in lowered:
            notes.append(word)
            lowered = lowered.replace(needle, " ")
    clean = " ".join(lowered.split())
    return clean, ", ".join(notes)


def parse_ingredient_line(line: str) -> Ingredient:
    """Parse a whole free-text line such as "1/2 cup milk" or "2 eggs, beaten"."""
    text = _expand_unicode(str(line)).strip().lstrip("-*• ").strip()
    quantity: Optional[float] = None
    unit = ""
    rest = text
    match = _LEADING.match(text)
    if match:
        quantity = parse_number(match.group("num"))
        unit, rest = _split_unit(match.group("rest"))
    else:
        words = text.split(None, 1)
        if words and words[0].lower() in WORD_NUMBERS and len(words) > 1:
            quantity = WORD_NUMBERS[words[0].lower()]
            unit, rest = _split_unit(words[1])
    if rest.lower().startswith("of "):
        rest = rest[3:]
    name, notes = split_descriptors(rest)
    return Ingredient(name=name, quantity=quantity, unit=unit, notes=notes)
