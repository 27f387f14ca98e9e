"""Constraint ontology: allergen synonyms, food groups, diet packs and medical exclusions.

Every predicate takes a list of ingredient (or dish) names and returns a
reason string on the first violation, or None when the list is safe.

Matching is whole-word, case-insensitive and plural-tolerant, so "egg"
matches "2 eggs" but not "eggplant", and "nut" does not match "coconut".

Usage:
    from mealweave.data.ontology import find_safety_violation
    reason = find_safety_violation(["chicken breast", "peanut sauce"], profile)
    # -> "allergen:peanuts:peanut sauce"
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import TYPE_CHECKING, Iterable, Optional

if TYPE_CHECKING:
    from mealweave.models import ConstraintProfile


# Allergy name -> every ingredient or dish term that must be blocked.
# Includes common misspellings and dishes that usually contain the allergen.
ALLERGEN_SYNONYMS: dict[str, list[str]] = {
    "shellfish": [
        # crustaceans
        "shellfish", "shrimp", "shrimps", "prawn", "prawns", "crab", "crabs",
        "crabmeat", "crab meat", "lobster", "lobsters", "lobster tail",
        "crawfish", "crayfish", "langoustine", "langostino", "krill",
        # mollusks
        "scallop", "scallops", "clam", "clams", "mussel", "mussels", "oyster",
        "oysters", "squid", "calamari", "octopus", "cuttlefish", "abalone",
        "snail", "escargot", "sea urchin", "uni", "whelk", "periwinkle",
        # misspellings
        "shrimpp", "scrimp", "scrimps", "shrmp", "calimari",
        # dishes
        "paella", "cioppino", "bouillabaisse", "gumbo", "jambalaya", "bisque",
        "shrimp scampi", "shrimp cocktail", "crab cake", "crab cakes",
        "lobster roll", "clam chowder", "oysters rockefeller", "ceviche",
        "seafood boil", "fra diavolo", "frutti di mare", "gambas", "scampi",
        "tempura shrimp", "coconut shrimp", "popcorn shrimp", "shrimp tempura",
        "shrimp fried rice", "pad thai with shrimp", "tom yum", "laksa",
        "surimi",
    ],
    "fish": [
        "fish", "salmon", "tuna", "cod", "tilapia", "sardine", "sardines",
        "anchovy", "anchovies", "anchovy paste", "mackerel", "trout", "bass",
        "halibut", "snapper", "mahi", "mahi-mahi", "swordfish", "catfish",
        "flounder", "sole", "haddock", "perch", "pike", "carp", "herring",
        "fish sauce", "fish stock", "fish oil", "bonito", "dashi",
    ],
    "dairy": [
        "dairy", "milk", "whole milk", "skim milk", "2% milk", "cream",
        "heavy cream", "half and half", "half-and-half", "butter", "ghee",
        "cheese", "cheddar", "mozzarella", "parmesan", "feta", "brie",
        "camembert", "ricotta", "cottage cheese", "cream cheese", "gouda",
        "swiss cheese", "provolone", "blue cheese", "gorgonzola", "yogurt",
        "greek yogurt", "kefir", "sour cream", "creme fraiche", "whey",
        "casein", "lactose", "buttermilk", "custard", "ice cream", "gelato",
        "whipped cream", "condensed milk", "evaporated milk", "milk powder",
        "dried milk",
    ],
    # High-lactose items only; eggs, aged cheeses and cream cheese are tolerated
    "lactose intolerance": [
        "milk", "whole milk", "skim milk", "2% milk", "buttermilk",
        "ice cream", "gelato", "soft serve", "frozen yogurt", "yogurt",
        "greek yogurt", "plain yogurt", "flavored yogurt", "kefir",
        "whipped cream", "heavy cream", "half and half", "half-and-half",
        "condensed milk", "evaporated milk", "milk powder", "dried milk",
        "cottage cheese", "ricotta", "fresh mozzarella", "brie", "camembert",
        "sour cream", "creme fraiche", "custard", "pudding", "milk chocolate",
        "hot chocolate", "latte", "cappuccino", "milkshake", "cream sauce",
        "alfredo", "bechamel", "white sauce", "queso", "lactose",
        "whey protein concentrate",
    ],
    "eggs": [
        "egg", "eggs", "egg white", "egg yolk", "egg whites", "egg yolks",
        "albumin", "albumen", "mayonnaise", "mayo", "aioli", "meringue",
        "hollandaise", "bearnaise", "custard", "eggnog", "frittata",
        "omelette", "omelet", "quiche",
    ],
    # Legume, listed apart from tree nuts
    "peanuts": [
        "peanut", "peanuts", "peanut butter", "peanut oil", "groundnut",
        "groundnuts", "arachis", "monkey nuts", "goober", "peanut flour",
        "peanut sauce", "peanut dressing", "peanut brittle", "peanut paste",
        # misspellings
        "penut", "penuts", "peenut", "peenuts",
        # dishes
        "satay", "pad thai", "kung pao", "kung pao chicken", "gado gado",
        "peanut noodles", "thai peanut", "african peanut soup", "peanut stew",
        "dan dan noodles", "dan dan", "massaman curry", "massaman",
        "indonesian satay",
    ],
    "tree nuts": [
        "tree nut", "tree nuts", "almond", "almonds", "almond butter",
        "almond milk", "almond flour", "almond extract", "walnut", "walnuts",
        "walnut oil", "pecan", "pecans", "pecan pie", "cashew", "cashews",
        "cashew butter", "cashew milk", "cashew cream", "pistachio",
        "pistachios", "pistachio butter", "hazelnut", "hazelnuts", "filbert",
        "hazelnut spread", "nutella", "macadamia", "macadamia nut",
        "macadamia nuts", "brazil nut", "brazil nuts", "pine nut", "pine nuts",
        "pignoli", "chestnut", "chestnuts", "praline", "marzipan", "nougat",
        "gianduja",
        # nut-based products and dishes
        "nut butter", "nut milk", "nut flour", "nut oil", "mixed nuts",
        "baklava", "frangipane", "amaretti", "biscotti",
    ],
    "nuts": [
        "nut", "nuts", "almond", "almonds", "walnut", "walnuts", "pecan",
        "pecans", "cashew", "cashews", "pistachio", "pistachios", "hazelnut",
        "hazelnuts", "macadamia", "brazil nut", "pine nut", "peanut",
        "peanuts", "nut butter", "nut milk", "mixed nuts", "trail mix",
    ],
    "soy": [
        "soy", "soya", "soybean", "soybeans", "soy sauce", "soy milk", "tofu",
        "tempeh", "edamame", "miso", "miso paste", "natto", "soy protein",
        "soy lecithin", "tvp", "textured vegetable protein",
    ],
    "gluten": [
        "gluten", "wheat", "wheat flour", "all-purpose flour", "bread flour",
        "whole wheat", "semolina", "durum", "farina", "bulgur", "couscous",
        "farro", "spelt", "kamut", "einkorn", "triticale", "barley", "rye",
        "malt", "malt extract", "brewer's yeast", "seitan",
        "vital wheat gluten", "bread", "pasta", "noodles", "crackers",
        "breadcrumbs", "panko", "flour tortilla", "tortilla", "pita", "naan",
        "bagel", "muffin", "pancake", "waffle", "granola", "toast",
    ],
    "wheat": [
        "wheat", "wheat flour", "all-purpose flour", "bread flour",
        "whole wheat", "semolina", "durum", "farina", "bulgur", "couscous",
        "farro", "spelt", "bread", "pasta", "noodles", "crackers",
        "breadcrumbs",
    ],
    "sesame": [
        "sesame", "sesame seed", "sesame seeds", "sesame oil", "tahini",
        "hummus", "halva", "halvah", "sesame paste", "gomashio", "za'atar",
    ],
    "mustard": [
        "mustard", "mustard seed", "mustard seeds", "mustard powder", "dijon",
        "dijon mustard", "yellow mustard", "honey mustard",
    ],
    "celery": ["celery", "celery salt", "celery seed", "celeriac", "celery root"],
    "sulfites": [
        "sulfite", "sulfites", "sulphite", "sulphites", "sulfur dioxide",
        "wine", "dried fruit", "dried fruits",
    ],
    "corn": [
        "corn", "maize", "cornmeal", "corn flour", "cornstarch", "corn starch",
        "corn syrup", "high fructose corn syrup", "hfcs", "polenta", "grits",
        "hominy", "corn oil", "corn tortilla", "popcorn",
    ],
    # For autoimmune protocols
    "nightshades": [
        "nightshade", "tomato", "tomatoes", "potato", "potatoes", "pepper",
        "peppers", "bell pepper", "chili", "chili pepper", "jalapeño",
        "jalapeno", "cayenne", "paprika", "eggplant", "aubergine",
        "goji berry", "goji berries", "tobacco",
    ],
}

# Alternate spellings users enter at onboarding
ALLERGY_ALIASES: dict[str, str] = {
    "milk": "dairy",
    "egg": "eggs",
    "peanut": "peanuts",
    "tree nut": "tree nuts",
    "treenuts": "tree nuts",
    "nut": "nuts",
    "lactose": "lactose intolerance",
    "lactose_intolerance": "lactose intolerance",
    "lactose intolerant": "lactose intolerance",
    "soya": "soy",
    "sulphites": "sulfites",
    "sulfite": "sulfites",
    "nightshade": "nightshades",
    "crustacean": "shellfish",
    "crustaceans": "shellfish",
}

# Plant-based compounds that read like dairy but are not
NON_DAIRY_COMPOUNDS: list[str] = [
    "peanut butter", "almond butter", "cashew butter", "nut butter",
    "sunflower butter", "sunflower seed butter", "apple butter",
    "cocoa butter", "shea butter", "almond milk", "coconut milk",
    "oat milk", "soy milk", "rice milk", "cashew milk", "coconut cream",
    "coconut yogurt", "vegan cheese", "vegan butter", "cream of tartar",
]

# Allergies whose terms must be checked after stripping NON_DAIRY_COMPOUNDS
_DAIRY_ALLERGIES = {"dairy", "lactose intolerance"}

FOOD_GROUPS: dict[str, list[str]] = {
    "meat": [
        "meat", "beef", "steak", "veal", "lamb", "mutton", "goat", "venison",
        "bison", "brisket", "ground beef", "meatball", "pork",
        "bacon", "ham", "sausage", "chorizo", "pepperoni", "salami",
        "prosciutto", "pancetta", "chicken", "turkey", "duck", "goose",
        "poultry", "lard", "tallow", "bone broth", "chicken stock",
        "beef stock", "jerky",
    ],
    "pork": [
        "pork", "pork chop", "pork loin", "pork belly", "bacon", "ham",
        "prosciutto", "pancetta", "chorizo", "pepperoni", "salami", "lard",
    ],
    "poultry": ["chicken", "turkey", "duck", "goose", "poultry", "quail"],
    "fish": ALLERGEN_SYNONYMS["fish"],
    "shellfish": ALLERGEN_SYNONYMS["shellfish"],
    "dairy": ALLERGEN_SYNONYMS["dairy"],
    "egg": ALLERGEN_SYNONYMS["eggs"],
    "vegetable": [
        "vegetable", "veggie", "spinach", "kale", "broccoli", "cauliflower",
        "lettuce", "romaine", "arugula", "cabbage", "carrot", "celery",
        "cucumber", "bell pepper", "tomato", "asparagus", "zucchini",
        "squash", "eggplant", "mushroom", "green bean", "brussels sprout",
        "beet", "radish", "bok choy", "chard", "pea", "corn", "okra",
        "salad greens", "mixed greens",
    ],
    "fruit": [
        "fruit", "apple", "banana", "orange", "grape", "berry",
        "strawberry", "blueberry", "raspberry", "blackberry", "mango",
        "pineapple", "peach", "pear", "plum", "cherry", "melon",
        "watermelon", "cantaloupe", "kiwi", "papaya", "fruit cup",
    ],
    "alcohol": [
        "alcohol", "wine", "red wine", "white wine", "beer", "rum",
        "whiskey", "vodka", "brandy", "sake", "mirin", "sherry", "bourbon",
    ],
}

DIET_PACKS: dict[str, list[str]] = {
    "kosher": FOOD_GROUPS["pork"] + FOOD_GROUPS["shellfish"],
    "halal": FOOD_GROUPS["pork"] + FOOD_GROUPS["alcohol"] + ["gelatin"],
    "low_fodmap": [
        "onion", "garlic", "shallot", "leek", "wheat", "rye", "apple",
        "pear", "mango", "watermelon", "honey", "agave", "high fructose corn syrup",
        "cauliflower", "mushroom", "asparagus", "artichoke", "baked beans",
        "black beans", "kidney beans", "chickpea", "lentil", "cashew",
        "pistachio", "milk", "ice cream", "inulin",
    ],
}

MEDICAL_EXCLUSIONS: dict[str, list[str]] = {
    "celiac": ALLERGEN_SYNONYMS["gluten"],
    "gluten_intolerance": ALLERGEN_SYNONYMS["gluten"],
    "lactose_intolerance": ALLERGEN_SYNONYMS["lactose intolerance"],
    "hypertension": [
        "bacon", "ham", "salami", "pepperoni", "soy sauce", "fish sauce",
        "pickle", "bouillon", "instant noodles", "ramen seasoning",
        "processed cheese", "deli meat", "salt pork",
    ],
    "diabetes": [
        "sugar", "corn syrup", "high fructose corn syrup", "candy", "soda",
        "frosting", "syrup",
    ],
    "gout": [
        "liver", "kidney", "sweetbread", "anchovy", "anchovies", "sardine",
        "mussel", "scallop", "beer",
    ],
    "kidney_disease": ["salt pork", "processed cheese", "bouillon", "deli meat"],
}

# Medical flags that also require a badge on pre-authored templates
MEDICAL_REQUIRED_BADGES: dict[str, str] = {
    "diabetes": "diabetes-friendly",
}


def _norm(text: str) -> str:
    return " ".join(str(text).strip().lower().replace("-", " ").split())


@lru_cache(maxsize=4096)
def _term_pattern(term: str) -> re.Pattern[str]:
    """Whole-word pattern that also accepts simple plurals of the last word."""
    body = re.escape(_norm(term))
    if body.endswith("y") and not body.endswith(("ay", "ey", "oy", "uy")):
        suffix = r"(?:y|ies)"
        body = body[:-1]
    else:
        suffix = r"(?:s|es)?"
    return re.compile(rf"(?<![a-z0-9]){body}{suffix}(?![a-z0-9])")


def term_matches(term: str, text: str) -> bool:
    """Check whether a term occurs in text as a whole word (plural-tolerant)."""
    if not term:
        return False
    return _term_pattern(term).search(_norm(text)) is not None


def first_match(terms: Iterable[str], names: Iterable[str]) -> Optional[tuple[str, str]]:
    """Return (term, name) for the first term found in any name, else None."""
    names = [n for n in names if n]
    for term in terms:
        for name in names:
            if term_matches(term, name):
                return term, name
    return None


def strip_non_dairy(text: str) -> str:
    """Remove plant-based compounds so "peanut butter" is not read as dairy."""
    result = _norm(text)
    for compound in NON_DAIRY_COMPOUNDS:
        result = _term_pattern(compound).sub(" ", result)
    return result


def canonical_allergy(allergy: str) -> str:
    key = _norm(allergy).replace("_", " ")
    key = ALLERGY_ALIASES.get(key, key)
    return ALLERGY_ALIASES.get(key.replace(" ", "_"), key)


def expand_allergies(allergies: Iterable[str]) -> set[str]:
    """Return the full set of blocked terms for the given allergies.

    Unknown allergy names block themselves literally.
    """
    blocked: set[str] = set()
    for allergy in allergies:
        if not allergy or not str(allergy).strip():
            continue
        key = canonical_allergy(allergy)
        blocked.update(ALLERGEN_SYNONYMS.get(key, [key]))
    return blocked


def allergen_violation(names: Iterable[str], allergies: Iterable[str]) -> Optional[str]:
    """Check names against the expanded synonym set of each allergy."""
    names = list(names)
    for allergy in allergies:
        if not allergy or not str(allergy).strip():
            continue
        key = canonical_allergy(allergy)
        terms = ALLERGEN_SYNONYMS.get(key, [key])
        checked = [strip_non_dairy(n) for n in names] if key in _DAIRY_ALLERGIES else names
        hit = first_match(terms, checked)
        if hit:
            return f"allergen:{key}:{hit[1].strip()}"
    return None


def _group_hit(group: str, names: list[str]) -> Optional[tuple[str, str]]:
    checked = [strip_non_dairy(n) for n in names] if group == "dairy" else names
    return first_match(FOOD_GROUPS[group], checked)


def exclusion_violation(names: Iterable[str], profile: "ConstraintProfile") -> Optional[str]:
    """Check the no-meat/fish/dairy/egg/vegetable/fruit flags."""
    names = list(names)
    flags = [
        (profile.no_meat, ["meat"]),
        (profile.no_fish, ["fish", "shellfish"]),
        (profile.no_dairy, ["dairy"]),
        (profile.no_eggs, ["egg"]),
        (profile.no_vegetables, ["vegetable"]),
        (profile.no_fruit, ["fruit"]),
    ]
    for enabled, groups in flags:
        if not enabled:
            continue
        for group in groups:
            hit = _group_hit(group, names)
            if hit:
                return f"excluded:{group}:{hit[1].strip()}"
    return None


def diet_pack_violation(
    names: Iterable[str],
    kosher: bool = False,
    halal: bool = False,
    low_fodmap: bool = False,
) -> Optional[str]:
    """Check kosher, halal and low-FODMAP rules.

    Kosher also rejects any list that mixes meat with dairy.
    """
    names = list(names)
    if kosher:
        hit = first_match(DIET_PACKS["kosher"], names)
        if hit:
            return f"kosher:{hit[1].strip()}"
        meat = first_match(FOOD_GROUPS["meat"], names)
        dairy = _group_hit("dairy", names)
        if meat and dairy:
            return f"kosher:meat_with_dairy:{meat[1].strip()}+{dairy[1].strip()}"
    if halal:
        hit = first_match(DIET_PACKS["halal"], names)
        if hit:
            return f"halal:{hit[1].strip()}"
    if low_fodmap:
        hit = first_match(DIET_PACKS["low_fodmap"], names)
        if hit:
            return f"low_fodmap:{hit[1].strip()}"
    return None


def avoid_violation(names: Iterable[str], avoid: Iterable[str]) -> Optional[str]:
    """Check user-specific avoid terms."""
    hit = first_match([a for a in avoid if a and str(a).strip()], list(names))
    if hit:
        return f"avoid:{_norm(hit[0])}:{hit[1].strip()}"
    return None


def medical_violation(names: Iterable[str], flags: Iterable[str]) -> Optional[str]:
    """Check medical-flag exclusion lists. Unknown flags are ignored."""
    names = list(names)
    for flag in flags:
        key = _norm(flag).replace(" ", "_")
        terms = MEDICAL_EXCLUSIONS.get(key)
        if not terms:
            continue
        hit = first_match(terms, names)
        if hit:
            return f"medical:{key}:{hit[1].strip()}"
    return None


def missing_medical_badge(badges: Iterable[str], flags: Iterable[str]) -> Optional[str]:
    """Return a reason when a flag needs a badge the template does not carry."""
    have = {_norm(b) for b in badges}
    for flag in flags:
        key = _norm(flag).replace(" ", "_")
        badge = MEDICAL_REQUIRED_BADGES.get(key)
        if badge and _norm(badge) not in have:
            return f"missing-{key}-badge"
    return None


def find_safety_violation(
    names: Iterable[str],
    profile: "ConstraintProfile",
    extra_allergens: Iterable[str] = (),
    extra_medical_flags: Iterable[str] = (),
) -> Optional[str]:
    """Run every hard-safety predicate in order and return the first reason.

    Args:
        names: Ingredient names, optionally with the dish name appended
        profile: The user's constraint profile
        extra_allergens: Request-level allergens on top of the profile's
        extra_medical_flags: Request-level medical flags on top of the profile's

    Returns:
        Reason string such as "allergen:peanuts:peanut sauce", or None
    """
    names = list(names)
    allergies = list(profile.allergies) + list(extra_allergens)
    flags = list(profile.medical_flags) + list(extra_medical_flags)
    return (
        allergen_violation(names, allergies)
        or exclusion_violation(names, profile)
        or diet_pack_violation(names, profile.kosher, profile.halal, profile.low_fodmap)
        or avoid_violation(names, profile.avoid)
        or medical_violation(names, flags)
    )
