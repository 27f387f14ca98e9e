"""Data models for candidate meals, constraint profiles and assembled plans.

Meals are frozen once drawn from a pool: the assembler and the repair loop
never touch a pool entry, they bind copies (``dataclasses.replace``) to plan
slots. Plans serialize to plain dicts so the result cache and the CLI can
store and print them without knowing their structure.
"""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional

from mealweave.data.units import format_quantity, normalize_unit


class MealType(Enum):
    """Slot types a plan can contain."""

    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK = "snack"

    @property
    def is_main(self) -> bool:
        """Lunch and dinner carry the main-meal protein and vegetable rules."""
        return self in (MealType.LUNCH, MealType.DINNER)

    @classmethod
    def parse(cls, value: Any, default: Optional["MealType"] = None) -> "MealType":
        """Parse a meal type from a label such as "Dinner" or "snack 2".

        Raises:
            ValueError: If the value is not recognized and no default is given.
        """
        if isinstance(value, MealType):
            return value
        text = str(value or "").strip().lower()
        for member in cls:
            if text == member.value or text.startswith(member.value):
                return member
        if default is not None:
            return default
        raise ValueError(f"Unknown meal type: {value!r}")


class PlanMode(Enum):
    """How generated plans fill their slots."""

    AI_VARIED = "ai_varied"
    REPEAT_ONE = "repeat_one"
    FIXED_MENU = "fixed_menu"


class PlanSource(Enum):
    """Where candidate meals come from."""

    TEMPLATES = "templates"
    GENERATED = "generated"


class Goal(Enum):
    """Body-composition goal used for the scorer's goal bonus."""

    LOSS = "loss"
    MAINTAIN = "maintain"
    GAIN = "gain"


def slugify(text: str) -> str:
    """Lowercase, hyphen-separated slug."""
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


@dataclass(frozen=True)
class Ingredient:
    """One ingredient line: name plus a numeric quantity and a unit token."""

    name: str
    quantity: Optional[float] = None
    unit: str = ""
    notes: str = ""

    @property
    def amount(self) -> str:
        """Kitchen-friendly amount string, e.g. "1/2 cup"."""
        return f"{format_quantity(self.quantity)} {self.unit}".strip()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "quantity": self.quantity,
            "unit": self.unit,
        }
        if self.notes:
            data["notes"] = self.notes
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Ingredient":
        quantity = data.get("quantity")
        return cls(
            name=str(data["name"]),
            quantity=float(quantity) if quantity is not None else None,
            unit=normalize_unit(data.get("unit")),
            notes=str(data.get("notes") or ""),
        )


@dataclass(frozen=True)
class Nutrition:
    """Per-serving nutrition. Macro values may be unknown for generated meals.

    Attributes:
        calories: kcal
        protein: grams
        carbs: grams
        fat: grams
        fiber: grams
        vegetable_cups: cup-equivalents of vegetables
        starchy_carbs: grams of carbs from starchy sources (main meals only)
        fibrous_carbs: grams of carbs from fibrous sources (main meals only)
    """

    calories: Optional[float] = None
    protein: Optional[float] = None
    carbs: Optional[float] = None
    fat: Optional[float] = None
    fiber: float = 0.0
    vegetable_cups: float = 0.0
    starchy_carbs: Optional[float] = None
    fibrous_carbs: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "calories": self.calories,
            "protein": self.protein,
            "carbs": self.carbs,
            "fat": self.fat,
            "fiber": self.fiber,
            "vegetable_cups": self.vegetable_cups,
            "starchy_carbs": self.starchy_carbs,
            "fibrous_carbs": self.fibrous_carbs,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Nutrition":
        def opt(key: str) -> Optional[float]:
            value = data.get(key)
            return float(value) if value is not None else None

        return cls(
            calories=opt("calories"),
            protein=opt("protein"),
            carbs=opt("carbs"),
            fat=opt("fat"),
            fiber=float(data.get("fiber") or 0.0),
            vegetable_cups=float(data.get("vegetable_cups") or 0.0),
            starchy_carbs=opt("starchy_carbs"),
            fibrous_carbs=opt("fibrous_carbs"),
        )


@dataclass(frozen=True)
class Meal:
    """A candidate meal: a pre-authored template or a normalized generated meal.

    Sequence fields are stored as tuples so a pool entry cannot be modified
    after it has been drawn.
    """

    id: str
    name: str
    meal_type: MealType
    slug: str = ""
    nutrition: Nutrition = field(default_factory=Nutrition)
    diet_tags: tuple[str, ...] = ()
    badges: tuple[str, ...] = ()
    allergens: tuple[str, ...] = ()
    ingredients: tuple[Ingredient, ...] = ()
    steps: tuple[str, ...] = ()
    prep_minutes: int = 0
    cook_minutes: int = 0
    servings: int = 1
    cuisine: str = ""
    difficulty: str = "easy"
    description: str = ""
    source: str = "template"

    def __post_init__(self) -> None:
        for name in ("diet_tags", "badges", "allergens", "ingredients", "steps"):
            value = getattr(self, name)
            if not isinstance(value, tuple):
                object.__setattr__(self, name, tuple(value))
        if not self.slug:
            object.__setattr__(self, "slug", slugify(self.name))

    @property
    def total_minutes(self) -> int:
        return int(self.prep_minutes or 0) + int(self.cook_minutes or 0)

    @property
    def ingredient_names(self) -> list[str]:
        """Lowercased ingredient names in recipe order."""
        return [i.name.strip().lower() for i in self.ingredients if i.name]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "slug": self.slug,
            "name": self.name,
            "meal_type": self.meal_type.value,
            "nutrition": self.nutrition.to_dict(),
            "diet_tags": list(self.diet_tags),
            "badges": list(self.badges),
            "allergens": list(self.allergens),
            "ingredients": [i.to_dict() for i in self.ingredients],
            "steps": list(self.steps),
            "prep_minutes": self.prep_minutes,
            "cook_minutes": self.cook_minutes,
            "servings": self.servings,
            "cuisine": self.cuisine,
            "difficulty": self.difficulty,
            "description": self.description,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Meal":
        return cls(
            id=str(data["id"]),
            slug=str(data.get("slug") or ""),
            name=str(data["name"]),
            meal_type=MealType.parse(data["meal_type"]),
            nutrition=Nutrition.from_dict(data.get("nutrition") or {}),
            diet_tags=tuple(data.get("diet_tags") or ()),
            badges=tuple(data.get("badges") or ()),
            allergens=tuple(data.get("allergens") or ()),
            ingredients=tuple(Ingredient.from_dict(i) for i in data.get("ingredients") or ()),
            steps=tuple(data.get("steps") or ()),
            prep_minutes=int(data.get("prep_minutes") or 0),
            cook_minutes=int(data.get("cook_minutes") or 0),
            servings=int(data.get("servings") or 1),
            cuisine=str(data.get("cuisine") or ""),
            difficulty=str(data.get("difficulty") or "easy"),
            description=str(data.get("description") or ""),
            source=str(data.get("source") or "template"),
        )


# camelCase keys produced by the onboarding collaborator
_PROFILE_ALIASES: dict[str, str] = {
    "allergens": "allergies",
    "dislikes": "avoid",
    "dislikedFoods": "avoid",
    "mustInclude": "must_include",
    "noMeat": "no_meat",
    "noFish": "no_fish",
    "noDairy": "no_dairy",
    "noEggs": "no_eggs",
    "no_egg": "no_eggs",
    "noVeg": "no_vegetables",
    "no_veg": "no_vegetables",
    "noFruit": "no_fruit",
    "caloriesTarget": "daily_calories",
    "calories_target": "daily_calories",
    "caloriesPerMeal": "calories_per_meal",
    "proteinPerMeal": "protein_per_meal",
    "lowFodmap": "low_fodmap",
    "cuisinesPreferred": "cuisines_preferred",
    "medicalFlags": "medical_flags",
    "likedIngredients": "liked_ingredients",
    "likes": "liked_ingredients",
}


@dataclass
class ConstraintProfile:
    """User constraints derived from onboarding. Read-only to the planner.

    Attributes:
        allergies: Allergy names (expanded through the ontology)
        avoid: Disliked or avoided ingredient terms
        must_include: Ingredients the generator is asked to include
        no_meat .. no_fruit: Food-group exclusion flags
        daily_calories: Daily calorie target
        calories_per_meal: Explicit per-meal calorie target (overrides the split)
        protein_per_meal: Per-meal protein floor in grams
        kosher, halal, low_fodmap: Diet-pack flags
        cuisines_preferred: Cuisines that earn a scoring bonus
        medical_flags: Medical conditions (e.g. "diabetes", "celiac")
        diet: Free-form diet label matched against template diet tags
        liked_ingredients: Ingredient terms that earn a scoring bonus
        goal: loss | maintain | gain
    """

    allergies: list[str] = field(default_factory=list)
    avoid: list[str] = field(default_factory=list)
    must_include: list[str] = field(default_factory=list)
    no_meat: bool = False
    no_fish: bool = False
    no_dairy: bool = False
    no_eggs: bool = False
    no_vegetables: bool = False
    no_fruit: bool = False
    daily_calories: Optional[float] = None
    calories_per_meal: Optional[float] = None
    protein_per_meal: Optional[float] = None
    kosher: bool = False
    halal: bool = False
    low_fodmap: bool = False
    cuisines_preferred: list[str] = field(default_factory=list)
    medical_flags: list[str] = field(default_factory=list)
    diet: Optional[str] = None
    liked_ingredients: list[str] = field(default_factory=list)
    goal: Goal = Goal.MAINTAIN

    def per_meal_calories(self, slots_per_day: int) -> Optional[float]:
        """Calorie target for one slot, or None when no target is known."""
        if self.calories_per_meal:
            return float(self.calories_per_meal)
        if self.daily_calories and slots_per_day > 0:
            return float(self.daily_calories) / slots_per_day
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "allergies": sorted(self.allergies),
            "avoid": sorted(self.avoid),
            "must_include": sorted(self.must_include),
            "no_meat": self.no_meat,
            "no_fish": self.no_fish,
            "no_dairy": self.no_dairy,
            "no_eggs": self.no_eggs,
            "no_vegetables": self.no_vegetables,
            "no_fruit": self.no_fruit,
            "daily_calories": self.daily_calories,
            "calories_per_meal": self.calories_per_meal,
            "protein_per_meal": self.protein_per_meal,
            "kosher": self.kosher,
            "halal": self.halal,
            "low_fodmap": self.low_fodmap,
            "cuisines_preferred": sorted(self.cuisines_preferred),
            "medical_flags": sorted(self.medical_flags),
            "diet": self.diet,
            "liked_ingredients": sorted(self.liked_ingredients),
            "goal": self.goal.value,
        }

    def profile_hash(self) -> str:
        """Stable 12-character hash of the whole profile."""
        stable = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(stable.encode("utf-8")).hexdigest()[:12]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConstraintProfile":
        """Build a profile from snake_case or onboarding camelCase keys.

        Unknown keys are ignored.
        """
        known = set(cls.__dataclass_fields__)
        kwargs: dict[str, Any] = {}
        for key, value in (data or {}).items():
            name = _PROFILE_ALIASES.get(key, key)
            if name not in known or value is None:
                continue
            kwargs[name] = value
        if "goal" in kwargs and not isinstance(kwargs["goal"], Goal):
            kwargs["goal"] = Goal(str(kwargs["goal"]).lower())
        for name in ("allergies", "avoid", "must_include", "cuisines_preferred",
                     "medical_flags", "liked_ingredients"):
            if name in kwargs and isinstance(kwargs[name], str):
                kwargs[name] = [kwargs[name]]
        return cls(**kwargs)


@dataclass
class MacroTargets:
    """Daily macro targets for a plan request."""

    calories: Optional[float] = None
    protein: Optional[float] = None
    carbs: Optional[float] = None
    fat: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "calories": self.calories,
            "protein": self.protein,
            "carbs": self.carbs,
            "fat": self.fat,
        }


DEFAULT_SLOT_TIMES: dict[MealType, str] = {
    MealType.BREAKFAST: "08:00",
    MealType.LUNCH: "12:30",
    MealType.DINNER: "18:30",
}
DEFAULT_SNACK_TIMES = ["10:30", "15:30", "20:30"]


@dataclass(frozen=True)
class ScheduleSlot:
    """One scheduled eating occasion in a day.

    Attributes:
        slot: "meal" or "snack"
        label: Display label ("Breakfast", "Snack 1")
        time: Clock time, "HH:MM"
        order: Position within the day
    """

    slot: str
    label: str
    time: str = ""
    order: int = 0

    @property
    def meal_type(self) -> MealType:
        if self.slot.strip().lower() == "snack":
            return MealType.SNACK
        return MealType.parse(self.label, default=MealType.LUNCH)

    def to_dict(self) -> dict[str, Any]:
        return {"slot": self.slot, "label": self.label, "time": self.time, "order": self.order}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScheduleSlot":
        return cls(
            slot=str(data.get("slot") or "meal"),
            label=str(data.get("label") or ""),
            time=str(data.get("time") or ""),
            order=int(data.get("order") or 0),
        )


def default_schedule(meals_per_day: int, snacks_per_day: int) -> list[ScheduleSlot]:
    """Breakfast, lunch, dinner (as many as requested), then snacks."""
    slots: list[ScheduleSlot] = []
    main_types = [MealType.BREAKFAST, MealType.LUNCH, MealType.DINNER][:meals_per_day]
    for meal_type in main_types:
        slots.append(
            ScheduleSlot(
                slot="meal",
                label=meal_type.value.capitalize(),
                time=DEFAULT_SLOT_TIMES[meal_type],
                order=len(slots),
            )
        )
    for i in range(snacks_per_day):
        slots.append(
            ScheduleSlot(
                slot="snack",
                label=f"Snack {i + 1}",
                time=DEFAULT_SNACK_TIMES[i % len(DEFAULT_SNACK_TIMES)],
                order=len(slots),
            )
        )
    return slots


@dataclass
class PlanRequest:
    """A request for a multi-day plan.

    Attributes:
        user_id: Requesting user (keys the variety bank and the cache)
        weeks: Number of weeks
        days: Days per week (1-7)
        meals_per_day: 1-3 main meals (breakfast, lunch, dinner in that order)
        snacks_per_day: 0-3 snacks
        targets: Daily macro targets
        medical_flags: Extra medical flags on top of the profile's
        allergens: Extra allergens on top of the profile's
        schedule: Explicit schedule; overrides meals/snacks per day
        mode: Generated-plan mode
        source: templates or generated
        fixed_menu: Meals cycled through in fixed_menu mode
        seed: Random seed for reproducible template assembly
    """

    user_id: str
    weeks: int = 1
    days: int = 7
    meals_per_day: int = 3
    snacks_per_day: int = 0
    targets: MacroTargets = field(default_factory=MacroTargets)
    medical_flags: list[str] = field(default_factory=list)
    allergens: list[str] = field(default_factory=list)
    schedule: list[ScheduleSlot] = field(default_factory=list)
    mode: PlanMode = PlanMode.AI_VARIED
    source: PlanSource = PlanSource.TEMPLATES
    fixed_menu: list[Meal] = field(default_factory=list)
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.user_id:
            raise ValueError("user_id is required")
        if self.weeks < 1:
            raise ValueError(f"weeks must be >= 1, got {self.weeks}")
        if not 1 <= self.days <= 7:
            raise ValueError(f"days must be between 1 and 7, got {self.days}")
        if not 1 <= self.meals_per_day <= 3:
            raise ValueError(f"meals_per_day must be between 1 and 3, got {self.meals_per_day}")
        if not 0 <= self.snacks_per_day <= 3:
            raise ValueError(f"snacks_per_day must be between 0 and 3, got {self.snacks_per_day}")
        if self.mode == PlanMode.FIXED_MENU and len(self.fixed_menu) < 2:
            raise ValueError("fixed_menu mode needs at least 2 menu meals")

    @property
    def day_count(self) -> int:
        return self.weeks * self.days

    def effective_schedule(self) -> list[ScheduleSlot]:
        """Schedule slots for one day, de-duplicated and in time order."""
        if not self.schedule:
            return default_schedule(self.meals_per_day, self.snacks_per_day)
        seen: set[tuple[str, str]] = set()
        unique: list[ScheduleSlot] = []
        ordered = sorted(self.schedule, key=lambda s: (s.time.strip(), s.order))
        for slot in ordered:
            key = (slot.label.strip().lower(), slot.time.strip())
            if key in seen:
                continue
            seen.add(key)
            unique.append(slot)
        return unique


@dataclass
class PlanSlot:
    """A (day, slot) position bound to exactly one meal."""

    label: str
    time: str
    order: int
    meal: Meal

    @property
    def meal_type(self) -> MealType:
        return self.meal.meal_type

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "time": self.time,
            "order": self.order,
            "meal": self.meal.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlanSlot":
        return cls(
            label=str(data["label"]),
            time=str(data.get("time") or ""),
            order=int(data.get("order") or 0),
            meal=Meal.from_dict(data["meal"]),
        )


@dataclass
class PlanDay:
    """One day of a plan."""

    day: int
    slots: list[PlanSlot] = field(default_factory=list)

    @property
    def meals(self) -> list[Meal]:
        return [s.meal for s in self.slots]

    @property
    def total_calories(self) -> float:
        return sum(m.nutrition.calories or 0.0 for m in self.meals)

    @property
    def total_protein(self) -> float:
        return sum(m.nutrition.protein or 0.0 for m in self.meals)

    def to_dict(self) -> dict[str, Any]:
        return {"day": self.day, "slots": [s.to_dict() for s in self.slots]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlanDay":
        return cls(day=int(data["day"]), slots=[PlanSlot.from_dict(s) for s in data["slots"]])


@dataclass
class PlanWeek:
    """One week of a plan."""

    week: int
    days: list[PlanDay] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"week": self.week, "days": [d.to_dict() for d in self.days]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlanWeek":
        return cls(week=int(data["week"]), days=[PlanDay.from_dict(d) for d in data["days"]])


@dataclass
class PlanMeta:
    """Summary and telemetry recorded alongside an assembled plan.

    Attributes:
        unique_ingredients: Distinct ingredient names across the plan
        repeat_count: Extra occurrences of meals already used (by slug)
        cuisine_count: Distinct cuisines across the plan
        macro_hit_pct: Percent of days within the calorie tolerance (None without a target)
        latency_ms: Wall-clock build time
        caps_met: False when repair hit its ceiling without satisfying the weekly caps
        repair_iterations: Total repair iterations across weeks
        pool_tiers: Relaxation tier used per meal type
        duplicates_prevented: Regenerations triggered by signature collisions
        violations_fixed: Regenerations triggered by failed validation gates
        profile_hash: Hash of the constraint profile used
        mode: Plan mode
        source: Plan source
        warnings: Human-readable warnings
        weekly_totals: Macro totals and daily averages per week
    """

    unique_ingredients: int = 0
    repeat_count: int = 0
    cuisine_count: int = 0
    macro_hit_pct: Optional[float] = None
    latency_ms: int = 0
    caps_met: bool = True
    repair_iterations: int = 0
    pool_tiers: dict[str, str] = field(default_factory=dict)
    duplicates_prevented: int = 0
    violations_fixed: int = 0
    profile_hash: str = ""
    mode: str = PlanMode.AI_VARIED.value
    source: str = PlanSource.TEMPLATES.value
    warnings: list[str] = field(default_factory=list)
    weekly_totals: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "unique_ingredients": self.unique_ingredients,
            "repeat_count": self.repeat_count,
            "cuisine_count": self.cuisine_count,
            "macro_hit_pct": self.macro_hit_pct,
            "latency_ms": self.latency_ms,
            "caps_met": self.caps_met,
            "repair_iterations": self.repair_iterations,
            "pool_tiers": dict(self.pool_tiers),
            "duplicates_prevented": self.duplicates_prevented,
            "violations_fixed": self.violations_fixed,
            "profile_hash": self.profile_hash,
            "mode": self.mode,
            "source": self.source,
            "warnings": list(self.warnings),
            "weekly_totals": list(self.weekly_totals),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlanMeta":
        known = set(cls.__dataclass_fields__)
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class AssembledPlan:
    """Ordered weeks -> days -> slots, plus a meta record."""

    weeks: list[PlanWeek] = field(default_factory=list)
    meta: PlanMeta = field(default_factory=PlanMeta)

    def iter_days(self) -> Iterator[PlanDay]:
        for week in self.weeks:
            yield from week.days

    def iter_slots(self) -> Iterator[PlanSlot]:
        for day in self.iter_days():
            yield from day.slots

    def all_meals(self) -> list[Meal]:
        return [slot.meal for slot in self.iter_slots()]

    def to_dict(self) -> dict[str, Any]:
        return {"weeks": [w.to_dict() for w in self.weeks], "meta": self.meta.to_dict()}

    def to_json(self, indent: Optional[int] = None) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AssembledPlan":
        return cls(
            weeks=[PlanWeek.from_dict(w) for w in data.get("weeks") or []],
            meta=PlanMeta.from_dict(data.get("meta") or {}),
        )
