"""Generator client contract and its implementations.

The pipeline only depends on ``MealGenerator``: an object with an async
``generate(request)`` that returns one raw meal record. Anything shaped like
a meal is accepted; ``normalize.normalize_meal`` deals with the rest.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Protocol, runtime_checkable

import httpx

from mealweave.errors import GeneratorError
from mealweave.models import ConstraintProfile, MealType

logger = logging.getLogger(__name__)

BASE_SEED = 7
SCHEMA_NAME = "MealSchemaV1"


def _merged(*groups: list[str]) -> list[str]:
    """Concatenate term lists, dropping blanks and case-insensitive repeats."""
    seen: set[str] = set()
    merged: list[str] = []
    for group in groups:
        for term in group:
            key = str(term).strip().lower()
            if key and key not in seen:
                seen.add(key)
                merged.append(str(term).strip())
    return merged


@dataclass
class GenerationRequest:
    """One call to the external generator.

    Attributes:
        user_id: Requesting user
        meal_type: Slot type to generate for
        profile: Constraint profile forwarded as generator constraints
        variation: Nudge counter; drives the seed and the variation text
        avoid_hint: Last violation, passed so the generator can steer away
        avoid_names: Meal names already used that should not be repeated
        slots_per_day: Slots sharing the daily calorie target
        extra_allergens: Request-level allergens on top of the profile's
        medical_flags: Request-level medical flags on top of the profile's
    """

    user_id: str
    meal_type: MealType
    profile: ConstraintProfile = field(default_factory=ConstraintProfile)
    variation: int = 0
    avoid_hint: Optional[str] = None
    avoid_names: list[str] = field(default_factory=list)
    slots_per_day: int = 3
    extra_allergens: list[str] = field(default_factory=list)
    medical_flags: list[str] = field(default_factory=list)

    @property
    def seed(self) -> int:
        return BASE_SEED + self.variation

    @property
    def variation_text(self) -> str:
        if self.variation == 0:
            return ""
        return f"variation #{self.variation}: make it clearly different from earlier suggestions"

    def to_body(self) -> dict[str, Any]:
        """JSON body sent to the generator."""
        profile = self.profile
        body: dict[str, Any] = {
            "userId": self.user_id,
            "craving": f"{self.meal_type.value} meal",
            "mealType": self.meal_type.value,
            "includeImage": False,
            "constraints": {
                "diet": profile.diet,
                "allergies": _merged(profile.allergies, self.extra_allergens),
                "avoid": list(profile.avoid),
                "mustInclude": list(profile.must_include),
                "flags": {
                    "noMeat": profile.no_meat,
                    "noFish": profile.no_fish,
                    "noDairy": profile.no_dairy,
                    "noEggs": profile.no_eggs,
                    "noVeg": profile.no_vegetables,
                    "noFruit": profile.no_fruit,
                    "kosher": profile.kosher,
                    "halal": profile.halal,
                    "lowFodmap": profile.low_fodmap,
                },
                "macros": {
                    "caloriesTarget": profile.daily_calories,
                    "caloriesPerMeal": profile.per_meal_calories(self.slots_per_day),
                    "proteinPerMeal": profile.protein_per_meal,
                },
                "cuisinesPreferred": list(profile.cuisines_preferred),
                "medicalFlags": _merged(profile.medical_flags, self.medical_flags),
            },
            "temperature": 0,
            "seed": self.seed,
            "schema": SCHEMA_NAME,
        }
        if self.variation_text:
            body["variation"] = self.variation_text
        if self.avoid_hint:
            body["avoid"] = self.avoid_hint
        if self.avoid_names:
            body["avoidMeals"] = list(self.avoid_names)
        return body


@runtime_checkable
class MealGenerator(Protocol):
    """Anything that can produce one raw meal record per request."""

    async def generate(self, request: GenerationRequest) -> Mapping[str, Any]:
        ...


class HttpMealGenerator:
    """Generator backed by an HTTP endpoint that returns one meal as JSON."""

    def __init__(
        self,
        base_url: str,
        endpoint: str = "/api/meals/generate",
        timeout: float = 20.0,
        headers: Optional[dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the generator.

        Args:
            base_url: Service root, e.g. "http://localhost:8080"
            endpoint: Path appended to base_url
            timeout: httpx timeout in seconds
            headers: Extra request headers
            client: Pre-built client (used by tests with a MockTransport)
        """
        self.url = base_url.rstrip("/") + endpoint
        self.timeout = timeout
        self.headers = headers or {}
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, headers=self.headers)
        return self._client

    async def generate(self, request: GenerationRequest) -> Mapping[str, Any]:
        client = self._get_client()
        try:
            response = await client.post(self.url, json=request.to_body())
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise GeneratorError(
                f"Generator returned HTTP {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise GeneratorError(f"Generator request failed: {e}") from e
        except ValueError as e:
            raise GeneratorError(f"Generator returned invalid JSON: {e}") from e

        if isinstance(data, Mapping) and isinstance(data.get("meal"), Mapping):
            data = data["meal"]
        if not isinstance(data, Mapping):
            raise GeneratorError(f"Generator returned {type(data).__name__}, expected an object")
        return data

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


class CallableMealGenerator:
    """Adapts a plain function (sync or async) to the generator protocol.

    Sync callables run in a worker thread so they cannot block the event loop.
    """

    def __init__(self, fn: Callable[[GenerationRequest], Any]):
        self.fn = fn
        self.calls = 0

    async def generate(self, request: GenerationRequest) -> Mapping[str, Any]:
        self.calls += 1
        if inspect.iscoroutinefunction(self.fn):
            result = await self.fn(request)
        else:
            result = await asyncio.to_thread(self.fn, request)
        if not isinstance(result, Mapping):
            raise GeneratorError(f"Generator returned {type(result).__name__}, expected a mapping")
        return result
