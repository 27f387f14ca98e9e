"""Generate-validate-retry loop for one slot.

Each try asks the generator for a meal (behind the concurrency limiter and a
per-call timeout), normalizes it, and runs the gates. A failed try feeds its
reason back as an avoid hint and bumps the seed. The loop is an explicit
counter: only running out of tries raises.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from pydantic import ValidationError

from mealweave.data.macro_reference import MacroReference
from mealweave.errors import GenerationExhausted, GeneratorError
from mealweave.generation.client import GenerationRequest, MealGenerator
from mealweave.generation.gates import SCHEMA, TIMEOUT, TRANSPORT, Violation, run_gates
from mealweave.generation.limiter import ConcurrencyLimiter
from mealweave.generation.normalize import normalize_meal
from mealweave.models import ConstraintProfile, Meal, MealType

logger = logging.getLogger(__name__)

MAX_TRIES = 4
CALL_TIMEOUT_SECONDS = 20.0


@dataclass
class GenerationResult:
    """A meal that passed every gate, with the history of failed tries."""

    meal: Meal
    tries: int
    violations: list[Violation] = field(default_factory=list)
    measurements_fixed: bool = False

    @property
    def regenerations(self) -> int:
        return self.tries - 1


def _schema_reason(error: ValidationError) -> str:
    first = error.errors()[0] if error.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ())) or "payload"
    return f"schema:{location}:{first.get('msg', 'invalid')}"


class GenerationPipeline:
    """Produces one validated meal per call to ``generate_meal``."""

    def __init__(
        self,
        generator: MealGenerator,
        limiter: Optional[ConcurrencyLimiter] = None,
        max_tries: int = MAX_TRIES,
        timeout_seconds: float = CALL_TIMEOUT_SECONDS,
        reference: Optional[MacroReference] = None,
    ):
        if max_tries < 1:
            raise ValueError(f"max_tries must be at least 1, got {max_tries}")
        self.generator = generator
        self.limiter = limiter or ConcurrencyLimiter()
        self.max_tries = max_tries
        self.timeout_seconds = timeout_seconds
        self.reference = reference

    async def _call(self, request: GenerationRequest):
        async with self.limiter:
            return await asyncio.wait_for(self.generator.generate(request), self.timeout_seconds)

    async def generate_meal(
        self,
        user_id: str,
        meal_type: MealType,
        profile: ConstraintProfile,
        slots_per_day: int = 3,
        extra_allergens: Iterable[str] = (),
        medical_flags: Iterable[str] = (),
        variation: int = 0,
        avoid_names: Iterable[str] = (),
    ) -> GenerationResult:
        """Generate one meal that passes every gate.

        Args:
            user_id: Requesting user
            meal_type: Slot type
            profile: User constraint profile
            slots_per_day: Slots sharing the daily calorie target
            extra_allergens: Request-level allergens
            medical_flags: Request-level medical flags
            variation: Starting variation; each try adds one
            avoid_names: Meal names the generator should not repeat

        Returns:
            GenerationResult for the first passing meal

        Raises:
            GenerationExhausted: If every try failed
        """
        extra_allergens = list(extra_allergens)
        medical_flags = list(medical_flags)
        avoid_names = list(avoid_names)
        violations: list[Violation] = []
        last: Optional[Violation] = None

        for attempt in range(self.max_tries):
            request = GenerationRequest(
                user_id=user_id,
                meal_type=meal_type,
                profile=profile,
                variation=variation + attempt,
                avoid_hint=last.reason if last else None,
                avoid_names=avoid_names,
                slots_per_day=slots_per_day,
                extra_allergens=extra_allergens,
                medical_flags=medical_flags,
            )
            try:
                raw = await self._call(request)
            except asyncio.TimeoutError:
                last = Violation(TIMEOUT, f"timeout:{self.timeout_seconds:g}s")
            except GeneratorError as e:
                last = Violation(TRANSPORT, f"transport:{e}")
            else:
                try:
                    meal = normalize_meal(raw, meal_type)
                except ValidationError as e:
                    last = Violation(SCHEMA, _schema_reason(e))
                else:
                    result = run_gates(
                        meal,
                        meal_type,
                        profile,
                        slots_per_day=slots_per_day,
                        extra_allergens=extra_allergens,
                        medical_flags=medical_flags,
                        reference=self.reference,
                    )
                    if result.ok:
                        logger.debug(
                            "Generated %s for %s on try %d", result.meal.name, meal_type.value, attempt + 1
                        )
                        return GenerationResult(
                            meal=result.meal,
                            tries=attempt + 1,
                            violations=violations,
                            measurements_fixed=result.measurements_fixed,
                        )
                    last = result.violation

            violations.append(last)
            logger.debug("Try %d/%d for %s failed: %s", attempt + 1, self.max_tries, meal_type.value, last)

        final = violations[-1]
        logger.warning("Generation for %s exhausted after %d tries: %s", meal_type.value, self.max_tries, final)
        raise GenerationExhausted(final.reason, attempts=self.max_tries)
