"""Plan service: the public entry points for building plans.

``MealPlanService`` wires the pieces together:

- template plans: pool builder -> scorer -> weekly assembler
- generated plans: generation pipeline -> de-duplication -> variety bank
- both: result cache in front, caller-level timeout around the whole build

A build either returns a complete plan or raises one ``MealPlanError``.
Nothing from a failed or timed-out build reaches the cache or the variety
bank.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Iterable, Optional, Sequence

from mealweave.cache.result_cache import ResultCache, plan_signature
from mealweave.cache.store import KeyValueStore, MemoryStore, SqliteStore
from mealweave.config.settings import Settings, get_settings
from mealweave.data.catalog import builtin_catalog
from mealweave.data.macro_reference import MacroReference, get_reference
from mealweave.db.connection import DatabaseConnection
from mealweave.errors import GenerationTimeout, MealPlanError, PoolExhausted
from mealweave.generation.client import MealGenerator
from mealweave.generation.limiter import ConcurrencyLimiter
from mealweave.generation.pipeline import GenerationPipeline, GenerationResult
from mealweave.models import (
    AssembledPlan,
    ConstraintProfile,
    Meal,
    MealType,
    PlanDay,
    PlanMeta,
    PlanMode,
    PlanRequest,
    PlanSlot,
    PlanSource,
    PlanWeek,
    ScheduleSlot,
)
from mealweave.nutrition.estimator import IngredientLike, MacroTotals
from mealweave.nutrition.estimator import estimate_macros as _estimate_macros
from mealweave.planning.assembler import WeeklyAssembler, macro_hit_pct, validate_week, weekly_totals
from mealweave.planning.pool import PoolTier, build_pools
from mealweave.planning.rules import count_repeats, hard_safety_reason
from mealweave.planning.scoring import Preferences, rank_pool
from mealweave.variety.bank import VarietyBank
from mealweave.variety.signature import meal_signature

logger = logging.getLogger(__name__)

# Variation offsets used when a generated meal collides with an earlier one
DAY_DUPLICATE_VARIATION = 10
BANK_DUPLICATE_VARIATION = 20


@dataclass
class _BuildState:
    """Counters and pending signatures for one plan build."""

    duplicates_prevented: int = 0
    violations_fixed: int = 0
    repair_iterations: int = 0
    caps_met: bool = True
    pool_tiers: dict[str, str] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)


def _remember(state: _BuildState, signature: str) -> None:
    """Queue a signature for the variety bank once the plan completes."""
    if signature not in state.pending:
        state.pending.append(signature)


@dataclass
class _GenContext:
    """Per-request inputs shared by every generation call."""

    user_id: str
    profile: ConstraintProfile
    slots_per_day: int = 3
    extra_allergens: list[str] = field(default_factory=list)
    medical_flags: list[str] = field(default_factory=list)


def _retype(meal: Meal, meal_type: MealType, source: Optional[str] = None) -> Meal:
    """Copy of a meal bound to another slot type."""
    if meal.meal_type == meal_type and source is None:
        return meal
    return replace(meal, meal_type=meal_type, source=source or meal.source)


class MealPlanService:
    """Builds plans, regenerates single slots and estimates macros."""

    def __init__(
        self,
        catalog: Optional[Sequence[Meal]] = None,
        generator: Optional[MealGenerator] = None,
        settings: Optional[Settings] = None,
        result_cache: Optional[ResultCache] = None,
        variety_bank: Optional[VarietyBank] = None,
        limiter: Optional[ConcurrencyLimiter] = None,
        reference: Optional[MacroReference] = None,
    ):
        """Initialize the service.

        Args:
            catalog: Template candidates (defaults to the built-in catalog)
            generator: External meal generator for generated plans
            settings: Settings (defaults to the global settings)
            result_cache: Plan cache (defaults to an in-memory cache)
            variety_bank: Cross-session signature memory (defaults to in-memory)
            limiter: Concurrency gate shared by every generator call
            reference: Macro reference table
        """
        self.settings = settings or get_settings()
        self.catalog = list(catalog) if catalog is not None else builtin_catalog()
        self.generator = generator
        self.reference = reference or get_reference()
        self.rules = self.settings.rules

        cache_cfg = self.settings.cache
        self.result_cache = result_cache or ResultCache(
            ttl_seconds=cache_cfg.ttl_seconds, capacity=cache_cfg.capacity
        )
        variety_cfg = self.settings.variety
        self.variety_bank = variety_bank or VarietyBank(
            ttl_seconds=variety_cfg.ttl_days * 24 * 3600, capacity=variety_cfg.capacity
        )

        gen_cfg = self.settings.generation
        self.limiter = limiter or ConcurrencyLimiter(gen_cfg.concurrency)
        self.pipeline: Optional[GenerationPipeline] = None
        if generator is not None:
            self.pipeline = GenerationPipeline(
                generator,
                limiter=self.limiter,
                max_tries=gen_cfg.max_tries,
                timeout_seconds=gen_cfg.timeout_seconds,
                reference=self.reference,
            )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        catalog: Optional[Sequence[Meal]] = None,
        generator: Optional[MealGenerator] = None,
        variety_bank: Optional[VarietyBank] = None,
    ) -> "MealPlanService":
        """Build a service whose cache and variety bank use the configured backend.

        A ``variety_bank`` passed in replaces the configured one.
        """
        settings = settings or get_settings()
        plan_store: KeyValueStore
        bank_store: KeyValueStore
        if settings.storage.backend == "sqlite":
            db = DatabaseConnection(settings.storage.path)
            plan_store = SqliteStore(db, "plans")
            bank_store = SqliteStore(db, "variety")
        else:
            plan_store = MemoryStore()
            bank_store = MemoryStore()
        return cls(
            catalog=catalog,
            generator=generator,
            settings=settings,
            result_cache=ResultCache(
                plan_store,
                ttl_seconds=settings.cache.ttl_seconds,
                capacity=settings.cache.capacity,
            ),
            variety_bank=variety_bank or VarietyBank(
                bank_store,
                ttl_seconds=settings.variety.ttl_days * 24 * 3600,
                capacity=settings.variety.capacity,
            ),
        )

    # =========================================================================
    # Public contracts
    # =========================================================================

    async def build_plan(
        self,
        request: PlanRequest,
        profile: Optional[ConstraintProfile] = None,
        use_cache: bool = True,
    ) -> AssembledPlan:
        """Build (or fetch from cache) a complete plan.

        Args:
            request: What to build
            profile: User constraints; defaults to an empty profile
            use_cache: Serve and store through the result cache

        Returns:
            AssembledPlan with every slot filled

        Raises:
            PoolExhausted: No safe template for a slot type
            GenerationExhausted: A generated slot failed every try
            GenerationTimeout: The whole build exceeded the plan timeout
            VarietyCapsNotMet: Repair did not converge and best-effort plans are rejected
        """
        profile = profile or ConstraintProfile()
        timeout = self.settings.generation.plan_timeout_seconds

        async def builder() -> AssembledPlan:
            return await self._build(request, profile)

        work: Awaitable[AssembledPlan]
        if use_cache:
            key = plan_signature(request, profile.profile_hash())
            work = self.result_cache.get_or_build(key, builder)
        else:
            work = builder()

        try:
            return await asyncio.wait_for(work, timeout)
        except asyncio.TimeoutError as e:
            logger.warning("Plan for %s timed out after %.0fs", request.user_id, timeout)
            raise GenerationTimeout(f"plan generation exceeded {timeout:g}s") from e

    def build_plan_sync(
        self,
        request: PlanRequest,
        profile: Optional[ConstraintProfile] = None,
        use_cache: bool = True,
    ) -> AssembledPlan:
        """Blocking wrapper around ``build_plan`` for scripts and the CLI."""
        return asyncio.run(self.build_plan(request, profile, use_cache=use_cache))

    async def regenerate_slot(
        self,
        user_id: str,
        slot: ScheduleSlot,
        profile: Optional[ConstraintProfile] = None,
        exclude: Iterable[str] = (),
        seed: Optional[int] = None,
    ) -> Meal:
        """Produce a replacement meal for one slot.

        Uses the generator when one is configured, otherwise the template
        catalog. Meals whose signature is in the user's variety bank, or whose
        slug or name is in ``exclude``, are avoided when possible. The chosen
        meal's signature is added to the bank.

        Raises:
            PoolExhausted: No safe template exists for the slot type
            GenerationExhausted: Every generation try failed
        """
        profile = profile or ConstraintProfile()
        meal_type = slot.meal_type
        excluded = {e.strip().lower() for e in exclude}

        if self.pipeline is not None:
            ctx = _GenContext(user_id=user_id, profile=profile)
            result = await self._generate_fresh(
                ctx, meal_type, _BuildState(), avoid_names=sorted(excluded)
            )
            meal = result.meal
        else:
            meal = self._pick_template(user_id, meal_type, profile, excluded, random.Random(seed))

        if self.settings.variety.enabled:
            self.variety_bank.add(user_id, meal_signature(meal))
        return meal

    def estimate_macros(self, ingredients: Iterable[IngredientLike]) -> Optional[MacroTotals]:
        """Estimate macros for free-text lines or Ingredient objects."""
        return _estimate_macros(ingredients, self.reference)

    # =========================================================================
    # Build
    # =========================================================================

    async def _build(self, request: PlanRequest, profile: ConstraintProfile) -> AssembledPlan:
        started = time.perf_counter()
        state = _BuildState()
        schedule = request.effective_schedule()
        if not schedule:
            raise MealPlanError("schedule has no slots")

        if request.mode == PlanMode.FIXED_MENU:
            days = self._fixed_menu_days(request, profile, schedule)
        elif request.source == PlanSource.GENERATED:
            days = await self._generated_days(request, profile, schedule, state)
        else:
            days = self._template_days(request, profile, schedule, state)
            for meal in (m for day in days for m in day):
                _remember(state, meal_signature(meal))

        plan = self._to_plan(request, profile, schedule, days, state)
        plan.meta.latency_ms = int((time.perf_counter() - started) * 1000)

        # Only a complete plan is remembered
        if state.pending and self.settings.variety.enabled:
            self.variety_bank.add_many(request.user_id, state.pending)

        logger.info(
            "Built %s/%s plan for %s: %d slots, %d duplicates prevented, %d violations fixed, %dms",
            request.source.value, request.mode.value, request.user_id,
            sum(len(d) for d in days), state.duplicates_prevented,
            state.violations_fixed, plan.meta.latency_ms,
        )
        return plan

    def _to_plan(
        self,
        request: PlanRequest,
        profile: ConstraintProfile,
        schedule: list[ScheduleSlot],
        days: list[list[Meal]],
        state: _BuildState,
    ) -> AssembledPlan:
        weeks: list[PlanWeek] = []
        totals: list[dict[str, Any]] = []
        warnings = list(state.warnings)
        for w in range(request.weeks):
            week_meals = days[w * request.days:(w + 1) * request.days]
            plan_days = []
            for d, meals in enumerate(week_meals, start=1):
                slots = [
                    PlanSlot(label=s.label, time=s.time, order=s.order, meal=m)
                    for s, m in zip(schedule, meals)
                ]
                plan_days.append(PlanDay(day=d, slots=slots))
            weeks.append(PlanWeek(week=w + 1, days=plan_days))
            totals.append({"week": w + 1, **weekly_totals(week_meals)})
            for warning in validate_week(week_meals, request.targets):
                warnings.append(f"Week {w + 1}: {warning}")

        all_meals = [m for day in days for m in day]
        unique = {name for m in all_meals for name in m.ingredient_names}
        cuisines = {m.cuisine for m in all_meals if m.cuisine}
        daily_target = request.targets.calories or profile.daily_calories

        meta = PlanMeta(
            unique_ingredients=len(unique),
            repeat_count=count_repeats(all_meals),
            cuisine_count=len(cuisines),
            macro_hit_pct=macro_hit_pct(days, daily_target, self.rules.calorie_tolerance_pct),
            caps_met=state.caps_met,
            repair_iterations=state.repair_iterations,
            pool_tiers=dict(state.pool_tiers),
            duplicates_prevented=state.duplicates_prevented,
            violations_fixed=state.violations_fixed,
            profile_hash=profile.profile_hash(),
            mode=request.mode.value,
            source=request.source.value,
            warnings=warnings,
            weekly_totals=totals,
        )
        return AssembledPlan(weeks=weeks, meta=meta)

    # =========================================================================
    # Template path
    # =========================================================================

    def _ranked_pools(
        self,
        profile: ConstraintProfile,
        meal_types: Iterable[MealType],
        extra_allergens: Iterable[str],
        medical_flags: Iterable[str],
        state: _BuildState,
    ) -> dict[MealType, list[Meal]]:
        """Build, check and rank one pool per slot type."""
        pools = build_pools(
            self.catalog,
            profile,
            meal_types,
            rules=self.rules,
            extra_allergens=extra_allergens,
            medical_flags=medical_flags,
            min_strict_pool=self.settings.assembly.min_strict_pool,
        )
        prefs = Preferences.from_profile(profile)
        ranked: dict[MealType, list[Meal]] = {}
        for meal_type, pool in pools.items():
            if pool.is_empty:
                raise PoolExhausted(meal_type.value, dict(pool.rejects))
            state.pool_tiers[meal_type.value] = pool.tier.value
            if pool.tier != PoolTier.STRICT:
                state.warnings.append(
                    f"{meal_type.value} pool used the {pool.tier.value} tier ({len(pool)} candidates)"
                )
            ranked[meal_type] = rank_pool(pool.candidates, prefs)
        return ranked

    def _template_days(
        self,
        request: PlanRequest,
        profile: ConstraintProfile,
        schedule: list[ScheduleSlot],
        state: _BuildState,
    ) -> list[list[Meal]]:
        slot_types = [s.meal_type for s in schedule]
        ranked = self._ranked_pools(
            profile, slot_types, request.allergens, request.medical_flags, state
        )
        assembly_cfg = self.settings.assembly
        assembler = WeeklyAssembler(
            ranked,
            rules=self.rules,
            rng=random.Random(request.seed),
            top_k=assembly_cfg.top_k,
            max_iterations=assembly_cfg.max_iterations,
            reference=self.reference,
            reject_best_effort=assembly_cfg.reject_best_effort,
        )

        if request.mode == PlanMode.REPEAT_ONE:
            day = assembler.fill_week(slot_types, days=1)[0]
            return [list(day) for _ in range(request.day_count)]

        days: list[list[Meal]] = []
        for w in range(request.weeks):
            assembly = assembler.assemble_week(slot_types, request.days)
            state.repair_iterations += assembly.iterations
            if not assembly.compliant:
                state.caps_met = False
                state.warnings.append(
                    f"Week {w + 1}: weekly caps not fully met after "
                    f"{assembly.iterations} repair iterations"
                )
            days.extend(assembly.days)
        return days

    def _pick_template(
        self,
        user_id: str,
        meal_type: MealType,
        profile: ConstraintProfile,
        excluded: set[str],
        rng: random.Random,
    ) -> Meal:
        ranked = self._ranked_pools(profile, [meal_type], (), (), _BuildState())[meal_type]
        fresh = [
            m for m in ranked
            if m.slug not in excluded
            and m.name.lower() not in excluded
            and not self.variety_bank.contains(user_id, meal_signature(m))
        ]
        top_k = self.settings.assembly.top_k
        if fresh:
            return rng.choice(fresh[:top_k])
        unexcluded = [m for m in ranked if m.slug not in excluded and m.name.lower() not in excluded]
        return rng.choice((unexcluded or ranked)[:top_k])

    # =========================================================================
    # Fixed menu
    # =========================================================================

    def _fixed_menu_days(
        self,
        request: PlanRequest,
        profile: ConstraintProfile,
        schedule: list[ScheduleSlot],
    ) -> list[list[Meal]]:
        """Cycle the caller's menu through every slot.

        Menu meals are still checked for hard safety. Each slot type cycles
        through the menu meals of its own type, or through the whole menu when
        none match.
        """
        safe = [
            m for m in request.fixed_menu
            if not hard_safety_reason(m, profile, request.allergens, request.medical_flags)
        ]
        if not safe:
            raise PoolExhausted("fixed_menu")

        cursors: dict[MealType, int] = {}
        days: list[list[Meal]] = []
        for _ in range(request.day_count):
            day = []
            for s in schedule:
                meal_type = s.meal_type
                options = [m for m in safe if m.meal_type == meal_type] or safe
                index = cursors.get(meal_type, 0)
                cursors[meal_type] = index + 1
                day.append(_retype(options[index % len(options)], meal_type, source="fixed"))
            days.append(day)
        return days

    # =========================================================================
    # Generated path
    # =========================================================================

    def _generation_profile(self, request: PlanRequest, profile: ConstraintProfile) -> ConstraintProfile:
        """Profile used by the gates: request calories fill a missing profile target."""
        if profile.daily_calories is None and request.targets.calories:
            return replace(profile, daily_calories=request.targets.calories)
        return profile

    async def _attempt(
        self,
        ctx: _GenContext,
        meal_type: MealType,
        state: _BuildState,
        variation: int = 0,
        avoid_names: Sequence[str] = (),
    ) -> GenerationResult:
        """One pipeline run; its failed tries count as violations fixed."""
        if self.pipeline is None:
            raise MealPlanError("generated meals need a meal generator")
        result = await self.pipeline.generate_meal(
            ctx.user_id,
            meal_type,
            ctx.profile,
            slots_per_day=ctx.slots_per_day,
            extra_allergens=ctx.extra_allergens,
            medical_flags=ctx.medical_flags,
            variation=variation,
            avoid_names=avoid_names,
        )
        state.violations_fixed += len(result.violations)
        return result

    async def _dedupe(
        self,
        ctx: _GenContext,
        result: GenerationResult,
        state: _BuildState,
        seen: set[str],
    ) -> GenerationResult:
        """Regenerate a meal that repeats one from this day or a recent plan.

        A collision with ``seen`` (this day) retries with variation 10 + n,
        up to max_tries. A collision with the variety bank or with signatures
        pending in this plan retries with variation 20 + n, up to the bank
        retry limit. When retries run out the duplicate is accepted.
        """
        gen_cfg = self.settings.generation
        meal_type = result.meal.meal_type
        sig = meal_signature(result.meal)

        tries = 0
        while sig in seen and tries < gen_cfg.max_tries:
            state.duplicates_prevented += 1
            result = await self._attempt(ctx, meal_type, state, DAY_DUPLICATE_VARIATION + tries)
            sig = meal_signature(result.meal)
            tries += 1
        if sig in seen:
            logger.warning("Accepting same-day duplicate %s for %s", result.meal.name, meal_type.value)

        def recently_served(s: str) -> bool:
            if s in state.pending:
                return True
            return self.settings.variety.enabled and self.variety_bank.contains(ctx.user_id, s)

        bank_tries = 0
        while recently_served(sig) and bank_tries < gen_cfg.bank_retry_limit:
            state.duplicates_prevented += 1
            result = await self._attempt(ctx, meal_type, state, BANK_DUPLICATE_VARIATION + bank_tries)
            sig = meal_signature(result.meal)
            bank_tries += 1
        if recently_served(sig):
            logger.warning("Accepting recently served %s for %s", result.meal.name, meal_type.value)

        seen.add(sig)
        _remember(state, sig)
        return result

    async def _generate_fresh(
        self,
        ctx: _GenContext,
        meal_type: MealType,
        state: _BuildState,
        avoid_names: Sequence[str] = (),
    ) -> GenerationResult:
        result = await self._attempt(ctx, meal_type, state, avoid_names=avoid_names)
        return await self._dedupe(ctx, result, state, set())

    async def _gather_or_cancel(self, coros: list[Awaitable[GenerationResult]]) -> list[GenerationResult]:
        """Run slot generations concurrently; one failure cancels the rest."""
        tasks = [asyncio.ensure_future(c) for c in coros]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _generated_days(
        self,
        request: PlanRequest,
        profile: ConstraintProfile,
        schedule: list[ScheduleSlot],
        state: _BuildState,
    ) -> list[list[Meal]]:
        if self.pipeline is None:
            raise MealPlanError("generated plans need a meal generator")
        ctx = _GenContext(
            user_id=request.user_id,
            profile=self._generation_profile(request, profile),
            slots_per_day=len(schedule),
            extra_allergens=list(request.allergens),
            medical_flags=list(request.medical_flags),
        )

        if request.mode == PlanMode.REPEAT_ONE:
            # One meal per slot type, served in every slot of that type
            by_type: dict[MealType, Meal] = {}
            for meal_type in dict.fromkeys(s.meal_type for s in schedule):
                by_type[meal_type] = (await self._generate_fresh(ctx, meal_type, state)).meal
            day = [by_type[s.meal_type] for s in schedule]
            return [list(day) for _ in range(request.day_count)]

        days: list[list[Meal]] = []
        used_names: list[str] = []
        for d in range(request.day_count):
            results = await self._gather_or_cancel(
                [
                    self._attempt(ctx, s.meal_type, state, variation=d, avoid_names=list(used_names))
                    for s in schedule
                ]
            )
            # Duplicates are resolved in slot order once the whole day is back
            seen: set[str] = set()
            day_meals = []
            for result in results:
                result = await self._dedupe(ctx, result, state, seen)
                day_meals.append(result.meal)
            used_names.extend(m.name for m in day_meals)
            days.append(day_meals)
            logger.debug("Day %d generated (%d slots)", d + 1, len(day_meals))
        return days
