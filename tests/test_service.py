"""End-to-end tests for MealPlanService."""

from __future__ import annotations

import asyncio

import pytest

from conftest import make_meal, meal_record
from mealweave.data.ontology import allergen_violation
from mealweave.errors import GenerationTimeout, MealPlanError, PoolExhausted
from mealweave.generation.normalize import normalize_meal
from mealweave.models import (
    ConstraintProfile,
    MacroTargets,
    MealType,
    PlanMode,
    PlanRequest,
    PlanSource,
    ScheduleSlot,
)
from mealweave.planning.rules import safety_names
from mealweave.service import MealPlanService
from mealweave.variety.signature import meal_signature

LENTIL = meal_record("Lentil Spinach Bowl", ("lentils", "1 cup"), ("spinach", "1 cup"))
SALMON = meal_record("Lemon Salmon Salad", ("salmon", "5 oz"), ("mixed greens", "2 cups"))

LUNCH = ScheduleSlot("meal", "Lunch", "12:30", 0)
TWO_LUNCHES = [LUNCH, ScheduleSlot("meal", "Lunch 2", "14:00", 1)]


def slugs(plan):
    return [m.slug for m in plan.all_meals()]


class TestPlanRequest:
    """Tests for request validation."""

    def test_defaults(self):
        request = PlanRequest(user_id="u1")
        assert request.day_count == 7
        assert [s.meal_type for s in request.effective_schedule()] == [
            MealType.BREAKFAST, MealType.LUNCH, MealType.DINNER,
        ]

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"user_id": ""},
            {"user_id": "u1", "days": 0},
            {"user_id": "u1", "days": 8},
            {"user_id": "u1", "meals_per_day": 4},
            {"user_id": "u1", "snacks_per_day": 4},
            {"user_id": "u1", "weeks": 0},
            {"user_id": "u1", "mode": PlanMode.FIXED_MENU},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            PlanRequest(**kwargs)

    def test_duplicate_schedule_slots_collapse(self):
        request = PlanRequest(user_id="u1", schedule=[LUNCH, ScheduleSlot("meal", " lunch ", "12:30", 3)])
        assert len(request.effective_schedule()) == 1


class TestTemplatePlans:
    """Tests for plans assembled from the template catalog."""

    def test_peanut_allergy_week(self, catalog, settings):
        service = MealPlanService(catalog, settings=settings)
        request = PlanRequest(user_id="u1", targets=MacroTargets(calories=2000), snacks_per_day=1, seed=3)
        plan = service.build_plan_sync(request, ConstraintProfile(allergies=["peanut"]))

        meals = plan.all_meals()
        assert len(meals) == 7 * 4
        assert "apple-peanut-butter" not in slugs(plan)
        for meal in meals:
            assert "peanuts" not in meal.allergens
            assert allergen_violation(safety_names(meal), ["peanut"]) is None

    def test_kosher_week(self, catalog, settings):
        service = MealPlanService(catalog, settings=settings)
        plan = service.build_plan_sync(PlanRequest(user_id="u1", seed=5), ConstraintProfile(kosher=True))
        assert "chicken-salad" not in slugs(plan)
        assert "beef-pasta" not in slugs(plan)

    def test_plan_shape_and_meta(self, catalog, settings):
        service = MealPlanService(catalog, settings=settings)
        plan = service.build_plan_sync(PlanRequest(user_id="u1", weeks=2, days=5, seed=1))
        assert [w.week for w in plan.weeks] == [1, 2]
        assert all(len(w.days) == 5 for w in plan.weeks)
        assert all(len(d.slots) == 3 for d in plan.iter_days())
        meta = plan.meta
        assert meta.pool_tiers == {"breakfast": "relaxed", "lunch": "strict", "dinner": "relaxed"}
        assert meta.unique_ingredients > 0
        assert len(meta.weekly_totals) == 2
        assert meta.macro_hit_pct is None
        # Main meals carry a carb split
        lunch = plan.weeks[0].days[0].slots[1].meal
        assert lunch.nutrition.starchy_carbs is not None

    def test_diabetes_week_uses_badged_templates(self, catalog, settings):
        service = MealPlanService(catalog, settings=settings)
        request = PlanRequest(user_id="d1", medical_flags=["diabetes"], seed=1)
        plan = service.build_plan_sync(request)

        meals = plan.all_meals()
        assert len(meals) == 7 * 3
        assert all("diabetes-friendly" in meal.badges for meal in meals)

    def test_served_templates_enter_variety_bank(self, catalog, settings):
        service = MealPlanService(catalog, settings=settings)
        plan = service.build_plan_sync(PlanRequest(user_id="u1", days=2, seed=7))
        for meal in plan.all_meals():
            assert service.variety_bank.contains("u1", meal_signature(meal))
        assert service.variety_bank.size("u1") == len({meal_signature(m) for m in plan.all_meals()})

    def test_seeded_plan_is_reproducible(self, catalog, settings):
        request = PlanRequest(user_id="u1", seed=42)
        first = MealPlanService(catalog, settings=settings).build_plan_sync(request)
        second = MealPlanService(catalog, settings=settings).build_plan_sync(request)
        assert slugs(first) == slugs(second)

    def test_pool_exhausted(self, settings):
        satay = make_meal(
            "Chicken Satay",
            meal_type=MealType.DINNER,
            ingredients=[("chicken thigh", 5, "oz"), ("peanut sauce", 2, "tbsp")],
        )
        service = MealPlanService([satay], settings=settings)
        request = PlanRequest(user_id="u1", schedule=[ScheduleSlot("meal", "Dinner", "18:30", 0)])
        with pytest.raises(PoolExhausted) as exc_info:
            service.build_plan_sync(request, ConstraintProfile(allergies=["peanut"]))
        assert exc_info.value.meal_type == "dinner"
        assert exc_info.value.rejects == {"allergen:peanuts": 1}
        assert len(service.result_cache.store) == 0
        assert service.variety_bank.size("u1") == 0

    def test_repeat_one_templates(self, catalog, settings):
        service = MealPlanService(catalog, settings=settings)
        plan = service.build_plan_sync(PlanRequest(user_id="u1", mode=PlanMode.REPEAT_ONE, seed=2))
        days = [[m.slug for m in d.meals] for d in plan.iter_days()]
        assert all(day == days[0] for day in days)


class TestFixedMenu:
    """Tests for fixed_menu mode."""

    def test_cycles_safe_menu(self, settings):
        a = make_meal("Menu Bowl A")
        b = make_meal("Menu Bowl B")
        unsafe = make_meal("Peanut Noodles", ingredients=[("rice noodles", 2, "oz"), ("peanuts", 1, "oz")])
        request = PlanRequest(
            user_id="u1", days=4, mode=PlanMode.FIXED_MENU, fixed_menu=[a, b, unsafe]
        )
        plan = MealPlanService([], settings=settings).build_plan_sync(
            request, ConstraintProfile(allergies=["peanuts"])
        )

        assert set(slugs(plan)) == {"menu-bowl-a", "menu-bowl-b"}
        assert all(m.source == "fixed" for m in plan.all_meals())
        lunches = [d.slots[1].meal.slug for d in plan.iter_days()]
        assert lunches == ["menu-bowl-a", "menu-bowl-b", "menu-bowl-a", "menu-bowl-b"]
        breakfast = plan.weeks[0].days[0].slots[0].meal
        assert breakfast.meal_type == MealType.BREAKFAST

    def test_all_unsafe(self, settings):
        menu = [make_meal("Peanut Noodles", ingredients=[("peanuts", 1, "oz")]), make_meal("Satay")]
        request = PlanRequest(user_id="u1", mode=PlanMode.FIXED_MENU, fixed_menu=menu)
        with pytest.raises(PoolExhausted):
            MealPlanService([], settings=settings).build_plan_sync(
                request, ConstraintProfile(allergies=["peanuts"])
            )


class TestGeneratedPlans:
    """Tests for plans built through the generator."""

    def test_needs_generator(self, catalog, settings):
        request = PlanRequest(user_id="u1", source=PlanSource.GENERATED)
        with pytest.raises(MealPlanError):
            MealPlanService(catalog, settings=settings).build_plan_sync(request)

    def test_single_attempt_needs_generator(self, settings):
        service = MealPlanService([], settings=settings)
        with pytest.raises(MealPlanError, match="meal generator"):
            asyncio.run(service._attempt(None, MealType.LUNCH, None))

    def test_same_day_duplicate_is_regenerated(self, settings, scripted):
        generator, script = scripted({"lunch": [LENTIL, LENTIL, SALMON]})
        service = MealPlanService([], generator=generator, settings=settings)
        request = PlanRequest(user_id="u1", days=1, schedule=TWO_LUNCHES, source=PlanSource.GENERATED)
        plan = service.build_plan_sync(request)

        names = [m.name for m in plan.all_meals()]
        assert names == ["Lentil Spinach Bowl", "Lemon Salmon Salad"]
        assert plan.meta.duplicates_prevented == 1
        assert generator.calls == 3
        assert script.requests[2].seed == 17

    def test_variety_bank_steers_away(self, settings, scripted):
        generator, _ = scripted({"lunch": [LENTIL, SALMON]})
        service = MealPlanService([], generator=generator, settings=settings)
        lentil_sig = meal_signature(normalize_meal(LENTIL, MealType.LUNCH))
        service.variety_bank.add("u1", lentil_sig)

        request = PlanRequest(user_id="u1", days=1, schedule=[LUNCH], source=PlanSource.GENERATED)
        plan = service.build_plan_sync(request)

        assert [m.name for m in plan.all_meals()] == ["Lemon Salmon Salad"]
        assert plan.meta.duplicates_prevented == 1
        salmon_sig = meal_signature(plan.all_meals()[0])
        assert service.variety_bank.contains("u1", salmon_sig)

    def test_violations_fixed_are_counted(self, settings, scripted):
        parfait = meal_record("Yogurt Parfait", ("greek yogurt", "1 cup"), ("granola", "1/4 cup"))
        generator, _ = scripted({"dinner": [parfait]})
        service = MealPlanService([], generator=generator, settings=settings)
        request = PlanRequest(
            user_id="u1",
            days=1,
            schedule=[ScheduleSlot("meal", "Dinner", "18:30", 0)],
            source=PlanSource.GENERATED,
        )
        plan = service.build_plan_sync(request)
        assert plan.meta.violations_fixed == 1
        assert plan.all_meals()[0].name.startswith("Herb Turkey Plate")

    def test_repeat_one_generates_once_per_type(self, settings, scripted):
        generator, _ = scripted()
        service = MealPlanService([], generator=generator, settings=settings)
        request = PlanRequest(
            user_id="u1", meals_per_day=2, mode=PlanMode.REPEAT_ONE, source=PlanSource.GENERATED
        )
        plan = service.build_plan_sync(request)

        assert generator.calls == 2
        days = [[m.name for m in d.meals] for d in plan.iter_days()]
        assert len(days) == 7
        assert all(day == days[0] for day in days)

    def test_cache_hit_is_identical_and_free(self, settings, scripted):
        generator, _ = scripted()
        service = MealPlanService([], generator=generator, settings=settings)
        request = PlanRequest(user_id="u1", days=2, source=PlanSource.GENERATED)

        first = service.build_plan_sync(request)
        calls = generator.calls
        second = service.build_plan_sync(request)

        assert first.to_json() == second.to_json()
        assert generator.calls == calls
        assert service.result_cache.hits == 1

    def test_plan_timeout_leaves_no_trace(self, settings, scripted):
        settings.generation.plan_timeout_seconds = 0.05
        generator, _ = scripted(delay=1.0)
        service = MealPlanService([], generator=generator, settings=settings)
        request = PlanRequest(user_id="u1", days=1, source=PlanSource.GENERATED)

        with pytest.raises(GenerationTimeout):
            service.build_plan_sync(request)
        assert len(service.result_cache.store) == 0
        assert service.variety_bank.size("u1") == 0


class TestRegenerateSlot:
    """Tests for single-slot regeneration."""

    def test_template_slot(self, catalog, settings):
        service = MealPlanService(catalog, settings=settings)
        meal = asyncio.run(service.regenerate_slot("u1", LUNCH, exclude=["quinoa-bowl"], seed=1))
        assert meal.slug in {"lentil-soup", "teriyaki-tofu-bowl"}
        assert service.variety_bank.contains("u1", meal_signature(meal))

    def test_template_slot_avoids_bank(self, catalog, settings):
        service = MealPlanService(catalog, settings=settings)
        for slug in ("quinoa-bowl", "lentil-soup"):
            meal = next(m for m in catalog if m.slug == slug)
            service.variety_bank.add("u1", meal_signature(meal))
        meal = asyncio.run(service.regenerate_slot("u1", LUNCH, seed=4))
        assert meal.slug == "teriyaki-tofu-bowl"

    def test_generated_slot(self, settings, scripted):
        generator, script = scripted({"lunch": [SALMON]})
        service = MealPlanService([], generator=generator, settings=settings)
        meal = asyncio.run(service.regenerate_slot("u1", LUNCH, exclude=["Lentil Spinach Bowl"]))
        assert meal.name == "Lemon Salmon Salad"
        assert script.requests[0].avoid_names == ["lentil spinach bowl"]


class TestEstimate:
    """Tests for the service-level estimator."""

    def test_estimate_macros(self, catalog, settings):
        service = MealPlanService(catalog, settings=settings)
        totals = service.estimate_macros(["2 large eggs", "1 cup spinach"])
        assert totals.matched == 2
        assert totals.protein > 12
