"""Tests for weekly assembly, repair and plan totals."""

from __future__ import annotations

import random

import pytest

from mealweave.errors import VarietyCapsNotMet
from mealweave.models import MacroTargets, MealType
from mealweave.planning.assembler import (
    WeeklyAssembler,
    daily_totals,
    macro_hit_pct,
    validate_week,
    weekly_totals,
)
from mealweave.planning.rules import WeeklyRules

CUISINES = ["thai", "italian", "mexican", "greek", "japanese", "indian", "french"]

LOOSE_RULES = WeeklyRules(
    max_unique_ingredients_per_week=100,
    max_repeats_per_week=2,
    min_distinct_cuisines_per_week=3,
)


@pytest.fixture
def pools(meal_factory):
    """Seven distinct meals per main type, one cuisine each."""
    result = {}
    for meal_type in (MealType.BREAKFAST, MealType.LUNCH, MealType.DINNER):
        result[meal_type] = [
            meal_factory(
                f"{meal_type.value} {i}",
                meal_type=meal_type,
                cuisine=CUISINES[i],
                ingredients=[(f"{meal_type.value} item {i}", 1, "cup"), ("brown rice", 0.5, "cup")],
            )
            for i in range(7)
        ]
    return result


SLOTS = [MealType.BREAKFAST, MealType.LUNCH, MealType.DINNER]


class TestSampling:
    """Tests for candidate sampling."""

    def test_avoids_recent(self, pools):
        assembler = WeeklyAssembler(pools, rng=random.Random(1), top_k=2)
        top = pools[MealType.LUNCH][:2]
        pick = assembler.sample(MealType.LUNCH, {top[0].slug})
        assert pick is top[1]

    def test_falls_back_past_top_k(self, pools):
        assembler = WeeklyAssembler(pools, rng=random.Random(1), top_k=2)
        recent = {m.slug for m in pools[MealType.LUNCH][:2]}
        assert assembler.sample(MealType.LUNCH, recent).slug not in recent

    def test_all_recent_uses_whole_pool(self, pools):
        assembler = WeeklyAssembler(pools, rng=random.Random(1))
        recent = {m.slug for m in pools[MealType.LUNCH]}
        assert assembler.sample(MealType.LUNCH, recent) in pools[MealType.LUNCH]

    def test_empty_pool(self, pools):
        with pytest.raises(ValueError):
            WeeklyAssembler(pools).sample(MealType.SNACK, set())


class TestAssembly:
    """Tests for fill, repair and best-effort handling."""

    def test_fill_week_shape_and_no_repeats(self, pools):
        assembler = WeeklyAssembler(pools, rules=LOOSE_RULES, rng=random.Random(3))
        week = assembler.fill_week(SLOTS, days=7)
        assert len(week) == 7
        assert all([m.meal_type for m in day] == SLOTS for day in week)
        slugs = [m.slug for day in week for m in day]
        assert len(slugs) == len(set(slugs))

    def test_main_meals_get_carb_split(self, pools):
        assembler = WeeklyAssembler(pools, rng=random.Random(3))
        lunch = assembler.fill_week([MealType.LUNCH], days=1)[0][0]
        n = lunch.nutrition
        assert n.starchy_carbs is not None
        assert n.starchy_carbs + n.fibrous_carbs == pytest.approx(n.carbs)

    def test_pool_entries_are_not_modified(self, pools):
        before = [m.nutrition for m in pools[MealType.DINNER]]
        WeeklyAssembler(pools, rng=random.Random(3)).fill_week(SLOTS, days=7)
        assert [m.nutrition for m in pools[MealType.DINNER]] == before

    def test_compliant_week_needs_no_repair(self, pools):
        assembly = WeeklyAssembler(pools, rules=LOOSE_RULES, rng=random.Random(5)).assemble_week(SLOTS, 7)
        assert assembly.compliant
        assert assembly.iterations == 0
        assert assembly.variety.repeats == 0

    def test_seeded_assembly_is_reproducible(self, pools):
        first = WeeklyAssembler(pools, rng=random.Random(42)).fill_week(SLOTS, 7)
        second = WeeklyAssembler(pools, rng=random.Random(42)).fill_week(SLOTS, 7)
        assert [[m.slug for m in d] for d in first] == [[m.slug for m in d] for d in second]

    def test_repair_hits_ceiling(self, meal_factory):
        pools = {MealType.LUNCH: [meal_factory("Only Lunch")]}
        assembler = WeeklyAssembler(pools, rules=LOOSE_RULES, rng=random.Random(1), max_iterations=7)
        assembly = assembler.assemble_week([MealType.LUNCH], 7)
        assert not assembly.compliant
        assert assembly.iterations == 7
        assert assembly.variety.repeats == 6

    def test_repair_fixes_repeats(self, meal_factory):
        rules = WeeklyRules(max_unique_ingredients_per_week=100, min_distinct_cuisines_per_week=1)
        lunches = [meal_factory(f"Lunch {i}", ingredients=[(f"item {i}", 1, "cup")]) for i in range(7)]
        assembler = WeeklyAssembler({MealType.LUNCH: lunches}, rules=rules, rng=random.Random(9), max_iterations=200)
        week = [[lunches[0]] for _ in range(7)]
        assembly = assembler.repair(week)
        assert assembly.compliant
        assert assembly.variety.repeats <= rules.max_repeats_per_week

    def test_reject_best_effort(self, meal_factory):
        pools = {MealType.LUNCH: [meal_factory("Only Lunch")]}
        assembler = WeeklyAssembler(pools, rules=LOOSE_RULES, max_iterations=3, reject_best_effort=True)
        with pytest.raises(VarietyCapsNotMet):
            assembler.assemble_week([MealType.LUNCH], 7)


class TestTotals:
    """Tests for totals, warnings and macro hit rate."""

    def test_daily_and_weekly_totals(self, meal_factory):
        day = [meal_factory("A", calories=500.0, protein=40.0), meal_factory("B", calories=700.0, protein=None)]
        assert daily_totals(day)["calories"] == 1200.0
        assert daily_totals(day)["protein"] == 40.0
        totals = weekly_totals([day, day])
        assert totals["totals"]["calories"] == 2400.0
        assert totals["daily_average"]["calories"] == 1200.0

    def test_validate_week(self, meal_factory):
        week = [[meal_factory("A", protein=50.0)], []]
        warnings = validate_week(week, MacroTargets(protein=150.0))
        assert "Day 2 has no meals" in warnings
        assert any("below 80%" in w for w in warnings)
        assert validate_week([[meal_factory("A")]]) == []

    def test_macro_hit_pct(self, meal_factory):
        on = [meal_factory("A", calories=2000.0)]
        off = [meal_factory("B", calories=2500.0)]
        assert macro_hit_pct([on, off], 2000.0) == 50.0
        assert macro_hit_pct([on], None) is None
