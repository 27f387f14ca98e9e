"""Tests for the generated-meal validation gates."""

from __future__ import annotations

from mealweave.errors import AppropriatenessViolation, MacroOutOfBand, SafetyViolation
from mealweave.generation.gates import (
    APPROPRIATENESS,
    MACROS,
    SAFETY,
    Violation,
    check_appropriateness,
    check_macros,
    check_measurements,
    incomplete_ingredients,
    run_gates,
)
from mealweave.models import ConstraintProfile, Ingredient, Meal, MealType


class TestAppropriateness:
    """Tests for slot appropriateness keywords."""

    def test_parfait_is_not_dinner(self, meal_factory):
        meal = meal_factory(
            "Yogurt Parfait",
            meal_type=MealType.DINNER,
            ingredients=[("greek yogurt", 1, "cup"), ("granola", 0.25, "cup")],
        )
        violation = check_appropriateness(meal, MealType.DINNER)
        assert violation.kind == APPROPRIATENESS
        assert violation.reason == (
            "meal_type_mismatch:Yogurt Parfait appears to be breakfast but assigned as dinner"
        )

    def test_parfait_is_fine_for_breakfast(self, meal_factory):
        meal = meal_factory("Yogurt Parfait", ingredients=[("greek yogurt", 1, "cup")])
        assert check_appropriateness(meal, MealType.BREAKFAST) is None

    def test_chips_are_not_lunch(self, meal_factory):
        meal = meal_factory("Tortilla Chips", ingredients=[("tortilla chips", 2, "oz")])
        violation = check_appropriateness(meal, MealType.LUNCH)
        assert violation.reason.endswith("appears to be snack but assigned as lunch")

    def test_chipotle_is_not_a_chip(self, meal_factory):
        meal = meal_factory("Chipotle Chicken Bowl")
        assert check_appropriateness(meal, MealType.LUNCH) is None

    def test_steak_is_not_breakfast(self, meal_factory):
        meal = meal_factory("Steak and Eggs", ingredients=[("sirloin", 5, "oz"), ("eggs", 2, "large")])
        violation = check_appropriateness(meal, MealType.BREAKFAST)
        assert violation.reason.endswith("appears to be dinner but assigned as breakfast")


class TestMacros:
    """Tests for the per-meal calorie band and protein floor."""

    def test_calories_low(self, meal_factory):
        profile = ConstraintProfile(daily_calories=1800)
        violation = check_macros(meal_factory("Small", calories=450.0), profile, slots_per_day=3)
        assert violation.kind == MACROS
        assert violation.reason == "kcal_low:450 < 540"

    def test_calories_high(self, meal_factory):
        profile = ConstraintProfile(daily_calories=1800)
        violation = check_macros(meal_factory("Big", calories=800.0), profile, slots_per_day=3)
        assert violation.reason == "kcal_high:800 > 660"

    def test_within_band(self, meal_factory):
        profile = ConstraintProfile(calories_per_meal=450)
        assert check_macros(meal_factory("Right", calories=470.0), profile, slots_per_day=4) is None

    def test_protein_low(self, meal_factory):
        profile = ConstraintProfile(daily_calories=1800, protein_per_meal=40)
        violation = check_macros(meal_factory("Lean", calories=600.0, protein=35.0), profile, 3)
        assert violation.reason == "protein_low:35 < 40"

    def test_no_target_skips(self, meal_factory):
        assert check_macros(meal_factory("Any", calories=5000.0), ConstraintProfile(), 3) is None

    def test_estimates_missing_calories(self, meal_factory):
        meal = meal_factory("Rice", calories=None, protein=None, ingredients=[("rice", 1, "cup")])
        violation = check_macros(meal, ConstraintProfile(calories_per_meal=600), 3)
        assert violation.reason.startswith("kcal_low:")

    def test_unrecognized_and_undeclared_skips(self, meal_factory):
        meal = meal_factory("Mystery", calories=None, ingredients=[("unobtainium", 1, "cup")])
        assert check_macros(meal, ConstraintProfile(calories_per_meal=600), 3) is None


class TestMeasurements:
    """Tests for the measurement gate."""

    def test_complete_meal_is_untouched(self, meal_factory):
        meal = meal_factory("Bowl")
        fixed, violation, was_fixed = check_measurements(meal)
        assert fixed is meal
        assert violation is None
        assert not was_fixed

    def test_fixer_completes_amounts(self):
        meal = Meal(
            id="loose",
            name="Loose Bowl",
            meal_type=MealType.LUNCH,
            ingredients=[Ingredient("chicken", 0.25, ""), Ingredient("salt", None, "")],
        )
        assert incomplete_ingredients(meal) == ["chicken", "salt"]
        fixed, violation, was_fixed = check_measurements(meal)
        assert violation is None
        assert was_fixed
        assert incomplete_ingredients(fixed) == []

    def test_tiny_amount_is_not_rejected(self):
        meal = Meal(
            id="paella",
            name="Saffron Rice",
            meal_type=MealType.LUNCH,
            ingredients=[Ingredient("saffron", 0.01, ""), Ingredient("rice", 1, "cup")],
        )
        fixed, violation, was_fixed = check_measurements(meal)
        assert violation is None
        assert was_fixed
        assert fixed.ingredients[0].quantity == 0.01


class TestRunGates:
    """Tests for gate ordering."""

    def test_safety_runs_before_appropriateness(self, meal_factory):
        meal = meal_factory(
            "Peanut Granola Parfait",
            ingredients=[("peanuts", 1, "oz"), ("greek yogurt", 1, "cup")],
        )
        result = run_gates(meal, MealType.DINNER, ConstraintProfile(allergies=["peanut"]))
        assert not result.ok
        assert result.violation.kind == SAFETY

    def test_satay_blocked_by_name(self, meal_factory):
        meal = meal_factory("Chicken Satay", ingredients=[("chicken thigh", 5, "oz")])
        result = run_gates(meal, MealType.DINNER, ConstraintProfile(allergies=["peanuts"]))
        assert result.violation.reason == "allergen:peanuts:chicken satay"

    def test_request_level_allergens(self, meal_factory):
        meal = meal_factory("Shrimp Tacos", ingredients=[("shrimp", 4, "oz"), ("tortillas", 2, "unit")])
        result = run_gates(meal, MealType.LUNCH, ConstraintProfile(), extra_allergens=["shellfish"])
        assert result.violation.kind == SAFETY

    def test_passing_meal(self, meal_factory):
        result = run_gates(meal_factory("Chicken Bowl"), MealType.LUNCH, ConstraintProfile(daily_calories=1350))
        assert result.ok
        assert result.meal.name == "Chicken Bowl"

    def test_violation_error_classes(self):
        assert isinstance(Violation(SAFETY, "x").to_error(), SafetyViolation)
        assert isinstance(Violation(APPROPRIATENESS, "x").to_error(), AppropriatenessViolation)
        assert isinstance(Violation(MACROS, "x").to_error(), MacroOutOfBand)
        assert str(Violation(MACROS, "kcal_low:1 < 2")) == "kcal_low:1 < 2"
