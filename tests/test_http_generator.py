"""Tests for the generator clients."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from mealweave.errors import GeneratorError
from mealweave.generation.client import CallableMealGenerator, GenerationRequest, HttpMealGenerator
from mealweave.models import ConstraintProfile, MealType

MEAL = {"name": "Herb Turkey Plate", "ingredients": ["5 oz ground turkey"]}


def _run(handler, request=None):
    """Call HttpMealGenerator once against a mock transport."""
    request = request or GenerationRequest(user_id="u1", meal_type=MealType.DINNER)

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            generator = HttpMealGenerator("http://generator.test/", client=client)
            return await generator.generate(request)

    return asyncio.run(go())


class TestGenerationRequest:
    """Tests for the request body."""

    def test_body(self):
        profile = ConstraintProfile(allergies=["peanut"], no_meat=True, daily_calories=1800)
        request = GenerationRequest(
            user_id="u1", meal_type=MealType.LUNCH, profile=profile, variation=2,
            avoid_hint="kcal_low:300 < 540", avoid_names=["Oats"],
        )
        body = request.to_body()
        assert body["mealType"] == "lunch"
        assert body["seed"] == 9
        assert body["temperature"] == 0
        assert body["constraints"]["allergies"] == ["peanut"]
        assert body["constraints"]["flags"]["noMeat"] is True
        assert body["constraints"]["macros"]["caloriesPerMeal"] == 600.0
        assert body["avoid"] == "kcal_low:300 < 540"
        assert body["avoidMeals"] == ["Oats"]
        assert body["variation"].startswith("variation #2")

    def test_request_level_constraints_are_merged(self):
        request = GenerationRequest(
            user_id="u1",
            meal_type=MealType.DINNER,
            profile=ConstraintProfile(allergies=["Peanut"], medical_flags=["celiac"]),
            extra_allergens=["peanut", "shellfish", " "],
            medical_flags=["diabetes", "celiac"],
        )
        constraints = request.to_body()["constraints"]
        assert constraints["allergies"] == ["Peanut", "shellfish"]
        assert constraints["medicalFlags"] == ["celiac", "diabetes"]

    def test_first_try_has_no_hints(self):
        body = GenerationRequest(user_id="u1", meal_type=MealType.LUNCH).to_body()
        assert body["seed"] == 7
        assert "avoid" not in body
        assert "variation" not in body


class TestHttpMealGenerator:
    """Tests for HttpMealGenerator against a mock transport."""

    def test_success(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=MEAL)

        assert _run(handler) == MEAL
        assert str(seen[0].url) == "http://generator.test/api/meals/generate"
        assert json.loads(seen[0].content)["mealType"] == "dinner"

    def test_unwraps_meal_key(self):
        def handler(request):
            return httpx.Response(200, json={"meal": MEAL, "model": "x"})

        assert _run(handler) == MEAL

    def test_http_error(self):
        def handler(request):
            return httpx.Response(500, text="upstream down")

        with pytest.raises(GeneratorError, match="HTTP 500"):
            _run(handler)

    def test_invalid_json(self):
        def handler(request):
            return httpx.Response(200, text="<html>")

        with pytest.raises(GeneratorError, match="invalid JSON"):
            _run(handler)

    def test_non_object(self):
        def handler(request):
            return httpx.Response(200, json=["a", "b"])

        with pytest.raises(GeneratorError, match="expected an object"):
            _run(handler)

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(GeneratorError, match="request failed"):
            _run(handler)


class TestCallableMealGenerator:
    """Tests for adapting plain functions."""

    def test_sync_function(self):
        generator = CallableMealGenerator(lambda request: dict(MEAL))
        request = GenerationRequest(user_id="u1", meal_type=MealType.LUNCH)
        assert asyncio.run(generator.generate(request)) == MEAL
        assert generator.calls == 1

    def test_async_function(self):
        async def make(request):
            return {**MEAL, "cuisine": request.meal_type.value}

        generator = CallableMealGenerator(make)
        request = GenerationRequest(user_id="u1", meal_type=MealType.LUNCH)
        assert asyncio.run(generator.generate(request))["cuisine"] == "lunch"
