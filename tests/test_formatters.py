"""Tests for plan output formatters."""

from __future__ import annotations

import json

import pytest
from rich.console import Console

from mealweave.export.formatters import format_json, format_markdown, format_plan
from mealweave.models import AssembledPlan, PlanDay, PlanMeta, PlanSlot, PlanWeek


@pytest.fixture
def plan(meal_factory):
    day = PlanDay(
        day=1,
        slots=[
            PlanSlot("Lunch", "12:30", 0, meal_factory("Chicken Bowl", calories=450.0, protein=35.0)),
            PlanSlot("Dinner", "18:30", 1, meal_factory("Salmon Plate", calories=550.0, protein=38.0)),
        ],
    )
    meta = PlanMeta(caps_met=False, macro_hit_pct=100.0, warnings=["Week 1: weekly caps not fully met"])
    return AssembledPlan(weeks=[PlanWeek(1, [day])], meta=meta)


class TestFormatters:
    """Tests for table, JSON and Markdown output."""

    def test_markdown(self, plan):
        text = format_markdown(plan)
        assert "## Week 1, Day 1" in text
        assert "| 12:30 | Lunch | Chicken Bowl | 450 | 35g |" in text
        assert "| | **Total** | | 1000 | 73g |" in text
        assert "**Variety caps:** best effort" in text
        assert "- Week 1: weekly caps not fully met" in text

    def test_json_is_sorted(self, plan):
        data = json.loads(format_json(plan))
        assert data["meta"]["macro_hit_pct"] == 100.0
        assert data["weeks"][0]["days"][0]["slots"][1]["meal"]["name"] == "Salmon Plate"

    def test_table_prints(self, plan):
        console = Console(record=True, width=120)
        assert format_plan(plan, "table", console) is None
        output = console.export_text()
        assert "Chicken Bowl" in output
        assert "best effort" in output

    def test_unknown_format(self, plan):
        with pytest.raises(ValueError):
            format_plan(plan, "xml")
