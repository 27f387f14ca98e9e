"""Tests for CLI commands."""

from __future__ import annotations

import json

import pytest
import yaml
from typer.testing import CliRunner

from mealweave.cache.store import SqliteStore
from mealweave.cli import app
from mealweave.config import get_settings
from mealweave.db.connection import set_db
from mealweave.variety.bank import VarietyBank

runner = CliRunner()


@pytest.fixture(autouse=True)
def quiet_logging():
    """Keep log records out of the captured command output."""
    get_settings().logging.level = "ERROR"


class TestMainCommands:
    """Tests for main CLI commands."""

    def test_help(self):
        """Test that --help works."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "meal plan" in result.output.lower()

    def test_check_requires_slot(self, tmp_path):
        """Test that check requires --slot."""
        meal_file = tmp_path / "meal.yaml"
        meal_file.write_text("name: Oats\n")
        result = runner.invoke(app, ["check", str(meal_file)])
        assert result.exit_code != 0


class TestPlanCommand:
    """Tests for the plan command."""

    def test_plan_json(self):
        result = runner.invoke(app, ["plan", "--days", "2", "--seed", "1", "--format", "json"])
        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["success"] is True
        assert payload["command"] == "plan"
        days = payload["data"]["weeks"][0]["days"]
        assert len(days) == 2
        assert all(len(d["slots"]) == 3 for d in days)
        assert payload["human_summary"] == "6 meals over 2 days"

    def test_plan_markdown_with_allergy(self):
        result = runner.invoke(
            app,
            ["plan", "--days", "1", "--snacks-per-day", "1", "-a", "peanut", "--seed", "2", "-f", "markdown"],
        )
        assert result.exit_code == 0
        assert "## Week 1, Day 1" in result.output
        assert "Peanut Butter" not in result.output

    def test_plan_with_profile(self, tmp_path):
        profile = tmp_path / "profile.yaml"
        profile.write_text(yaml.safe_dump({"kosher": True, "daily_calories": 1800}))
        result = runner.invoke(
            app, ["plan", "--days", "3", "--profile", str(profile), "--seed", "4", "-f", "json"]
        )
        assert result.exit_code == 0
        slugs = {
            slot["meal"]["slug"]
            for day in json.loads(result.output)["data"]["weeks"][0]["days"]
            for slot in day["slots"]
        }
        assert "chicken-salad" not in slugs
        assert "beef-pasta" not in slugs

    def test_invalid_request(self):
        result = runner.invoke(app, ["plan", "--days", "9", "--format", "json"])
        assert result.exit_code == 1
        payload = json.loads(result.output)
        assert payload["success"] is False
        assert "days" in payload["errors"][0]

    def test_unknown_format(self):
        result = runner.invoke(app, ["plan", "--format", "xml"])
        assert result.exit_code == 1
        assert "Unknown output format" in result.output


class TestEstimateCommand:
    """Tests for the estimate command."""

    def test_estimate_json(self):
        result = runner.invoke(app, ["estimate", "1 cup rice", "--json"])
        assert result.exit_code == 0
        totals = json.loads(result.output)["data"]["totals"]
        assert totals["calories"] == round(130 * 1.58, 1)
        assert totals["matched"] == 1

    def test_estimate_table(self):
        result = runner.invoke(app, ["estimate", "2 large eggs", "1 cup unobtainium"])
        assert result.exit_code == 0
        assert "Estimated Macros" in result.output
        assert "unobtainium" in result.output

    def test_estimate_nothing_matched(self):
        result = runner.invoke(app, ["estimate", "1 cup unobtainium", "--json"])
        payload = json.loads(result.output)
        assert payload["data"]["totals"] is None
        assert payload["warnings"]


class TestCheckCommand:
    """Tests for the check command."""

    def _write(self, tmp_path, record):
        path = tmp_path / "meal.yaml"
        path.write_text(yaml.safe_dump(record))
        return path

    def test_pass(self, tmp_path):
        path = self._write(
            tmp_path,
            {"name": "Herb Turkey Plate", "ingredients": ["5 oz ground turkey", "1 cup green beans"]},
        )
        result = runner.invoke(app, ["check", str(path), "--slot", "dinner"])
        assert result.exit_code == 0
        assert "PASS" in result.output

    def test_parfait_for_dinner_fails(self, tmp_path):
        path = self._write(
            tmp_path,
            {"name": "Yogurt Parfait", "ingredients": ["1 cup greek yogurt", "1/4 cup granola"]},
        )
        result = runner.invoke(app, ["check", str(path), "-s", "dinner", "--json"])
        assert result.exit_code == 1
        payload = json.loads(result.output)
        assert payload["success"] is False
        assert payload["data"]["violation"]["kind"] == "appropriateness"

    def test_allergy_profile(self, tmp_path):
        path = self._write(
            tmp_path,
            {"name": "Chicken Satay", "ingredients": ["5 oz chicken thigh", "2 tbsp peanut sauce"]},
        )
        profile = tmp_path / "profile.yaml"
        profile.write_text(yaml.safe_dump({"allergies": ["peanut"]}))
        result = runner.invoke(app, ["check", str(path), "-s", "dinner", "--profile", str(profile)])
        assert result.exit_code == 1
        assert "safety" in result.output

    def test_schema_failure(self, tmp_path):
        path = self._write(tmp_path, {"name": "Air", "ingredients": []})
        result = runner.invoke(app, ["check", str(path), "-s", "lunch", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.output)["data"]["violation"]["kind"] == "schema"


class TestVarietyCommands:
    """Tests for variety subcommands."""

    def test_variety_help(self):
        result = runner.invoke(app, ["variety", "--help"])
        assert result.exit_code == 0
        assert "variety" in result.output.lower()

    def test_show_and_clear(self, temp_db):
        set_db(temp_db)
        VarietyBank(SqliteStore(temp_db, "variety")).add_many("u1", ["oats::oats", "bowl::rice"])

        result = runner.invoke(app, ["variety", "show", "u1", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["data"]["signatures"] == ["oats::oats", "bowl::rice"]

        result = runner.invoke(app, ["variety", "clear", "u1", "--json"])
        assert json.loads(result.output)["data"]["removed"] == 2
        assert VarietyBank(SqliteStore(temp_db, "variety")).size("u1") == 0

    def test_plan_remembers_signatures(self):
        result = runner.invoke(app, ["plan", "--days", "1", "--user", "u9", "--seed", "1", "-f", "json"])
        assert result.exit_code == 0
        names = {
            slot["meal"]["name"].lower()
            for day in json.loads(result.output)["data"]["weeks"][0]["days"]
            for slot in day["slots"]
        }

        result = runner.invoke(app, ["variety", "show", "u9", "--json"])
        assert result.exit_code == 0
        signatures = json.loads(result.output)["data"]["signatures"]
        assert signatures
        assert {s.split("::")[0] for s in signatures} == names

    def test_show_empty(self, temp_db):
        set_db(temp_db)
        result = runner.invoke(app, ["variety", "show", "nobody"])
        assert result.exit_code == 0
        assert "No signatures" in result.output


class TestConfigCommands:
    """Tests for config subcommands."""

    def test_config_show_json(self):
        result = runner.invoke(app, ["config", "show", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)["data"]
        assert data["generation"]["max_tries"] == 4
        assert data["variety"]["capacity"] == 500

    def test_config_init(self, tmp_path):
        target = tmp_path / "config.yaml"
        result = runner.invoke(app, ["config", "init", "--path", str(target)])
        assert result.exit_code == 0
        assert yaml.safe_load(target.read_text())["cache"]["ttl_seconds"] == 300.0

        result = runner.invoke(app, ["config", "init", "--path", str(target)])
        assert result.exit_code == 1

        result = runner.invoke(app, ["config", "init", "--path", str(target), "--force"])
        assert result.exit_code == 0
