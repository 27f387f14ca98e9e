"""CLI interface using Typer."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from mealweave.agent.response import CommandResponse
from mealweave.config import get_settings
from mealweave.data.catalog import load_catalog
from mealweave.errors import MealPlanError
from mealweave.export.formatters import format_plan
from mealweave.logging_config import setup_logging
from mealweave.models import (
    ConstraintProfile,
    MacroTargets,
    MealType,
    PlanMode,
    PlanRequest,
    PlanSource,
)

app = typer.Typer(
    help="Weekly meal plan assembly with safety gates and variety control",
    no_args_is_help=True,
)
console = Console()

# Subcommand groups
variety_app = typer.Typer(help="Inspect the cross-session variety bank")
config_app = typer.Typer(help="Show or create the configuration file")

app.add_typer(variety_app, name="variety")
app.add_typer(config_app, name="config")


# ============================================================================
# Helpers
# ============================================================================


def output_json(response: dict, file=None) -> None:
    """Output JSON response to stdout or file."""
    json_str = json.dumps(response, indent=2)
    if file:
        file.write(json_str)
    else:
        print(json_str)


def fail(command: str, message: str, json_output: bool) -> None:
    """Report an error in the requested format and exit with code 1."""
    if json_output:
        output_json(CommandResponse.failure(command, message).to_dict())
    else:
        console.print(f"[red]Error: {message}[/red]")
    raise typer.Exit(1)


def load_mapping(path: Path) -> dict[str, Any]:
    """Read a YAML or JSON file that holds a mapping."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a mapping")
    return data


def load_profile(path: Optional[Path]) -> ConstraintProfile:
    if path is None:
        return ConstraintProfile()
    return ConstraintProfile.from_dict(load_mapping(path))


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show info-level logs"),
    debug: bool = typer.Option(False, "--debug", help="Show debug-level logs"),
) -> None:
    """Configure logging before any command runs."""
    settings = get_settings()
    level = "DEBUG" if debug else "INFO" if verbose else settings.logging.level
    setup_logging(level, use_rich=settings.logging.rich)


# ============================================================================
# Main Commands
# ============================================================================


@app.command()
def plan(
    user: str = typer.Option("local", "--user", "-u", help="User id (keys the variety bank)"),
    catalog: Optional[Path] = typer.Option(None, "--catalog", help="YAML/JSON template catalog"),
    profile: Optional[Path] = typer.Option(None, "--profile", help="YAML/JSON constraint profile"),
    weeks: int = typer.Option(1, "--weeks", "-w", help="Number of weeks"),
    days: int = typer.Option(7, "--days", "-d", help="Days per week"),
    meals_per_day: int = typer.Option(3, "--meals-per-day", help="Main meals per day (1-3)"),
    snacks_per_day: int = typer.Option(0, "--snacks-per-day", help="Snacks per day (0-3)"),
    calories: Optional[float] = typer.Option(None, "--calories", help="Daily calorie target"),
    protein: Optional[float] = typer.Option(None, "--protein", help="Daily protein target (g)"),
    allergy: Optional[list[str]] = typer.Option(None, "--allergy", "-a", help="Allergy (repeatable)"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed for reproducible plans"),
    source: str = typer.Option("templates", "--source", help="templates or generated"),
    mode: str = typer.Option("ai_varied", "--mode", help="ai_varied, repeat_one or fixed_menu"),
    output_format: Optional[str] = typer.Option(
        None, "--format", "-f", help="Output format: table, json, markdown"
    ),
) -> None:
    """Build a meal plan."""
    from mealweave.service import MealPlanService

    settings = get_settings()
    fmt = output_format or settings.defaults.output_format
    json_output = fmt == "json"
    if fmt not in ("table", "json", "markdown"):
        fail("plan", f"Unknown output format: {fmt}", json_output)

    try:
        constraint_profile = load_profile(profile)
        request = PlanRequest(
            user_id=user,
            weeks=weeks,
            days=days,
            meals_per_day=meals_per_day,
            snacks_per_day=snacks_per_day,
            targets=MacroTargets(calories=calories, protein=protein),
            allergens=list(allergy or []),
            mode=PlanMode(mode),
            source=PlanSource(source),
            seed=seed,
        )
    except (OSError, ValueError) as e:
        fail("plan", str(e), json_output)

    generator = None
    if request.source == PlanSource.GENERATED:
        from mealweave.generation.client import HttpMealGenerator

        gen_cfg = settings.generation
        generator = HttpMealGenerator(
            gen_cfg.base_url, gen_cfg.endpoint, timeout=gen_cfg.timeout_seconds
        )

    async def run(service: MealPlanService):
        try:
            return await service.build_plan(request, constraint_profile)
        finally:
            if generator is not None:
                await generator.aclose()

    try:
        candidates = load_catalog(catalog) if catalog else None
        # Persisted bank shared with the variety commands
        service = MealPlanService.from_settings(
            settings, catalog=candidates, generator=generator, variety_bank=_sqlite_bank()
        )
        result = asyncio.run(run(service))
    except (MealPlanError, OSError, ValueError) as e:
        fail("plan", str(e), json_output)

    if json_output:
        output_json(
            CommandResponse.ok(
                "plan",
                data=result.to_dict(),
                warnings=result.meta.warnings,
                summary=(
                    f"{sum(len(d.slots) for d in result.iter_days())} meals over "
                    f"{request.day_count} days"
                ),
            ).to_dict()
        )
        return

    text = format_plan(result, fmt, console)
    if text is not None:
        print(text)


@app.command()
def estimate(
    ingredients: list[str] = typer.Argument(..., help='Ingredient lines, e.g. "1/2 cup rice"'),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Estimate macros for free-text ingredient lines."""
    from mealweave.nutrition.estimator import estimate_macros

    totals = estimate_macros(ingredients)

    if json_output:
        output_json(
            CommandResponse.ok(
                "estimate",
                data={"totals": totals.to_dict() if totals else None},
                warnings=[] if totals else ["No ingredient matched the reference table"],
            ).to_dict()
        )
        return

    if totals is None:
        console.print("[yellow]No ingredient matched the reference table[/yellow]")
        return

    table = Table(title="Estimated Macros")
    table.add_column("Calories", justify="right")
    table.add_column("Protein", justify="right")
    table.add_column("Carbs", justify="right")
    table.add_column("Fat", justify="right")
    table.add_row(
        f"{totals.calories:.0f}",
        f"{totals.protein:.1f}g",
        f"{totals.carbs:.1f}g",
        f"{totals.fat:.1f}g",
    )
    console.print(table)
    if totals.unmatched:
        console.print(f"[dim]Not recognized: {', '.join(totals.unmatched)}[/dim]")


@app.command()
def check(
    meal_file: Path = typer.Argument(..., help="YAML/JSON file with one raw meal record"),
    slot: str = typer.Option(..., "--slot", "-s", help="Slot type: breakfast, lunch, dinner, snack"),
    profile: Optional[Path] = typer.Option(None, "--profile", help="YAML/JSON constraint profile"),
    slots_per_day: int = typer.Option(3, "--slots-per-day", help="Slots sharing the calorie target"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Run the validation gates on a raw meal record."""
    from mealweave.generation.gates import SCHEMA, Violation, run_gates
    from mealweave.generation.normalize import normalize_meal

    try:
        meal_type = MealType.parse(slot)
        constraint_profile = load_profile(profile)
        raw = load_mapping(meal_file)
    except (OSError, ValueError) as e:
        fail("check", str(e), json_output)

    violation: Optional[Violation] = None
    meal = None
    fixed = False
    try:
        meal = normalize_meal(raw, meal_type)
    except ValidationError as e:
        violation = Violation(SCHEMA, f"schema:{e.error_count()} errors")
    else:
        result = run_gates(meal, meal_type, constraint_profile, slots_per_day=slots_per_day)
        meal, violation, fixed = result.meal, result.violation, result.measurements_fixed

    if json_output:
        data = {
            "meal": meal.to_dict() if meal else None,
            "measurements_fixed": fixed,
            "violation": {"kind": violation.kind, "reason": violation.reason} if violation else None,
        }
        if violation is None:
            response = CommandResponse.ok("check", data=data, summary=f"{meal.name} passed")
        else:
            response = CommandResponse.failure("check", violation.reason, data=data)
        output_json(response.to_dict())
    elif violation is None:
        console.print(f"[green]PASS[/green] {meal.name} ({meal_type.value})")
        if fixed:
            console.print("[dim]Measurements were completed by the fixer[/dim]")
    else:
        console.print(f"[red]FAIL[/red] {violation.kind}: {violation.reason}")

    if violation is not None:
        raise typer.Exit(1)


# ============================================================================
# Variety bank
# ============================================================================


def _sqlite_bank():
    from mealweave.cache.store import SqliteStore
    from mealweave.db.connection import get_db
    from mealweave.variety.bank import VarietyBank

    settings = get_settings()
    return VarietyBank(
        SqliteStore(get_db(), "variety"),
        ttl_seconds=settings.variety.ttl_days * 24 * 3600,
        capacity=settings.variety.capacity,
    )


@variety_app.command("show")
def variety_show(
    user: str = typer.Argument(..., help="User id"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """List the signatures remembered for a user."""
    bank = _sqlite_bank()
    entries = bank.expiries(user)

    if json_output:
        output_json(
            CommandResponse.ok(
                "variety show",
                data={"user": user, "signatures": list(entries), "count": len(entries)},
            ).to_dict()
        )
        return

    if not entries:
        console.print(f"[yellow]No signatures remembered for {user}[/yellow]")
        return

    from datetime import datetime

    table = Table(title=f"Variety bank: {user}")
    table.add_column("Signature", style="cyan", max_width=70)
    table.add_column("Expires", style="dim")
    for sig, expires in entries.items():
        table.add_row(sig, datetime.fromtimestamp(expires).strftime("%Y-%m-%d %H:%M"))
    console.print(table)
    console.print(f"[dim]{len(entries)} of {bank.capacity} signatures[/dim]")


@variety_app.command("clear")
def variety_clear(
    user: str = typer.Argument(..., help="User id"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Forget every signature remembered for a user."""
    bank = _sqlite_bank()
    removed = bank.size(user)
    bank.clear(user)

    if json_output:
        output_json(CommandResponse.ok("variety clear", data={"user": user, "removed": removed}).to_dict())
    else:
        console.print(f"[green]Cleared {removed} signatures for {user}[/green]")


# ============================================================================
# Configuration
# ============================================================================


@config_app.command("show")
def config_show(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Print the effective settings."""
    data = get_settings().to_dict()
    if json_output:
        output_json(CommandResponse.ok("config show", data=data).to_dict())
    else:
        console.print(yaml.dump(data, default_flow_style=False, sort_keys=False))


@config_app.command("init")
def config_init(
    path: Optional[Path] = typer.Option(None, "--path", help="Where to write config.yaml"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
) -> None:
    """Write a config file with the default settings."""
    from mealweave.config.settings import Settings, _default_config_dir

    target = path or _default_config_dir() / "config.yaml"
    if target.exists() and not force:
        console.print(f"[yellow]{target} already exists (use --force to overwrite)[/yellow]")
        raise typer.Exit(1)
    Settings().save(target)
    console.print(f"[green]Wrote {target}[/green]")


if __name__ == "__main__":
    app()
