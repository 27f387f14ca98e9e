"""Output formatters for assembled plans."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from mealweave.models import AssembledPlan, PlanDay


def _fmt(value: Optional[float], suffix: str = "") -> str:
    return "-" if value is None else f"{value:.0f}{suffix}"


class TableFormatter:
    """Format plans as Rich tables for terminal display."""

    def __init__(self, console: Optional[Console] = None):
        """Initialize the formatter.

        Args:
            console: Rich console for output. If None, creates a new one.
        """
        self.console = console or Console()

    def _day_table(self, week: int, day: PlanDay) -> Table:
        table = Table(title=f"Week {week} - Day {day.day}")
        table.add_column("Time", style="dim")
        table.add_column("Slot")
        table.add_column("Meal", style="cyan", max_width=40)
        table.add_column("kcal", justify="right")
        table.add_column("Protein", justify="right")
        table.add_column("Carbs", justify="right")
        table.add_column("Fat", justify="right")

        for slot in day.slots:
            n = slot.meal.nutrition
            table.add_row(
                slot.time,
                slot.label,
                slot.meal.name,
                _fmt(n.calories),
                _fmt(n.protein, "g"),
                _fmt(n.carbs, "g"),
                _fmt(n.fat, "g"),
            )
        table.add_row(
            "",
            "[bold]TOTAL[/bold]",
            "",
            f"[bold]{day.total_calories:.0f}[/bold]",
            f"[bold]{day.total_protein:.0f}g[/bold]",
            "",
            "",
            style="bold",
        )
        return table

    def format(self, plan: AssembledPlan, title: Optional[str] = None) -> None:
        """Print formatted tables to console.

        Args:
            plan: Plan to format
            title: Optional title for the header panel
        """
        meta = plan.meta
        caps_color = "green" if meta.caps_met else "yellow"
        header_lines = [
            f"[bold]MEAL PLAN[/bold] - {datetime.now().strftime('%Y-%m-%d %H:%M')}",
            f"Source: {meta.source} | Mode: {meta.mode}",
            f"Variety caps: [{caps_color}]{'met' if meta.caps_met else 'best effort'}[/{caps_color}]",
        ]
        self.console.print(Panel("\n".join(header_lines), title=title or "Meal Plan"))

        for week in plan.weeks:
            for day in week.days:
                self.console.print(self._day_table(week.week, day))

        info_parts = [
            f"Unique ingredients: {meta.unique_ingredients}",
            f"Cuisines: {meta.cuisine_count}",
            f"Repeats: {meta.repeat_count}",
        ]
        if meta.macro_hit_pct is not None:
            info_parts.append(f"Macro hit: {meta.macro_hit_pct:.0f}%")
        info_parts.append(f"Time: {meta.latency_ms}ms")
        self.console.print(f"[dim]{' | '.join(info_parts)}[/dim]")

        for warning in meta.warnings:
            self.console.print(f"[yellow]Warning: {warning}[/yellow]")


def format_json(plan: AssembledPlan, indent: int = 2) -> str:
    """Return the plan as JSON with sorted keys."""
    return plan.to_json(indent=indent)


def format_markdown(plan: AssembledPlan) -> str:
    """Return the plan as Markdown, one table per day."""
    meta = plan.meta
    lines = ["# Meal Plan", ""]
    lines.append(f"**Source:** {meta.source} | **Mode:** {meta.mode}")
    if meta.macro_hit_pct is not None:
        lines.append(f"**Macro hit rate:** {meta.macro_hit_pct:.0f}%")
    if not meta.caps_met:
        lines.append("**Variety caps:** best effort")

    for week in plan.weeks:
        for day in week.days:
            lines.extend(
                [
                    "",
                    f"## Week {week.week}, Day {day.day}",
                    "",
                    "| Time | Slot | Meal | kcal | Protein |",
                    "|------|------|------|------|---------|",
                ]
            )
            for slot in day.slots:
                n = slot.meal.nutrition
                lines.append(
                    f"| {slot.time} | {slot.label} | {slot.meal.name} | "
                    f"{_fmt(n.calories)} | {_fmt(n.protein, 'g')} |"
                )
            lines.append(f"| | **Total** | | {day.total_calories:.0f} | {day.total_protein:.0f}g |")

    if meta.warnings:
        lines.extend(["", "## Warnings", ""])
        lines.extend(f"- {w}" for w in meta.warnings)
    return "\n".join(lines)


def format_plan(
    plan: AssembledPlan,
    output_format: str = "table",
    console: Optional[Console] = None,
) -> Optional[str]:
    """Format a plan in the specified format.

    Args:
        plan: Plan to format
        output_format: One of 'table', 'json', 'markdown'
        console: Rich console (for table format)

    Returns:
        Formatted string for json/markdown, None for table (prints directly)
    """
    if output_format == "table":
        TableFormatter(console).format(plan)
        return None
    elif output_format == "json":
        return format_json(plan)
    elif output_format == "markdown":
        return format_markdown(plan)
    else:
        raise ValueError(f"Unknown output format: {output_format}")
