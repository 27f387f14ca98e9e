"""Export module for plan output."""

from __future__ import annotations

from mealweave.export.formatters import TableFormatter, format_json, format_markdown, format_plan

__all__ = ["TableFormatter", "format_json", "format_markdown", "format_plan"]
