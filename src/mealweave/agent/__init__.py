"""JSON response envelopes for CLI output."""

from __future__ import annotations

from mealweave.agent.response import CommandResponse

__all__ = ["CommandResponse"]
