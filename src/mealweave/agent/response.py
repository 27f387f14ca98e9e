"""JSON envelope for CLI commands run with ``--json``."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from mealweave import __version__

ENVELOPE_VERSION = "1"


@dataclass
class CommandResponse:
    """Result of one CLI command in a shape scripts can rely on.

    Every command emits the same top-level keys. ``data`` is
    command-specific; plan violations and rejects go in ``errors``, while
    best-effort notes such as unmet variety caps go in ``warnings``.
    """

    success: bool
    command: str
    data: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    human_summary: str = ""

    @classmethod
    def ok(
        cls,
        command: str,
        data: Optional[dict[str, Any]] = None,
        warnings: Optional[list[str]] = None,
        summary: str = "",
    ) -> "CommandResponse":
        return cls(
            success=True,
            command=command,
            data=data or {},
            warnings=list(warnings or []),
            human_summary=summary,
        )

    @classmethod
    def failure(
        cls,
        command: str,
        error: str,
        data: Optional[dict[str, Any]] = None,
    ) -> "CommandResponse":
        """Envelope for a command that could not produce its result.

        Args:
            command: Command name, e.g. ``"plan"`` or ``"variety clear"``
            error: The one descriptive error reported to the caller
            data: Partial diagnostics (never a partial plan)
        """
        return cls(
            success=False,
            command=command,
            data=data or {},
            errors=[error],
            human_summary=f"Error: {error}",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "command": self.command,
            "data": self.data,
            "errors": self.errors,
            "warnings": self.warnings,
            "human_summary": self.human_summary,
            "generated_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "envelope_version": ENVELOPE_VERSION,
            "mealweave_version": __version__,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)
