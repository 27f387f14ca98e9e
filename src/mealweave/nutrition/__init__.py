"""Macro estimation against the reference density table."""

from mealweave.nutrition.estimator import MacroTotals, derive_carb_split, estimate_macros

__all__ = ["MacroTotals", "derive_carb_split", "estimate_macros"]
