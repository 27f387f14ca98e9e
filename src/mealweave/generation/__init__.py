"""Meal generation: quantity parsing, normalization, validation gates and the retry pipeline."""
