"""Meal signatures and the cross-session variety bank."""
