"""Key-value stores and the plan result cache."""
