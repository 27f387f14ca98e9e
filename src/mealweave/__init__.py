"""mealweave: constraint-safe multi-day meal plan assembly."""

__version__ = "0.1.0"

from mealweave.nutrition.estimator import estimate_macros  # noqa: E402
from mealweave.service import MealPlanService  # noqa: E402

__all__ = ["MealPlanService", "estimate_macros", "__version__"]
