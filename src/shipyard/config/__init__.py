"""Plan file loading and validation."""

from .models import RetryConfig, ResourceConfig, PlanConfig
from .parser import Plan, PlanValidationError, load_plan

__all__ = [
    "RetryConfig",
    "ResourceConfig",
    "PlanConfig",
    "Plan",
    "PlanValidationError",
    "load_plan",
]
