"""YAML plan parser."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import ValidationError

from shipyard.state.models import ResourceDeclaration
from shipyard.utils.errors import ConfigurationError
from shipyard.utils.retry import RetryStrategy
from .models import PlanConfig


class PlanValidationError(ConfigurationError):
    """Exception raised when a plan file cannot be loaded."""

    def __init__(self, message: str, errors: Optional[List[Dict]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.errors = errors or []

    def __str__(self) -> str:
        """Format validation errors for display."""
        if not self.errors:
            return self.message

        error_lines = [self.message, ""]
        for error in self.errors:
            location = " -> ".join(str(loc) for loc in error.get("loc", []))
            msg = error.get("msg", "Unknown error")
            error_lines.append(f"  • {location}: {msg}" if location else f"  • {msg}")

        return "\n".join(error_lines)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["errors"] = [
            {"loc": [str(loc) for loc in error.get("loc", [])], "msg": error.get("msg")}
            for error in self.errors
        ]
        return data


class Plan:
    """A loaded and schema-validated plan file."""

    def __init__(self, plan_path: Union[str, Path]):
        """Initialize plan.

        Args:
            plan_path: Path to the YAML plan file
        """
        self.plan_path = Path(plan_path)
        self.data: Dict = {}
        self.config: Optional[PlanConfig] = None

    def load(self) -> "Plan":
        """Load and validate the plan from its YAML file.

        Returns:
            Self for method chaining

        Raises:
            PlanValidationError: If the file is missing, unparsable or invalid
        """
        if not self.plan_path.exists():
            raise PlanValidationError(f"Plan file not found: {self.plan_path}")

        try:
            with open(self.plan_path, "r", encoding="utf-8") as f:
                self.data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise PlanValidationError(f"Failed to parse YAML: {e}", cause=e)
        except UnicodeDecodeError as e:
            raise PlanValidationError(f"Plan file is not valid UTF-8: {self.plan_path}", cause=e)
        except OSError as e:
            raise PlanValidationError(f"Failed to read plan file: {e}", cause=e)

        return self.load_data(self.data)

    def load_data(self, data: Any) -> "Plan":
        """Validate already-parsed plan data.

        Args:
            data: Parsed YAML document

        Returns:
            Self for method chaining

        Raises:
            PlanValidationError: If the data does not match the schema
        """
        if not isinstance(data, dict):
            raise PlanValidationError(
                "Plan validation failed with 1 error(s)",
                [{"loc": [], "msg": "Plan must be a mapping with a 'resources' list"}],
            )

        self.data = data
        errors = self.validate()
        if errors:
            raise PlanValidationError(
                f"Plan validation failed with {len(errors)} error(s)",
                errors,
            )

        self.config = PlanConfig(**self.data)
        return self

    def validate(self) -> List[Dict]:
        """Validate the plan data against the schema.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if "resources" not in self.data:
            errors.append({"loc": ["resources"], "msg": "Required field 'resources' is missing"})

        try:
            PlanConfig(**self.data)
        except ValidationError as e:
            for error in e.errors():
                errors.append({"loc": list(error["loc"]), "msg": error["msg"]})
        except TypeError as e:
            errors.append({"loc": [], "msg": str(e)})

        return errors

    @property
    def region(self) -> Optional[str]:
        return self.config.region if self.config else None

    @property
    def profile(self) -> Optional[str]:
        return self.config.profile if self.config else None

    def to_declarations(self) -> List[ResourceDeclaration]:
        """Convert the plan's resources into declarations, in file order."""
        if self.config is None:
            raise PlanValidationError("Plan has not been loaded")

        return [
            ResourceDeclaration(
                kind=resource.kind,
                name=resource.name,
                depends_on=frozenset(resource.depends_on),
                desired_config=dict(resource.config),
            )
            for resource in self.config.resources
        ]

    def retry_strategy(self) -> RetryStrategy:
        """Build the retry strategy configured by the plan."""
        retry = self.config.retry if self.config else None
        if retry is None:
            return RetryStrategy()
        return RetryStrategy(
            max_attempts=retry.max_attempts,
            base_delay=retry.base_delay,
            max_delay=retry.max_delay,
        )


def load_plan(plan_path: Union[str, Path]) -> Plan:
    """Load and validate a plan file.

    Args:
        plan_path: Path to the YAML plan file

    Returns:
        Loaded Plan

    Raises:
        PlanValidationError: If the plan cannot be loaded
    """
    return Plan(plan_path).load()
