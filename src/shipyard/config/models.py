"""Pydantic models for the plan file schema."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from shipyard.state.models import ResourceKind

NAME_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_./-]*$"


class RetryConfig(BaseModel):
    """Backoff policy for transient control-plane failures."""

    model_config = ConfigDict(extra="forbid")

    max_attempts: int = Field(3, ge=1, le=10, description="Total attempts per call")
    base_delay: float = Field(1.0, ge=0, description="Delay before the first retry in seconds")
    max_delay: float = Field(30.0, ge=0, description="Upper bound for any single delay")

    @model_validator(mode="after")
    def validate_delays(self):
        """Validate the delay bounds."""
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be greater than or equal to base_delay")
        return self


class ResourceConfig(BaseModel):
    """One declaration in the plan."""

    model_config = ConfigDict(extra="forbid")

    kind: ResourceKind
    name: str = Field(..., min_length=1, max_length=255, pattern=NAME_PATTERN)
    depends_on: List[str] = Field(default_factory=list)
    config: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("kind", mode="before")
    @classmethod
    def validate_kind(cls, v: Any) -> Any:
        """Accept kinds case-insensitively."""
        if isinstance(v, str):
            for kind in ResourceKind:
                if kind.value.lower() == v.lower():
                    return kind
            valid = ", ".join(kind.value for kind in ResourceKind)
            raise ValueError(f"Unknown resource kind '{v}' (expected one of: {valid})")
        return v

    @field_validator("depends_on", mode="before")
    @classmethod
    def validate_depends_on(cls, v: Any) -> Any:
        """Allow a single dependency to be written as a plain string."""
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    @field_validator("config", mode="before")
    @classmethod
    def validate_config(cls, v: Any) -> Any:
        if v is None:
            return {}
        return v

    @model_validator(mode="after")
    def validate_dependencies(self):
        """Reject repeated entries in depends_on."""
        duplicates = sorted({dep for dep in self.depends_on if self.depends_on.count(dep) > 1})
        if duplicates:
            raise ValueError(f"depends_on lists {', '.join(duplicates)} more than once")
        return self


class PlanConfig(BaseModel):
    """Top-level plan file."""

    model_config = ConfigDict(extra="forbid")

    region: Optional[str] = Field(None, description="AWS region (CLI --region overrides)")
    profile: Optional[str] = Field(None, description="AWS profile (CLI --profile overrides)")
    retry: RetryConfig = Field(default_factory=RetryConfig)
    resources: List[ResourceConfig] = Field(default_factory=list)
