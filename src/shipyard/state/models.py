"""Data model for a reconciliation run: declarations, per-resource state, report."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from shipyard.utils.errors import ErrorCategory, ReconcileError


class ResourceKind(Enum):
    """Kinds of infrastructure a plan can declare."""
    NETWORK = "Network"
    REGISTRY = "Registry"
    CLUSTER = "Cluster"
    LOG_GROUP = "LogGroup"
    ROLE = "Role"
    SECURITY_GROUP = "SecurityGroup"
    TASK_DEFINITION = "TaskDefinition"
    SERVICE = "Service"


@dataclass(frozen=True)
class ResourceDeclaration:
    """A named, typed request for one piece of infrastructure.

    ``name`` doubles as the remote resource name and as the identifier other
    declarations use in ``depends_on``.
    """

    kind: ResourceKind
    name: str
    depends_on: FrozenSet[str] = frozenset()
    desired_config: Dict[str, Any] = field(default_factory=dict, hash=False)

    def __str__(self) -> str:
        return f"{self.kind.value}/{self.name}"


class ResourceStatus(Enum):
    """Status of one declaration within a run."""
    PENDING = "pending"
    ABSENT = "absent"
    CREATING = "creating"
    PRESENT = "present"
    DIVERGENT = "divergent"
    FAILED = "failed"


@dataclass(frozen=True)
class ResourceState:
    """Working record of one declaration's outcome.

    States are immutable; each transition produces a new instance.
    """

    status: ResourceStatus = ResourceStatus.PENDING
    observed_config: Optional[Dict[str, Any]] = None
    last_error: Optional[ReconcileError] = None
    divergent_fields: Tuple[str, ...] = ()
    created: bool = False

    def transition(self, status: ResourceStatus, **changes: Any) -> 'ResourceState':
        """Return a copy of this state moved to ``status``."""
        return replace(self, status=status, **changes)

    def is_present(self) -> bool:
        return self.status == ResourceStatus.PRESENT

    def is_failed(self) -> bool:
        return self.status == ResourceStatus.FAILED

    def is_divergent(self) -> bool:
        return self.status == ResourceStatus.DIVERGENT

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'observed_config': self.observed_config,
            'last_error': self.last_error.to_dict() if self.last_error else None,
            'divergent_fields': list(self.divergent_fields),
            'created': self.created,
        }


class RunOutcome(Enum):
    """Overall outcome of a reconciliation run."""
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True)
class ReportEntry:
    """One (declaration, final state) pair of a report."""

    declaration: ResourceDeclaration
    state: ResourceState


def determine_outcome(states: List[ResourceState], cancelled: bool = False) -> RunOutcome:
    """Derive the run outcome from final per-declaration states.

    Args:
        states: Final state of every declaration in the run
        cancelled: Whether the run stopped early on a cancellation request

    Returns:
        SUCCESS when everything is present, FAILED when everything failed,
        PARTIAL otherwise (and always PARTIAL for a cancelled run)
    """
    if cancelled:
        return RunOutcome.PARTIAL

    if all(state.is_present() for state in states):
        return RunOutcome.SUCCESS

    if all(state.is_failed() for state in states):
        return RunOutcome.FAILED

    return RunOutcome.PARTIAL


@dataclass(frozen=True)
class ReconciliationReport:
    """Final, immutable output of a reconciliation run."""

    entries: Tuple[ReportEntry, ...]
    outcome: RunOutcome
    cancelled: bool = False
    error: Optional[ReconcileError] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def duration(self) -> float:
        """Run duration in seconds."""
        if self.started_at is None or self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def state_for(self, name: str) -> Optional[ResourceState]:
        """Get the final state of a declaration by name."""
        for entry in self.entries:
            if entry.declaration.name == name:
                return entry.state
        return None

    def names(self) -> List[str]:
        """Declaration names in reconciliation order."""
        return [entry.declaration.name for entry in self.entries]

    def count(self, status: ResourceStatus) -> int:
        """Number of declarations that finished with ``status``."""
        return sum(1 for entry in self.entries if entry.state.status == status)

    @property
    def create_count(self) -> int:
        """Number of create calls that succeeded during the run."""
        return sum(1 for entry in self.entries if entry.state.created)

    def is_success(self) -> bool:
        return self.outcome == RunOutcome.SUCCESS

    def is_config_error(self) -> bool:
        """Whether the run was rejected before any network call."""
        return self.error is not None and self.error.category == ErrorCategory.CONFIG

    def to_dict(self) -> Dict[str, Any]:
        """Convert the report to a JSON-serializable dictionary."""
        return {
            'outcome': self.outcome.value,
            'cancelled': self.cancelled,
            'error': self.error.to_dict() if self.error else None,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'duration': self.duration,
            'resources': [
                {
                    'kind': entry.declaration.kind.value,
                    'name': entry.declaration.name,
                    'depends_on': sorted(entry.declaration.depends_on),
                    **entry.state.to_dict(),
                }
                for entry in self.entries
            ],
        }
