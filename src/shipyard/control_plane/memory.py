"""In-memory control plane for exercising plans without a cloud account."""

import copy
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional, Tuple

from shipyard.state.models import ResourceKind
from .base import ControlPlaneClient


@dataclass(frozen=True)
class RecordedCall:
    """One call made against the in-memory control plane."""
    operation: str
    kind: ResourceKind
    name: str


class InMemoryControlPlane(ControlPlaneClient):
    """Stores resources in a dict and records every call.

    Faults can be queued per (operation, name) and are raised, in order, on
    the next matching calls.
    """

    def __init__(self, resources: Optional[Dict[Tuple[ResourceKind, str], Dict[str, Any]]] = None):
        self.resources: Dict[Tuple[ResourceKind, str], Dict[str, Any]] = copy.deepcopy(resources or {})
        self.calls: List[RecordedCall] = []
        self._faults: Dict[Tuple[str, str], Deque[Exception]] = defaultdict(deque)

    def seed(self, kind: ResourceKind, name: str, config: Dict[str, Any]) -> None:
        """Place an existing resource in the control plane."""
        self.resources[(kind, name)] = copy.deepcopy(config)

    def fail(self, operation: str, name: str, *errors: Exception) -> None:
        """Queue errors for upcoming ``describe`` or ``create`` calls on ``name``."""
        self._faults[(operation, name)].extend(errors)

    def describe(self, kind: ResourceKind, name: str, config: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        self._record('describe', kind, name)
        observed = self.resources.get((kind, name))
        return copy.deepcopy(observed) if observed is not None else None

    def create(self, kind: ResourceKind, name: str, config: Dict[str, Any]) -> Dict[str, Any]:
        self._record('create', kind, name)
        observed = {
            **copy.deepcopy(config),
            'arn': f"arn:memory:{kind.value.lower()}/{name}",
        }
        self.resources[(kind, name)] = observed
        return copy.deepcopy(observed)

    def calls_to(self, operation: str) -> List[RecordedCall]:
        """Calls made for one operation, in order."""
        return [call for call in self.calls if call.operation == operation]

    def _record(self, operation: str, kind: ResourceKind, name: str) -> None:
        self.calls.append(RecordedCall(operation, kind, name))
        faults = self._faults.get((operation, name))
        if faults:
            raise faults.popleft()
