"""Reconciliation core: dependency ordering, probing and creation."""

from shipyard.reconciler.dependency_graph import DependencyGraph, DependencyNode
from shipyard.reconciler.probe import ResourceProbe, diff_managed_fields
from shipyard.reconciler.reconciler import Reconciler
from shipyard.reconciler.references import find_references, referenced_names, resolve_references
from shipyard.reconciler.executor import (
    PlanExecutor,
    CancellationToken,
    ProgressCallback,
    rejected_report,
    validate_plan
)

__all__ = [
    # Dependency graph
    'DependencyGraph',
    'DependencyNode',

    # Probe / reconcile
    'ResourceProbe',
    'diff_managed_fields',
    'Reconciler',

    # References
    'find_references',
    'referenced_names',
    'resolve_references',

    # Execution
    'PlanExecutor',
    'CancellationToken',
    'ProgressCallback',
    'rejected_report',
    'validate_plan',
]
