"""Data model of a reconciliation run."""

from shipyard.state.models import (
    ResourceKind,
    ResourceDeclaration,
    ResourceStatus,
    ResourceState,
    RunOutcome,
    ReportEntry,
    ReconciliationReport,
    determine_outcome,
)

__all__ = [
    'ResourceKind',
    'ResourceDeclaration',
    'ResourceStatus',
    'ResourceState',
    'RunOutcome',
    'ReportEntry',
    'ReconciliationReport',
    'determine_outcome',
]
