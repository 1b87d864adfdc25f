"""Plan executor: orders declarations and reconciles them one at a time."""

import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from shipyard.control_plane.base import ControlPlaneClient
from shipyard.reconciler.dependency_graph import DependencyGraph
from shipyard.reconciler.probe import ResourceProbe
from shipyard.reconciler.reconciler import Reconciler
from shipyard.reconciler.references import referenced_names, resolve_references
from shipyard.state.models import (
    ReconciliationReport,
    ReportEntry,
    ResourceDeclaration,
    ResourceState,
    ResourceStatus,
    RunOutcome,
    determine_outcome,
)
from shipyard.utils.errors import (
    ConfigurationError,
    DependencyError,
    ErrorContext,
    ReconcileError,
    error_handler,
)
from shipyard.utils.logging import LogContext, get_logger
from shipyard.utils.retry import RetryStrategy

logger = get_logger(__name__)

# Called with (declaration, None) when a declaration starts and
# (declaration, final_state) when it finishes
ProgressCallback = Callable[[ResourceDeclaration, Optional[ResourceState]], None]


def validate_plan(
    declarations: Iterable[ResourceDeclaration],
    reference_roots: Iterable[str] = ()
) -> DependencyGraph:
    """Validate a plan without touching the network.

    Args:
        declarations: Declarations to validate
        reference_roots: Names besides dependencies that references may
            target, e.g. ``account``

    Returns:
        The validated dependency graph

    Raises:
        ConfigurationError: If names repeat, a dependency is undeclared,
            the dependencies form a cycle, or a reference targets a
            declaration missing from depends_on
    """
    graph = DependencyGraph.from_declarations(declarations)
    graph.validate()

    roots = set(reference_roots)
    for name in sorted(graph.nodes):
        declaration = graph.get_declaration(name)
        unknown = referenced_names(declaration.desired_config) - set(declaration.depends_on) - roots
        if unknown:
            raise ConfigurationError(
                f"Declaration '{name}' references {', '.join(sorted(unknown))} "
                f"without listing it in depends_on",
                context=ErrorContext(resource_id=name, resource_type=declaration.kind.value)
            )

    return graph


def rejected_report(
    declarations: Iterable[ResourceDeclaration],
    error: ConfigurationError,
    started_at: Optional[datetime] = None
) -> ReconciliationReport:
    """Report for a plan rejected before any declaration was processed.

    Every declaration stays PENDING and entries are listed by name, since an
    invalid plan has no reconciliation order.
    """
    logger.error(f"Invalid plan: {error.message}")
    return ReconciliationReport(
        entries=tuple(
            ReportEntry(declaration, ResourceState())
            for declaration in sorted(declarations, key=lambda d: d.name)
        ),
        outcome=RunOutcome.FAILED,
        error=error,
        started_at=started_at or datetime.now(timezone.utc),
        finished_at=datetime.now(timezone.utc),
    )


class CancellationToken:
    """Thread-safe flag a caller sets to stop a run between declarations."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class PlanExecutor:
    """Runs the probe/reconcile cycle over a plan in dependency order."""

    def __init__(
        self,
        client: ControlPlaneClient,
        retry_strategy: Optional[RetryStrategy] = None,
        context: Optional[Mapping[str, Mapping[str, Any]]] = None
    ):
        """Initialize plan executor.

        Args:
            client: Control-plane client shared by probe and reconciler
            retry_strategy: Backoff policy for transient failures
            context: Extra referenceable facts, e.g. ``{'account': {'id': ...}}``
        """
        retry_strategy = retry_strategy or RetryStrategy()
        self.probe = ResourceProbe(client, retry_strategy)
        self.reconciler = Reconciler(client, retry_strategy)
        self.context: Dict[str, Mapping[str, Any]] = dict(context or {})

    def run(
        self,
        declarations: Iterable[ResourceDeclaration],
        cancel_token: Optional[CancellationToken] = None,
        progress_callback: Optional[ProgressCallback] = None
    ) -> ReconciliationReport:
        """Reconcile a set of declarations against the control plane.

        The plan is validated before any network call. Declarations are then
        processed strictly one at a time in dependency order; a declaration
        whose dependencies are not all PRESENT is marked FAILED without being
        probed. This method never raises: every outcome, including an invalid
        plan, is returned as a report.

        Args:
            declarations: Declarations to reconcile
            cancel_token: Optional token checked before each declaration
            progress_callback: Optional callback for progress updates

        Returns:
            ReconciliationReport for the run
        """
        started_at = datetime.now(timezone.utc)
        declarations = list(declarations)

        try:
            graph = validate_plan(declarations, reference_roots=self.context)
            order = graph.topological_sort()
        except ConfigurationError as e:
            return rejected_report(declarations, e, started_at=started_at)

        logger.info(f"Reconciling {len(order)} declarations: {', '.join(order)}")

        states: Dict[str, ResourceState] = {name: ResourceState() for name in order}
        cancelled = False

        for name in order:
            if cancel_token is not None and cancel_token.cancelled:
                cancelled = True
                logger.warning(f"Run cancelled; {name} and later declarations were not processed")
                break

            declaration = graph.get_declaration(name)

            with LogContext(resource_id=name, resource_type=declaration.kind.value):
                if progress_callback:
                    progress_callback(declaration, None)

                state = self._reconcile_one(declaration, states)
                states[name] = state

                if progress_callback:
                    progress_callback(declaration, state)

                if state.is_failed():
                    blocked = graph.get_all_dependents(name)
                    if blocked:
                        logger.warning(
                            f"{len(blocked)} dependent declaration(s) will be skipped: "
                            f"{', '.join(sorted(blocked))}"
                        )

        entries = tuple(ReportEntry(graph.get_declaration(name), states[name]) for name in order)
        outcome = determine_outcome([entry.state for entry in entries], cancelled=cancelled)

        report = ReconciliationReport(
            entries=entries,
            outcome=outcome,
            cancelled=cancelled,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )

        logger.info(
            f"Run finished: {outcome.value} "
            f"({report.count(ResourceStatus.PRESENT)} present, "
            f"{report.count(ResourceStatus.DIVERGENT)} divergent, "
            f"{report.count(ResourceStatus.FAILED)} failed, "
            f"{report.create_count} created) in {report.duration:.1f}s"
        )

        return report

    def _reconcile_one(
        self,
        declaration: ResourceDeclaration,
        states: Dict[str, ResourceState]
    ) -> ResourceState:
        """Probe and reconcile one declaration, containing every failure."""
        unavailable = sorted(
            dep for dep in declaration.depends_on if not states[dep].is_present()
        )
        if unavailable:
            details = ", ".join(f"{dep} ({states[dep].status.value})" for dep in unavailable)
            logger.error(f"Skipping {declaration}: dependency not available: {details}")
            return ResourceState(
                status=ResourceStatus.FAILED,
                last_error=DependencyError(
                    f"Dependency not available: {details}",
                    context=ErrorContext(resource_id=declaration.name,
                                         resource_type=declaration.kind.value)
                )
            )

        try:
            facts: Dict[str, Mapping[str, Any]] = dict(self.context)
            for dep in declaration.depends_on:
                facts[dep] = states[dep].observed_config or {}

            desired = resolve_references(declaration.desired_config, facts, declaration.name)
            probed = self.probe.probe(declaration, desired)
            return self.reconciler.reconcile(declaration, probed, desired)

        except ReconcileError as e:
            logger.error(f"{declaration} failed: {e.message}")
            return ResourceState(status=ResourceStatus.FAILED, last_error=e)
        except Exception as e:
            error = error_handler.handle_exception(
                e, ErrorContext(resource_id=declaration.name, resource_type=declaration.kind.value)
            )
            logger.exception(f"Unexpected error reconciling {declaration}")
            return ResourceState(status=ResourceStatus.FAILED, last_error=error)
