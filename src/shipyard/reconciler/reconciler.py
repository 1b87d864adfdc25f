"""Reconciler: act on a probed declaration."""

from typing import Any, Dict, Optional

from shipyard.control_plane.base import ControlPlaneClient
from shipyard.state.models import ResourceDeclaration, ResourceState, ResourceStatus
from shipyard.utils.errors import ErrorContext, ReconcileError, TransientError, error_handler
from shipyard.utils.logging import get_logger
from shipyard.utils.retry import RetryStrategy

logger = get_logger(__name__)


def _throttled(error: TransientError) -> bool:
    return error.throttled


class Reconciler:
    """Creates absent resources and leaves everything else untouched.

    Existing resources are never modified: a divergent resource is reported
    for manual follow-up, and a failed probe is passed through as is.
    """

    def __init__(self, client: ControlPlaneClient, retry_strategy: Optional[RetryStrategy] = None):
        """Initialize reconciler.

        Args:
            client: Control-plane client
            retry_strategy: Backoff policy for throttled create calls
        """
        self.client = client
        self.retry_strategy = retry_strategy or RetryStrategy()

    def reconcile(
        self,
        declaration: ResourceDeclaration,
        state: ResourceState,
        desired_config: Optional[Dict[str, Any]] = None
    ) -> ResourceState:
        """Drive a probed declaration to its final state for this run.

        Args:
            declaration: Declaration being reconciled
            state: Result of probing the declaration
            desired_config: Desired config with references resolved
                (defaults to the declaration's own config)

        Returns:
            Final ResourceState for the declaration
        """
        if state.status == ResourceStatus.PRESENT:
            logger.info(f"{declaration} already exists, skipping")
            return state

        if state.status == ResourceStatus.DIVERGENT:
            logger.warning(
                f"{declaration} differs from the plan ({', '.join(state.divergent_fields)}); "
                f"manual reconciliation required"
            )
            return state

        if state.status != ResourceStatus.ABSENT:
            return state

        desired = declaration.desired_config if desired_config is None else desired_config
        return self._create(declaration, state.transition(ResourceStatus.CREATING), desired)

    def _create(
        self,
        declaration: ResourceDeclaration,
        state: ResourceState,
        desired: Dict[str, Any]
    ) -> ResourceState:
        logger.info(f"Creating {declaration}...")

        try:
            # A throttled request was rejected before it was acted on, so it
            # is the only transient failure a create may repeat
            observed = self.retry_strategy.execute_with_retry(
                self.client.create, declaration.kind, declaration.name, desired,
                retry_if=_throttled
            )
        except ReconcileError as e:
            logger.error(f"Failed to create {declaration}: {e.message}")
            return state.transition(ResourceStatus.FAILED, last_error=e)
        except Exception as e:
            error = error_handler.handle_exception(
                e, ErrorContext(resource_id=declaration.name,
                                resource_type=declaration.kind.value, operation='create')
            )
            logger.error(f"Failed to create {declaration}: {error.message}")
            return state.transition(ResourceStatus.FAILED, last_error=error)

        logger.info(f"Created {declaration}")
        return state.transition(ResourceStatus.PRESENT, observed_config=observed, created=True)
