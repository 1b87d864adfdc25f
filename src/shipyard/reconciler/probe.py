"""Resource probe: classify a declaration's remote state."""

import json
from typing import Any, Dict, List, Optional

from shipyard.control_plane.base import ControlPlaneClient
from shipyard.state.models import ResourceDeclaration, ResourceState, ResourceStatus
from shipyard.utils.errors import ErrorContext, ReconcileError, error_handler
from shipyard.utils.logging import get_logger
from shipyard.utils.retry import RetryStrategy

logger = get_logger(__name__)

_MISSING = object()


def _canonical(value: Any) -> Any:
    """Canonical form for comparison: lists compare as unordered collections."""
    if isinstance(value, dict):
        return {key: _canonical(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [_canonical(item) for item in value]
        return sorted(items, key=lambda item: json.dumps(item, sort_keys=True, default=str))
    return value


def diff_managed_fields(desired: Dict[str, Any], observed: Dict[str, Any]) -> List[str]:
    """Names of desired fields whose observed value differs.

    Args:
        desired: Managed view of the desired config
        observed: Managed view of the observed config

    Returns:
        Sorted list of differing field names
    """
    differing = []
    for key, desired_value in desired.items():
        observed_value = observed.get(key, _MISSING)
        if observed_value is _MISSING or _canonical(desired_value) != _canonical(observed_value):
            differing.append(key)
    return sorted(differing)


class ResourceProbe:
    """Queries the control plane for one declaration and classifies the result."""

    def __init__(self, client: ControlPlaneClient, retry_strategy: Optional[RetryStrategy] = None):
        """Initialize probe.

        Args:
            client: Control-plane client
            retry_strategy: Backoff policy for transient describe failures
        """
        self.client = client
        self.retry_strategy = retry_strategy or RetryStrategy()

    def probe(
        self,
        declaration: ResourceDeclaration,
        desired_config: Optional[Dict[str, Any]] = None
    ) -> ResourceState:
        """Classify the remote state of a declaration.

        Args:
            declaration: Declaration to probe
            desired_config: Desired config with references resolved
                (defaults to the declaration's own config)

        Returns:
            ResourceState with status ABSENT, PRESENT, DIVERGENT or FAILED
        """
        desired = declaration.desired_config if desired_config is None else desired_config

        try:
            observed = self.retry_strategy.execute_with_retry(
                self.client.describe, declaration.kind, declaration.name, desired
            )
        except ReconcileError as e:
            logger.error(f"Probe of {declaration} failed: {e.message}")
            return ResourceState(status=ResourceStatus.FAILED, last_error=e)
        except Exception as e:
            error = error_handler.handle_exception(
                e, ErrorContext(resource_id=declaration.name,
                                resource_type=declaration.kind.value, operation='describe')
            )
            logger.error(f"Probe of {declaration} failed: {error.message}")
            return ResourceState(status=ResourceStatus.FAILED, last_error=error)

        if observed is None:
            logger.debug(f"{declaration} is absent")
            return ResourceState(status=ResourceStatus.ABSENT)

        divergent = diff_managed_fields(
            self.client.managed_view(declaration.kind, desired),
            self.client.managed_view(declaration.kind, observed)
        )

        if divergent:
            logger.warning(f"{declaration} exists but differs on: {', '.join(divergent)}")
            return ResourceState(
                status=ResourceStatus.DIVERGENT,
                observed_config=observed,
                divergent_fields=tuple(divergent)
            )

        logger.debug(f"{declaration} is present")
        return ResourceState(status=ResourceStatus.PRESENT, observed_config=observed)
