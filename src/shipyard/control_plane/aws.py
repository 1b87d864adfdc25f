"""Control-plane client backed by boto3."""

from typing import Any, Dict, Iterable, Optional

from shipyard.state.models import ResourceKind
from shipyard.utils.aws_client import AWSClientManager
from shipyard.utils.errors import ConfigurationError, ErrorContext, error_handler
from shipyard.utils.logging import get_logger
from .base import ControlPlaneClient, ResourceHandler
from .ec2 import NetworkHandler, SecurityGroupHandler
from .ecr import RegistryHandler
from .ecs import ClusterHandler, ServiceHandler, TaskDefinitionHandler
from .iam import RoleHandler
from .logs import LogGroupHandler

logger = get_logger(__name__)

HANDLER_CLASSES = (
    NetworkHandler,
    RegistryHandler,
    ClusterHandler,
    LogGroupHandler,
    RoleHandler,
    SecurityGroupHandler,
    TaskDefinitionHandler,
    ServiceHandler,
)


class AWSControlPlaneClient(ControlPlaneClient):
    """Dispatches describe/create to the handler registered for each kind.

    Every boto3/botocore exception is translated into the reconciliation
    error taxonomy here, so callers only ever see ``ReconcileError``.
    """

    def __init__(
        self,
        client_manager: AWSClientManager,
        handlers: Optional[Iterable[ResourceHandler]] = None
    ):
        """Initialize AWS control-plane client.

        Args:
            client_manager: Source of boto3 clients
            handlers: Handlers to register (defaults to one per resource kind)
        """
        self.client_manager = client_manager
        if handlers is None:
            handlers = [handler_class(client_manager) for handler_class in HANDLER_CLASSES]
        self.handlers: Dict[ResourceKind, ResourceHandler] = {
            handler.kind: handler for handler in handlers
        }

    def describe(self, kind: ResourceKind, name: str, config: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        handler = self._handler(kind, name)
        logger.debug(f"Describing {kind.value}/{name}")

        try:
            return handler.describe(name, config)
        except Exception as e:
            raise error_handler.handle_exception(e, self._context(handler, name, 'describe'))

    def create(self, kind: ResourceKind, name: str, config: Dict[str, Any]) -> Dict[str, Any]:
        handler = self._handler(kind, name)
        logger.debug(f"Creating {kind.value}/{name}")

        try:
            return handler.create(name, config)
        except Exception as e:
            raise error_handler.handle_exception(e, self._context(handler, name, 'create'))

    def managed_view(self, kind: ResourceKind, config: Dict[str, Any]) -> Dict[str, Any]:
        return self._handler(kind).managed_view(config)

    def _handler(self, kind: ResourceKind, name: Optional[str] = None) -> ResourceHandler:
        handler = self.handlers.get(kind)
        if handler is None:
            raise ConfigurationError(
                f"No handler registered for resource kind: {kind.value}",
                context=ErrorContext(resource_id=name, resource_type=kind.value)
            )
        return handler

    @staticmethod
    def _context(handler: ResourceHandler, name: str, operation: str) -> ErrorContext:
        return ErrorContext(
            resource_id=name,
            resource_type=handler.kind.value,
            operation=operation,
            aws_service=handler.service_name,
        )
