"""Control-plane client interface and the per-kind handler base class."""

import copy
from abc import ABC, abstractmethod
from typing import Any, Dict, FrozenSet, Optional

from botocore.exceptions import ClientError

from shipyard.state.models import ResourceKind
from shipyard.utils.aws_client import AWSClientManager


class ControlPlaneClient(ABC):
    """The only boundary through which a run touches remote infrastructure.

    Implementations raise ``TransientError`` for failures worth retrying and
    any other ``ReconcileError`` for failures that are not.
    """

    @abstractmethod
    def describe(self, kind: ResourceKind, name: str, config: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Look up a resource.

        Args:
            kind: Resource kind
            name: Resource name
            config: Desired config; supplies lookup keys such as the cluster
                a service belongs to

        Returns:
            Observed config, or None if the resource does not exist
        """

    @abstractmethod
    def create(self, kind: ResourceKind, name: str, config: Dict[str, Any]) -> Dict[str, Any]:
        """Create a resource.

        Args:
            kind: Resource kind
            name: Resource name
            config: Desired config

        Returns:
            Observed config of the created resource
        """

    def managed_view(self, kind: ResourceKind, config: Dict[str, Any]) -> Dict[str, Any]:
        """Project a config onto the fields this client manages, normalized for comparison.

        Args:
            kind: Resource kind
            config: Desired or observed config

        Returns:
            Comparable subset of ``config``
        """
        return dict(config)


class ResourceHandler(ABC):
    """Translates describe/create for one resource kind into boto3 calls."""

    kind: ResourceKind
    service_name: str

    # Config keys compared between desired and observed state
    MANAGED_FIELDS: FrozenSet[str] = frozenset()

    # Values create applies to managed fields the desired config leaves out
    CREATE_DEFAULTS: Dict[str, Any] = {}

    def __init__(self, client_manager: AWSClientManager):
        """Initialize handler.

        Args:
            client_manager: Source of boto3 clients
        """
        self.client_manager = client_manager

    @property
    def client(self):
        return self.client_manager.get_client(self.service_name)

    @abstractmethod
    def describe(self, name: str, config: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Fetch and normalize the observed config, or None if absent."""

    @abstractmethod
    def create(self, name: str, config: Dict[str, Any]) -> Dict[str, Any]:
        """Create the resource and return its observed config."""

    def managed_view(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Managed fields of a config, with create defaults filled in for absent keys.

        An observed config always carries its managed keys, so the defaults
        only complete a desired config. A resource whose create stopped
        before applying them then compares as divergent.
        """
        view = {key: value for key, value in config.items() if key in self.MANAGED_FIELDS}
        for key, value in self.CREATE_DEFAULTS.items():
            if key not in view:
                view[key] = copy.deepcopy(value)
        return view


def error_code(error: ClientError) -> str:
    """Extract the AWS error code from a ClientError."""
    return error.response.get('Error', {}).get('Code', '')
