"""Control-plane clients: the network-facing boundary of a run."""

from .base import ControlPlaneClient, ResourceHandler
from .aws import AWSControlPlaneClient
from .memory import InMemoryControlPlane, RecordedCall
from .ec2 import NetworkHandler, SecurityGroupHandler
from .ecr import RegistryHandler
from .ecs import ClusterHandler, TaskDefinitionHandler, ServiceHandler
from .iam import RoleHandler
from .logs import LogGroupHandler

__all__ = [
    'ControlPlaneClient',
    'ResourceHandler',
    'AWSControlPlaneClient',
    'InMemoryControlPlane',
    'RecordedCall',
    'NetworkHandler',
    'SecurityGroupHandler',
    'RegistryHandler',
    'ClusterHandler',
    'TaskDefinitionHandler',
    'ServiceHandler',
    'RoleHandler',
    'LogGroupHandler',
]
