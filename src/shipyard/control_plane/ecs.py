"""ECS handlers: clusters, task definitions and services."""

from typing import Any, Dict, List, Optional
from botocore.exceptions import ClientError

from shipyard.state.models import ResourceKind
from shipyard.utils.errors import ConfigurationError, ErrorContext
from .base import ResourceHandler, error_code

ACTIVE = 'ACTIVE'


def task_definition_family(value: Optional[str]) -> Optional[str]:
    """Reduce a task definition ARN or ``family:revision`` to its family.

    Args:
        value: ARN, ``family:revision`` or bare family

    Returns:
        Family name
    """
    if not value:
        return value
    if value.startswith('arn:'):
        value = value.split('/', 1)[-1]
    return value.split(':', 1)[0]


class ClusterHandler(ResourceHandler):
    """Handler for ECS clusters.

    A cluster only counts as present while its status is ACTIVE; a deleted
    cluster is still returned by DescribeClusters as INACTIVE.
    """

    kind = ResourceKind.CLUSTER
    service_name = 'ecs'
    MANAGED_FIELDS = frozenset({'capacity_providers'})

    def describe(self, name: str, config: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        response = self.client.describe_clusters(clusters=[name])

        for cluster in response.get('clusters', []):
            if cluster.get('clusterName') == name and cluster.get('status') == ACTIVE:
                return self._observed(cluster)

        return None

    def create(self, name: str, config: Dict[str, Any]) -> Dict[str, Any]:
        params: Dict[str, Any] = {'clusterName': name}
        if config.get('capacity_providers'):
            params['capacityProviders'] = list(config['capacity_providers'])

        response = self.client.create_cluster(**params)
        return self._observed(response['cluster'])

    def _observed(self, cluster: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'cluster_name': cluster['clusterName'],
            'cluster_arn': cluster.get('clusterArn'),
            'status': cluster.get('status'),
            'capacity_providers': list(cluster.get('capacityProviders', [])),
        }


class TaskDefinitionHandler(ResourceHandler):
    """Handler for Fargate task definitions; the declaration name is the family."""

    kind = ResourceKind.TASK_DEFINITION
    service_name = 'ecs'
    MANAGED_FIELDS = frozenset({
        'cpu', 'memory', 'image', 'container_name', 'container_port', 'execution_role_arn',
    })

    def describe(self, name: str, config: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            response = self.client.describe_task_definition(taskDefinition=name)
        except ClientError as e:
            # ECS reports an unknown family as a generic ClientException
            if error_code(e) == 'ClientException':
                return None
            raise

        task_definition = response['taskDefinition']
        if task_definition.get('status') != ACTIVE:
            return None

        return self._observed(task_definition)

    def create(self, name: str, config: Dict[str, Any]) -> Dict[str, Any]:
        for required in ('image', 'execution_role_arn'):
            if not config.get(required):
                raise ConfigurationError(
                    f"TaskDefinition '{name}' requires '{required}'",
                    context=ErrorContext(resource_id=name, resource_type=self.kind.value,
                                         operation='create')
                )

        container: Dict[str, Any] = {
            'name': config.get('container_name', name),
            'image': config['image'],
            'essential': True,
            'portMappings': [
                {'containerPort': int(config.get('container_port', 80)), 'protocol': 'tcp'}
            ],
        }

        if config.get('log_group'):
            container['logConfiguration'] = {
                'logDriver': 'awslogs',
                'options': {
                    'awslogs-group': config['log_group'],
                    'awslogs-region': config.get('log_region') or self.client_manager.get_region(),
                    'awslogs-stream-prefix': config.get('log_stream_prefix', 'ecs'),
                },
            }

        response = self.client.register_task_definition(
            family=name,
            networkMode='awsvpc',
            requiresCompatibilities=['FARGATE'],
            cpu=str(config.get('cpu', 256)),
            memory=str(config.get('memory', 512)),
            executionRoleArn=config['execution_role_arn'],
            containerDefinitions=[container]
        )
        return self._observed(response['taskDefinition'])

    def managed_view(self, config: Dict[str, Any]) -> Dict[str, Any]:
        view = super().managed_view(config)
        for key in ('cpu', 'memory', 'container_port'):
            if view.get(key) is not None:
                view[key] = int(view[key])
        return view

    def _observed(self, task_definition: Dict[str, Any]) -> Dict[str, Any]:
        containers = task_definition.get('containerDefinitions', [])
        container = containers[0] if containers else {}
        port_mappings = container.get('portMappings', [])
        log_options = container.get('logConfiguration', {}).get('options', {})

        return {
            'family': task_definition.get('family'),
            'revision': task_definition.get('revision'),
            'task_definition_arn': task_definition.get('taskDefinitionArn'),
            'cpu': int(task_definition['cpu']) if task_definition.get('cpu') else None,
            'memory': int(task_definition['memory']) if task_definition.get('memory') else None,
            'image': container.get('image'),
            'container_name': container.get('name'),
            'container_port': port_mappings[0].get('containerPort') if port_mappings else None,
            'execution_role_arn': task_definition.get('executionRoleArn'),
            'log_group': log_options.get('awslogs-group'),
        }


class ServiceHandler(ResourceHandler):
    """Handler for long-running ECS services on Fargate."""

    kind = ResourceKind.SERVICE
    service_name = 'ecs'
    MANAGED_FIELDS = frozenset({
        'task_definition', 'desired_count', 'launch_type',
        'subnets', 'security_groups', 'assign_public_ip',
    })

    def describe(self, name: str, config: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        cluster = self._cluster(name, config)

        try:
            response = self.client.describe_services(cluster=cluster, services=[name])
        except ClientError as e:
            if error_code(e) == 'ClusterNotFoundException':
                return None
            raise

        for service in response.get('services', []):
            if service.get('serviceName') == name and service.get('status') == ACTIVE:
                return self._observed(service, cluster)

        return None

    def create(self, name: str, config: Dict[str, Any]) -> Dict[str, Any]:
        cluster = self._cluster(name, config)
        if not config.get('task_definition'):
            raise ConfigurationError(
                f"Service '{name}' requires 'task_definition'",
                context=ErrorContext(resource_id=name, resource_type=self.kind.value,
                                     operation='create')
            )

        response = self.client.create_service(
            cluster=cluster,
            serviceName=name,
            taskDefinition=config['task_definition'],
            desiredCount=int(config.get('desired_count', 1)),
            launchType=config.get('launch_type', 'FARGATE'),
            networkConfiguration={
                'awsvpcConfiguration': {
                    'subnets': self._as_list(config.get('subnets')),
                    'securityGroups': self._as_list(config.get('security_groups')),
                    'assignPublicIp': 'ENABLED' if config.get('assign_public_ip', True) else 'DISABLED',
                }
            }
        )
        return self._observed(response['service'], cluster)

    def managed_view(self, config: Dict[str, Any]) -> Dict[str, Any]:
        view = super().managed_view(config)
        if 'task_definition' in view:
            view['task_definition'] = task_definition_family(view['task_definition'])
        if view.get('desired_count') is not None:
            view['desired_count'] = int(view['desired_count'])
        for key in ('subnets', 'security_groups'):
            if key in view:
                view[key] = self._as_list(view[key])
        return view

    def _cluster(self, name: str, config: Dict[str, Any]) -> str:
        if not config.get('cluster'):
            raise ConfigurationError(
                f"Service '{name}' requires 'cluster'",
                context=ErrorContext(resource_id=name, resource_type=self.kind.value)
            )
        return config['cluster']

    @staticmethod
    def _as_list(value: Any) -> List[str]:
        """Accept a list or a comma-separated string (as the ECS CLI shorthand uses)."""
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(',') if item.strip()]
        return list(value)

    def _observed(self, service: Dict[str, Any], cluster: str) -> Dict[str, Any]:
        network = service.get('networkConfiguration', {}).get('awsvpcConfiguration', {})

        return {
            'service_name': service['serviceName'],
            'service_arn': service.get('serviceArn'),
            'cluster': cluster,
            'status': service.get('status'),
            'task_definition': task_definition_family(service.get('taskDefinition')),
            'task_definition_arn': service.get('taskDefinition'),
            'desired_count': service.get('desiredCount'),
            'launch_type': service.get('launchType'),
            'subnets': list(network.get('subnets', [])),
            'security_groups': list(network.get('securityGroups', [])),
            'assign_public_ip': network.get('assignPublicIp') == 'ENABLED',
        }
