"""IAM role handler for task execution roles."""

import json
from typing import Any, Dict, List, Optional
from urllib.parse import unquote
from botocore.exceptions import ClientError

from shipyard.state.models import ResourceKind
from .base import ResourceHandler, error_code

DEFAULT_SERVICE_PRINCIPAL = 'ecs-tasks.amazonaws.com'
TASK_EXECUTION_POLICY_ARN = 'arn:aws:iam::aws:policy/service-role/AmazonECSTaskExecutionRolePolicy'


def assume_role_policy(service: str) -> Dict[str, Any]:
    """Trust policy letting an AWS service principal assume the role."""
    return {
        'Version': '2012-10-17',
        'Statement': [{
            'Effect': 'Allow',
            'Principal': {'Service': service},
            'Action': 'sts:AssumeRole',
        }],
    }


class RoleHandler(ResourceHandler):
    """Handler for IAM roles trusted by a single service principal."""

    kind = ResourceKind.ROLE
    service_name = 'iam'
    MANAGED_FIELDS = frozenset({'service', 'managed_policy_arns'})
    CREATE_DEFAULTS = {
        'service': DEFAULT_SERVICE_PRINCIPAL,
        'managed_policy_arns': [TASK_EXECUTION_POLICY_ARN],
    }

    def describe(self, name: str, config: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            role = self.client.get_role(RoleName=name)['Role']
        except ClientError as e:
            if error_code(e) == 'NoSuchEntity':
                return None
            raise

        return {
            'role_name': role['RoleName'],
            'role_arn': role['Arn'],
            'service': self._trusted_service(role.get('AssumeRolePolicyDocument')),
            'managed_policy_arns': self._attached_policy_arns(name),
        }

    def create(self, name: str, config: Dict[str, Any]) -> Dict[str, Any]:
        defaults = self.CREATE_DEFAULTS
        service = config.get('service', defaults['service'])
        policy_arns = sorted(config.get('managed_policy_arns', defaults['managed_policy_arns']))

        params: Dict[str, Any] = {
            'RoleName': name,
            'AssumeRolePolicyDocument': json.dumps(assume_role_policy(service)),
        }
        if config.get('description'):
            params['Description'] = config['description']

        role = self.client.create_role(**params)['Role']

        for policy_arn in policy_arns:
            self.client.attach_role_policy(RoleName=name, PolicyArn=policy_arn)

        return {
            'role_name': role['RoleName'],
            'role_arn': role['Arn'],
            'service': service,
            'managed_policy_arns': policy_arns,
        }

    def managed_view(self, config: Dict[str, Any]) -> Dict[str, Any]:
        view = super().managed_view(config)
        view['managed_policy_arns'] = sorted(view['managed_policy_arns'] or [])
        return view

    def _attached_policy_arns(self, name: str) -> List[str]:
        paginator = self.client.get_paginator('list_attached_role_policies')
        arns = []
        for page in paginator.paginate(RoleName=name):
            arns.extend(policy['PolicyArn'] for policy in page.get('AttachedPolicies', []))
        return sorted(arns)

    @staticmethod
    def _trusted_service(document: Any) -> Optional[str]:
        """First service principal in a trust policy (given as dict or URL-encoded JSON)."""
        if not document:
            return None
        if isinstance(document, str):
            document = json.loads(unquote(document))

        for statement in document.get('Statement', []):
            service = statement.get('Principal', {}).get('Service')
            if isinstance(service, list):
                return service[0] if service else None
            if service:
                return service

        return None
