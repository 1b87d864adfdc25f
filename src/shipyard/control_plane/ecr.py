"""Container image registry (ECR repository) handler."""

from typing import Any, Dict, Optional
from botocore.exceptions import ClientError

from shipyard.state.models import ResourceKind
from .base import ResourceHandler, error_code


class RegistryHandler(ResourceHandler):
    """Handler for ECR repositories."""

    kind = ResourceKind.REGISTRY
    service_name = 'ecr'
    MANAGED_FIELDS = frozenset({'image_tag_mutability', 'scan_on_push'})

    def describe(self, name: str, config: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            response = self.client.describe_repositories(repositoryNames=[name])
        except ClientError as e:
            if error_code(e) == 'RepositoryNotFoundException':
                return None
            raise

        repositories = response.get('repositories', [])
        if not repositories:
            return None

        return self._observed(repositories[0])

    def create(self, name: str, config: Dict[str, Any]) -> Dict[str, Any]:
        response = self.client.create_repository(
            repositoryName=name,
            imageTagMutability=config.get('image_tag_mutability', 'MUTABLE'),
            imageScanningConfiguration={'scanOnPush': bool(config.get('scan_on_push', False))}
        )
        return self._observed(response['repository'])

    def _observed(self, repository: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'repository_name': repository['repositoryName'],
            'repository_uri': repository.get('repositoryUri'),
            'repository_arn': repository.get('repositoryArn'),
            'registry_id': repository.get('registryId'),
            'image_tag_mutability': repository.get('imageTagMutability', 'MUTABLE'),
            'scan_on_push': repository.get('imageScanningConfiguration', {}).get('scanOnPush', False),
        }
