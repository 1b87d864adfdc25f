"""AWS session and client management."""

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from typing import Optional, Dict, Any
from dataclasses import dataclass
from shipyard.utils.errors import ErrorContext, error_handler
from shipyard.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class AWSCredentials:
    """Identity behind the active credentials."""
    account_id: str
    user_arn: str
    user_id: str
    region: str
    profile: Optional[str] = None


class AWSClientManager:
    """Owns the boto3 session and caches one client per service."""

    def __init__(
        self,
        profile: Optional[str] = None,
        region: Optional[str] = None,
        session: Optional[boto3.Session] = None,
        connect_timeout: int = 10,
        read_timeout: int = 60
    ):
        """Initialize AWS client manager.

        Args:
            profile: AWS profile name to use
            region: AWS region to use
            session: Pre-built boto3 session (takes precedence over profile/region)
            connect_timeout: Connection timeout in seconds
            read_timeout: Read timeout in seconds
        """
        self.profile = profile
        self.region = region
        self._session = session
        self._clients: Dict[str, Any] = {}
        self._credentials: Optional[AWSCredentials] = None

        # Backoff is handled by RetryStrategy, so botocore makes a single attempt
        self._boto_config = Config(
            retries={
                'mode': 'standard',
                'max_attempts': 1
            },
            connect_timeout=connect_timeout,
            read_timeout=read_timeout
        )

    @property
    def session(self) -> boto3.Session:
        """Get or create boto3 session."""
        if self._session is None:
            kwargs = {}
            if self.profile:
                kwargs['profile_name'] = self.profile
            if self.region:
                kwargs['region_name'] = self.region

            self._session = boto3.Session(**kwargs)
            logger.info(f"Created AWS session - Region: {self._session.region_name}, "
                        f"Profile: {self.profile or 'default'}")

        return self._session

    def get_client(self, service_name: str):
        """Get a cached boto3 client for a service.

        Args:
            service_name: AWS service name (e.g., 'ecs', 'iam')

        Returns:
            Boto3 client for the service
        """
        if service_name not in self._clients:
            self._clients[service_name] = self.session.client(service_name, config=self._boto_config)
            logger.debug(f"Created {service_name} client")

        return self._clients[service_name]

    def validate_credentials(self) -> AWSCredentials:
        """Resolve the caller identity behind the active credentials.

        Returns:
            AWSCredentials with account and user information

        Raises:
            ReconcileError: If credentials are missing, invalid or the call fails
        """
        if self._credentials is not None:
            return self._credentials

        try:
            identity = self.get_client('sts').get_caller_identity()
        except (BotoCoreError, ClientError) as e:
            raise error_handler.handle_exception(
                e,
                ErrorContext(operation='validate_credentials', aws_service='sts',
                             aws_operation='GetCallerIdentity')
            )

        self._credentials = AWSCredentials(
            account_id=identity['Account'],
            user_arn=identity['Arn'],
            user_id=identity['UserId'],
            region=self.get_region(),
            profile=self.profile
        )

        logger.info(f"AWS credentials validated - Account: {self._credentials.account_id}, "
                    f"User: {self._credentials.user_arn}, Region: {self._credentials.region}")

        return self._credentials

    def get_region(self) -> Optional[str]:
        """Get the AWS region of the active session."""
        return self.session.region_name
