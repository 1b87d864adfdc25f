"""Error taxonomy for reconciliation runs and classification of provider errors."""

from typing import Optional, Dict, Any, List
from enum import Enum
from dataclasses import dataclass, asdict
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    PartialCredentialsError,
    ReadTimeoutError,
)


class ErrorCategory(Enum):
    """Categories of errors that can occur during a reconciliation run."""
    CONFIG = "config"
    TRANSIENT = "transient"
    PERMISSION = "permission"
    CONFLICT = "conflict"
    PROVIDER = "provider"
    DEPENDENCY = "dependency"
    CREDENTIAL = "credential"


@dataclass
class ErrorContext:
    """Context information for an error."""
    resource_id: Optional[str] = None
    resource_type: Optional[str] = None
    operation: Optional[str] = None
    aws_service: Optional[str] = None
    aws_operation: Optional[str] = None
    error_code: Optional[str] = None
    request_id: Optional[str] = None


class ReconcileError(Exception):
    """Base exception for reconciliation errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.PROVIDER,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        suggestions: Optional[List[str]] = None
    ):
        """Initialize reconciliation error.

        Args:
            message: Human-readable error message
            category: Error category
            context: Additional context about the error
            cause: Original exception that caused this error
            suggestions: List of suggested fixes
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.context = context or ErrorContext()
        self.cause = cause
        self.suggestions = suggestions or []

    @property
    def is_retryable(self) -> bool:
        """Whether retrying the same call could succeed."""
        return self.category == ErrorCategory.TRANSIENT

    def to_user_message(self) -> str:
        """Convert error to a multi-line message for display.

        Returns:
            Formatted error message
        """
        lines = [f"{self.category.value.upper()}: {self.message}"]

        if self.context.resource_id:
            lines.append(f"   Resource: {self.context.resource_id}")
        if self.context.operation:
            lines.append(f"   Operation: {self.context.operation}")
        if self.cause:
            lines.append(f"   Cause: {self.cause}")

        if self.suggestions:
            lines.append("")
            lines.append("Suggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            'message': self.message,
            'category': self.category.value,
            'context': asdict(self.context),
            'cause': str(self.cause) if self.cause else None,
            'suggestions': self.suggestions,
        }


class ConfigurationError(ReconcileError):
    """Malformed, inconsistent or cyclic plan."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, category=ErrorCategory.CONFIG, **kwargs)


class TransientError(ReconcileError):
    """Timeout, throttling or server-side fault; safe to retry."""

    def __init__(self, message: str, throttled: bool = False, **kwargs):
        super().__init__(message, category=ErrorCategory.TRANSIENT, **kwargs)
        self.throttled = throttled


class PermissionDeniedError(ReconcileError):
    """Authorization denial from the control plane."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, category=ErrorCategory.PERMISSION, **kwargs)


class CredentialError(ReconcileError):
    """Missing, incomplete or rejected credentials."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, category=ErrorCategory.CREDENTIAL, **kwargs)


class ConflictError(ReconcileError):
    """Create rejected because the resource already exists.

    Raised when something else created the resource between the probe and the
    create. The next run probes it like any other existing resource.
    """

    def __init__(self, message: str, **kwargs):
        super().__init__(message, category=ErrorCategory.CONFLICT, **kwargs)


class ProviderError(ReconcileError):
    """Any other fault reported by the control plane."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, category=ErrorCategory.PROVIDER, **kwargs)


class DependencyError(ReconcileError):
    """A declaration could not run because a dependency is unavailable."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, category=ErrorCategory.DEPENDENCY, **kwargs)


class ErrorHandler:
    """Translates boto3/botocore exceptions into the reconciliation taxonomy."""

    THROTTLING_ERROR_CODES = {
        'Throttling',
        'ThrottlingException',
        'ThrottledException',
        'RequestThrottled',
        'RequestThrottledException',
        'TooManyRequestsException',
        'RequestLimitExceeded',
        'SlowDown',
    }

    TRANSIENT_ERROR_CODES = THROTTLING_ERROR_CODES | {
        'RequestTimeout',
        'RequestTimeoutException',
        'ServiceUnavailable',
        'ServiceUnavailableException',
        'InternalError',
        'InternalFailure',
        'InternalServerError',
        'ServerException',
        'ServiceException',
    }

    PERMISSION_ERROR_CODES = {
        'AccessDenied',
        'AccessDeniedException',
        'UnauthorizedOperation',
        'UnrecognizedClientException',
    }

    CREDENTIAL_ERROR_CODES = {
        'InvalidClientTokenId',
        'SignatureDoesNotMatch',
        'ExpiredToken',
        'ExpiredTokenException',
    }

    # Per-service codes for a create that lost a race with another writer
    CONFLICT_ERROR_CODES = {
        'RepositoryAlreadyExistsException',
        'EntityAlreadyExists',
        'ResourceAlreadyExistsException',
        'InvalidGroup.Duplicate',
    }

    SUGGESTIONS = {
        ErrorCategory.CREDENTIAL: [
            'Configure AWS credentials using: aws configure',
            'Verify credentials using: aws sts get-caller-identity',
            'Pass --profile to select a named profile',
        ],
        ErrorCategory.CONFLICT: [
            'Re-run the plan; the existing resource will be probed and compared',
        ],
        ErrorCategory.PERMISSION: [
            'Check the IAM policies attached to your user or role',
            'Verify you are operating in the intended region',
        ],
        ErrorCategory.TRANSIENT: [
            'Check your network connectivity',
            'Re-run the plan; existing resources are skipped',
        ],
        ErrorCategory.PROVIDER: [
            'Review the provider message for the rejected parameter',
            'Check service quotas if a limit was exceeded',
        ],
    }

    def handle_exception(
        self,
        error: Exception,
        context: Optional[ErrorContext] = None
    ) -> ReconcileError:
        """Convert an exception into a categorized ReconcileError.

        Args:
            error: The exception to handle
            context: Additional context about where the error occurred

        Returns:
            ReconcileError subclass matching the error category
        """
        context = context or ErrorContext()

        if isinstance(error, ReconcileError):
            return error

        if isinstance(error, ClientError):
            return self._handle_client_error(error, context)

        if isinstance(error, (NoCredentialsError, PartialCredentialsError)):
            return CredentialError(
                f'AWS credentials unavailable: {error}',
                context=context,
                cause=error,
                suggestions=self.SUGGESTIONS[ErrorCategory.CREDENTIAL],
            )

        if isinstance(error, (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError,
                              ConnectionError, TimeoutError)):
            return TransientError(
                f'Network error: {error}',
                context=context,
                cause=error,
                suggestions=self.SUGGESTIONS[ErrorCategory.TRANSIENT],
            )

        if isinstance(error, BotoCoreError):
            return ProviderError(
                f'AWS SDK error: {error}',
                context=context,
                cause=error,
            )

        return ProviderError(
            f'Unexpected error: {error}',
            context=context,
            cause=error,
            suggestions=['Check the run log for more details'],
        )

    def _handle_client_error(self, error: ClientError, context: ErrorContext) -> ReconcileError:
        """Classify a botocore ClientError by its error code and HTTP status."""
        error_code = error.response.get('Error', {}).get('Code', 'Unknown')
        error_message = error.response.get('Error', {}).get('Message', str(error))
        metadata = error.response.get('ResponseMetadata', {})
        status_code = metadata.get('HTTPStatusCode', 0)

        context.error_code = error_code
        context.request_id = metadata.get('RequestId')
        context.aws_operation = context.aws_operation or error.operation_name

        # Provider message is kept verbatim for the report
        message = f"{error_code}: {error_message}"

        if error_code in self.CREDENTIAL_ERROR_CODES:
            return CredentialError(
                message, context=context, cause=error,
                suggestions=self.SUGGESTIONS[ErrorCategory.CREDENTIAL],
            )

        if error_code in self.PERMISSION_ERROR_CODES or status_code == 403:
            return PermissionDeniedError(
                message, context=context, cause=error,
                suggestions=self.SUGGESTIONS[ErrorCategory.PERMISSION],
            )

        if error_code in self.CONFLICT_ERROR_CODES:
            return ConflictError(
                message, context=context, cause=error,
                suggestions=self.SUGGESTIONS[ErrorCategory.CONFLICT],
            )

        if error_code in self.TRANSIENT_ERROR_CODES or status_code >= 500 or status_code == 429:
            return TransientError(
                message, context=context, cause=error,
                throttled=error_code in self.THROTTLING_ERROR_CODES or status_code == 429,
                suggestions=self.SUGGESTIONS[ErrorCategory.TRANSIENT],
            )

        return ProviderError(
            message, context=context, cause=error,
            suggestions=self.SUGGESTIONS[ErrorCategory.PROVIDER],
        )


# Global error handler instance
error_handler = ErrorHandler()
