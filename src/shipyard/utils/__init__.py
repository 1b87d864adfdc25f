"""Utility modules for logging, error handling, retries and AWS sessions."""

from shipyard.utils.aws_client import AWSClientManager, AWSCredentials
from shipyard.utils.retry import RetryStrategy
from shipyard.utils.errors import (
    ErrorCategory,
    ErrorContext,
    ReconcileError,
    ConfigurationError,
    TransientError,
    PermissionDeniedError,
    CredentialError,
    ConflictError,
    ProviderError,
    DependencyError,
    ErrorHandler,
    error_handler
)
from shipyard.utils.logging import get_logger, setup_logging, LogContext

__all__ = [
    # AWS Client
    'AWSClientManager',
    'AWSCredentials',

    # Retry
    'RetryStrategy',

    # Errors
    'ErrorCategory',
    'ErrorContext',
    'ReconcileError',
    'ConfigurationError',
    'TransientError',
    'PermissionDeniedError',
    'CredentialError',
    'ConflictError',
    'ProviderError',
    'DependencyError',
    'ErrorHandler',
    'error_handler',

    # Logging
    'get_logger',
    'setup_logging',
    'LogContext',
]
