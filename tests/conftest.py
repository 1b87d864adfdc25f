"""Shared test fixtures."""

from __future__ import annotations

import logging
from typing import Any, List

import boto3
import pytest

from shipyard.control_plane.memory import InMemoryControlPlane
from shipyard.reconciler.executor import PlanExecutor
from shipyard.state.models import ResourceDeclaration, ResourceKind
from shipyard.utils.aws_client import AWSClientManager
from shipyard.utils.logging import ConsoleFormatter, JSONFormatter
from shipyard.utils.retry import RetryStrategy


def _declare(kind: ResourceKind, name: str, depends_on: tuple = (), **config: Any) -> ResourceDeclaration:
    """Build a declaration with keyword config."""
    return ResourceDeclaration(
        kind=kind,
        name=name,
        depends_on=frozenset(depends_on),
        desired_config=config,
    )


@pytest.fixture
def declare():
    """Factory for declarations: ``declare(kind, name, depends_on, **config)``."""
    return _declare


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Undo handler changes made by setup_logging during a test."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if isinstance(handler.formatter, (ConsoleFormatter, JSONFormatter)):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def retry_strategy(sleeps: List[float]) -> RetryStrategy:
    return RetryStrategy(max_attempts=3, base_delay=1.0, max_delay=30.0, jitter=False, sleep=sleeps.append)


@pytest.fixture
def control_plane() -> InMemoryControlPlane:
    return InMemoryControlPlane()


@pytest.fixture
def executor(control_plane: InMemoryControlPlane, retry_strategy: RetryStrategy) -> PlanExecutor:
    return PlanExecutor(control_plane, retry_strategy=retry_strategy)


@pytest.fixture
def aws_session() -> boto3.Session:
    return boto3.Session(
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def client_manager(aws_session: boto3.Session) -> AWSClientManager:
    return AWSClientManager(session=aws_session)
