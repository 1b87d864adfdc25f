"""Unit tests for the AWS client manager."""

from __future__ import annotations

import pytest
from botocore.stub import Stubber

from shipyard.utils.aws_client import AWSClientManager
from shipyard.utils.errors import CredentialError, PermissionDeniedError

IDENTITY = {
    "UserId": "AIDAEXAMPLEUSERID",
    "Account": "123456789012",
    "Arn": "arn:aws:iam::123456789012:user/deployer",
}


class TestAWSClientManager:
    def test_clients_are_cached(self, client_manager) -> None:
        assert client_manager.get_client("ecs") is client_manager.get_client("ecs")
        assert client_manager.get_client("ecs") is not client_manager.get_client("ecr")

    def test_region_comes_from_session(self, client_manager) -> None:
        assert client_manager.get_region() == "us-east-1"
        assert client_manager.get_client("ecs").meta.region_name == "us-east-1"

    def test_sdk_retries_are_disabled(self, client_manager) -> None:
        config = client_manager.get_client("ecs").meta.config

        assert config.retries["max_attempts"] == 1

    def test_validate_credentials(self, client_manager) -> None:
        sts = client_manager.get_client("sts")

        with Stubber(sts) as stubber:
            stubber.add_response("get_caller_identity", IDENTITY, {})
            credentials = client_manager.validate_credentials()
            again = client_manager.validate_credentials()

        assert credentials.account_id == "123456789012"
        assert credentials.user_arn == IDENTITY["Arn"]
        assert credentials.region == "us-east-1"
        assert again is credentials

    def test_invalid_token(self, client_manager) -> None:
        sts = client_manager.get_client("sts")

        with Stubber(sts) as stubber:
            stubber.add_client_error(
                "get_caller_identity",
                service_error_code="InvalidClientTokenId",
                service_message="The security token included in the request is invalid.",
                http_status_code=403,
            )
            with pytest.raises(CredentialError) as exc_info:
                client_manager.validate_credentials()

        assert exc_info.value.context.aws_operation == "GetCallerIdentity"
        assert exc_info.value.suggestions

    def test_access_denied(self, client_manager) -> None:
        sts = client_manager.get_client("sts")

        with Stubber(sts) as stubber:
            stubber.add_client_error(
                "get_caller_identity",
                service_error_code="AccessDenied",
                http_status_code=403,
            )
            with pytest.raises(PermissionDeniedError):
                client_manager.validate_credentials()

    def test_session_is_built_from_profile_and_region(self, monkeypatch) -> None:
        created = {}

        class FakeSession:
            def __init__(self, **kwargs):
                created.update(kwargs)
                self.region_name = kwargs.get("region_name")

        monkeypatch.setattr("shipyard.utils.aws_client.boto3.Session", FakeSession)

        manager = AWSClientManager(profile="deploy", region="eu-west-1")

        assert manager.session.region_name == "eu-west-1"
        assert created == {"profile_name": "deploy", "region_name": "eu-west-1"}
