"""Tests for encryptedssm.clients."""

from __future__ import annotations

import boto3
import pytest
from moto import mock_aws

from encryptedssm.clients import make_clients, validate_account_id, validate_region
from encryptedssm.config import ProviderConfig
from encryptedssm.errors import ConfigurationError

from conftest import ACCOUNT_ID


@pytest.fixture()
def mocked_aws(aws_credentials):
    with mock_aws():
        yield


class TestValidateRegion:
    def test_known_region(self):
        validate_region("us-east-1")

    def test_other_partition(self):
        validate_region("cn-north-1")

    def test_unknown_region(self):
        with pytest.raises(ConfigurationError, match="Invalid AWS Region: mars-north-1"):
            validate_region("mars-north-1")


class TestValidateAccountId:
    def test_no_lists(self):
        validate_account_id("111111111111", [], [])
        validate_account_id(None, [], [])

    def test_allowed(self):
        validate_account_id("111111111111", ["111111111111"], [])
        with pytest.raises(ConfigurationError, match="not allowed"):
            validate_account_id("222222222222", ["111111111111"], [])

    def test_forbidden(self):
        validate_account_id("111111111111", [], ["222222222222"])
        with pytest.raises(ConfigurationError, match="Forbidden"):
            validate_account_id("222222222222", [], ["222222222222"])

    def test_unknown_account_with_lists(self):
        with pytest.raises(ConfigurationError, match="could not be determined"):
            validate_account_id(None, ["111111111111"], [])


class TestMakeClients:
    def test_builds_clients_and_account(self, mocked_aws):
        clients = make_clients(ProviderConfig(region="us-east-1"))
        assert clients.account_id == ACCOUNT_ID
        assert clients.ssm.meta.region_name == "us-east-1"
        assert clients.kms.meta.region_name == "us-east-1"
        assert clients.ignore_tags is None

    def test_retry_settings(self, mocked_aws):
        clients = make_clients(ProviderConfig(region="us-east-1", max_retries=7))
        retries = clients.ssm.meta.config.retries
        assert retries["max_attempts"] == 7
        assert retries["mode"] == "adaptive"
        assert "encryptedssm/" in clients.ssm.meta.config.user_agent_extra

    def test_ignore_tags_passed_through(self, mocked_aws):
        clients = make_clients(
            ProviderConfig(region="us-east-1", ignore_tags={"keys": ["owner"]})
        )
        assert list(clients.ignore_tags.keys) == ["owner"]

    def test_endpoint_override(self, mocked_aws):
        clients = make_clients(
            ProviderConfig(
                region="us-east-1",
                skip_credentials_validation=True,
                skip_requesting_account_id=True,
                endpoints={"ssm": "http://localhost:4566"},
            )
        )
        assert clients.ssm.meta.endpoint_url == "http://localhost:4566"
        assert clients.account_id is None

    def test_invalid_region(self, mocked_aws):
        with pytest.raises(ConfigurationError, match="Invalid AWS Region"):
            make_clients(ProviderConfig(region="mars-north-1"))

    def test_skip_region_validation(self, mocked_aws):
        clients = make_clients(
            ProviderConfig(
                region="mars-north-1",
                skip_region_validation=True,
                skip_credentials_validation=True,
                skip_requesting_account_id=True,
            )
        )
        assert clients.ssm.meta.region_name == "mars-north-1"

    def test_forbidden_account(self, mocked_aws):
        with pytest.raises(ConfigurationError, match="Forbidden account ID"):
            make_clients(ProviderConfig(region="us-east-1", forbidden_account_ids=[ACCOUNT_ID]))

    def test_allowed_account(self, mocked_aws):
        clients = make_clients(ProviderConfig(region="us-east-1", allowed_account_ids=[ACCOUNT_ID]))
        assert clients.account_id == ACCOUNT_ID

    def test_missing_profile(self, mocked_aws):
        with pytest.raises(ConfigurationError, match="Error configuring AWS session"):
            make_clients(ProviderConfig(region="us-east-1", profile="does-not-exist"))

    def test_assume_role(self, mocked_aws):
        iam = boto3.client("iam", region_name="us-east-1")
        role_arn = iam.create_role(
            RoleName="reconciler",
            AssumeRolePolicyDocument="{}",
        )["Role"]["Arn"]

        clients = make_clients(
            ProviderConfig(
                region="us-east-1",
                assume_role={"role_arn": role_arn, "session_name": "ci", "duration_seconds": 900},
            )
        )
        assert clients.account_id == ACCOUNT_ID

    def test_assume_role_failure(self, mocked_aws):
        with pytest.raises(ConfigurationError, match="Error configuring AWS session"):
            make_clients(
                ProviderConfig(
                    region="us-east-1",
                    assume_role={"role_arn": "not-an-arn"},
                )
            )
