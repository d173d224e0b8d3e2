"""Shared pytest fixtures for encryptedssm tests."""

from __future__ import annotations

import base64
import os
from unittest.mock import MagicMock

import boto3
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws

from encryptedssm.clients import AWSClients
from encryptedssm.engine import ParameterReconciler
from encryptedssm.models import ParameterRecord

ACCOUNT_ID = "123456789012"


@pytest.fixture()
def aws_credentials():
    """Ensure moto doesn't try to use real AWS credentials."""
    os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
    os.environ.setdefault("AWS_SECURITY_TOKEN", "testing")
    os.environ.setdefault("AWS_SESSION_TOKEN", "testing")


@pytest.fixture()
def aws(aws_credentials):
    """moto-mocked SSM and KMS clients bundled the way the reconciler expects."""
    with mock_aws():
        yield AWSClients(
            ssm=boto3.client("ssm", region_name="us-east-1"),
            kms=boto3.client("kms", region_name="us-east-1"),
        )


@pytest.fixture()
def kms_key(aws) -> str:
    return aws.kms.create_key(Description="encryptedssm tests")["KeyMetadata"]["KeyId"]


@pytest.fixture()
def encrypt(aws, kms_key):
    """Encrypt a plaintext with the test key and return base64 text, as a user would."""

    def _encrypt(plaintext: str) -> str:
        blob = aws.kms.encrypt(KeyId=kms_key, Plaintext=plaintext.encode("utf-8"))
        return base64.b64encode(blob["CiphertextBlob"]).decode("ascii")

    return _encrypt


@pytest.fixture()
def make_record(kms_key, encrypt):
    def _make(name: str = "/app/prod/db/password", plaintext: str = "s3cret", **kwargs) -> ParameterRecord:
        kwargs.setdefault("encrypted_value", encrypt(plaintext))
        return ParameterRecord(name=name, type="SecureString", encryption_key=kms_key, **kwargs)

    return _make


@pytest.fixture()
def reconciler(aws) -> ParameterReconciler:
    return ParameterReconciler(aws, validation_timeout=0.0, sleep=lambda _: None)


@pytest.fixture()
def client_error():
    """Build a botocore ClientError the way the SDK raises it."""

    def _client_error(code: str, message: str = "", operation: str = "PutParameter") -> ClientError:
        return ClientError({"Error": {"Code": code, "Message": message}}, operation)

    return _client_error


@pytest.fixture()
def mock_clients():
    """MagicMock SSM/KMS clients for failure modes moto cannot produce."""
    ssm = MagicMock(name="ssm")
    kms = MagicMock(name="kms")
    kms.decrypt.return_value = {"Plaintext": b"s3cret"}
    ssm.put_parameter.return_value = {"Version": 1, "Tier": "Standard"}
    ssm.describe_parameters.return_value = {
        "Parameters": [{"Name": "/app/secret", "KeyId": "alias/app", "Tier": "Standard"}]
    }
    ssm.list_tags_for_resource.return_value = {"TagList": []}
    ssm.get_parameter.return_value = get_response("/app/secret", "s3cret")
    return AWSClients(ssm=ssm, kms=kms)


def get_response(name: str, value: str, version: int = 1) -> dict:
    return {
        "Parameter": {
            "Name": name,
            "Type": "SecureString",
            "Value": value,
            "Version": version,
            "ARN": f"arn:aws:ssm:us-east-1:{ACCOUNT_ID}:parameter{name}",
            "DataType": "text",
        }
    }


# base64 of b"ciphertext-blob"; decrypted by the mock KMS client to b"s3cret".
MOCK_CIPHERTEXT = base64.b64encode(b"ciphertext-blob").decode("ascii")
