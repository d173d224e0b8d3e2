"""Build the boto3 session and the SSM/KMS clients the reconciler works with."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import boto3
import botocore.session
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from encryptedssm import __version__
from encryptedssm.errors import ConfigurationError, sanitize_error
from encryptedssm.tags import IgnoreConfig

if TYPE_CHECKING:
    from mypy_boto3_kms import KMSClient
    from mypy_boto3_ssm import SSMClient

    from encryptedssm.config import ProviderConfig

logger = logging.getLogger(__name__)

DEFAULT_SESSION_NAME = "encryptedssm"


@dataclass
class AWSClients:
    """The capabilities the reconciler needs, passed to it explicitly."""

    ssm: SSMClient
    kms: KMSClient
    ignore_tags: IgnoreConfig | None = None
    account_id: str | None = None


def validate_region(region: str) -> None:
    """Raise :class:`ConfigurationError` unless *region* is known to botocore for SSM."""
    session = boto3.Session()
    for partition in session.get_available_partitions():
        if region in session.get_available_regions("ssm", partition_name=partition):
            return
    raise ConfigurationError(f"Invalid AWS Region: {region}")


def validate_account_id(
    account_id: str | None, allowed: list[str], forbidden: list[str]
) -> None:
    if account_id is None:
        if allowed or forbidden:
            raise ConfigurationError(
                "AWS account ID could not be determined, cannot check allowed/forbidden accounts"
            )
        return
    if forbidden and account_id in forbidden:
        raise ConfigurationError(f"Forbidden account ID ({account_id})")
    if allowed and account_id not in allowed:
        raise ConfigurationError(f"Account ID not allowed ({account_id})")


def _base_session(config: ProviderConfig) -> boto3.Session:
    core = None
    if config.shared_credentials_file:
        core = botocore.session.Session()
        core.set_config_variable("credentials_file", config.shared_credentials_file)
    return boto3.Session(
        aws_access_key_id=config.access_key,
        aws_secret_access_key=config.secret_key,
        aws_session_token=config.token,
        profile_name=config.profile,
        region_name=config.region,
        botocore_session=core,
    )


def _assume_role(session: boto3.Session, config: ProviderConfig) -> boto3.Session:
    role = config.assume_role
    assert role is not None and role.role_arn
    kwargs: dict[str, Any] = {
        "RoleArn": role.role_arn,
        "RoleSessionName": role.session_name or DEFAULT_SESSION_NAME,
    }
    if role.external_id:
        kwargs["ExternalId"] = role.external_id
    if role.duration_seconds:
        kwargs["DurationSeconds"] = role.duration_seconds
    if role.policy:
        kwargs["Policy"] = role.policy
    if role.policy_arns:
        kwargs["PolicyArns"] = [{"arn": arn} for arn in role.policy_arns]
    if role.tags:
        kwargs["Tags"] = [{"Key": k, "Value": v} for k, v in sorted(role.tags.items())]
    if role.transitive_tag_keys:
        kwargs["TransitiveTagKeys"] = role.transitive_tag_keys

    logger.info(
        "assume_role configuration set: (ARN: %r, SessionID: %r, ExternalID: %r)",
        role.role_arn,
        kwargs["RoleSessionName"],
        role.external_id,
    )
    sts = session.client("sts", endpoint_url=config.endpoints.sts)
    creds = sts.assume_role(**kwargs)["Credentials"]
    return boto3.Session(
        aws_access_key_id=creds["AccessKeyId"],
        aws_secret_access_key=creds["SecretAccessKey"],
        aws_session_token=creds["SessionToken"],
        region_name=config.region,
    )


def make_clients(config: ProviderConfig) -> AWSClients:
    """Create the SSM and KMS clients described by *config*.

    Raises:
        ConfigurationError: Invalid region, credentials that cannot be used,
            a failed role assumption, or a disallowed account.
    """
    if not config.skip_region_validation:
        validate_region(config.region)

    retry_config = Config(
        retries={"max_attempts": config.max_retries, "mode": "adaptive"},
        user_agent_extra=f"encryptedssm/{__version__}",
    )

    try:
        session = _base_session(config)
        if config.assume_role and config.assume_role.role_arn:
            session = _assume_role(session, config)

        account_id = None
        if not (config.skip_credentials_validation and config.skip_requesting_account_id):
            sts = session.client("sts", endpoint_url=config.endpoints.sts, config=retry_config)
            account_id = sts.get_caller_identity()["Account"]

        ssm = session.client("ssm", endpoint_url=config.endpoints.ssm, config=retry_config)
        kms = session.client("kms", endpoint_url=config.endpoints.kms, config=retry_config)
    except (ClientError, BotoCoreError) as exc:
        sanitized = sanitize_error(str(exc))
        raise ConfigurationError(f"Error configuring AWS session: {sanitized}") from exc

    if account_id is None:
        logger.warning("AWS account ID not found for provider")
    validate_account_id(account_id, config.allowed_account_ids, config.forbidden_account_ids)

    return AWSClients(
        ssm=ssm,  # type: ignore[arg-type]
        kms=kms,  # type: ignore[arg-type]
        ignore_tags=config.ignore_tags.to_ignore_config(),
        account_id=account_id,
    )
