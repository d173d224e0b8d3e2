"""
Pydantic configuration models for the AWS provider block.

Validates provider settings when a document is loaded instead of passing bad
values to boto3.
"""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from encryptedssm.tags import IgnoreConfig, TagSet

DEFAULT_MAX_RETRIES = 25


class AssumeRoleConfig(BaseModel):
    """IAM role to assume before making SSM and KMS calls."""

    model_config = ConfigDict(extra="forbid")

    role_arn: str | None = Field(default=None, description="ARN of the IAM role to assume")
    session_name: str | None = Field(default=None, description="Assumed role session name")
    external_id: str | None = None
    duration_seconds: int | None = Field(default=None, ge=900, le=43200)
    policy: str | None = Field(default=None, description="Inline session policy JSON")
    policy_arns: list[str] = Field(default_factory=list)
    tags: dict[str, str] = Field(default_factory=dict)
    transitive_tag_keys: list[str] = Field(default_factory=list)


class EndpointsConfig(BaseModel):
    """Service endpoint URL overrides."""

    model_config = ConfigDict(extra="forbid")

    ssm: str | None = None
    kms: str | None = None
    sts: str | None = None


class IgnoreTagsConfig(BaseModel):
    """Tag keys and key prefixes to hide from observed state."""

    model_config = ConfigDict(extra="forbid")

    keys: list[str] = Field(default_factory=list)
    key_prefixes: list[str] = Field(default_factory=list)

    def to_ignore_config(self) -> IgnoreConfig | None:
        if not self.keys and not self.key_prefixes:
            return None
        return IgnoreConfig(
            keys=TagSet.from_keys(self.keys),
            key_prefixes=TagSet.from_keys(self.key_prefixes),
        )


class ProviderConfig(BaseModel):
    """Configuration for the AWS session used by the reconciler.

    Credentials are resolved in order:
    1. Explicit values in the document (or CLI overrides).
    2. ``profile`` / ``shared_credentials_file``.
    3. Otherwise boto3's own credential chain (environment, instance metadata, ...).

    ``region`` falls back to ``AWS_REGION`` then ``AWS_DEFAULT_REGION``.
    """

    model_config = ConfigDict(extra="forbid")

    region: str = Field(description="AWS region (e.g. 'us-east-1')")
    access_key: str | None = None
    secret_key: str | None = None
    token: str | None = Field(default=None, description="Session token for temporary credentials")
    profile: str | None = None
    shared_credentials_file: str | None = None
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    assume_role: AssumeRoleConfig | None = None
    allowed_account_ids: list[str] = Field(default_factory=list)
    forbidden_account_ids: list[str] = Field(default_factory=list)
    endpoints: EndpointsConfig = Field(default_factory=EndpointsConfig)
    ignore_tags: IgnoreTagsConfig = Field(default_factory=IgnoreTagsConfig)
    skip_region_validation: bool = False
    skip_credentials_validation: bool = False
    skip_requesting_account_id: bool = False

    @model_validator(mode="before")
    @classmethod
    def resolve_region_from_env(cls, values: Any) -> Any:
        """Fall back to the environment when no region is given."""
        if isinstance(values, dict) and not values.get("region"):
            region = os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION")
            if region:
                values = {**values, "region": region}
        return values

    @model_validator(mode="after")
    def check_account_lists(self) -> ProviderConfig:
        if self.allowed_account_ids and self.forbidden_account_ids:
            raise ValueError(
                "allowed_account_ids and forbidden_account_ids are mutually exclusive"
            )
        if (self.access_key is None) != (self.secret_key is None):
            raise ValueError("access_key and secret_key must be set together")
        return self


__all__ = [
    "AssumeRoleConfig",
    "EndpointsConfig",
    "IgnoreTagsConfig",
    "ProviderConfig",
]
