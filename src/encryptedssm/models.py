"""Data models for encryptedssm."""

from __future__ import annotations

from dataclasses import MISSING, asdict, dataclass, field, fields
from typing import Any, Literal

PARAMETER_TYPES = ("String", "SecureString", "StringList")
ParameterType = Literal["String", "SecureString", "StringList"]

TIER_STANDARD = "Standard"
TIER_ADVANCED = "Advanced"
TIERS = (TIER_STANDARD, TIER_ADVANCED)
Tier = Literal["Standard", "Advanced"]

DATA_TYPE_TEXT = "text"
DATA_TYPE_EC2_IMAGE = "aws:ec2:image"
DATA_TYPES = (DATA_TYPE_TEXT, DATA_TYPE_EC2_IMAGE)
DataType = Literal["text", "aws:ec2:image"]


@dataclass
class ParameterRecord:
    """Declared or observed state of one encrypted SSM parameter."""

    name: str                       # full SSM path, e.g. /app/prod/db/password
    type: ParameterType             # declarations only accept "SecureString"
    encrypted_value: str            # base64 KMS ciphertext (or the stale sentinel)
    encryption_key: str             # KMS key id/alias/ARN that produced encrypted_value
    description: str = ""
    tier: str = TIER_STANDARD
    data_type: str | None = None    # optional + computed
    overwrite: bool | None = None   # unset / True / False
    allowed_pattern: str = ""
    tags: dict[str, str] = field(default_factory=dict)
    # computed, read-only
    arn: str = ""
    version: int = 0
    key_id: str = ""

    def __post_init__(self) -> None:
        if self.type not in PARAMETER_TYPES:
            raise ValueError(
                f"Invalid parameter type {self.type!r}; "
                f"expected one of {PARAMETER_TYPES}"
            )

    @property
    def is_advanced(self) -> bool:
        return self.tier == TIER_ADVANCED

    @property
    def is_ec2_image(self) -> bool:
        return self.data_type == DATA_TYPE_EC2_IMAGE

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ParameterRecord:
        """Build a record from a mapping, ignoring keys this version does not know."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


def zero_value(field_name: str) -> Any:
    """Return the value a field holds when nothing has been declared for it."""
    for f in fields(ParameterRecord):
        if f.name != field_name:
            continue
        if f.default_factory is not MISSING:
            return f.default_factory()
        if f.default is not MISSING:
            return f.default
        return "" if field_name != "version" else 0
    raise KeyError(field_name)

