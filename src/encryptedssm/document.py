"""Load and validate parameter documents.

Input is validated at the boundary: file size is capped, YAML is parsed with
``safe_load`` and every declaration goes through pydantic before the
reconciler sees it.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from encryptedssm.config import ProviderConfig
from encryptedssm.errors import DocumentError
from encryptedssm.models import TIER_STANDARD, ParameterRecord

logger = logging.getLogger(__name__)

MAX_DOCUMENT_SIZE_BYTES = 1024 * 1024
_ADDRESS_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")


class ParameterSpec(BaseModel):
    """One declared parameter."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=2048)
    type: Literal["SecureString"]
    encrypted_value: str = Field(min_length=1)
    encryption_key: str = Field(min_length=1)
    description: str = ""
    tier: Literal["Standard", "Advanced"] = TIER_STANDARD
    data_type: Literal["text", "aws:ec2:image"] | None = None
    overwrite: bool | None = None
    allowed_pattern: str = ""
    tags: dict[str, str] = Field(default_factory=dict)

    def to_record(self) -> ParameterRecord:
        return ParameterRecord(
            name=self.name,
            type=self.type,
            encrypted_value=self.encrypted_value,
            encryption_key=self.encryption_key,
            description=self.description,
            tier=self.tier,
            data_type=self.data_type,
            overwrite=self.overwrite,
            allowed_pattern=self.allowed_pattern,
            tags=dict(self.tags),
        )


class StackDocument(BaseModel):
    """A provider block plus parameter declarations keyed by address."""

    model_config = ConfigDict(extra="forbid")

    provider: ProviderConfig
    parameters: dict[str, ParameterSpec] = Field(default_factory=dict)

    @field_validator("parameters")
    @classmethod
    def check_addresses(cls, value: dict[str, ParameterSpec]) -> dict[str, ParameterSpec]:
        for address in value:
            if not _ADDRESS_RE.match(address):
                raise ValueError(
                    f"Invalid address {address!r}: must start with a letter or '_' "
                    "and contain only letters, digits, '_' or '-'"
                )
        names: dict[str, str] = {}
        for address, spec in value.items():
            if spec.name in names:
                raise ValueError(
                    f"Parameter {spec.name!r} declared twice ({names[spec.name]}, {address})"
                )
            names[spec.name] = address
        return value

    def records(self) -> dict[str, ParameterRecord]:
        return {address: spec.to_record() for address, spec in self.parameters.items()}


def parse_document(
    raw: Any, provider_overrides: dict[str, Any] | None = None
) -> StackDocument:
    """Validate an already-parsed document, applying *provider_overrides* first."""
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise DocumentError("Document must be a mapping with 'provider' and 'parameters' keys")
    provider = raw.get("provider") or {}
    if not isinstance(provider, dict):
        raise DocumentError("'provider' must be a mapping")
    overrides = {k: v for k, v in (provider_overrides or {}).items() if v is not None}
    raw = {**raw, "provider": {**provider, **overrides}}
    try:
        return StackDocument.model_validate(raw)
    except ValidationError as exc:
        raise DocumentError(f"Invalid document: {exc}") from exc


def load_document(
    path: str | Path, provider_overrides: dict[str, Any] | None = None
) -> StackDocument:
    """Load a YAML document from *path*.

    Raises:
        DocumentError: Missing/oversized file, invalid YAML, or failed validation.
    """
    path = Path(path)
    try:
        size = path.stat().st_size
    except OSError as exc:
        raise DocumentError(f"Cannot read document {path}: {exc}") from exc
    if size > MAX_DOCUMENT_SIZE_BYTES:
        raise DocumentError(
            f"Document {path} is {size} bytes, larger than the {MAX_DOCUMENT_SIZE_BYTES} byte limit"
        )
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise DocumentError(f"Cannot parse document {path}: {exc}") from exc

    logger.debug("Loaded document %s", path)
    return parse_document(raw, provider_overrides)
