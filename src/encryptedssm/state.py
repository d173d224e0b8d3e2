"""Per-operation resource state and the on-disk state file."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from encryptedssm.errors import StateError
from encryptedssm.models import ParameterRecord, zero_value

STATE_FORMAT_VERSION = 1
DEFAULT_STATE_PATH = "encryptedssm.state.json"


@dataclass
class ResourceState:
    """What the reconciler knows about one parameter during one operation.

    ``prior`` is the last observed record (``None`` before the first create),
    ``desired`` is the current declaration, ``id`` is the managed identity
    (empty when the parameter is not, or no longer, managed) and ``observed``
    is filled in by a read.
    """

    desired: ParameterRecord
    prior: ParameterRecord | None = None
    id: str = ""
    is_new_resource: bool = False
    observed: ParameterRecord | None = None

    @classmethod
    def for_create(cls, desired: ParameterRecord) -> ResourceState:
        return cls(desired=desired, is_new_resource=True)

    @classmethod
    def for_existing(
        cls, prior: ParameterRecord, desired: ParameterRecord | None = None
    ) -> ResourceState:
        return cls(desired=desired or prior, prior=prior, id=prior.name)

    def get_change(self, field_name: str) -> tuple[Any, Any]:
        """Return ``(old, new)`` for *field_name*; a missing prior reads as the zero value."""
        old = getattr(self.prior, field_name) if self.prior else zero_value(field_name)
        return old, getattr(self.desired, field_name)

    def has_change(self, field_name: str) -> bool:
        old, new = self.get_change(field_name)
        return old != new

    def clear(self) -> None:
        """Forget the managed identity, e.g. after the parameter vanished remotely."""
        self.id = ""
        self.observed = None


class StateFile:
    """JSON file holding the observed record of every managed address."""

    def __init__(self, path: str | os.PathLike[str] = DEFAULT_STATE_PATH) -> None:
        self.path = Path(path)

    def load(self) -> dict[str, ParameterRecord]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise StateError(f"Failed to read state file {self.path}: {exc}") from exc

        version = data.get("version") if isinstance(data, dict) else None
        if version != STATE_FORMAT_VERSION:
            raise StateError(
                f"Unsupported state file version {version!r} in {self.path}; "
                f"expected {STATE_FORMAT_VERSION}"
            )
        try:
            return {
                address: ParameterRecord.from_dict(record)
                for address, record in data.get("parameters", {}).items()
            }
        except (TypeError, ValueError) as exc:
            raise StateError(f"Corrupt record in state file {self.path}: {exc}") from exc

    def save(self, records: dict[str, ParameterRecord]) -> None:
        payload = {
            "version": STATE_FORMAT_VERSION,
            "parameters": {a: records[a].to_dict() for a in sorted(records)},
        }
        directory = self.path.parent if str(self.path.parent) else Path(".")
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=directory, prefix=".state-", suffix=".tmp")
        except OSError as exc:
            raise StateError(f"Failed to write state file {self.path}: {exc}") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2, sort_keys=True)
                fh.write("\n")
            os.replace(tmp_name, self.path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise StateError(f"Failed to write state file {self.path}: {exc}") from exc
