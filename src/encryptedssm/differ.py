"""Plan the changes that bring managed parameters in line with a document."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from encryptedssm.models import TIER_ADVANCED, TIER_STANDARD, ParameterRecord

Action = Literal["create", "update", "replace", "delete", "noop"]

# Declared fields compared against the observed record. data_type is optional
# and computed: leaving it undeclared accepts whatever SSM reports.
_COMPARED_FIELDS = (
    "name",
    "type",
    "description",
    "tier",
    "encrypted_value",
    "encryption_key",
    "data_type",
    "overwrite",
    "allowed_pattern",
    "tags",
)
_COMPUTED_OPTIONAL_FIELDS = frozenset({"data_type"})


@dataclass(frozen=True)
class ParameterDiff:
    """Planned action for one document address."""

    address: str
    action: Action
    prior: ParameterRecord | None = None
    desired: ParameterRecord | None = None
    changed: tuple[str, ...] = ()
    replace_reasons: tuple[str, ...] = field(default=())

    @property
    def name(self) -> str:
        record = self.desired or self.prior
        return record.name if record else ""


def changed_fields(prior: ParameterRecord, desired: ParameterRecord) -> tuple[str, ...]:
    changed = []
    for name in _COMPARED_FIELDS:
        new = getattr(desired, name)
        if name in _COMPUTED_OPTIONAL_FIELDS and new is None:
            continue
        if getattr(prior, name) != new:
            changed.append(name)
    return tuple(changed)


def replacement_reasons(prior: ParameterRecord, desired: ParameterRecord) -> tuple[str, ...]:
    """Return why *desired* cannot be applied in place over *prior* (empty if it can)."""
    reasons = []
    if prior.name != desired.name:
        reasons.append(f"name changed from {prior.name!r} to {desired.name!r}")
    # SSM refuses to downgrade an advanced parameter in place.
    if prior.tier == TIER_ADVANCED and desired.tier == TIER_STANDARD:
        reasons.append("tier cannot be downgraded from Advanced to Standard")
    return tuple(reasons)


def diff_parameter(
    address: str,
    prior: ParameterRecord | None,
    desired: ParameterRecord | None,
) -> ParameterDiff:
    """Compare the observed record at *address* with its declaration."""
    if prior is None and desired is None:
        raise ValueError(f"Nothing to diff at address {address!r}")
    if prior is None:
        return ParameterDiff(address, "create", desired=desired)
    if desired is None:
        return ParameterDiff(address, "delete", prior=prior)

    changed = changed_fields(prior, desired)
    if not changed:
        return ParameterDiff(address, "noop", prior=prior, desired=desired)
    reasons = replacement_reasons(prior, desired)
    action: Action = "replace" if reasons else "update"
    return ParameterDiff(
        address, action, prior=prior, desired=desired, changed=changed, replace_reasons=reasons
    )


def plan_stack(
    prior: dict[str, ParameterRecord],
    desired: dict[str, ParameterRecord],
) -> list[ParameterDiff]:
    """Diff every address in *prior* and *desired*.

    Addresses only in *desired* are created, addresses only in *prior* are
    deleted, shared addresses are compared field by field. The result is
    sorted by address.
    """
    return [
        diff_parameter(address, prior.get(address), desired.get(address))
        for address in sorted(set(prior) | set(desired))
    ]
