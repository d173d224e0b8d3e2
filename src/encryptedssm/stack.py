"""Refresh, apply and destroy every parameter of a document, one at a time."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from encryptedssm.differ import ParameterDiff
from encryptedssm.engine import ParameterReconciler
from encryptedssm.errors import EncryptedSSMError
from encryptedssm.models import ParameterRecord
from encryptedssm.state import ResourceState, StateFile

logger = logging.getLogger(__name__)


@dataclass
class ApplyResult:
    """Addresses touched by an apply, grouped by what happened to them."""

    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    replaced: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    vanished: list[str] = field(default_factory=list)


def _read_target(prior: ParameterRecord, desired: ParameterRecord | None) -> ParameterRecord:
    # Compare against the declaration only while it still names the same parameter.
    if desired is not None and desired.name == prior.name:
        return desired
    return prior


def refresh_stack(
    reconciler: ParameterReconciler,
    records: dict[str, ParameterRecord],
    desired: dict[str, ParameterRecord] | None = None,
) -> dict[str, ParameterRecord]:
    """Read every managed record; records that vanished from SSM are dropped."""
    desired = desired or {}
    refreshed: dict[str, ParameterRecord] = {}
    for address in sorted(records):
        prior = records[address]
        state = ResourceState.for_existing(prior, _read_target(prior, desired.get(address)))
        reconciler.read(state)
        if state.id and state.observed is not None:
            refreshed[address] = state.observed
        else:
            logger.warning("%s (%s) no longer exists and was removed from state", address, prior.name)
    return refreshed


def _create(reconciler: ParameterReconciler, desired: ParameterRecord) -> ParameterRecord | None:
    state = ResourceState.for_create(desired)
    reconciler.put(state)
    return state.observed if state.id else None


def apply_stack(
    reconciler: ParameterReconciler,
    diffs: list[ParameterDiff],
    records: dict[str, ParameterRecord],
    state_file: StateFile | None = None,
) -> ApplyResult:
    """Execute *diffs* in order, updating *records* in place.

    *records* is saved to *state_file* after every operation that changed it,
    so a failure part-way leaves an accurate record of what was done.
    """
    result = ApplyResult()

    def commit(address: str, observed: ParameterRecord | None) -> None:
        if observed is None:
            records.pop(address, None)
            result.vanished.append(address)
        else:
            records[address] = observed
        if state_file is not None:
            state_file.save(records)

    for diff in diffs:
        address = diff.address
        if diff.action == "noop":
            result.unchanged.append(address)
            continue

        if diff.action == "create":
            assert diff.desired is not None
            observed = _create(reconciler, diff.desired)
            commit(address, observed)
            if observed is not None:
                result.created.append(address)

        elif diff.action == "update":
            assert diff.prior is not None and diff.desired is not None
            state = ResourceState.for_existing(diff.prior, diff.desired)
            reconciler.put(state)
            observed = state.observed if state.id else None
            commit(address, observed)
            if observed is not None:
                result.updated.append(address)

        elif diff.action == "replace":
            assert diff.prior is not None and diff.desired is not None
            logger.info("Replacing %s: %s", address, "; ".join(diff.replace_reasons))
            reconciler.delete(ResourceState.for_existing(diff.prior))
            records.pop(address, None)
            if state_file is not None:
                state_file.save(records)
            observed = _create(reconciler, diff.desired)
            commit(address, observed)
            if observed is not None:
                result.replaced.append(address)

        elif diff.action == "delete":
            assert diff.prior is not None
            reconciler.delete(ResourceState.for_existing(diff.prior))
            records.pop(address, None)
            if state_file is not None:
                state_file.save(records)
            result.deleted.append(address)

        else:
            raise EncryptedSSMError(f"Unknown plan action {diff.action!r} for {address}")

    return result


def destroy_stack(
    reconciler: ParameterReconciler,
    records: dict[str, ParameterRecord],
    state_file: StateFile | None = None,
) -> list[str]:
    """Delete every managed record, saving state after each deletion."""
    deleted = []
    for address in sorted(records):
        reconciler.delete(ResourceState.for_existing(records[address]))
        del records[address]
        if state_file is not None:
            state_file.save(records)
        deleted.append(address)
    return deleted


def import_parameter(
    reconciler: ParameterReconciler, desired: ParameterRecord
) -> ParameterRecord | None:
    """Adopt a parameter that already exists in SSM; ``None`` when it does not exist."""
    state = ResourceState(desired=desired, id=desired.name)
    reconciler.read(state)
    return state.observed if state.id else None
