"""Rich-based formatters for encryptedssm output."""

from __future__ import annotations

from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from encryptedssm.comparator import STALE_VALUE
from encryptedssm.differ import ParameterDiff
from encryptedssm.models import ParameterRecord
from encryptedssm.stack import ApplyResult

_MAX_VALUE_LEN = 60

_ACTION_STYLES = {
    "create": ("+ create", "bold green"),
    "update": ("~ update", "bold yellow"),
    "replace": ("-/+ replace", "bold magenta"),
    "delete": ("- delete", "bold red"),
    "noop": ("no changes", "dim"),
}


def _truncate(value: str) -> str:
    if len(value) <= _MAX_VALUE_LEN:
        return value
    return value[:_MAX_VALUE_LEN] + "…"


def _value_text(value: str) -> Text:
    """Ciphertext is truncated; the stale sentinel is highlighted."""
    if value == STALE_VALUE:
        return Text(value, style="bold red")
    return Text(_truncate(value), style="italic")


def render_plan(diffs: list[ParameterDiff], show_unchanged: bool = False) -> Table:
    """Render a plan as a table of address, action, parameter name and changes.

    Args:
        diffs:          Output of :func:`~encryptedssm.differ.plan_stack`.
        show_unchanged: Include ``noop`` rows.

    Returns:
        A :class:`rich.table.Table`.
    """
    table = Table(title="Plan", show_lines=True)
    table.add_column("Action", width=12)
    table.add_column("Address", style="cyan")
    table.add_column("Parameter")
    table.add_column("Changes", style="dim")

    for diff in diffs:
        if diff.action == "noop" and not show_unchanged:
            continue
        label, style = _ACTION_STYLES[diff.action]
        changes = ", ".join(diff.changed)
        if diff.replace_reasons:
            changes += "\n" + "\n".join(f"forces replacement: {r}" for r in diff.replace_reasons)
        table.add_row(Text(label, style=style), diff.address, diff.name, changes)

    return table


def plan_summary(diffs: list[ParameterDiff]) -> str:
    counts = {action: 0 for action in _ACTION_STYLES}
    for diff in diffs:
        counts[diff.action] += 1
    return (
        f"Plan: {counts['create']} to create, {counts['update']} to update, "
        f"{counts['replace']} to replace, {counts['delete']} to delete."
    )


def render_records(records: dict[str, ParameterRecord]) -> Tree:
    """Render managed records as a tree: one branch per address, one leaf per attribute."""
    root = Tree(Text("state", style="bold white"))
    for address in sorted(records):
        record = records[address]
        branch = root.add(Text.assemble((address, "bold blue"), "  ", (record.name, "bold green")))
        branch.add(Text.assemble("type: ", (record.type, "dim")))
        branch.add(Text.assemble("tier: ", record.tier))
        branch.add(Text.assemble("version: ", str(record.version)))
        branch.add(Text.assemble("encrypted_value: ", _value_text(record.encrypted_value)))
        branch.add(Text.assemble("encryption_key: ", record.encryption_key))
        if record.description:
            branch.add(Text.assemble("description: ", record.description))
        if record.data_type:
            branch.add(Text.assemble("data_type: ", record.data_type))
        if record.allowed_pattern:
            branch.add(Text.assemble("allowed_pattern: ", record.allowed_pattern))
        if record.arn:
            branch.add(Text.assemble("arn: ", (record.arn, "dim")))
        if record.tags:
            tags = branch.add(Text("tags", style="bold"))
            for key in sorted(record.tags):
                tags.add(Text.assemble((key, "cyan"), " = ", record.tags[key]))
    return root


def render_apply_result(result: ApplyResult) -> Text:
    text = Text()
    text.append("Apply complete! ", style="bold green")
    text.append(
        f"Resources: {len(result.created)} created, {len(result.updated)} updated, "
        f"{len(result.replaced)} replaced, {len(result.deleted)} deleted."
    )
    if result.vanished:
        text.append(
            f"\n{len(result.vanished)} parameter(s) disappeared from SSM during apply: "
            + ", ".join(result.vanished),
            style="yellow",
        )
    return text
