"""CLI entry point for encryptedssm."""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass

import click
from rich.console import Console
from rich.logging import RichHandler

from encryptedssm import __version__
from encryptedssm.clients import make_clients
from encryptedssm.differ import plan_stack
from encryptedssm.document import StackDocument, load_document
from encryptedssm.engine import ParameterReconciler
from encryptedssm.errors import EncryptedSSMError
from encryptedssm.formatters import (
    plan_summary,
    render_apply_result,
    render_plan,
    render_records,
)
from encryptedssm.stack import apply_stack, destroy_stack, import_parameter, refresh_stack
from encryptedssm.state import DEFAULT_STATE_PATH, StateFile

console = Console()
err_console = Console(stderr=True)


@dataclass
class _Options:
    profile: str | None
    region: str | None
    state_path: str


def _abort(msg: str) -> None:
    console.print(f"[bold red]Error:[/] {msg}")
    sys.exit(1)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _load(opts: _Options, document: str) -> StackDocument:
    return load_document(document, {"profile": opts.profile, "region": opts.region})


def _reconciler(doc: StackDocument) -> ParameterReconciler:
    return ParameterReconciler(make_clients(doc.provider))


@click.group()
@click.option("--profile", default=None, help="AWS named profile (overrides the document).")
@click.option("--region", default=None, help="AWS region (overrides the document).")
@click.option(
    "--state",
    "state_path",
    default=DEFAULT_STATE_PATH,
    envvar="ENCRYPTEDSSM_STATE",
    show_default=True,
    help="Path of the state file.",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
@click.version_option(__version__, "--version", "-V")
@click.pass_context
def main(
    ctx: click.Context,
    profile: str | None,
    region: str | None,
    state_path: str,
    verbose: bool,
) -> None:
    """Manage KMS-encrypted SecureString parameters in AWS SSM Parameter Store.

    \b
    Examples:
      encryptedssm plan stack.yaml
      encryptedssm apply --yes stack.yaml
      encryptedssm --profile prod import stack.yaml db_password
      encryptedssm show --output json
    """
    _setup_logging(verbose)
    ctx.obj = _Options(profile=profile, region=region, state_path=state_path)


@main.command("plan")
@click.argument("document", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--refresh/--no-refresh",
    default=True,
    help="Read managed parameters from SSM before planning (default: refresh).",
)
@click.option(
    "--detailed-exitcode",
    is_flag=True,
    default=False,
    help="Exit with 2 when the plan contains changes.",
)
@click.pass_obj
def plan_cmd(opts: _Options, document: str, refresh: bool, detailed_exitcode: bool) -> None:
    """Show what apply would change.

    \b
    Examples:
      encryptedssm plan stack.yaml
      encryptedssm plan --no-refresh stack.yaml
    """
    try:
        doc = _load(opts, document)
        records = StateFile(opts.state_path).load()
        desired = doc.records()
        if refresh and records:
            records = refresh_stack(_reconciler(doc), records, desired)
    except EncryptedSSMError as exc:
        _abort(str(exc))
        return

    diffs = plan_stack(records, desired)
    if all(d.action == "noop" for d in diffs):
        console.print("[bold green]No changes.[/] Parameters match the document.")
        return

    console.print(render_plan(diffs))
    console.print(plan_summary(diffs))
    if detailed_exitcode:
        sys.exit(2)


@main.command("apply")
@click.argument("document", type=click.Path(exists=True, dir_okay=False))
@click.option("--yes", "-y", is_flag=True, default=False, help="Skip confirmation prompt.")
@click.pass_obj
def apply_cmd(opts: _Options, document: str, yes: bool) -> None:
    """Create, update, replace or delete parameters to match DOCUMENT.

    \b
    Examples:
      encryptedssm apply stack.yaml
      encryptedssm apply --yes stack.yaml
    """
    state_file = StateFile(opts.state_path)
    try:
        doc = _load(opts, document)
        reconciler = _reconciler(doc)
        records = state_file.load()
        desired = doc.records()
        if records:
            records = refresh_stack(reconciler, records, desired)
            state_file.save(records)
    except EncryptedSSMError as exc:
        _abort(str(exc))
        return

    diffs = plan_stack(records, desired)
    if all(d.action == "noop" for d in diffs):
        console.print("[bold green]No changes.[/] Parameters match the document.")
        return

    console.print(render_plan(diffs))
    console.print(plan_summary(diffs))

    if not yes and not click.confirm("Apply these changes?"):
        console.print("[dim]Aborted.[/]")
        return

    try:
        result = apply_stack(reconciler, diffs, records, state_file)
    except EncryptedSSMError as exc:
        _abort(str(exc))
        return

    console.print(render_apply_result(result))


@main.command("refresh")
@click.argument("document", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def refresh_cmd(opts: _Options, document: str) -> None:
    """Re-read every managed parameter from SSM into the state file."""
    state_file = StateFile(opts.state_path)
    try:
        doc = _load(opts, document)
        records = state_file.load()
        refreshed = refresh_stack(_reconciler(doc), records, doc.records())
        state_file.save(refreshed)
    except EncryptedSSMError as exc:
        _abort(str(exc))
        return

    gone = sorted(set(records) - set(refreshed))
    console.print(f"[bold green]Refreshed {len(refreshed)} parameter(s).[/]")
    if gone:
        console.print(f"[yellow]Removed from state (no longer in SSM):[/] {', '.join(gone)}")


@main.command("destroy")
@click.argument("document", type=click.Path(exists=True, dir_okay=False))
@click.option("--yes", "-y", is_flag=True, default=False, help="Skip confirmation prompt.")
@click.pass_obj
def destroy_cmd(opts: _Options, document: str, yes: bool) -> None:
    """Delete every parameter recorded in the state file."""
    state_file = StateFile(opts.state_path)
    try:
        doc = _load(opts, document)
        records = state_file.load()
    except EncryptedSSMError as exc:
        _abort(str(exc))
        return

    if not records:
        console.print("[yellow]No managed parameters in state.[/]")
        return

    if not yes:
        console.print(
            f"[bold yellow]WARNING:[/] {len(records)} parameter(s) will be deleted from SSM."
        )
        if not click.confirm("Destroy all managed parameters?"):
            console.print("[dim]Aborted.[/]")
            return

    try:
        deleted = destroy_stack(_reconciler(doc), records, state_file)
    except EncryptedSSMError as exc:
        _abort(str(exc))
        return

    console.print(f"[bold green]Destroyed {len(deleted)} parameter(s).[/]")


@main.command("import")
@click.argument("document", type=click.Path(exists=True, dir_okay=False))
@click.argument("address")
@click.pass_obj
def import_cmd(opts: _Options, document: str, address: str) -> None:
    """Adopt an existing SSM parameter declared at ADDRESS in DOCUMENT.

    \b
    Examples:
      encryptedssm import stack.yaml db_password
    """
    state_file = StateFile(opts.state_path)
    try:
        doc = _load(opts, document)
        records = state_file.load()
    except EncryptedSSMError as exc:
        _abort(str(exc))
        return

    if address not in doc.parameters:
        _abort(f"Address {address!r} is not declared in {document}")
        return
    if address in records:
        _abort(f"Address {address!r} is already managed ({records[address].name})")
        return

    desired = doc.parameters[address].to_record()
    try:
        observed = import_parameter(_reconciler(doc), desired)
        if observed is None:
            _abort(f"SSM Parameter {desired.name} does not exist")
            return
        records[address] = observed
        state_file.save(records)
    except EncryptedSSMError as exc:
        _abort(str(exc))
        return

    console.print(f"[bold green]Imported[/] {desired.name} as {address}")


@main.command("show")
@click.option(
    "--output",
    type=click.Choice(["tree", "json"]),
    default="tree",
    help="Output format (default: tree).",
)
@click.pass_obj
def show_cmd(opts: _Options, output: str) -> None:
    """Show the recorded state without contacting AWS."""
    try:
        records = StateFile(opts.state_path).load()
    except EncryptedSSMError as exc:
        _abort(str(exc))
        return

    if output == "json":
        data = {address: records[address].to_dict() for address in sorted(records)}
        click.echo(json.dumps(data, indent=2))
        return

    if not records:
        console.print("[yellow]No managed parameters in state.[/]")
        return
    console.print(render_records(records))
