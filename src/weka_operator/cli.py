"""Weka operator CLI.

Usage:
    weka-operator login                              # Check credentials
    weka-operator get filesystem <uid>               # Show one entity
    weka-operator plan cluster.yaml --state s.json   # Preview changes
    weka-operator apply cluster.yaml --state s.json  # Reconcile

Credentials come from WEKA_USERNAME, WEKA_PASSWORD, WEKA_ORG and
WEKA_ENDPOINT.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import click
import requests

from .apply import PlanAction, apply_manifest, plan_manifest
from .config import OperatorConfig
from .driver import ReconciliationDriver
from .errors import WekaOperatorError
from .kinds import EntityKind
from .main import setup_logging
from .mutability import get_policy
from .session import Session
from .spec_loader import Manifest, SpecLoadError, load_manifest
from .state import StateStore
from .transport import Transport

DEFAULT_STATE_FILE = "weka-state.json"

PLAN_SYMBOLS = {
    PlanAction.CREATE: "+",
    PlanAction.UPDATE: "~",
    PlanAction.REPLACE: "-/+",
    PlanAction.DELETE: "-",
    PlanAction.NO_OP: "=",
    PlanAction.BLOCKED: "!",
    PlanAction.ERROR: "?",
}

KIND_CHOICE = click.Choice([kind.value for kind in EntityKind])


def connect(http: requests.Session | None = None) -> ReconciliationDriver:
    """Log in with environment credentials and build a driver.

    Raises:
        click.ClickException: Configuration or login failed.
    """
    try:
        config = OperatorConfig.from_env()
        session = Session.authenticate(config, http=http)
    except WekaOperatorError as e:
        raise click.ClickException(str(e)) from e
    return ReconciliationDriver(Transport(session))


def load_inputs(manifest_path: Path, state_path: Path) -> tuple[Manifest, StateStore]:
    """Load the manifest and state file before any remote call."""
    try:
        manifest = load_manifest(manifest_path)
        store = StateStore(state_path).load()
    except (SpecLoadError, WekaOperatorError) as e:
        raise click.ClickException(str(e)) from e
    return manifest, store


# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="weka-operator")
@click.option("--verbose", "-v", is_flag=True, help="Log requests and responses")
def cli(verbose: bool) -> None:
    """Reconcile Weka cluster users, filesystems, S3 buckets and policies.

    \b
    Quick Start:
        weka-operator login
        weka-operator plan cluster.yaml
        weka-operator apply cluster.yaml
    """
    setup_logging(logging.DEBUG if verbose else logging.WARNING)


@cli.command()
def login() -> None:
    """Authenticate against the cluster and report the session."""
    driver = connect()
    session = driver.transport.session
    click.secho(f"✓ Authenticated to {session.endpoint} (org {session.org})", fg="green")


@cli.command()
@click.argument("kind", type=KIND_CHOICE)
@click.argument("identifier")
def get(kind: str, identifier: str) -> None:
    """Read one entity and print what the cluster reports."""
    entity_kind = EntityKind(kind)
    result = connect().read(entity_kind, identifier)
    if result.error is not None:
        raise click.ClickException(str(result.error))
    if not result.present:
        raise click.ClickException(f"{entity_kind.value} '{identifier}' not found")

    sensitive = get_policy(entity_kind).sensitive_fields
    state = {k: ("***" if k in sensitive else v) for k, v in result.state.items()}
    click.echo(json.dumps({"identifier": identifier, "state": state}, indent=2, sort_keys=True))


@cli.command()
@click.argument("manifest", type=click.Path(path_type=Path, dir_okay=False))
@click.option(
    "--state",
    "state_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=DEFAULT_STATE_FILE,
    show_default=True,
    help="State file",
)
@click.option("--prune", is_flag=True, help="Include deletion of undeclared entities")
def plan(manifest: Path, state_path: Path, prune: bool) -> None:
    """Show what apply would change. Only reads are issued."""
    loaded, store = load_inputs(manifest, state_path)
    changes = plan_manifest(connect(), loaded, store, prune=prune)

    pending = 0
    for change in changes:
        line = f"{PLAN_SYMBOLS[change.action]} {change.kind.value}/{change.name}"
        if change.fields:
            line += f" ({', '.join(change.fields)})"
        if change.reason and change.action != PlanAction.NO_OP:
            line += f": {change.reason}"
        click.echo(line)
        if change.action != PlanAction.NO_OP:
            pending += 1

    click.echo(f"\n{pending} of {len(changes)} resources to change")
    if any(c.action in (PlanAction.BLOCKED, PlanAction.ERROR) for c in changes):
        raise click.ClickException("Plan contains changes that cannot be applied")


@cli.command()
@click.argument("manifest", type=click.Path(path_type=Path, dir_okay=False))
@click.option(
    "--state",
    "state_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=DEFAULT_STATE_FILE,
    show_default=True,
    help="State file",
)
@click.option("--prune", is_flag=True, help="Delete entities no longer declared")
def apply(manifest: Path, state_path: Path, prune: bool) -> None:
    """Reconcile the cluster towards a manifest."""
    loaded, store = load_inputs(manifest, state_path)
    try:
        cycle = apply_manifest(connect(), loaded, store, prune=prune)
    except WekaOperatorError as e:
        raise click.ClickException(str(e)) from e

    for outcome in cycle.changes:
        result = outcome.result
        click.echo(f"{result.operation.value} {outcome.kind.value}/{outcome.name} -> {result.identifier}")

    for outcome in cycle.failures:
        result = outcome.result
        message = f"✗ {result.operation.value} {outcome.kind.value}/{outcome.name}: {result.error}"
        if result.committed_fields:
            message += f" (committed: {', '.join(sorted(result.committed_fields))})"
        click.secho(message, fg="red", err=True)

    if not cycle.success:
        raise click.ClickException(f"{len(cycle.failures)} resources failed")
    click.secho(f"✓ {len(cycle.changes)} resources changed", fg="green")
