"""One reconciliation cycle over a manifest.

For each declared entity, in manifest order:
1. Entity known from the state file: re-read it (drift detection). Gone
   remotely means it is created again.
2. Unknown: create it.
3. Known and present: update it towards the declaration.

With pruning, entities in the state file that the manifest no longer
declares are deleted afterwards, in reverse order of their recording.
The state file is saved at the end of the cycle, even when it fails.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from .driver import Operation, ReconcileResult, ReconciliationDriver
from .errors import ImmutableFieldChanged, WekaOperatorError
from .kinds import EntityKind
from .mutability import ChangeAction
from .spec_loader import Manifest
from .state import StateEntry, StateStore

logger = logging.getLogger(__name__)


class PlanAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    NO_OP = "no-op"
    BLOCKED = "blocked"
    ERROR = "error"


@dataclass
class PlannedChange:
    """What an apply would do for one entity."""

    kind: EntityKind
    name: str
    action: PlanAction
    identifier: str | None = None
    fields: list[str] = field(default_factory=list)
    reason: str = ""


@dataclass
class ResourceOutcome:
    kind: EntityKind
    name: str
    result: ReconcileResult


@dataclass
class CycleResult:
    """Outcome of one apply over a manifest."""

    outcomes: list[ResourceOutcome] = field(default_factory=list)

    @property
    def failures(self) -> list[ResourceOutcome]:
        return [o for o in self.outcomes if not o.result.success]

    @property
    def changes(self) -> list[ResourceOutcome]:
        return [
            o
            for o in self.outcomes
            if o.result.success and o.result.operation not in (Operation.READ, Operation.NO_OP)
        ]

    @property
    def success(self) -> bool:
        return not self.failures


_ACTIONS = {
    ChangeAction.REPLACE: PlanAction.REPLACE,
    ChangeAction.UPDATE: PlanAction.UPDATE,
    ChangeAction.NO_OP: PlanAction.NO_OP,
}


def _orphans(manifest: Manifest, store: StateStore) -> list[StateEntry]:
    return [e for e in reversed(store.entries()) if manifest.get(e.kind, e.name) is None]


def plan_manifest(
    driver: ReconciliationDriver,
    manifest: Manifest,
    store: StateStore,
    *,
    prune: bool = False,
) -> list[PlannedChange]:
    """Compute what apply_manifest would do. Only reads are issued."""
    planned: list[PlannedChange] = []

    for entry in manifest.resources:
        known = store.get(entry.kind, entry.name)
        if known is None:
            planned.append(PlannedChange(entry.kind, entry.name, PlanAction.CREATE))
            continue

        read = driver.read(entry.kind, known.identifier, known.state)
        if read.error is not None:
            planned.append(
                PlannedChange(
                    entry.kind, entry.name, PlanAction.ERROR, known.identifier, reason=str(read.error)
                )
            )
            continue
        if not read.present:
            planned.append(
                PlannedChange(
                    entry.kind,
                    entry.name,
                    PlanAction.CREATE,
                    known.identifier,
                    reason="missing from the cluster",
                )
            )
            continue

        try:
            classification = driver.plan(entry.kind, read.state, entry.spec)
        except ImmutableFieldChanged as e:
            planned.append(
                PlannedChange(
                    entry.kind, entry.name, PlanAction.BLOCKED, known.identifier, e.fields, str(e)
                )
            )
            continue
        except WekaOperatorError as e:
            planned.append(
                PlannedChange(entry.kind, entry.name, PlanAction.ERROR, known.identifier, reason=str(e))
            )
            continue

        planned.append(
            PlannedChange(
                entry.kind,
                entry.name,
                _ACTIONS[classification.action],
                known.identifier,
                list(classification.change_set),
                classification.reason,
            )
        )

    if prune:
        for orphan in _orphans(manifest, store):
            planned.append(
                PlannedChange(
                    orphan.kind,
                    orphan.name,
                    PlanAction.DELETE,
                    orphan.identifier,
                    reason="no longer declared",
                )
            )

    return planned


def apply_manifest(
    driver: ReconciliationDriver,
    manifest: Manifest,
    store: StateStore,
    *,
    prune: bool = False,
) -> CycleResult:
    """Reconcile every declared entity and record the outcome in the store."""
    cycle = CycleResult()

    try:
        for entry in manifest.resources:
            known = store.get(entry.kind, entry.name)

            if known is not None:
                read = driver.read(entry.kind, known.identifier, known.state)
                if read.error is not None:
                    cycle.outcomes.append(ResourceOutcome(entry.kind, entry.name, read))
                    continue
                if not read.present:
                    logger.warning(
                        "Entity missing from the cluster, creating it again",
                        extra={
                            "kind": entry.kind.value,
                            "resource": entry.name,
                            "identifier": known.identifier,
                        },
                    )
                    store.remove(entry.kind, entry.name)
                    known = None

            if known is None:
                result = driver.create(entry.kind, entry.spec)
            else:
                result = driver.update(entry.kind, known.identifier, read.state, entry.spec)

            if result.present and result.identifier is not None:
                store.put(entry.kind, entry.name, result.identifier, result.state)
            elif not result.present:
                store.remove(entry.kind, entry.name)
            cycle.outcomes.append(ResourceOutcome(entry.kind, entry.name, result))

        if prune:
            for orphan in _orphans(manifest, store):
                result = driver.delete(orphan.kind, orphan.identifier, orphan.state)
                if result.success:
                    store.remove(orphan.kind, orphan.name)
                cycle.outcomes.append(ResourceOutcome(orphan.kind, orphan.name, result))
    finally:
        store.save()

    logger.info(
        "Apply complete",
        extra={"changes": len(cycle.changes), "failures": len(cycle.failures)},
    )
    return cycle
