"""Reconciliation driver: the create/read/update/delete contract of a host.

For each operation the driver validates declared state, asks the kind's
mutability table what a change requires, sequences the reconciler calls
and turns the outcome into a ReconcileResult. Errors derived from
WekaOperatorError are captured in the result; anything else propagates.

UPDATE SEQUENCING:
- CREATE_ONLY field changed: ImmutableFieldChanged, zero calls
- FORCE_REPLACE field changed: delete, then create
- UPDATABLE fields changed: in-place update through the reconciler
- Nothing changed: no-op, zero calls

On a partial update failure the reported state holds the new value of
every committed field and the previous value of everything else.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .config import kms_defaults_from_env
from .errors import NotFound, PartialUpdateError, WekaOperatorError
from .kinds import EntityKind
from .models import validate_declaration
from .mutability import ChangeAction, ChangeClassification, EntityPolicy
from .resources.base import EntityReconciler
from .resources.filesystem import FilesystemReconciler
from .resources.filesystem_group import FilesystemGroupReconciler
from .resources.kms import KmsReconciler
from .resources.s3_bucket import S3BucketReconciler
from .resources.s3_policy import S3PolicyReconciler
from .resources.user import UserReconciler
from .resources.user_policy import UserPolicyReconciler
from .transport import Transport

logger = logging.getLogger(__name__)

# time.RFC850 layout
LAST_UPDATED_FORMAT = "%A, %d-%b-%y %H:%M:%S UTC"

RECONCILER_TYPES: dict[EntityKind, type[EntityReconciler]] = {
    EntityKind.USER: UserReconciler,
    EntityKind.KMS_CONFIG: KmsReconciler,
    EntityKind.FILESYSTEM: FilesystemReconciler,
    EntityKind.FILESYSTEM_GROUP: FilesystemGroupReconciler,
    EntityKind.OBJECT_STORE_BUCKET: S3BucketReconciler,
    EntityKind.ACCESS_POLICY: S3PolicyReconciler,
    EntityKind.USER_POLICY_BINDING: UserPolicyReconciler,
}


class Operation(str, Enum):
    """What the driver did for one entity."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    NO_OP = "no-op"


def last_updated_timestamp(now: datetime | None = None) -> str:
    return (now or datetime.now(UTC)).strftime(LAST_UPDATED_FORMAT)


@dataclass
class ReconcileResult:
    """Result of one operation on one entity."""

    kind: EntityKind
    operation: Operation
    identifier: str | None = None
    present: bool = True
    state: dict[str, Any] = field(default_factory=dict)
    committed_fields: frozenset[str] = frozenset()
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    error: WekaOperatorError | None = None

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        """Check if the operation succeeded."""
        return self.error is None


def merge_reported(
    policy: EntityPolicy,
    previous: dict[str, Any],
    reported: dict[str, Any],
) -> dict[str, Any]:
    """Overlay fields reported by the API onto a previously known state.

    Fields the API did not report keep their previous value. A reported
    value equivalent to the previous one (a reformatted policy document)
    keeps the previous representation.
    """
    merged = dict(previous)
    for name, value in reported.items():
        if name in merged:
            try:
                descriptor = policy.descriptor(name)
            except KeyError:
                descriptor = None
            if descriptor is not None and descriptor.values_equal(merged[name], value):
                continue
        merged[name] = value
    return merged


def apply_desired(
    policy: EntityPolicy,
    previous: dict[str, Any],
    desired: dict[str, Any],
    only: frozenset[str] | None = None,
) -> dict[str, Any]:
    """Overlay declared values onto a state, optionally restricted to some fields.

    An undeclared field whose value the server chooses keeps its known value.
    """
    merged = dict(previous)
    for name, value in desired.items():
        if only is not None and name not in only:
            continue
        if value is None and name in merged:
            try:
                if policy.descriptor(name).server_default:
                    continue
            except KeyError:
                pass
        merged[name] = value
    return merged


class ReconciliationDriver:
    """Runs host operations against the Weka API through per-kind reconcilers.

    Args:
        transport: Authenticated transport shared by every reconciler.
    """

    def __init__(self, transport: Transport) -> None:
        self._transport = transport
        self._reconcilers: dict[EntityKind, EntityReconciler] = {
            kind: reconciler_type(transport) for kind, reconciler_type in RECONCILER_TYPES.items()
        }

    @property
    def transport(self) -> Transport:
        return self._transport

    def reconciler(self, kind: EntityKind) -> EntityReconciler:
        return self._reconcilers[kind]

    def validate(self, kind: EntityKind, desired: dict[str, Any]) -> dict[str, Any]:
        """Validate declared state and return it with defaults filled in.

        Raises:
            DeclarationError: The declaration is invalid.
        """
        policy = self._reconcilers[kind].policy
        declared = policy.declared_only(desired)
        if kind == EntityKind.KMS_CONFIG:
            declared = kms_defaults_from_env(declared)
        policy.check_allowed(declared)
        return validate_declaration(kind, declared).to_state()

    def plan(
        self,
        kind: EntityKind,
        previous: dict[str, Any],
        desired: dict[str, Any],
    ) -> ChangeClassification:
        """Classify the change between two states without any remote call.

        Raises:
            DeclarationError: The desired state is invalid.
            ImmutableFieldChanged: A create-only field changed.
        """
        policy = self._reconcilers[kind].policy
        validated = self.validate(kind, desired)
        change_set = policy.change_set(policy.declared_only(previous), validated)
        return policy.classify(change_set)

    def create(self, kind: EntityKind, desired: dict[str, Any]) -> ReconcileResult:
        result = ReconcileResult(kind=kind, operation=Operation.CREATE, present=False)
        reconciler = self._reconcilers[kind]
        try:
            validated = self.validate(kind, desired)
            observed = reconciler.create(validated)
            result.identifier = observed.identifier
            result.state = merge_reported(reconciler.policy, validated, observed.state)
            result.present = True
        except WekaOperatorError as e:
            result.error = e
        return self._finish(result)

    def read(
        self,
        kind: EntityKind,
        identifier: str,
        previous: dict[str, Any] | None = None,
    ) -> ReconcileResult:
        """Re-read an entity and report drift.

        A vanished entity is not an error: the result is simply absent.
        """
        previous = previous or {}
        result = ReconcileResult(
            kind=kind, operation=Operation.READ, identifier=identifier, state=dict(previous)
        )
        reconciler = self._reconcilers[kind]
        try:
            observed = reconciler.read(identifier)
            reported = reconciler.policy.reported_only(observed.state)
            result.state = merge_reported(reconciler.policy, previous, reported)
        except NotFound:
            result.present = False
            result.state = {}
        except WekaOperatorError as e:
            result.error = e
        return self._finish(result)

    def update(
        self,
        kind: EntityKind,
        identifier: str,
        previous: dict[str, Any],
        desired: dict[str, Any],
    ) -> ReconcileResult:
        result = ReconcileResult(
            kind=kind, operation=Operation.UPDATE, identifier=identifier, state=dict(previous)
        )
        reconciler = self._reconcilers[kind]
        policy = reconciler.policy
        try:
            validated = self.validate(kind, desired)
            change_set = policy.change_set(policy.declared_only(previous), validated)
            classification = policy.classify(change_set)

            if classification.action == ChangeAction.NO_OP:
                result.operation = Operation.NO_OP
                result.state = apply_desired(policy, previous, validated)

            elif classification.action == ChangeAction.REPLACE:
                result.operation = Operation.REPLACE
                logger.info(
                    "Replacing entity",
                    extra={
                        "kind": kind.value,
                        "identifier": identifier,
                        "reason": classification.reason,
                    },
                )
                reconciler.delete(identifier)
                # The old entity is gone; only a successful create brings it back.
                result.present = False
                result.identifier = None
                result.state = {}
                observed = reconciler.create(validated)
                result.identifier = observed.identifier
                result.state = merge_reported(policy, validated, observed.state)
                result.state["last_updated"] = last_updated_timestamp()
                result.present = True

            else:
                outcome = reconciler.update(identifier, previous, validated, change_set)
                result.committed_fields = outcome.marker.committed_fields
                state = apply_desired(policy, previous, validated)
                state = merge_reported(policy, state, outcome.state)
                state["last_updated"] = last_updated_timestamp()
                result.state = state

        except PartialUpdateError as e:
            result.error = e
            result.committed_fields = e.committed_fields
            result.state = apply_desired(policy, previous, validated, only=e.committed_fields)
        except WekaOperatorError as e:
            result.error = e
        return self._finish(result)

    def delete(
        self,
        kind: EntityKind,
        identifier: str,
        previous: dict[str, Any] | None = None,
    ) -> ReconcileResult:
        result = ReconcileResult(
            kind=kind,
            operation=Operation.DELETE,
            identifier=identifier,
            state=dict(previous or {}),
        )
        try:
            self._reconcilers[kind].delete(identifier)
            result.present = False
            result.state = {}
        except WekaOperatorError as e:
            result.error = e
        return self._finish(result)

    def _finish(self, result: ReconcileResult) -> ReconcileResult:
        result.end_time = datetime.now(UTC)
        self._log_result(result)
        return result

    def _log_result(self, result: ReconcileResult) -> None:
        """Log an operation result with structured data."""
        extra: dict[str, Any] = {
            "kind": result.kind.value,
            "operation": result.operation.value,
            "identifier": result.identifier,
            "present": result.present,
            "duration_seconds": result.duration_seconds,
        }
        if result.committed_fields:
            extra["committed_fields"] = sorted(result.committed_fields)

        if result.error is not None:
            extra["error"] = str(result.error)
            extra["error_type"] = type(result.error).__name__
            logger.error("Operation failed", extra=extra)
        else:
            logger.info("Operation complete", extra=extra)
