"""Field mutability policy per entity kind.

Every declared field is annotated with exactly one mutability class. The
driver consults this table, and only this table, to decide whether a change
is applied in place, requires a replacement, or is rejected.

MUTABILITY CLASSES:
- CREATE_ONLY: set at creation; a later change is rejected (ImmutableFieldChanged)
- FORCE_REPLACE: a change is realized as delete + create
- UPDATABLE: a change is sent in an update call
- COMPUTED: assigned by the server, never sent, never part of a change set
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .errors import DeclarationError, ImmutableFieldChanged
from .kinds import EntityKind
from .models import ANONYMOUS_POLICIES, USER_ROLES
from .policy_diff import policies_are_equivalent


class Mutability(str, Enum):
    """How a field may change after creation."""

    CREATE_ONLY = "create_only"
    FORCE_REPLACE = "force_replace"
    UPDATABLE = "updatable"
    COMPUTED = "computed"


class FieldType(str, Enum):
    """Semantic type of a declared field."""

    STRING = "string"
    INT = "int"
    BOOL = "bool"
    ENUM = "enum"
    JSON = "json"


class ChangeAction(str, Enum):
    """What the driver must do to realize a change set."""

    REPLACE = "replace"
    UPDATE = "update"
    NO_OP = "no_op"


@dataclass(frozen=True)
class FieldDescriptor:
    """A single field of an entity.

    Attributes:
        name: Declared field name.
        field_type: Semantic type.
        mutability: Mutability class.
        sensitive: Value must never be logged.
        allowed_values: Allowed set for ENUM fields.
        read_back: Whether reads report this field. Fields that are not read
            back keep their previously declared value.
        server_default: Leaving the field undeclared keeps whatever value
            the server assigned; it is not a change.
    """

    name: str
    field_type: FieldType
    mutability: Mutability
    sensitive: bool = False
    allowed_values: frozenset[str] | None = None
    read_back: bool = True
    server_default: bool = False

    def values_equal(self, old: Any, new: Any) -> bool:
        """Compare two values of this field semantically."""
        if self.field_type == FieldType.JSON:
            return policies_are_equivalent(old, new)
        return old == new


@dataclass(frozen=True)
class ChangeSet:
    """Names of declared fields whose value differs between two states.

    Computed once per update; never re-derived mid-operation.
    """

    fields: frozenset[str]

    def __contains__(self, name: object) -> bool:
        return name in self.fields

    def __bool__(self) -> bool:
        return bool(self.fields)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self.fields))

    def __len__(self) -> int:
        return len(self.fields)


@dataclass(frozen=True)
class ChangeClassification:
    """Outcome of classifying a change set against a policy.

    Attributes:
        action: What the driver must do.
        change_set: The classified change set.
        replace_fields: Changed FORCE_REPLACE fields.
        update_fields: Changed UPDATABLE fields.
        reason: Human-readable explanation.
    """

    action: ChangeAction
    change_set: ChangeSet
    replace_fields: frozenset[str]
    update_fields: frozenset[str]
    reason: str


@dataclass(frozen=True)
class EntityPolicy:
    """Static mutability table for one entity kind."""

    kind: EntityKind
    fields: tuple[FieldDescriptor, ...]

    def __post_init__(self) -> None:
        names = [f.name for f in self.fields]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate field in policy for {self.kind.value}")

    def descriptor(self, name: str) -> FieldDescriptor:
        for descriptor in self.fields:
            if descriptor.name == name:
                return descriptor
        raise KeyError(f"{self.kind.value} has no field '{name}'")

    def names(self, *mutabilities: Mutability) -> frozenset[str]:
        """Names of fields in the given mutability classes."""
        return frozenset(f.name for f in self.fields if f.mutability in mutabilities)

    @property
    def declared_fields(self) -> frozenset[str]:
        return frozenset(f.name for f in self.fields if f.mutability != Mutability.COMPUTED)

    @property
    def computed_fields(self) -> frozenset[str]:
        return self.names(Mutability.COMPUTED)

    @property
    def read_back_fields(self) -> frozenset[str]:
        return frozenset(
            f.name for f in self.fields
            if f.read_back and f.mutability != Mutability.COMPUTED
        )

    @property
    def sensitive_fields(self) -> frozenset[str]:
        return frozenset(f.name for f in self.fields if f.sensitive)

    def declared_only(self, state: dict[str, Any]) -> dict[str, Any]:
        """Drop computed and unknown fields from a state mapping."""
        declared = self.declared_fields
        return {k: v for k, v in state.items() if k in declared}

    def reported_only(self, state: dict[str, Any]) -> dict[str, Any]:
        """Keep the fields a read may report: read-back and computed ones."""
        reported = self.read_back_fields | self.computed_fields
        return {k: v for k, v in state.items() if k in reported}

    def check_allowed(self, state: dict[str, Any]) -> None:
        """Reject enum values outside their allowed set.

        Raises:
            DeclarationError: A declared enum value is not allowed.
        """
        errors = []
        for descriptor in self.fields:
            value = state.get(descriptor.name)
            if descriptor.allowed_values is None or value is None:
                continue
            if value not in descriptor.allowed_values:
                errors.append(
                    f"  - {descriptor.name}: must be one of "
                    f"{sorted(descriptor.allowed_values)}, got: {value}"
                )
        if errors:
            error_list = "\n".join(errors)
            raise DeclarationError(f"Invalid {self.kind.value} declaration:\n{error_list}")

    def change_set(self, previous: dict[str, Any], desired: dict[str, Any]) -> ChangeSet:
        """Compute the fields whose declared value differs.

        Computed fields are never part of a change set.
        """
        changed = set()
        for descriptor in self.fields:
            if descriptor.mutability == Mutability.COMPUTED:
                continue
            old = previous.get(descriptor.name)
            new = desired.get(descriptor.name)
            if new is None and descriptor.server_default:
                continue
            if not descriptor.values_equal(old, new):
                changed.add(descriptor.name)
        return ChangeSet(frozenset(changed))

    def check_mutable(self, change_set: ChangeSet, *, allow_replace: bool = False) -> None:
        """Reject changes to fields that cannot change in place.

        Args:
            change_set: Fields that changed.
            allow_replace: Whether FORCE_REPLACE fields may change (the
                driver handles them by replacement).

        Raises:
            ImmutableFieldChanged: If a CREATE_ONLY field changed, or a
                FORCE_REPLACE field changed and replacement is not allowed.
        """
        blocked = set(self.names(Mutability.CREATE_ONLY) & change_set.fields)
        if not allow_replace:
            blocked |= self.names(Mutability.FORCE_REPLACE) & change_set.fields
        if blocked:
            raise ImmutableFieldChanged(self.kind.value, sorted(blocked))

    def classify(self, change_set: ChangeSet) -> ChangeClassification:
        """Classify a change set into replace, update or no-op.

        Raises:
            ImmutableFieldChanged: If a CREATE_ONLY field changed.
        """
        self.check_mutable(change_set, allow_replace=True)

        replace_fields = self.names(Mutability.FORCE_REPLACE) & change_set.fields
        update_fields = self.names(Mutability.UPDATABLE) & change_set.fields

        if replace_fields:
            return ChangeClassification(
                action=ChangeAction.REPLACE,
                change_set=change_set,
                replace_fields=replace_fields,
                update_fields=update_fields,
                reason=f"force-replace fields changed: {', '.join(sorted(replace_fields))}",
            )
        if update_fields:
            return ChangeClassification(
                action=ChangeAction.UPDATE,
                change_set=change_set,
                replace_fields=frozenset(),
                update_fields=update_fields,
                reason=f"updatable fields changed: {', '.join(sorted(update_fields))}",
            )
        return ChangeClassification(
            action=ChangeAction.NO_OP,
            change_set=change_set,
            replace_fields=frozenset(),
            update_fields=frozenset(),
            reason="no declared field changed",
        )


# =============================================================================
# Policy tables
# =============================================================================

_C = Mutability.CREATE_ONLY
_R = Mutability.FORCE_REPLACE
_U = Mutability.UPDATABLE
_X = Mutability.COMPUTED

_LAST_UPDATED = FieldDescriptor("last_updated", FieldType.STRING, _X)

USER_POLICY = EntityPolicy(
    kind=EntityKind.USER,
    fields=(
        FieldDescriptor("username", FieldType.STRING, _C, read_back=False),
        FieldDescriptor("password", FieldType.STRING, _U, sensitive=True, read_back=False),
        FieldDescriptor("role", FieldType.ENUM, _U, allowed_values=USER_ROLES),
        FieldDescriptor("posix_uid", FieldType.INT, _U, read_back=False, server_default=True),
        FieldDescriptor("posix_gid", FieldType.INT, _U, read_back=False, server_default=True),
        FieldDescriptor("uid", FieldType.STRING, _X),
        _LAST_UPDATED,
    ),
)

KMS_POLICY = EntityPolicy(
    kind=EntityKind.KMS_CONFIG,
    fields=(
        FieldDescriptor("use_vault", FieldType.BOOL, _U, read_back=False),
        FieldDescriptor("base_url", FieldType.STRING, _U),
        FieldDescriptor("master_key_name", FieldType.STRING, _U),
        FieldDescriptor("token", FieldType.STRING, _U, sensitive=True, read_back=False),
        FieldDescriptor("server_endpoint", FieldType.STRING, _U, read_back=False),
        FieldDescriptor("key_uid", FieldType.STRING, _U, sensitive=True, read_back=False),
        FieldDescriptor("client_cert_pem", FieldType.STRING, _U, sensitive=True, read_back=False),
        FieldDescriptor("client_key_pem", FieldType.STRING, _U, sensitive=True, read_back=False),
        FieldDescriptor("ca_cert_pem", FieldType.STRING, _U, sensitive=True, read_back=False),
        _LAST_UPDATED,
    ),
)

FILESYSTEM_POLICY = EntityPolicy(
    kind=EntityKind.FILESYSTEM,
    fields=(
        FieldDescriptor("name", FieldType.STRING, _U),
        FieldDescriptor("group_name", FieldType.STRING, _C),
        FieldDescriptor("total_capacity_gb", FieldType.INT, _U),
        FieldDescriptor("ssd_capacity_gb", FieldType.INT, _U),
        FieldDescriptor("obs_name", FieldType.STRING, _C),
        FieldDescriptor("tiered", FieldType.BOOL, _C),
        FieldDescriptor("encrypted", FieldType.BOOL, _C),
        FieldDescriptor("auth_required", FieldType.BOOL, _U),
        FieldDescriptor("allow_no_kms", FieldType.BOOL, _C, read_back=False),
        FieldDescriptor("uid", FieldType.STRING, _X),
        _LAST_UPDATED,
    ),
)

FILESYSTEM_GROUP_POLICY = EntityPolicy(
    kind=EntityKind.FILESYSTEM_GROUP,
    fields=(
        FieldDescriptor("name", FieldType.STRING, _U),
        FieldDescriptor("target_ssd_retention", FieldType.INT, _U),
        FieldDescriptor("start_demote", FieldType.INT, _U),
        FieldDescriptor("uid", FieldType.STRING, _X),
        _LAST_UPDATED,
    ),
)

S3_BUCKET_POLICY = EntityPolicy(
    kind=EntityKind.OBJECT_STORE_BUCKET,
    fields=(
        FieldDescriptor("bucket_name", FieldType.STRING, _R),
        FieldDescriptor(
            "anonymous_policy_name",
            FieldType.ENUM,
            _U,
            allowed_values=ANONYMOUS_POLICIES,
            read_back=False,
        ),
        FieldDescriptor("hard_quota", FieldType.STRING, _U, read_back=False),
        FieldDescriptor("existing_path", FieldType.STRING, _R, read_back=False),
        FieldDescriptor("fs_uid", FieldType.STRING, _R, read_back=False),
        _LAST_UPDATED,
    ),
)

S3_POLICY_POLICY = EntityPolicy(
    kind=EntityKind.ACCESS_POLICY,
    fields=(
        FieldDescriptor("policy_name", FieldType.STRING, _R),
        FieldDescriptor("policy_file_content", FieldType.JSON, _U),
        _LAST_UPDATED,
    ),
)

USER_S3_POLICY_POLICY = EntityPolicy(
    kind=EntityKind.USER_POLICY_BINDING,
    fields=(
        FieldDescriptor("username", FieldType.STRING, _R, read_back=False),
        FieldDescriptor("s3_policy_name", FieldType.STRING, _U),
        _LAST_UPDATED,
    ),
)

POLICIES: dict[EntityKind, EntityPolicy] = {
    policy.kind: policy
    for policy in (
        USER_POLICY,
        KMS_POLICY,
        FILESYSTEM_POLICY,
        FILESYSTEM_GROUP_POLICY,
        S3_BUCKET_POLICY,
        S3_POLICY_POLICY,
        USER_S3_POLICY_POLICY,
    )
}


def get_policy(kind: EntityKind) -> EntityPolicy:
    """Get the mutability policy for an entity kind."""
    return POLICIES[kind]
