"""Tests for the field mutability policy."""

import json

import pytest

from weka_operator.errors import DeclarationError, ImmutableFieldChanged
from weka_operator.kinds import EntityKind
from weka_operator.mutability import (
    POLICIES,
    ChangeAction,
    ChangeSet,
    EntityPolicy,
    FieldDescriptor,
    FieldType,
    Mutability,
    get_policy,
)

BUCKET = {
    "bucket_name": "bucket-one",
    "fs_uid": "fs-1",
    "anonymous_policy_name": "none",
    "hard_quota": "1GB",
    "existing_path": None,
}


class TestPolicyTables:
    """Tests for the static per-kind tables."""

    def test_every_kind_has_a_policy(self) -> None:
        assert set(POLICIES) == set(EntityKind)

    @pytest.mark.parametrize("kind", list(EntityKind))
    def test_last_updated_is_computed(self, kind: EntityKind) -> None:
        """Test that every kind carries a computed last_updated field."""
        policy = get_policy(kind)

        assert policy.descriptor("last_updated").mutability == Mutability.COMPUTED

    def test_duplicate_field_rejected(self) -> None:
        field = FieldDescriptor("name", FieldType.STRING, Mutability.UPDATABLE)

        with pytest.raises(ValueError):
            EntityPolicy(kind=EntityKind.USER, fields=(field, field))

    def test_read_back_fields(self) -> None:
        """Test which bucket fields are verified on read."""
        assert get_policy(EntityKind.OBJECT_STORE_BUCKET).read_back_fields == {"bucket_name"}

    def test_sensitive_fields(self) -> None:
        assert "password" in get_policy(EntityKind.USER).sensitive_fields
        assert "token" in get_policy(EntityKind.KMS_CONFIG).sensitive_fields

    def test_reported_only_drops_unverified_fields(self) -> None:
        """Test that a read cannot overwrite fields it does not verify."""
        policy = get_policy(EntityKind.OBJECT_STORE_BUCKET)

        reported = policy.reported_only(
            {"bucket_name": "data-bucket", "hard_quota": "9GB", "last_updated": "now"}
        )

        assert reported == {"bucket_name": "data-bucket", "last_updated": "now"}

    def test_check_allowed(self) -> None:
        policy = get_policy(EntityKind.USER)
        policy.check_allowed({"username": "alice", "role": "S3"})

        with pytest.raises(DeclarationError) as exc_info:
            policy.check_allowed({"username": "alice", "role": "Superuser"})

        assert "role: must be one of" in str(exc_info.value)

    def test_check_allowed_skips_undeclared(self) -> None:
        get_policy(EntityKind.OBJECT_STORE_BUCKET).check_allowed({"anonymous_policy_name": None})


class TestChangeSet:
    """Tests for change set computation."""

    def test_no_change(self) -> None:
        policy = get_policy(EntityKind.OBJECT_STORE_BUCKET)

        change_set = policy.change_set(BUCKET, dict(BUCKET))

        assert not change_set
        assert len(change_set) == 0

    def test_changed_fields(self) -> None:
        policy = get_policy(EntityKind.OBJECT_STORE_BUCKET)
        desired = {**BUCKET, "hard_quota": "2GB", "anonymous_policy_name": "download"}

        change_set = policy.change_set(BUCKET, desired)

        assert list(change_set) == ["anonymous_policy_name", "hard_quota"]

    def test_computed_fields_never_in_change_set(self) -> None:
        """Test that server-assigned fields are ignored."""
        policy = get_policy(EntityKind.FILESYSTEM_GROUP)
        previous = {"name": "g", "target_ssd_retention": 1, "start_demote": 2, "uid": "a"}
        desired = {"name": "g", "target_ssd_retention": 1, "start_demote": 2, "uid": "b"}

        assert not policy.change_set(previous, desired)

    def test_json_fields_compare_by_equivalence(self) -> None:
        """Test that a reformatted policy document is not a change."""
        policy = get_policy(EntityKind.ACCESS_POLICY)
        document = {"Statement": [{"Effect": "Allow", "Action": ["s3:GetObject"]}]}
        previous = {"policy_name": "p", "policy_file_content": json.dumps(document)}
        desired = {"policy_name": "p", "policy_file_content": json.dumps(document, indent=2)}

        assert not policy.change_set(previous, desired)

    def test_undeclared_server_default_is_not_a_change(self) -> None:
        """Test that omitting posix ids keeps the server-assigned ones."""
        policy = get_policy(EntityKind.USER)
        previous = {"username": "u", "password": "p", "role": "S3", "posix_uid": 1001}
        desired = {"username": "u", "password": "p", "role": "S3", "posix_uid": None}

        assert not policy.change_set(previous, desired)


class TestClassify:
    """Tests for change classification."""

    def test_no_op(self) -> None:
        policy = get_policy(EntityKind.OBJECT_STORE_BUCKET)

        classification = policy.classify(ChangeSet(frozenset()))

        assert classification.action == ChangeAction.NO_OP

    def test_updatable_change(self) -> None:
        policy = get_policy(EntityKind.OBJECT_STORE_BUCKET)

        classification = policy.classify(ChangeSet(frozenset({"hard_quota"})))

        assert classification.action == ChangeAction.UPDATE
        assert classification.update_fields == {"hard_quota"}

    def test_force_replace_change(self) -> None:
        """Test that a bucket rename is a replacement."""
        policy = get_policy(EntityKind.OBJECT_STORE_BUCKET)

        classification = policy.classify(ChangeSet(frozenset({"bucket_name", "hard_quota"})))

        assert classification.action == ChangeAction.REPLACE
        assert classification.replace_fields == {"bucket_name"}
        assert "bucket_name" in classification.reason

    def test_create_only_change_rejected(self) -> None:
        """Test that a username change is rejected, not replaced."""
        policy = get_policy(EntityKind.USER)

        with pytest.raises(ImmutableFieldChanged) as exc_info:
            policy.classify(ChangeSet(frozenset({"username", "role"})))

        assert exc_info.value.fields == ["username"]

    def test_check_mutable_rejects_force_replace_in_place(self) -> None:
        """Test that reconcilers never update replace-only fields in place."""
        policy = get_policy(EntityKind.ACCESS_POLICY)

        with pytest.raises(ImmutableFieldChanged):
            policy.check_mutable(ChangeSet(frozenset({"policy_name"})))

        policy.check_mutable(ChangeSet(frozenset({"policy_name"})), allow_replace=True)

    @pytest.mark.parametrize("field", ["group_name", "obs_name", "tiered", "encrypted"])
    def test_filesystem_create_only_fields(self, field: str) -> None:
        policy = get_policy(EntityKind.FILESYSTEM)

        with pytest.raises(ImmutableFieldChanged):
            policy.classify(ChangeSet(frozenset({field})))


class TestDeclaredOnly:
    def test_drops_computed_and_unknown(self) -> None:
        policy = get_policy(EntityKind.FILESYSTEM)
        state = {"name": "fs", "uid": "fs-1", "last_updated": "x", "stray": 1}

        assert policy.declared_only(state) == {"name": "fs"}
