"""Tests for semantic policy document comparison."""

import json

import pytest

from weka_operator.policy_diff import (
    NormalizationRule,
    NormalizationType,
    PolicyNormalizer,
    policies_are_equivalent,
)


def doc(value: dict) -> str:
    return json.dumps(value)


READ_ONLY = {
    "Version": "2012-10-17",
    "Statement": [
        {
            "Effect": "Allow",
            "Action": ["s3:GetObject", "s3:ListBucket"],
            "Resource": ["arn:aws:s3:::data/*", "arn:aws:s3:::data"],
        }
    ],
}


class TestNormalizationRule:
    """Tests for rule path matching."""

    def test_exact_match(self) -> None:
        rule = NormalizationRule("Statement.Action", NormalizationType.ARRAY_UNORDERED)

        assert rule.matches("Statement.Action")
        assert not rule.matches("Statement.Resource")

    def test_single_star_stays_within_segment(self) -> None:
        rule = NormalizationRule("Statement.Principal.*", NormalizationType.SCALAR_AS_LIST)

        assert rule.matches("Statement.Principal.AWS")
        assert not rule.matches("Statement.Principal.AWS.Nested")

    def test_double_star_crosses_segments(self) -> None:
        rule = NormalizationRule("Statement.**", NormalizationType.EMPTY_EQUIVALENCE)

        assert rule.matches("Statement.Condition.StringEquals")


class TestPoliciesAreEquivalent:
    """Tests for policies_are_equivalent."""

    def test_identical_documents(self) -> None:
        assert policies_are_equivalent(doc(READ_ONLY), doc(READ_ONLY))

    def test_key_order_and_whitespace(self) -> None:
        """Test that re-serialization is not a change."""
        reserialized = json.dumps(READ_ONLY, sort_keys=True, indent=4)

        assert policies_are_equivalent(doc(READ_ONLY), reserialized)

    def test_action_order_irrelevant(self) -> None:
        """Test that Action and Resource lists compare as sets."""
        statement = dict(READ_ONLY["Statement"][0])
        statement["Action"] = list(reversed(statement["Action"]))
        statement["Resource"] = list(reversed(statement["Resource"]))
        reordered = {**READ_ONLY, "Statement": [statement]}

        assert policies_are_equivalent(doc(READ_ONLY), doc(reordered))

    def test_scalar_equals_single_element_list(self) -> None:
        """Test that "s3:*" equals ["s3:*"]."""
        scalar = {"Statement": [{"Effect": "Allow", "Action": "s3:*", "Resource": "*"}]}
        listed = {"Statement": [{"Effect": "Allow", "Action": ["s3:*"], "Resource": ["*"]}]}

        assert policies_are_equivalent(doc(scalar), doc(listed))

    def test_single_statement_object(self) -> None:
        """Test that a bare statement object equals a one-statement list."""
        statement = {"Effect": "Deny", "Action": "s3:DeleteObject", "Resource": "*"}

        assert policies_are_equivalent(
            doc({"Statement": statement}), doc({"Statement": [statement]})
        )

    def test_statement_order_irrelevant(self) -> None:
        """Test that statements are compared as a set."""
        first = {"Effect": "Allow", "Action": "s3:GetObject", "Resource": "*"}
        second = {"Effect": "Deny", "Action": "s3:PutObject", "Resource": "*"}

        assert policies_are_equivalent(
            doc({"Statement": [first, second]}), doc({"Statement": [second, first]})
        )

    def test_principal_values_unordered(self) -> None:
        """Test that principal lists compare as sets."""
        a = {"Statement": [{"Effect": "Allow", "Principal": {"AWS": ["u1", "u2"]}}]}
        b = {"Statement": [{"Effect": "Allow", "Principal": {"AWS": ["u2", "u1"]}}]}

        assert policies_are_equivalent(doc(a), doc(b))

    def test_empty_sid_equals_missing(self) -> None:
        with_sid = {"Statement": [{"Sid": "", "Effect": "Allow", "Action": "s3:*"}]}
        without_sid = {"Statement": [{"Effect": "Allow", "Action": "s3:*"}]}

        assert policies_are_equivalent(doc(with_sid), doc(without_sid))

    def test_different_effect_is_a_change(self) -> None:
        allow = {"Statement": [{"Effect": "Allow", "Action": "s3:*"}]}
        deny = {"Statement": [{"Effect": "Deny", "Action": "s3:*"}]}

        assert not policies_are_equivalent(doc(allow), doc(deny))

    def test_extra_action_is_a_change(self) -> None:
        one = {"Statement": [{"Effect": "Allow", "Action": ["s3:GetObject"]}]}
        two = {"Statement": [{"Effect": "Allow", "Action": ["s3:GetObject", "s3:PutObject"]}]}

        assert not policies_are_equivalent(doc(one), doc(two))

    @pytest.mark.parametrize(
        ("old", "new"),
        [("", "{}"), (None, ""), ("{}", " {} "), (None, None)],
    )
    def test_blank_documents_are_equal(self, old: str | None, new: str | None) -> None:
        assert policies_are_equivalent(old, new)

    def test_blank_vs_content(self) -> None:
        assert not policies_are_equivalent("", doc(READ_ONLY))
        assert not policies_are_equivalent(None, doc(READ_ONLY))

    def test_invalid_json_is_never_equivalent(self) -> None:
        """Test that unparseable documents only equal identical text."""
        assert not policies_are_equivalent("{not json", doc(READ_ONLY))
        assert policies_are_equivalent("{not json", "{not json")


class TestPolicyNormalizer:
    """Tests for PolicyNormalizer with custom rules."""

    def test_custom_rules_replace_defaults(self) -> None:
        """Test that only the given rules apply."""
        normalizer = PolicyNormalizer(rules=[])
        document = {"Statement": [{"Action": ["b", "a"]}]}

        assert normalizer.normalize(document) == document

    def test_default_rules_sort_actions(self) -> None:
        normalizer = PolicyNormalizer()

        normalized = normalizer.normalize({"Statement": [{"Action": ["b", "a"]}]})

        assert normalized == {"Statement": [{"Action": ["a", "b"]}]}
