"""Semantic comparison of S3 access policy documents.

The API hands policy documents back re-serialized, so a byte comparison
reports drift on every read. Documents are normalized before comparison,
treating as equal documents that differ only in:

1. Key order and whitespace
2. A single value vs a one-element list ("s3:*" vs ["s3:*"])
3. Order of statements and of Action/Resource/Principal values
4. Blank vs "{}" documents
5. An empty "Sid" vs a missing one
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class NormalizationType(str, Enum):
    """Types of normalization operations."""

    # Empty equivalence: "", [], {}, null, missing are equivalent
    EMPTY_EQUIVALENCE = "empty_equivalence"

    # A scalar is equivalent to a one-element list holding it
    SCALAR_AS_LIST = "scalar_as_list"

    # Array order independence
    ARRAY_UNORDERED = "array_unordered"


@dataclass(frozen=True)
class NormalizationRule:
    """A single normalization rule.

    Attributes:
        path_pattern: Dotted document path pattern (supports * and **)
        normalization_type: Type of normalization to apply
        reason: Human-readable explanation
    """

    path_pattern: str
    normalization_type: NormalizationType
    reason: str = ""

    def matches(self, path: str) -> bool:
        """Check if this rule applies to a document path."""
        return _glob_match(path, self.path_pattern)


def _glob_match(value: str, pattern: str) -> bool:
    """Simple glob matching with * and ** support."""
    regex_pattern = "^"
    i = 0
    while i < len(pattern):
        if pattern[i:i + 2] == "**":
            regex_pattern += ".*"
            i += 2
        elif pattern[i] == "*":
            regex_pattern += "[^.]*"
            i += 1
        else:
            regex_pattern += re.escape(pattern[i])
            i += 1
    regex_pattern += "$"
    return bool(re.match(regex_pattern, value))


# Rules are applied in order; list coercion must precede sorting.
DEFAULT_POLICY_RULES: list[NormalizationRule] = [
    NormalizationRule(
        path_pattern="Statement",
        normalization_type=NormalizationType.SCALAR_AS_LIST,
        reason="A single statement object equals a one-statement list",
    ),
    NormalizationRule(
        path_pattern="Statement",
        normalization_type=NormalizationType.ARRAY_UNORDERED,
        reason="Statements are evaluated as a set",
    ),
    NormalizationRule(
        path_pattern="Statement.Sid",
        normalization_type=NormalizationType.EMPTY_EQUIVALENCE,
        reason="Empty statement id equals no statement id",
    ),
    NormalizationRule(
        path_pattern="Statement.Condition",
        normalization_type=NormalizationType.EMPTY_EQUIVALENCE,
        reason="Empty condition block equals no condition",
    ),
]

for _key in ("Action", "NotAction", "Resource", "NotResource", "Principal.*", "NotPrincipal.*"):
    DEFAULT_POLICY_RULES.append(
        NormalizationRule(
            path_pattern=f"Statement.{_key}",
            normalization_type=NormalizationType.SCALAR_AS_LIST,
            reason=f"{_key} accepts a string or a list of strings",
        )
    )
    DEFAULT_POLICY_RULES.append(
        NormalizationRule(
            path_pattern=f"Statement.{_key}",
            normalization_type=NormalizationType.ARRAY_UNORDERED,
            reason=f"{_key} values are matched as a set",
        )
    )


class PolicyNormalizer:
    """Normalizes policy documents so equivalent ones compare equal."""

    def __init__(self, rules: list[NormalizationRule] | None = None) -> None:
        self._rules = list(rules) if rules is not None else list(DEFAULT_POLICY_RULES)

    def normalize(self, document: Any, path: str = "") -> Any:
        """Return a normalized copy of a parsed policy document."""
        value = document
        if path:
            for rule in self._rules:
                if rule.matches(path):
                    value = self._apply(value, rule.normalization_type)

        if isinstance(value, dict):
            return self._normalize_children(value, path)

        if isinstance(value, list):
            # Elements of a list share the list's path.
            items = [self._normalize_children(item, path) for item in value]
            if self._is_unordered(path):
                items.sort(key=_sort_key)
            return items

        return value

    def _normalize_children(self, item: Any, path: str) -> Any:
        if isinstance(item, dict):
            normalized: dict[str, Any] = {}
            for key, child in item.items():
                child_value = self.normalize(child, f"{path}.{key}" if path else key)
                if child_value is not None:
                    normalized[key] = child_value
            return normalized
        return item

    def _is_unordered(self, path: str) -> bool:
        return any(
            rule.normalization_type == NormalizationType.ARRAY_UNORDERED and rule.matches(path)
            for rule in self._rules
        )

    def _apply(self, value: Any, normalization_type: NormalizationType) -> Any:
        match normalization_type:
            case NormalizationType.EMPTY_EQUIVALENCE:
                if value in ("", [], {}):
                    return None
                return value
            case NormalizationType.SCALAR_AS_LIST:
                if value is None or isinstance(value, list):
                    return value
                return [value]
            case _:
                # ARRAY_UNORDERED is applied after children are normalized.
                return value


def _sort_key(value: Any) -> str:
    return json.dumps(value, sort_keys=True)


def _is_blank(document: str | None) -> bool:
    if document is None:
        return True
    stripped = document.strip()
    return stripped in ("", "{}")


_default_normalizer = PolicyNormalizer()


def policies_are_equivalent(old: str | None, new: str | None) -> bool:
    """Check if two JSON policy documents are semantically equivalent.

    Args:
        old: Previously declared or observed document.
        new: Newly declared or observed document.

    Returns:
        True if the documents are equivalent. Unparseable documents are
        never equivalent to anything but an identical string.
    """
    if _is_blank(old) and _is_blank(new):
        return True
    if old is None or new is None:
        return False
    if old == new:
        return True

    try:
        old_doc = json.loads(old)
        new_doc = json.loads(new)
    except json.JSONDecodeError:
        logger.debug("Policy document did not parse, comparing as text")
        return False

    return _default_normalizer.normalize(old_doc) == _default_normalizer.normalize(new_doc)
