"""S3 access policies.

Policies are identified by name. Posting a policy is the only write path:
it creates the policy or replaces the content of an existing one.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from ..kinds import EntityKind
from ..models import S3PolicyResponse
from ..mutability import ChangeSet
from ..partial import PartialApply
from .base import EntityReconciler, Observed

logger = logging.getLogger(__name__)

POLICIES_PATH = "s3/policies"


def policy_body(desired: dict[str, Any]) -> dict[str, Any]:
    # Content travels as a JSON object, not as the declared string.
    return {
        "policy_name": desired["policy_name"],
        "policy_file_content": json.loads(desired["policy_file_content"]),
    }


class S3PolicyReconciler(EntityReconciler):
    kind = EntityKind.ACCESS_POLICY

    def create(self, desired: dict[str, Any]) -> Observed:
        name = desired["policy_name"]
        self._transport.send("POST", POLICIES_PATH, policy_body(desired))
        logger.info("Created S3 policy", extra={"policy": name})
        return Observed(identifier=name)

    def read(self, identifier: str) -> Observed:
        response = self._get_or_not_found(
            f"{POLICIES_PATH}/{identifier}", S3PolicyResponse, identifier
        )
        policy = response.data.policy
        return Observed(
            identifier=identifier,
            state={
                "policy_name": policy.name,
                "policy_file_content": json.dumps(policy.content, sort_keys=True),
            },
        )

    def plan_update(
        self,
        marker: PartialApply,
        identifier: str,
        previous: dict[str, Any],
        desired: dict[str, Any],
        change_set: ChangeSet,
    ) -> None:
        marker.add("content", "POST", POLICIES_PATH, policy_body(desired), {"policy_file_content"})

    def delete(self, identifier: str) -> None:
        self._transport.send("DELETE", f"{POLICIES_PATH}/{identifier}")
        logger.info("Deleted S3 policy", extra={"policy": identifier})
