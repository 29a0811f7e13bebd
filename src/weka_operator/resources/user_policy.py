"""Attachment of S3 policies to users.

A binding is identified by its username: the binding listing is a map of
username to attached policy name. A user listed without a policy counts as
absent.
"""

from __future__ import annotations

import logging
from typing import Any

from ..kinds import EntityKind
from ..models import UserPoliciesResponse
from ..mutability import ChangeSet
from ..partial import PartialApply
from .base import EntityReconciler, Observed

logger = logging.getLogger(__name__)

USER_POLICIES_PATH = "s3/userPolicies"
ATTACH_PATH = "s3/policies/attach"
DETACH_PATH = "s3/policies/detach"


class UserPolicyReconciler(EntityReconciler):
    kind = EntityKind.USER_POLICY_BINDING

    def create(self, desired: dict[str, Any]) -> Observed:
        username = desired["username"]
        self._transport.send(
            "POST",
            ATTACH_PATH,
            {"user_name": username, "policy_name": desired["s3_policy_name"]},
        )
        logger.info(
            "Attached S3 policy",
            extra={"username": username, "policy": desired["s3_policy_name"]},
        )
        return Observed(identifier=username)

    def read(self, identifier: str) -> Observed:
        listing = self._transport.send_json("GET", USER_POLICIES_PATH, UserPoliciesResponse)
        policy = listing.data.users.get(identifier)
        if not policy:
            raise self._not_found(identifier)
        return Observed(identifier=identifier, state={"s3_policy_name": policy})

    def plan_update(
        self,
        marker: PartialApply,
        identifier: str,
        previous: dict[str, Any],
        desired: dict[str, Any],
        change_set: ChangeSet,
    ) -> None:
        # Attaching replaces whatever policy the user had.
        marker.add(
            "attach",
            "POST",
            ATTACH_PATH,
            {"user_name": identifier, "policy_name": desired["s3_policy_name"]},
            {"s3_policy_name"},
        )

    def delete(self, identifier: str) -> None:
        self._transport.send("POST", DETACH_PATH, {"user_name": identifier})
        logger.info("Detached S3 policy", extra={"username": identifier})
