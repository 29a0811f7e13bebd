"""S3 buckets.

Buckets are identified by name. There is no single-bucket lookup, so a
read lists every bucket. The listing reports sizes in bytes and nothing
about the anonymous policy, so only the name is verified on read.

The API splits bucket updates over two endpoints, issued in this order:
1. PUT /s3/buckets/{name}/quota
2. PUT /s3/buckets/{name}/policy

Create takes the anonymous policy as ``policy``, the policy endpoint as
``bucket_policy``.
"""

from __future__ import annotations

import logging
from typing import Any

from ..kinds import EntityKind
from ..models import S3BucketListResponse
from ..mutability import ChangeSet
from ..partial import PartialApply
from .base import EntityReconciler, Observed

logger = logging.getLogger(__name__)

BUCKETS_PATH = "s3/buckets"


class S3BucketReconciler(EntityReconciler):
    kind = EntityKind.OBJECT_STORE_BUCKET

    def create(self, desired: dict[str, Any]) -> Observed:
        name = desired["bucket_name"]
        body: dict[str, Any] = {
            "bucket_name": name,
            "policy": desired.get("anonymous_policy_name") or "none",
            "fs_uid": desired["fs_uid"],
        }
        if desired.get("hard_quota"):
            body["hard_quota"] = desired["hard_quota"]
        if desired.get("existing_path"):
            body["existing_path"] = desired["existing_path"]

        self._transport.send("POST", BUCKETS_PATH, body)
        logger.info("Created bucket", extra={"bucket": name, "fs_uid": desired["fs_uid"]})
        return Observed(identifier=name)

    def read(self, identifier: str) -> Observed:
        listing = self._transport.send_json("GET", BUCKETS_PATH, S3BucketListResponse)
        for bucket in listing.data.buckets:
            if bucket.name == identifier:
                return Observed(identifier=identifier, state={"bucket_name": bucket.name})
        raise self._not_found(identifier)

    def plan_update(
        self,
        marker: PartialApply,
        identifier: str,
        previous: dict[str, Any],
        desired: dict[str, Any],
        change_set: ChangeSet,
    ) -> None:
        if "hard_quota" in change_set:
            # An empty quota removes the limit.
            marker.add(
                "quota",
                "PUT",
                f"{BUCKETS_PATH}/{identifier}/quota",
                {"hard_quota": desired.get("hard_quota") or ""},
                {"hard_quota"},
            )
        if "anonymous_policy_name" in change_set:
            marker.add(
                "policy",
                "PUT",
                f"{BUCKETS_PATH}/{identifier}/policy",
                {"bucket_policy": desired.get("anonymous_policy_name") or "none"},
                {"anonymous_policy_name"},
            )

    def delete(self, identifier: str) -> None:
        self._transport.send("DELETE", f"{BUCKETS_PATH}/{identifier}")
        logger.info("Deleted bucket", extra={"bucket": identifier})
