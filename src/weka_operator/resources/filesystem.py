"""Filesystems.

Capacities are declared in gigabytes of 1,000,000,000 bytes and sent in
bytes. Tiered filesystems are backed by exactly one object-store bucket;
a filesystem reporting more than one cannot be managed.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from ..errors import UnsupportedConfiguration
from ..kinds import EntityKind
from ..models import FilesystemRecord, FilesystemResponse
from ..mutability import ChangeSet
from ..partial import PartialApply
from .base import EntityReconciler, Observed

logger = logging.getLogger(__name__)

FILESYSTEMS_PATH = "fileSystems"
BYTES_PER_GB = 1_000_000_000


def gb_to_bytes(gigabytes: int) -> int:
    return gigabytes * BYTES_PER_GB


def bytes_to_gb(size: int) -> int:
    return size // BYTES_PER_GB


def filesystem_state(record: FilesystemRecord) -> dict[str, Any]:
    """Translate a filesystem record into declared field values.

    Raises:
        UnsupportedConfiguration: More than one object-store bucket.
    """
    state: dict[str, Any] = {
        "uid": record.uid,
        "name": record.name,
        "total_capacity_gb": bytes_to_gb(record.available_total + record.used_total),
        "encrypted": record.is_encrypted,
        "auth_required": record.auth_required,
        "tiered": bool(record.obs_buckets),
    }
    if record.group_name is not None:
        state["group_name"] = record.group_name

    if record.obs_buckets:
        if len(record.obs_buckets) > 1:
            raise UnsupportedConfiguration(
                f"Filesystem '{record.name}' has {len(record.obs_buckets)} object-store "
                "buckets; tiered filesystems with more than one bucket are not supported"
            )
        state["obs_name"] = record.obs_buckets[0].name
        state["ssd_capacity_gb"] = bytes_to_gb(record.available_ssd + record.used_ssd)

    return state


class FilesystemReconciler(EntityReconciler):
    kind = EntityKind.FILESYSTEM

    def create(self, desired: dict[str, Any]) -> Observed:
        body: dict[str, Any] = {
            "name": desired["name"],
            "group_name": desired["group_name"],
            "total_capacity": gb_to_bytes(desired["total_capacity_gb"]),
            "encrypted": bool(desired.get("encrypted")),
            "auth_required": bool(desired.get("auth_required")),
            "allow_no_kms": bool(desired.get("allow_no_kms")),
        }
        if desired.get("tiered"):
            body["obs_name"] = desired["obs_name"]
            body["ssd_capacity"] = gb_to_bytes(desired.get("ssd_capacity_gb") or 0)

        response = self._transport.send_json("POST", FILESYSTEMS_PATH, FilesystemResponse, body)
        uid = response.data.uid
        logger.info("Created filesystem", extra={"uid": uid, "filesystem": desired["name"]})
        return Observed(identifier=uid, state={"uid": uid})

    def read(self, identifier: str) -> Observed:
        response = self._get_or_not_found(
            f"{FILESYSTEMS_PATH}/{identifier}", FilesystemResponse, identifier
        )
        return Observed(identifier=identifier, state=filesystem_state(response.data))

    def plan_update(
        self,
        marker: PartialApply,
        identifier: str,
        previous: dict[str, Any],
        desired: dict[str, Any],
        change_set: ChangeSet,
    ) -> None:
        body: dict[str, Any] = {}
        fields: set[str] = set()

        if "name" in change_set:
            body["new_name"] = desired["name"]
            fields.add("name")
        if "total_capacity_gb" in change_set:
            body["total_capacity"] = gb_to_bytes(desired["total_capacity_gb"])
            fields.add("total_capacity_gb")
        if "auth_required" in change_set:
            body["auth_required"] = bool(desired.get("auth_required"))
            fields.add("auth_required")
        if "ssd_capacity_gb" in change_set:
            # Only tiered filesystems have a separate SSD capacity.
            if desired.get("tiered"):
                body["ssd_capacity"] = gb_to_bytes(desired.get("ssd_capacity_gb") or 0)
            fields.add("ssd_capacity_gb")

        if body:
            marker.add("filesystem", "PUT", f"{FILESYSTEMS_PATH}/{identifier}", body, fields)
        else:
            logger.info(
                "No filesystem attribute to send for change set",
                extra={"uid": identifier, "changed": list(change_set)},
            )

    def state_from_update(self, marker: PartialApply) -> dict[str, Any]:
        for step in marker.steps:
            if step.response is None:
                continue
            try:
                record = FilesystemResponse.model_validate_json(step.response).data
                return filesystem_state(record)
            except (ValidationError, UnsupportedConfiguration) as e:
                logger.warning(
                    "Could not read filesystem state from update response",
                    extra={"uid": marker.identifier, "error": str(e)},
                )
        return {}

    def delete(self, identifier: str) -> None:
        self._transport.send("DELETE", f"{FILESYSTEMS_PATH}/{identifier}")
        logger.info("Deleted filesystem", extra={"uid": identifier})
