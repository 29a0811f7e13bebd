"""Filesystem groups."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from ..kinds import EntityKind
from ..models import FilesystemGroupRecord, FilesystemGroupResponse
from ..mutability import ChangeSet
from ..partial import PartialApply
from .base import EntityReconciler, Observed

logger = logging.getLogger(__name__)

FILESYSTEM_GROUPS_PATH = "fileSystemsGroups"


def filesystem_group_state(record: FilesystemGroupRecord) -> dict[str, Any]:
    return {
        "uid": record.uid,
        "name": record.name,
        "target_ssd_retention": record.target_ssd_retention,
        "start_demote": record.start_demote,
    }


class FilesystemGroupReconciler(EntityReconciler):
    kind = EntityKind.FILESYSTEM_GROUP

    def create(self, desired: dict[str, Any]) -> Observed:
        body = {
            "name": desired["name"],
            "target_ssd_retention": desired["target_ssd_retention"],
            "start_demote": desired["start_demote"],
        }
        response = self._transport.send_json(
            "POST", FILESYSTEM_GROUPS_PATH, FilesystemGroupResponse, body
        )
        uid = response.data.uid
        logger.info("Created filesystem group", extra={"uid": uid, "group": desired["name"]})
        return Observed(identifier=uid, state={"uid": uid})

    def read(self, identifier: str) -> Observed:
        response = self._get_or_not_found(
            f"{FILESYSTEM_GROUPS_PATH}/{identifier}", FilesystemGroupResponse, identifier
        )
        return Observed(identifier=identifier, state=filesystem_group_state(response.data))

    def plan_update(
        self,
        marker: PartialApply,
        identifier: str,
        previous: dict[str, Any],
        desired: dict[str, Any],
        change_set: ChangeSet,
    ) -> None:
        body: dict[str, Any] = {}
        if "name" in change_set:
            body["new_name"] = desired["name"]
        for name in ("target_ssd_retention", "start_demote"):
            if name in change_set:
                body[name] = desired[name]

        marker.add(
            "group",
            "PUT",
            f"{FILESYSTEM_GROUPS_PATH}/{identifier}",
            body,
            change_set.fields,
        )

    def state_from_update(self, marker: PartialApply) -> dict[str, Any]:
        for step in marker.steps:
            if step.response is None:
                continue
            try:
                return filesystem_group_state(
                    FilesystemGroupResponse.model_validate_json(step.response).data
                )
            except ValidationError as e:
                logger.warning(
                    "Could not read filesystem group state from update response",
                    extra={"uid": marker.identifier, "error": str(e)},
                )
        return {}

    def delete(self, identifier: str) -> None:
        self._transport.send("DELETE", f"{FILESYSTEM_GROUPS_PATH}/{identifier}")
        logger.info("Deleted filesystem group", extra={"uid": identifier})
