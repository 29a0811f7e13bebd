"""Cluster users.

The API has no call returning a single user, so reads list every user and
scan for the uid. The listing only reports the role among the fields that
can be declared; password and POSIX ids are never read back.

Updates touch two endpoints, always in this order:
1. PUT /users/password when the password changed
2. PUT /users/{uid} with the changed subset of role, posix_uid, posix_gid
"""

from __future__ import annotations

import logging
from typing import Any

from ..kinds import EntityKind
from ..models import UserListResponse, UserResponse
from ..mutability import ChangeSet
from ..partial import PartialApply
from .base import EntityReconciler, Observed

logger = logging.getLogger(__name__)

USERS_PATH = "users"
PASSWORD_PATH = "users/password"
USER_ATTRIBUTES = ("role", "posix_uid", "posix_gid")


class UserReconciler(EntityReconciler):
    kind = EntityKind.USER

    def create(self, desired: dict[str, Any]) -> Observed:
        body: dict[str, Any] = {
            "username": desired["username"],
            "password": desired["password"],
            "role": desired["role"],
        }
        for name in ("posix_uid", "posix_gid"):
            if desired.get(name) is not None:
                body[name] = desired[name]

        response = self._transport.send_json("POST", USERS_PATH, UserResponse, body)
        record = response.data

        state: dict[str, Any] = {"uid": record.uid}
        if record.posix_uid is not None:
            state["posix_uid"] = record.posix_uid
        if record.posix_gid is not None:
            state["posix_gid"] = record.posix_gid

        logger.info("Created user", extra={"uid": record.uid, "username": record.username})
        return Observed(identifier=record.uid, state=state)

    def read(self, identifier: str) -> Observed:
        listing = self._transport.send_json("GET", USERS_PATH, UserListResponse)
        for record in listing.data:
            if record.uid != identifier:
                continue
            state: dict[str, Any] = {"uid": record.uid}
            if record.role is not None:
                state["role"] = record.role
            return Observed(identifier=identifier, state=state)
        raise self._not_found(identifier)

    def plan_update(
        self,
        marker: PartialApply,
        identifier: str,
        previous: dict[str, Any],
        desired: dict[str, Any],
        change_set: ChangeSet,
    ) -> None:
        if "password" in change_set:
            marker.add(
                "password",
                "PUT",
                PASSWORD_PATH,
                {
                    "username": desired["username"],
                    "old_password": previous.get("password"),
                    "new_password": desired["password"],
                    "org": self._transport.session.org,
                },
                {"password"},
            )

        changed = [name for name in USER_ATTRIBUTES if name in change_set]
        if changed:
            marker.add(
                "attributes",
                "PUT",
                f"{USERS_PATH}/{identifier}",
                {name: desired.get(name) for name in changed},
                set(changed),
            )

    def delete(self, identifier: str) -> None:
        self._transport.send("DELETE", f"{USERS_PATH}/{identifier}")
        logger.info("Deleted user", extra={"uid": identifier})
