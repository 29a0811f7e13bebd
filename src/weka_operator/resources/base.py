"""Common create/read/update/delete contract of entity reconcilers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, TypeVar

from pydantic import BaseModel

from ..errors import MalformedResponseError, NotFound, RemoteError, TransportError
from ..kinds import EntityKind
from ..mutability import ChangeSet, EntityPolicy, get_policy
from ..partial import PartialApply
from ..transport import Transport

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

NOT_FOUND_STATUS = 404
NOT_FOUND_MARKERS = ("not found", "does not exist", "doesn't exist")


def is_not_found(error: RemoteError) -> bool:
    """Check if a remote failure means the entity does not exist."""
    if isinstance(error, MalformedResponseError | TransportError):
        return False
    if error.status == NOT_FOUND_STATUS:
        return True
    message = (error.message or "").lower()
    return any(marker in message for marker in NOT_FOUND_MARKERS)


@dataclass
class Observed:
    """What a create or read learned about an entity.

    Attributes:
        identifier: Durable identifier of the entity.
        state: Only the fields the API actually reported, plus computed
            fields. Fields absent here keep their declared value.
    """

    identifier: str
    state: dict[str, Any] = field(default_factory=dict)


@dataclass
class UpdateOutcome:
    """Result of a fully committed update."""

    identifier: str
    marker: PartialApply
    state: dict[str, Any] = field(default_factory=dict)


class EntityReconciler(ABC):
    """Create/read/update/delete for one entity kind.

    Reconcilers are stateless apart from the injected transport, and issue
    their calls strictly one after another.
    """

    kind: ClassVar[EntityKind]

    def __init__(self, transport: Transport) -> None:
        self._transport = transport
        self.policy: EntityPolicy = get_policy(self.kind)

    @abstractmethod
    def create(self, desired: dict[str, Any]) -> Observed:
        """Create the entity from validated declared state."""

    @abstractmethod
    def read(self, identifier: str) -> Observed:
        """Read the entity.

        Raises:
            NotFound: The entity no longer exists.
        """

    @abstractmethod
    def delete(self, identifier: str) -> None:
        """Delete the entity. Any failure propagates."""

    @abstractmethod
    def plan_update(
        self,
        marker: PartialApply,
        identifier: str,
        previous: dict[str, Any],
        desired: dict[str, Any],
        change_set: ChangeSet,
    ) -> None:
        """Append the sub-calls realizing a change set, in their fixed order."""

    def state_from_update(self, marker: PartialApply) -> dict[str, Any]:
        """Fields reported back by committed update calls."""
        return {}

    def update(
        self,
        identifier: str,
        previous: dict[str, Any],
        desired: dict[str, Any],
        change_set: ChangeSet,
    ) -> UpdateOutcome:
        """Apply updatable changes in place.

        Raises:
            ImmutableFieldChanged: A create-only or force-replace field is
                in the change set. Raised before any call is issued.
            PartialUpdateError: A sub-call failed; the marker tells which
                sub-calls were committed.
        """
        self.policy.check_mutable(change_set)

        marker = PartialApply(kind=self.kind.value, identifier=identifier)
        self.plan_update(marker, identifier, previous, desired, change_set)

        logger.info(
            "Updating entity",
            extra={
                "kind": self.kind.value,
                "identifier": identifier,
                "changed": list(change_set),
                "steps": [step.name for step in marker.steps],
            },
        )

        marker.execute(self._transport)
        return UpdateOutcome(
            identifier=identifier,
            marker=marker,
            state=self.state_from_update(marker),
        )

    def _get_or_not_found(self, path: str, model: type[ModelT], identifier: str) -> ModelT:
        """Direct lookup: GET one entity, mapping not-found failures to NotFound."""
        try:
            return self._transport.send_json("GET", path, model)
        except RemoteError as e:
            if is_not_found(e):
                raise NotFound(self.kind.value, identifier) from e
            raise

    def _not_found(self, identifier: str) -> NotFound:
        logger.info(
            "Entity missing from remote listing",
            extra={"kind": self.kind.value, "identifier": identifier},
        )
        return NotFound(self.kind.value, identifier)
