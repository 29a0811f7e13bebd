"""Per-update bookkeeping of remote sub-calls.

Some updates need several independent API calls (a bucket's quota and its
anonymous policy live behind separate endpoints). The marker records, for
one update invocation, each planned call and whether it was committed, so
that a failure half-way reports the fields already changed on the cluster.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import PartialUpdateError, WekaOperatorError
from .transport import Transport

logger = logging.getLogger(__name__)


class StepStatus(str, Enum):
    """Lifecycle of one sub-call."""

    PENDING = "pending"
    COMMITTED = "committed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class SubCall:
    """One remote call realizing part of a change set.

    Attributes:
        name: Short label used in logs and errors.
        method: HTTP method.
        path: API path.
        body: JSON body.
        fields: Declared fields this call commits when it succeeds.
        status: Current status.
        response: Raw payload of a committed call.
    """

    name: str
    method: str
    path: str
    body: dict[str, Any] | None
    fields: frozenset[str]
    status: StepStatus = StepStatus.PENDING
    response: bytes | None = None


@dataclass
class PartialApply:
    """Ordered sub-calls of one update and their outcome."""

    kind: str
    identifier: str
    steps: list[SubCall] = field(default_factory=list)

    def add(
        self,
        name: str,
        method: str,
        path: str,
        body: dict[str, Any] | None,
        fields: set[str] | frozenset[str],
    ) -> SubCall:
        step = SubCall(name=name, method=method, path=path, body=body, fields=frozenset(fields))
        self.steps.append(step)
        return step

    @property
    def committed_fields(self) -> frozenset[str]:
        committed: set[str] = set()
        for step in self.steps:
            if step.status == StepStatus.COMMITTED:
                committed |= step.fields
        return frozenset(committed)

    @property
    def failed_step(self) -> SubCall | None:
        for step in self.steps:
            if step.status == StepStatus.FAILED:
                return step
        return None

    def summary(self) -> dict[str, str]:
        return {step.name: step.status.value for step in self.steps}

    def execute(self, transport: Transport) -> None:
        """Issue every pending step in order, stopping at the first failure.

        Args:
            transport: Transport used for the calls.

        Raises:
            PartialUpdateError: A step failed. Steps before it stay
                COMMITTED, the failing one is FAILED, later ones SKIPPED.
        """
        for index, step in enumerate(self.steps):
            if step.status != StepStatus.PENDING:
                continue
            try:
                step.response = transport.send(step.method, step.path, step.body)
            except WekaOperatorError as e:
                step.status = StepStatus.FAILED
                for later in self.steps[index + 1:]:
                    later.status = StepStatus.SKIPPED
                logger.warning(
                    "Update step failed",
                    extra={
                        "kind": self.kind,
                        "identifier": self.identifier,
                        "step": step.name,
                        "committed": sorted(self.committed_fields),
                        "steps": self.summary(),
                        "error": str(e),
                    },
                )
                raise PartialUpdateError(e, self) from e

            step.status = StepStatus.COMMITTED
            logger.info(
                "Update step committed",
                extra={
                    "kind": self.kind,
                    "identifier": self.identifier,
                    "step": step.name,
                    "fields": sorted(step.fields),
                },
            )
