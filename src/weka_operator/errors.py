"""Error taxonomy for the reconciliation engine.

Every failure the engine can report derives from WekaOperatorError so the
driver can capture it into a ReconcileResult without catching unrelated
exceptions. NotFound is part of the hierarchy but is a state transition
signal (the entity is gone), not a failure.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .partial import PartialApply


class WekaOperatorError(Exception):
    """Base exception for all reconciliation errors."""

    pass


class ConfigurationError(WekaOperatorError):
    """Raised when bootstrap inputs are missing or invalid.

    Fatal: no remote call is attempted.
    """

    pass


class AuthenticationError(WekaOperatorError):
    """Raised when login is rejected or the token is unusable.

    Fatal for the whole run. The session never refreshes its token, so an
    expired token mid-run also ends up here.
    """

    pass


class DeclarationError(WekaOperatorError):
    """Raised when declared state fails local validation.

    Raised before any remote call is issued.
    """

    pass


class RemoteError(WekaOperatorError):
    """Base class for failures reported by the remote API."""

    def __init__(self, message: str | None, status: int | None = None) -> None:
        self.message = message
        self.status = status
        super().__init__(self._format())

    def _format(self) -> str:
        return f"Error from Weka API: {self.message}"


class RemoteRejected(RemoteError):
    """The response carried a structured error envelope.

    Raised regardless of HTTP status: the API reports errors with 200 OK too.
    """

    pass


class RemoteHTTPError(RemoteError):
    """Non-200 status without a structured error envelope."""

    def _format(self) -> str:
        if self.message:
            return f"Non-200 status from Weka API: {self.status}, message: {self.message}"
        return f"Non-200 status from Weka API: {self.status}"


class MalformedResponseError(RemoteHTTPError):
    """A successful response whose payload does not match the expected shape."""

    def _format(self) -> str:
        return f"Unexpected response shape from Weka API: {self.message}"


class TransportError(RemoteHTTPError):
    """The request never produced an HTTP response (connection, timeout)."""

    def _format(self) -> str:
        return f"Request to Weka API failed: {self.message}"


class NotFound(WekaOperatorError):
    """The entity no longer exists on the remote side."""

    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} '{identifier}' not found")


class ImmutableFieldChanged(WekaOperatorError):
    """An update tried to change fields that cannot be changed in place."""

    def __init__(self, kind: str, fields: list[str]) -> None:
        self.kind = kind
        self.fields = sorted(fields)
        super().__init__(f"cannot update {', '.join(self.fields)} of {kind} in place")


class UnsupportedConfiguration(WekaOperatorError):
    """The remote entity is in a shape this engine cannot manage."""

    pass


class PartialUpdateError(WekaOperatorError):
    """A multi-call update failed after some sub-calls were committed.

    Attributes:
        cause: The error raised by the failing sub-call.
        marker: Bookkeeping of every sub-call and its status.
    """

    def __init__(self, cause: WekaOperatorError, marker: PartialApply) -> None:
        self.cause = cause
        self.marker = marker
        failed = marker.failed_step
        step_name = failed.name if failed else "unknown"
        super().__init__(f"update step '{step_name}' failed: {cause}")

    @property
    def committed_fields(self) -> frozenset[str]:
        return self.marker.committed_fields
