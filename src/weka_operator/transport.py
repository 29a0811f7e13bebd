"""Single-request HTTP transport with Weka error classification.

The Weka API reports errors inconsistently: a JSON error envelope may come
with 200 OK, with an error status, or an error status may come with no body
at all. Responses are therefore classified in a fixed order:

1. Parse the body as the envelope {message, data: {error, reason}}
2. Envelope parsed and data.error or data.reason non-empty -> RemoteRejected,
   whatever the status code
3. Status 401 -> AuthenticationError (the session token is never refreshed)
4. Any other status != 200 -> RemoteHTTPError, with the envelope message if any
5. Otherwise the raw body is the payload

There are no retries.
"""

from __future__ import annotations

import json
import logging
from typing import Any, TypeVar

import requests
from pydantic import BaseModel, ValidationError

from .errors import (
    AuthenticationError,
    MalformedResponseError,
    RemoteHTTPError,
    RemoteRejected,
    TransportError,
)
from .models import ErrorEnvelope
from .session import JSON_CONTENT_TYPE, Session

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Keys whose values never reach the logs
REDACTED_KEYS: frozenset[str] = frozenset({
    "password",
    "old_password",
    "new_password",
    "token",
    "access_token",
    "refresh_token",
    "key_uid",
    "client_cert_pem",
    "client_key_pem",
    "ca_cert_pem",
})
REDACTED = "***"

METHODS_WITH_BODY = ("POST", "PUT")


def redact(value: Any) -> Any:
    """Return a copy of a JSON value with sensitive keys masked."""
    if isinstance(value, dict):
        return {
            key: REDACTED if key in REDACTED_KEYS else redact(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [redact(item) for item in value]
    return value


def _redacted_text(body: bytes) -> str:
    try:
        return json.dumps(redact(json.loads(body)))
    except (json.JSONDecodeError, UnicodeDecodeError):
        return f"<{len(body)} bytes, not JSON>"


def classify_response(status: int, body: bytes) -> bytes:
    """Classify a status/body pair into a payload or a typed failure.

    Args:
        status: HTTP status code.
        body: Full response body.

    Returns:
        The body, when the response is a success.

    Raises:
        RemoteRejected: The body is an error envelope (any status).
        AuthenticationError: Status 401 without an error envelope.
        RemoteHTTPError: Any other non-200 status.
    """
    message: str | None = None

    try:
        envelope = ErrorEnvelope.model_validate_json(body)
    except ValidationError:
        envelope = None
        logger.debug("Response body did not parse as an error envelope")

    if envelope is not None:
        message = envelope.message or None
        if envelope.is_error:
            raise RemoteRejected(envelope.message, status=status)

    if status == 401:
        raise AuthenticationError(
            f"Weka API rejected the session token ({message or 'no message'}); "
            "tokens are not refreshed, start a new run"
        )

    if status != 200:
        raise RemoteHTTPError(message, status=status)

    return body


class Transport:
    """Issues one HTTP request at a time against the Weka API.

    The underlying requests.Session pools connections and is safe to share
    between reconcilers.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    def send(self, method: str, path: str, body: dict[str, Any] | None = None) -> bytes:
        """Send a request and return the successful payload.

        Args:
            method: HTTP method.
            path: API path relative to the endpoint.
            body: JSON body for POST/PUT.

        Returns:
            Raw response body.

        Raises:
            RemoteRejected, RemoteHTTPError, AuthenticationError: See
                classify_response.
            TransportError: No HTTP response was received.
        """
        method = method.upper()
        url = self._session.url(path)
        headers = dict(self._session.authorization_header)
        data: bytes | None = None

        if method in METHODS_WITH_BODY:
            headers["Content-Type"] = JSON_CONTENT_TYPE
            data = json.dumps(body if body is not None else {}).encode("utf-8")

        logger.debug(
            "Weka request",
            extra={
                "method": method,
                "url": url,
                "body": json.dumps(redact(body)) if body is not None else None,
            },
        )

        try:
            response = self._session.http.request(
                method,
                url,
                data=data,
                headers=headers,
                timeout=self._session.request_timeout_seconds,
                verify=self._session.verify_tls,
            )
        except requests.RequestException as e:
            raise TransportError(f"{method} {url}: {e}") from e

        content = response.content
        logger.debug(
            "Weka response",
            extra={
                "method": method,
                "url": url,
                "status": response.status_code,
                "body": _redacted_text(content),
            },
        )

        return classify_response(response.status_code, content)

    def send_json(
        self,
        method: str,
        path: str,
        model: type[ModelT],
        body: dict[str, Any] | None = None,
    ) -> ModelT:
        """Send a request and decode the payload into a wire model.

        Raises:
            MalformedResponseError: The payload does not match the model.
        """
        payload = self.send(method, path, body)
        try:
            return model.model_validate_json(payload)
        except ValidationError as e:
            raise MalformedResponseError(
                f"{method} {path} did not return a {model.__name__}: {e.error_count()} errors",
                status=200,
            ) from e
