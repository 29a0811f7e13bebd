"""Authenticated session for one reconciliation run.

The session logs in once with the configured credentials and keeps the
bearer token for the rest of the run. The login response also carries
expires_in and a refresh token; neither is used. A token that expires
mid-run makes subsequent calls fail with AuthenticationError and the run
has to be started again.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

import requests
from pydantic import ValidationError

from .config import OperatorConfig
from .errors import AuthenticationError, ConfigurationError
from .models import AuthResponse

logger = logging.getLogger(__name__)

LOGIN_PATH = "login"
JSON_CONTENT_TYPE = "application/json; charset=utf-8"


def join_url(endpoint: str, path: str) -> str:
    """Join an API path onto the endpoint URL, keeping the endpoint's path."""
    return f"{endpoint.rstrip('/')}/{path.lstrip('/')}"


@dataclass(frozen=True)
class Session:
    """Bearer token, endpoint and organization shared by every reconciler.

    Immutable after construction, so it can be shared across concurrently
    reconciled entities without locking.
    """

    endpoint: str
    org: str
    access_token: str = field(repr=False)
    token_type: str = "bearer"
    expires_in: int = 0
    refresh_token: str | None = field(default=None, repr=False)
    request_timeout_seconds: int = 10
    verify_tls: bool = True
    http: requests.Session = field(default_factory=requests.Session, repr=False, compare=False)

    def url(self, path: str) -> str:
        return join_url(self.endpoint, path)

    @property
    def authorization_header(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    @classmethod
    def authenticate(
        cls,
        config: OperatorConfig,
        http: requests.Session | None = None,
    ) -> Session:
        """Log in and build a session.

        Args:
            config: Validated operator configuration.
            http: HTTP session to use; a new requests.Session if omitted.

        Returns:
            Authenticated session.

        Raises:
            ConfigurationError: If a credential is missing.
            AuthenticationError: If login is rejected or the token type is
                not "bearer".
        """
        if not (config.username and config.password and config.org and config.endpoint):
            raise ConfigurationError(
                "Unable to create Weka client: missing required parameters to authenticate"
            )

        http = http if http is not None else requests.Session()
        login_url = join_url(config.endpoint, LOGIN_PATH)
        payload = json.dumps(
            {"username": config.username, "password": config.password, "org": config.org}
        ).encode("utf-8")

        logger.info(
            "Authenticating to Weka API",
            extra={"endpoint": config.endpoint, "org": config.org, "username": config.username},
        )

        try:
            response = http.request(
                "POST",
                login_url,
                data=payload,
                headers={"Content-Type": JSON_CONTENT_TYPE},
                timeout=config.request_timeout_seconds,
                verify=config.verify_tls,
            )
        except requests.RequestException as e:
            raise AuthenticationError(f"Login request to {login_url} failed: {e}") from e

        body = response.content
        if response.status_code != 200:
            raise AuthenticationError(
                f"non-200 response from Weka API path {login_url}: "
                f"{response.status_code} {body.decode('utf-8', errors='replace')}"
            )

        try:
            auth = AuthResponse.model_validate_json(body)
        except ValidationError as e:
            raise AuthenticationError(f"Unreadable login response from {login_url}") from e

        if auth.data.token_type.lower() != "bearer":
            raise AuthenticationError(
                f"Unknown token type from Weka API ({auth.data.token_type}) path {login_url}"
            )

        logger.info(
            "Authenticated to Weka API",
            extra={"org": config.org, "expires_in": auth.data.expires_in},
        )

        return cls(
            endpoint=config.endpoint,
            org=config.org,
            access_token=auth.data.access_token,
            token_type=auth.data.token_type,
            expires_in=auth.data.expires_in,
            refresh_token=auth.data.refresh_token,
            request_timeout_seconds=config.request_timeout_seconds,
            verify_tls=config.verify_tls,
            http=http,
        )
