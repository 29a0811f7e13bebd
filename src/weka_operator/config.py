"""Configuration management with validation.

Bootstrap inputs are validated at construction time so a missing credential
fails the run before any request is sent to the cluster.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

from .errors import ConfigurationError

# Configuration constants with documented bounds
DEFAULT_REQUEST_TIMEOUT_SECONDS = 10
MIN_REQUEST_TIMEOUT_SECONDS = 1
MAX_REQUEST_TIMEOUT_SECONDS = 120

# Manifest limits
MAX_MANIFEST_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max manifest
MAX_STATE_FILE_SIZE_BYTES = 10 * 1024 * 1024

# Environment variables supplying sensitive KMS fields when not declared
KMS_ENV_DEFAULTS: dict[str, str] = {
    "token": "WEKA_VAULT_TOKEN",
    "key_uid": "WEKA_VAULT_KEY_UID",
    "client_cert_pem": "WEKA_VAULT_CLIENT_CERT",
    "client_key_pem": "WEKA_VAULT_CLIENT_KEY",
    "ca_cert_pem": "WEKA_VAULT_CA_CERT",
}


@dataclass(frozen=True)
class OperatorConfig:
    """Credentials and connection settings for one reconciliation run.

    All four credentials are mandatory; there is no partial-credential mode.
    Invalid configurations raise ConfigurationError immediately.
    """

    # Required fields
    username: str
    password: str = field(repr=False)
    org: str
    endpoint: str

    # Transport
    request_timeout_seconds: int = DEFAULT_REQUEST_TIMEOUT_SECONDS
    verify_tls: bool = True

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.username:
            errors.append("WEKA_USERNAME is required")
        if not self.password:
            errors.append("WEKA_PASSWORD is required")
        if not self.org:
            errors.append("WEKA_ORG is required")

        if not self.endpoint:
            errors.append("WEKA_ENDPOINT is required")
        else:
            parsed = urlparse(self.endpoint)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                errors.append(f"WEKA_ENDPOINT must be an absolute http(s) URL: {self.endpoint}")

        if not (
            MIN_REQUEST_TIMEOUT_SECONDS
            <= self.request_timeout_seconds
            <= MAX_REQUEST_TIMEOUT_SECONDS
        ):
            errors.append(
                f"WEKA_REQUEST_TIMEOUT must be between {MIN_REQUEST_TIMEOUT_SECONDS} "
                f"and {MAX_REQUEST_TIMEOUT_SECONDS} seconds"
            )

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> OperatorConfig:
        """Load configuration from environment variables.

        Environment Variables:
            WEKA_USERNAME: Login user name
            WEKA_PASSWORD: Login password
            WEKA_ORG: Organization the user belongs to
            WEKA_ENDPOINT: API base URL, e.g. https://weka01:14000/api/v2
            WEKA_REQUEST_TIMEOUT: Per-request deadline in seconds (default: 10)
            WEKA_VERIFY_TLS: If "false", skip certificate verification (default: true)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        return cls(
            username=os.environ.get("WEKA_USERNAME", ""),
            password=os.environ.get("WEKA_PASSWORD", ""),
            org=os.environ.get("WEKA_ORG", ""),
            endpoint=os.environ.get("WEKA_ENDPOINT", ""),
            request_timeout_seconds=get_int(
                "WEKA_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT_SECONDS
            ),
            verify_tls=get_bool("WEKA_VERIFY_TLS", True),
        )


def kms_defaults_from_env(declared: dict[str, Any]) -> dict[str, Any]:
    """Fill unset sensitive KMS fields from their environment variables.

    Declared values always win; empty strings count as unset.
    """
    merged = dict(declared)
    for field_name, env_var in KMS_ENV_DEFAULTS.items():
        if merged.get(field_name):
            continue
        value = os.environ.get(env_var)
        if value:
            merged[field_name] = value
    return merged
