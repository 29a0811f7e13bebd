"""Tests for configuration loading."""

import os
from unittest.mock import patch

import pytest

from weka_operator.config import (
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    OperatorConfig,
    kms_defaults_from_env,
)
from weka_operator.errors import ConfigurationError

VALID = {
    "username": "admin",
    "password": "secret",
    "org": "Root",
    "endpoint": "https://weka01:14000/api/v2",
}


class TestOperatorConfig:
    """Tests for OperatorConfig class."""

    def test_valid_config(self) -> None:
        """Test creating a valid configuration."""
        config = OperatorConfig(**VALID)

        assert config.username == "admin"
        assert config.request_timeout_seconds == DEFAULT_REQUEST_TIMEOUT_SECONDS
        assert config.verify_tls is True

    def test_password_not_in_repr(self) -> None:
        """Test that the password never shows up in repr."""
        config = OperatorConfig(**VALID)

        assert "secret" not in repr(config)

    @pytest.mark.parametrize("missing", ["username", "password", "org", "endpoint"])
    def test_missing_credential(self, missing: str) -> None:
        """Test that every credential is mandatory."""
        values = {**VALID, missing: ""}

        with pytest.raises(ConfigurationError) as exc_info:
            OperatorConfig(**values)

        assert f"WEKA_{missing.upper()}" in str(exc_info.value)

    def test_all_problems_reported_together(self) -> None:
        """Test that validation collects every problem before raising."""
        with pytest.raises(ConfigurationError) as exc_info:
            OperatorConfig(username="", password="", org="", endpoint="")

        message = str(exc_info.value)
        assert "WEKA_USERNAME" in message
        assert "WEKA_PASSWORD" in message
        assert "WEKA_ORG" in message
        assert "WEKA_ENDPOINT" in message

    @pytest.mark.parametrize("endpoint", ["weka01:14000", "ftp://weka01/api", "https://"])
    def test_endpoint_must_be_absolute_http_url(self, endpoint: str) -> None:
        """Test that the endpoint must parse as an http(s) URL."""
        with pytest.raises(ConfigurationError) as exc_info:
            OperatorConfig(**{**VALID, "endpoint": endpoint})

        assert "absolute http(s) URL" in str(exc_info.value)

    @pytest.mark.parametrize("timeout", [0, 121])
    def test_timeout_bounds(self, timeout: int) -> None:
        """Test that the request timeout is bounded."""
        with pytest.raises(ConfigurationError) as exc_info:
            OperatorConfig(**VALID, request_timeout_seconds=timeout)

        assert "WEKA_REQUEST_TIMEOUT" in str(exc_info.value)


class TestFromEnv:
    """Tests for OperatorConfig.from_env."""

    def test_from_env(self) -> None:
        """Test loading configuration from environment variables."""
        env = {
            "WEKA_USERNAME": "admin",
            "WEKA_PASSWORD": "secret",
            "WEKA_ORG": "Root",
            "WEKA_ENDPOINT": "https://weka01:14000/api/v2",
            "WEKA_REQUEST_TIMEOUT": "30",
            "WEKA_VERIFY_TLS": "false",
        }
        with patch.dict(os.environ, env, clear=True):
            config = OperatorConfig.from_env()

        assert config.endpoint == "https://weka01:14000/api/v2"
        assert config.request_timeout_seconds == 30
        assert config.verify_tls is False

    def test_from_env_missing_credentials(self) -> None:
        """Test that an empty environment fails before any request."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ConfigurationError):
                OperatorConfig.from_env()

    def test_from_env_invalid_timeout(self) -> None:
        """Test that a non-integer timeout is a configuration error."""
        env = {
            "WEKA_USERNAME": "admin",
            "WEKA_PASSWORD": "secret",
            "WEKA_ORG": "Root",
            "WEKA_ENDPOINT": "https://weka01:14000/api/v2",
            "WEKA_REQUEST_TIMEOUT": "soon",
        }
        with patch.dict(os.environ, env, clear=True):
            with pytest.raises(ConfigurationError) as exc_info:
                OperatorConfig.from_env()

        assert "must be an integer" in str(exc_info.value)


class TestKmsDefaults:
    """Tests for environment defaults of sensitive KMS fields."""

    def test_fills_unset_fields(self) -> None:
        """Test that unset fields come from the environment."""
        with patch.dict(os.environ, {"WEKA_VAULT_TOKEN": "env-token"}, clear=True):
            merged = kms_defaults_from_env({"use_vault": True, "base_url": "https://vault"})

        assert merged["token"] == "env-token"
        assert merged["base_url"] == "https://vault"

    def test_declared_value_wins(self) -> None:
        """Test that a declared value is never overridden."""
        with patch.dict(os.environ, {"WEKA_VAULT_TOKEN": "env-token"}, clear=True):
            merged = kms_defaults_from_env({"token": "declared"})

        assert merged["token"] == "declared"

    def test_empty_declared_value_counts_as_unset(self) -> None:
        """Test that an empty string is replaced by the environment value."""
        env = {"WEKA_VAULT_CA_CERT": "ca-pem", "WEKA_VAULT_KEY_UID": "kid"}
        with patch.dict(os.environ, env, clear=True):
            merged = kms_defaults_from_env({"ca_cert_pem": ""})

        assert merged["ca_cert_pem"] == "ca-pem"
        assert merged["key_uid"] == "kid"

    def test_input_not_mutated(self) -> None:
        """Test that the declared mapping is left untouched."""
        declared = {"use_vault": False}
        with patch.dict(os.environ, {"WEKA_VAULT_CLIENT_CERT": "cert"}, clear=True):
            kms_defaults_from_env(declared)

        assert declared == {"use_vault": False}
