"""Tests for session authentication."""

import pytest
import requests
from weka_mock import ENDPOINT, Account, FakeHttpSession

from weka_operator.config import OperatorConfig
from weka_operator.errors import AuthenticationError, ConfigurationError
from weka_operator.session import Session, join_url


class TestJoinUrl:
    def test_keeps_endpoint_path(self) -> None:
        assert join_url("https://w:14000/api/v2", "users") == "https://w:14000/api/v2/users"

    def test_normalizes_slashes(self) -> None:
        assert join_url("https://w/api/v2/", "/s3/buckets") == "https://w/api/v2/s3/buckets"


class TestAuthenticate:
    """Tests for Session.authenticate."""

    def test_login_success(self, config: OperatorConfig, http: FakeHttpSession) -> None:
        session = Session.authenticate(config, http=http)

        assert session.access_token == "fake-access-token"
        assert session.org == "Root"
        assert session.expires_in == 300
        assert session.refresh_token == "fake-refresh-token"
        assert session.authorization_header == {"Authorization": "Bearer fake-access-token"}

    def test_login_body(self, config: OperatorConfig, http: FakeHttpSession) -> None:
        Session.authenticate(config, http=http)

        call = http.last_call("POST", "login")
        assert call.body == {"username": "admin", "password": "admin-pw", "org": "Root"}
        assert "Authorization" not in call.headers

    def test_token_not_in_repr(self, config: OperatorConfig, http: FakeHttpSession) -> None:
        session = Session.authenticate(config, http=http)

        assert "fake-access-token" not in repr(session)

    def test_wrong_password(self, http: FakeHttpSession) -> None:
        """Test that a non-200 login is an authentication error with the body."""
        config = OperatorConfig(username="admin", password="wrong", org="Root", endpoint=ENDPOINT)

        with pytest.raises(AuthenticationError) as exc_info:
            Session.authenticate(config, http=http)

        assert "401" in str(exc_info.value)
        assert "Invalid credentials" in str(exc_info.value)

    def test_token_type_case_insensitive(self, config: OperatorConfig) -> None:
        http = FakeHttpSession()
        http.cluster.token_type = "bEaReR"

        session = Session.authenticate(config, http=http)

        assert session.token_type == "bEaReR"

    def test_unknown_token_type(self, config: OperatorConfig) -> None:
        http = FakeHttpSession()
        http.cluster.token_type = "mac"

        with pytest.raises(AuthenticationError) as exc_info:
            Session.authenticate(config, http=http)

        assert "Unknown token type" in str(exc_info.value)

    def test_undecodable_login_body(self, config: OperatorConfig, http: FakeHttpSession) -> None:
        http.inject("POST", "login", raw=b"not json")

        with pytest.raises(AuthenticationError):
            Session.authenticate(config, http=http)

    def test_connection_failure(self, config: OperatorConfig, http: FakeHttpSession) -> None:
        http.inject("POST", "login", exception=requests.ConnectionError("refused"))

        with pytest.raises(AuthenticationError) as exc_info:
            Session.authenticate(config, http=http)

        assert "refused" in str(exc_info.value)

    def test_org_must_match(self) -> None:
        http = FakeHttpSession()
        http.cluster.accounts = [Account("admin", "admin-pw", org="Other")]
        config = OperatorConfig(username="admin", password="admin-pw", org="Root", endpoint=ENDPOINT)

        with pytest.raises(AuthenticationError):
            Session.authenticate(config, http=http)

    def test_missing_credentials_make_no_request(self) -> None:
        """Test that incomplete credentials never reach the network."""
        http = FakeHttpSession()
        config = object.__new__(OperatorConfig)
        object.__setattr__(config, "username", "admin")
        object.__setattr__(config, "password", "")
        object.__setattr__(config, "org", "Root")
        object.__setattr__(config, "endpoint", ENDPOINT)
        object.__setattr__(config, "request_timeout_seconds", 10)
        object.__setattr__(config, "verify_tls", True)

        with pytest.raises(ConfigurationError):
            Session.authenticate(config, http=http)

        assert http.calls == []
