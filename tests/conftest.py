"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for weka_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from weka_mock import ENDPOINT, FakeHttpSession  # noqa: E402

from weka_operator.config import OperatorConfig  # noqa: E402
from weka_operator.driver import ReconciliationDriver  # noqa: E402
from weka_operator.session import Session  # noqa: E402
from weka_operator.transport import Transport  # noqa: E402


@pytest.fixture
def config() -> OperatorConfig:
    return OperatorConfig(
        username="admin",
        password="admin-pw",
        org="Root",
        endpoint=ENDPOINT,
    )


@pytest.fixture
def http() -> FakeHttpSession:
    return FakeHttpSession()


@pytest.fixture
def cluster(http: FakeHttpSession):
    return http.cluster


@pytest.fixture
def session(config: OperatorConfig, http: FakeHttpSession) -> Session:
    return Session.authenticate(config, http=http)


@pytest.fixture
def transport(session: Session, http: FakeHttpSession) -> Transport:
    transport = Transport(session)
    http.reset_calls()
    return transport


@pytest.fixture
def driver(transport: Transport) -> ReconciliationDriver:
    return ReconciliationDriver(transport)


@pytest.fixture(autouse=True)
def clear_weka_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the caller's WEKA_* variables out of every test."""
    import os

    for key in list(os.environ):
        if key.startswith("WEKA_"):
            monkeypatch.delenv(key, raising=False)
