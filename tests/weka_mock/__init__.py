"""Weka API mock for integration testing.

Provides an in-memory implementation of the Weka management API that
enables testing the reconcilers without a cluster.

Key Features:
- In-memory state for users, KMS, filesystems, groups, buckets and policies
- The API's error conventions (envelopes with 200 OK, bare error statuses)
- Call recording for asserting exactly which requests were issued
- Error injection per method and path

Usage:
    from weka_mock import FakeHttpSession

    http = FakeHttpSession()
    session = Session.authenticate(config, http=http)
    driver = ReconciliationDriver(Transport(session))

    result = driver.create(EntityKind.USER, {...})
    assert http.mutating_calls() == [("POST", "users")]
"""

from .cluster import Account, FakeWekaCluster, envelope
from .session import ENDPOINT, FakeHttpSession, FakeResponse, RecordedCall

__all__ = [
    "ENDPOINT",
    "Account",
    "FakeHttpSession",
    "FakeResponse",
    "FakeWekaCluster",
    "RecordedCall",
    "envelope",
]
