"""Shared fixtures for queue tests.

Queue managers are built without a poller thread so nothing races
the test; each test drives poll cycles explicitly.
"""

import json
from unittest.mock import MagicMock

import pytest

from complyance_sdk.models import Source
from complyance_sdk.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from complyance_sdk.resilience.queue import PersistentQueueManager
from complyance_sdk.resilience.records import PayloadSubmission

SUCCESS_RESPONSE = {"status": "success", "data": {"submission": {"submissionId": "sub_1"}}}


@pytest.fixture
def dispatch():
    return MagicMock(return_value=SUCCESS_RESPONSE)


@pytest.fixture
def breaker():
    return CircuitBreaker("test_queue", CircuitBreakerConfig(failure_threshold=3, reset_timeout_seconds=60))


@pytest.fixture
def queue(tmp_path, dispatch, breaker):
    qm = PersistentQueueManager(
        tmp_path / "queue",
        dispatch=dispatch,
        circuit_breaker=breaker,
        auto_start=False,
        background=False,
    )
    yield qm
    qm.stop_processing(timeout=2)


@pytest.fixture
def make_submission(request_body):
    """Factory for a PayloadSubmission wrapping a serialized request."""
    def _make(invoice_number="INV-001", **overrides) -> PayloadSubmission:
        body = request_body(invoice_number=invoice_number, **overrides)
        return PayloadSubmission(
            payload=json.dumps(body),
            source=Source(name="erp", version="1.0"),
            country=body["country"],
            document_type="TAX_INVOICE",
        )
    return _make
