import sys
from pathlib import Path

import pytest

# Ensure project root is on sys.path so `import complyance_sdk` works from any CWD/import mode.
PROJECT_ROOT = Path(__file__).resolve().parent.parent
PROJECT_ROOT_STR = str(PROJECT_ROOT)
if PROJECT_ROOT_STR not in sys.path:
    sys.path.insert(0, PROJECT_ROOT_STR)


@pytest.fixture(autouse=True)
def isolate_sdk_env(monkeypatch):
    """Keep developer COMPLYANCE_* variables out of tests."""
    for var in ("COMPLYANCE_API_KEY", "COMPLYANCE_ENV", "COMPLYANCE_QUEUE_PATH"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def request_body():
    """Factory for a serialized UnifyRequest body as the client would send it."""
    def _make(invoice_number="INV-001", request_id="req_1_1", country="SA", **overrides):
        body = {
            "source": {
                "name": "erp",
                "version": "1.0",
                "type": "FIRST_PARTY",
                "id": "erp:1.0",
                "identity": "erp:1.0",
            },
            "documentType": "tax_invoice",
            "country": country,
            "operation": "single",
            "mode": "documents",
            "purpose": "invoicing",
            "payload": {"invoice_data": {"invoice_number": invoice_number, "total": 115.0}},
            "destinations": [],
            "apiKey": "test-key",
            "requestId": request_id,
            "timestamp": "2026-01-01T00:00:00+00:00",
            "env": "sandbox",
            "correlationId": None,
        }
        body.update(overrides)
        return body
    return _make
