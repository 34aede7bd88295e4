"""Tests for the on-disk submission record format."""

import json

import pytest
from pydantic import ValidationError

from complyance_sdk.errors import ErrorDetail
from complyance_sdk.models import Source
from complyance_sdk.resilience.records import PayloadSubmission, PersistentSubmissionRecord


def _record(request_body, **kw) -> PersistentSubmissionRecord:
    body = request_body(**kw)
    submission = PayloadSubmission(
        payload=json.dumps(body),
        source=Source(name="erp", version="1.0"),
        country="SA",
        document_type="TAX_INVOICE",
    )
    return PersistentSubmissionRecord.from_submission(submission, body)


class TestPayloadSubmission:
    def test_source_id(self):
        sub = PayloadSubmission(payload="{}", source=Source(name="erp", version="2.1"),
                                country="SA", document_type="TAX_INVOICE")
        assert sub.source_id == "erp:2.1"

    def test_from_request_dict(self, request_body):
        body = request_body()
        sub = PayloadSubmission.from_request_dict(body)
        assert sub.source_id == "erp:1.0"
        assert sub.country == "SA"
        assert sub.document_type == "tax_invoice"
        assert json.loads(sub.payload) == body


class TestPersistentSubmissionRecord:
    def test_serialized_keys(self, request_body):
        data = json.loads(_record(request_body).to_json())
        assert set(data) == {
            "payload", "sourceId", "country", "documentType", "enqueuedAt", "timestamp", "error",
        }
        assert data["sourceId"] == "erp:1.0"
        assert data["documentType"] == "TAX_INVOICE"
        assert data["error"] is None

    def test_json_round_trip(self, request_body):
        record = _record(request_body)
        restored = PersistentSubmissionRecord.from_json(record.to_json())
        assert restored == record

    def test_error_stored_compactly(self, request_body):
        body = request_body()
        sub = PayloadSubmission.from_request_dict(body)
        record = PersistentSubmissionRecord.from_submission(
            sub, body, ErrorDetail.service_unavailable()
        )
        assert record.error["code"] == 1015
        assert record.error["retryable"] is True

    def test_missing_field_rejected(self):
        with pytest.raises(ValidationError):
            PersistentSubmissionRecord.from_json(json.dumps({"payload": {}}))


class TestFileName:
    def test_format(self, request_body):
        assert _record(request_body).file_name() == "erp_1_0_INV-001_SA_TAX_INVOICE.json"

    def test_deterministic(self, request_body):
        assert _record(request_body).file_name() == _record(request_body).file_name()

    def test_distinct_documents_differ(self, request_body):
        a = _record(request_body, invoice_number="INV-001").file_name()
        b = _record(request_body, invoice_number="INV-002").file_name()
        assert a != b

    def test_unsafe_invoice_characters_replaced(self, request_body):
        name = _record(request_body, invoice_number="2026/01 #7").file_name()
        assert "/" not in name
        assert "2026_01__7" in name

    def test_missing_invoice_number_falls_back(self, request_body):
        name = _record(request_body, payload={"invoice_data": {}}).file_name()
        assert name.startswith("erp_1_0_doc_")
        assert name.endswith("_SA_TAX_INVOICE.json")

    def test_path_characters_in_country_and_type_replaced(self, request_body):
        body = request_body(country="../x")
        submission = PayloadSubmission(
            payload=json.dumps(body),
            source=Source(name="erp", version="1.0"),
            country="../x",
            document_type="tax/invoice",
        )
        name = PersistentSubmissionRecord.from_submission(submission, body).file_name()
        assert "/" not in name
        assert name == "erp_1_0_INV-001_.._x_tax_invoice.json"
