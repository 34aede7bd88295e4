"""Durable representation of a queued submission."""

import json
import re
import time
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..errors import ErrorDetail
from ..models import Source

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9]")
_UNSAFE_ID_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


class PayloadSubmission(BaseModel):
    """A request that failed live delivery and is handed to the queue."""
    payload: str  # serialized request body
    source: Source
    country: str
    document_type: str

    @property
    def source_id(self) -> str:
        return self.source.id

    @classmethod
    def from_request_dict(cls, request: dict[str, Any]) -> "PayloadSubmission":
        """Build from an already serialized UnifyRequest body."""
        source = request.get("source") or {}
        return cls(
            payload=json.dumps(request),
            source=Source(name=source.get("name", ""), version=source.get("version", "")),
            country=str(request.get("country", "unknown")),
            document_type=str(request.get("documentType", "unknown")),
        )


class PersistentSubmissionRecord(BaseModel):
    """On-disk record; field aliases are the persisted JSON keys."""
    model_config = ConfigDict(populate_by_name=True)

    payload: dict[str, Any]
    source_id: str = Field(alias="sourceId")
    country: str
    document_type: str = Field(alias="documentType")
    enqueued_at: str = Field(alias="enqueuedAt")
    timestamp: int
    error: Optional[dict[str, Any]] = None

    @classmethod
    def from_submission(
        cls,
        submission: PayloadSubmission,
        payload: dict[str, Any],
        error: Optional[ErrorDetail] = None,
    ) -> "PersistentSubmissionRecord":
        now = datetime.now(timezone.utc)
        return cls(
            payload=payload,
            source_id=submission.source_id,
            country=submission.country,
            document_type=submission.document_type,
            enqueued_at=now.isoformat(),
            timestamp=int(time.time() * 1000),
            error=error.to_record() if error is not None else None,
        )

    @classmethod
    def from_json(cls, text: str) -> "PersistentSubmissionRecord":
        return cls.model_validate(json.loads(text))

    def to_json(self) -> str:
        return json.dumps(self.model_dump(by_alias=True), indent=2)

    @property
    def document_id(self) -> str:
        """Invoice number from the stored request, or a timestamp-based fallback."""
        invoice_data = (self.payload.get("payload") or {}).get("invoice_data") or {}
        invoice_number = invoice_data.get("invoice_number") if isinstance(invoice_data, dict) else None
        if invoice_number:
            return _UNSAFE_ID_CHARS.sub("_", str(invoice_number))
        return f"doc_{int(time.time() * 1000)}"

    def file_name(self) -> str:
        """Deterministic queue file name for this logical document."""
        source = _UNSAFE_CHARS.sub("_", self.source_id)
        country = _UNSAFE_ID_CHARS.sub("_", self.country)
        document_type = _UNSAFE_ID_CHARS.sub("_", self.document_type)
        return f"{source}_{self.document_id}_{country}_{document_type}.json"
