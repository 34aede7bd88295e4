"""
Unify API Data Models

Enums and pydantic models for sources, destinations and requests.
"""

import random
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

PRODUCTION_BASE_URL = "https://prod.gets.complyance.io/unify"
LOCAL_BASE_URL = "http://127.0.0.1:4000/unify"


class Environment(str, Enum):
    """Deployment environments of the Unify API."""
    DEV = "dev"
    TEST = "test"
    STAGE = "stage"
    LOCAL = "local"
    SANDBOX = "sandbox"
    SIMULATION = "simulation"
    PRODUCTION = "production"

    @property
    def base_url(self) -> str:
        if self is Environment.LOCAL:
            return LOCAL_BASE_URL
        return PRODUCTION_BASE_URL

    @property
    def is_production_class(self) -> bool:
        """Environments that talk to real tax authorities."""
        return self in (Environment.SANDBOX, Environment.SIMULATION, Environment.PRODUCTION)


class Country(str, Enum):
    SA = "SA"  # Saudi Arabia
    MY = "MY"  # Malaysia
    AE = "AE"  # United Arab Emirates
    SG = "SG"  # Singapore
    EG = "EG"
    IN = "IN"
    US = "US"
    GB = "GB"
    DE = "DE"
    FR = "FR"
    IT = "IT"
    ES = "ES"
    NL = "NL"
    BE = "BE"
    AT = "AT"
    CH = "CH"
    SE = "SE"
    NO = "NO"
    DK = "DK"
    FI = "FI"
    PL = "PL"
    CZ = "CZ"
    HU = "HU"
    RO = "RO"
    BG = "BG"
    HR = "HR"
    SI = "SI"
    SK = "SK"
    LT = "LT"
    LV = "LV"
    EE = "EE"
    CY = "CY"
    MT = "MT"
    LU = "LU"
    IE = "IE"
    PT = "PT"
    GR = "GR"


class DocumentType(str, Enum):
    """Base document types understood by the API."""
    TAX_INVOICE = "TAX_INVOICE"
    CREDIT_NOTE = "CREDIT_NOTE"
    DEBIT_NOTE = "DEBIT_NOTE"
    SIMPLIFIED_TAX_INVOICE = "SIMPLIFIED_TAX_INVOICE"
    SIMPLIFIED_CREDIT_NOTE = "SIMPLIFIED_CREDIT_NOTE"
    SIMPLIFIED_DEBIT_NOTE = "SIMPLIFIED_DEBIT_NOTE"
    RECEIPT = "RECEIPT"
    REFUND_RECEIPT = "REFUND_RECEIPT"
    SELF_BILLED_INVOICE = "SELF_BILLED_INVOICE"
    SUMMARY_DOCUMENT = "SUMMARY_DOCUMENT"
    CORRECTION_DOCUMENT = "CORRECTION_DOCUMENT"
    PREPAYMENT_INVOICE = "PREPAYMENT_INVOICE"
    PREPAYMENT_CREDIT_NOTE = "PREPAYMENT_CREDIT_NOTE"
    PREPAYMENT_DEBIT_NOTE = "PREPAYMENT_DEBIT_NOTE"


class LogicalDocType(str, Enum):
    """Caller-facing document types; policy flags are derived from the name."""
    TAX_INVOICE = "TAX_INVOICE"
    TAX_INVOICE_CREDIT_NOTE = "TAX_INVOICE_CREDIT_NOTE"
    TAX_INVOICE_DEBIT_NOTE = "TAX_INVOICE_DEBIT_NOTE"
    TAX_INVOICE_PREPAYMENT = "TAX_INVOICE_PREPAYMENT"
    TAX_INVOICE_PREPAYMENT_ADJUSTED = "TAX_INVOICE_PREPAYMENT_ADJUSTED"
    TAX_INVOICE_EXPORT_INVOICE = "TAX_INVOICE_EXPORT_INVOICE"
    TAX_INVOICE_EXPORT_CREDIT_NOTE = "TAX_INVOICE_EXPORT_CREDIT_NOTE"
    TAX_INVOICE_EXPORT_DEBIT_NOTE = "TAX_INVOICE_EXPORT_DEBIT_NOTE"
    TAX_INVOICE_THIRD_PARTY_INVOICE = "TAX_INVOICE_THIRD_PARTY_INVOICE"
    TAX_INVOICE_SELF_BILLED_INVOICE = "TAX_INVOICE_SELF_BILLED_INVOICE"
    TAX_INVOICE_NOMINAL_SUPPLY_INVOICE = "TAX_INVOICE_NOMINAL_SUPPLY_INVOICE"
    TAX_INVOICE_SUMMARY_INVOICE = "TAX_INVOICE_SUMMARY_INVOICE"
    SIMPLIFIED_TAX_INVOICE = "SIMPLIFIED_TAX_INVOICE"
    SIMPLIFIED_TAX_INVOICE_CREDIT_NOTE = "SIMPLIFIED_TAX_INVOICE_CREDIT_NOTE"
    SIMPLIFIED_TAX_INVOICE_DEBIT_NOTE = "SIMPLIFIED_TAX_INVOICE_DEBIT_NOTE"
    SIMPLIFIED_TAX_INVOICE_PREPAYMENT = "SIMPLIFIED_TAX_INVOICE_PREPAYMENT"
    SIMPLIFIED_TAX_INVOICE_PREPAYMENT_ADJUSTED = "SIMPLIFIED_TAX_INVOICE_PREPAYMENT_ADJUSTED"
    SIMPLIFIED_TAX_INVOICE_EXPORT_INVOICE = "SIMPLIFIED_TAX_INVOICE_EXPORT_INVOICE"
    SIMPLIFIED_TAX_INVOICE_EXPORT_CREDIT_NOTE = "SIMPLIFIED_TAX_INVOICE_EXPORT_CREDIT_NOTE"
    SIMPLIFIED_TAX_INVOICE_EXPORT_DEBIT_NOTE = "SIMPLIFIED_TAX_INVOICE_EXPORT_DEBIT_NOTE"
    SIMPLIFIED_TAX_INVOICE_THIRD_PARTY_INVOICE = "SIMPLIFIED_TAX_INVOICE_THIRD_PARTY_INVOICE"
    SIMPLIFIED_TAX_INVOICE_SELF_BILLED_INVOICE = "SIMPLIFIED_TAX_INVOICE_SELF_BILLED_INVOICE"
    SIMPLIFIED_TAX_INVOICE_NOMINAL_SUPPLY_INVOICE = "SIMPLIFIED_TAX_INVOICE_NOMINAL_SUPPLY_INVOICE"
    SIMPLIFIED_TAX_INVOICE_SUMMARY_INVOICE = "SIMPLIFIED_TAX_INVOICE_SUMMARY_INVOICE"
    CREDIT_NOTE = "CREDIT_NOTE"
    SIMPLIFIED_CREDIT_NOTE = "SIMPLIFIED_CREDIT_NOTE"
    DEBIT_NOTE = "DEBIT_NOTE"
    SIMPLIFIED_DEBIT_NOTE = "SIMPLIFIED_DEBIT_NOTE"
    RECEIPT = "RECEIPT"
    REFUND_RECEIPT = "REFUND_RECEIPT"
    SELF_BILLED_INVOICE = "SELF_BILLED_INVOICE"
    SUMMARY_DOCUMENT = "SUMMARY_DOCUMENT"
    CORRECTION_DOCUMENT = "CORRECTION_DOCUMENT"
    PREPAYMENT_INVOICE = "PREPAYMENT_INVOICE"
    PREPAYMENT_CREDIT_NOTE = "PREPAYMENT_CREDIT_NOTE"
    PREPAYMENT_DEBIT_NOTE = "PREPAYMENT_DEBIT_NOTE"
    PREPAYMENT_ADJUSTED_INVOICE = "PREPAYMENT_ADJUSTED_INVOICE"
    SIMPLIFIED_PREPAYMENT_INVOICE = "SIMPLIFIED_PREPAYMENT_INVOICE"
    SIMPLIFIED_PREPAYMENT_ADJUSTED_INVOICE = "SIMPLIFIED_PREPAYMENT_ADJUSTED_INVOICE"
    EXPORT_INVOICE = "EXPORT_INVOICE"
    EXPORT_CREDIT_NOTE = "EXPORT_CREDIT_NOTE"
    EXPORT_THIRD_PARTY_INVOICE = "EXPORT_THIRD_PARTY_INVOICE"
    THIRD_PARTY_INVOICE = "THIRD_PARTY_INVOICE"
    SUMMARY_INVOICE = "SUMMARY_INVOICE"
    NOMINAL_SUPPLY_INVOICE = "NOMINAL_SUPPLY_INVOICE"


class Operation(str, Enum):
    SINGLE = "SINGLE"
    BATCH = "BATCH"
    BULK = "BULK"


class Mode(str, Enum):
    DOCUMENTS = "DOCUMENTS"
    TEMPLATES = "TEMPLATES"
    MAPPING = "MAPPING"
    VALIDATION = "VALIDATION"
    SUBMISSION = "SUBMISSION"


class Purpose(str, Enum):
    INVOICING = "INVOICING"
    MAPPING = "MAPPING"
    VALIDATION = "VALIDATION"
    SUBMISSION = "SUBMISSION"
    TESTING = "TESTING"


class SourceType(str, Enum):
    FIRST_PARTY = "FIRST_PARTY"
    MARKETPLACE_APP = "MARKETPLACE_APP"
    TURNKEY_INTEGRATION = "TURNKEY_INTEGRATION"
    PORTAL_UPLOAD = "PORTAL_UPLOAD"
    EMAIL_UPLOAD = "EMAIL_UPLOAD"


class DestinationType(str, Enum):
    TAX_AUTHORITY = "tax_authority"
    ARCHIVE = "archive"
    EMAIL = "email"
    PEPPOL = "peppol"


class SubmissionStatus(str, Enum):
    """Lifecycle status of a submission as seen by the caller."""
    QUEUED = "QUEUED"
    SUBMITTED = "SUBMITTED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self in (
            SubmissionStatus.COMPLETED,
            SubmissionStatus.FAILED,
            SubmissionStatus.APPROVED,
            SubmissionStatus.REJECTED,
        )


class Source(BaseModel):
    """A configured submitting system, identified by name and version."""
    name: str
    version: str
    type: SourceType = SourceType.FIRST_PARTY

    @property
    def id(self) -> str:
        return f"{self.name}:{self.version}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "type": self.type.value,
            "id": self.id,
            "identity": self.id,
        }


class Destination(BaseModel):
    """Where the API should deliver a document."""
    type: DestinationType = DestinationType.TAX_AUTHORITY
    country: str = ""
    authority: str = ""
    document_type: str = ""
    extensions: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type.value.upper(),
            "details": {
                "country": self.country,
                "authority": self.authority,
                "documentType": self.document_type,
            },
        }
        if self.extensions is not None:
            data["extensions"] = self.extensions
        return data


def generate_request_id() -> str:
    return f"req_{int(time.time() * 1000)}_{random.randint(0, 2**31 - 1)}"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class UnifyRequest(BaseModel):
    """Outbound request body for the Unify endpoint."""
    source: Source
    document_type: DocumentType
    document_type_string: Optional[str] = None
    country: Country
    operation: Operation = Operation.SINGLE
    mode: Mode = Mode.DOCUMENTS
    purpose: Purpose = Purpose.INVOICING
    payload: dict[str, Any] = Field(default_factory=dict)
    destinations: list[Destination] = Field(default_factory=list)
    api_key: str
    request_id: str = Field(default_factory=generate_request_id)
    timestamp: str = Field(default_factory=utc_now_iso)
    env: Environment = Environment.SANDBOX
    correlation_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Wire format (camelCase keys, lowercase enum strings)."""
        return {
            "source": self.source.to_dict(),
            "documentType": (self.document_type_string or self.document_type.value).lower(),
            "country": self.country.value,
            "operation": self.operation.value.lower(),
            "mode": self.mode.value.lower(),
            "purpose": self.purpose.value.lower(),
            "payload": self.payload,
            "destinations": [d.to_dict() for d in self.destinations],
            "apiKey": self.api_key,
            "requestId": self.request_id,
            "timestamp": self.timestamp,
            "env": self.env.value,
            "correlationId": self.correlation_id,
        }


def queued_response(request_id: str) -> dict[str, Any]:
    """Acknowledgment returned when a submission is handed to the retry queue."""
    return {
        "status": "queued",
        "message": f"Request failed but has been queued for retry. Submission ID: {request_id}",
        "data": {
            "submission": {
                "submissionId": request_id,
                "status": "queued",
            },
        },
    }
