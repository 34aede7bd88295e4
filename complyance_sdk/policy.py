"""Country and document-type policy lookup."""

from dataclasses import dataclass, field
from typing import Any, Optional

from .errors import ValidationError
from .models import Country, Destination, DestinationType, DocumentType, Environment, LogicalDocType

DEFAULT_TAX_AUTHORITIES = {
    Country.SA: "ZATCA",
    Country.MY: "LHDN",
    Country.AE: "FTA",
    Country.SG: "IRAS",
}


@dataclass(frozen=True)
class PolicyResult:
    base_type: DocumentType
    meta_config_flags: dict[str, bool] = field(default_factory=dict)
    document_type: str = "tax_invoice"


def meta_config_document_type(logical_type: LogicalDocType) -> str:
    name = logical_type.value
    if "CREDIT_NOTE" in name:
        return "credit_note"
    if "DEBIT_NOTE" in name:
        return "debit_note"
    return "tax_invoice"


def base_document_type(logical_type: LogicalDocType) -> DocumentType:
    name = logical_type.value
    if "CREDIT_NOTE" in name:
        return DocumentType.CREDIT_NOTE
    if "DEBIT_NOTE" in name:
        return DocumentType.DEBIT_NOTE
    return DocumentType.TAX_INVOICE


def meta_config_flags(logical_type: LogicalDocType) -> dict[str, bool]:
    name = logical_type.value
    return {
        "isExport": "EXPORT" in name,
        "isSelfBilled": "SELF_BILLED" in name,
        "isThirdParty": "THIRD_PARTY" in name,
        "isNominal": "NOMINAL_SUPPLY" in name,
        "isSummary": "SUMMARY" in name,
        # TAX_INVOICE_* is B2B, SIMPLIFIED_TAX_INVOICE_* is B2C
        "isB2B": name.startswith("TAX_INVOICE"),
        "isPrepayment": "PREPAYMENT" in name,
        "isAdjusted": "ADJUSTED" in name,
        "isReceipt": "RECEIPT" in name,
    }


def evaluate(country: Country, logical_type: LogicalDocType) -> PolicyResult:
    """Resolve the base document type and meta.config flags for a logical type."""
    return PolicyResult(
        base_type=base_document_type(logical_type),
        meta_config_flags=meta_config_flags(logical_type),
        document_type=meta_config_document_type(logical_type),
    )


def default_tax_authority(country: Country) -> Optional[str]:
    return DEFAULT_TAX_AUTHORITIES.get(country)


def default_destinations(country: Country, document_type: str) -> list[Destination]:
    """Tax-authority destination for countries with a known authority."""
    authority = default_tax_authority(country)
    if authority is None:
        return []
    return [
        Destination(
            type=DestinationType.TAX_AUTHORITY,
            country=country.value,
            authority=authority,
            document_type=document_type.lower(),
        )
    ]


def validate_country_for_environment(country: Country, environment: Environment) -> None:
    """
    Production-class environments accept only SA, and MY outside simulation.

    Raises:
        ValidationError: Country is not allowed in this environment
    """
    if not environment.is_production_class:
        return

    if country == Country.SA:
        return

    if country == Country.MY:
        if environment == Environment.SIMULATION:
            raise ValidationError(
                "Country not allowed for simulation environment",
                "MY (Malaysia) is not allowed in SIMULATION environment. Use SANDBOX or PRODUCTION.",
                field="country",
            )
        return

    raise ValidationError(
        "Country not allowed for production environment",
        f"Only SA and MY are allowed for {environment.value}. Use DEV/TEST/STAGE for other countries.",
        field="country",
    )


def merge_meta_config(payload: dict[str, Any], flags: dict[str, bool]) -> dict[str, Any]:
    """Copy of *payload* with *flags* under meta.config; existing user values win."""
    merged = dict(payload)
    meta = dict(merged.get("meta") or {})
    meta["config"] = {**flags, **(meta.get("config") or {})}
    merged["meta"] = meta
    return merged


def set_invoice_document_type(payload: dict[str, Any], logical_type: LogicalDocType) -> dict[str, Any]:
    """Set invoice_data.document_type when the payload carries invoice_data."""
    invoice_data = payload.get("invoice_data")
    if not isinstance(invoice_data, dict):
        return payload
    updated = dict(payload)
    updated["invoice_data"] = {**invoice_data, "document_type": meta_config_document_type(logical_type)}
    return updated
