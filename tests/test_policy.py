"""Tests for country and document-type policy."""

import pytest

from complyance_sdk.errors import ValidationError
from complyance_sdk.models import Country, DestinationType, DocumentType, Environment, LogicalDocType
from complyance_sdk.policy import (
    default_destinations,
    default_tax_authority,
    evaluate,
    merge_meta_config,
    set_invoice_document_type,
    validate_country_for_environment,
)


class TestEvaluate:
    def test_plain_tax_invoice(self):
        result = evaluate(Country.SA, LogicalDocType.TAX_INVOICE)
        assert result.base_type == DocumentType.TAX_INVOICE
        assert result.document_type == "tax_invoice"
        assert result.meta_config_flags["isB2B"] is True
        assert result.meta_config_flags["isExport"] is False

    def test_simplified_is_b2c(self):
        result = evaluate(Country.SA, LogicalDocType.SIMPLIFIED_TAX_INVOICE)
        assert result.meta_config_flags["isB2B"] is False

    @pytest.mark.parametrize("logical,base,doc_type", [
        (LogicalDocType.TAX_INVOICE_CREDIT_NOTE, DocumentType.CREDIT_NOTE, "credit_note"),
        (LogicalDocType.SIMPLIFIED_TAX_INVOICE_DEBIT_NOTE, DocumentType.DEBIT_NOTE, "debit_note"),
        (LogicalDocType.TAX_INVOICE_EXPORT_CREDIT_NOTE, DocumentType.CREDIT_NOTE, "credit_note"),
        (LogicalDocType.TAX_INVOICE_PREPAYMENT, DocumentType.TAX_INVOICE, "tax_invoice"),
    ])
    def test_base_types(self, logical, base, doc_type):
        result = evaluate(Country.SA, logical)
        assert result.base_type == base
        assert result.document_type == doc_type

    @pytest.mark.parametrize("logical,flag", [
        (LogicalDocType.TAX_INVOICE_EXPORT_INVOICE, "isExport"),
        (LogicalDocType.TAX_INVOICE_SELF_BILLED_INVOICE, "isSelfBilled"),
        (LogicalDocType.TAX_INVOICE_THIRD_PARTY_INVOICE, "isThirdParty"),
        (LogicalDocType.TAX_INVOICE_NOMINAL_SUPPLY_INVOICE, "isNominal"),
        (LogicalDocType.TAX_INVOICE_SUMMARY_INVOICE, "isSummary"),
        (LogicalDocType.TAX_INVOICE_PREPAYMENT, "isPrepayment"),
        (LogicalDocType.TAX_INVOICE_PREPAYMENT_ADJUSTED, "isAdjusted"),
        (LogicalDocType.RECEIPT, "isReceipt"),
    ])
    def test_flags(self, logical, flag):
        assert evaluate(Country.SA, logical).meta_config_flags[flag] is True


class TestDestinations:
    def test_known_authority(self):
        dests = default_destinations(Country.SA, "TAX_INVOICE")
        assert len(dests) == 1
        assert dests[0].type == DestinationType.TAX_AUTHORITY
        assert dests[0].to_dict() == {
            "type": "TAX_AUTHORITY",
            "details": {"country": "SA", "authority": "ZATCA", "documentType": "tax_invoice"},
        }

    def test_unknown_authority(self):
        assert default_tax_authority(Country.DE) is None
        assert default_destinations(Country.DE, "tax_invoice") == []

    def test_authorities(self):
        assert default_tax_authority(Country.MY) == "LHDN"
        assert default_tax_authority(Country.AE) == "FTA"
        assert default_tax_authority(Country.SG) == "IRAS"


class TestCountryForEnvironment:
    @pytest.mark.parametrize("env", [Environment.SANDBOX, Environment.SIMULATION, Environment.PRODUCTION])
    def test_sa_always_allowed(self, env):
        validate_country_for_environment(Country.SA, env)

    def test_my_allowed_outside_simulation(self):
        validate_country_for_environment(Country.MY, Environment.SANDBOX)
        validate_country_for_environment(Country.MY, Environment.PRODUCTION)

    def test_my_rejected_in_simulation(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_country_for_environment(Country.MY, Environment.SIMULATION)
        assert exc_info.value.detail.field == "country"

    def test_other_countries_rejected_in_production(self):
        with pytest.raises(ValidationError):
            validate_country_for_environment(Country.AE, Environment.PRODUCTION)

    @pytest.mark.parametrize("env", [Environment.DEV, Environment.TEST, Environment.STAGE, Environment.LOCAL])
    def test_non_production_allows_any(self, env):
        validate_country_for_environment(Country.AE, env)


class TestPayloadHelpers:
    def test_merge_user_values_win(self):
        payload = {"meta": {"config": {"isExport": True}, "other": 1}, "x": 2}
        merged = merge_meta_config(payload, {"isExport": False, "isB2B": True})
        assert merged["meta"]["config"] == {"isExport": True, "isB2B": True}
        assert merged["meta"]["other"] == 1
        assert payload["meta"]["config"] == {"isExport": True}

    def test_merge_without_meta(self):
        assert merge_meta_config({}, {"isB2B": True}) == {"meta": {"config": {"isB2B": True}}}

    def test_invoice_document_type_set(self):
        payload = {"invoice_data": {"invoice_number": "1"}}
        updated = set_invoice_document_type(payload, LogicalDocType.TAX_INVOICE_CREDIT_NOTE)
        assert updated["invoice_data"]["document_type"] == "credit_note"
        assert "document_type" not in payload["invoice_data"]

    def test_invoice_document_type_no_invoice_data(self):
        payload = {"other": 1}
        assert set_invoice_document_type(payload, LogicalDocType.TAX_INVOICE) is payload
