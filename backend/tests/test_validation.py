"""
Validation layer tests.

Covers payload coercion against column metadata, the writable-field
allowlist, per-entity rules and Brazilian document checks.
"""

from datetime import date

import pytest

from brecho.models import Expense, Product
from brecho.routes.products import PRODUCT_POLICY
from brecho.validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_commission_rule,
    enforce_rules_goal,
    enforce_rules_supplier,
    is_valid_cnpj,
    is_valid_cpf,
    normalize_document,
    validate_payload,
)


# =============================================================================
# PAYLOAD COERCION
# =============================================================================


class TestValidatePayload:
    """validate_payload against the Product columns."""

    def test_required_on_create(self):
        with pytest.raises(ValidationError, match="Missing required fields: sale_price_cents"):
            validate_payload(model=Product, payload={"name": "Saia"}, policy=PRODUCT_POLICY, partial=False)

    def test_partial_skips_required(self):
        patch = validate_payload(model=Product, payload={"name": "Saia"}, policy=PRODUCT_POLICY, partial=True)
        assert patch == {"name": "Saia"}

    def test_field_not_allowed(self):
        with pytest.raises(ValidationError, match="Field not allowed: shop_id"):
            validate_payload(
                model=Product,
                payload={"name": "Saia", "sale_price_cents": 100, "shop_id": 2},
                policy=PRODUCT_POLICY,
                partial=False,
            )

    @pytest.mark.parametrize("raw", [12.5, "1e3", "10.00", "abc", True])
    def test_integer_columns_strict(self, raw):
        with pytest.raises(ValidationError):
            validate_payload(
                model=Product,
                payload={"sale_price_cents": raw},
                policy=PRODUCT_POLICY,
                partial=True,
            )

    def test_integer_string_accepted(self):
        patch = validate_payload(
            model=Product, payload={"sale_price_cents": " 2500 "}, policy=PRODUCT_POLICY, partial=True
        )
        assert patch["sale_price_cents"] == 2500

    def test_blank_optional_string_becomes_null(self):
        patch = validate_payload(model=Product, payload={"brand": "  "}, policy=PRODUCT_POLICY, partial=True)
        assert patch["brand"] is None

    def test_non_nullable_rejects_null(self):
        with pytest.raises(ValidationError, match="name cannot be null"):
            validate_payload(model=Product, payload={"name": None}, policy=PRODUCT_POLICY, partial=True)

    def test_string_length_enforced(self):
        with pytest.raises(ValidationError, match="exceeds max length"):
            validate_payload(model=Product, payload={"sku": "X" * 500}, policy=PRODUCT_POLICY, partial=True)

    def test_dates_parsed(self):
        policy = ModelValidationPolicy(writable_fields={"due_date", "is_paid"})
        patch = validate_payload(
            model=Expense,
            payload={"due_date": "2026-03-10", "is_paid": "false"},
            policy=policy,
            partial=True,
        )
        assert patch == {"due_date": date(2026, 3, 10), "is_paid": False}

    def test_bad_date_rejected(self):
        policy = ModelValidationPolicy(writable_fields={"due_date"})
        with pytest.raises(ValidationError, match="due_date must be a date"):
            validate_payload(model=Expense, payload={"due_date": "10/03/2026"}, policy=policy, partial=True)

    def test_payload_must_be_object(self):
        with pytest.raises(ValidationError, match="Invalid JSON payload"):
            validate_payload(model=Product, payload=["name"], policy=PRODUCT_POLICY, partial=True)


# =============================================================================
# BRAZILIAN DOCUMENTS
# =============================================================================


class TestDocuments:
    """CPF and CNPJ check digits."""

    @pytest.mark.parametrize("value", ["529.982.247-25", "52998224725"])
    def test_valid_cpf(self, value):
        assert is_valid_cpf(value)

    @pytest.mark.parametrize("value", ["529.982.247-24", "111.111.111-11", "1234567890"])
    def test_invalid_cpf(self, value):
        assert not is_valid_cpf(value)

    def test_valid_cnpj(self):
        assert is_valid_cnpj("11.222.333/0001-81")

    @pytest.mark.parametrize("value", ["11.222.333/0001-80", "00000000000000", "112223330001"])
    def test_invalid_cnpj(self, value):
        assert not is_valid_cnpj(value)

    def test_normalize_keeps_digits(self):
        assert normalize_document("11.222.333/0001-81") == "11222333000181"
        assert normalize_document("529.982.247-25") == "52998224725"

    def test_normalize_rejects_garbage(self):
        with pytest.raises(ValidationError, match="valid CPF or CNPJ"):
            normalize_document("123")


# =============================================================================
# ENTITY RULES
# =============================================================================


class TestEntityRules:
    """Rules that column metadata cannot express."""

    def test_supplier_state_uppercased(self):
        patch = {"legal_name": "Tecidos LTDA", "state": "sp", "document": "11.222.333/0001-81"}
        enforce_rules_supplier(patch)
        assert patch["state"] == "SP"
        assert patch["document"] == "11222333000181"

    @pytest.mark.parametrize(
        "patch",
        [
            {"phone": "123"},
            {"postal_code": "1234"},
            {"state": "SPX"},
            {"email": "not-an-email"},
        ],
    )
    def test_supplier_rejects(self, patch):
        with pytest.raises(ValidationError):
            enforce_rules_supplier(patch)

    def test_goal_date_order(self):
        with pytest.raises(ValidationError, match="end_date must be on or after start_date"):
            enforce_rules_goal({"start_date": date(2026, 3, 10), "end_date": date(2026, 3, 1)})

    @pytest.mark.parametrize("bps", [0, 10_001])
    def test_commission_bps_range(self, bps):
        with pytest.raises(ValidationError, match="percentage_bps"):
            enforce_rules_commission_rule({"percentage_bps": bps})
