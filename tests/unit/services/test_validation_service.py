"""Tests for pre-dispatch row validation."""

from datetime import date

import pytest

from accurate_exchange.accurate.dispatcher import CredentialView
from accurate_exchange.accurate.resources import get_resource
from accurate_exchange.constants import AdjustmentType
from accurate_exchange.exceptions import ValidationError
from accurate_exchange.services.validation_service import RowValidator


@pytest.fixture
def credential():
    return CredentialView(
        id="cred-1",
        host="zeus.accurate.id",
        api_token="token-1",
        signature_secret="sig-secret",
        session="db-session-1",
    )


@pytest.fixture
def validator(dispatcher, credential, app_config):
    resource = get_resource("inventory_adjustment", dispatcher)
    return RowValidator(resource, credential, app_config.imports, today=lambda: date(2024, 3, 15))


def row(**overrides):
    data = {
        "item_code": "BRG-001",
        "type": "ADJUSTMENT_IN",
        "quantity": 5,
        "unit": "PCS",
        "date": "2024-03-01",
    }
    data.update(overrides)
    return data


def rejection(validator, raw, row_index=1) -> ValidationError:
    with pytest.raises(ValidationError) as exc_info:
        validator.validate(row_index, raw)
    return exc_info.value


class TestValidRows:
    def test_valid_row_parses(self, validator):
        parsed = validator.validate(1, row())

        assert parsed.item_code == "BRG-001"
        assert parsed.type == AdjustmentType.ADJUSTMENT_IN
        assert parsed.quantity == 5
        assert parsed.adjustment_date == date(2024, 3, 1)

    @pytest.mark.parametrize(
        "label,expected",
        [
            ("Penambahan", AdjustmentType.ADJUSTMENT_IN),
            ("pengurangan", AdjustmentType.ADJUSTMENT_OUT),
            ("adjustment_out", AdjustmentType.ADJUSTMENT_OUT),
        ],
    )
    def test_type_aliases(self, validator, label, expected):
        assert validator.validate(1, row(type=label)).type == expected

    def test_accurate_date_format(self, validator):
        assert validator.validate(1, row(date="01/03/2024")).adjustment_date == date(2024, 3, 1)

    def test_unit_match_is_case_insensitive(self, validator):
        assert validator.validate(1, row(unit="pcs")).unit == "pcs"

    def test_exported_column_names_accepted(self, validator):
        parsed = validator.validate(
            1,
            {
                "Adjustment Number": "IA.2024.00001",
                "Date": "2024-03-01",
                "Item Code": "BRG-002",
                "Type": "ADJUSTMENT_OUT",
                "Quantity": "2",
                "Unit": "BOX",
                "Warehouse": "Utama",
            },
        )
        assert parsed.reference_number == "IA.2024.00001"
        assert parsed.warehouse == "Utama"


class TestRejectedRows:
    """Each rejection names the field and the reason."""

    def test_missing_item_code(self, validator):
        error = rejection(validator, row(item_code=""), row_index=4)
        assert error.field == "item_code"
        assert error.row_index == 4
        assert error.message.startswith("Row 4: item_code:")

    def test_unknown_item_code(self, validator):
        error = rejection(validator, row(item_code="BRG-999"))
        assert error.field == "item_code"
        assert "not found in Accurate" in error.reason

    def test_bad_type(self, validator):
        error = rejection(validator, row(type="SIDEWAYS"))
        assert error.field == "type"
        assert "ADJUSTMENT_IN" in error.reason
        assert not error.reason.startswith("Value error")

    def test_non_positive_quantity(self, validator):
        assert rejection(validator, row(quantity=0)).field == "quantity"
        assert rejection(validator, row(quantity=-3)).field == "quantity"

    def test_unparseable_date(self, validator):
        error = rejection(validator, row(date="March 1st"))
        assert error.field == "adjustment_date"

    def test_date_outside_window(self, validator):
        assert rejection(validator, row(date="1999-12-31")).field == "adjustment_date"
        assert rejection(validator, row(date="2024-05-01")).field == "adjustment_date"

    def test_unit_mismatch(self, validator):
        error = rejection(validator, row(unit="BOX"))
        assert error.field == "unit"
        assert "PCS" in error.reason

    def test_missing_unit(self, validator):
        assert rejection(validator, row(unit="  ")).field == "unit"

    def test_not_a_mapping(self, validator):
        assert rejection(validator, ["BRG-001", 5]).field == "row"

    def test_lookup_client_error_becomes_row_error(self, validator, fake_accurate):
        fake_accurate.fail_next("/api/item/list.do", 400)
        error = rejection(validator, row())
        assert "lookup failed" in error.reason

    def test_lookup_outage_becomes_row_error(self, validator, fake_accurate):
        fake_accurate.fail_next("/api/item/list.do", 500, 500, 500)

        error = rejection(validator, row())

        assert error.field == "item_code"
        assert "lookup failed" in error.reason
        assert "500" in error.reason

    def test_failed_lookup_is_not_memoized(self, validator, fake_accurate):
        fake_accurate.fail_next("/api/item/list.do", 503, 503, 503)
        rejection(validator, row())

        assert validator.validate(2, row()).item_code == "BRG-001"

    def test_malformed_item_record_becomes_row_error(self, validator, fake_accurate):
        fake_accurate.items["BRG-001"] = {"no": "BRG-001", "name": "Kopi Arabika"}

        error = rejection(validator, row())

        assert error.field == "item_code"
        assert "malformed item record" in error.reason


class TestLookupMemoization:
    def test_each_code_looked_up_once(self, validator, fake_accurate):
        for n in range(1, 6):
            validator.validate(n, row(quantity=n))
        validator.validate(6, row(item_code="BRG-002", unit="BOX"))

        assert validator.lookups == 2
        assert len(fake_accurate.calls_to("/api/item/list.do")) == 2

    def test_keyword_fallback(self, validator, fake_accurate):
        parsed = validator.validate(1, row(item_code="Kopi Arabika"))

        assert parsed.item_code == "Kopi Arabika"
        assert len(fake_accurate.calls_to("/api/item/list.do")) == 2
