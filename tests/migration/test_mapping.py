"""Tests for value coercion, transforms, row mapping and the field auto-matcher."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from finance_migration.domain.types import (
    AutoMatchResult,
    FieldMapping,
    FieldTransform,
    SourceFormat,
    SourceRow,
)
from finance_migration.mapping.engine import (
    apply_mappings,
    apply_transform,
    display_value,
    map_rows,
    normalize_header,
    parse_date_value,
    parse_numeric,
)
from finance_migration.mapping.matcher import auto_match_fields, infer_transform, score_target


class TestNormalizeHeader:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Vendor_Number", "vendor number"),
            ("  Invoice-Date ", "invoice date"),
            ("Due   Date", "due date"),
            ("invoiceNumber", "invoicenumber"),
        ],
    )
    def test_normalization(self, raw, expected):
        assert normalize_header(raw) == expected


class TestParseNumeric:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("1234.5", Decimal("1234.5")),
            ("$1,234.50", Decimal("1234.50")),
            ("(1,234.50)", Decimal("-1234.50")),
            ("-42", Decimal("-42")),
            (" 7 ", Decimal("7")),
            (".5", Decimal("0.5")),
            ("1e3", Decimal("1000")),
            (12, Decimal("12")),
            (0.1, Decimal("0.1")),
        ],
    )
    def test_numbers(self, raw, expected):
        parsed = parse_numeric(raw)
        assert isinstance(parsed, Decimal)
        assert parsed == expected

    def test_large_amounts_keep_every_digit(self):
        assert parse_numeric("12,345,678,901,234,567.89") == Decimal("12345678901234567.89")
        assert parse_numeric("0.1") + parse_numeric("0.2") == Decimal("0.3")

    @pytest.mark.parametrize("raw", [float("nan"), float("inf"), Decimal("NaN")])
    def test_non_finite_rejected(self, raw):
        assert parse_numeric(raw) is None

    @pytest.mark.parametrize("raw", ["abc", "", "12abc", "1.2.3", None, True])
    def test_not_numbers(self, raw):
        assert parse_numeric(raw) is None


class TestParseDate:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("2024-01-15", "2024-01-15"),
            ("2024-01-15T10:30:00", "2024-01-15"),
            ("2024-01-15T23:30:00-05:00", "2024-01-16"),
            ("01/15/2024", "2024-01-15"),
            ("1/5/24", "2024-01-05"),
            ("1-5-2024", "2024-01-05"),
            ("2024/03/09", "2024-03-09"),
            ("Jan 15, 2024", "2024-01-15"),
        ],
    )
    def test_parses(self, raw, expected):
        assert parse_date_value(raw) == expected

    @pytest.mark.parametrize("raw", ["not a date", "", "   ", "13/45/2024", None, 5])
    def test_unparseable_is_empty(self, raw):
        assert parse_date_value(raw) == ""

    def test_date_objects(self):
        assert parse_date_value(date(2024, 2, 29)) == "2024-02-29"
        aware = datetime(2024, 1, 1, 2, 0, tzinfo=timezone.utc)
        assert parse_date_value(aware) == "2024-01-01"


class TestApplyTransform:
    @pytest.mark.parametrize(
        "value,transform,expected",
        [
            ("ABC", FieldTransform.LOWERCASE, "abc"),
            ("abc", "uppercase", "ABC"),
            ("  x  ", FieldTransform.TRIM, "x"),
            ("$1,000", FieldTransform.NUMBER, Decimal("1000")),
            ("abc", FieldTransform.NUMBER, "abc"),
            ("  ", FieldTransform.NUMBER, None),
            ("01/15/2024", FieldTransform.DATE, "2024-01-15"),
            ("soon", FieldTransform.DATE, "soon"),
            ("", FieldTransform.DATE, ""),
            (" keep ", FieldTransform.NONE, " keep "),
        ],
    )
    def test_transforms(self, value, transform, expected):
        assert apply_transform(value, transform) == expected

    @pytest.mark.parametrize("transform", list(FieldTransform))
    def test_none_passes_through(self, transform):
        assert apply_transform(None, transform) is None

    def test_unknown_transform_rejected(self):
        with pytest.raises(ValueError):
            apply_transform("x", "reverse")


class TestApplyMappings:
    ROW = SourceRow.from_pairs(["Inv #", "Amt", "Note"], ["INV-1", "$10.50", "hi"])

    def test_no_mappings_passes_row_through(self):
        assert apply_mappings(self.ROW, []).as_dict() == {
            "Inv #": "INV-1",
            "Amt": "$10.50",
            "Note": "hi",
        }

    def test_only_mapped_targets_are_produced(self):
        mappings = [
            FieldMapping("Inv #", "invoiceNumber"),
            FieldMapping("Amt", "amount", FieldTransform.NUMBER),
            FieldMapping("Note", ""),
        ]
        assert apply_mappings(self.ROW, mappings).as_dict() == {
            "invoiceNumber": "INV-1",
            "amount": Decimal("10.50"),
        }

    def test_absent_source_column_maps_to_none(self):
        record = apply_mappings(self.ROW, [FieldMapping("Customer", "customer")])
        assert "customer" in record
        assert record.get("customer") is None

    def test_map_rows_keeps_order(self):
        rows = [SourceRow.from_pairs(["a"], [str(i)]) for i in range(3)]
        mapped = map_rows(rows, [FieldMapping("a", "b")])
        assert [m.get("b") for m in mapped] == ["0", "1", "2"]


class TestDisplayValue:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, ""),
            (True, "true"),
            (False, "false"),
            (12.0, "12"),
            (12.5, "12.5"),
            ("x", "x"),
            (3, "3"),
            (Decimal("100.00"), "100"),
            (Decimal("1E+3"), "1000"),
            (Decimal("10.50"), "10.5"),
            (Decimal("-0.000001"), "-0.000001"),
            (Decimal("12345678901234567.89"), "12345678901234567.89"),
        ],
    )
    def test_display(self, value, expected):
        assert display_value(value) == expected


class TestAutoMatcher:
    def test_scores(self):
        assert score_target("invoice date", "invoice_date") == 1.0
        assert score_target("total amount", "amount") == 0.7
        assert score_target("customer name", "customer_id") == 0.2
        assert score_target("zzz", "amount") == 0.0

    def test_shared_words_capped(self):
        source = "alpha bravo charlie delta extra"
        target = "alpha bravo charlie delta foxtrot"
        assert score_target(source, target) == 0.6

    def test_short_words_do_not_count(self):
        assert score_target("po id", "po no") == 0.0

    @pytest.mark.parametrize(
        "target,expected",
        [
            ("invoiceDate", FieldTransform.DATE),
            ("amount", FieldTransform.NUMBER),
            ("unitCost", FieldTransform.NUMBER),
            ("salesPrice", FieldTransform.NUMBER),
            ("name", FieldTransform.NONE),
        ],
    )
    def test_infer_transform(self, target, expected):
        assert infer_transform(target) is expected

    def test_one_result_per_header_in_order(self, engine_config):
        results = auto_match_fields(
            ["Invoice Date", "Total Amount", "zzz"],
            ["invoice_date", "amount"],
            engine_config,
        )
        assert results == [
            AutoMatchResult("Invoice Date", "invoice_date", 1.0, FieldTransform.DATE),
            AutoMatchResult("Total Amount", "amount", 0.7, FieldTransform.NUMBER),
            AutoMatchResult("zzz", "", 0.0, FieldTransform.NONE),
        ]

    def test_first_highest_target_wins(self, engine_config):
        (result,) = auto_match_fields(["Amount"], ["amount", "Amount"], engine_config)
        assert result.target_field == "amount"

    def test_vendor_dictionary_hit(self, engine_config):
        (result,) = auto_match_fields(
            ["Vendor Number"], ["vendorCode", "vendorNumber"], engine_config, SourceFormat.FOUNDATION
        )
        assert result.target_field == "vendorCode"
        assert result.confidence == 0.95

    def test_vendor_hit_ignored_when_target_not_offered(self, engine_config):
        (result,) = auto_match_fields(
            ["Vendor Number"], ["vendor_number"], engine_config, "foundation"
        )
        assert result.target_field == "vendor_number"
        assert result.confidence == 1.0

    def test_to_field_mapping(self, engine_config):
        (result,) = auto_match_fields(["Due Date"], ["due_date"], engine_config)
        assert result.to_field_mapping() == FieldMapping("Due Date", "due_date", FieldTransform.DATE)
