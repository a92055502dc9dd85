"""Tests for rule validation and referential-integrity checks."""

from decimal import Decimal

import pytest

from finance_migration.domain.types import (
    DataType,
    ErrorSeverity,
    MappedRecord,
    RuleKind,
    ValidationRule,
)
from finance_migration.domain.validators import (
    find_reference_violations,
    reference_rules,
    severity_for,
    validate_rows,
    validate_value,
)


def _rec(**values):
    return MappedRecord.from_dict(values)


class TestRequired:
    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_empty_fails(self, value):
        rule = ValidationRule("invoiceNumber", RuleKind.REQUIRED)
        assert validate_value(value, rule, _rec()) == 'Field "invoiceNumber" is required.'

    def test_present_passes(self):
        rule = ValidationRule("invoiceNumber", RuleKind.REQUIRED)
        assert validate_value("INV-1", rule, _rec()) is None

    def test_custom_message(self):
        rule = ValidationRule("x", RuleKind.REQUIRED, message="x please")
        assert validate_value("", rule, _rec()) == "x please"


class TestDataType:
    @pytest.mark.parametrize(
        "data_type,value",
        [
            (DataType.NUMBER, "$1,200.00"),
            (DataType.NUMBER, 5.0),
            (DataType.DATE, "01/15/2024"),
            (DataType.BOOLEAN, "Yes"),
            (DataType.BOOLEAN, "0"),
            (DataType.STRING, "anything"),
            (DataType.NUMBER, ""),
        ],
    )
    def test_accepts(self, data_type, value):
        rule = ValidationRule("f", RuleKind.DATA_TYPE, data_type=data_type)
        assert validate_value(value, rule, _rec()) is None

    def test_number_message(self):
        rule = ValidationRule("amount", RuleKind.DATA_TYPE, data_type=DataType.NUMBER)
        assert validate_value("abc", rule, _rec()) == (
            'Field "amount" must be a valid number. Got: "abc".'
        )

    def test_date_message(self):
        rule = ValidationRule("date", RuleKind.DATA_TYPE, data_type=DataType.DATE)
        assert "must be a valid date" in validate_value("soon", rule, _rec())

    def test_boolean_message(self):
        rule = ValidationRule("active", RuleKind.DATA_TYPE, data_type="boolean")
        assert "must be a boolean value" in validate_value("maybe", rule, _rec())


class TestPatternAndRange:
    def test_pattern(self):
        rule = ValidationRule("code", RuleKind.PATTERN, pattern=r"^INV-\d+$")
        assert validate_value("INV-12", rule, _rec()) is None
        assert validate_value("X-1", rule, _rec()) == (
            'Field "code" does not match pattern "^INV-\\d+$". Got: "X-1".'
        )

    def test_pattern_skips_empty(self):
        rule = ValidationRule("code", RuleKind.PATTERN, pattern=r"^\d+$")
        assert validate_value("", rule, _rec()) is None

    def test_range_bounds(self):
        rule = ValidationRule("amount", RuleKind.RANGE, minimum=0, maximum=100)
        assert validate_value(50.0, rule, _rec()) is None
        assert validate_value(-5.0, rule, _rec()) == 'Field "amount" must be >= 0. Got: -5.'
        assert validate_value("150.5", rule, _rec()) == 'Field "amount" must be <= 100. Got: 150.5.'

    def test_range_compares_decimal_against_float_bounds(self):
        rule = ValidationRule("amount", RuleKind.RANGE, minimum=0.1, maximum=100)
        assert validate_value(Decimal("100.00"), rule, _rec()) is None
        assert validate_value("0.10", rule, _rec()) is None
        assert validate_value(Decimal("100.01"), rule, _rec()) == 'Field "amount" must be <= 100. Got: 100.01.'

    def test_range_ignores_non_numeric(self):
        rule = ValidationRule("amount", RuleKind.RANGE, minimum=0)
        assert validate_value("abc", rule, _rec()) is None


class TestCustom:
    def test_custom_predicate_sees_row(self):
        def due_after_issue(value, row):
            if value and value < row.get("invoiceDate"):
                return "due before issue"
            return None

        rule = ValidationRule("dueDate", RuleKind.CUSTOM, custom=due_after_issue)
        row = _rec(invoiceDate="2024-02-01", dueDate="2024-01-01")
        assert validate_value(row.get("dueDate"), rule, row) == "due before issue"

    def test_custom_without_callable_passes(self):
        rule = ValidationRule("x", RuleKind.CUSTOM)
        assert validate_value("v", rule, _rec()) is None


class TestValidateRows:
    def test_issues_numbered_from_one_with_severity(self):
        records = [_rec(id="1", amount=5.0), _rec(id="", amount="abc")]
        rules = [
            ValidationRule("id", RuleKind.REQUIRED),
            ValidationRule("amount", RuleKind.DATA_TYPE, data_type=DataType.NUMBER),
        ]
        issues = validate_rows("b1", records, rules)
        assert [(i.row_number, i.field, i.severity) for i in issues] == [
            (2, "id", ErrorSeverity.ERROR),
            (2, "amount", ErrorSeverity.WARNING),
        ]
        assert issues[1].value == "abc"
        assert all(i.batch_id == "b1" for i in issues)

    def test_referential_rules_deferred(self):
        rule = ValidationRule("customer", RuleKind.REFERENTIAL_INTEGRITY, ref_collection="customers")
        assert validate_rows("b", [_rec(customer="C-9")], [rule]) == []

    @pytest.mark.parametrize(
        "kind,expected",
        [
            (RuleKind.REQUIRED, ErrorSeverity.ERROR),
            (RuleKind.REFERENTIAL_INTEGRITY, ErrorSeverity.ERROR),
            (RuleKind.DATA_TYPE, ErrorSeverity.WARNING),
            (RuleKind.PATTERN, ErrorSeverity.WARNING),
            (RuleKind.RANGE, ErrorSeverity.WARNING),
            (RuleKind.CUSTOM, ErrorSeverity.WARNING),
        ],
    )
    def test_severity(self, kind, expected):
        assert severity_for(ValidationRule("f", kind)) is expected


class TestReferenceViolations:
    def test_missing_reference_is_error(self):
        calls = []

        def lookup(collection, field):
            calls.append((collection, field))
            return {"C-1"}

        rule = ValidationRule("customer", RuleKind.REFERENTIAL_INTEGRITY, ref_collection="customers")
        records = [_rec(customer="C-1"), _rec(customer="C-9"), _rec(customer=""), _rec(customer="C-8")]
        issues = find_reference_violations("b", records, [rule], lookup)

        assert [i.row_number for i in issues] == [2, 4]
        assert issues[0].message == 'Field "customer" references missing customers.id "C-9".'
        assert issues[0].severity is ErrorSeverity.ERROR
        assert calls == [("customers", "id")]

    def test_explicit_ref_field(self):
        rule = ValidationRule(
            "vendor", RuleKind.REFERENTIAL_INTEGRITY, ref_collection="vendors", ref_field="code"
        )
        issues = find_reference_violations("b", [_rec(vendor=7.0)], [rule], lambda c, f: {"7"})
        assert issues == []

    def test_rules_without_collection_are_ignored(self):
        rules = [
            ValidationRule("a", RuleKind.REFERENTIAL_INTEGRITY),
            ValidationRule("b", RuleKind.REQUIRED),
            ValidationRule("c", RuleKind.REFERENTIAL_INTEGRITY, ref_collection="x"),
        ]
        assert [r.field for r in reference_rules(rules)] == ["c"]
