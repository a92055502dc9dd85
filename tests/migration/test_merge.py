"""Tests for composite-key matching and merge-strategy classification."""

import pytest

from finance_migration.domain.types import ConflictField, MappedRecord, MergeStrategy, RowAction
from finance_migration.merge import (
    build_key_index,
    classify_row,
    composite_key,
    effective_action,
    find_conflicts,
)


class TestCompositeKey:
    def test_joins_stringified_values(self):
        record = {"vendor": "V1", "number": 12.0, "missing": None}
        assert composite_key(record, ["vendor", "number", "missing"]) == "V1||12||"

    def test_custom_separator(self):
        assert composite_key({"a": "x", "b": "y"}, ["a", "b"], "#") == "x#y"

    def test_mapped_record_and_dict_agree(self):
        mapped = MappedRecord.from_dict({"invoiceNumber": "INV-1", "amount": 100.0})
        stored = {"id": "r1", "invoiceNumber": "INV-1", "amount": 100}
        keys = ["invoiceNumber", "amount"]
        assert composite_key(mapped, keys) == composite_key(stored, keys)


class TestKeyIndex:
    def test_indexes_by_key(self):
        records = [{"id": "1", "code": "A"}, {"id": "2", "code": "B"}]
        index = build_key_index(records, ["code"])
        assert index["B"]["id"] == "2"

    def test_later_duplicate_wins(self):
        records = [{"id": "1", "code": "A"}, {"id": "2", "code": "A"}]
        assert build_key_index(records, ["code"])["A"]["id"] == "2"

    def test_no_key_fields_means_no_index(self):
        assert build_key_index([{"id": "1"}], []) == {}


class TestConflicts:
    def test_only_differing_non_empty_fields(self):
        mapped = MappedRecord.from_dict({"name": "Acme", "phone": "", "city": None, "zip": "1"})
        existing = {"name": "ACME", "phone": "555", "city": "X", "zip": "1"}
        assert find_conflicts(mapped, existing) == (
            ConflictField(field="name", source_value="Acme", existing_value="ACME"),
        )

    def test_field_absent_from_existing_conflicts(self):
        mapped = MappedRecord.from_dict({"email": "a@x.io"})
        assert find_conflicts(mapped, {}) == (ConflictField("email", "a@x.io", None),)


class TestClassifyRow:
    EXISTING = {"id": "r1", "code": "A"}
    CONFLICT = (ConflictField("name", "x", "y"),)

    @pytest.mark.parametrize("strategy", list(MergeStrategy))
    def test_unmatched_row_is_add(self, strategy):
        assert classify_row(strategy, None, ()) is RowAction.ADD

    @pytest.mark.parametrize("strategy", list(MergeStrategy))
    def test_error_row_is_skip(self, strategy):
        assert classify_row(strategy, None, (), has_errors=True) is RowAction.SKIP

    @pytest.mark.parametrize(
        "strategy,conflicts,expected",
        [
            (MergeStrategy.SKIP, CONFLICT, RowAction.SKIP),
            (MergeStrategy.OVERWRITE, CONFLICT, RowAction.UPDATE),
            (MergeStrategy.APPEND, CONFLICT, RowAction.ADD),
            (MergeStrategy.MANUAL, CONFLICT, RowAction.CONFLICT),
            (MergeStrategy.MANUAL, (), RowAction.UPDATE),
        ],
    )
    def test_matched_row(self, strategy, conflicts, expected):
        assert classify_row(strategy, self.EXISTING, conflicts) is expected


class TestEffectiveAction:
    @pytest.mark.parametrize(
        "strategy,expected",
        [
            (MergeStrategy.SKIP, RowAction.SKIP),
            (MergeStrategy.OVERWRITE, RowAction.UPDATE),
            (MergeStrategy.APPEND, RowAction.ADD),
        ],
    )
    def test_strategy_ignores_resolution(self, strategy, expected):
        assert effective_action(strategy, "skip") is expected
        assert effective_action(strategy, "add") is expected

    @pytest.mark.parametrize(
        "resolution,expected",
        [
            (None, RowAction.SKIP),
            ("add", RowAction.ADD),
            (RowAction.UPDATE, RowAction.UPDATE),
            ("skip", RowAction.SKIP),
            ("conflict", RowAction.SKIP),
        ],
    )
    def test_manual_takes_resolution(self, resolution, expected):
        assert effective_action(MergeStrategy.MANUAL, resolution) is expected

    def test_unknown_resolution_rejected(self):
        with pytest.raises(ValueError):
            effective_action("manual", "merge")
