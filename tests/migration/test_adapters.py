"""Tests for the source parsers (delimited, fixed-width, JSON, IIF)."""

import pytest

from finance_migration.adapters import (
    DelimitedSourceParser,
    FixedWidthSourceParser,
    IifSourceParser,
    JsonSourceParser,
    get_parser,
)
from finance_migration.adapters.delimited import (
    detect_delimiter,
    escape_field,
    first_record,
    format_delimited,
    parse_delimited,
    split_records,
)
from finance_migration.adapters.fixed_width import parse_fixed_width, slice_fixed_width
from finance_migration.adapters.iif_adapter import parse_iif
from finance_migration.adapters.json_adapter import parse_json
from finance_migration.domain.types import RECORD_TYPE_FIELD, SourceFormat
from finance_migration.exceptions import SourceFormatError


class TestDelimitedParser:
    def test_header_line_names_fields(self):
        rows = parse_delimited("a,b,c\n1,2,3\n4,5,6\n")
        assert [r.as_dict() for r in rows] == [
            {"a": "1", "b": "2", "c": "3"},
            {"a": "4", "b": "5", "c": "6"},
        ]

    def test_quoted_field_keeps_delimiter_and_doubled_quotes(self):
        rows = parse_delimited('name,note\n"Smith, John","said ""hi"""\n', ",")
        assert rows[0].get("name") == "Smith, John"
        assert rows[0].get("note") == 'said "hi"'

    def test_quoted_field_may_span_lines(self):
        rows = parse_delimited('id,memo\n1,"line one\nline two"\n2,plain\n', ",")
        assert len(rows) == 2
        assert rows[0].get("memo") == "line one\nline two"

    def test_blank_lines_skipped_and_values_trimmed(self):
        rows = parse_delimited("a , b\n\n 1 , 2 \n\n", ",")
        assert rows[0].as_dict() == {"a": "1", "b": "2"}

    def test_missing_trailing_values_become_empty(self):
        rows = parse_delimited("a,b,c\n1\n", ",")
        assert rows[0].as_dict() == {"a": "1", "b": "", "c": ""}

    def test_crlf_line_endings(self):
        rows = parse_delimited("a,b\r\n1,2\r\n", ",")
        assert rows[0].as_dict() == {"a": "1", "b": "2"}

    def test_quoted_whitespace_is_kept(self):
        rows = parse_delimited('a,b\n" x", y \n"line\n",2\n', ",")
        assert rows[0].as_dict() == {"a": " x", "b": "y"}
        assert rows[1].as_dict() == {"a": "line\n", "b": "2"}

    def test_padding_around_quotes_is_dropped(self):
        assert split_records('  "a b" ,c\n', ",") == [["a b", "c"]]

    def test_quoted_empty_single_field_record_is_kept(self):
        rows = parse_delimited('a\n""\n"x,y"\n', ",")
        assert [r.as_dict() for r in rows] == [{"a": ""}, {"a": "x,y"}]

    def test_quotes_toggle_mid_field(self):
        assert split_records('ab"c,d"e,f\n', ",") == [["abc,de", "f"]]

    def test_unterminated_quote_runs_to_end(self):
        assert split_records('a,"open\nstill', ",") == [["a", "open\nstill"]]

    def test_first_record_skips_blank_lines(self):
        assert first_record('\n\n"A, B",C\nx,y\n', ",") == ["A, B", "C"]
        assert first_record("  \n", ",") == []

    def test_header_only_is_format_error(self):
        with pytest.raises(SourceFormatError) as exc_info:
            parse_delimited("a,b,c\n")
        assert exc_info.value.code == "SOURCE_FORMAT_INVALID"

    def test_empty_content_is_format_error(self):
        with pytest.raises(SourceFormatError):
            parse_delimited("")

    @pytest.mark.parametrize(
        "content,expected",
        [
            ("a,b,c\n", ","),
            ("a\tb\tc\n", "\t"),
            ("a|b|c\n", "|"),
            ("a;b;c\n", ";"),
            ("a;b,c;d\n", ";"),
            ("single\n", ","),
        ],
    )
    def test_detect_delimiter(self, content, expected):
        assert detect_delimiter(content) == expected

    def test_parser_uses_option_delimiter(self):
        rows = DelimitedSourceParser().parse("a;b\n1;2\n", {"delimiter": ";"})
        assert rows[0].as_dict() == {"a": "1", "b": "2"}

    def test_parser_detects_when_no_delimiter(self):
        rows = DelimitedSourceParser().parse("a|b\n1|2\n", {"delimiter": None})
        assert rows[0].as_dict() == {"a": "1", "b": "2"}

    def test_summarize(self):
        summary = DelimitedSourceParser().summarize("x,y\n1,2\n3,4\n5,6\n", {})
        assert summary.row_count == 3
        assert summary.columns == ("x", "y")
        assert summary.detected_delimiter == ","
        assert len(summary.sample_rows) == 3


class TestDelimitedWriter:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("plain", "plain"),
            ("a,b", '"a,b"'),
            ('say "x"', '"say ""x"""'),
            ("two\nlines", '"two\nlines"'),
            ("cr\rhere", '"cr\rhere"'),
            (None, ""),
            (12.0, "12"),
            (True, "true"),
        ],
    )
    def test_escape_field(self, value, expected):
        assert escape_field(value, ",") == expected

    def test_tab_delimiter_only_quotes_tabs(self):
        assert escape_field("a,b", "\t") == "a,b"
        assert escape_field("a\tb", "\t") == '"a\tb"'

    def test_format_writes_header_then_rows(self):
        out = format_delimited([{"a": 1, "b": "x,y"}], ["a", "b"])
        assert out == 'a,b\n1,"x,y"'

    @pytest.mark.parametrize("value", [" x", "y ", "line\n", "\ttab"])
    def test_surrounding_whitespace_is_quoted(self, value):
        assert escape_field(value, ",") == f'"{value}"'
        assert parse_delimited(format_delimited([{"v": value}], ["v"]), ",")[0].get("v") == value

    def test_empty_single_column_row_survives(self):
        out = format_delimited([{"v": ""}, {"v": "x"}], ["v"])
        assert out == 'v\n""\nx'
        assert [r.get("v") for r in parse_delimited(out, ",")] == ["", "x"]


class TestFixedWidthParser:
    def test_slice_with_trailing_remainder(self):
        assert slice_fixed_width("AAABBBBCC extra", [3, 4, 2]) == ["AAA", "BBBB", "CC", "extra"]

    def test_parse_slices_header_and_rows(self):
        content = "ID  NAME      AMT\n001 Acme      100\n002 Globex    250\n"
        rows = parse_fixed_width(content, [4, 10, 3])
        assert [r.as_dict() for r in rows] == [
            {"ID": "001", "NAME": "Acme", "AMT": "100"},
            {"ID": "002", "NAME": "Globex", "AMT": "250"},
        ]

    def test_widths_required(self):
        with pytest.raises(SourceFormatError):
            FixedWidthSourceParser().parse("ID\n1\n", {})

    def test_non_positive_width_rejected(self):
        with pytest.raises(SourceFormatError):
            parse_fixed_width("ID\n1\n", [0, 3])

    def test_requires_data_line(self):
        with pytest.raises(SourceFormatError):
            parse_fixed_width("ID  NAME\n", [4, 4])


class TestJsonParser:
    def test_top_level_array(self):
        rows = parse_json('[{"a": 1, "b": "x"}, {"a": 2, "b": null}]')
        assert [r.as_dict() for r in rows] == [{"a": "1", "b": "x"}, {"a": "2", "b": ""}]

    def test_object_with_data_array(self):
        rows = parse_json('{"data": [{"a": true}], "meta": {}}')
        assert rows[0].as_dict() == {"a": "true"}

    def test_single_object_wrapped(self):
        rows = parse_json('{"name": "Acme", "tags": ["x", "y"]}')
        assert len(rows) == 1
        assert rows[0].get("tags") == '["x","y"]'

    def test_malformed_json_is_format_error(self):
        with pytest.raises(SourceFormatError) as exc_info:
            JsonSourceParser().parse("{not json", {})
        assert exc_info.value.source_format == "json"

    def test_non_object_element_rejected(self):
        with pytest.raises(SourceFormatError):
            parse_json("[1, 2]")


class TestIifParser:
    CONTENT = (
        "!TRNS\tTRNSTYPE\tDATE\tACCNT\tAMOUNT\n"
        "!SPL\tTRNSTYPE\tDATE\tACCNT\tAMOUNT\n"
        "!ENDTRNS\n"
        "TRNS\tINVOICE\t1/15/2024\tAccounts Receivable\t100.00\n"
        "SPL\tINVOICE\t1/15/2024\tSales\t-100.00\n"
        "ENDTRNS\n"
    )

    def test_rows_carry_record_type(self):
        rows = parse_iif(self.CONTENT)
        assert [r.record_type for r in rows] == ["TRNS", "SPL", "ENDTRNS"]

    def test_transaction_lines_use_their_own_schema(self):
        trns, spl, end = parse_iif(self.CONTENT)
        assert trns.as_dict() == {
            "TRNSTYPE": "INVOICE",
            "DATE": "1/15/2024",
            "ACCNT": "Accounts Receivable",
            "AMOUNT": "100.00",
            RECORD_TYPE_FIELD: "TRNS",
        }
        assert spl.get("ACCNT") == "Sales"
        assert spl.get("AMOUNT") == "-100.00"
        assert end.as_dict() == {RECORD_TYPE_FIELD: "ENDTRNS"}

    def test_column_less_header_still_counts(self):
        (row,) = parse_iif("!ENDTRNS\nENDTRNS\n")
        assert row.record_type == "ENDTRNS"

    def test_untyped_line_uses_active_schema(self):
        content = "!TRNS\tDATE\tAMOUNT\n!ACCNT\tNAME\nChecking\n"
        (row,) = parse_iif(content)
        assert row.as_dict() == {"NAME": "Checking", RECORD_TYPE_FIELD: "ACCNT"}

    def test_data_mapped_under_preceding_header(self):
        content = (
            "!TRNS\tTRNSTYPE\tDATE\tACCNT\tAMOUNT\n"
            "TRNS\tINVOICE\t1/15/2024\tAccounts Receivable\t100.00\n"
            "!SPL\tTRNSTYPE\tACCNT\tAMOUNT\n"
            "SPL\tINVOICE\tSales\t-100.00\n"
        )
        trns, spl = parse_iif(content)
        assert trns.get("ACCNT") == "Accounts Receivable"
        assert trns.get(RECORD_TYPE_FIELD) == "TRNS"
        assert spl.as_dict() == {
            "TRNSTYPE": "INVOICE",
            "ACCNT": "Sales",
            "AMOUNT": "-100.00",
            RECORD_TYPE_FIELD: "SPL",
        }

    def test_list_section_maps_all_cells(self):
        content = "!ACCNT\tNAME\tACCNTTYPE\nChecking\tBANK\n"
        (row,) = parse_iif(content)
        assert row.as_dict() == {"NAME": "Checking", "ACCNTTYPE": "BANK", RECORD_TYPE_FIELD: "ACCNT"}

    def test_no_header_is_format_error(self):
        with pytest.raises(SourceFormatError):
            parse_iif("TRNS\tINVOICE\n")

    def test_no_data_is_format_error(self):
        with pytest.raises(SourceFormatError):
            IifSourceParser().parse("!TRNS\tDATE\n", {})


class TestGetParser:
    @pytest.mark.parametrize(
        "fmt,cls",
        [
            (SourceFormat.JSON, JsonSourceParser),
            (SourceFormat.IIF, IifSourceParser),
            (SourceFormat.FIXED, FixedWidthSourceParser),
            (SourceFormat.CSV, DelimitedSourceParser),
            (SourceFormat.QB, DelimitedSourceParser),
            ("sage", DelimitedSourceParser),
        ],
    )
    def test_parser_by_format(self, fmt, cls):
        assert isinstance(get_parser(fmt), cls)

    def test_tsv_defaults_to_tab(self):
        rows = get_parser(SourceFormat.TSV).parse("a\tb\n1,5\t2\n", {})
        assert rows[0].as_dict() == {"a": "1,5", "b": "2"}
