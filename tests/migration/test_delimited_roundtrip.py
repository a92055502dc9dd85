"""Property tests: delimited writer output parses back to the same rows."""

import string

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from finance_migration.adapters.delimited import (
    DELIMITER_CANDIDATES,
    detect_delimiter,
    escape_field,
    format_delimited,
    parse_delimited,
)

ALPHABET = string.ascii_letters + string.digits + " .-'" + ',;|\t"\n\r'

values = st.text(alphabet=ALPHABET, max_size=12)
names = st.text(alphabet=string.ascii_letters + string.digits + "_ ,", min_size=1, max_size=10).filter(
    lambda v: v == v.strip()
)


@st.composite
def tables(draw):
    columns = draw(st.lists(names, min_size=1, max_size=5, unique=True))
    rows = draw(
        st.lists(
            st.fixed_dictionaries({c: values for c in columns}),
            min_size=1,
            max_size=6,
        )
    )
    return columns, rows


class TestDelimitedRoundTrip:
    @settings(max_examples=200, deadline=None)
    @given(table=tables(), delimiter=st.sampled_from(DELIMITER_CANDIDATES))
    def test_parse_recovers_written_rows(self, table, delimiter):
        columns, rows = table
        text = format_delimited(rows, columns, delimiter)
        parsed = parse_delimited(text, delimiter)
        assert [r.as_dict() for r in parsed] == rows

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("plain", "plain"),
            ("a,b", '"a,b"'),
            ('say "hi"', '"say ""hi"""'),
            ("two\nlines", '"two\nlines"'),
            (" padded ", '" padded "'),
            (None, ""),
            (12.0, "12"),
        ],
    )
    def test_escape_field(self, value, expected):
        assert escape_field(value, ",") == expected

    def test_tab_delimiter_leaves_commas_bare(self):
        assert escape_field("a,b", "\t") == "a,b"

    @pytest.mark.parametrize(
        "first_line,expected",
        [
            ("a,b,c", ","),
            ("a\tb\tc", "\t"),
            ("a|b|c", "|"),
            ("a;b;c", ";"),
            ("a,b;c", ","),
            ("single", ","),
        ],
    )
    def test_detect_delimiter(self, first_line, expected):
        assert detect_delimiter(first_line + "\n1,2,3") == expected
