"""Source parsers for export content (text in, SourceRow out)."""

from finance_migration.adapters.base import SourceParser, SourceSummary
from finance_migration.adapters.delimited import DelimitedSourceParser
from finance_migration.adapters.fixed_width import FixedWidthSourceParser
from finance_migration.adapters.iif_adapter import IifSourceParser
from finance_migration.adapters.json_adapter import JsonSourceParser
from finance_migration.domain.types import SourceFormat

__all__ = [
    "SourceParser",
    "SourceSummary",
    "DelimitedSourceParser",
    "FixedWidthSourceParser",
    "IifSourceParser",
    "JsonSourceParser",
    "get_parser",
]

# Vendor formats (qb, sage, foundation) are delimited exports.
_PARSERS: dict[SourceFormat, SourceParser] = {
    SourceFormat.JSON: JsonSourceParser(),
    SourceFormat.IIF: IifSourceParser(),
    SourceFormat.FIXED: FixedWidthSourceParser(),
    SourceFormat.TSV: DelimitedSourceParser(default_delimiter="\t"),
}
_DELIMITED = DelimitedSourceParser()


def get_parser(source_format: SourceFormat | str) -> SourceParser:
    return _PARSERS.get(SourceFormat(source_format), _DELIMITED)
