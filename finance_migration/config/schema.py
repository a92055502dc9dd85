"""
Engine configuration schema (``finance_migration.config.schema``).

Frozen dataclasses produced by ``loader.parse_engine_config``.  Header keys
are stored already normalized (see ``mapping.engine.normalize_header``).
"""

from __future__ import annotations

from dataclasses import dataclass

from finance_migration.domain.types import SourceFormat


@dataclass(frozen=True)
class VendorHeaderMap:
    """Known export headers of one accounting package -> target field."""

    format: SourceFormat
    headers: tuple[tuple[str, str], ...]

    def target_for(self, normalized_header: str) -> str | None:
        for header, target in self.headers:
            if header == normalized_header:
                return target
        return None

    def known_headers(self) -> tuple[str, ...]:
        return tuple(h for h, _ in self.headers)


@dataclass(frozen=True)
class CollectionSignature:
    """Headers that suggest content belongs to a target collection."""

    collection: str
    headers: tuple[str, ...]


@dataclass(frozen=True)
class ExportDefaults:
    page_size: int = 50
    backup_version: str = "2.0.0"
    date_fields: tuple[str, ...] = ("date", "invoiceDate", "createdAt")
    report_width: int = 80


@dataclass(frozen=True)
class EngineConfig:
    """Complete engine configuration.

    ``vendor_maps`` order is detection priority: on equal overlap the
    earlier vendor is kept.  ``collection_signatures`` order breaks ties in
    collection guessing.
    """

    vendor_maps: tuple[VendorHeaderMap, ...]
    collection_signatures: tuple[CollectionSignature, ...]
    delimiter_candidates: tuple[str, ...] = (",", "\t", "|", ";")
    composite_key_separator: str = "||"
    auto_match_threshold: float = 0.1
    vendor_min_overlap: int = 3
    collection_min_hits: int = 2
    export: ExportDefaults = ExportDefaults()

    def vendor_map(self, source_format: SourceFormat | str) -> VendorHeaderMap | None:
        fmt = SourceFormat(source_format)
        for vm in self.vendor_maps:
            if vm.format is fmt:
                return vm
        return None
