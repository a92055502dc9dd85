"""
Configuration loader (``finance_migration.config.loader``).

Responsibility
--------------
Loads the engine YAML file and parses it into the frozen dataclasses of
``finance_migration.config.schema``.  Runtime callers go through
``finance_migration.config.get_engine_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Out-of-range or unknown values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from finance_migration.config.schema import (
    CollectionSignature,
    EngineConfig,
    ExportDefaults,
    VendorHeaderMap,
)
from finance_migration.domain.types import SourceFormat
from finance_migration.mapping.engine import normalize_header


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML file and return its contents as a dict.

    Preconditions:
        - ``path`` points to an existing, readable YAML file.
    Postconditions:
        - Returns a dict (empty if the file is blank).
    Raises:
        FileNotFoundError: If ``path`` does not exist.
        yaml.YAMLError: If the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_vendor_map(data: dict[str, Any]) -> VendorHeaderMap:
    headers = data["headers"]
    if not isinstance(headers, dict) or not headers:
        raise ValueError(f"Vendor map {data.get('format')!r} needs a non-empty headers mapping")
    return VendorHeaderMap(
        format=SourceFormat(data["format"]),
        headers=tuple(
            (normalize_header(str(src)), str(target)) for src, target in headers.items()
        ),
    )


def parse_collection_signature(data: dict[str, Any]) -> CollectionSignature:
    return CollectionSignature(
        collection=str(data["collection"]),
        headers=tuple(normalize_header(str(h)) for h in data["headers"]),
    )


def parse_export_defaults(data: dict[str, Any]) -> ExportDefaults:
    page_size = int(data.get("page_size", 50))
    if page_size < 1:
        raise ValueError(f"export.page_size must be positive, got {page_size}")
    return ExportDefaults(
        page_size=page_size,
        backup_version=str(data.get("backup_version", "2.0.0")),
        date_fields=tuple(data.get("date_fields", ("date", "invoiceDate", "createdAt"))),
        report_width=int(data.get("report_width", 80)),
    )


def parse_engine_config(data: dict[str, Any]) -> EngineConfig:
    """
    Parse a raw engine config dict.

    Preconditions:
        - ``data`` contains ``vendor_maps`` and ``collection_signatures``.
    Postconditions:
        - Returns a frozen ``EngineConfig``; list order is preserved.
    Raises:
        KeyError: If a required key is missing.
        ValueError: If a format name or numeric bound is invalid.
    """
    detection = data.get("detection", {})
    threshold = float(detection.get("auto_match_threshold", 0.1))
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"auto_match_threshold must be within [0, 1], got {threshold}")
    candidates = tuple(detection.get("delimiter_candidates", (",", "\t", "|", ";")))
    for c in candidates:
        if len(c) != 1:
            raise ValueError(f"Delimiter candidates must be single characters, got {c!r}")

    return EngineConfig(
        vendor_maps=tuple(parse_vendor_map(v) for v in data["vendor_maps"]),
        collection_signatures=tuple(
            parse_collection_signature(s) for s in data["collection_signatures"]
        ),
        delimiter_candidates=candidates,
        composite_key_separator=str(data.get("composite_key_separator", "||")),
        auto_match_threshold=threshold,
        vendor_min_overlap=int(detection.get("vendor_min_overlap", 3)),
        collection_min_hits=int(detection.get("collection_min_hits", 2)),
        export=parse_export_defaults(data.get("export", {})),
    )


def load_engine_config(path: Path) -> EngineConfig:
    return parse_engine_config(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    SHA-256 of the canonical JSON serialization of ``data``.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
