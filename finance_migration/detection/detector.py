"""
Format detection.

Responsibility:
    Infer source format, confidence, delimiter, headers and a likely target
    collection from raw content plus an optional filename.

Algorithm:
    1. ``.iif`` extension or ``!TRNS``/``!HDR`` prefix -> iif (0.95, tab).
    2. ``.json`` extension or ``{``/``[`` prefix -> json (0.98) when the
       content parses; otherwise fall through.
    3. Delimited: the most frequent candidate delimiter on the first line.
       csv 0.7, tab -> tsv 0.8, pipe/semicolon -> csv 0.75.
    4. Vendor dictionaries: a vendor with at least ``vendor_min_overlap``
       header matches and a strictly higher count than earlier vendors wins,
       confidence min(0.95, 0.6 + 0.1 * count).
    5. Collection guess: signature hits by substring-either-direction;
       first highest score with at least ``collection_min_hits``.

Pure; identical input always yields an identical result.
"""

from __future__ import annotations

import json
from typing import Sequence

from finance_migration.adapters.delimited import detect_delimiter, first_record
from finance_migration.adapters.json_adapter import extract_objects
from finance_migration.config.schema import (
    CollectionSignature,
    EngineConfig,
    VendorHeaderMap,
)
from finance_migration.domain.types import FormatDetectionResult, SourceFormat
from finance_migration.exceptions import SourceFormatError
from finance_migration.logging_config import get_logger
from finance_migration.mapping.engine import normalize_header

logger = get_logger("detection.detector")

IIF_CONFIDENCE = 0.95
JSON_CONFIDENCE = 0.98
CSV_CONFIDENCE = 0.7
TSV_CONFIDENCE = 0.8
ALT_DELIMITER_CONFIDENCE = 0.75
VENDOR_CONFIDENCE_CAP = 0.95


def _extension(filename: str | None) -> str:
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[1].lower()


def _first_line(content: str) -> str:
    return content.replace("\r\n", "\n").split("\n", 1)[0]


def _headers_match(header: str, known: str) -> bool:
    return header == known or known in header or header in known


def count_vendor_overlap(headers: Sequence[str], vendor: VendorHeaderMap) -> int:
    """Known vendor headers matched by at least one normalized header."""
    normalized = [n for n in (normalize_header(h) for h in headers) if n]
    return sum(
        1
        for known in vendor.known_headers()
        if any(_headers_match(h, known) for h in normalized)
    )


def detect_collection(
    headers: Sequence[str],
    signatures: Sequence[CollectionSignature],
    min_hits: int = 2,
) -> str | None:
    normalized = [normalize_header(h) for h in headers]
    best: str | None = None
    best_score = 0
    for sig in signatures:
        score = sum(
            1
            for term in sig.headers
            if any(term in h or h in term for h in normalized if h)
        )
        if score > best_score:
            best, best_score = sig.collection, score
    return best if best_score >= min_hits else None


def _json_headers(parsed: object) -> tuple[str, ...]:
    try:
        objects = extract_objects(parsed)
    except SourceFormatError:
        return ()
    if objects and isinstance(objects[0], dict):
        return tuple(str(k) for k in objects[0])
    return ()


def detect_format(
    content: str,
    config: EngineConfig,
    filename: str | None = None,
) -> FormatDetectionResult:
    ext = _extension(filename)

    if ext == "iif" or content.startswith("!TRNS") or content.startswith("!HDR"):
        header_line = _first_line(content).lstrip("!")
        headers = tuple(h.strip() for h in header_line.split("\t")[1:] if h.strip())
        return FormatDetectionResult(
            format=SourceFormat.IIF,
            confidence=IIF_CONFIDENCE,
            delimiter="\t",
            headers=headers,
            detected_collection=detect_collection(
                headers, config.collection_signatures, config.collection_min_hits
            ),
        )

    stripped = content.strip()
    if ext == "json" or stripped.startswith("{") or stripped.startswith("["):
        try:
            parsed = json.loads(stripped)
        except json.JSONDecodeError:
            logger.debug("json_sniff_failed", extra={"source_filename": filename})
        else:
            headers = _json_headers(parsed)
            return FormatDetectionResult(
                format=SourceFormat.JSON,
                confidence=JSON_CONFIDENCE,
                delimiter=None,
                headers=headers,
                detected_collection=detect_collection(
                    headers, config.collection_signatures, config.collection_min_hits
                ),
            )

    delimiter = detect_delimiter(content, config.delimiter_candidates)
    headers = tuple(h for h in first_record(content.lstrip("!"), delimiter) if h)

    fmt, confidence = SourceFormat.CSV, CSV_CONFIDENCE
    if delimiter == "\t":
        fmt, confidence = SourceFormat.TSV, TSV_CONFIDENCE
    elif delimiter in ("|", ";"):
        confidence = ALT_DELIMITER_CONFIDENCE

    best_overlap = 0
    for vendor in config.vendor_maps:
        overlap = count_vendor_overlap(headers, vendor)
        if overlap >= config.vendor_min_overlap and overlap > best_overlap:
            best_overlap = overlap
            fmt = vendor.format
            confidence = min(VENDOR_CONFIDENCE_CAP, 0.6 + 0.1 * overlap)

    result = FormatDetectionResult(
        format=fmt,
        confidence=round(confidence, 2),
        delimiter=delimiter,
        headers=headers,
        detected_collection=detect_collection(
            headers, config.collection_signatures, config.collection_min_hits
        ),
    )
    logger.debug(
        "format_detected",
        extra={
            "source_filename": filename,
            "format": result.format,
            "confidence": result.confidence,
            "delimiter": delimiter,
            "detected_collection": result.detected_collection,
        },
    )
    return result
