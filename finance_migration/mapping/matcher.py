"""
Field auto-matcher.

Suggests a target field and transform for every source header.  A vendor
dictionary hit for the declared source format scores 0.95 when its target is
among the caller's fields; otherwise every target is scored:

    exact normalized match              1.0
    substring in either direction       0.7
    shared words longer than 2 chars    min(0.6, 0.2 * shared)

The first target with the highest score wins.  A best score at or below the
threshold leaves the target empty for manual resolution.
"""

from __future__ import annotations

from typing import Sequence

from finance_migration.config.schema import EngineConfig
from finance_migration.domain.types import AutoMatchResult, FieldTransform, SourceFormat
from finance_migration.mapping.engine import normalize_header

VENDOR_MATCH_CONFIDENCE = 0.95
EXACT_CONFIDENCE = 1.0
SUBSTRING_CONFIDENCE = 0.7
WORD_CONFIDENCE = 0.2
WORD_CONFIDENCE_CAP = 0.6


def score_target(normalized_source: str, target: str) -> float:
    normalized_target = normalize_header(target)
    if normalized_target == normalized_source:
        return EXACT_CONFIDENCE
    if normalized_target in normalized_source or normalized_source in normalized_target:
        return SUBSTRING_CONFIDENCE
    shared = sum(
        1
        for sw in normalized_source.split(" ")
        for tw in normalized_target.split(" ")
        if sw == tw and len(sw) > 2
    )
    if shared:
        return min(WORD_CONFIDENCE_CAP, shared * WORD_CONFIDENCE)
    return 0.0


def infer_transform(target_field: str) -> FieldTransform:
    lowered = target_field.lower()
    if "date" in lowered:
        return FieldTransform.DATE
    if "amount" in lowered or "cost" in lowered or "price" in lowered:
        return FieldTransform.NUMBER
    return FieldTransform.NONE


def auto_match_fields(
    source_headers: Sequence[str],
    target_fields: Sequence[str],
    config: EngineConfig,
    source_format: SourceFormat | str | None = None,
) -> list[AutoMatchResult]:
    vendor = config.vendor_map(source_format) if source_format else None
    results: list[AutoMatchResult] = []

    for source in source_headers:
        normalized = normalize_header(source)
        best_target, best_confidence = "", 0.0

        known = vendor.target_for(normalized) if vendor else None
        if known and known in target_fields:
            best_target, best_confidence = known, VENDOR_MATCH_CONFIDENCE
        else:
            for target in target_fields:
                confidence = score_target(normalized, target)
                if confidence > best_confidence:
                    best_target, best_confidence = target, confidence

        if best_confidence <= config.auto_match_threshold:
            best_target = ""
        results.append(
            AutoMatchResult(
                source_field=source,
                target_field=best_target,
                confidence=round(best_confidence, 2),
                transform=infer_transform(best_target) if best_target else FieldTransform.NONE,
            )
        )
    return results
