"""Source format and target collection detection."""

from finance_migration.detection.detector import detect_collection, detect_format

__all__ = ["detect_collection", "detect_format"]
