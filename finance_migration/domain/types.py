"""
Migration domain types.

Pure frozen dataclasses and string enums for batches, row issues, field
mappings, validation rules, preview results and export jobs.

Architecture: finance_migration/domain. ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterable, Iterator, Mapping

# =============================================================================
# Enums
# =============================================================================


class SourceFormat(str, Enum):
    """Source content formats accepted by upload."""

    CSV = "csv"
    TSV = "tsv"
    JSON = "json"
    IIF = "iif"
    QB = "qb"
    SAGE = "sage"
    FOUNDATION = "foundation"
    FIXED = "fixed"


class BatchStatus(str, Enum):
    """Import batch lifecycle states."""

    PENDING = "pending"
    VALIDATING = "validating"
    PREVIEW = "preview"
    IMPORTING = "importing"
    COMPLETED = "completed"
    FAILED = "failed"
    REVERTED = "reverted"


class MergeStrategy(str, Enum):
    """What to do when an incoming row's composite key matches a record."""

    SKIP = "skip"
    OVERWRITE = "overwrite"
    APPEND = "append"
    MANUAL = "manual"


class ErrorSeverity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


class FieldTransform(str, Enum):
    """Value normalization applied while mapping a source field."""

    NONE = "none"
    LOWERCASE = "lowercase"
    UPPERCASE = "uppercase"
    TRIM = "trim"
    NUMBER = "number"
    DATE = "date"


class RowAction(str, Enum):
    """Prospective (preview) or effective (commit) action for one row."""

    ADD = "add"
    UPDATE = "update"
    SKIP = "skip"
    CONFLICT = "conflict"


class RuleKind(str, Enum):
    REQUIRED = "required"
    DATA_TYPE = "dataType"
    PATTERN = "pattern"
    RANGE = "range"
    REFERENTIAL_INTEGRITY = "referentialIntegrity"
    CUSTOM = "custom"


class DataType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"


class ExportFormat(str, Enum):
    CSV = "csv"
    TSV = "tsv"
    JSON = "json"
    PDF = "pdf"
    API = "api"


class ExportJobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# =============================================================================
# Rows
# =============================================================================

# Pseudo-field exposing a SourceRow's record-type tag (IIF TRNS/SPL/ENDTRNS).
RECORD_TYPE_FIELD = "_recordType"


@dataclass(frozen=True, slots=True)
class SourceRow:
    """One parsed row before mapping.

    An ordered association list of (field name, raw string) pairs. When a
    header repeats, the later column wins on lookup.
    """

    fields: tuple[tuple[str, str], ...]
    record_type: str | None = None

    @classmethod
    def from_pairs(
        cls,
        names: Iterable[str],
        values: Iterable[str],
        record_type: str | None = None,
    ) -> SourceRow:
        """Zip header names with values; missing values become ''."""
        values = list(values)
        pairs = tuple(
            (name, values[i] if i < len(values) else "")
            for i, name in enumerate(names)
        )
        return cls(fields=pairs, record_type=record_type)

    def get(self, name: str, default: str | None = None) -> str | None:
        if name == RECORD_TYPE_FIELD and self.record_type is not None:
            return self.record_type
        for key, value in reversed(self.fields):
            if key == name:
                return value
        return default

    def field_names(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(k for k, _ in self.fields))

    def as_dict(self) -> dict[str, str]:
        out = dict(self.fields)
        if self.record_type is not None:
            out[RECORD_TYPE_FIELD] = self.record_type
        return out

    def __len__(self) -> int:
        return len(self.fields)


@dataclass(frozen=True, slots=True)
class MappedRecord:
    """One row after field mapping and transforms.

    Keys are caller-declared target fields; values are transformed (str,
    Decimal or None). Distinct from SourceRow so raw and mapped data never mix.
    """

    fields: tuple[tuple[str, Any], ...]

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> MappedRecord:
        return cls(fields=tuple(values.items()))

    def get(self, name: str, default: Any = None) -> Any:
        for key, value in reversed(self.fields):
            if key == name:
                return value
        return default

    def __contains__(self, name: object) -> bool:
        return any(key == name for key, _ in self.fields)

    def __iter__(self) -> Iterator[str]:
        return iter(dict(self.fields))

    def keys(self) -> tuple[str, ...]:
        return tuple(dict(self.fields))

    def as_dict(self) -> dict[str, Any]:
        return dict(self.fields)


# =============================================================================
# Batch and its satellites
# =============================================================================


@dataclass(frozen=True)
class RecordSnapshot:
    """Pre-commit values of the fields an import overwrote on one record.

    ``missing_fields`` lists fields that were absent before the update; on
    revert they are reset to None.
    """

    record_id: str
    values: tuple[tuple[str, Any], ...]
    missing_fields: tuple[str, ...] = ()
    version: int | None = None


@dataclass(frozen=True)
class ImportBatch:
    """One import run, tracked end-to-end through the batch workflow."""

    batch_id: str
    name: str
    source_format: SourceFormat
    collection: str
    status: BatchStatus = BatchStatus.PENDING
    total_rows: int = 0
    imported_rows: int = 0
    skipped_rows: int = 0
    error_rows: int = 0
    merge_strategy: MergeStrategy = MergeStrategy.APPEND
    composite_keys: tuple[str, ...] = ()
    delimiter: str | None = None
    raw_rows: tuple[SourceRow, ...] = ()
    affected_ids: tuple[str, ...] = ()
    inserted_ids: tuple[str, ...] = ()
    update_snapshots: tuple[RecordSnapshot, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    reverted_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (
            BatchStatus.COMPLETED,
            BatchStatus.FAILED,
            BatchStatus.REVERTED,
        )


@dataclass(frozen=True)
class ImportRowError:
    """One validation or commit issue for a 1-based row of a batch."""

    batch_id: str
    row_number: int
    field: str
    value: str
    message: str
    severity: ErrorSeverity


@dataclass(frozen=True)
class FieldMapping:
    """Batch-scoped association of a source column with a target field."""

    source_field: str
    target_field: str
    transform: FieldTransform = FieldTransform.NONE
    batch_id: str | None = None


# Custom predicate: (value, mapped row) -> error message or None.
CustomRule = Callable[[Any, MappedRecord], "str | None"]


@dataclass(frozen=True)
class ValidationRule:
    """Caller-supplied rule evaluated against mapped rows."""

    field: str
    kind: RuleKind
    data_type: DataType | None = None
    pattern: str | None = None
    minimum: float | None = None
    maximum: float | None = None
    ref_collection: str | None = None
    ref_field: str | None = None
    custom: CustomRule | None = None
    message: str | None = None


# =============================================================================
# Detection and auto-match results
# =============================================================================


@dataclass(frozen=True)
class FormatDetectionResult:
    format: SourceFormat
    confidence: float
    delimiter: str | None
    headers: tuple[str, ...]
    detected_collection: str | None = None


@dataclass(frozen=True)
class AutoMatchResult:
    source_field: str
    target_field: str
    confidence: float
    transform: FieldTransform

    def to_field_mapping(self) -> FieldMapping:
        return FieldMapping(
            source_field=self.source_field,
            target_field=self.target_field,
            transform=self.transform,
        )


@dataclass(frozen=True)
class ValidationSummary:
    valid: bool
    error_count: int
    warning_count: int


# =============================================================================
# Preview
# =============================================================================


@dataclass(frozen=True)
class ConflictField:
    field: str
    source_value: Any
    existing_value: Any


@dataclass(frozen=True)
class PreviewRow:
    row_number: int
    action: RowAction
    source_data: MappedRecord
    existing_data: Mapping[str, Any] | None = None
    conflicts: tuple[ConflictField, ...] = ()
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class PreviewResult:
    batch_id: str
    total_rows: int
    to_add: int
    to_update: int
    to_skip: int
    conflicts: int
    errors: int
    warnings: int
    rows: tuple[PreviewRow, ...]


# =============================================================================
# History
# =============================================================================


@dataclass(frozen=True)
class ImportHistory:
    batches: tuple[ImportBatch, ...]
    total_batches: int
    total_imported: int
    total_skipped: int
    total_errors: int


# =============================================================================
# Export
# =============================================================================


@dataclass(frozen=True)
class ExportJob:
    job_id: str
    name: str
    format: ExportFormat
    collection: str
    filters: Mapping[str, Any] = field(default_factory=dict)
    columns: tuple[str, ...] | None = None
    status: ExportJobStatus = ExportJobStatus.PENDING
    file_size: int = 0
    result_data: str | None = None
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True)
class ExportResult:
    job_id: str
    format: ExportFormat
    data: str
    file_size: int
    record_count: int


@dataclass(frozen=True)
class Letterhead:
    """Optional company block printed above a text report."""

    company_name: str | None = None
    address: str | None = None
    phone: str | None = None
    email: str | None = None

    def lines(self) -> list[str]:
        out: list[str] = []
        if self.company_name:
            out.append(f"Company: {self.company_name}")
        if self.address:
            out.append(f"Address: {self.address}")
        if self.phone:
            out.append(f"Phone: {self.phone}")
        if self.email:
            out.append(f"Email: {self.email}")
        return out


@dataclass(frozen=True)
class RestoreResult:
    collections_restored: int
    total_records: int
