"""
ORM models for the SQL-backed store.

Contract:
    StoredRecordModel holds target-collection records as JSON documents keyed
    by (collection, record_id).  ImportBatchModel, ImportErrorModel,
    FieldMappingModel and ExportJobModel persist engine state and convert
    to/from the frozen domain types via ``to_dto``/``from_dto``.

Architecture: finance_migration/store. Imports domain types only.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from finance_migration.domain.types import (
    BatchStatus,
    ErrorSeverity,
    ExportFormat,
    ExportJob,
    ExportJobStatus,
    FieldMapping,
    FieldTransform,
    ImportBatch,
    ImportRowError,
    MergeStrategy,
    RecordSnapshot,
    SourceFormat,
    SourceRow,
)


class Base(DeclarativeBase):
    """Declarative base for the migration store tables."""

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
    }


def to_json_safe(obj: Any) -> Any:
    """Convert values to JSON-serializable form (Decimal -> str, etc.)."""
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, dict):
        return {str(k): to_json_safe(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_json_safe(v) for v in obj]
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    return obj


# =============================================================================
# Target records
# =============================================================================


class StoredRecordModel(Base):
    """One record of a named target collection."""

    __tablename__ = "stored_records"
    __table_args__ = (
        UniqueConstraint("collection", "record_id", name="uq_stored_records_collection_id"),
        Index("idx_stored_records_collection", "collection"),
    )

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collection: Mapped[str] = mapped_column(String(200), nullable=False)
    record_id: Mapped[str] = mapped_column(String(64), nullable=False)
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[str] = mapped_column(String(40), nullable=False)
    updated_at: Mapped[str] = mapped_column(String(40), nullable=False)

    def to_record(self) -> dict[str, Any]:
        out = dict(self.data or {})
        out.update({
            "id": self.record_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "version": self.version,
        })
        return out


# =============================================================================
# Engine state
# =============================================================================


def _rows_to_json(rows: tuple[SourceRow, ...]) -> list[dict]:
    return [
        {"fields": [[k, v] for k, v in row.fields], "record_type": row.record_type}
        for row in rows
    ]


def _json_to_rows(data: list | None) -> tuple[SourceRow, ...]:
    return tuple(
        SourceRow(
            fields=tuple((str(k), str(v)) for k, v in item["fields"]),
            record_type=item.get("record_type"),
        )
        for item in data or ()
    )


def _snapshots_to_json(snapshots: tuple[RecordSnapshot, ...]) -> list[dict]:
    return [
        {
            "record_id": s.record_id,
            "values": [[k, to_json_safe(v)] for k, v in s.values],
            "missing_fields": list(s.missing_fields),
            "version": s.version,
        }
        for s in snapshots
    ]


def _json_to_snapshots(data: list | None) -> tuple[RecordSnapshot, ...]:
    return tuple(
        RecordSnapshot(
            record_id=item["record_id"],
            values=tuple((k, v) for k, v in item["values"]),
            missing_fields=tuple(item.get("missing_fields") or ()),
            version=item.get("version"),
        )
        for item in data or ()
    )


class ImportBatchModel(Base):
    """Persisted import batch, raw rows and commit bookkeeping included."""

    __tablename__ = "migration_import_batches"

    batch_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    source_format: Mapped[str] = mapped_column(String(20), nullable=False)
    collection: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    total_rows: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    imported_rows: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped_rows: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_rows: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    merge_strategy: Mapped[str] = mapped_column(String(20), nullable=False)
    composite_keys: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    delimiter: Mapped[str | None] = mapped_column(String(4), nullable=True)
    raw_rows: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    affected_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    inserted_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    update_snapshots: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reverted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def to_dto(self) -> ImportBatch:
        return ImportBatch(
            batch_id=self.batch_id,
            name=self.name,
            source_format=SourceFormat(self.source_format),
            collection=self.collection,
            status=BatchStatus(self.status),
            total_rows=self.total_rows,
            imported_rows=self.imported_rows,
            skipped_rows=self.skipped_rows,
            error_rows=self.error_rows,
            merge_strategy=MergeStrategy(self.merge_strategy),
            composite_keys=tuple(self.composite_keys or ()),
            delimiter=self.delimiter,
            raw_rows=_json_to_rows(self.raw_rows),
            affected_ids=tuple(self.affected_ids or ()),
            inserted_ids=tuple(self.inserted_ids or ()),
            update_snapshots=_json_to_snapshots(self.update_snapshots),
            started_at=self.started_at,
            completed_at=self.completed_at,
            reverted_at=self.reverted_at,
        )

    def apply_dto(self, batch: ImportBatch) -> None:
        """Copy every mutable field of ``batch`` onto this row."""
        self.name = batch.name
        self.source_format = batch.source_format.value
        self.collection = batch.collection
        self.status = batch.status.value
        self.total_rows = batch.total_rows
        self.imported_rows = batch.imported_rows
        self.skipped_rows = batch.skipped_rows
        self.error_rows = batch.error_rows
        self.merge_strategy = batch.merge_strategy.value
        self.composite_keys = list(batch.composite_keys)
        self.delimiter = batch.delimiter
        self.raw_rows = _rows_to_json(batch.raw_rows)
        self.affected_ids = list(batch.affected_ids)
        self.inserted_ids = list(batch.inserted_ids)
        self.update_snapshots = _snapshots_to_json(batch.update_snapshots)
        self.started_at = batch.started_at
        self.completed_at = batch.completed_at
        self.reverted_at = batch.reverted_at

    @classmethod
    def from_dto(cls, batch: ImportBatch) -> ImportBatchModel:
        model = cls(batch_id=batch.batch_id)
        model.apply_dto(batch)
        return model


class ImportErrorModel(Base):
    __tablename__ = "migration_import_errors"
    __table_args__ = (Index("idx_migration_import_errors_batch", "batch_id", "row_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    batch_id: Mapped[str] = mapped_column(String(64), nullable=False)
    row_number: Mapped[int] = mapped_column(Integer, nullable=False)
    field: Mapped[str] = mapped_column(String(200), nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False, default="")
    message: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[str] = mapped_column(String(10), nullable=False)

    def to_dto(self) -> ImportRowError:
        return ImportRowError(
            batch_id=self.batch_id,
            row_number=self.row_number,
            field=self.field,
            value=self.value,
            message=self.message,
            severity=ErrorSeverity(self.severity),
        )

    @classmethod
    def from_dto(cls, issue: ImportRowError) -> ImportErrorModel:
        return cls(
            batch_id=issue.batch_id,
            row_number=issue.row_number,
            field=issue.field,
            value=issue.value,
            message=issue.message,
            severity=issue.severity.value,
        )


class FieldMappingModel(Base):
    __tablename__ = "migration_field_mappings"
    __table_args__ = (
        UniqueConstraint("batch_id", "source_field", name="uq_migration_field_mappings_source"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    batch_id: Mapped[str] = mapped_column(String(64), nullable=False)
    source_field: Mapped[str] = mapped_column(String(200), nullable=False)
    target_field: Mapped[str] = mapped_column(String(200), nullable=False)
    transform: Mapped[str] = mapped_column(String(20), nullable=False)

    def to_dto(self) -> FieldMapping:
        return FieldMapping(
            source_field=self.source_field,
            target_field=self.target_field,
            transform=FieldTransform(self.transform),
            batch_id=self.batch_id,
        )

    @classmethod
    def from_dto(cls, batch_id: str, mapping: FieldMapping) -> FieldMappingModel:
        return cls(
            batch_id=batch_id,
            source_field=mapping.source_field,
            target_field=mapping.target_field,
            transform=FieldTransform(mapping.transform).value,
        )


class ExportJobModel(Base):
    __tablename__ = "migration_export_jobs"

    job_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    format: Mapped[str] = mapped_column(String(10), nullable=False)
    collection: Mapped[str] = mapped_column(String(200), nullable=False)
    filters: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    columns: Mapped[list | None] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    result_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def to_dto(self) -> ExportJob:
        return ExportJob(
            job_id=self.job_id,
            name=self.name,
            format=ExportFormat(self.format),
            collection=self.collection,
            filters=dict(self.filters or {}),
            columns=tuple(self.columns) if self.columns is not None else None,
            status=ExportJobStatus(self.status),
            file_size=self.file_size,
            result_data=self.result_data,
            error_message=self.error_message,
            started_at=self.started_at,
            completed_at=self.completed_at,
        )

    def apply_dto(self, job: ExportJob) -> None:
        self.name = job.name
        self.format = job.format.value
        self.collection = job.collection
        self.filters = to_json_safe(dict(job.filters))
        self.columns = list(job.columns) if job.columns is not None else None
        self.status = job.status.value
        self.file_size = job.file_size
        self.result_data = job.result_data
        self.error_message = job.error_message
        self.started_at = job.started_at
        self.completed_at = job.completed_at

    @classmethod
    def from_dto(cls, job: ExportJob) -> ExportJobModel:
        model = cls(job_id=job.job_id)
        model.apply_dto(job)
        return model
