"""
finance_migration.services.export_service -- Collection export, backup and restore.

Responsibility:
    Serialize one collection (filtered, optionally projected) into a chosen
    format and track each run as an ExportJob; bundle several collections
    into a versioned backup and restore such a bundle.

Architecture position:
    Services -- reads collections through the resolver, stores jobs in the
    migration repository.

Invariants enforced:
    - A job ends ``completed`` with its payload and byte size, or ``failed``
      with the error message; the failure is re-raised to the caller.
    - Backups carry ``version``, ``exportedAt`` and a ``collections`` object.
    - Restore rejects a bundle without ``version`` or with a non-object
      ``collections`` before writing anything.

Failure modes:
    - CollectionNotFoundError: unknown collection (no job is created).
    - ExportJobNotFoundError: unknown job id.
    - BackupFormatError: malformed backup bundle.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Iterable, Mapping, Sequence
from uuid import uuid4

from finance_migration.config import EngineConfig, get_engine_config
from finance_migration.domain.clock import Clock, SystemClock
from finance_migration.domain.types import (
    ExportFormat,
    ExportJob,
    ExportJobStatus,
    ExportResult,
    Letterhead,
    RestoreResult,
)
from finance_migration.events import (
    BATCH_COMMITTED,
    EXPORT_COMPLETED,
    EventSink,
    NullEventSink,
)
from finance_migration.exceptions import (
    BackupFormatError,
    CollectionNotFoundError,
    ExportJobNotFoundError,
)
from finance_migration.export.formats import (
    apply_filters,
    project,
    to_api_page,
    to_delimited,
    to_json,
    to_text_report,
)
from finance_migration.logging_config import LogContext, get_logger
from finance_migration.store.base import CollectionResolver, RecordCollection
from finance_migration.store.repository import MigrationRepository

logger = get_logger("services.export")

BACKUP_TYPE = "full-backup"
RESTORE_TYPE = "full-restore"


class ExportService:
    """Exports collections and round-trips full backups."""

    def __init__(
        self,
        repository: MigrationRepository,
        collections: CollectionResolver,
        events: EventSink | None = None,
        clock: Clock | None = None,
        config: EngineConfig | None = None,
    ):
        self._repository = repository
        self._collections = collections
        self._events = events or NullEventSink()
        self._clock = clock or SystemClock()
        self._config = config or get_engine_config()

    def _resolve(self, name: str) -> RecordCollection:
        collection = self._collections.resolve(name)
        if collection is None:
            raise CollectionNotFoundError(name)
        return collection

    # -------------------------------------------------------------------------
    # Single-collection export
    # -------------------------------------------------------------------------

    def export_collection(
        self,
        collection: str,
        format: ExportFormat | str,
        name: str | None = None,
        filters: Mapping[str, Any] | None = None,
        columns: Sequence[str] | None = None,
        delimiter: str = ",",
        page: int = 1,
        page_size: int | None = None,
        letterhead: Letterhead | None = None,
    ) -> ExportResult:
        """
        Export one collection.

        Args:
            filters: ``dateFrom`` / ``dateTo`` bound the record date; every
                other key must match exactly.  Empty values are ignored.
            columns: projection and column order.
            delimiter: csv only; tsv always uses a tab.
            page, page_size: api only.
            letterhead: pdf only.

        Raises:
            CollectionNotFoundError: before any job is recorded.
            ValueError: bad page arguments (job marked failed).
        """
        fmt = ExportFormat(format)
        target = self._resolve(collection)

        job = ExportJob(
            job_id=str(uuid4()),
            name=name or f"{collection}-{fmt.value}",
            format=fmt,
            collection=collection,
            filters=dict(filters or {}),
            columns=tuple(columns) if columns else None,
            status=ExportJobStatus.PROCESSING,
            started_at=self._clock.now(),
        )
        self._repository.save_job(job)

        with LogContext.bind(job_id=job.job_id, producer="migration"):
            try:
                records = apply_filters(
                    target.get_all(), filters, self._config.export.date_fields
                )
                projected = project(records, columns)
                data, record_count = self._serialize(
                    fmt, projected, collection, job.name, columns,
                    delimiter, page, page_size, letterhead,
                )
            except Exception as exc:
                self._repository.save_job(replace(
                    job,
                    status=ExportJobStatus.FAILED,
                    error_message=str(exc),
                    completed_at=self._clock.now(),
                ))
                logger.error(
                    "export_failed",
                    extra={"collection": collection, "format": fmt.value, "error_msg": str(exc)},
                )
                raise

            file_size = len(data.encode("utf-8"))
            self._repository.save_job(replace(
                job,
                status=ExportJobStatus.COMPLETED,
                file_size=file_size,
                result_data=data,
                completed_at=self._clock.now(),
            ))
            logger.info(
                "export_completed",
                extra={
                    "collection": collection,
                    "format": fmt.value,
                    "record_count": record_count,
                    "file_size": file_size,
                },
            )
            self._events.emit(EXPORT_COMPLETED, {
                "jobId": job.job_id,
                "format": fmt.value,
                "collection": collection,
                "recordCount": record_count,
            })
            return ExportResult(
                job_id=job.job_id,
                format=fmt,
                data=data,
                file_size=file_size,
                record_count=record_count,
            )

    def _serialize(
        self,
        fmt: ExportFormat,
        records: list[dict[str, Any]],
        collection: str,
        title: str,
        columns: Sequence[str] | None,
        delimiter: str,
        page: int,
        page_size: int | None,
        letterhead: Letterhead | None,
    ) -> tuple[str, int]:
        if fmt is ExportFormat.JSON:
            return to_json(records), len(records)
        if fmt is ExportFormat.CSV:
            return to_delimited(records, delimiter, columns), len(records)
        if fmt is ExportFormat.TSV:
            return to_delimited(records, "\t", columns), len(records)
        if fmt is ExportFormat.PDF:
            report = to_text_report(
                records,
                title=title,
                generated_at=self._clock.isoformat(),
                letterhead=letterhead,
                columns=columns,
                width=self._config.export.report_width,
            )
            return report, len(records)
        return to_api_page(
            records,
            collection=collection,
            exported_at=self._clock.isoformat(),
            page=page,
            page_size=page_size or self._config.export.page_size,
        )

    # -------------------------------------------------------------------------
    # Jobs
    # -------------------------------------------------------------------------

    def get_export_job(self, job_id: str) -> ExportJob:
        job = self._repository.get_job(job_id)
        if job is None:
            raise ExportJobNotFoundError(job_id)
        return job

    def list_export_jobs(
        self,
        format: ExportFormat | str | None = None,
        status: ExportJobStatus | str | None = None,
        collection: str | None = None,
    ) -> list[ExportJob]:
        jobs = self._repository.list_jobs()
        if format is not None:
            jobs = [j for j in jobs if j.format is ExportFormat(format)]
        if status is not None:
            jobs = [j for j in jobs if j.status is ExportJobStatus(status)]
        if collection is not None:
            jobs = [j for j in jobs if j.collection == collection]
        return sorted(
            jobs,
            key=lambda j: j.started_at.isoformat() if j.started_at else "",
            reverse=True,
        )

    # -------------------------------------------------------------------------
    # Backup / restore
    # -------------------------------------------------------------------------

    def export_all(self, collection_names: Iterable[str] | None = None) -> dict[str, Any]:
        """
        Bundle full collection contents: ``{version, exportedAt, collections}``.

        Defaults to every collection the resolver knows.

        Raises:
            CollectionNotFoundError: a named collection does not resolve.
        """
        names = list(collection_names) if collection_names is not None else self._collections.names()
        bundle_collections: dict[str, list[dict[str, Any]]] = {}
        for name in names:
            bundle_collections[name] = self._resolve(name).export_records()

        bundle = {
            "version": self._config.export.backup_version,
            "exportedAt": self._clock.isoformat(),
            "collections": bundle_collections,
        }
        record_total = sum(len(r) for r in bundle_collections.values())
        logger.info(
            "backup_exported",
            extra={"collection_count": len(names), "record_count": record_total},
        )
        self._events.emit(EXPORT_COMPLETED, {
            "format": ExportFormat.JSON.value,
            "type": BACKUP_TYPE,
            "collectionCount": len(names),
        })
        return bundle

    def import_all(self, backup: Mapping[str, Any], merge: bool = False) -> RestoreResult:
        """
        Restore a bundle made by export_all.

        ``merge=True`` upserts by id; otherwise each collection's contents
        are replaced.  Collections in the bundle that do not resolve are
        skipped.

        Raises:
            BackupFormatError: missing ``version`` or non-object ``collections``.
        """
        if not isinstance(backup, Mapping) or not backup.get("version"):
            raise BackupFormatError("missing version")
        collections = backup.get("collections")
        if not isinstance(collections, Mapping):
            raise BackupFormatError("collections must be an object")
        for name, records in collections.items():
            if not isinstance(records, list):
                raise BackupFormatError(f"collection {name!r} must be an array")

        restored = 0
        total_records = 0
        for name, records in collections.items():
            target = self._collections.resolve(name)
            if target is None:
                logger.warning("restore_collection_skipped", extra={"collection": name})
                continue
            total_records += target.import_records(records, merge)
            restored += 1

        logger.info(
            "backup_restored",
            extra={
                "backup_version": backup.get("version"),
                "collections_restored": restored,
                "total_records": total_records,
                "merge": merge,
            },
        )
        self._events.emit(BATCH_COMMITTED, {
            "type": RESTORE_TYPE,
            "collectionsRestored": restored,
            "totalRecords": total_records,
        })
        return RestoreResult(collections_restored=restored, total_records=total_records)
