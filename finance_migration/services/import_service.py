"""
Import service: create -> upload -> map -> validate -> preview -> commit.

Orchestrates the parsers, field mapping, validators and the diff/merge
engine over one batch at a time.  Commit and revert are delegated to
CommitService.  Uses structured logging (LogContext, get_logger("services.*")).
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Iterable, Sequence
from uuid import uuid4

from finance_migration.adapters import get_parser
from finance_migration.config import EngineConfig, get_engine_config
from finance_migration.detection import detect_format
from finance_migration.domain.clock import Clock, SystemClock
from finance_migration.domain.lifecycle import (
    DELETE,
    PREVIEW,
    UPLOAD,
    VALIDATE,
    require_status,
)
from finance_migration.domain.types import (
    AutoMatchResult,
    BatchStatus,
    ErrorSeverity,
    FieldMapping,
    FormatDetectionResult,
    ImportBatch,
    ImportHistory,
    ImportRowError,
    MergeStrategy,
    PreviewResult,
    PreviewRow,
    RowAction,
    SourceFormat,
    ValidationRule,
    ValidationSummary,
)
from finance_migration.domain.validators import reference_rules, validate_rows
from finance_migration.events import (
    BATCH_CREATED,
    BATCH_VALIDATED,
    EventSink,
    NullEventSink,
)
from finance_migration.exceptions import BatchNotFoundError
from finance_migration.logging_config import LogContext, get_logger
from finance_migration.mapping.engine import map_rows
from finance_migration.mapping.matcher import auto_match_fields
from finance_migration.merge.diff import classify_row, composite_key, find_conflicts
from finance_migration.services._row_plan import build_row_plan
from finance_migration.services.commit_service import (
    CommitService,
    ProgressCallback,
    Resolutions,
)
from finance_migration.store.base import CollectionResolver
from finance_migration.store.repository import MigrationRepository

logger = get_logger("services.import")


def batch_payload(batch: ImportBatch) -> dict[str, Any]:
    """camelCase view of a batch for event payloads (raw rows omitted)."""
    return {
        "id": batch.batch_id,
        "name": batch.name,
        "sourceFormat": batch.source_format.value,
        "collection": batch.collection,
        "status": batch.status.value,
        "totalRows": batch.total_rows,
        "importedRows": batch.imported_rows,
        "skippedRows": batch.skipped_rows,
        "errorRows": batch.error_rows,
        "mergeStrategy": batch.merge_strategy.value,
        "compositeKeys": list(batch.composite_keys),
        "delimiter": batch.delimiter,
        "startedAt": batch.started_at.isoformat() if batch.started_at else None,
    }


class ImportService:
    """
    Drives import batches through their lifecycle.

    Engine state (batches, issues, mappings) lives in the repository; target
    data lives in the collections the resolver hands out.  Referential
    integrity rules passed to validate() are remembered per batch for this
    service instance and re-checked at preview and commit.
    """

    def __init__(
        self,
        repository: MigrationRepository,
        collections: CollectionResolver,
        events: EventSink | None = None,
        clock: Clock | None = None,
        config: EngineConfig | None = None,
        committer: CommitService | None = None,
    ):
        self._repository = repository
        self._collections = collections
        self._events = events or NullEventSink()
        self._clock = clock or SystemClock()
        self._config = config or get_engine_config()
        self._committer = committer or CommitService(
            repository, collections, self._events, self._clock, self._config
        )
        self._reference_rules: dict[str, tuple[ValidationRule, ...]] = {}

    # =========================================================================
    # Detection and matching
    # =========================================================================

    def detect_format(self, content: str, filename: str | None = None) -> FormatDetectionResult:
        return detect_format(content, self._config, filename)

    def auto_match_fields(
        self,
        source_headers: Sequence[str],
        target_fields: Sequence[str],
        source_format: SourceFormat | str | None = None,
    ) -> list[AutoMatchResult]:
        return auto_match_fields(source_headers, target_fields, self._config, source_format)

    # =========================================================================
    # Batches
    # =========================================================================

    def create_batch(
        self,
        name: str,
        source_format: SourceFormat | str,
        collection: str,
        merge_strategy: MergeStrategy | str = MergeStrategy.APPEND,
        composite_keys: Iterable[str] = (),
        delimiter: str | None = None,
    ) -> ImportBatch:
        """Create a ``pending`` batch and emit ``import.batch.created``."""
        batch = ImportBatch(
            batch_id=str(uuid4()),
            name=name,
            source_format=SourceFormat(source_format),
            collection=collection,
            merge_strategy=MergeStrategy(merge_strategy),
            composite_keys=tuple(composite_keys),
            delimiter=delimiter,
            started_at=self._clock.now(),
        )
        self._repository.save_batch(batch)
        with LogContext.bind(batch_id=batch.batch_id, producer="migration"):
            logger.info(
                "batch_created",
                extra={
                    "batch_name": name,
                    "source_format": batch.source_format.value,
                    "collection": collection,
                    "merge_strategy": batch.merge_strategy.value,
                },
            )
        self._events.emit(BATCH_CREATED, {"batch": batch_payload(batch)})
        return batch

    def get_batch(self, batch_id: str) -> ImportBatch:
        batch = self._repository.get_batch(batch_id)
        if batch is None:
            raise BatchNotFoundError(batch_id)
        return batch

    def list_batches(
        self,
        status: BatchStatus | str | None = None,
        collection: str | None = None,
    ) -> list[ImportBatch]:
        """Batches newest first, optionally filtered by status and collection."""
        batches = self._repository.list_batches()
        if status is not None:
            wanted = BatchStatus(status)
            batches = [b for b in batches if b.status is wanted]
        if collection is not None:
            batches = [b for b in batches if b.collection == collection]
        return sorted(
            batches,
            key=lambda b: b.started_at.isoformat() if b.started_at else "",
            reverse=True,
        )

    def upload(
        self,
        batch_id: str,
        content: str,
        column_widths: Sequence[int] | None = None,
    ) -> ImportBatch:
        """
        Parse source content into the batch's raw rows.

        Preconditions:
            Batch status is ``pending``.

        Raises:
            BatchStateError, SourceFormatError (nothing is stored on failure).
        """
        with LogContext.bind(batch_id=batch_id, producer="migration"):
            batch = self.get_batch(batch_id)
            require_status(batch, UPLOAD)

            parser = get_parser(batch.source_format)
            rows = parser.parse(
                content,
                {"delimiter": batch.delimiter, "column_widths": column_widths},
            )

            batch = replace(
                batch,
                raw_rows=tuple(rows),
                total_rows=len(rows),
                status=BatchStatus.VALIDATING,
            )
            self._repository.save_batch(batch)
            logger.info(
                "batch_uploaded",
                extra={
                    "source_format": batch.source_format.value,
                    "total_rows": len(rows),
                    "content_length": len(content),
                },
            )
            return batch

    # =========================================================================
    # Field mappings
    # =========================================================================

    def save_field_mappings(
        self,
        batch_id: str,
        mappings: Iterable[FieldMapping | AutoMatchResult],
    ) -> list[FieldMapping]:
        """Replace the batch's mappings; a repeated source field keeps its last entry."""
        self.get_batch(batch_id)
        by_source: dict[str, FieldMapping] = {}
        for m in mappings:
            if isinstance(m, AutoMatchResult):
                m = m.to_field_mapping()
            by_source.pop(m.source_field, None)
            by_source[m.source_field] = replace(m, batch_id=batch_id)
        saved = list(by_source.values())
        self._repository.replace_mappings(batch_id, saved)
        logger.info(
            "field_mappings_saved",
            extra={"batch_id": batch_id, "mapping_count": len(saved)},
        )
        return saved

    def get_field_mappings(self, batch_id: str) -> list[FieldMapping]:
        self.get_batch(batch_id)
        return self._repository.get_mappings(batch_id)

    # =========================================================================
    # Validation
    # =========================================================================

    def validate(self, batch_id: str, rules: Sequence[ValidationRule]) -> ValidationSummary:
        """
        Run ``rules`` over every mapped row, replacing earlier issues.

        Preconditions:
            Batch status is ``pending`` or ``validating``.

        Postconditions:
            Status is ``preview`` when no error-severity issue was found,
            otherwise ``validating``.  ``error_rows`` counts rows with at
            least one error-severity issue.
        """
        with LogContext.bind(batch_id=batch_id, producer="migration"):
            batch = self.get_batch(batch_id)
            require_status(batch, VALIDATE)

            records = map_rows(batch.raw_rows, self._repository.get_mappings(batch_id))
            issues = validate_rows(batch_id, records, rules)
            self._repository.delete_issues(batch_id)
            self._repository.add_issues(issues)
            self._reference_rules[batch_id] = reference_rules(rules)

            error_count = sum(1 for i in issues if i.severity is ErrorSeverity.ERROR)
            warning_count = len(issues) - error_count
            error_rows = len({i.row_number for i in issues if i.severity is ErrorSeverity.ERROR})
            valid = error_count == 0

            batch = replace(
                batch,
                status=BatchStatus.PREVIEW if valid else BatchStatus.VALIDATING,
                error_rows=error_rows,
            )
            self._repository.save_batch(batch)

            logger.info(
                "batch_validated",
                extra={
                    "valid": valid,
                    "error_count": error_count,
                    "warning_count": warning_count,
                    "rule_count": len(rules),
                },
            )
            self._events.emit(BATCH_VALIDATED, {
                "batchId": batch_id,
                "valid": valid,
                "errorCount": error_count,
                "warningCount": warning_count,
            })
            return ValidationSummary(
                valid=valid, error_count=error_count, warning_count=warning_count
            )

    def get_import_errors(
        self,
        batch_id: str,
        severity: ErrorSeverity | str | None = None,
    ) -> list[ImportRowError]:
        self.get_batch(batch_id)
        return self._repository.get_issues(
            batch_id, ErrorSeverity(severity) if severity is not None else None
        )

    # =========================================================================
    # Preview
    # =========================================================================

    def preview(self, batch_id: str) -> PreviewResult:
        """
        Classify every row without touching the target collection.

        A target collection that cannot be resolved yields an empty key
        index, so every unblocked row previews as ``add``.

        Raises:
            BatchStateError once a commit has started.
        """
        with LogContext.bind(batch_id=batch_id, producer="migration"):
            batch = self.get_batch(batch_id)
            require_status(batch, PREVIEW)
            separator = self._config.composite_key_separator

            plan = build_row_plan(
                batch,
                self._repository,
                self._collections,
                self._collections.resolve(batch.collection),
                self._reference_rules.get(batch_id, ()),
                separator,
            )

            rows: list[PreviewRow] = []
            for index, mapped in enumerate(plan.records):
                row_number = index + 1
                issues = plan.issues_for(row_number)
                errors = tuple(i.message for i in issues if i.severity is ErrorSeverity.ERROR)
                warnings = tuple(i.message for i in issues if i.severity is ErrorSeverity.WARNING)

                existing = None
                if batch.composite_keys and not errors:
                    existing = plan.key_index.get(
                        composite_key(mapped, batch.composite_keys, separator)
                    )
                conflicts = find_conflicts(mapped, existing) if existing is not None else ()
                action = classify_row(
                    batch.merge_strategy, existing, conflicts, has_errors=bool(errors)
                )
                if action is RowAction.ADD and existing is not None:
                    # append ignores the match; nothing to compare against
                    existing, conflicts = None, ()
                if action is RowAction.SKIP and existing is not None:
                    conflicts = ()

                rows.append(
                    PreviewRow(
                        row_number=row_number,
                        action=action,
                        source_data=mapped,
                        existing_data=existing,
                        conflicts=conflicts,
                        errors=errors,
                        warnings=warnings,
                    )
                )

            batch = replace(batch, status=BatchStatus.PREVIEW)
            self._repository.save_batch(batch)

            result = PreviewResult(
                batch_id=batch_id,
                total_rows=len(rows),
                to_add=sum(1 for r in rows if r.action is RowAction.ADD),
                to_update=sum(1 for r in rows if r.action is RowAction.UPDATE),
                to_skip=sum(1 for r in rows if r.action is RowAction.SKIP),
                conflicts=sum(1 for r in rows if r.action is RowAction.CONFLICT),
                errors=sum(1 for r in rows if r.errors),
                warnings=sum(len(r.warnings) for r in rows),
                rows=tuple(rows),
            )
            logger.info(
                "preview_generated",
                extra={
                    "to_add": result.to_add,
                    "to_update": result.to_update,
                    "to_skip": result.to_skip,
                    "conflicts": result.conflicts,
                },
            )
            return result

    # =========================================================================
    # Commit / revert / delete
    # =========================================================================

    def commit(
        self,
        batch_id: str,
        resolutions: Resolutions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ImportBatch:
        return self._committer.commit(
            batch_id,
            resolutions=resolutions,
            on_progress=on_progress,
            rules=self._reference_rules.get(batch_id, ()),
        )

    def revert(self, batch_id: str) -> ImportBatch:
        return self._committer.revert(batch_id)

    def delete_batch(self, batch_id: str) -> None:
        """Remove a finished batch with its issues and mappings."""
        with LogContext.bind(batch_id=batch_id, producer="migration"):
            batch = self.get_batch(batch_id)
            require_status(batch, DELETE)
            self._repository.delete_issues(batch_id)
            self._repository.delete_mappings(batch_id)
            self._repository.delete_batch(batch_id)
            self._reference_rules.pop(batch_id, None)
            logger.info("batch_deleted", extra={"status": batch.status.value})

    # =========================================================================
    # History
    # =========================================================================

    def get_import_history(self) -> ImportHistory:
        batches = self.list_batches()
        return ImportHistory(
            batches=tuple(batches),
            total_batches=len(batches),
            total_imported=sum(b.imported_rows for b in batches),
            total_skipped=sum(b.skipped_rows for b in batches),
            total_errors=sum(b.error_rows for b in batches),
        )
