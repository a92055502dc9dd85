"""
finance_migration.services.commit_service -- Commit and revert of import batches.

Responsibility:
    Apply a previewed batch to its target collection row by row, then
    (optionally) undo it.  Commit is partial-failure tolerant: one bad row is
    recorded as a ``_commit`` issue and the loop carries on.

Architecture position:
    Services -- stateful orchestration over the record store and the
    migration repository.  Flushes through the store; never commits a
    SQLAlchemy transaction (the caller owns it).

Invariants enforced:
    - Commit runs only from ``preview`` and touches nothing when refused.
    - Rows are processed in original order; a row with an error-severity
      issue is skipped and never mutated.
    - Each row's writes run inside ``collection.atomic()`` so a failing row
      leaves no partial write behind (SAVEPOINT on the SQL store).
    - An update re-reads the matched record and refuses it when its version
      moved since the key index was built (StaleRecordError).
    - ``imported_rows + skipped_rows + error_rows == total_rows`` afterwards.
    - Final status is ``failed`` only when rows errored and none imported.
    - Revert restores updated records from their snapshots and removes
      inserted ones; records that are already gone are tolerated.

Failure modes:
    - BatchNotFoundError, CollectionNotFoundError, BatchStateError.
    - Per-row exceptions never escape commit().
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, Mapping, Sequence

from finance_migration.config import EngineConfig, get_engine_config
from finance_migration.domain.clock import Clock, SystemClock
from finance_migration.domain.lifecycle import (
    ALL_ROWS_FAILED,
    COMMIT,
    FINISH,
    REVERT,
    next_status,
    require_status,
)
from finance_migration.domain.types import (
    ErrorSeverity,
    ImportBatch,
    ImportRowError,
    MappedRecord,
    RecordSnapshot,
    RowAction,
    ValidationRule,
)
from finance_migration.events import (
    BATCH_COMMITTED,
    BATCH_REVERTED,
    EventSink,
    NullEventSink,
)
from finance_migration.exceptions import (
    BatchNotFoundError,
    CollectionNotFoundError,
    RecordNotFoundError,
    StaleRecordError,
)
from finance_migration.logging_config import LogContext, get_logger
from finance_migration.merge.diff import composite_key, effective_action
from finance_migration.services._row_plan import RowPlan, build_row_plan
from finance_migration.store.base import (
    ID_FIELD,
    VERSION_FIELD,
    CollectionResolver,
    RecordCollection,
)
from finance_migration.store.repository import MigrationRepository

logger = get_logger("services.commit")

COMMIT_FIELD = "_commit"

ProgressCallback = Callable[[int], None]
Resolutions = Mapping[int, "RowAction | str"]


def progress_percent(done: int, total: int) -> int:
    """Whole percent complete, halves rounded up."""
    if total <= 0:
        return 100
    return int(done * 100 / total + 0.5)


class _CommitTally:
    """Mutable counters and undo data accumulated by one commit pass."""

    def __init__(self) -> None:
        self.imported = 0
        self.skipped = 0
        self.errors = 0
        self.affected_ids: list[str] = []
        self.inserted_ids: list[str] = []
        self.snapshots: list[RecordSnapshot] = []
        # record id -> version written by this pass
        self.versions: dict[str, Any] = {}


class CommitService:
    """
    Commits previewed batches and reverts completed ones.

    Contract:
        commit() and revert() each take a batch id and return the updated
        ImportBatch.  Events are emitted after the batch is saved.

    Non-goals:
        - All-or-nothing commits (rows fail individually).
        - Cancelling a commit mid-flight.
    """

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

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _load(self, batch_id: str) -> ImportBatch:
        batch = self._repository.get_batch(batch_id)
        if batch is None:
            raise BatchNotFoundError(batch_id)
        return batch

    def _target(self, batch: ImportBatch) -> RecordCollection:
        collection = self._collections.resolve(batch.collection)
        if collection is None:
            raise CollectionNotFoundError(batch.collection)
        return collection

    # -------------------------------------------------------------------------
    # Commit
    # -------------------------------------------------------------------------

    def commit(
        self,
        batch_id: str,
        resolutions: Resolutions | None = None,
        on_progress: ProgressCallback | None = None,
        rules: Sequence[ValidationRule] = (),
    ) -> ImportBatch:
        """
        Apply every row of a previewed batch to its target collection.

        Args:
            resolutions: 1-based row number -> add / update / skip, used for
                key-matched rows under the ``manual`` strategy.
            on_progress: receives whole percent complete after each row.
            rules: rules whose referential-integrity entries are checked
                against the store before the loop starts.

        Preconditions:
            Batch status is ``preview``.

        Postconditions:
            Status is ``completed`` or ``failed``; counters sum to total_rows.

        Raises:
            BatchNotFoundError, CollectionNotFoundError, BatchStateError.
        """
        with LogContext.bind(batch_id=batch_id, producer="migration"):
            batch = self._load(batch_id)
            require_status(batch, COMMIT)
            collection = self._target(batch)

            plan = build_row_plan(
                batch,
                self._repository,
                self._collections,
                collection,
                rules,
                self._config.composite_key_separator,
            )
            if plan.reference_issues:
                self._repository.add_issues(plan.reference_issues)

            batch = replace(batch, status=next_status(batch, COMMIT))
            self._repository.save_batch(batch)
            logger.info(
                "batch_commit_started",
                extra={
                    "collection": batch.collection,
                    "total_rows": len(plan.records),
                    "merge_strategy": batch.merge_strategy.value,
                },
            )

            tally = _CommitTally()
            total = len(plan.records)
            for index, mapped in enumerate(plan.records):
                row_number = index + 1
                if plan.has_errors(row_number):
                    tally.skipped += 1
                else:
                    self._commit_row(
                        plan, collection, row_number, mapped,
                        (resolutions or {}).get(row_number), tally,
                    )
                if on_progress is not None:
                    on_progress(progress_percent(row_number, total))

            all_failed = tally.errors > 0 and tally.imported == 0
            status = next_status(batch, FINISH, (ALL_ROWS_FAILED,) if all_failed else ())
            batch = replace(
                batch,
                status=status,
                imported_rows=tally.imported,
                skipped_rows=tally.skipped,
                error_rows=tally.errors,
                affected_ids=tuple(tally.affected_ids),
                inserted_ids=tuple(tally.inserted_ids),
                update_snapshots=tuple(tally.snapshots),
                completed_at=self._clock.now(),
            )
            self._repository.save_batch(batch)

            logger.info(
                "batch_committed",
                extra={
                    "status": status.value,
                    "imported_rows": tally.imported,
                    "skipped_rows": tally.skipped,
                    "error_rows": tally.errors,
                },
            )
            self._events.emit(BATCH_COMMITTED, {
                "batchId": batch_id,
                "importedRows": tally.imported,
                "skippedRows": tally.skipped,
                "errorRows": tally.errors,
            })
            return batch

    def _commit_row(
        self,
        plan: RowPlan,
        collection: RecordCollection,
        row_number: int,
        mapped: MappedRecord,
        resolution: RowAction | str | None,
        tally: _CommitTally,
    ) -> None:
        batch = plan.batch
        existing = None
        if batch.composite_keys:
            key = composite_key(
                mapped, batch.composite_keys, self._config.composite_key_separator
            )
            existing = plan.key_index.get(key)

        action = RowAction.ADD
        if existing is not None:
            action = effective_action(batch.merge_strategy, resolution)

        if action is RowAction.SKIP:
            tally.skipped += 1
            return

        try:
            with collection.atomic():
                if action is RowAction.UPDATE:
                    record_id, snapshot = self._update(
                        collection, existing, mapped, tally.versions
                    )
                    tally.snapshots.append(snapshot)
                else:
                    record_id = str(collection.insert(mapped.as_dict())[ID_FIELD])
                    tally.inserted_ids.append(record_id)
        except Exception as exc:
            tally.errors += 1
            self._repository.add_issues([
                ImportRowError(
                    batch_id=batch.batch_id,
                    row_number=row_number,
                    field=COMMIT_FIELD,
                    value="",
                    message=str(exc),
                    severity=ErrorSeverity.ERROR,
                )
            ])
            logger.warning(
                "row_commit_failed",
                extra={
                    "row_number": row_number,
                    "action": action.value,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            return

        tally.imported += 1
        tally.affected_ids.append(record_id)
        logger.debug(
            "record_committed",
            extra={"row_number": row_number, "action": action.value, "record_id": record_id},
        )

    def _update(
        self,
        collection: RecordCollection,
        existing: Mapping[str, Any],
        mapped: MappedRecord,
        versions: dict[str, Any],
    ) -> tuple[str, RecordSnapshot]:
        record_id = str(existing[ID_FIELD])
        current = collection.get(record_id)
        if current is None:
            raise RecordNotFoundError(collection.name, record_id)
        # A record updated earlier in this pass is compared against that write.
        expected = versions.get(record_id, existing.get(VERSION_FIELD))
        actual = current.get(VERSION_FIELD)
        if expected != actual:
            raise StaleRecordError(collection.name, record_id, expected, actual)

        changes = mapped.as_dict()
        snapshot = RecordSnapshot(
            record_id=record_id,
            values=tuple((f, current[f]) for f in changes if f in current),
            missing_fields=tuple(f for f in changes if f not in current),
            version=actual,
        )
        updated = collection.update(record_id, changes)
        versions[record_id] = updated.get(VERSION_FIELD)
        return record_id, snapshot

    # -------------------------------------------------------------------------
    # Revert
    # -------------------------------------------------------------------------

    def revert(self, batch_id: str) -> ImportBatch:
        """
        Undo a completed batch.

        Updated records get their pre-commit field values back (fields the
        import introduced are reset to None); inserted records are removed.

        Preconditions:
            Batch status is ``completed``.

        Raises:
            BatchNotFoundError, CollectionNotFoundError, BatchStateError.
        """
        with LogContext.bind(batch_id=batch_id, producer="migration"):
            batch = self._load(batch_id)
            require_status(batch, REVERT)
            collection = self._target(batch)

            restored = 0
            for snapshot in reversed(batch.update_snapshots):
                changes = dict(snapshot.values)
                changes.update(dict.fromkeys(snapshot.missing_fields))
                try:
                    collection.update(snapshot.record_id, changes)
                    restored += 1
                except RecordNotFoundError:
                    logger.info(
                        "revert_record_missing",
                        extra={"record_id": snapshot.record_id, "action": "restore"},
                    )

            removed = 0
            for record_id in batch.inserted_ids:
                try:
                    collection.remove(record_id)
                    removed += 1
                except RecordNotFoundError:
                    logger.info(
                        "revert_record_missing",
                        extra={"record_id": record_id, "action": "remove"},
                    )

            batch = replace(
                batch,
                status=next_status(batch, REVERT),
                reverted_at=self._clock.now(),
            )
            self._repository.save_batch(batch)

            reverted_count = len(batch.affected_ids)
            logger.info(
                "batch_reverted",
                extra={
                    "reverted_count": reverted_count,
                    "restored": restored,
                    "removed": removed,
                },
            )
            self._events.emit(BATCH_REVERTED, {
                "batchId": batch_id,
                "revertedCount": reverted_count,
            })
            return batch
