"""
Typed exception hierarchy for the migration engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers driving a batch through its lifecycle need to tell an illegal call
order apart from a missing batch or a malformed upload without parsing
messages.  Every exception here carries:
  1. A TYPED class (catch by type, not message)
  2. A CODE attribute (machine-readable, API-safe)
  3. Structured DATA (batch id, actual/expected state, offending input)

Example:
    try:
        imports.commit(batch_id)
    except BatchStateError as e:
        log.warning("commit rejected", extra={"actual": e.actual})
        api_response(code=e.code, expected=e.expected)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    MigrationError (base)
    |
    +-- BatchError
    |   +-- BatchNotFoundError
    |   +-- BatchStateError
    |
    +-- NotFoundError
    |   +-- CollectionNotFoundError
    |   +-- RecordNotFoundError
    |   +-- ExportJobNotFoundError
    |
    +-- FormatError
    |   +-- SourceFormatError
    |   +-- BackupFormatError
    |
    +-- ConcurrencyError
        +-- StaleRecordError

Only state, not-found and format errors reach callers.  Validation failures
and per-row commit failures are recorded as ImportRowError data instead.
"""

from __future__ import annotations

from typing import Iterable


class MigrationError(Exception):
    """Base exception for all migration engine errors."""

    code: str = "MIGRATION_ERROR"


# =============================================================================
# Batch errors
# =============================================================================


class BatchError(MigrationError):
    """Base for batch lifecycle errors."""

    code: str = "BATCH_ERROR"


class BatchNotFoundError(BatchError):
    """Referenced import batch does not exist."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Import batch not found: {batch_id}")


class BatchStateError(BatchError):
    """Operation invoked while the batch is in an illegal state."""

    code: str = "BATCH_STATE_INVALID"

    def __init__(
        self,
        batch_id: str,
        actual: str,
        expected: Iterable[str],
        operation: str | None = None,
    ):
        self.batch_id = batch_id
        self.actual = str(actual)
        self.expected = tuple(str(s) for s in expected)
        self.operation = operation
        allowed = " or ".join(f'"{s}"' for s in self.expected)
        action = f"Cannot {operation} batch" if operation else "Batch"
        super().__init__(
            f"{action} {batch_id}: status is \"{self.actual}\", expected {allowed}"
        )


# =============================================================================
# Not-found errors
# =============================================================================


class NotFoundError(MigrationError):
    """Base for missing referenced objects."""

    code: str = "NOT_FOUND"


class CollectionNotFoundError(NotFoundError):
    """Target collection cannot be resolved by name."""

    code: str = "COLLECTION_NOT_FOUND"

    def __init__(self, collection: str):
        self.collection = collection
        super().__init__(f"Collection not found: {collection}")


class RecordNotFoundError(NotFoundError):
    """Record id is not present in its collection."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, collection: str, record_id: str):
        self.collection = collection
        self.record_id = record_id
        super().__init__(f"Record {record_id} not found in {collection}")


class ExportJobNotFoundError(NotFoundError):
    """Referenced export job does not exist."""

    code: str = "EXPORT_JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Export job not found: {job_id}")


# =============================================================================
# Format errors
# =============================================================================


class FormatError(MigrationError):
    """Base for malformed input content."""

    code: str = "FORMAT_ERROR"


class SourceFormatError(FormatError):
    """Uploaded content cannot be parsed in the declared source format."""

    code: str = "SOURCE_FORMAT_INVALID"

    def __init__(self, source_format: str, reason: str):
        self.source_format = source_format
        self.reason = reason
        super().__init__(f"Invalid {source_format} content: {reason}")


class BackupFormatError(FormatError):
    """Backup bundle is missing its version or collections."""

    code: str = "BACKUP_FORMAT_INVALID"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid backup format: {reason}")


# =============================================================================
# Concurrency errors
# =============================================================================


class ConcurrencyError(MigrationError):
    """Base for concurrent-modification conflicts."""

    code: str = "CONCURRENCY_ERROR"


class StaleRecordError(ConcurrencyError):
    """Record changed between the key-index snapshot and its update."""

    code: str = "STALE_RECORD"

    def __init__(
        self,
        collection: str,
        record_id: str,
        expected_version: int | None,
        actual_version: int | None,
    ):
        self.collection = collection
        self.record_id = record_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Record {record_id} in {collection} changed since snapshot: "
            f"expected version {expected_version}, found {actual_version}"
        )
