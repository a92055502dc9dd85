"""
Engine state repository: batches, row issues, field mappings, export jobs.

MigrationRepository is the seam between the services and wherever engine
state lives.  InMemoryMigrationRepository keeps it in dicts; the SQL
implementation lives in ``store.sql``.
"""

from __future__ import annotations

from typing import Iterable, Protocol, runtime_checkable

from finance_migration.domain.types import (
    ErrorSeverity,
    ExportJob,
    FieldMapping,
    ImportBatch,
    ImportRowError,
)


@runtime_checkable
class MigrationRepository(Protocol):
    def save_batch(self, batch: ImportBatch) -> None:
        ...

    def get_batch(self, batch_id: str) -> ImportBatch | None:
        ...

    def list_batches(self) -> list[ImportBatch]:
        ...

    def delete_batch(self, batch_id: str) -> None:
        ...

    def add_issues(self, issues: Iterable[ImportRowError]) -> None:
        ...

    def get_issues(
        self, batch_id: str, severity: ErrorSeverity | None = None
    ) -> list[ImportRowError]:
        """Issues of one batch ordered by row number (stable within a row)."""
        ...

    def delete_issues(self, batch_id: str) -> None:
        ...

    def replace_mappings(self, batch_id: str, mappings: Iterable[FieldMapping]) -> None:
        ...

    def get_mappings(self, batch_id: str) -> list[FieldMapping]:
        ...

    def delete_mappings(self, batch_id: str) -> None:
        ...

    def save_job(self, job: ExportJob) -> None:
        ...

    def get_job(self, job_id: str) -> ExportJob | None:
        ...

    def list_jobs(self) -> list[ExportJob]:
        ...


class InMemoryMigrationRepository:
    def __init__(self) -> None:
        self._batches: dict[str, ImportBatch] = {}
        self._issues: dict[str, list[ImportRowError]] = {}
        self._mappings: dict[str, list[FieldMapping]] = {}
        self._jobs: dict[str, ExportJob] = {}

    # -- batches --------------------------------------------------------------

    def save_batch(self, batch: ImportBatch) -> None:
        self._batches[batch.batch_id] = batch

    def get_batch(self, batch_id: str) -> ImportBatch | None:
        return self._batches.get(batch_id)

    def list_batches(self) -> list[ImportBatch]:
        return list(self._batches.values())

    def delete_batch(self, batch_id: str) -> None:
        self._batches.pop(batch_id, None)

    # -- issues ---------------------------------------------------------------

    def add_issues(self, issues: Iterable[ImportRowError]) -> None:
        for issue in issues:
            self._issues.setdefault(issue.batch_id, []).append(issue)

    def get_issues(
        self, batch_id: str, severity: ErrorSeverity | None = None
    ) -> list[ImportRowError]:
        issues = self._issues.get(batch_id, [])
        if severity is not None:
            issues = [i for i in issues if i.severity is ErrorSeverity(severity)]
        return sorted(issues, key=lambda i: i.row_number)

    def delete_issues(self, batch_id: str) -> None:
        self._issues.pop(batch_id, None)

    # -- mappings -------------------------------------------------------------

    def replace_mappings(self, batch_id: str, mappings: Iterable[FieldMapping]) -> None:
        self._mappings[batch_id] = list(mappings)

    def get_mappings(self, batch_id: str) -> list[FieldMapping]:
        return list(self._mappings.get(batch_id, []))

    def delete_mappings(self, batch_id: str) -> None:
        self._mappings.pop(batch_id, None)

    # -- export jobs ----------------------------------------------------------

    def save_job(self, job: ExportJob) -> None:
        self._jobs[job.job_id] = job

    def get_job(self, job_id: str) -> ExportJob | None:
        return self._jobs.get(job_id)

    def list_jobs(self) -> list[ExportJob]:
        return list(self._jobs.values())
