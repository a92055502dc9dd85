"""
SQLAlchemy-backed store.

Contract:
    SqlCollection implements RecordCollection over ``stored_records``;
    SqlCollectionRegistry resolves declared collection names to it;
    SqlMigrationRepository implements MigrationRepository over the
    ``migration_*`` tables.  All writes ``flush()`` and never commit: the
    caller owns the transaction.

Architecture: finance_migration/store. The only module that issues SQL.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping
from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, SessionTransaction

from finance_migration.domain.clock import Clock, SystemClock
from finance_migration.domain.types import (
    ErrorSeverity,
    ExportJob,
    FieldMapping,
    ImportBatch,
    ImportRowError,
)
from finance_migration.exceptions import RecordNotFoundError
from finance_migration.logging_config import get_logger
from finance_migration.store.base import (
    CREATED_AT_FIELD,
    ID_FIELD,
    UPDATED_AT_FIELD,
    VERSION_FIELD,
    RecordCollection,
    strip_meta,
)
from finance_migration.store.models import (
    Base,
    ExportJobModel,
    FieldMappingModel,
    ImportBatchModel,
    ImportErrorModel,
    StoredRecordModel,
    to_json_safe,
)
from finance_migration.store.query import Query

logger = get_logger("store.sql")


def create_store_tables(engine: Engine) -> None:
    """Create every store table that does not exist yet."""
    Base.metadata.create_all(engine)
    logger.info("store_tables_created", extra={"tables": sorted(Base.metadata.tables)})


# =============================================================================
# Target collections
# =============================================================================


class SqlCollection:
    """RecordCollection persisted as JSON documents in ``stored_records``."""

    def __init__(self, session: Session, name: str, clock: Clock | None = None):
        self.name = name
        self._session = session
        self._clock = clock or SystemClock()

    def _model(self, record_id: str) -> StoredRecordModel | None:
        return self._session.execute(
            select(StoredRecordModel).where(
                StoredRecordModel.collection == self.name,
                StoredRecordModel.record_id == record_id,
            )
        ).scalar_one_or_none()

    def _models(self) -> list[StoredRecordModel]:
        return list(
            self._session.execute(
                select(StoredRecordModel)
                .where(StoredRecordModel.collection == self.name)
                .order_by(StoredRecordModel.seq)
            ).scalars()
        )

    def get(self, record_id: str) -> dict[str, Any] | None:
        model = self._model(record_id)
        return model.to_record() if model is not None else None

    def get_all(self) -> list[dict[str, Any]]:
        return [m.to_record() for m in self._models()]

    def insert(self, record: Mapping[str, Any]) -> dict[str, Any]:
        now = self._clock.isoformat()
        model = StoredRecordModel(
            collection=self.name,
            record_id=str(uuid4()),
            data=to_json_safe(strip_meta(record)),
            version=1,
            created_at=now,
            updated_at=now,
        )
        self._session.add(model)
        self._session.flush()
        return model.to_record()

    def update(self, record_id: str, changes: Mapping[str, Any]) -> dict[str, Any]:
        model = self._model(record_id)
        if model is None:
            raise RecordNotFoundError(self.name, record_id)
        # Reassign so the JSON column is marked dirty.
        model.data = {**(model.data or {}), **to_json_safe(strip_meta(changes))}
        model.version = (model.version or 0) + 1
        model.updated_at = self._clock.isoformat()
        self._session.flush()
        return model.to_record()

    def remove(self, record_id: str) -> None:
        model = self._model(record_id)
        if model is None:
            raise RecordNotFoundError(self.name, record_id)
        self._session.delete(model)
        self._session.flush()

    def atomic(self) -> SessionTransaction:
        """SAVEPOINT scoping one row's writes."""
        return self._session.begin_nested()

    def query(self) -> Query:
        return Query(self.get_all)

    def export_records(self) -> list[dict[str, Any]]:
        return self.get_all()

    def import_records(self, records: Iterable[Mapping[str, Any]], merge: bool) -> int:
        if not merge:
            self._session.execute(
                delete(StoredRecordModel).where(StoredRecordModel.collection == self.name)
            )
        count = 0
        now = self._clock.isoformat()
        for rec in records:
            record_id = str(rec.get(ID_FIELD) or uuid4())
            model = self._model(record_id)
            if model is None:
                model = StoredRecordModel(collection=self.name, record_id=record_id)
                self._session.add(model)
            model.data = to_json_safe(strip_meta(rec))
            model.version = int(rec.get(VERSION_FIELD) or 1)
            model.created_at = str(rec.get(CREATED_AT_FIELD) or now)
            model.updated_at = str(rec.get(UPDATED_AT_FIELD) or now)
            self._session.flush()
            count += 1
        return count


class SqlCollectionRegistry:
    """Resolves declared names, plus any collection already holding rows."""

    def __init__(
        self,
        session: Session,
        names: Iterable[str] = (),
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._declared: dict[str, None] = dict.fromkeys(names)

    def register(self, name: str) -> SqlCollection:
        self._declared[name] = None
        return SqlCollection(self._session, name, self._clock)

    def names(self) -> list[str]:
        stored = self._session.execute(
            select(StoredRecordModel.collection).distinct()
        ).scalars()
        out = dict(self._declared)
        out.update(dict.fromkeys(stored))
        return list(out)

    def resolve(self, name: str) -> RecordCollection | None:
        if name in self.names():
            return SqlCollection(self._session, name, self._clock)
        return None


# =============================================================================
# Engine state
# =============================================================================


class SqlMigrationRepository:
    def __init__(self, session: Session):
        self._session = session

    def save_batch(self, batch: ImportBatch) -> None:
        model = self._session.get(ImportBatchModel, batch.batch_id)
        if model is None:
            self._session.add(ImportBatchModel.from_dto(batch))
        else:
            model.apply_dto(batch)
        self._session.flush()

    def get_batch(self, batch_id: str) -> ImportBatch | None:
        model = self._session.get(ImportBatchModel, batch_id)
        return model.to_dto() if model is not None else None

    def list_batches(self) -> list[ImportBatch]:
        return [m.to_dto() for m in self._session.execute(select(ImportBatchModel)).scalars()]

    def delete_batch(self, batch_id: str) -> None:
        model = self._session.get(ImportBatchModel, batch_id)
        if model is not None:
            self._session.delete(model)
            self._session.flush()

    def add_issues(self, issues: Iterable[ImportRowError]) -> None:
        self._session.add_all([ImportErrorModel.from_dto(i) for i in issues])
        self._session.flush()

    def get_issues(
        self, batch_id: str, severity: ErrorSeverity | None = None
    ) -> list[ImportRowError]:
        stmt = select(ImportErrorModel).where(ImportErrorModel.batch_id == batch_id)
        if severity is not None:
            stmt = stmt.where(ImportErrorModel.severity == ErrorSeverity(severity).value)
        stmt = stmt.order_by(ImportErrorModel.row_number, ImportErrorModel.id)
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    def delete_issues(self, batch_id: str) -> None:
        self._session.execute(
            delete(ImportErrorModel).where(ImportErrorModel.batch_id == batch_id)
        )
        self._session.flush()

    def replace_mappings(self, batch_id: str, mappings: Iterable[FieldMapping]) -> None:
        self.delete_mappings(batch_id)
        self._session.add_all([FieldMappingModel.from_dto(batch_id, m) for m in mappings])
        self._session.flush()

    def get_mappings(self, batch_id: str) -> list[FieldMapping]:
        stmt = (
            select(FieldMappingModel)
            .where(FieldMappingModel.batch_id == batch_id)
            .order_by(FieldMappingModel.id)
        )
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    def delete_mappings(self, batch_id: str) -> None:
        self._session.execute(
            delete(FieldMappingModel).where(FieldMappingModel.batch_id == batch_id)
        )
        self._session.flush()

    def save_job(self, job: ExportJob) -> None:
        model = self._session.get(ExportJobModel, job.job_id)
        if model is None:
            self._session.add(ExportJobModel.from_dto(job))
        else:
            model.apply_dto(job)
        self._session.flush()

    def get_job(self, job_id: str) -> ExportJob | None:
        model = self._session.get(ExportJobModel, job_id)
        return model.to_dto() if model is not None else None

    def list_jobs(self) -> list[ExportJob]:
        return [m.to_dto() for m in self._session.execute(select(ExportJobModel)).scalars()]
