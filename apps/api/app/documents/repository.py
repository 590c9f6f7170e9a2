from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.documents.models import GeneratedDocumentRecord, utcnow
from app.documents.schemas import GeneratedDocumentRead, GeneratedDocumentReference


class GeneratedDocumentRepository:
    """One row per stored document path; ``upsert`` commits on its own."""

    def __init__(self, session: Session):
        self.session = session

    async def upsert(self, reference: GeneratedDocumentReference, *, created_by: str) -> GeneratedDocumentRead:
        return await run_in_threadpool(self._upsert, reference, created_by)

    async def list_for(self, entity_type: str, entity_id: str) -> list[GeneratedDocumentRead]:
        return await run_in_threadpool(self._list_for, entity_type, entity_id)

    def _find_by_path(self, storage_path: str) -> GeneratedDocumentRecord | None:
        return self.session.scalar(
            select(GeneratedDocumentRecord)
            .where(GeneratedDocumentRecord.storage_path == storage_path)
            .execution_options(populate_existing=True)
        )

    def _upsert(self, reference: GeneratedDocumentReference, created_by: str) -> GeneratedDocumentRead:
        record = self._find_by_path(reference.storage_path)
        if record is None:
            record = GeneratedDocumentRecord(storage_path=reference.storage_path)
            self._apply(record, reference, created_by)
            self.session.add(record)
            try:
                self.session.commit()
            except IntegrityError:
                # another writer inserted the same path first
                self.session.rollback()
                record = self._find_by_path(reference.storage_path)
                if record is None:
                    raise
                self._apply(record, reference, created_by)
                self.session.commit()
        else:
            self._apply(record, reference, created_by)
            self.session.commit()
        self.session.refresh(record)
        return GeneratedDocumentRead.model_validate(record)

    def _list_for(self, entity_type: str, entity_id: str) -> list[GeneratedDocumentRead]:
        rows = self.session.scalars(
            select(GeneratedDocumentRecord)
            .where(GeneratedDocumentRecord.entity_type == entity_type, GeneratedDocumentRecord.entity_id == entity_id)
            .order_by(GeneratedDocumentRecord.created_at, GeneratedDocumentRecord.storage_path)
        ).all()
        return [GeneratedDocumentRead.model_validate(row) for row in rows]

    @staticmethod
    def _apply(record: GeneratedDocumentRecord, reference: GeneratedDocumentReference, created_by: str) -> None:
        record.entity_type = reference.entity_type
        record.entity_id = reference.entity_id
        record.document_type = reference.document_type.value
        record.filename = reference.filename
        record.created_by = created_by
        record.created_at = utcnow()
