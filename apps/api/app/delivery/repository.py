from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.delivery.models import DeliveryLog
from app.delivery.schemas import DeliveryLogQuery, DeliveryLogRead


class DeliveryLogRepository:
    """Append-only access to ``delivery_log``.

    ``append`` commits on its own so an attempt is recorded even when the
    caller's quote transition never commits.
    """

    def __init__(self, session: Session):
        self.session = session

    async def append(self, entry: DeliveryLog) -> DeliveryLogRead:
        return await run_in_threadpool(self._append, entry)

    async def list(self, query: DeliveryLogQuery) -> list[DeliveryLogRead]:
        return await run_in_threadpool(self._list, query)

    def _append(self, entry: DeliveryLog) -> DeliveryLogRead:
        self.session.add(entry)
        self.session.commit()
        self.session.refresh(entry)
        return DeliveryLogRead.model_validate(entry)

    def _list(self, query: DeliveryLogQuery) -> list[DeliveryLogRead]:
        stmt = select(DeliveryLog)
        if query.recipient:
            stmt = stmt.where(DeliveryLog.to_address == query.recipient)
        if query.sender:
            stmt = stmt.where(DeliveryLog.from_address == query.sender)
        if query.status is not None:
            stmt = stmt.where(DeliveryLog.status == query.status.value)
        if query.entity_type:
            stmt = stmt.where(DeliveryLog.entity_type == query.entity_type)
        if query.entity_id:
            stmt = stmt.where(DeliveryLog.entity_id == query.entity_id)
        if query.since is not None:
            stmt = stmt.where(DeliveryLog.created_at >= query.since)
        if query.until is not None:
            stmt = stmt.where(DeliveryLog.created_at <= query.until)
        stmt = stmt.order_by(DeliveryLog.created_at.desc(), DeliveryLog.id).limit(query.limit)
        return [DeliveryLogRead.model_validate(row) for row in self.session.scalars(stmt).all()]
