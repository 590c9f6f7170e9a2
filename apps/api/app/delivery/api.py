from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.delivery.repository import DeliveryLogRepository
from app.delivery.schemas import DeliveryLogQuery, DeliveryLogRead, DeliveryStatus


router = APIRouter(prefix="/api/deliveries", tags=["deliveries"])


@router.get("", response_model=list[DeliveryLogRead])
async def list_deliveries(
    recipient: str | None = None,
    sender: str | None = None,
    status: DeliveryStatus | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
) -> list[DeliveryLogRead]:
    query = DeliveryLogQuery(
        recipient=recipient,
        sender=sender,
        status=status,
        entity_type=entity_type,
        entity_id=entity_id,
        since=since,
        until=until,
        limit=limit,
    )
    return await DeliveryLogRepository(db).list(query)
