from __future__ import annotations

import uuid
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.parties.models import CRMCompany, CRMContact
from app.parties.schemas import CompanyInfo, ContactInfo


class PartyDirectory(Protocol):
    async def get_company(self, company_id: uuid.UUID) -> CompanyInfo | None: ...

    async def get_contact(self, contact_id: uuid.UUID) -> ContactInfo | None: ...


class SqlPartyDirectory:
    def __init__(self, session: Session):
        self.session = session

    async def get_company(self, company_id: uuid.UUID) -> CompanyInfo | None:
        row = await run_in_threadpool(self.session.scalar, select(CRMCompany).where(CRMCompany.id == company_id))
        return CompanyInfo.model_validate(row) if row is not None else None

    async def get_contact(self, contact_id: uuid.UUID) -> ContactInfo | None:
        row = await run_in_threadpool(self.session.scalar, select(CRMContact).where(CRMContact.id == contact_id))
        return ContactInfo.model_validate(row) if row is not None else None
