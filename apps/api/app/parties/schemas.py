from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, ConfigDict


class CompanyInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    country: str | None = None

    @property
    def formatted_address(self) -> str:
        parts = [self.address, self.city, self.state, self.zip_code, self.country]
        return ", ".join(part for part in parts if part)


class ContactInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_id: UUID | None = None
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
