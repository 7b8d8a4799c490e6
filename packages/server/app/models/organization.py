"""Organization model: one row per CRM company (the tenant)."""

from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Organization(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organizations"

    company_id: int = Field(sa_type=sa.BigInteger, unique=True, nullable=False, index=True)
    company_name: str = Field(nullable=False)
    company_domain: str = Field(nullable=False)
    company_country: Optional[str] = None
    api_domain: str = Field(nullable=False)
