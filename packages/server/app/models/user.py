"""User model: one row per CRM user, possibly spanning several organizations."""

from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class User(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    crm_user_id: int = Field(sa_type=sa.BigInteger, unique=True, nullable=False, index=True)
    email: str = Field(nullable=False)
    name: str = Field(nullable=False)
    locale: Optional[str] = None
    language: Optional[str] = None
    timezone: Optional[str] = None
    is_admin: bool = Field(default=False, nullable=False)
    active_flag: bool = Field(default=True, nullable=False)
