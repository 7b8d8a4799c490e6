"""Todo model: a checklist item attached to a CRM deal."""

import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Todo(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "todos"
    __table_args__ = (
        sa.Index("org_deal_idx", "organization_id", "deal_id", "deleted"),
    )

    organization_id: uuid.UUID = Field(
        foreign_key="organizations.id", ondelete="CASCADE", nullable=False
    )
    deal_id: str = Field(nullable=False)
    title: str = Field(nullable=False)
    checked: bool = Field(default=False, nullable=False)
    deleted: bool = Field(default=False, nullable=False)
    display_order: int = Field(nullable=False)
