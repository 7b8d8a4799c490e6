"""User-Organization membership (join table, RLS-scoped)."""

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class UserOrg(UUIDMixin, SQLModel, table=True):
    __tablename__ = "user_organizations"
    __table_args__ = (
        sa.UniqueConstraint("user_id", "organization_id", name="user_org_unique"),
    )

    user_id: uuid.UUID = Field(foreign_key="users.id", ondelete="CASCADE", nullable=False)
    organization_id: uuid.UUID = Field(
        foreign_key="organizations.id", ondelete="CASCADE", nullable=False
    )
    role: str = Field(nullable=False, default="member")  # owner | admin | member
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.text("now()")},
        sa_type=sa.DateTime(timezone=True),
    )
