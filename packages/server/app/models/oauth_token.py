"""OAuth credential granted by one user for one organization."""

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class OAuthToken(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "oauth_tokens"
    __table_args__ = (
        sa.UniqueConstraint("user_id", "organization_id", name="user_org_token_unique"),
    )

    user_id: uuid.UUID = Field(foreign_key="users.id", ondelete="CASCADE", nullable=False)
    organization_id: uuid.UUID = Field(
        foreign_key="organizations.id", ondelete="CASCADE", nullable=False
    )
    access_token: str = Field(nullable=False)
    refresh_token: str = Field(nullable=False)
    token_type: str = Field(nullable=False)
    scope: str = Field(nullable=False)
    expires_at: datetime = Field(nullable=False, sa_type=sa.DateTime(timezone=True))
