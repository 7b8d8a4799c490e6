"""Tenant schema: organizations, users, memberships, OAuth tokens, todos, with RLS.

Revision ID: 0001_tenant_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from app.core.policies import APP_ROLE, RLS_POLICIES, grant_statements

revision: str = "0001_tenant_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def _fk(table: str) -> sa.ForeignKey:
    return sa.ForeignKey(f"{table}.id", ondelete="CASCADE")


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # -----------------------------------------------------------------------
    # 1. Tables
    # -----------------------------------------------------------------------

    op.create_table(
        "organizations",
        _id_column(),
        sa.Column("company_id", sa.BigInteger(), nullable=False),
        sa.Column("company_name", sa.Text(), nullable=False),
        sa.Column("company_domain", sa.Text(), nullable=False),
        sa.Column("company_country", sa.Text(), nullable=True),
        sa.Column("api_domain", sa.Text(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_organizations_company_id", "organizations", ["company_id"], unique=True)

    op.create_table(
        "users",
        _id_column(),
        sa.Column("crm_user_id", sa.BigInteger(), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("locale", sa.Text(), nullable=True),
        sa.Column("language", sa.Text(), nullable=True),
        sa.Column("timezone", sa.Text(), nullable=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("active_flag", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_users_crm_user_id", "users", ["crm_user_id"], unique=True)

    op.create_table(
        "user_organizations",
        _id_column(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), _fk("users"), nullable=False),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), _fk("organizations"), nullable=False),
        sa.Column("role", sa.Text(), nullable=False, server_default="member"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("user_id", "organization_id", name="user_org_unique"),
    )

    op.create_table(
        "oauth_tokens",
        _id_column(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), _fk("users"), nullable=False),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), _fk("organizations"), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=False),
        sa.Column("token_type", sa.Text(), nullable=False),
        sa.Column("scope", sa.Text(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "organization_id", name="user_org_token_unique"),
    )

    op.create_table(
        "todos",
        _id_column(),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), _fk("organizations"), nullable=False),
        sa.Column("deal_id", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("checked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("display_order", sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_index("org_deal_idx", "todos", ["organization_id", "deal_id", "deleted"])

    # -----------------------------------------------------------------------
    # 2. Row Level Security
    # -----------------------------------------------------------------------

    for policy in RLS_POLICIES:
        for statement in policy.create_statements():
            op.execute(statement)

    # -----------------------------------------------------------------------
    # 3. Application role privileges (role is provisioned outside migrations)
    # -----------------------------------------------------------------------

    bind = op.get_bind()
    role_exists = bind.execute(
        sa.text("SELECT 1 FROM pg_roles WHERE rolname = :role"), {"role": APP_ROLE}
    ).scalar()
    if role_exists:
        for statement in grant_statements(APP_ROLE):
            op.execute(statement)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    for policy in reversed(RLS_POLICIES):
        for statement in policy.drop_statements():
            op.execute(statement)

    op.drop_index("org_deal_idx", table_name="todos")
    op.drop_table("todos")
    op.drop_table("oauth_tokens")
    op.drop_table("user_organizations")
    op.drop_index("ix_users_crm_user_id", table_name="users")
    op.drop_table("users")
    op.drop_index("ix_organizations_company_id", table_name="organizations")
    op.drop_table("organizations")
