"""
Resolution of CRM (external) identifiers to internal entity keys.

Resolving a caller happens before any identity exists, so these lookups always
run with row security bypassed: either in a nested ``unrestricted()`` scope of
the given session or, via ``resolve_user_id``, in a dedicated bypass
transaction.
"""

from __future__ import annotations

import uuid
from typing import Optional

from sqlmodel import select

from app.core.database import Database
from app.core.errors import OrganizationNotFound, UserNotFound
from app.core.isolation import TenantSession
from app.models.organization import Organization
from app.models.user import User


async def find_user(tenant: TenantSession, crm_user_id: int) -> Optional[User]:
    async with tenant.unrestricted():
        result = await tenant.execute(select(User).where(User.crm_user_id == crm_user_id))
        return result.scalar_one_or_none()


async def find_org(tenant: TenantSession, company_id: int) -> Optional[Organization]:
    async with tenant.unrestricted():
        result = await tenant.execute(
            select(Organization).where(Organization.company_id == company_id)
        )
        return result.scalar_one_or_none()


async def get_user_by_crm_id(tenant: TenantSession, crm_user_id: int) -> User:
    """Get a user by CRM user id; raises UserNotFound."""
    user = await find_user(tenant, crm_user_id)
    if not user:
        raise UserNotFound(crm_user_id)
    return user


async def get_org_by_company_id(tenant: TenantSession, company_id: int) -> Organization:
    """Get an organization by CRM company id; raises OrganizationNotFound."""
    org = await find_org(tenant, company_id)
    if not org:
        raise OrganizationNotFound(company_id)
    return org


async def resolve_user_id(db: Database, crm_user_id: int) -> uuid.UUID:
    """Internal id of a CRM user, looked up in its own bypass transaction."""
    async with db.bypass_scope() as tenant:
        user = await get_user_by_crm_id(tenant, crm_user_id)
        return user.id
