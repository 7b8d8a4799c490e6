"""
Installation service: onboarding and offboarding of a user/company pair.

All writes run with row security bypassed: installation creates the very rows
(user, membership) that later establish a caller's identity. Install and
uninstall serialize on transaction advisory locks for the company and the user,
always taken in that order.
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Optional

import structlog
from sqlalchemy import delete, func, update
from sqlalchemy.dialects.postgresql import insert
from sqlmodel import select

from app.core.database import Database
from app.core.errors import InstallationNotFound
from app.core.isolation import TenantSession
from app.models.base import utcnow
from app.models.oauth_token import OAuthToken
from app.models.organization import Organization
from app.models.user import User
from app.models.user_org import UserOrg
from app.services.crm import CrmClient
from app.services.resolution import find_org, find_user, get_org_by_company_id, get_user_by_crm_id
from dealtodo_shared.schemas.common import MembershipRole
from dealtodo_shared.schemas.installations import (
    CrmProfile,
    InstallationResult,
    InstallationView,
    OAuthTokenPayload,
)

log = structlog.get_logger()


def _installation_lock_key(company_id: int) -> str:
    return f"installation:{company_id}"


def _user_lock_key(crm_user_id: int) -> str:
    return f"installation:user:{crm_user_id}"


def _user_profile_fields(profile: CrmProfile) -> dict:
    return {
        "email": profile.email,
        "name": profile.name,
        "locale": profile.locale,
        "language": profile.language_code,
        "timezone": profile.timezone_name,
        "is_admin": profile.is_admin,
        "active_flag": profile.active_flag,
    }


def _org_profile_fields(profile: CrmProfile) -> dict:
    return {
        "company_name": profile.company_name,
        "company_domain": profile.company_domain,
        "company_country": profile.company_country,
    }


# ---------------------------------------------------------------------------
# Upserts
# ---------------------------------------------------------------------------


async def _upsert_org(tenant: TenantSession, profile: CrmProfile, api_domain: str) -> uuid.UUID:
    fields = {**_org_profile_fields(profile), "api_domain": api_domain}
    stmt = (
        insert(Organization)
        .values(id=uuid.uuid4(), company_id=profile.company_id, **fields)
        .on_conflict_do_update(
            index_elements=["company_id"],
            set_={**fields, "updated_at": func.now()},
        )
        .returning(Organization.id)
    )
    return await tenant.scalar(stmt)


async def _upsert_user(tenant: TenantSession, profile: CrmProfile) -> uuid.UUID:
    fields = _user_profile_fields(profile)
    stmt = (
        insert(User)
        .values(id=uuid.uuid4(), crm_user_id=profile.id, **fields)
        .on_conflict_do_update(
            index_elements=["crm_user_id"],
            set_={**fields, "updated_at": func.now()},
        )
        .returning(User.id)
    )
    return await tenant.scalar(stmt)


async def _upsert_membership(
    tenant: TenantSession, user_id: uuid.UUID, org_id: uuid.UUID, role: MembershipRole
) -> None:
    stmt = (
        insert(UserOrg)
        .values(id=uuid.uuid4(), user_id=user_id, organization_id=org_id, role=role.value)
        .on_conflict_do_update(
            index_elements=["user_id", "organization_id"],
            set_={"role": role.value},
        )
    )
    await tenant.execute(stmt)


async def _upsert_token(
    tenant: TenantSession, user_id: uuid.UUID, org_id: uuid.UUID, tokens: OAuthTokenPayload
) -> None:
    fields = {
        "access_token": tokens.access_token,
        "refresh_token": tokens.refresh_token,
        "token_type": tokens.token_type,
        "scope": tokens.scope,
        "expires_at": utcnow() + timedelta(seconds=tokens.expires_in),
    }
    stmt = (
        insert(OAuthToken)
        .values(id=uuid.uuid4(), user_id=user_id, organization_id=org_id, **fields)
        .on_conflict_do_update(
            index_elements=["user_id", "organization_id"],
            set_={**fields, "updated_at": func.now()},
        )
    )
    await tenant.execute(stmt)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


async def install(
    db: Database,
    crm: CrmClient,
    crm_user_id: int,
    company_id: int,
    tokens: OAuthTokenPayload,
) -> InstallationResult:
    """Save an installation from a fresh OAuth grant.

    The incoming ids are advisory only; the user and company are taken from
    the profile the access token resolves to.
    """
    profile = await crm.fetch_profile(tokens.api_domain, tokens.access_token)
    if (profile.id, profile.company_id) != (crm_user_id, company_id):
        log.warning(
            "installation.ids_replaced",
            claimed_user_id=crm_user_id,
            claimed_company_id=company_id,
            user_id=profile.id,
            company_id=profile.company_id,
        )

    role = MembershipRole.from_admin_flag(profile.is_admin)
    async with db.bypass_scope() as tenant:
        await tenant.lock(_installation_lock_key(profile.company_id))
        await tenant.lock(_user_lock_key(profile.id))
        org_id = await _upsert_org(tenant, profile, tokens.api_domain)
        user_id = await _upsert_user(tenant, profile)
        await _upsert_membership(tenant, user_id, org_id, role)
        await _upsert_token(tenant, user_id, org_id, tokens)

    log.info(
        "installation.saved",
        user_id=profile.id,
        company_id=profile.company_id,
        company_name=profile.company_name,
        role=role.value,
    )
    return InstallationResult(user_id=profile.id, company_id=profile.company_id)


async def _count_memberships(tenant: TenantSession, *criteria) -> int:
    return await tenant.scalar(select(func.count()).select_from(UserOrg).where(*criteria))


async def uninstall(db: Database, crm_user_id: int, company_id: int) -> None:
    """Remove an installation; delete the organization and user once orphaned.

    A missing user or organization means the pair is already uninstalled.
    """
    async with db.bypass_scope() as tenant:
        await tenant.lock(_installation_lock_key(company_id))
        await tenant.lock(_user_lock_key(crm_user_id))
        user = await find_user(tenant, crm_user_id)
        org = await find_org(tenant, company_id)
        if not user or not org:
            log.info("installation.already_removed", user_id=crm_user_id, company_id=company_id)
            return

        await tenant.execute(
            delete(OAuthToken).where(
                OAuthToken.user_id == user.id,
                OAuthToken.organization_id == org.id,
            )
        )
        await tenant.execute(
            delete(UserOrg).where(
                UserOrg.user_id == user.id,
                UserOrg.organization_id == org.id,
            )
        )

        if await _count_memberships(tenant, UserOrg.organization_id == org.id) == 0:
            # Cascades to the organization's todos and remaining tokens
            await tenant.execute(delete(Organization).where(Organization.id == org.id))
            log.info("organization.orphan_deleted", company_id=company_id)

        if await _count_memberships(tenant, UserOrg.user_id == user.id) == 0:
            await tenant.execute(delete(User).where(User.id == user.id))
            log.info("user.orphan_deleted", user_id=crm_user_id)

    log.info("installation.deleted", user_id=crm_user_id, company_id=company_id)


async def get_installation(
    db: Database, crm_user_id: int, company_id: int
) -> Optional[InstallationView]:
    """Stored credential for a user/company pair, or None when not installed."""
    async with db.bypass_scope() as tenant:
        result = await tenant.execute(
            select(OAuthToken, Organization)
            .join(Organization, Organization.id == OAuthToken.organization_id)
            .join(User, User.id == OAuthToken.user_id)
            .where(User.crm_user_id == crm_user_id, Organization.company_id == company_id)
        )
        row = result.one_or_none()
        if not row:
            return None
        token, org = row
        return InstallationView(
            access_token=token.access_token,
            refresh_token=token.refresh_token,
            token_type=token.token_type,
            scope=token.scope,
            expires_at=token.expires_at,
            api_domain=org.api_domain,
            user_id=crm_user_id,
            company_id=company_id,
        )


async def refresh_profile(
    db: Database, crm: CrmClient, crm_user_id: int, company_id: int
) -> CrmProfile:
    """Re-fetch the installing user's profile and store the latest attributes."""
    async with db.bypass_scope() as tenant:
        user = await get_user_by_crm_id(tenant, crm_user_id)
        org = await get_org_by_company_id(tenant, company_id)
        result = await tenant.execute(
            select(OAuthToken).where(
                OAuthToken.user_id == user.id,
                OAuthToken.organization_id == org.id,
            )
        )
        token = result.scalar_one_or_none()
        if not token:
            raise InstallationNotFound(crm_user_id, company_id)
        user_id, org_id = user.id, org.id
        api_domain, access_token = org.api_domain, token.access_token

    # No transaction is held open across the provider call
    profile = await crm.fetch_profile(api_domain, access_token)

    async with db.bypass_scope() as tenant:
        await tenant.execute(
            update(User)
            .where(User.id == user_id)
            .values(**_user_profile_fields(profile), updated_at=func.now())
        )
        await tenant.execute(
            update(Organization)
            .where(Organization.id == org_id)
            .values(**_org_profile_fields(profile), updated_at=func.now())
        )

    log.info("installation.profile_refreshed", user_id=crm_user_id, company_id=company_id)
    return profile
