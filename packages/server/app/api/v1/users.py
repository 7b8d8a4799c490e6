"""
Current-user endpoints.

GET /user/me/{userId}/{companyId}             Refresh and return the CRM profile (surface JWT)
GET /settings/user/me/{userId}/{companyId}    Same, for the settings surface (settings JWT)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.core.auth import require_settings_token, require_surface_token
from app.core.database import Database, get_database
from app.services import installations as installation_service
from app.services.crm import CrmClient, get_crm_client
from dealtodo_shared.schemas.installations import ProfileResponse

router = APIRouter()


async def _refreshed_profile(
    user_id: int, company_id: int, db: Database, crm: CrmClient
) -> ProfileResponse:
    profile = await installation_service.refresh_profile(db, crm, user_id, company_id)
    return ProfileResponse(data=profile)


@router.get(
    "/user/me/{user_id}/{company_id}",
    response_model=ProfileResponse,
    dependencies=[Depends(require_surface_token)],
)
async def get_me(
    user_id: int,
    company_id: int,
    db: Database = Depends(get_database),
    crm: CrmClient = Depends(get_crm_client),
):
    return await _refreshed_profile(user_id, company_id, db, crm)


@router.get(
    "/settings/user/me/{user_id}/{company_id}",
    response_model=ProfileResponse,
    dependencies=[Depends(require_settings_token)],
)
async def get_me_from_settings(
    user_id: int,
    company_id: int,
    db: Database = Depends(get_database),
    crm: CrmClient = Depends(get_crm_client),
):
    return await _refreshed_profile(user_id, company_id, db, crm)
