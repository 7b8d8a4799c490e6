"""
OAuth installation endpoints (marketplace callbacks).

GET    /callback?code=...    Complete installation from an authorization code
DELETE /callback             Marketplace uninstall notification
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query, Response

from app.core.auth import require_client_credentials
from app.core.database import Database, get_database
from app.core.errors import InstallationNotFound
from app.services import installations as installation_service
from app.services.crm import CrmClient, get_crm_client
from dealtodo_shared.schemas.installations import InstallationView, UninstallRequest

router = APIRouter()
log = structlog.get_logger()


def _claimed_ids(access_token: str) -> tuple[int, int]:
    """The (user_id, company_id) hint embedded in a ``company:user:hash`` token."""
    parts = access_token.split(":")
    try:
        return int(parts[1]), int(parts[0])
    except (IndexError, ValueError):
        return 0, 0


@router.get("", response_model=InstallationView)
async def oauth_callback(
    code: str = Query(..., min_length=1),
    db: Database = Depends(get_database),
    crm: CrmClient = Depends(get_crm_client),
):
    tokens = await crm.exchange_code(code)
    claimed_user_id, claimed_company_id = _claimed_ids(tokens.access_token)
    result = await installation_service.install(
        db, crm, claimed_user_id, claimed_company_id, tokens
    )
    view = await installation_service.get_installation(db, result.user_id, result.company_id)
    if not view:
        raise InstallationNotFound(result.user_id, result.company_id)
    return view


@router.delete("", status_code=204, dependencies=[Depends(require_client_credentials)])
async def oauth_uninstall(
    body: UninstallRequest,
    db: Database = Depends(get_database),
):
    await installation_service.uninstall(db, body.user_id, body.company_id)
    return Response(status_code=204)
