"""
Error taxonomy for the tenant core.

Every failure the core surfaces is a ``DealTodoError`` subclass carrying a
stable ``code`` and the HTTP ``status`` handlers should answer with. Soft
outcomes (empty listings, no-match deletes) are return values, never errors.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

log = structlog.get_logger()


class DealTodoError(Exception):
    code = "INTERNAL_ERROR"
    status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MissingIdentity(DealTodoError):
    """An identity scope was opened without a caller id (programming error)."""

    code = "MISSING_IDENTITY"
    status = 500

    def __init__(self, message: str = "User id is required for tenant-scoped operations"):
        super().__init__(message)


class UserNotFound(DealTodoError):
    code = "USER_NOT_FOUND"
    status = 404

    def __init__(self, crm_user_id: int):
        super().__init__(f"User not found for userId: {crm_user_id}")
        self.crm_user_id = crm_user_id


class OrganizationNotFound(DealTodoError):
    code = "ORGANIZATION_NOT_FOUND"
    status = 404

    def __init__(self, company_id: int):
        super().__init__(f"Organization not found for companyId: {company_id}")
        self.company_id = company_id


class InstallationNotFound(DealTodoError):
    code = "INSTALLATION_NOT_FOUND"
    status = 404

    def __init__(self, crm_user_id: int, company_id: int):
        super().__init__(
            f"Installation not found for userId: {crm_user_id}, companyId: {company_id}"
        )


class ProviderError(DealTodoError):
    """The CRM identity provider rejected or failed a call."""

    code = "PROVIDER_ERROR"
    status = 502

    def __init__(self, message: str, upstream_status: int | None = None):
        super().__init__(message)
        self.upstream_status = upstream_status


class StorageError(DealTodoError):
    code = "STORAGE_ERROR"
    status = 500


async def _handle_deal_todo_error(request: Request, exc: DealTodoError) -> JSONResponse:
    if exc.status >= 500:
        log.error("request.failed", path=request.url.path, code=exc.code, error=exc.message)
    return JSONResponse(
        status_code=exc.status,
        content={
            "error": {
                "code": exc.code,
                "message": exc.message,
                "status": exc.status,
            }
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    """Render core errors with the same envelope the middleware uses."""
    app.add_exception_handler(DealTodoError, _handle_deal_todo_error)
