"""
Todo service: deal checklist CRUD under the caller's identity.

Each operation resolves the CRM user in a bypass transaction, then runs its
own unit of work in ``user_scope``. The organization is looked up with the
caller's identity in force, so a company the caller is not a member of does
not resolve.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy import delete, func, update
from sqlmodel import select

from app.core.database import Database
from app.core.errors import OrganizationNotFound
from app.core.isolation import TenantSession
from app.models.organization import Organization
from app.models.todo import Todo
from app.services.resolution import resolve_user_id
from dealtodo_shared.schemas.todos import TodoCreate, TodoCreated, TodoRead, TodoUpdate

log = structlog.get_logger()


def _to_read(todo: Todo) -> TodoRead:
    return TodoRead(id=todo.id, title=todo.title, checked=todo.checked, deleted=todo.deleted)


async def _visible_org(tenant: TenantSession, company_id: int) -> Optional[Organization]:
    result = await tenant.execute(
        select(Organization).where(Organization.company_id == company_id)
    )
    return result.scalar_one_or_none()


async def _require_org(tenant: TenantSession, company_id: int) -> Organization:
    org = await _visible_org(tenant, company_id)
    if not org:
        raise OrganizationNotFound(company_id)
    return org


async def _next_display_order(tenant: TenantSession, org_id: uuid.UUID, deal_id: str) -> int:
    current = await tenant.scalar(
        select(func.max(Todo.display_order)).where(
            Todo.organization_id == org_id,
            Todo.deal_id == deal_id,
            Todo.deleted == False,  # noqa: E712
        )
    )
    return (current or 0) + 1


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


async def create_todo(
    db: Database, crm_user_id: int, company_id: int, deal_id: str, data: TodoCreate
) -> TodoCreated:
    """Append a todo to the deal's list, after its current last item."""
    user_id = await resolve_user_id(db, crm_user_id)
    async with db.user_scope(user_id) as tenant:
        org = await _require_org(tenant, company_id)
        await tenant.lock(f"todo_order:{org.id}:{deal_id}")
        todo = Todo(
            organization_id=org.id,
            deal_id=deal_id,
            title=data.title,
            checked=False,
            display_order=await _next_display_order(tenant, org.id, deal_id),
        )
        tenant.session.add(todo)
        await tenant.session.flush()

    log.info(
        "todo.created",
        todo_id=str(todo.id),
        company_id=company_id,
        deal_id=deal_id,
        display_order=todo.display_order,
    )
    return TodoCreated(id=todo.id)


async def read_todos(
    db: Database, crm_user_id: int, company_id: int, deal_id: str
) -> dict[uuid.UUID, TodoRead]:
    """Non-deleted todos of a deal keyed by id, in display order.

    An organization the caller cannot see yields an empty listing.
    """
    user_id = await resolve_user_id(db, crm_user_id)
    async with db.user_scope(user_id) as tenant:
        org = await _visible_org(tenant, company_id)
        if not org:
            return {}
        result = await tenant.execute(
            select(Todo)
            .where(
                Todo.organization_id == org.id,
                Todo.deal_id == deal_id,
                Todo.deleted == False,  # noqa: E712
            )
            .order_by(Todo.display_order)
        )
        return {todo.id: _to_read(todo) for todo in result.scalars().all()}


async def read_todo(
    db: Database, crm_user_id: int, company_id: int, deal_id: str, todo_id: uuid.UUID
) -> Optional[TodoRead]:
    user_id = await resolve_user_id(db, crm_user_id)
    async with db.user_scope(user_id) as tenant:
        org = await _require_org(tenant, company_id)
        result = await tenant.execute(
            select(Todo).where(
                Todo.id == todo_id,
                Todo.organization_id == org.id,
                Todo.deal_id == deal_id,
            )
        )
        todo = result.scalar_one_or_none()
        return _to_read(todo) if todo else None


async def update_todo(
    db: Database, crm_user_id: int, company_id: int, deal_id: str, data: TodoUpdate
) -> None:
    """Overwrite the title, and the checked state when given.

    A todo outside the deal is left untouched.
    """
    values = {"title": data.title, "updated_at": func.now()}
    if data.checked is not None:
        values["checked"] = data.checked
    user_id = await resolve_user_id(db, crm_user_id)
    async with db.user_scope(user_id) as tenant:
        org = await _require_org(tenant, company_id)
        result = await tenant.execute(
            update(Todo)
            .where(
                Todo.id == data.id,
                Todo.organization_id == org.id,
                Todo.deal_id == deal_id,
            )
            .values(**values)
        )
        if result.rowcount == 0:
            log.info("todo.update_no_match", todo_id=str(data.id), deal_id=deal_id)


async def delete_todo(
    db: Database, crm_user_id: int, company_id: int, deal_id: str, todo_id: uuid.UUID
) -> Optional[TodoRead]:
    """Delete a todo of the deal; returns the removed record or None."""
    user_id = await resolve_user_id(db, crm_user_id)
    async with db.user_scope(user_id) as tenant:
        org = await _require_org(tenant, company_id)
        result = await tenant.execute(
            delete(Todo)
            .where(
                Todo.id == todo_id,
                Todo.organization_id == org.id,
                Todo.deal_id == deal_id,
            )
            .returning(Todo.id, Todo.title, Todo.checked, Todo.deleted)
        )
        row = result.one_or_none()

    if not row:
        return None
    log.info("todo.deleted", todo_id=str(todo_id), company_id=company_id, deal_id=deal_id)
    return TodoRead(id=row.id, title=row.title, checked=row.checked, deleted=row.deleted)
