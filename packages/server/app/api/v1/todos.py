"""
Deal todo endpoints (CRM deal panel surface).

GET    /todo/{userId}/{companyId}/{dealId}               List todos of a deal
POST   /todo/{userId}/{companyId}/{dealId}               Create a todo
PUT    /todo/{userId}/{companyId}/{dealId}               Update a todo
GET    /todo/{userId}/{companyId}/{dealId}/{recordId}    Get one todo
DELETE /todo/{userId}/{companyId}/{dealId}/{recordId}    Delete a todo

All routes require the surface JWT in the ``token`` query parameter.
"""

from __future__ import annotations

import uuid
from typing import Dict, Optional

from fastapi import APIRouter, Depends

from app.core.auth import require_surface_token
from app.core.database import Database, get_database
from app.services import todos as todo_service
from dealtodo_shared.schemas.todos import TodoCreate, TodoCreated, TodoRead, TodoUpdate

router = APIRouter(dependencies=[Depends(require_surface_token)])


@router.get("/{user_id}/{company_id}/{deal_id}", response_model=Dict[uuid.UUID, TodoRead])
async def list_todos(
    user_id: int,
    company_id: int,
    deal_id: str,
    db: Database = Depends(get_database),
):
    return await todo_service.read_todos(db, user_id, company_id, deal_id)


@router.post("/{user_id}/{company_id}/{deal_id}", response_model=TodoCreated, status_code=201)
async def create_todo(
    user_id: int,
    company_id: int,
    deal_id: str,
    body: TodoCreate,
    db: Database = Depends(get_database),
):
    return await todo_service.create_todo(db, user_id, company_id, deal_id, body)


@router.put("/{user_id}/{company_id}/{deal_id}")
async def update_todo(
    user_id: int,
    company_id: int,
    deal_id: str,
    body: TodoUpdate,
    db: Database = Depends(get_database),
):
    await todo_service.update_todo(db, user_id, company_id, deal_id, body)
    return {"success": True}


@router.get("/{user_id}/{company_id}/{deal_id}/{record_id}", response_model=Optional[TodoRead])
async def get_todo(
    user_id: int,
    company_id: int,
    deal_id: str,
    record_id: uuid.UUID,
    db: Database = Depends(get_database),
):
    return await todo_service.read_todo(db, user_id, company_id, deal_id, record_id)


@router.delete("/{user_id}/{company_id}/{deal_id}/{record_id}", response_model=Optional[TodoRead])
async def delete_todo(
    user_id: int,
    company_id: int,
    deal_id: str,
    record_id: uuid.UUID,
    db: Database = Depends(get_database),
):
    """Returns the removed todo, or null when nothing matched."""
    return await todo_service.delete_todo(db, user_id, company_id, deal_id, record_id)
