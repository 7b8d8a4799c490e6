"""
Unit tests for the todo service with the storage layer faked out.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.core.errors import MissingIdentity, OrganizationNotFound, UserNotFound
from app.services import todos as todo_service
from dealtodo_shared.schemas.todos import TodoCreate, TodoUpdate

USER_ID = uuid.uuid4()


def _result(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    result.one_or_none.return_value = value
    return result


def _fake_db(org=None):
    tenant = MagicMock()
    tenant.lock = AsyncMock()
    tenant.scalar = AsyncMock(return_value=None)
    tenant.execute = AsyncMock(return_value=_result(org))
    tenant.session.add = MagicMock()
    tenant.session.flush = AsyncMock()

    @asynccontextmanager
    async def user_scope(user_id):
        if not user_id:
            raise MissingIdentity()
        yield tenant

    db = MagicMock()
    db.user_scope = MagicMock(side_effect=user_scope)
    return db, tenant


@pytest.fixture(autouse=True)
def resolved_user():
    with patch.object(todo_service, "resolve_user_id", AsyncMock(return_value=USER_ID)) as mock:
        yield mock


class TestCreateTodo:
    @pytest.mark.asyncio
    async def test_first_todo_gets_order_one(self):
        org = MagicMock(id=uuid.uuid4())
        db, tenant = _fake_db(org)

        created = await todo_service.create_todo(db, 101, 9001, "42", TodoCreate(title="Call"))

        todo = tenant.session.add.call_args.args[0]
        assert todo.display_order == 1
        assert todo.checked is False
        assert todo.deal_id == "42"
        assert created.id == todo.id
        db.user_scope.assert_called_once_with(USER_ID)

    @pytest.mark.asyncio
    async def test_order_follows_current_max(self):
        org = MagicMock(id=uuid.uuid4())
        db, tenant = _fake_db(org)
        tenant.scalar = AsyncMock(return_value=3)

        await todo_service.create_todo(db, 101, 9001, "42", TodoCreate(title="Email"))

        assert tenant.session.add.call_args.args[0].display_order == 4

    @pytest.mark.asyncio
    async def test_order_lock_is_per_org_and_deal(self):
        org = MagicMock(id=uuid.uuid4())
        db, tenant = _fake_db(org)

        await todo_service.create_todo(db, 101, 9001, "42", TodoCreate(title="Email"))

        tenant.lock.assert_awaited_once_with(f"todo_order:{org.id}:42")

    @pytest.mark.asyncio
    async def test_unknown_org_raises(self):
        db, tenant = _fake_db(org=None)

        with pytest.raises(OrganizationNotFound):
            await todo_service.create_todo(db, 101, 9001, "42", TodoCreate(title="Call"))

        tenant.session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_user_raises(self, resolved_user):
        resolved_user.side_effect = UserNotFound(101)
        db, _ = _fake_db()

        with pytest.raises(UserNotFound):
            await todo_service.create_todo(db, 101, 9001, "42", TodoCreate(title="Call"))

        db.user_scope.assert_not_called()


class TestReadTodos:
    @pytest.mark.asyncio
    async def test_unknown_org_is_an_empty_listing(self):
        db, _ = _fake_db(org=None)
        assert await todo_service.read_todos(db, 101, 9001, "42") == {}


class TestUpdateAndDelete:
    @pytest.mark.asyncio
    async def test_update_without_match_is_not_an_error(self):
        org = MagicMock(id=uuid.uuid4())
        db, tenant = _fake_db(org)
        no_match = MagicMock(rowcount=0)
        tenant.execute = AsyncMock(side_effect=[_result(org), no_match])

        await todo_service.update_todo(
            db, 101, 9001, "42", TodoUpdate(id=uuid.uuid4(), title="x", checked=True)
        )

        assert tenant.execute.await_count == 2

    @pytest.mark.asyncio
    async def test_update_without_checked_keeps_checked_state(self):
        org = MagicMock(id=uuid.uuid4())
        db, tenant = _fake_db(org)
        tenant.execute = AsyncMock(side_effect=[_result(org), MagicMock(rowcount=1)])

        await todo_service.update_todo(db, 101, 9001, "42", TodoUpdate(id=uuid.uuid4(), title="x"))

        params = tenant.execute.await_args_list[1].args[0].compile().params
        assert params["title"] == "x"
        assert "checked" not in params

    @pytest.mark.asyncio
    async def test_update_with_checked_writes_it(self):
        org = MagicMock(id=uuid.uuid4())
        db, tenant = _fake_db(org)
        tenant.execute = AsyncMock(side_effect=[_result(org), MagicMock(rowcount=1)])

        await todo_service.update_todo(
            db, 101, 9001, "42", TodoUpdate(id=uuid.uuid4(), title="x", checked=False)
        )

        params = tenant.execute.await_args_list[1].args[0].compile().params
        assert params["checked"] is False

    def test_checked_defaults_to_unset(self):
        assert TodoUpdate(id=uuid.uuid4(), title="x").checked is None

    @pytest.mark.asyncio
    async def test_delete_without_match_returns_none(self):
        org = MagicMock(id=uuid.uuid4())
        db, tenant = _fake_db(org)
        tenant.execute = AsyncMock(side_effect=[_result(org), _result(None)])

        assert await todo_service.delete_todo(db, 101, 9001, "42", uuid.uuid4()) is None

    @pytest.mark.asyncio
    async def test_delete_returns_removed_record(self):
        org = MagicMock(id=uuid.uuid4())
        todo_id = uuid.uuid4()
        db, tenant = _fake_db(org)
        row = MagicMock(id=todo_id, title="Call", checked=True, deleted=False)
        tenant.execute = AsyncMock(side_effect=[_result(org), _result(row)])

        removed = await todo_service.delete_todo(db, 101, 9001, "42", todo_id)

        assert removed.id == todo_id
        assert removed.checked is True
