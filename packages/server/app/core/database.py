"""
Database connection and session management.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import AsyncContextManager, Optional

from fastapi import Request
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from app import models  # noqa: F401  (populates SQLModel.metadata)
from app.core.config import Settings
from app.core.isolation import IsolationMode, TenantSession, tenant_scope
from app.core.policies import RLS_POLICIES


class Database:
    """Storage handle owned by the application's composition root.

    Tenant data is only reachable through ``user_scope`` (caller identity
    established) or ``bypass_scope`` (installation code paths).
    """

    def __init__(self, url: str, *, role: Optional[str] = None, echo: bool = False, **engine_kwargs):
        self.engine: AsyncEngine = create_async_engine(url, echo=echo, future=True, **engine_kwargs)
        self.role = role
        if role:
            event.listen(self.engine.sync_engine, "connect", self._assume_role, insert=True)
        self.session_factory = sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(settings.database_url, role=settings.database_role, echo=settings.debug)

    def _assume_role(self, dbapi_connection, connection_record) -> None:
        # Session-level, outside any transaction: a rollback must not undo it
        existing_autocommit = dbapi_connection.autocommit
        dbapi_connection.autocommit = True
        try:
            cursor = dbapi_connection.cursor()
            cursor.execute(f'SET ROLE "{self.role}"')
            cursor.close()
        finally:
            dbapi_connection.autocommit = existing_autocommit

    def user_scope(self, user_id: Optional[uuid.UUID]) -> AsyncContextManager[TenantSession]:
        """Unit of work under the caller's identity. Raises MissingIdentity without one."""
        return tenant_scope(self.session_factory, IsolationMode.scoped(user_id))

    def bypass_scope(self) -> AsyncContextManager[TenantSession]:
        """Unit of work with row security bypassed."""
        return tenant_scope(self.session_factory, IsolationMode.unrestricted())

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Plain session with no isolation settings; tenant tables read as empty."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def ping(self) -> bool:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    async def init_db(self) -> None:
        """Create all tables and policies (development only; production runs the migrations)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
            for policy in RLS_POLICIES:
                for statement in policy.create_statements():
                    await conn.execute(text(statement))

    async def dispose(self) -> None:
        await self.engine.dispose()


def get_database(request: Request) -> Database:
    """FastAPI dependency: the Database created at application startup."""
    return request.app.state.database
