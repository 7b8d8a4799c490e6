"""
Session context management for row-level tenant isolation.

Every unit of work runs inside exactly one top-level scope:

- ``tenant_scope(factory, IsolationMode.scoped(user_id))``: the caller's
  identity is established and the RLS policies filter every tenant table.
- ``tenant_scope(factory, IsolationMode.unrestricted())``: policies are
  bypassed. Reserved for installation, uninstallation and identity resolution.

Scopes nest through ``TenantSession.as_user()`` / ``TenantSession.unrestricted()``.
Each nested scope runs in a SAVEPOINT; the innermost mode is active while its
body runs and the outer mode is re-applied on every exit path.

Settings are written with ``set_config(..., true)`` so they are local to the
transaction. A connection handed back to the pool never carries an identity
into the next transaction.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import MissingIdentity, StorageError
from app.core.policies import BYPASS_SETTING, USER_SETTING

log = structlog.get_logger()


class IsolationKind(str, Enum):
    UNSET = "unset"
    SCOPED = "scoped"
    UNRESTRICTED = "unrestricted"


@dataclass(frozen=True)
class IsolationMode:
    """Isolation state carried alongside an open transaction."""

    kind: IsolationKind
    user_id: Optional[uuid.UUID] = None

    @classmethod
    def unset(cls) -> "IsolationMode":
        return cls(IsolationKind.UNSET)

    @classmethod
    def unrestricted(cls) -> "IsolationMode":
        return cls(IsolationKind.UNRESTRICTED)

    @classmethod
    def scoped(cls, user_id: Optional[uuid.UUID]) -> "IsolationMode":
        if not user_id:
            raise MissingIdentity()
        return cls(IsolationKind.SCOPED, user_id)

    @property
    def settings(self) -> dict[str, str]:
        return {
            "user_id": str(self.user_id) if self.user_id else "",
            "bypass": "on" if self.kind is IsolationKind.UNRESTRICTED else "off",
        }


_APPLY_SQL = text(
    f"SELECT set_config('{USER_SETTING}', :user_id, true), "
    f"set_config('{BYPASS_SETTING}', :bypass, true)"
)
_LOCK_SQL = text("SELECT pg_advisory_xact_lock(hashtextextended(:key, 0))")


class TenantSession:
    """An ``AsyncSession`` paired with the isolation mode currently in force."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.mode = IsolationMode.unset()

    async def apply(self, mode: IsolationMode) -> None:
        await self.session.execute(_APPLY_SQL, mode.settings)
        self.mode = mode

    async def execute(self, statement: Any, params: Optional[dict] = None):
        return await self.session.execute(statement, params)

    async def scalar(self, statement: Any, params: Optional[dict] = None):
        return await self.session.scalar(statement, params)

    async def lock(self, key: str) -> None:
        """Take a transaction-level advisory lock on ``key``; released at commit/rollback."""
        await self.session.execute(_LOCK_SQL, {"key": key})

    @asynccontextmanager
    async def as_user(self, user_id: Optional[uuid.UUID]) -> AsyncIterator["TenantSession"]:
        """Run the body under ``user_id``'s identity, then restore the outer mode."""
        async with self._nested(IsolationMode.scoped(user_id)):
            yield self

    @asynccontextmanager
    async def unrestricted(self) -> AsyncIterator["TenantSession"]:
        """Run the body with policies bypassed, then restore the outer mode."""
        async with self._nested(IsolationMode.unrestricted()):
            yield self

    @asynccontextmanager
    async def _nested(self, mode: IsolationMode) -> AsyncIterator[None]:
        outer = self.mode
        savepoint = await self.session.begin_nested()
        try:
            await self.apply(mode)
            yield
        except Exception:
            await savepoint.rollback()
            await self.apply(outer)
            raise
        else:
            await self.apply(outer)
            await savepoint.commit()
        finally:
            self.mode = outer


@asynccontextmanager
async def tenant_scope(
    session_factory: Callable[[], AsyncSession], mode: IsolationMode
) -> AsyncIterator[TenantSession]:
    """Open a session and transaction with ``mode`` established for its lifetime.

    Commits when the body returns and rolls back when it raises. Database
    failures escaping the body surface as ``StorageError``.
    """
    async with session_factory() as session:
        tenant = TenantSession(session)
        try:
            async with session.begin():
                await tenant.apply(mode)
                yield tenant
                await tenant.apply(IsolationMode.unset())
        except SQLAlchemyError as exc:
            log.error("storage.error", mode=mode.kind.value, error=str(exc))
            raise StorageError(f"Database operation failed: {exc.__class__.__name__}") from exc
