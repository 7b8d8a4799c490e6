"""Todo schemas."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field
from pydantic import UUID4


class TodoCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)


class TodoUpdate(BaseModel):
    id: UUID4
    title: str = Field(min_length=1, max_length=500)
    # None leaves the stored checked state as it is
    checked: Optional[bool] = None


class TodoCreated(BaseModel):
    id: UUID4


class TodoRead(BaseModel):
    id: UUID4
    title: str
    checked: bool
    deleted: bool
