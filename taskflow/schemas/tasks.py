"""Task and status-history schemas, mirroring the `tasks` and
`task_status_history` tables column for column."""

from __future__ import annotations

from datetime import date, datetime
from typing import ClassVar, Optional

from pydantic import BaseModel, Field, field_validator

from .common import PartialUpdate, Priority, Status

COMMENT_MAX_LENGTH = 140


def _strip(v):
    return v.strip() if isinstance(v, str) else v


# ---------------------------------------------------------------------------
# Task CRUD
# ---------------------------------------------------------------------------

class TaskBase(BaseModel):
    title: str = Field(min_length=1)
    description: str = ""
    priority: Priority = Priority.MEDIA
    status: Status = Status.NA_FILA
    due_date: date
    project_id: str = Field(min_length=1)
    assigned_to: Optional[str] = None

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, v):
        return _strip(v)

    @field_validator("description", mode="before")
    @classmethod
    def _none_is_empty(cls, v):
        return "" if v is None else v


class TaskCreate(TaskBase):
    # Filled from the session user when left empty
    created_by: Optional[str] = None


class TaskUpdate(PartialUpdate):
    nullable: ClassVar[frozenset[str]] = frozenset({"assigned_to"})

    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    priority: Optional[Priority] = None
    status: Optional[Status] = None
    due_date: Optional[date] = None
    project_id: Optional[str] = Field(default=None, min_length=1)
    assigned_to: Optional[str] = None

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, v):
        return _strip(v)


class Task(TaskBase):
    id: str
    created_at: datetime
    created_by: str = ""


# ---------------------------------------------------------------------------
# Status history (append-only)
# ---------------------------------------------------------------------------

class StatusHistoryCreate(BaseModel):
    task_id: str
    previous_status: Optional[Status] = None
    new_status: Status
    comment: Optional[str] = Field(default=None, max_length=COMMENT_MAX_LENGTH)
    changed_by: str

    @field_validator("comment", mode="before")
    @classmethod
    def _blank_is_none(cls, v):
        v = _strip(v)
        return v or None


class StatusHistoryEntry(StatusHistoryCreate):
    id: str
    created_at: datetime

    model_config = {"frozen": True}
