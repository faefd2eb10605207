"""
Persistence gateway contract.

The hosted backend is reached only through these protocols. Every call
returns a GatewayResult instead of raising: callers check `.ok` and read
either `.data` or `.error`.
"""

from __future__ import annotations

from typing import Any, Generic, Iterable, Optional, Protocol, TypeVar

from pydantic import BaseModel

from .schemas.projects import Project, ProjectCreate, ProjectUpdate
from .schemas.tasks import (
    StatusHistoryCreate,
    StatusHistoryEntry,
    Task,
    TaskCreate,
    TaskUpdate,
)
from .schemas.users import AppUser, UserProfile

T = TypeVar("T")
R = TypeVar("R", covariant=True)
C = TypeVar("C", contravariant=True)
U = TypeVar("U", contravariant=True)


class GatewayError(BaseModel):
    message: str
    code: Optional[str] = None
    status: Optional[int] = None


class GatewayResult(BaseModel, Generic[T]):
    data: Optional[T] = None
    error: Optional[GatewayError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: Any = None) -> "GatewayResult":
        return cls(data=data)

    @classmethod
    def failure(
        cls,
        message: str,
        code: str | None = None,
        status: int | None = None,
    ) -> "GatewayResult":
        return cls(error=GatewayError(message=message, code=code, status=status))


class TableGateway(Protocol[R, C, U]):
    """CRUD over one backend table."""

    async def list(self) -> GatewayResult[list[R]]:
        """All visible rows, newest first."""
        ...

    async def create(self, fields: C) -> GatewayResult[R]:
        """Insert a row and return it with its server-assigned id and created_at."""
        ...

    async def update(self, record_id: str, fields: U) -> GatewayResult[None]:
        ...

    async def delete(self, record_id: str) -> GatewayResult[None]:
        ...


class PersistenceGateway(Protocol):
    projects: TableGateway[Project, ProjectCreate, ProjectUpdate]
    tasks: TableGateway[Task, TaskCreate, TaskUpdate]

    async def list_status_history(self, task_id: str) -> GatewayResult[list[StatusHistoryEntry]]:
        """History entries for one task, oldest first."""
        ...

    async def record_status_change(
        self, entry: StatusHistoryCreate
    ) -> GatewayResult[StatusHistoryEntry]:
        ...

    async def list_users(self) -> GatewayResult[list[AppUser]]:
        """Privileged user directory."""
        ...

    async def get_profiles(self, user_ids: Iterable[str]) -> GatewayResult[list[UserProfile]]:
        ...

