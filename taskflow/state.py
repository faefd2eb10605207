"""
Task manager: canonical in-memory projects/tasks for the signed-in user.

Mutations are confirm-then-apply: the gateway call runs first and local state
changes only after it succeeds. Each operation replaces the affected
collection(s) with no await in between, so readers never see a half-applied
change. Requests are not serialized; when two calls on the same record
overlap, the last response to arrive wins.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional, Union

import structlog
from pydantic import ValidationError

from .directory import resolve_users
from .gateway import GatewayError, PersistenceGateway
from .metrics import MetricsCollector
from .schemas.common import DEFAULT_PROJECT_COLOR, Filters, SortOption, Status
from .schemas.projects import Project, ProjectCreate, ProjectUpdate
from .schemas.tasks import (
    COMMENT_MAX_LENGTH,
    StatusHistoryCreate,
    StatusHistoryEntry,
    Task,
    TaskCreate,
    TaskUpdate,
)
from .schemas.users import AppUser, SessionUser
from .session import SessionContext
from .views import TaskStats, derive_stats, derive_view

log = structlog.get_logger()


class TaskManager:
    """
    Owns the projects/tasks/users collections and the current view selection.

    All gateway-backed operations are no-ops without an active session.
    Failures never raise: they are logged, counted, stored in `last_error`
    and reported through the return value (None / False).
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        session: SessionContext,
        metrics: MetricsCollector | None = None,
        default_sort: SortOption = SortOption.PRIORITY,
    ):
        self._gateway = gateway
        self._session = session
        self._metrics = metrics
        self._default_sort = SortOption(default_sort)

        self._projects: list[Project] = []
        self._tasks: list[Task] = []
        self._users: list[AppUser] = []
        self._selected_project_id: str | None = None
        self._filters = Filters()
        self._sort_by = self._default_sort

        self.loading = False
        self.last_error: str | None = None

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def projects(self) -> list[Project]:
        return list(self._projects)

    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks)

    @property
    def users(self) -> list[AppUser]:
        return list(self._users)

    @property
    def selected_project_id(self) -> str | None:
        return self._selected_project_id

    @property
    def selected_project(self) -> Project | None:
        if self._selected_project_id is None:
            return None
        return self.get_project(self._selected_project_id)

    @property
    def filters(self) -> Filters:
        return self._filters

    @property
    def sort_by(self) -> SortOption:
        return self._sort_by

    @property
    def filtered_tasks(self) -> list[Task]:
        return derive_view(
            self._tasks, self._selected_project_id, self._filters, self._sort_by
        )

    @property
    def stats(self) -> TaskStats:
        return derive_stats(self._tasks, self._selected_project_id)

    def get_project(self, project_id: str) -> Project | None:
        return next((p for p in self._projects if p.id == project_id), None)

    def get_task(self, task_id: str) -> Task | None:
        return next((t for t in self._tasks if t.id == task_id), None)

    def get_user(self, user_id: str) -> AppUser | None:
        return next((u for u in self._users if u.id == user_id), None)

    # ------------------------------------------------------------------
    # Local selection (no gateway)
    # ------------------------------------------------------------------

    def set_selected_project(self, project_id: str | None) -> None:
        self._selected_project_id = project_id

    def set_filters(self, filters: Union[Filters, dict[str, Any]]) -> None:
        self._filters = Filters.model_validate(filters)

    def clear_filters(self) -> None:
        self._filters = Filters()

    def set_sort_by(self, sort_by: Union[SortOption, str]) -> None:
        self._sort_by = SortOption(sort_by)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Fetch projects, tasks and users concurrently.

        A failed list leaves its collection empty without affecting the
        others. The user directory falls back to task references when the
        privileged listing fails. Results are dropped if the session ends or
        changes user while the load is in flight.
        """
        user = self._session.current_user
        if user is None:
            log.debug("state.load_skipped_no_session")
            return

        self.loading = True
        try:
            projects_res, tasks_res, users_res = await asyncio.gather(
                self._gateway.projects.list(),
                self._gateway.tasks.list(),
                self._gateway.list_users(),
            )
            if not self._signed_in_as(user):
                log.info("state.load_discarded", user_id=user.id)
                return

            projects: list[Project] = []
            if projects_res.ok:
                projects = list(projects_res.data or [])
            else:
                self._gateway_failed("load_projects", projects_res.error)

            tasks: list[Task] = []
            if tasks_res.ok:
                tasks = list(tasks_res.data or [])
            else:
                self._gateway_failed("load_tasks", tasks_res.error)

            users = await resolve_users(self._gateway, user, tasks, listed=users_res)
            if not self._signed_in_as(user):
                log.info("state.load_discarded", user_id=user.id)
                return
        finally:
            self.loading = False

        self._projects = projects
        self._tasks = tasks
        self._users = users
        self._update_gauges()
        log.info(
            "state.loaded",
            projects=len(projects),
            tasks=len(tasks),
            users=len(users),
        )

    def reset(self) -> None:
        """Drop all state, e.g. after sign-out."""
        self._projects = []
        self._tasks = []
        self._users = []
        self._selected_project_id = None
        self._filters = Filters()
        self._sort_by = self._default_sort
        self.last_error = None
        self._update_gauges()

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def create_project(
        self,
        name: str,
        description: str = "",
        color: str = DEFAULT_PROJECT_COLOR,
    ) -> str | None:
        """Create a project and prepend it. Returns the new id, or None."""
        if not self._begin("create_project"):
            return None
        try:
            fields = ProjectCreate(name=name, description=description, color=color)
        except ValidationError as exc:
            self._rejected("create_project", _first_error(exc))
            return None

        result = await self._gateway.projects.create(fields)
        if not result.ok:
            self._gateway_failed("create_project", result.error)
            return None

        project: Project = result.data
        self._projects = [project, *self._projects]
        self._update_gauges()
        log.info("state.project_created", project_id=project.id, name=project.name)
        return project.id

    async def update_project(
        self,
        project_id: str,
        changes: Union[ProjectUpdate, dict[str, Any]],
    ) -> bool:
        if not self._begin("update_project"):
            return False
        try:
            fields = ProjectUpdate.model_validate(changes)
        except ValidationError as exc:
            self._rejected("update_project", _first_error(exc))
            return False
        if self.get_project(project_id) is None:
            self._rejected("update_project", f"Project {project_id} not found")
            return False

        data = fields.changes()
        if not data:
            return True

        result = await self._gateway.projects.update(project_id, fields)
        if not result.ok:
            self._gateway_failed("update_project", result.error, project_id=project_id)
            return False

        self._projects = [
            p.model_copy(update=data) if p.id == project_id else p
            for p in self._projects
        ]
        log.info("state.project_updated", project_id=project_id, fields=sorted(data))
        return True

    async def delete_project(self, project_id: str) -> bool:
        """Delete a project and, once the backend confirms, all of its tasks."""
        if not self._begin("delete_project"):
            return False
        if self.get_project(project_id) is None:
            self._rejected("delete_project", f"Project {project_id} not found")
            return False

        result = await self._gateway.projects.delete(project_id)
        if not result.ok:
            self._gateway_failed("delete_project", result.error, project_id=project_id)
            return False

        removed = sum(1 for t in self._tasks if t.project_id == project_id)
        self._projects = [p for p in self._projects if p.id != project_id]
        self._tasks = [t for t in self._tasks if t.project_id != project_id]
        if self._selected_project_id == project_id:
            self._selected_project_id = None
        self._update_gauges()
        log.info("state.project_deleted", project_id=project_id, tasks_removed=removed)
        return True

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def create_task(self, fields: Union[TaskCreate, dict[str, Any]]) -> str | None:
        """Create a task and prepend it. Returns the new id, or None.

        `created_by` defaults to the session user. The initial status is
        recorded in the task's history with no previous status.
        """
        if not self._begin("create_task"):
            return None
        try:
            task_in = TaskCreate.model_validate(fields)
        except ValidationError as exc:
            self._rejected("create_task", _first_error(exc))
            return None
        if self.get_project(task_in.project_id) is None:
            self._rejected("create_task", f"Project {task_in.project_id} not found")
            return None

        user = self._session.current_user
        if not task_in.created_by:
            task_in = task_in.model_copy(update={"created_by": user.id})

        result = await self._gateway.tasks.create(task_in)
        if not result.ok:
            self._gateway_failed("create_task", result.error)
            return None

        task: Task = result.data
        if self.get_project(task.project_id) is None:
            self._project_vanished("create_task", task.project_id, task_id=task.id)
            return None
        self._tasks = [task, *self._tasks]
        self._update_gauges()
        log.info("state.task_created", task_id=task.id, project_id=task.project_id)

        await self._record_status_change(task.id, None, task.status, None)
        return task.id

    async def update_task(
        self,
        task_id: str,
        changes: Union[TaskUpdate, dict[str, Any]],
        comment: Optional[str] = None,
    ) -> bool:
        """Apply a partial update. A status change is recorded in the task
        history with the optional `comment`."""
        if not self._begin("update_task"):
            return False
        try:
            fields = TaskUpdate.model_validate(changes)
        except ValidationError as exc:
            self._rejected("update_task", _first_error(exc))
            return False
        if comment and len(comment.strip()) > COMMENT_MAX_LENGTH:
            self._rejected(
                "update_task",
                f"Comment must be at most {COMMENT_MAX_LENGTH} characters",
            )
            return False

        current = self.get_task(task_id)
        if current is None:
            self._rejected("update_task", f"Task {task_id} not found")
            return False

        data = fields.changes()
        if "project_id" in data and self.get_project(data["project_id"]) is None:
            self._rejected("update_task", f"Project {data['project_id']} not found")
            return False
        if not data:
            return True

        result = await self._gateway.tasks.update(task_id, fields)
        if not result.ok:
            self._gateway_failed("update_task", result.error, task_id=task_id)
            return False

        project_id = data.get("project_id", current.project_id)
        if self.get_project(project_id) is None:
            self._project_vanished("update_task", project_id, task_id=task_id)
            return False

        self._tasks = [
            t.model_copy(update=data) if t.id == task_id else t
            for t in self._tasks
        ]
        log.info("state.task_updated", task_id=task_id, fields=sorted(data))

        new_status = data.get("status")
        if new_status is not None and new_status != current.status:
            await self._record_status_change(task_id, current.status, new_status, comment)
        return True

    async def change_task_status(
        self,
        task_id: str,
        status: Union[Status, str],
        comment: Optional[str] = None,
    ) -> bool:
        return await self.update_task(task_id, {"status": status}, comment=comment)

    async def delete_task(self, task_id: str) -> bool:
        if not self._begin("delete_task"):
            return False
        if self.get_task(task_id) is None:
            self._rejected("delete_task", f"Task {task_id} not found")
            return False

        result = await self._gateway.tasks.delete(task_id)
        if not result.ok:
            self._gateway_failed("delete_task", result.error, task_id=task_id)
            return False

        self._tasks = [t for t in self._tasks if t.id != task_id]
        self._update_gauges()
        log.info("state.task_deleted", task_id=task_id)
        return True

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def load_task_history(self, task_id: str) -> list[StatusHistoryEntry]:
        """Status changes for a task, oldest first. Empty on failure."""
        if not self._session.is_active:
            return []
        result = await self._gateway.list_status_history(task_id)
        if not result.ok:
            self._gateway_failed("load_task_history", result.error, task_id=task_id)
            return []
        return sorted(result.data or [], key=lambda e: e.created_at)

    async def _record_status_change(
        self,
        task_id: str,
        previous: Optional[Status],
        new: Status,
        comment: Optional[str],
    ) -> None:
        user = self._session.current_user
        if user is None:
            return
        entry = StatusHistoryCreate(
            task_id=task_id,
            previous_status=previous,
            new_status=new,
            comment=comment,
            changed_by=user.id,
        )
        result = await self._gateway.record_status_change(entry)
        if not result.ok:
            # The task update already happened; history is best-effort.
            log.warning(
                "state.history_record_failed",
                task_id=task_id,
                error=result.error.message,
            )
            self._count("gateway_failures_total", op="record_status_change")
            return
        log.info(
            "state.status_changed",
            task_id=task_id,
            previous=previous.value if previous else None,
            new=Status(new).value,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _signed_in_as(self, user: SessionUser) -> bool:
        current = self._session.current_user
        return current is not None and current.id == user.id

    def _begin(self, op: str) -> bool:
        if not self._session.is_active:
            log.debug("state.no_session", op=op)
            return False
        self.last_error = None
        self._count("operations_total", op=op)
        return True

    def _rejected(self, op: str, message: str) -> None:
        self.last_error = message
        self._count("validation_failures_total", op=op)
        log.warning("state.validation_failed", op=op, error=message)

    def _gateway_failed(self, op: str, error: GatewayError | None, **context: Any) -> None:
        message = error.message if error else "unknown error"
        self.last_error = message
        self._count("gateway_failures_total", op=op)
        log.error(
            "state.gateway_failed",
            op=op,
            error=message,
            code=error.code if error else None,
            **context,
        )

    def _project_vanished(self, op: str, project_id: str, **context: Any) -> None:
        """The project was deleted while the backend call was in flight."""
        self.last_error = f"Project {project_id} not found"
        log.warning("state.project_vanished", op=op, project_id=project_id, **context)

    def _count(self, name: str, **labels: Any) -> None:
        if self._metrics:
            self._metrics.inc(name, **labels)

    def _update_gauges(self) -> None:
        if self._metrics:
            self._metrics.set_gauge("projects", len(self._projects))
            self._metrics.set_gauge("tasks", len(self._tasks))


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    field = ".".join(str(p) for p in err.get("loc", ())) or "value"
    return f"{field}: {err.get('msg', 'invalid')}"
