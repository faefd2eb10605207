"""
Derived views over the task collection.

Pure functions: they never touch the manager or the gateway, so the UI can
recompute them on every state change.
"""

from __future__ import annotations

import unicodedata
from datetime import date
from typing import Callable, Iterable, Optional

from pydantic import BaseModel

from .schemas.common import (
    ALL_PRIORITIES,
    ALL_STATUSES,
    PRIORITY_ORDER,
    STATUS_ORDER,
    Filters,
    Priority,
    SortOption,
    Status,
    priority_rank,
    status_rank,
)
from .schemas.tasks import Task


class TaskStats(BaseModel):
    total: int = 0
    by_status: dict[Status, int]
    by_priority: dict[Priority, int]


def title_collation_key(title: str) -> tuple[str, str, str]:
    """Sort key approximating locale collation.

    Letters compare first without accents or case, then with accents,
    then lowercase before uppercase.
    """
    decomposed = unicodedata.normalize("NFKD", title)
    base = "".join(c for c in decomposed if not unicodedata.combining(c))
    return base.casefold(), title.casefold(), title.swapcase()


_SORT_KEYS: dict[SortOption, Callable[[Task], object]] = {
    SortOption.PRIORITY: lambda t: priority_rank(t.priority),
    SortOption.DUE_DATE: lambda t: t.due_date,
    SortOption.STATUS: lambda t: status_rank(t.status),
    SortOption.TITLE: lambda t: title_collation_key(t.title),
    SortOption.CREATED_AT: lambda t: t.created_at,
}


def matches_search(task: Task, search: str) -> bool:
    needle = search.lower()
    return needle in task.title.lower() or needle in task.description.lower()


def derive_view(
    tasks: Iterable[Task],
    selected_project_id: Optional[str],
    filters: Filters,
    sort_by: SortOption,
) -> list[Task]:
    """Filter tasks by project, status, priority and search text, then sort.

    Sorting is stable: ties keep their input order. Only `createdAt` sorts
    descending (newest first).
    """
    result = list(tasks)

    if selected_project_id:
        result = [t for t in result if t.project_id == selected_project_id]

    if filters.status != ALL_STATUSES:
        result = [t for t in result if t.status == filters.status]

    if filters.priority != ALL_PRIORITIES:
        result = [t for t in result if t.priority == filters.priority]

    if filters.search:
        result = [t for t in result if matches_search(t, filters.search)]

    sort_by = SortOption(sort_by)
    # reverse=True still keeps ties in input order
    return sorted(
        result,
        key=_SORT_KEYS[sort_by],
        reverse=sort_by == SortOption.CREATED_AT,
    )


def derive_stats(tasks: Iterable[Task], selected_project_id: Optional[str]) -> TaskStats:
    """Counts per status and priority; every enum value is present."""
    project_tasks = [
        t for t in tasks
        if not selected_project_id or t.project_id == selected_project_id
    ]
    by_status = {s: 0 for s in STATUS_ORDER}
    by_priority = {p: 0 for p in PRIORITY_ORDER}
    for t in project_tasks:
        by_status[t.status] += 1
        by_priority[t.priority] += 1
    return TaskStats(
        total=len(project_tasks),
        by_status=by_status,
        by_priority=by_priority,
    )


def is_overdue(task: Task, today: Optional[date] = None) -> bool:
    """Due date already passed and the task is not finished."""
    today = today or date.today()
    return task.due_date < today and task.status != Status.CONCLUIDA
