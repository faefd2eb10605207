from enum import Enum
from typing import Any, ClassVar, Literal, Union

from pydantic import BaseModel


class Priority(str, Enum):
    URGENTE = "urgente"
    ALTA = "alta"
    MEDIA = "média"
    BAIXA = "baixa"


class Status(str, Enum):
    NA_FILA = "na fila"
    EM_PREPARACAO = "em preparação"
    INICIADA = "iniciada"
    EM_REVISAO = "em revisão"
    CONCLUIDA = "concluída"


# Ordered lists are the sort contract: index == rank
PRIORITY_ORDER: list["Priority"] = [
    Priority.URGENTE,
    Priority.ALTA,
    Priority.MEDIA,
    Priority.BAIXA,
]

STATUS_ORDER: list["Status"] = [
    Status.NA_FILA,
    Status.EM_PREPARACAO,
    Status.INICIADA,
    Status.EM_REVISAO,
    Status.CONCLUIDA,
]


def priority_rank(priority: Priority) -> int:
    return PRIORITY_ORDER.index(Priority(priority))


def status_rank(status: Status) -> int:
    return STATUS_ORDER.index(Status(status))


class SortOption(str, Enum):
    PRIORITY = "priority"
    DUE_DATE = "dueDate"
    STATUS = "status"
    TITLE = "title"
    CREATED_AT = "createdAt"


ALL_STATUSES = "todos"
ALL_PRIORITIES = "todas"

PROJECT_COLORS: list[str] = [
    "#3881ec",  # azul
    "#10b981",  # verde
    "#f59e0b",  # laranja
    "#ef4444",  # vermelho
    "#8b5cf6",  # roxo
    "#ec4899",  # rosa
    "#06b6d4",  # ciano
    "#84cc16",  # lima
]

DEFAULT_PROJECT_COLOR = PROJECT_COLORS[0]


class Filters(BaseModel):
    status: Union[Status, Literal["todos"]] = ALL_STATUSES
    priority: Union[Priority, Literal["todas"]] = ALL_PRIORITIES
    search: str = ""

    model_config = {"frozen": True}

    @property
    def is_active(self) -> bool:
        return (
            self.status != ALL_STATUSES
            or self.priority != ALL_PRIORITIES
            or bool(self.search)
        )


class PartialUpdate(BaseModel):
    """Base for update structs: only fields the caller set are applied.

    An explicit None clears a field only when it is listed in `nullable`;
    for every other field it is ignored.
    """

    nullable: ClassVar[frozenset[str]] = frozenset()

    def changes(self, mode: Literal["python", "json"] = "python") -> dict[str, Any]:
        data = self.model_dump(mode=mode, exclude_unset=True)
        return {
            k: v for k, v in data.items()
            if v is not None or k in self.nullable
        }
