from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .common import DEFAULT_PROJECT_COLOR, PROJECT_COLORS, PartialUpdate


def _check_palette(color: str) -> str:
    if color not in PROJECT_COLORS:
        raise ValueError(f"color must be one of {PROJECT_COLORS}")
    return color


class ProjectBase(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    color: str = DEFAULT_PROJECT_COLOR

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("description", mode="before")
    @classmethod
    def _none_is_empty(cls, v):
        return "" if v is None else v


class ProjectCreate(ProjectBase):
    @field_validator("color")
    @classmethod
    def _palette(cls, v: str) -> str:
        return _check_palette(v)


class ProjectUpdate(PartialUpdate):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    color: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("color")
    @classmethod
    def _palette(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _check_palette(v)


class Project(ProjectBase):
    """A project row as stored by the backend (`projects` table)."""
    id: str
    created_at: datetime
