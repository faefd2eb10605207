"""User schemas: session identity, profile rows and directory entries."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class SessionUser(BaseModel):
    """Identity of the signed-in user as reported by the auth service."""
    id: str
    email: str


class UserProfile(BaseModel):
    """A `user_profiles` row."""
    id: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AppUser(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None
