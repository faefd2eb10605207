"""
User directory resolution.

The privileged `get_users` call returns every user with email and profile
data. When it is not available (missing grant, RPC not deployed) we fall back
to the ids we can see: task creators, assignees and the current user, and fill
names/avatars from `user_profiles`.
"""

from __future__ import annotations

from typing import Iterable

import structlog

from .gateway import GatewayResult, PersistenceGateway
from .schemas.tasks import Task
from .schemas.users import AppUser, SessionUser, UserProfile

log = structlog.get_logger()


def placeholder_name(user_id: str) -> str:
    return f"Usuário {user_id[:8]}"


def placeholder_email(user_id: str) -> str:
    return f"{user_id[:8]}@usuario.local"


def referenced_user_ids(tasks: Iterable[Task], current_user: SessionUser | None) -> list[str]:
    """Ids referenced by tasks plus the current user, in first-seen order."""
    seen: dict[str, None] = {}
    if current_user:
        seen[current_user.id] = None
    for task in tasks:
        for uid in (task.created_by, task.assigned_to):
            if uid:
                seen.setdefault(uid, None)
    return list(seen)


def build_users(
    user_ids: list[str],
    profiles: Iterable[UserProfile],
    current_user: SessionUser | None,
) -> list[AppUser]:
    by_id = {p.id: p for p in profiles}
    users = []
    for uid in user_ids:
        profile = by_id.get(uid)
        known = current_user is not None and uid == current_user.id
        email = current_user.email if known else placeholder_email(uid)
        if profile is None:
            name = email.split("@")[0] if known else placeholder_name(uid)
            users.append(AppUser(id=uid, email=email, name=name))
            continue
        users.append(AppUser(
            id=uid,
            email=email,
            name=profile.display_name or email.split("@")[0],
            avatar_url=profile.avatar_url,
        ))
    return users


async def fallback_users(
    gateway: PersistenceGateway,
    current_user: SessionUser | None,
    tasks: Iterable[Task],
) -> list[AppUser]:
    """Directory derived from task references and profile rows."""
    user_ids = referenced_user_ids(tasks, current_user)
    result = await gateway.get_profiles(user_ids)
    if result.ok:
        profiles = result.data or []
    else:
        log.warning("directory.profiles_failed", error=result.error.message)
        profiles = []

    users = build_users(user_ids, profiles, current_user)
    log.info("directory.fallback_resolved", users=len(users), profiles=len(profiles))
    return users


async def resolve_users(
    gateway: PersistenceGateway,
    current_user: SessionUser | None,
    tasks: Iterable[Task],
    listed: GatewayResult[list[AppUser]] | None = None,
) -> list[AppUser]:
    """Best-effort user list. Never fails: the worst case is placeholder entries.

    `listed` is the result of an already issued `list_users()` call, so callers
    can run it alongside other loads.
    """
    result = listed if listed is not None else await gateway.list_users()
    if result.ok:
        return list(result.data or [])
    log.warning("directory.list_users_failed", error=result.error.message)
    return await fallback_users(gateway, current_user, tasks)
