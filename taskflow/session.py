"""
Session context: who is signed in.

Constructed once and handed explicitly to the gateway, the auth client and
the task manager. Mutating state operations are no-ops while no user is set.
"""

from __future__ import annotations

import structlog

from .logging_config import bind_user, unbind_user
from .schemas.users import SessionUser

log = structlog.get_logger()


class SessionContext:
    """Current authenticated user and access token."""

    def __init__(self) -> None:
        self._user: SessionUser | None = None
        self._access_token: str | None = None

    @property
    def current_user(self) -> SessionUser | None:
        return self._user

    @property
    def access_token(self) -> str | None:
        return self._access_token

    @property
    def is_active(self) -> bool:
        return self._user is not None

    def start(self, user: SessionUser, access_token: str | None = None) -> None:
        self._user = user
        self._access_token = access_token
        bind_user(user.id)
        log.info("session.started")

    def clear(self) -> None:
        if self._user:
            log.info("session.cleared")
            unbind_user()
        self._user = None
        self._access_token = None
