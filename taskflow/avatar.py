"""
Avatar resolution: custom URL, then Gravatar, then initials.
"""

from __future__ import annotations

import hashlib
from typing import Literal, Optional

from pydantic import BaseModel

GRAVATAR_URL = "https://www.gravatar.com/avatar/{hash}?s={size}&d={default}"

AvatarSize = Literal["xs", "sm", "md", "lg"]

GRAVATAR_SIZES: dict[str, int] = {
    "xs": 40,
    "sm": 48,
    "md": 64,
    "lg": 80,
}

INITIALS_COLORS = [
    "blue",
    "green",
    "purple",
    "pink",
    "yellow",
    "indigo",
    "red",
    "teal",
]

FALLBACK_NAME = "Usuário"


class Avatar(BaseModel):
    image_url: Optional[str] = None
    display_name: str
    initials: str
    color: str


def gravatar_url(email: str, size: int = 200, default: str = "identicon") -> str:
    """Gravatar image URL for an email; empty string when there is no email.

    `default` is Gravatar's fallback style (identicon, monsterid, wavatar,
    retro, robohash, mp, or 404).
    """
    if not email:
        return ""
    digest = hashlib.md5(email.strip().lower().encode("utf-8")).hexdigest()
    return GRAVATAR_URL.format(hash=digest, size=size, default=default)


def initials_for(display_name: str) -> str:
    return "".join(part[0] for part in display_name.split() if part).upper()[:2]


def color_for(display_name: str) -> str:
    return INITIALS_COLORS[sum(ord(c) for c in display_name) % len(INITIALS_COLORS)]


def resolve_avatar(
    name: Optional[str] = None,
    email: Optional[str] = None,
    avatar_url: Optional[str] = None,
    size: AvatarSize = "sm",
) -> Avatar:
    display_name = name or (email.split("@")[0] if email else "") or FALLBACK_NAME
    image_url = avatar_url or (gravatar_url(email, GRAVATAR_SIZES[size]) if email else None)
    return Avatar(
        image_url=image_url or None,
        display_name=display_name,
        initials=initials_for(display_name),
        color=color_for(display_name),
    )
