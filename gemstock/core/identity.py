"""Acting-user resolution and display names for ledger entries and notes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select

from gemstock.db.connection import SessionScope, get_session
from gemstock.db.models import ProfileModel
from gemstock.exceptions import AuthError

logger = logging.getLogger(__name__)

SYSTEM_NAME = "System"


@dataclass(frozen=True)
class Actor:
    """Who performed an operation, resolved once per request."""

    user_id: str | None
    display_name: str = SYSTEM_NAME

    @classmethod
    def system(cls) -> Actor:
        return cls(user_id=None, display_name=SYSTEM_NAME)


class IdentityProvider(Protocol):
    async def current_user_id(self) -> str | None: ...

    async def display_name(self, user_id: str | None) -> str: ...


def format_display_name(
    first_name: str | None, last_name: str | None, email: str | None
) -> str:
    """Full name when known, else the email local part title-cased, else System.

    >>> format_display_name(None, None, "jane.doe@example.com")
    'Jane Doe'
    """
    full_name = " ".join(part.strip() for part in (first_name, last_name) if part and part.strip())
    if full_name:
        return full_name

    if email and "@" in email:
        local = email.split("@", 1)[0]
        words = [w for w in local.replace("_", ".").split(".") if w]
        if words:
            return " ".join(w.capitalize() for w in words)

    return SYSTEM_NAME


class ProfileIdentityProvider:
    """Looks display names up in the ``profiles`` table.

    ``user_id`` is whatever the outer layer authenticated; this provider does
    not authenticate anyone itself.
    """

    def __init__(self, user_id: str | None = None, session_scope: SessionScope = get_session):
        self._user_id = user_id
        self._session_scope = session_scope

    async def current_user_id(self) -> str | None:
        return self._user_id

    async def display_name(self, user_id: str | None) -> str:
        if not user_id:
            return SYSTEM_NAME

        async with self._session_scope() as session:
            profile = (
                await session.execute(select(ProfileModel).where(ProfileModel.user_id == user_id))
            ).scalar_one_or_none()

        if profile is None:
            logger.debug(f"No profile for user {user_id}; using system name")
            return SYSTEM_NAME

        return format_display_name(profile.first_name, profile.last_name, profile.email)


class StaticIdentityProvider:
    """Fixed identity, for scripts, the CLI and tests."""

    def __init__(self, user_id: str | None, display_name: str = SYSTEM_NAME):
        self._user_id = user_id
        self._display_name = display_name

    async def current_user_id(self) -> str | None:
        return self._user_id

    async def display_name(self, user_id: str | None) -> str:
        return self._display_name if user_id == self._user_id else SYSTEM_NAME


async def resolve_actor(identity: IdentityProvider, *, required: bool = False) -> Actor:
    """Build an :class:`Actor` from ``identity``.

    Raises:
        AuthError: If ``required`` and no user is signed in
    """
    user_id = await identity.current_user_id()
    if not user_id:
        if required:
            raise AuthError("No authenticated user")
        return Actor.system()
    return Actor(user_id=user_id, display_name=await identity.display_name(user_id))
