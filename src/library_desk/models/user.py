"""
User and principal models.

Users are owned by the authenticator's backing store. The circulation core
only ever reads a user's ``id`` and ``role``, carried around as a ``Principal``
once a credential has been verified.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """Roles a library user can hold."""

    ADMIN = "admin"
    LIBRARIAN = "librarian"
    MEMBER = "member"


STAFF_ROLES = frozenset({Role.ADMIN, Role.LIBRARIAN})


class Principal(BaseModel):
    """The authenticated identity extracted from a credential."""

    model_config = ConfigDict(frozen=True)

    id: int
    role: Role


class User(BaseModel):
    """A library user as exposed to callers. Never carries the password hash."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    role: Role
    created_at: datetime | None = None


class AccessToken(BaseModel):
    """A bearer token issued at login."""

    token: str = Field(..., repr=False)
    expires_at: datetime
    user: User
