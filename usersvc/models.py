"""Domain models for the user records service."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, List, Optional


@dataclass
class User:
    """A user record as persisted in the ``users`` collection."""

    id: Optional[str]
    username: str
    email: str
    password_hash: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class NewUser:
    """Input for creating a user. Carries the plaintext password."""

    username: str
    email: str
    password: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    active: bool = True


@dataclass(frozen=True)
class UserChanges:
    """Mutable profile fields for an update; ``None`` leaves a field untouched.

    Names listed in ``cleared`` (``first_name``, ``last_name``) are reset to
    ``None`` instead.
    """

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    active: Optional[bool] = None
    cleared: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class Page:
    """A single page of records along with the size of the whole result."""

    items: List[User] = field(default_factory=list)
    page: int = 0
    size: int = 10
    total: int = 0

    @property
    def total_pages(self) -> int:
        if self.size <= 0:
            return 0
        return (self.total + self.size - 1) // self.size

    @property
    def is_first(self) -> bool:
        return self.page == 0

    @property
    def is_last(self) -> bool:
        return self.page + 1 >= self.total_pages


__all__ = ["User", "NewUser", "UserChanges", "Page"]
