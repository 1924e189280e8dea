"""User lifecycle rules: uniqueness, mutable fields, hashing and counters."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import List, Optional

from .metrics import USERS_CREATED, USERS_DELETED, USERS_UPDATED, LifecycleMetrics
from .models import NewUser, Page, User, UserChanges
from .passwords import hash_password
from .store import DEFAULT_SORT_FIELD, DuplicateKeyError, UserStore

logger = logging.getLogger("usersvc.users")

USERNAME_TAKEN = "Username is already taken!"
EMAIL_IN_USE = "Email is already in use!"


class UserServiceError(RuntimeError):
    """Base class for failures raised by :class:`UserManager`."""


class ConflictError(UserServiceError):
    """Raised when a username or email is already owned by another record."""


class NotFoundError(UserServiceError):
    """Raised when no record exists for the requested identifier."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"User not found with id: {user_id}")
        self.user_id = user_id


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _merge_name(changes: UserChanges, name: str, current: Optional[str]) -> Optional[str]:
    if name in changes.cleared:
        return None
    value = getattr(changes, name)
    return current if value is None else value


def _conflict_for(exc: DuplicateKeyError) -> ConflictError:
    message = USERNAME_TAKEN if exc.field == "username" else EMAIL_IN_USE
    return ConflictError(message)


class UserManager:
    """Create, update, delete and query user records."""

    def __init__(self, store: UserStore, *, metrics: LifecycleMetrics | None = None) -> None:
        self._store = store
        self._metrics = metrics or LifecycleMetrics()

    @property
    def metrics(self) -> LifecycleMetrics:
        return self._metrics

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def create(self, new_user: NewUser) -> User:
        """Persist a new user after checking that username and email are free.

        The existence checks and the save are separate store calls; the
        store's unique indexes reject whichever concurrent save loses, and
        that rejection is reported as the same :class:`ConflictError`.
        """

        username = new_user.username.strip()
        email = _normalize_email(new_user.email)
        logger.info("Creating new user: %s", username)

        if self._store.exists_by_field("username", username):
            raise ConflictError(USERNAME_TAKEN)
        if self._store.exists_by_field("email", email):
            raise ConflictError(EMAIL_IN_USE)

        now = datetime.now(timezone.utc)
        user = User(
            id=None,
            username=username,
            email=email,
            password_hash=hash_password(new_user.password),
            first_name=new_user.first_name,
            last_name=new_user.last_name,
            active=new_user.active,
            created_at=now,
            updated_at=now,
        )

        try:
            saved = self._store.save(user)
        except DuplicateKeyError as exc:
            raise _conflict_for(exc) from exc

        self._metrics.increment(USERS_CREATED)
        logger.info("User created successfully: %s", saved.id)
        return saved

    def update(self, user_id: str, changes: UserChanges) -> User:
        """Apply profile ``changes`` to an existing user.

        Only first name, last name, email and the active flag are copied;
        username, password and creation time never change here.
        """

        logger.info("Updating user: %s", user_id)

        existing = self._store.find_by_id(user_id)
        if existing is None:
            raise NotFoundError(user_id)

        updated = replace(
            existing,
            first_name=_merge_name(changes, "first_name", existing.first_name),
            last_name=_merge_name(changes, "last_name", existing.last_name),
            email=_normalize_email(changes.email) if changes.email is not None else existing.email,
            active=changes.active if changes.active is not None else existing.active,
            updated_at=datetime.now(timezone.utc),
        )

        try:
            saved = self._store.save(updated)
        except DuplicateKeyError as exc:
            raise _conflict_for(exc) from exc

        self._metrics.increment(USERS_UPDATED)
        logger.info("User updated successfully: %s", saved.id)
        return saved

    def delete(self, user_id: str) -> None:
        logger.info("Deleting user: %s", user_id)

        if not self._store.exists_by_id(user_id):
            raise NotFoundError(user_id)

        self._store.delete_by_id(user_id)
        self._metrics.increment(USERS_DELETED)
        logger.info("User deleted successfully: %s", user_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get(self, user_id: str) -> Optional[User]:
        logger.debug("Fetching user by id: %s", user_id)
        return self._store.find_by_id(user_id)

    def find_by_username(self, username: str) -> Optional[User]:
        logger.debug("Fetching user by username: %s", username)
        return self._store.find_by_field("username", username.strip())

    def find_by_email(self, email: str) -> Optional[User]:
        logger.debug("Fetching user by email: %s", email)
        return self._store.find_by_field("email", _normalize_email(email))

    def list_all(self) -> List[User]:
        logger.debug("Fetching all users")
        return self._store.find_all()

    def list_page(
        self,
        page: int,
        size: int,
        sort_field: str = DEFAULT_SORT_FIELD,
        sort_direction: str = "desc",
    ) -> Page:
        logger.debug(
            "Fetching users with pagination: page=%s size=%s sort=%s %s",
            page,
            size,
            sort_field,
            sort_direction,
        )
        return self._store.find_page(page, size, sort_field, sort_direction)

    def search(self, keyword: str, page: int, size: int) -> Page:
        logger.debug("Searching users with keyword: %s", keyword)
        return self._store.find_all_matching(keyword, page, size)

    def list_active(self) -> List[User]:
        return self._store.find_active()

    def count_active(self) -> int:
        return self._store.count_active()


__all__ = [
    "ConflictError",
    "EMAIL_IN_USE",
    "NotFoundError",
    "USERNAME_TAKEN",
    "UserManager",
    "UserServiceError",
]
