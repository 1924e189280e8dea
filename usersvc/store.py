"""SQLite-backed document collection for user records.

Every user is stored as one JSON document in the ``users`` table, keyed by an
opaque identifier assigned on first save. Lookups address document fields by
their camelCase keys (``username``, ``firstName``, ``createdAt`` ...), and the
unique indexes on ``username`` and ``email`` are enforced by SQLite itself.
"""
from __future__ import annotations

import json
import logging
import secrets
import sqlite3
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from .models import Page, User

logger = logging.getLogger("usersvc.store")

DOCUMENT_FIELDS = (
    "username",
    "email",
    "firstName",
    "lastName",
    "active",
    "createdAt",
    "updatedAt",
)
SEARCH_FIELDS = ("firstName", "lastName", "username", "email")
DEFAULT_SORT_FIELD = "createdAt"
# SQLite binds LIMIT/OFFSET as signed 64-bit integers.
MAX_OFFSET = 2**63 - 1

_UNIQUE_INDEXES = {
    "ux_users_username": "username",
    "ux_users_email": "email",
}


class StoreError(RuntimeError):
    """Raised when the underlying database cannot complete an operation."""


class DuplicateKeyError(ValueError):
    """Raised when a save would violate a unique index."""

    def __init__(self, field: str) -> None:
        super().__init__(f"A user with that {field} already exists")
        self.field = field


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _generate_id() -> str:
    return secrets.token_hex(12)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _contains_ci(value: Any, keyword: Any) -> int:
    if value is None or keyword is None:
        return 0
    return int(str(keyword).casefold() in str(value).casefold())


def _field_expression(field: str) -> str:
    return f"json_extract(document, '$.{field}')"


def _duplicate_field(exc: sqlite3.IntegrityError) -> Optional[str]:
    message = str(exc)
    for index_name, field in _UNIQUE_INDEXES.items():
        if index_name in message:
            return field
    return None


class UserStore:
    """Persistence wrapper exposing document-style queries over SQLite."""

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.create_function("contains_ci", 2, _contains_ci, deterministic=True)
        return conn

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StoreError(f"Unable to open user store at {self._path}: {exc}") from exc
        try:
            with conn:
                yield conn
        except sqlite3.IntegrityError as exc:
            field = _duplicate_field(exc)
            if field is None:
                raise StoreError(f"User store rejected the write: {exc}") from exc
            raise DuplicateKeyError(field) from exc
        except sqlite3.Error as exc:
            raise StoreError(f"User store operation failed: {exc}") from exc
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create the collection and its indexes if they do not already exist."""

        with self._session() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    document TEXT NOT NULL
                );

                CREATE UNIQUE INDEX IF NOT EXISTS ux_users_username
                    ON users(json_extract(document, '$.username'));
                CREATE UNIQUE INDEX IF NOT EXISTS ux_users_email
                    ON users(json_extract(document, '$.email'));
                CREATE INDEX IF NOT EXISTS idx_users_created_at
                    ON users(json_extract(document, '$.createdAt'));
                CREATE INDEX IF NOT EXISTS idx_users_active
                    ON users(json_extract(document, '$.active'));
                """
            )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def find_by_id(self, user_id: str) -> Optional[User]:
        with self._session() as conn:
            row = conn.execute(
                "SELECT id, document FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def exists_by_id(self, user_id: str) -> bool:
        with self._session() as conn:
            row = conn.execute("SELECT 1 FROM users WHERE id = ?", (user_id,)).fetchone()
        return row is not None

    def find_by_field(self, field: str, value: object) -> Optional[User]:
        expression = self._queryable(field)
        with self._session() as conn:
            row = conn.execute(
                f"SELECT id, document FROM users WHERE {expression} = ? LIMIT 1",
                (value,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def exists_by_field(self, field: str, value: object) -> bool:
        expression = self._queryable(field)
        with self._session() as conn:
            row = conn.execute(
                f"SELECT 1 FROM users WHERE {expression} = ? LIMIT 1",
                (value,),
            ).fetchone()
        return row is not None

    def find_all(self) -> List[User]:
        with self._session() as conn:
            rows = conn.execute("SELECT id, document FROM users ORDER BY rowid").fetchall()
        return [self._row_to_user(row) for row in rows]

    def find_page(
        self,
        page: int,
        size: int,
        sort_field: str = DEFAULT_SORT_FIELD,
        sort_direction: str = "desc",
    ) -> Page:
        """Return one page of records ordered by ``sort_field``.

        ``sort_direction`` selects descending order when it equals ``"desc"``
        (any case); every other value sorts ascending.
        """

        self._check_page(page, size)
        order = self._sort_expression(sort_field)
        direction = "DESC" if str(sort_direction).strip().lower() == "desc" else "ASC"

        with self._session() as conn:
            total = conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
            rows = conn.execute(
                f"SELECT id, document FROM users ORDER BY {order} {direction}, rowid {direction} "
                "LIMIT ? OFFSET ?",
                (size, page * size),
            ).fetchall()

        return Page(
            items=[self._row_to_user(row) for row in rows],
            page=page,
            size=size,
            total=int(total),
        )

    def find_all_matching(self, keyword: Optional[str], page: int = 0, size: int = 10) -> Page:
        """Case-insensitive substring search across the searchable fields."""

        self._check_page(page, size)
        needle = keyword or ""
        clause = " OR ".join(
            f"contains_ci({_field_expression(field)}, ?)" for field in SEARCH_FIELDS
        )
        params = [needle] * len(SEARCH_FIELDS)

        with self._session() as conn:
            total = conn.execute(
                f"SELECT COUNT(*) FROM users WHERE {clause}",
                params,
            ).fetchone()[0]
            rows = conn.execute(
                f"SELECT id, document FROM users WHERE {clause} ORDER BY rowid LIMIT ? OFFSET ?",
                [*params, size, page * size],
            ).fetchall()

        return Page(
            items=[self._row_to_user(row) for row in rows],
            page=page,
            size=size,
            total=int(total),
        )

    def find_active(self) -> List[User]:
        with self._session() as conn:
            rows = conn.execute(
                f"SELECT id, document FROM users WHERE {_field_expression('active')} = 1"
            ).fetchall()
        return [self._row_to_user(row) for row in rows]

    def count_active(self) -> int:
        with self._session() as conn:
            row = conn.execute(
                f"SELECT COUNT(*) FROM users WHERE {_field_expression('active')} = 1"
            ).fetchone()
        return int(row[0])

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def save(self, user: User) -> User:
        """Insert or replace ``user`` and return the stored record.

        Records without an identifier are inserted and receive a fresh one;
        records with an identifier replace the stored document.
        """

        record = user
        if record.id is None:
            created_at = record.created_at or _current_timestamp()
            record = replace(
                record,
                id=_generate_id(),
                created_at=created_at,
                updated_at=record.updated_at or created_at,
            )

        document = json.dumps(self._user_to_document(record))
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO users (id, document) VALUES (?, ?)
                ON CONFLICT(id) DO UPDATE SET document = excluded.document
                """,
                (record.id, document),
            )

        logger.debug("Saved user document %s", record.id)
        return record

    def delete_by_id(self, user_id: str) -> bool:
        with self._session() as conn:
            cursor = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _check_page(page: int, size: int) -> None:
        if page < 0:
            raise ValueError("Page index must not be negative")
        if size < 1:
            raise ValueError("Page size must be at least 1")
        if (page + 1) * size > MAX_OFFSET:
            raise ValueError("Page index is out of range")

    @staticmethod
    def _queryable(field: str) -> str:
        if field not in DOCUMENT_FIELDS:
            raise ValueError(f"Unknown user field '{field}'")
        return _field_expression(field)

    @staticmethod
    def _sort_expression(field: str) -> str:
        if field == "id":
            return "id"
        if field not in DOCUMENT_FIELDS:
            logger.warning("Unsupported sort field %r; sorting by %s", field, DEFAULT_SORT_FIELD)
            field = DEFAULT_SORT_FIELD
        return _field_expression(field)

    @staticmethod
    def _user_to_document(user: User) -> Dict[str, Any]:
        return {
            "username": user.username,
            "email": user.email,
            "password": user.password_hash,
            "firstName": user.first_name,
            "lastName": user.last_name,
            "active": bool(user.active),
            "createdAt": _serialize_datetime(user.created_at),
            "updatedAt": _serialize_datetime(user.updated_at),
        }

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        document = json.loads(row["document"])
        return User(
            id=str(row["id"]),
            username=str(document["username"]),
            email=str(document["email"]),
            password_hash=str(document.get("password") or ""),
            first_name=document.get("firstName"),
            last_name=document.get("lastName"),
            active=bool(document.get("active", True)),
            created_at=_parse_datetime(document.get("createdAt")),
            updated_at=_parse_datetime(document.get("updatedAt")),
        )


__all__ = [
    "DEFAULT_SORT_FIELD",
    "DOCUMENT_FIELDS",
    "DuplicateKeyError",
    "MAX_OFFSET",
    "SEARCH_FIELDS",
    "StoreError",
    "UserStore",
]
