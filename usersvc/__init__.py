"""User records service: a document-backed CRUD API for user accounts."""

from __future__ import annotations

from typing import Any

from .config import ServiceConfig, load_service_config, resolve_database_path
from .store import UserStore
from .users import ConflictError, NotFoundError, UserManager


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the HTTP application."""

    from .service import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "ConflictError",
    "NotFoundError",
    "ServiceConfig",
    "UserManager",
    "UserStore",
    "create_app",
    "load_service_config",
    "resolve_database_path",
]
