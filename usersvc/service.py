"""HTTP API exposing user records under ``/api/users``."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query, Response, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import ServiceConfig, load_service_config
from .metrics import LifecycleMetrics
from .middleware import CorrelationIdMiddleware
from .models import NewUser, Page, User, UserChanges
from .store import DEFAULT_SORT_FIELD, StoreError, UserStore
from .users import ConflictError, NotFoundError, UserManager, UserServiceError

logger = logging.getLogger("usersvc.service")

# Keeps page * size well inside SQLite's 64-bit OFFSET range.
MAX_PAGE_INDEX = 2**31 - 1


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _validate_email(value: str) -> str:
    normalized = value.strip().lower()
    local, sep, domain = normalized.partition("@")
    if not sep or not local or not domain or "@" in domain or " " in normalized:
        raise ValueError("email must be a valid email address")
    return normalized


class UserCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(..., min_length=1, max_length=64)
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=1, max_length=1024)
    first_name: Optional[str] = Field(default=None, alias="firstName", max_length=100)
    last_name: Optional[str] = Field(default=None, alias="lastName", max_length=100)
    active: bool = True

    @field_validator("username")
    @classmethod
    def _normalize_username(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("username must not be empty")
        return stripped

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return _validate_email(value)

    @field_validator("first_name", "last_name")
    @classmethod
    def _normalize_names(cls, value: Optional[str]) -> Optional[str]:
        return _clean_optional(value)

    def to_new_user(self) -> NewUser:
        return NewUser(
            username=self.username,
            email=self.email,
            password=self.password,
            first_name=self.first_name,
            last_name=self.last_name,
            active=self.active,
        )


class UserUpdateRequest(BaseModel):
    """Partial profile update; username and password are ignored if sent."""

    model_config = ConfigDict(populate_by_name=True)

    first_name: Optional[str] = Field(default=None, alias="firstName", max_length=100)
    last_name: Optional[str] = Field(default=None, alias="lastName", max_length=100)
    email: Optional[str] = Field(default=None, min_length=3, max_length=254)
    active: Optional[bool] = None

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return _validate_email(value)

    @field_validator("first_name", "last_name")
    @classmethod
    def _normalize_names(cls, value: Optional[str]) -> Optional[str]:
        return _clean_optional(value)

    def to_changes(self) -> UserChanges:
        # A name sent as null or blank clears it; an omitted name is left alone.
        cleared = frozenset(
            name
            for name in ("first_name", "last_name")
            if name in self.model_fields_set and getattr(self, name) is None
        )
        return UserChanges(
            first_name=self.first_name,
            last_name=self.last_name,
            email=self.email,
            active=self.active,
            cleared=cleared,
        )



class UserResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    username: str
    email: str
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    active: bool
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")


class UserPageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: List[UserResponse]
    page: int
    size: int
    total_elements: int = Field(..., alias="totalElements")
    total_pages: int = Field(..., alias="totalPages")
    first: bool
    last: bool


class UserStatsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    active_users: int = Field(..., alias="activeUsers")
    timestamp: str


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id or "",
        username=user.username,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        active=user.active,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def page_to_response(page: Page) -> UserPageResponse:
    return UserPageResponse(
        content=[user_to_response(user) for user in page.items],
        page=page.page,
        size=page.size,
        total_elements=page.total,
        total_pages=page.total_pages,
        first=page.is_first,
        last=page.is_last,
    )


def register_user_routes(app: FastAPI, manager: UserManager, config: ServiceConfig) -> None:
    """Expose the user record endpoints on the provided FastAPI application."""

    router = APIRouter(prefix="/api/users", tags=["User Management"])

    def _page_size(size: Optional[int]) -> int:
        requested = config.default_page_size if size is None else size
        return min(requested, config.max_page_size)

    @router.get("", response_model=UserPageResponse)
    def list_users(
        page: int = Query(0, ge=0, le=MAX_PAGE_INDEX, description="Page number (0-based)"),
        size: Optional[int] = Query(None, ge=1, description="Page size"),
        sort_by: str = Query(DEFAULT_SORT_FIELD, alias="sortBy", description="Sort by field"),
        sort_dir: str = Query("desc", alias="sortDir", description="Sort direction"),
    ) -> UserPageResponse:
        direction = "desc" if sort_dir.strip().lower() == "desc" else "asc"
        page_size = _page_size(size)
        logger.info(
            "GET /api/users - page: %s, size: %s, sortBy: %s, sortDir: %s",
            page,
            page_size,
            sort_by,
            direction,
        )
        result = manager.list_page(page, page_size, sort_by, direction)
        logger.info("Retrieved %s users", result.total)
        return page_to_response(result)

    @router.get("/search", response_model=UserPageResponse)
    def search_users(
        keyword: str = Query(..., description="Search keyword"),
        page: int = Query(0, ge=0, le=MAX_PAGE_INDEX, description="Page number"),
        size: Optional[int] = Query(None, ge=1, description="Page size"),
    ) -> UserPageResponse:
        logger.info("GET /api/users/search - keyword: %s", keyword)
        result = manager.search(keyword, page, _page_size(size))
        logger.info("Search returned %s users", result.total)
        return page_to_response(result)

    @router.get("/active", response_model=List[UserResponse])
    def list_active_users() -> List[UserResponse]:
        users = manager.list_active()
        logger.info("Retrieved %s active users", len(users))
        return [user_to_response(user) for user in users]

    @router.get("/stats", response_model=UserStatsResponse)
    def user_stats() -> UserStatsResponse:
        active_users = manager.count_active()
        logger.info("Active users count: %s", active_users)
        return UserStatsResponse(
            active_users=active_users,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    @router.get(
        "/{user_id}",
        response_model=UserResponse,
        responses={status.HTTP_404_NOT_FOUND: {"description": "User not found"}},
    )
    def read_user(user_id: str):
        user = manager.get(user_id)
        if user is None:
            logger.warning("User not found with id: %s", user_id)
            return Response(status_code=status.HTTP_404_NOT_FOUND)
        return user_to_response(user)

    @router.post(
        "",
        response_model=UserResponse,
        responses={status.HTTP_400_BAD_REQUEST: {"description": "Username or email already exists"}},
    )
    def create_user(payload: UserCreateRequest) -> UserResponse:
        logger.info("POST /api/users - Creating user: %s", payload.username)
        try:
            user = manager.create(payload.to_new_user())
        except (UserServiceError, StoreError) as exc:
            logger.error("Error creating user: %s", exc)
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        return user_to_response(user)

    @router.put(
        "/{user_id}",
        response_model=UserResponse,
        responses={
            status.HTTP_400_BAD_REQUEST: {"description": "Email already in use"},
            status.HTTP_404_NOT_FOUND: {"description": "User not found"},
        },
    )
    def update_user(user_id: str, payload: UserUpdateRequest):
        logger.info("PUT /api/users/%s", user_id)
        try:
            user = manager.update(user_id, payload.to_changes())
        except NotFoundError as exc:
            logger.error("Error updating user: %s", exc)
            return Response(status_code=status.HTTP_404_NOT_FOUND)
        except ConflictError as exc:
            logger.error("Error updating user: %s", exc)
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        return user_to_response(user)

    @router.delete(
        "/{user_id}",
        responses={status.HTTP_404_NOT_FOUND: {"description": "User not found"}},
    )
    def delete_user(user_id: str) -> Response:
        logger.info("DELETE /api/users/%s", user_id)
        try:
            manager.delete(user_id)
        except NotFoundError as exc:
            logger.error("Error deleting user: %s", exc)
            return Response(status_code=status.HTTP_404_NOT_FOUND)
        return Response(status_code=status.HTTP_200_OK)

    app.include_router(router)


def create_app(
    *,
    store: UserStore | None = None,
    config: ServiceConfig | None = None,
    metrics: LifecycleMetrics | None = None,
) -> FastAPI:
    """Instantiate the FastAPI application for the user records service."""

    service_config = config or load_service_config()
    user_store = store or UserStore(service_config.database_path)
    user_store.initialize()

    manager = UserManager(user_store, metrics=metrics)

    app = FastAPI(
        title="User Records Service API",
        version="1.0.0",
        description="CRUD service for user records with pagination, search and usage counters.",
        license_info={"name": "MIT License", "url": "https://opensource.org/licenses/MIT"},
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(service_config.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=3600,
    )
    app.add_middleware(CorrelationIdMiddleware)

    app.state.config = service_config
    app.state.store = user_store
    app.state.manager = manager

    @app.get("/healthz")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/metrics")
    async def read_metrics() -> Dict[str, int]:
        return manager.metrics.snapshot()

    register_user_routes(app, manager, service_config)
    return app


__all__ = [
    "UserCreateRequest",
    "UserPageResponse",
    "UserResponse",
    "UserStatsResponse",
    "UserUpdateRequest",
    "create_app",
    "page_to_response",
    "register_user_routes",
    "user_to_response",
]
