from dataclasses import dataclass

from fastapi import Depends, Query, Request

from blog_service.cache import CacheManager, UserCache
from blog_service.config import settings
from blog_service.errors import LoginRequired
from blog_service.services.user_service import CodeSender


class PaginationParams:
    """
    Reusable FastAPI dependency that parses pagination query parameters.

    Attributes
    ----------
    page:
        1-based page number (minimum 1).
    page_size:
        Number of items per page, clamped to ``settings.MAX_PAGE_SIZE``
        regardless of the value supplied by the caller.
    """

    def __init__(
        self,
        page: int = Query(1, ge=1, description="Page number (1-based)."),
        page_size: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            description="Number of items returned per page.",
        ),
    ) -> None:
        self.page = page
        self.page_size = min(page_size, settings.MAX_PAGE_SIZE)


# ---------------------------------------------------------------------------
# Shared handles (created in the lifespan, stored on app.state)
# ---------------------------------------------------------------------------

def get_cache(request: Request) -> CacheManager:
    return request.app.state.cache


def get_user_cache(cache: CacheManager = Depends(get_cache)) -> UserCache:
    return UserCache(cache, ttl=settings.USER_CACHE_TTL)


def get_code_sender(request: Request) -> CodeSender:
    return request.app.state.code_sender


# ---------------------------------------------------------------------------
# Session identity
# ---------------------------------------------------------------------------

@dataclass
class SessionUser:
    id: int
    email: str
    nickname: str


def get_viewer_id(request: Request) -> int | None:
    """The logged-in user's id, or None for anonymous readers."""
    return request.session.get("user_id")


def require_login(request: Request) -> SessionUser:
    session = request.session
    if not session.get("user_id"):
        raise LoginRequired()
    return SessionUser(
        id=session["user_id"],
        email=session.get("email", ""),
        nickname=session.get("nickname", ""),
    )
