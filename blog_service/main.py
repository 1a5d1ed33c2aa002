import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.sessions import SessionMiddleware

from blog_service.cache import CacheManager
from blog_service.config import settings
from blog_service.database import Database
from blog_service.errors import LoginRequired, ResultCode, TransientStoreError
from blog_service.middleware import RequestLogMiddleware
from blog_service.routers import posts, tags, users
from blog_service.schemas import Err
from blog_service.services.user_service import CodeSender, log_code_sender

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _error(status_code: int, code: ResultCode, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=Err(code=code, message=message).model_dump())


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: adopt injected handles, otherwise build them from settings
    if app.state.db is None:
        app.state.db = Database.from_url(settings.DATABASE_URL)
    if app.state.cache is None:
        app.state.cache = CacheManager(settings.REDIS_URL)
    await app.state.cache.connect()
    yield
    # Shutdown
    await app.state.cache.disconnect()
    await app.state.db.dispose()


def create_app(
    database: Database | None = None,
    cache_manager: CacheManager | None = None,
    code_sender: CodeSender | None = None,
) -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Blog Content Service",
        description="Posts, tags, likes, threaded comments and cached user identity",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.db = database
    app.state.cache = cache_manager
    app.state.code_sender = code_sender or log_code_sender

    # Middleware (last added runs first)
    app.add_middleware(SessionMiddleware, secret_key=settings.SECRET_KEY)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        # Credentials are never combined with a wildcard origin
        allow_credentials="*" not in settings.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLogMiddleware)

    # Error mapping: no internal detail crosses the interface
    @app.exception_handler(LoginRequired)
    async def login_required_handler(request: Request, exc: LoginRequired):
        return _error(401, ResultCode.UNAUTHORIZED, "login required")

    @app.exception_handler(TransientStoreError)
    async def transient_store_handler(request: Request, exc: TransientStoreError):
        return _error(503, ResultCode.SERVER_ERROR, "service temporarily unavailable")

    @app.exception_handler(SQLAlchemyError)
    async def store_error_handler(request: Request, exc: SQLAlchemyError):
        logger.exception("Store error on %s %s", request.method, request.url.path)
        return _error(500, ResultCode.SERVER_ERROR, "operation failed")

    # Routers
    app.include_router(posts.router)
    app.include_router(tags.router)
    app.include_router(users.router)

    @app.get("/health")
    async def health(request: Request):
        cache = request.app.state.cache
        return {"status": "healthy", "version": "1.0.0", "cache": cache.stats if cache else None}

    return app


app = create_app()
