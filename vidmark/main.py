import logging
from collections import defaultdict, deque
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable, Deque

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from vidmark.core.config import Settings, get_settings
from vidmark.core.container import Container, build_container
from vidmark.core.errors import VidmarkError
from vidmark.core.logging import configure_logging
from vidmark.db.base import Base
from vidmark.routers import convert, jobs, uploads, watermarks

logger = logging.getLogger(__name__)


class RateLimiter:
    def __init__(self, limit_per_minute: int, clock: Callable[[], float] | None = None) -> None:
        self.limit_per_minute = limit_per_minute
        self._clock = clock or (lambda: datetime.now(timezone.utc).timestamp())
        self._hits: dict[str, Deque[float]] = defaultdict(deque)
        self._last_prune = self._clock()

    def hit(self, key: str) -> bool:
        now = self._clock()
        window_start = now - 60
        if now - self._last_prune >= 60:
            self._prune(window_start)
        bucket = self._hits[key]
        while bucket and bucket[0] < window_start:
            bucket.popleft()
        if len(bucket) >= self.limit_per_minute:
            return False
        bucket.append(now)
        return True

    def tracked_clients(self) -> int:
        return len(self._hits)

    def _prune(self, window_start: float) -> None:
        idle = [key for key, bucket in self._hits.items() if not bucket or bucket[-1] < window_start]
        for key in idle:
            del self._hits[key]
        self._last_prune = window_start + 60


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def create_app(settings: Settings | None = None, container: Container | None = None) -> FastAPI:
    if container is not None:
        settings = container.settings
    settings = settings or get_settings()
    container = container or build_container(settings)
    configure_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.auto_create_tables:
            Base.metadata.create_all(bind=container.engine)
        yield
        container.dispose()

    app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    limiter = RateLimiter(settings.rate_limit_per_minute)

    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next):
        key = request.client.host if request.client else "unknown"
        if not limiter.hit(key):
            return error_response(status.HTTP_429_TOO_MANY_REQUESTS, "Rate limit exceeded")
        return await call_next(request)

    @app.exception_handler(VidmarkError)
    async def vidmark_error_handler(request: Request, exc: VidmarkError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("request_failed", extra={"path": request.url.path, "error": exc.message})
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg', 'invalid input')}" if location else "Invalid input"
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": message, "details": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("request_crashed", extra={"path": request.url.path})
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    app.include_router(uploads.router)
    app.include_router(jobs.router)
    app.include_router(convert.router)
    app.include_router(watermarks.router)

    @app.get("/health")
    def health() -> dict:
        return {"success": True, "status": "ok"}

    return app
