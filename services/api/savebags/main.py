"""FastAPI application entry point.

Save Bags API - surplus food bags from verified local merchants.
"""

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from savebags.routes import api_router
from savebags.schemas.common import ErrorDetail, ErrorResponse
from savebags.services.auth_client import close_auth_client
from savebags.services.document_storage import close_document_storage
from savebags.services.errors import SaveError
from savebags.services.reconciliation import reconcile_local_cache
from savebags.settings import get_settings
from savebags.stores.local_cache import get_local_cache
from savebags.stores.postgres import init_db, close_db, ping_db
from savebags.stores.redis import init_redis, close_redis
from savebags.stores.remote import get_remote_store

logger = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Connect stores and reconcile the local overlay; close clients on shutdown.

    Postgres or Redis being down does not stop startup: requests then surface
    RemoteUnavailable or CacheUnavailable.
    """
    settings = get_settings()
    db_ok = redis_ok = False

    # Initialize database (the app still serves local data without it)
    try:
        await init_db()
        await ping_db()
        db_ok = True
        logger.info("Postgres connected")
    except Exception:
        logger.exception("Postgres init failed")

    # Initialize Redis
    try:
        await init_redis()
        redis_ok = True
    except Exception:
        logger.exception("Redis init failed")

    if db_ok and redis_ok and settings.reconcile_on_startup:
        try:
            await reconcile_local_cache(remote=get_remote_store(), cache=get_local_cache())
        except Exception:
            logger.exception("[reconcile] startup reconciliation failed")

    yield

    # Shutdown
    await close_auth_client()
    await close_document_storage()
    await close_redis()
    await close_db()


def _error_response(status_code: int, code: str, message: str, detail: dict | None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


def create_app() -> FastAPI:
    """Build the FastAPI app with the /v1 routers mounted."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Surplus-bag marketplace API",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(SaveError)
    async def save_error_handler(request: Request, exc: SaveError) -> JSONResponse:
        """Domain errors keep their code; retryable ones say so in detail."""
        detail = dict(exc.detail or {})
        if getattr(exc, "retryable", False):
            detail["retryable"] = True
            logger.warning(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
        return _error_response(exc.status_code, exc.code, exc.message, detail or None)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Anything unexpected becomes a 500 in the same error envelope."""
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return _error_response(
            500,
            "INTERNAL_ERROR",
            str(exc) if settings.debug else "Internal server error",
            None,
        )

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, bool]:
        """Health check endpoint."""
        return {"ok": True}

    app.include_router(api_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "savebags.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
