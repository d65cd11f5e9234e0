"""
Asset marketplace HTTP application.

Every request gets an ID and a resolved caller before routing. Both are
bound into the structlog context, so workflow log events carry
``request_id`` and ``user_id`` without threading them through each call.
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from marketplace import __version__
from marketplace.config import get_settings
from marketplace.database.connection import close_db, init_db
from marketplace.monitoring.logging import setup_logging

from .dependencies import get_session_provider
from .routes import (
    admin_router,
    catalog_router,
    checkout_router,
    dashboard_router,
    documents_router,
    monitoring_router,
    upload_router,
)

setup_logging()
logger = structlog.get_logger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
    logger.info(
        "marketplace_starting",
        version=__version__,
        paypal_sandbox=settings.is_sandbox,
    )
    await init_db()

    yield

    await close_db()
    logger.info("marketplace_stopped")


app = FastAPI(
    title="Asset Marketplace",
    description=(
        "Public gallery, PayPal checkout, purchase ledger, signed direct "
        "uploads and admin approval for user-submitted digital assets."
    ),
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins_list(),
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Authorization", "Content-Type"],
)


def bind_request_context(request: Request) -> Dict[str, Any]:
    """
    Resolve the caller and bind request-scoped logging fields.

    The session is stored on ``request.state`` for get_request_context,
    so the token is verified once per request.
    """
    session = get_session_provider().get_session(request.headers, request.cookies)
    request.state.session = session
    request.state.request_id = str(uuid.uuid4())

    fields = {
        "request_id": request.state.request_id,
        "user_id": session.user_id if session else None,
        "method": request.method,
        "path": request.url.path,
    }
    structlog.contextvars.bind_contextvars(**fields)
    return fields


@app.middleware("http")
async def request_context_middleware(request: Request, call_next: Any) -> Response:
    fields = bind_request_context(request)
    start_time = time.time()

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            "request_failed",
            error=str(e),
            duration_seconds=time.time() - start_time,
        )
        raise
    finally:
        structlog.contextvars.clear_contextvars()

    response.headers["X-Request-ID"] = fields["request_id"]
    logger.info(
        "request_completed",
        **fields,
        status_code=response.status_code,
        duration_seconds=time.time() - start_time,
    )
    return response


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": "Internal server error"},
    )


for router in (
    catalog_router,
    checkout_router,
    dashboard_router,
    documents_router,
    upload_router,
    admin_router,
    monitoring_router,
):
    app.include_router(router)


@app.get("/", tags=["root"])
async def root() -> Dict[str, Any]:
    return {
        "service": "asset-marketplace",
        "version": __version__,
        "environment": settings.app_env,
        "sandbox": settings.is_sandbox,
        "gallery": "/gallery",
        "health": "/health",
    }


def run() -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "marketplace.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.api_workers,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
