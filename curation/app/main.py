# curation/app/main.py
"""
FastAPI Application
Activity feeds, notifications and collection sharing over HTTP
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from curation import __version__
from curation.app.config import Config, get_config, setup_logging, validate_config
from curation.app.database import check_connection, init_db
from curation.infrastructure.database import db_manager
from curation.services import ServiceError, error_to_http_status

logger = logging.getLogger(__name__)

APP_TITLE = "Video Curation Activity API"


# ============================================================================
# Lifespan
# ============================================================================


def _check_config(config: Config) -> None:
    report = validate_config(config)
    for warning in report["warnings"]:
        logger.warning(f"⚠️  {warning}")
    if not report["valid"]:
        for error in report["errors"]:
            logger.error(f"❌ {error}")
        raise RuntimeError("Invalid configuration: " + "; ".join(report["errors"]))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    config = get_config()
    setup_logging(config)
    logger.info(f"🚀 Starting {APP_TITLE} v{__version__}")

    _check_config(config)
    await init_db()

    logger.info(
        f"✅ Ready on {config.api.host}:{config.api.port} "
        f"(env={config.environment}, "
        f"window={config.activity.aggregation_window_hours}h, "
        f"feeds at {config.api.prefix}/activity-feed)"
    )

    yield

    await db_manager.close()
    logger.info("🛑 Shutdown complete")


# ============================================================================
# Error Responses
# ============================================================================


def jsonable_errors(exc: RequestValidationError) -> List[Dict[str, Any]]:
    """Validation errors without non-serializable context objects"""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


async def on_service_error(request: Request, exc: ServiceError) -> JSONResponse:
    status_code = error_to_http_status(exc)
    logger.error(f"❌ {exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.to_dict(), "status_code": status_code},
    )


async def on_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.warning(f"HTTP {exc.status_code} on {request.url.path}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail, "status_code": exc.status_code, "path": request.url.path},
    )


async def on_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = jsonable_errors(exc)
    logger.warning(f"Rejected request to {request.url.path}: {details}")
    return JSONResponse(status_code=422, content={"error": "Validation Error", "details": details})


async def on_unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"💥 Unhandled error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal Server Error", "path": request.url.path},
    )


# ============================================================================
# System Endpoints
# ============================================================================

system_router = APIRouter(tags=["System"])


@system_router.get("/")
async def root():
    return {
        "message": APP_TITLE,
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


@system_router.get("/health")
async def health():
    """Liveness plus a database round-trip"""
    connected = await check_connection()
    return {
        "status": "healthy" if connected else "degraded",
        "version": __version__,
        "database": "connected" if connected else "unavailable",
    }


@system_router.get("/system/info")
async def system_info():
    return {"config": get_config().get_summary()}


# ============================================================================
# Factory
# ============================================================================


def create_app() -> FastAPI:
    """Build the application with middleware, error handlers and routers"""
    from curation.api.routers import activity_router, notification_router, share_router

    config = get_config()
    app = FastAPI(
        title=APP_TITLE,
        description="Activity feeds, notifications and collection sharing for curated video collections",
        version=__version__,
        lifespan=lifespan,
        debug=config.api.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ServiceError, on_service_error)
    app.add_exception_handler(StarletteHTTPException, on_http_error)
    app.add_exception_handler(RequestValidationError, on_validation_error)
    app.add_exception_handler(Exception, on_unhandled_error)

    app.include_router(system_router)
    for router in (activity_router, notification_router, share_router):
        app.include_router(router, prefix=config.api.prefix)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_config()
    uvicorn.run(
        "curation.app.main:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=settings.api.debug,
        log_level=settings.logging.level.lower(),
    )
