"""
FastAPI application for the practice booking engine

Public booking pages, practitioner dashboard and the reminder trigger.
Periodic work (reminders, calendar sync, verification sweep) runs in the
Celery worker, see app/worker.py.
"""
import logging
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from app.api.reminders import reminders_router
from app.api.v1.router import api_v1_router
from app.config.settings import get_settings
from app.core.exceptions import BookingEngineError, ConflictError
from app.core.middleware import correlation_id_middleware, request_logging_middleware
from app.core.monitoring import health_router
from app.utils.my_logging import setup_logging

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    setup_logging()
    logger.info(f"{settings.APP_NAME} API starting up")
    yield
    logger.info(f"{settings.APP_NAME} API shutting down")


async def booking_engine_error_handler(request: Request, exc: BookingEngineError):
    """Map service errors to JSON responses"""
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    logger.info(f"[{correlation_id}] {exc.__class__.__name__} on {request.url.path}: {exc.message}")

    content = {"detail": exc.message}
    if isinstance(exc, ConflictError):
        content["hint"] = exc.hint
    return JSONResponse(status_code=exc.status_code, content=content)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""

    app = FastAPI(
        title=settings.APP_NAME,
        description="Availability, booking and reminder engine for practitioners",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "PUT"],
        allow_headers=["*"],
    )

    # Registered in reverse: correlation id is set before request logging runs
    app.middleware("http")(request_logging_middleware)
    app.middleware("http")(correlation_id_middleware)

    app.add_exception_handler(BookingEngineError, booking_engine_error_handler)

    app.include_router(health_router, prefix="/health", tags=["monitoring"])
    app.include_router(api_v1_router, prefix="/api/v1")
    app.include_router(reminders_router)

    @app.get("/")
    async def root():
        return {
            "service": settings.APP_NAME,
            "version": "0.1.0",
            "status": "running",
            "endpoints": {
                "api": "/api/v1/",
                "health": "/health",
                "docs": "/docs" if settings.DEBUG else "disabled"
            }
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info"
    )
