"""FastAPI application factory and main entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1.router import api_router
from app.common.request_id import RequestIDMiddleware
from app.core.config import settings
from app.core.errors import (
    database_exception_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from app.core.logging import get_logger, setup_logging
from app.core.redis_client import init_redis
from app.core.security_headers import SecurityHeadersMiddleware
from app.db.base import Base, import_models
from app.db.engine import engine

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    setup_logging()
    if settings.RATE_LIMIT_BACKEND == "redis" or settings.REDIS_REQUIRED:
        init_redis()
    # Schema migrations are managed outside this service; dev gets tables created
    if settings.ENV == "dev":
        import_models()
        Base.metadata.create_all(bind=engine)
    logger.info(
        "Application started",
        extra={"env": settings.ENV, "rate_limit_backend": settings.RATE_LIMIT_BACKEND},
    )
    yield


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    import_models()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version="1.0.0",
        description="Chirisu authentication and session API",
        openapi_url="/openapi.json" if settings.ENV != "prod" else None,
        docs_url="/docs" if settings.ENV != "prod" else None,
        redoc_url="/redoc" if settings.ENV != "prod" else None,
        lifespan=lifespan,
    )

    # Add middleware (order matters - last added is outermost)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(api_router, prefix=settings.API_PREFIX)

    return app


app = create_app()
