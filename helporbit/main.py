"""
HelpOrbit API - Main Application
"""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from helporbit.core.config import settings
from helporbit.core.exceptions import HelpOrbitError, UnexpectedError
from helporbit.core.logging import setup_logging
from helporbit.api.v1.api import api_router
from helporbit.db.session import engine, get_db
from helporbit.models import Base
from helporbit.schemas.response import ErrorResponse


setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.PROJECT_NAME} API ({settings.ENVIRONMENT})")

    # Outside development the schema is owned by Alembic
    if settings.ENVIRONMENT == "development":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Development database tables ensured")

    yield

    await engine.dispose()
    logger.info("HelpOrbit API stopped, database connections closed")


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Multi-tenant support ticketing API",
    version="1.0.0",
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url=f"{settings.API_V1_STR}/docs",
    redoc_url=f"{settings.API_V1_STR}/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)


# ==================== ERROR HANDLERS ====================

@app.exception_handler(HelpOrbitError)
async def helporbit_error_handler(request: Request, exc: HelpOrbitError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Field-keyed messages, e.g. {"password": ["..."]}"""
    errors = {}
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(location) or "request"
        errors.setdefault(field, []).append(error.get("msg", "Invalid value"))
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(error="Invalid input data", code="validation-error", errors=errors).model_dump(),
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    error = UnexpectedError()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """Liveness plus a database round trip."""
    await db.execute(text("SELECT 1"))
    return {
        "status": "healthy",
        "service": "helporbit-api",
        "database": "connected",
        "version": "1.0.0",
    }


@app.get("/")
async def root():
    return {
        "message": "HelpOrbit API",
        "docs": f"{settings.API_V1_STR}/docs",
        "health": "/health",
    }
