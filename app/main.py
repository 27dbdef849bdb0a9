"""FastAPI application entry point."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1.endpoints import health
from app.api.v1.router import api_router
from app.core.config import settings
from app.core.database import close_database, init_database
from app.core.exceptions import AppError, UnknownStepError
from app.utils.logging import get_logger
from app.utils.responses import create_error_detail

LOGGER = get_logger(__name__, level=settings.log_level)


class RootResponse(BaseModel):
    """Root endpoint response payload."""

    message: str = Field(..., description="Service status message")
    version: str = Field(..., description="Running application version")
    docs: str = Field(..., description="Path to the interactive API docs")
    health: str = Field(..., description="Path to the health check endpoint")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    LOGGER.info(
        "Starting application",
        extra={
            "app_name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
        },
    )

    try:
        await asyncio.wait_for(
            init_database(auto_migrate=settings.db.auto_migrate, drop_existing=False),
            timeout=settings.db_init_timeout,
        )
        LOGGER.info("Database initialized successfully")
    except asyncio.TimeoutError:
        LOGGER.error(f"Database initialization timed out after {settings.db_init_timeout}s")
    except Exception as e:
        LOGGER.error(f"Database initialization failed: {e}", exc_info=True)

    yield

    LOGGER.info("Shutting down application")
    try:
        await close_database()
    except Exception as e:
        LOGGER.error("Error closing database", exc_info=True, extra={"error": str(e)})


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Staged draft and approval workflow for audience research",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


@app.middleware("http")
async def add_correlation_id(request: Request, call_next):
    correlation_id = request.headers.get("X-Correlation-ID", str(uuid4()))
    request.state.correlation_id = correlation_id
    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID"],
)


def _error_response(request: Request, status_code: int, title: str, detail: str) -> JSONResponse:
    error = create_error_detail(title=title, status=status_code, detail=detail, request=request)
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error.model_dump(mode="json")},
        headers=headers,
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        LOGGER.error(
            f"{exc.__class__.__name__} on {request.url.path}: {exc.message}",
            exc_info=exc.original_error or exc,
        )
    else:
        LOGGER.warning(f"{exc.__class__.__name__} on {request.url.path}: {exc.message}")

    # Provider and internal failures expose only their stable title
    detail = exc.message if exc.status_code < 500 else exc.title
    return _error_response(request, exc.status_code, exc.title, detail)


@app.exception_handler(UnknownStepError)
async def unknown_step_handler(request: Request, exc: UnknownStepError) -> JSONResponse:
    LOGGER.error(f"Unknown workflow step on {request.url.path}: {exc}", exc_info=exc)
    return _error_response(request, 500, "Internal Server Error", "Internal Server Error")


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    return _error_response(request, 400, "Validation Failed", problems or "Invalid request")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(request, exc.status_code, str(exc.detail), str(exc.detail))


app.include_router(api_router, prefix=settings.api_v1_prefix)
app.include_router(health.router, prefix="/health", tags=["Health"])


@app.get(
    "/",
    response_model=RootResponse,
    tags=["Root"],
    summary="Root endpoint",
    description="Get basic information about the API",
    operation_id="get_public_root_metadata",
)
async def root() -> RootResponse:
    return RootResponse(
        message="Server is running",
        version=settings.app_version,
        docs="/docs",
        health="/health",
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
