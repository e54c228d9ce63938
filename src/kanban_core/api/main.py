"""Kanban Core FastAPI application."""
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..config import Settings, get_settings
from ..database import create_db_engine, create_session_factory, is_retryable_error
from .routers import issues

logger = logging.getLogger("kanban-core")

API_VERSION = "1.0.0"


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _format_validation_errors(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "header"))
        message = error.get("msg", "Invalid value")
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages) or "Invalid request"


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        message = _format_validation_errors(exc)
        logger.info(f"Rejected {request.method} {request.url.path}: {message}")
        return _error_response(400, message)

    @app.exception_handler(DBAPIError)
    async def database_exception_handler(request: Request, exc: DBAPIError):
        if is_retryable_error(exc):
            logger.warning(f"Database busy during {request.method} {request.url.path}: {exc.orig}")
            return _error_response(409, "The board is busy, please retry")
        logger.error(f"Database error during {request.method} {request.url.path}: {exc.orig}")
        return _error_response(500, "Internal server error")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error during {request.method} {request.url.path}")
        return _error_response(500, "Internal server error")


def create_app(
    session_factory: Optional[sessionmaker] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        session_factory: Session factory used by every request (built from
            settings.database_url when omitted)
        settings: Settings instance (defaults to get_settings())

    Returns:
        FastAPI: configured application
    """
    settings = settings or get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if session_factory is None:
        session_factory = create_session_factory(create_db_engine(settings=settings))

    app = FastAPI(
        title="Kanban Core API",
        description="Multi-tenant issue board with ordered columns and change history",
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.session_factory = session_factory
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app)

    app.include_router(issues.router, prefix="/issues")

    @app.get("/")
    def root():
        """Root endpoint with server info."""
        return {
            "name": "Kanban Core API",
            "version": API_VERSION,
            "docs": "/docs",
        }

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    logger.info(f"Starting {settings.app_name} API")
    return app
