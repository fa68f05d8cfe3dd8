"""
Main FastAPI application entry point
"""
import warnings

# Suppress Pydantic protected namespace warnings
warnings.filterwarnings('ignore', message='.*has conflict with protected namespace.*', category=UserWarning)

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import HTTPException as FastAPIHTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from arcana.api.routes import credits, health, metrics, predict, predictions
from arcana.core.config import get_settings
from arcana.core.database import (dispose_engine, get_session_local, init_db)
from arcana.core.errors import ApiError, ErrorCode
from arcana.core.logging_config import LoggingConfig
from arcana.core.metrics import api_errors_total, app_info
from arcana.core.middleware import LoggingContextMiddleware
from arcana.core.middleware_metrics import MetricsMiddleware
from arcana.services.card_catalog import CardCatalogService
from arcana.services.runtime import build_runtime
from arcana.utils.datetime_utils import utc_now

# Configure logging first
LoggingConfig.configure()

# Get logger for this module
logger = LoggingConfig.get_logger(__name__)

SHUTDOWN_TIMEOUT_SECONDS = 30.0


def error_body(code: str, message: str, details=None) -> dict:
    """{"error": {code, message, details?}, "timestamp"} envelope for API errors"""
    error = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return {"error": error, "timestamp": utc_now().isoformat()}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for FastAPI app"""
    # Startup
    settings = get_settings()
    logger.info(f"Starting {settings.app_name} in {settings.app_env} mode...")
    app_info.info({"version": "0.1.0", "environment": settings.app_env})

    owns_runtime = getattr(app.state, "runtime", None) is None
    if owns_runtime:
        init_db()
        session_factory = get_session_local()
        catalog_service = CardCatalogService(session_factory)
        catalog_service.ensure_default_deck()
        catalog = catalog_service.load_catalog()
        app.state.runtime = build_runtime(settings, session_factory, catalog=catalog)

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    if owns_runtime:
        await app.state.runtime.close(timeout=SHUTDOWN_TIMEOUT_SECONDS)
        app.state.runtime = None
        dispose_engine()


def create_app() -> FastAPI:
    """Build the application; the runtime is created in the lifespan unless preset on app.state"""
    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        description="Tarot reading service with an asynchronous multi-stage workflow",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.runtime = None

    # Add logging context middleware (before CORS to capture all requests)
    app.add_middleware(LoggingContextMiddleware)
    app.add_middleware(MetricsMiddleware)

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        """Render domain errors in the shared error envelope"""
        if exc.status_code >= 500:
            logger.error(
                f"API error {exc.code.value}: {exc.message}",
                extra={"code": exc.code.value, "path": request.url.path, "method": request.method},
            )
        else:
            logger.info(
                f"API error {exc.code.value}: {exc.message}",
                extra={"code": exc.code.value, "path": request.url.path},
            )
        content = error_body(exc.code.value, exc.message, exc.details)
        content.update(exc.extra)
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """Malformed JSON or parameters are reported like any other validation error"""
        details = [
            {
                "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body") or "body",
                "message": error.get("msg", "Invalid value"),
            }
            for error in exc.errors()
        ]
        api_errors_total.labels(code=ErrorCode.VALIDATION_ERROR.value).inc()
        return JSONResponse(
            status_code=400,
            content=error_body(ErrorCode.VALIDATION_ERROR.value, "Validation failed", details),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler to log all unhandled errors"""
        # Don't handle HTTPException - let FastAPI handle it
        if isinstance(exc, FastAPIHTTPException):
            raise exc

        logger.error(
            "Unhandled exception",
            exc_info=True,
            extra={
                "error": str(exc),
                "error_type": type(exc).__name__,
                "path": request.url.path,
                "method": request.method,
            }
        )
        api_errors_total.labels(code=ErrorCode.INTERNAL_ERROR.value).inc()
        return JSONResponse(
            status_code=500,
            content=error_body(ErrorCode.INTERNAL_ERROR.value, "Internal server error"),
        )

    # Include routers
    app.include_router(predict.router)
    app.include_router(predictions.router)
    app.include_router(credits.router)
    app.include_router(health.router)
    app.include_router(metrics.router)

    @app.get("/api")
    async def root():
        """Root API endpoint"""
        return {
            "name": settings.app_name,
            "version": "0.1.0",
            "status": "running",
            "environment": settings.app_env,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.app_env == "development",
    )
