"""
Main FastAPI Application.
Entry point for the Stockroom inventory and events API.
"""

from fastapi import FastAPI, Request, status # type: ignore
from fastapi.middleware.cors import CORSMiddleware # type: ignore
from fastapi.responses import JSONResponse # type: ignore
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import time

import psutil # type: ignore

from stockroom.config import settings
from stockroom.core.database import get_db_manager
from stockroom.core.exceptions import AppException
from stockroom.core.logging_config import (
    setup_logging,
    get_logger,
    log_operation_start,
    log_operation_end,
    log_api_request
)

from stockroom.api.routes import auth_routes, admin_routes, inventory_routes
from stockroom.api.routes import quote_routes, event_routes, crew_routes


setup_logging(
    log_level="DEBUG" if settings.DEBUG else "INFO",
    log_dir=settings.LOG_DIR,
    enable_file_logging=settings.ENABLE_FILE_LOGGING
)

logger = get_logger(__name__)

SLOW_REQUEST_MS = 1000


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    logger.info("=" * 80)
    logger.info(f"Starting {settings.APP_NAME}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug Mode: {settings.DEBUG}")
    logger.info(f"Version: {settings.APP_VERSION}")
    logger.info("=" * 80)

    logger.perf.log_performance_snapshot("Application Startup")

    try:
        log_operation_start(logger, "database_initialization")
        db_manager = get_db_manager()
        logger.info(f"Database connection pool initialized: {db_manager.get_pool_status()}")
        log_operation_end(logger, "database_initialization", success=True)
    except Exception as e:
        logger.critical(f"Failed to initialize database: {str(e)}", exc_info=True)
        log_operation_end(logger, "database_initialization", success=False, error=str(e))
        raise

    yield

    logger.info("=" * 80)
    logger.info(f"Shutting down {settings.APP_NAME}")
    logger.perf.log_performance_snapshot("Application Shutdown")

    try:
        log_operation_start(logger, "database_shutdown")
        get_db_manager().close_pool()
        logger.info("Database connections closed successfully")
        log_operation_end(logger, "database_shutdown", success=True)
    except Exception as e:
        logger.error(f"Error during shutdown: {str(e)}", exc_info=True)
        log_operation_end(logger, "database_shutdown", success=False, error=str(e))

    logger.info("Shutdown complete")
    logger.info("=" * 80)


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Multi-tenant inventory, quoting and event management",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

logger.info("CORS middleware configured")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests with timing information."""
    start_time = time.time()
    request.state.timestamp = datetime.now(timezone.utc).isoformat()

    logger.debug(
        f"Incoming request: {request.method} {request.url.path}",
        extra={
            "method": request.method,
            "path": request.url.path,
            "client_host": request.client.host if request.client else "unknown",
            "query_params": dict(request.query_params)
        }
    )

    try:
        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        log_api_request(
            logger,
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=duration_ms
        )

        if duration_ms > SLOW_REQUEST_MS:
            logger.warning(
                f"Slow request detected: {request.method} {request.url.path} - {duration_ms:.2f}ms",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": duration_ms,
                    "slow_request": True
                }
            )
            logger.perf.log_performance_snapshot(f"Slow Request: {request.url.path}")

        response.headers["X-Request-ID"] = request.state.timestamp
        response.headers["X-Process-Time"] = str(duration_ms)
        return response

    except Exception as e:
        duration_ms = (time.time() - start_time) * 1000
        logger.error(
            f"Request failed: {request.method} {request.url.path} - {str(e)}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "duration_ms": duration_ms,
                "error": str(e)
            },
            exc_info=True
        )
        raise


def _error_metadata(request: Request, status_code: int):
    return {
        "timestamp": getattr(request.state, "timestamp", None),
        "status_code": status_code
    }


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    """Handle custom application exceptions."""
    logger.warning(
        f"Application exception: {exc.error_code} - {exc.message}",
        extra={
            "error_code": exc.error_code,
            "status_code": exc.status_code,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": {
                "code": exc.error_code,
                "message": exc.message,
                "details": exc.details
            },
            "metadata": _error_metadata(request, exc.status_code)
        }
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(
        f"Unhandled exception: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "exception_type": type(exc).__name__
        },
        exc_info=True
    )
    logger.perf.log_performance_snapshot("Unhandled Exception")

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred" if not settings.DEBUG else str(exc),
                "details": {}
            },
            "metadata": _error_metadata(request, 500)
        }
    )


logger.info("Registering API routes...")
app.include_router(auth_routes.router, prefix="/api/v1")
logger.debug("Registered auth routes")
app.include_router(admin_routes.router, prefix="/api/v1")
logger.debug("Registered admin routes")
app.include_router(inventory_routes.router, prefix="/api/v1")
logger.debug("Registered inventory routes")
app.include_router(quote_routes.router, prefix="/api/v1")
logger.debug("Registered quote routes")
app.include_router(event_routes.router, prefix="/api/v1")
logger.debug("Registered event routes")
app.include_router(crew_routes.router, prefix="/api/v1")
logger.debug("Registered crew routes")
logger.info("All API routes registered successfully")


@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint with system metrics."""
    logger.debug("Health check requested")

    try:
        db_manager = get_db_manager()
        pool_status = db_manager.get_pool_status()
        db_healthy = pool_status["initialized"] and not pool_status["closed"]

        process = psutil.Process()
        memory_info = process.memory_info()
        cpu_percent = process.cpu_percent(interval=0.1)

        health_data = {
            "status": "healthy" if db_healthy else "degraded",
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "database": pool_status,
            "performance": {
                "memory_mb": round(memory_info.rss / 1024 / 1024, 2),
                "cpu_percent": round(cpu_percent, 2)
            }
        }

        logger.info(f"Health check: {health_data['status']}")
        return health_data

    except Exception as e:
        logger.error(f"Health check failed: {str(e)}", exc_info=True)
        return {
            "status": "unhealthy",
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "error": str(e) if settings.DEBUG else "Health check failed"
        }


@app.get("/", tags=["System"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "docs": "/api/docs",
        "health": "/health",
        "api_prefix": "/api/v1"
    }


if __name__ == "__main__":
    import uvicorn # type: ignore

    logger.info(f"Starting server on {settings.HOST}:{settings.PORT}")

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_config=None,
        access_log=False
    )
