"""
Main FastAPI application for EventHub.
Handles application startup, middleware, and routing.
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from eventhub.core.config import config
from eventhub.core.exceptions import AuthError, EventHubError
from eventhub.api.dependencies import db_connection, jwt_service
from eventhub.api.v1.router import router as api_router
from eventhub.services.blob_store import LocalBlobStore, UPLOADS_PATH
from eventhub.services.notification_hub import NotificationHub
from eventhub.services.push_backplane import RedisPushBackplane

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info("Starting EventHub...")

    try:
        # Initialize database
        db_connection.initialize(await config.get_database_url())
        db_connection.create_tables()

        await jwt_service.initialize()
        logger.info("JWT service initialized")

        # One hub per process
        push_config = await config.get_push_config()
        hub = NotificationHub(queue_size=push_config["queue_size"])
        app.state.hub = hub
        app.state.backplane = None

        upload_config = await config.get_upload_config()
        blob_store = LocalBlobStore(
            upload_config["upload_dir"],
            upload_config["public_base_url"],
            upload_config["max_upload_bytes"]
        )
        blob_store.ensure_directory()
        app.state.blob_store = blob_store
        if not any(getattr(route, "name", None) == "uploads" for route in app.routes):
            app.mount(UPLOADS_PATH, StaticFiles(directory=str(blob_store.upload_dir)), name="uploads")

        app.state.default_image_url = await config.get_default_image_url()

        # Cross-process fan-out only when Redis is configured
        redis_url = await config.get_redis_url()
        if redis_url:
            backplane = await RedisPushBackplane.connect(redis_url, hub)
            await backplane.start()
            hub.attach_backplane(backplane)
            app.state.backplane = backplane
            logger.info("Push backplane started")
        else:
            logger.info("No Redis configured, push delivery is process-local")

        logger.info("EventHub started successfully")

    except Exception as e:
        logger.error(f"Failed to start EventHub: {e}")
        raise

    yield

    # Shutdown
    logger.info("Shutting down EventHub...")

    try:
        if app.state.backplane is not None:
            app.state.hub.detach_backplane()
            await app.state.backplane.stop()

        await app.state.hub.close_all()

        db_connection.close()

        logger.info("EventHub shut down successfully")

    except Exception as e:
        logger.error(f"Error during shutdown: {e}")


def _error_body(error_code: str, error_message, **extra) -> dict:
    body = {
        "error_code": error_code,
        "error_message": error_message,
        "timestamp": datetime.now().isoformat()
    }
    body.update(extra)
    return body


def create_app(cors_origins=None) -> FastAPI:
    """Build the EventHub application."""
    app = FastAPI(
        title="EventHub",
        description="Event management with real-time updates",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or config.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request timing middleware
    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        """Add request processing time to response headers."""
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        return response

    @app.exception_handler(EventHubError)
    async def eventhub_exception_handler(request: Request, exc: EventHubError):
        """Render domain errors with their stable code."""
        logger.info(f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}")

        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None
        content = exc.to_dict()
        content["timestamp"] = datetime.now().isoformat()
        return JSONResponse(
            status_code=exc.status_code,
            content=content,
            headers=headers
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Render request validation failures as VALIDATION_ERROR."""
        errors = [
            {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=422,
            content=_error_body("VALIDATION_ERROR", "Invalid request", details={"errors": errors})
        )

    # HTTP exception handler
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """HTTP exception handler for FastAPI HTTP exceptions."""
        logger.warning(f"HTTP exception: {exc.status_code} - {exc.detail}")

        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body("HTTP_ERROR", exc.detail, status_code=exc.status_code)
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler for unhandled errors."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)

        return JSONResponse(
            status_code=500,
            content=_error_body("INTERNAL_SERVER_ERROR", "An internal server error occurred")
        )

    # Include API router
    app.include_router(api_router)

    # Root endpoint
    @app.get("/")
    async def root():
        """Root endpoint with service information."""
        return {
            "service": "EventHub",
            "version": "1.0.0",
            "status": "running",
            "description": "Event management with real-time updates",
            "endpoints": {
                "api": "/v1",
                "events": "/v1/events/",
                "push": "/v1/ws",
                "health": "/health",
                "docs": "/docs",
                "redoc": "/redoc"
            }
        }

    # Health check endpoint (simple)
    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        database_ok = db_connection.health_check()
        hub = getattr(request.app.state, "hub", None)
        return JSONResponse(
            status_code=200 if database_ok else 503,
            content={
                "status": "healthy" if database_ok else "unhealthy",
                "service": "eventhub",
                "database": database_ok,
                "push": hub.stats() if hub else None
            }
        )

    return app


app = create_app()


def run():
    """Serve the application with uvicorn, configured from HOST, PORT, RELOAD and LOG_LEVEL."""
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "5000"))
    logger.info(f"Starting EventHub on {host}:{port}")

    uvicorn.run(
        "eventhub.main:app",
        host=host,
        port=port,
        reload=os.getenv("RELOAD", "false").lower() == "true",
        log_level=os.getenv("LOG_LEVEL", "info"),
        access_log=True
    )


if __name__ == "__main__":
    run()
