import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from whmcs_assistant.api.v1.endpoints import functions, health, testing, webhook
from whmcs_assistant.config.settings import Settings, get_settings
from whmcs_assistant.core.container import Container
from whmcs_assistant.core.exceptions import BaseAppException
from whmcs_assistant.core.logging import setup_logging

logger = structlog.get_logger(__name__)


def new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:16]}"


def create_app(container: Optional[Container] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the application.

    An injected ``container`` is used as-is and left open on shutdown;
    otherwise one is built from settings during startup and closed after.
    """
    settings = container.settings if container else (settings or get_settings())
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = container is None
        if owned:
            if settings.is_production:
                settings.validate_required()
            elif settings.missing_required():
                logger.warning("configuration_incomplete", missing=settings.missing_required())
            app.state.container = await Container.create(settings)
        else:
            app.state.container = container
        logger.info(
            "application_started",
            environment=settings.ENVIRONMENT,
            cache_backend=app.state.container.cache.backend,
            functions=app.state.container.registry.names(),
        )
        yield
        if owned:
            await app.state.container.close()
        logger.info("application_stopped")

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="WhatsApp assistant for WHMCS billing and support",
        version=settings.VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in settings.CORS_ORIGIN.split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = new_request_id()
        request.state.request_id = request_id
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start = time.perf_counter()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return response

    @app.exception_handler(BaseAppException)
    async def app_exception_handler(request: Request, exc: BaseAppException):
        request_id = getattr(request.state, "request_id", None)
        logger.error("application_error", error=exc.message, details=exc.details, path=request.url.path)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message, "details": exc.details, "requestId": request_id},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        request_id = getattr(request.state, "request_id", None)
        logger.error("unhandled_error", error=str(exc), path=request.url.path, method=request.method, exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Internal server error", "requestId": request_id})

    app.include_router(webhook.router, tags=["webhook"])
    app.include_router(health.router, tags=["health"])
    app.include_router(functions.router, tags=["functions"])
    app.include_router(testing.router, tags=["testing"])

    @app.get("/")
    async def root():
        return {
            "service": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "status": "running",
            "environment": settings.ENVIRONMENT,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "endpoints": {
                "webhook": "POST /webhook",
                "webhook_status": "GET /webhook/status",
                "health": "GET /health",
                "ready": "GET /ready",
                "functions": "GET /functions",
                "test_function": "POST /test-function/{name}",
                "test_openai": "POST /test/openai",
                "test_whmcs": "POST /test/whmcs",
            },
        }

    return app


app = create_app()

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "whmcs_assistant.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=not settings.is_production,
    )
