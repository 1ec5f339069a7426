"""
Main FastAPI application.

Entry point for the Memory Bridge API with proper initialization,
middleware, error handling, and logging configuration.
"""

import logging
import sys
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from memory_bridge.api.endpoints import health, memory, stream
from memory_bridge.core.config import Settings, get_settings
from memory_bridge.core.database import create_engine_from_settings
from memory_bridge.core.exceptions import MemoryBridgeError, MemoryNotFound, StorageError
from memory_bridge.core.rate_limiter import RateLimiter
from memory_bridge.memory.deduplicator import MemoryDeduplicator
from memory_bridge.memory.embedder import EmbeddingService
from memory_bridge.memory.retriever import MemoryRetriever
from memory_bridge.memory.summarizer import MemorySummarizer
from memory_bridge.services.change_stream import ChangeStream
from memory_bridge.services.memory_service import MemoryService
from memory_bridge.services.store import MemoryStore

logger = logging.getLogger(__name__)

MAX_REQUEST_SIZE = 1024 * 1024  # 1MB


def configure_logging(settings: Settings) -> None:
    """Configure root logging once for the process."""
    handlers = [logging.StreamHandler(sys.stdout)]
    if settings.log_file:
        handlers.append(logging.FileHandler(settings.log_file))

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def build_components(app: FastAPI, settings: Settings) -> None:
    """
    Construct the store and its collaborators once and attach them to app.state.

    Args:
        app: FastAPI application instance
        settings: Application settings
    """
    store = MemoryStore(create_engine_from_settings(settings), timezone_name=settings.timezone)

    # Separate limiters so stream summaries never queue ahead of ingest embeddings
    embedding_service = EmbeddingService(
        settings,
        rate_limiter=RateLimiter(max_requests_per_minute=settings.gemini_rate_limit_per_minute)
    )
    summarizer = None
    if settings.summary_enabled:
        summarizer = MemorySummarizer(
            settings,
            rate_limiter=RateLimiter(max_requests_per_minute=settings.gemini_summary_rate_limit_per_minute)
        )

    deduplicator = MemoryDeduplicator(store, similarity_threshold=settings.semantic_similarity_threshold)
    retriever = MemoryRetriever(store)

    app.state.settings = settings
    app.state.store = store
    app.state.embedding_service = embedding_service
    app.state.summarizer = summarizer
    app.state.retriever = retriever
    app.state.memory_service = MemoryService(
        store,
        deduplicator,
        embedding_service=embedding_service,
        duplicate_policy=settings.duplicate_policy,
        enable_semantic_dedup=settings.enable_semantic_dedup,
        max_text_length=settings.max_text_length
    )
    app.state.change_stream = ChangeStream(
        retriever,
        summarizer=summarizer,
        interval_seconds=settings.stream_interval_seconds,
        summary_item_count=settings.summary_item_count
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Creates the schema on startup and closes database connections on
    shutdown.

    Args:
        app: FastAPI application instance
    """
    settings: Settings = app.state.settings
    logger.info("Starting Memory Bridge API")

    try:
        await app.state.store.init_schema()
        logger.info(
            f"Memory Bridge API {settings.api_version} started "
            f"(duplicate_policy={settings.duplicate_policy.value}, "
            f"embeddings={'on' if app.state.embedding_service.available else 'off'}, "
            f"summaries={'on' if app.state.summarizer else 'off'})"
        )
    except Exception as e:
        logger.error(f"Failed to start application: {e}")
        raise

    yield

    logger.info("Shutting down Memory Bridge API")
    try:
        await app.state.store.dispose()
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")


def register_exception_handlers(app: FastAPI) -> None:
    """Map the error taxonomy onto consistent {ok: false, error} responses."""

    @app.exception_handler(MemoryBridgeError)
    async def memory_bridge_exception_handler(request: Request, exc: MemoryBridgeError):
        settings: Settings = request.app.state.settings
        content = {"ok": False, "error": exc.message}

        if isinstance(exc, MemoryNotFound):
            content["id"] = exc.memory_id
        elif isinstance(exc, StorageError):
            logger.error(f"Storage error during {exc.operation}: {exc.message} - {request.url.path}")
            if settings.redact_internal_errors:
                content["error"] = "Storage error"
        else:
            logger.warning(f"HTTP {exc.status_code}: {exc.message} - {request.url.path}")

        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        details = [
            {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
            for error in exc.errors()
        ]
        message = "; ".join(
            f"{'.'.join(str(part) for part in detail['loc'])}: {detail['msg']}" for detail in details
        )
        logger.warning(f"HTTP 400: {message} - {request.url.path}")

        return JSONResponse(
            status_code=400,
            content={"ok": False, "error": message or "Invalid request", "details": details}
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.warning(f"HTTP {exc.status_code}: {exc.detail} - {request.url.path}")
        return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": exc.detail})

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc} - {request.url.path}", exc_info=True)
        return JSONResponse(status_code=500, content={"ok": False, "error": "Internal server error"})


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Explicit settings; read from the environment when omitted

    Returns:
        FastAPI: Configured application
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.api_title,
        description=settings.api_description,
        version=settings.api_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    build_components(app, settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in settings.cors_origins.split(",")],
        allow_credentials=False,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With", "x-mcp-token"],
    )

    @app.middleware("http")
    async def request_size_limit_middleware(request: Request, call_next):
        """Limit request body size."""
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > MAX_REQUEST_SIZE:
            return JSONResponse(
                status_code=413,
                content={"ok": False, "error": "Request too large", "max_size": "1MB"}
            )

        return await call_next(request)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """
        Request logging middleware.

        Logs all incoming requests with timing information.
        """
        start_time = time.time()

        response = await call_next(request)

        process_time = time.time() - start_time
        logger.info(
            f"{request.method} {request.url.path} - "
            f"Status: {response.status_code} - "
            f"Time: {process_time:.3f}s"
        )
        response.headers["X-Process-Time"] = str(process_time)
        response.headers["X-Content-Type-Options"] = "nosniff"

        return response

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(memory.router)
    app.include_router(stream.router)

    return app


app = create_app()


def run() -> None:
    """Run the API server with uvicorn."""
    import uvicorn

    settings = app.state.settings
    logger.info("Starting Memory Bridge API server")

    uvicorn.run(
        "memory_bridge.main:app",
        host="0.0.0.0",
        port=8000,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    run()
