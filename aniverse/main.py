import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from aniverse.api.auth.routes import router as auth_router
from aniverse.api.chat.routes import router as chat_router
from aniverse.api.chat.services import ChatService
from aniverse.config import Settings, settings as default_settings
from aniverse.core.completion import CompletionClient
from aniverse.core.errors import ChatError
from aniverse.storage import build_storage
from aniverse.storage.base import Storage

logger = logging.getLogger(__name__)


def build_completion_client(settings: Settings) -> CompletionClient:
    return CompletionClient(
        api_key=settings.PERPLEXITY_API_KEY,
        model=settings.PERPLEXITY_MODEL,
        base_url=settings.PERPLEXITY_BASE_URL,
        timeout_s=settings.UPSTREAM_TIMEOUT_SECONDS,
    )


def create_app(
    settings: Optional[Settings] = None,
    storage: Optional[Storage] = None,
    completion_client: Optional[CompletionClient] = None,
) -> FastAPI:
    """
    Build the API. Storage and the completion client are created at startup
    unless supplied; the app owns them for the life of the process.
    """
    settings = settings or default_settings
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_storage = getattr(app.state, "storage", None) is None
        if owns_storage:
            app.state.storage = build_storage(settings)
        if getattr(app.state, "completion_client", None) is None:
            app.state.completion_client = build_completion_client(settings)
        logger.info(
            "Storage backend: %s, Perplexity key configured: %s",
            app.state.storage.name,
            app.state.completion_client.configured,
        )
        try:
            ChatService(app.state.storage, app.state.completion_client).ensure_default_user()
        except ChatError as e:
            # requests still create the user lazily
            logger.error("Could not create default user at startup: %s", e.message)
        yield
        if owns_storage:
            app.state.storage.close()

    app = FastAPI(title="AniVerse AI", lifespan=lifespan)
    app.state.settings = settings
    app.state.storage = storage
    app.state.completion_client = completion_client

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(auth_router, prefix="/api/auth", tags=["Auth"])
    app.include_router(chat_router, prefix="/api/chat", tags=["Chat"])

    @app.get("/api/health")
    def health(request: Request):
        client = request.app.state.completion_client
        storage = request.app.state.storage
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "hasPerplexityKey": bool(client and client.configured),
            "mode": storage.name if storage else None,
        }

    @app.api_route("/api/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"], include_in_schema=False)
    def api_not_found(request: Request, path: str):
        logger.info("404: %s %s", request.method, request.url.path)
        return JSONResponse(status_code=404, content={"detail": "API endpoint not found"})

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError):
        if exc.status_code >= 500:
            logger.error("Internal error on %s %s: %s", request.method, request.url.path, exc.message)
            return JSONResponse(status_code=exc.status_code, content={"detail": "Internal server error"})
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"detail": "Invalid request body"})

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception: %s", exc)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    return app


app = create_app()
