"""FastAPI application wiring for the chat router.

- Configures logging, optional CORS for the site and admin UI, and Prometheus
  metrics.
- Mounts the chat assistant endpoint (mode routing plus streaming relay) and
  the operator API (kill-switch, takeover, mode configuration).
- Exposes health and version endpoints.
"""

import logging

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from .__version__ import __build_date__, __commit_sha__, __version__
from .app_logging import init_logging
from .routers import admin, chat
from .routing.generation import GENERIC_MESSAGE
from .settings import get_settings

load_dotenv()

logger = logging.getLogger("chat_router")


async def handle_http_error(request: Request, exc: StarletteHTTPException):
    """Render HTTP errors with the same ``{"error": ...}`` envelope as the chat route."""

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": GENERIC_MESSAGE})


def create_app() -> FastAPI:
    """Build the application from the current environment."""

    settings = get_settings()
    app = FastAPI(title="Chat Router", version=__version__)
    init_logging(app)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.cors_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=list(chat.ROUTING_HEADERS),
        )
    app.include_router(chat.router)
    app.include_router(admin.router)

    @app.get("/api/health")
    async def health():
        """Liveness/readiness probe with a minimal JSON body."""
        return {"status": "ok"}

    @app.get("/api/version")
    async def version():
        """Return version information for the application."""
        return {
            "version": __version__,
            "build_date": __build_date__,
            "commit_sha": __commit_sha__,
        }

    if settings.expose_metrics:
        Instrumentator().instrument(app).expose(
            app, include_in_schema=False, endpoint="/api/metrics"
        )
    logger.info("Chat router %s ready", __version__)
    return app


app = create_app()
