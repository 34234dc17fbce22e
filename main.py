# =============================================================================
# main.py  —  Entry Point for the Inventario MCP server
# =============================================================================
#
# HOW TO RUN:
#   uv run python main.py            (or the `inventario-mcp` script)
#
# WHAT HAPPENS:
#   1. Loads .env, reads Settings from the environment (core/config.py)
#   2. Creates one ContentResolver shared by every session
#   3. Builds a Starlette app with two routes:
#        /mcp     GET, POST, DELETE  → sessions.dispatcher.SessionDispatcher
#        /health  GET                → {"ok": true}
#   4. Serves it with uvicorn
#
# LIFESPAN:
#   The dispatcher's task group (which runs one task per MCP session) lives
#   for the lifetime of the app; on shutdown every session is cancelled and
#   the resolver's HTTP client is closed.
# =============================================================================

import contextlib
import logging
from collections.abc import AsyncIterator
from typing import Optional

import uvicorn
from dotenv import load_dotenv
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from core.config import Settings, load_settings
from core.drupal import ContentResolver
from sessions.dispatcher import ServerFactory, SessionDispatcher
from sessions.registry import SessionRegistry
from tools.mcp_server import build_mcp_server, configure_logging

logger = logging.getLogger(__name__)

MCP_PATH = "/mcp"


async def health(request: Request) -> JSONResponse:
    return JSONResponse({"ok": True})


def create_app(
    settings: Settings,
    *,
    registry: Optional[SessionRegistry] = None,
    resolver: Optional[ContentResolver] = None,
    server_factory: Optional[ServerFactory] = None,
) -> Starlette:
    """Assemble the ASGI app.

    Every collaborator can be injected; by default a fresh registry, a
    resolver for ``settings`` and a build_mcp_server() factory are used.
    """
    if resolver is None:
        resolver = ContentResolver(settings)
    if server_factory is None:
        def server_factory():
            return build_mcp_server(resolver)

    dispatcher = SessionDispatcher(
        registry if registry is not None else SessionRegistry(),
        server_factory,
        json_response=settings.json_response,
        idle_timeout=settings.session_idle_timeout_s,
    )

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        async with resolver:
            async with dispatcher.run():
                yield

    app = Starlette(
        routes=[
            Route("/health", health, methods=["GET"]),
            Route(MCP_PATH, endpoint=dispatcher, methods=["GET", "POST", "DELETE"]),
        ],
        lifespan=lifespan,
    )
    app.state.dispatcher = dispatcher
    return app


def main() -> None:
    # Load environment variables from .env (DRUPAL_JSONAPI_ENDPOINT, etc.)
    load_dotenv()
    settings = load_settings()
    configure_logging(settings.log_level)

    app = create_app(settings)
    logger.info(f"MCP server listening on http://localhost:{settings.port}{MCP_PATH}")
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


# =============================================================================
# Script entry point
# =============================================================================
if __name__ == "__main__":
    main()
