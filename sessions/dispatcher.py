# =============================================================================
# sessions/dispatcher.py  —  Route /mcp requests to sessions
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Every request to /mcp lands here.  The dispatcher looks at the HTTP
#   method and the mcp-session-id header and decides:
#
#   POST, no session id, body is "initialize"
#       → build a tool server and a SessionTransport with a fresh id,
#         register the session once the transport confirms initialization,
#         deregister it when the transport closes, hand the request over.
#   POST / GET / DELETE, session id of a live session
#       → forward to that session's transport (it owns the protocol).
#   GET / DELETE, session id missing or unknown
#       → 400 "Invalid or missing session ID".
#   POST, anything else
#       → 400 JSON-RPC error -32000 "Bad Request: No valid session ID provided".
#
#   An unexpected exception while handling a POST is logged and, if no
#   response has started yet, answered with JSON-RPC error -32603.
#
# LIFECYCLE:
#   Session tasks run in a task group owned by run(), which the Starlette
#   lifespan enters once:
#
#       async with dispatcher.run():
#           yield
# =============================================================================

import contextlib
import json
import logging
from collections.abc import AsyncIterator
from http import HTTPStatus
from typing import Any, Callable, Optional
from uuid import uuid4

import anyio
from anyio.abc import TaskGroup
from fastmcp import FastMCP
from mcp.server.streamable_http import MCP_SESSION_ID_HEADER
from mcp.types import (
    INTERNAL_ERROR,
    InitializeRequestParams,
    JSONRPCRequest,
)
from pydantic import ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse
from starlette.types import Message, Receive, Scope, Send

from sessions.registry import SessionRegistry
from sessions.transport import SessionTransport

logger = logging.getLogger(__name__)

# JSON-RPC code the MCP SDKs use for "no usable session" on POST.
NO_VALID_SESSION = -32000

ServerFactory = Callable[[], FastMCP]


def is_initialize_request(message: Any) -> bool:
    """True if ``message`` is a single JSON-RPC ``initialize`` request."""
    if not isinstance(message, dict) or message.get("method") != "initialize":
        return False
    try:
        request = JSONRPCRequest.model_validate(message)
        InitializeRequestParams.model_validate(request.params or {})
    except ValidationError:
        return False
    return True


def jsonrpc_error(code: int, message: str, status_code: int) -> JSONResponse:
    return JSONResponse(
        {"jsonrpc": "2.0", "error": {"code": code, "message": message}, "id": None},
        status_code=status_code,
    )


def _replay_body(body: bytes, receive: Receive) -> Receive:
    """A receive() that yields the already-read body, then defers to ``receive``."""
    delivered = False

    async def replay() -> Message:
        nonlocal delivered
        if not delivered:
            delivered = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replay


class _ResponseTracker:
    """Wraps send() to remember whether a response has started."""

    def __init__(self, send: Send):
        self._send = send
        self.started = False

    async def __call__(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.started = True
        await self._send(message)


class SessionDispatcher:
    """ASGI handler for the MCP endpoint.

    Args:
        registry: Where live sessions are kept.
        server_factory: Builds the FastMCP tool server for a new session.
        json_response: Passed to each session transport.
        idle_timeout: Seconds of inactivity after which a session closes.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        server_factory: ServerFactory,
        *,
        json_response: bool = False,
        idle_timeout: Optional[float] = None,
    ):
        self.registry = registry
        self.server_factory = server_factory
        self.json_response = json_response
        self.idle_timeout = idle_timeout

        self._task_group: Optional[TaskGroup] = None
        self._run_lock = anyio.Lock()
        self._has_started = False

    @contextlib.asynccontextmanager
    async def run(self) -> AsyncIterator[None]:
        """Own the task group session tasks run in.  Usable once per instance."""
        async with self._run_lock:
            if self._has_started:
                raise RuntimeError("SessionDispatcher.run() can only be called once per instance")
            self._has_started = True

        async with anyio.create_task_group() as tg:
            self._task_group = tg
            logger.info("Session dispatcher started")
            try:
                yield
            finally:
                logger.info(
                    "Session dispatcher shutting down, open sessions: %s",
                    ", ".join(self.registry.session_ids()) or "none",
                )
                tg.cancel_scope.cancel()
                self._task_group = None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self.handle_request(scope, receive, send)

    async def handle_request(self, scope: Scope, receive: Receive, send: Send) -> None:
        if self._task_group is None:
            raise RuntimeError("Task group is not initialized. Make sure to use run().")

        request = Request(scope, receive)
        if request.method == "POST":
            await self._handle_post(request, scope, receive, send)
        else:
            await self._handle_session_request(request, scope, receive, send)

    # -------------------------------------------------------------------------
    # GET / DELETE
    # -------------------------------------------------------------------------
    async def _handle_session_request(self, request: Request, scope: Scope, receive: Receive, send: Send) -> None:
        session_id = request.headers.get(MCP_SESSION_ID_HEADER)
        session = self.registry.get(session_id) if session_id else None
        if session is None:
            response = PlainTextResponse("Invalid or missing session ID", status_code=HTTPStatus.BAD_REQUEST)
            await response(scope, receive, send)
            return

        await session.transport.handle_request(scope, receive, send)

    # -------------------------------------------------------------------------
    # POST
    # -------------------------------------------------------------------------
    async def _handle_post(self, request: Request, scope: Scope, receive: Receive, send: Send) -> None:
        tracker = _ResponseTracker(send)
        try:
            session_id = request.headers.get(MCP_SESSION_ID_HEADER)
            session = self.registry.get(session_id) if session_id else None
            if session is not None:
                await session.transport.handle_request(scope, receive, tracker)
                return

            body = await request.body()
            try:
                message = json.loads(body) if body else None
            except ValueError:
                message = None

            if session_id is None and is_initialize_request(message):
                await self._establish_session(scope, _replay_body(body, receive), tracker)
                return

            if session_id is not None:
                logger.info("Rejected POST for unknown session %s", session_id)
            response = jsonrpc_error(
                NO_VALID_SESSION,
                "Bad Request: No valid session ID provided",
                HTTPStatus.BAD_REQUEST,
            )
            await response(scope, receive, tracker)
        except Exception:
            logger.exception("Error handling MCP POST request")
            if not tracker.started:
                response = jsonrpc_error(INTERNAL_ERROR, "Internal server error", HTTPStatus.INTERNAL_SERVER_ERROR)
                await response(scope, receive, send)

    async def _establish_session(self, scope: Scope, receive: Receive, send: Send) -> None:
        session_id = uuid4().hex
        tool_server = self.server_factory()
        transport = SessionTransport(
            session_id,
            tool_server,
            json_response=self.json_response,
            idle_timeout=self.idle_timeout,
        )
        transport.on_initialized(lambda: self.registry.create(session_id, transport, tool_server))
        transport.on_closed(lambda: self._release(session_id))

        assert self._task_group is not None
        await self._task_group.start(transport.run)
        logger.debug("Started transport for new session %s", session_id)

        try:
            await transport.handle_request(scope, receive, send)
        finally:
            if not transport.initialized:
                logger.info("Session %s did not initialize, closing", session_id)
                await transport.close()

    def _release(self, session_id: str) -> None:
        # Dropping the registry entry releases the last reference to the
        # session's transport and tool server.
        self.registry.remove(session_id)
