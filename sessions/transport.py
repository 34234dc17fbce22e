# =============================================================================
# sessions/transport.py  —  One session's transport and its lifecycle hooks
# =============================================================================
#
# SessionTransport wraps the MCP SDK's StreamableHTTPServerTransport (which
# does the actual framing: JSON-RPC over POST, SSE streams over GET, session
# termination over DELETE) together with the FastMCP server that answers
# the session's requests.
#
# It adds two hooks the dispatcher registers exactly once per session:
#
#   on_initialized(cb)  fired when the SDK transport starts a successful
#                       response to the initialize request, i.e. when it
#                       has handed the new session id to the client.  The
#                       callback runs before that response is sent, so
#                       the client's next request finds the session.
#   on_closed(cb)       fired once when the session ends for any reason:
#                       DELETE from the client, idle timeout, server crash,
#                       or application shutdown.  A terminated transport
#                       fires it before the terminating request returns,
#                       so a closed session is never left registered.
# =============================================================================

import logging
from typing import Callable, Optional

import anyio
from anyio.abc import TaskStatus
from fastmcp import FastMCP
from mcp.server.streamable_http import MCP_SESSION_ID_HEADER, StreamableHTTPServerTransport
from starlette.types import Message, Receive, Scope, Send

from tools.mcp_server import lowlevel_server

logger = logging.getLogger(__name__)

Hook = Callable[[], None]


class SessionTransport:
    """Streamable HTTP transport bound to one session id and one tool server.

    Args:
        session_id: The id announced to the client in the mcp-session-id header.
        tool_server: The FastMCP server owned by this session.
        json_response: Answer POSTs with plain JSON instead of an SSE stream.
        idle_timeout: Seconds without any request after which the session
            is closed.  None disables the timeout.
    """

    def __init__(
        self,
        session_id: str,
        tool_server: FastMCP,
        *,
        json_response: bool = False,
        idle_timeout: Optional[float] = None,
    ):
        self.session_id = session_id
        self.tool_server = tool_server
        self.idle_timeout = idle_timeout
        self.http = StreamableHTTPServerTransport(
            mcp_session_id=session_id,
            is_json_response_enabled=json_response,
        )

        self._on_initialized: Optional[Hook] = None
        self._on_closed: Optional[Hook] = None
        self._initialized = False
        self._closed = False
        self._active_requests = 0
        self._last_activity = 0.0

    # -------------------------------------------------------------------------
    # Hooks
    # -------------------------------------------------------------------------
    def on_initialized(self, callback: Hook) -> None:
        if self._on_initialized is not None:
            raise RuntimeError(f"on_initialized already registered for session {self.session_id}")
        self._on_initialized = callback

    def on_closed(self, callback: Hook) -> None:
        if self._on_closed is not None:
            raise RuntimeError(f"on_closed already registered for session {self.session_id}")
        self._on_closed = callback

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def closed(self) -> bool:
        return self._closed

    def _confirm_initialized(self) -> None:
        if self._initialized:
            return
        self._initialized = True
        logger.info("Session %s initialized", self.session_id)
        if self._on_initialized is not None:
            self._on_initialized()

    def _notify_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.info("Session %s closed", self.session_id)
        if self._on_closed is not None:
            self._on_closed()

    # -------------------------------------------------------------------------
    # Request handling
    # -------------------------------------------------------------------------
    def _confirms_session(self, message: Message) -> bool:
        if message["type"] != "http.response.start" or message.get("status") != 200:
            return False
        expected = self.session_id.encode("latin-1")
        return any(
            name.lower() == MCP_SESSION_ID_HEADER.encode("latin-1") and value == expected
            for name, value in message.get("headers", [])
        )

    async def handle_request(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Hand one HTTP request (POST, GET or DELETE) to the SDK transport."""
        async def wrapped_send(message: Message) -> None:
            if not self._initialized and self._confirms_session(message):
                self._confirm_initialized()
            if self.http.is_terminated:
                self._notify_closed()
            await send(message)

        self._active_requests += 1
        try:
            await self.http.handle_request(scope, receive, wrapped_send)
        finally:
            self._active_requests -= 1
            self._last_activity = anyio.current_time()
            if self.http.is_terminated:
                self._notify_closed()

    async def close(self) -> None:
        """Terminate the SDK transport and fire on_closed; run() then exits."""
        if not self.http.is_terminated:
            await self.http.terminate()
        self._notify_closed()

    # -------------------------------------------------------------------------
    # Session task
    # -------------------------------------------------------------------------
    async def _close_when_idle(self) -> None:
        assert self.idle_timeout is not None
        while not self.http.is_terminated:
            if self._active_requests:
                await anyio.sleep(self.idle_timeout)
                continue
            remaining = self._last_activity + self.idle_timeout - anyio.current_time()
            if remaining <= 0:
                logger.info("Session %s idle for %.0fs, closing", self.session_id, self.idle_timeout)
                await self.close()
                return
            await anyio.sleep(remaining)

    async def run(self, *, task_status: TaskStatus[None] = anyio.TASK_STATUS_IGNORED) -> None:
        """Run the tool server on this transport until the session ends.

        Meant to be started with ``task_group.start(transport.run)``: it
        reports started once the streams are connected.
        """
        server = lowlevel_server(self.tool_server)
        self._last_activity = anyio.current_time()
        try:
            async with self.http.connect() as (read_stream, write_stream):
                task_status.started()
                async with anyio.create_task_group() as tg:
                    if self.idle_timeout is not None:
                        tg.start_soon(self._close_when_idle)
                    try:
                        await server.run(
                            read_stream,
                            write_stream,
                            server.create_initialization_options(),
                            stateless=False,
                        )
                    except Exception:
                        logger.exception("Session %s crashed", self.session_id)
                    tg.cancel_scope.cancel()
        finally:
            self._notify_closed()
