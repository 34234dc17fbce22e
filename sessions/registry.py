# =============================================================================
# sessions/registry.py  —  Live MCP sessions by id
# =============================================================================
#
# The registry maps a session id (the mcp-session-id header) to the Session
# that owns the transport and the tool server for that conversation.
#
# CONCURRENCY:
#   All requests run on one event loop.  Every method here is synchronous
#   and never awaits, so a create/remove can never be interleaved with
#   another registry call: each mutation is committed before anyone else
#   looks.  Callers that await between get() and use must re-check.
#
# The dispatcher receives its registry as a constructor argument, so each
# app (and each test) gets a fresh one.
# =============================================================================

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from fastmcp import FastMCP

from core.errors import SessionError

if TYPE_CHECKING:
    from sessions.transport import SessionTransport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    """One client conversation: its transport and its tool server."""

    session_id: str
    transport: "SessionTransport"
    tool_server: FastMCP


class SessionRegistry:
    def __init__(self):
        self._sessions: dict[str, Session] = {}

    def create(self, session_id: str, transport: "SessionTransport", tool_server: FastMCP) -> Session:
        """Register a new session.

        Raises:
            SessionError: a live session already uses ``session_id``.
        """
        if session_id in self._sessions:
            raise SessionError(f"Session {session_id} is already registered")
        session = Session(session_id=session_id, transport=transport, tool_server=tool_server)
        self._sessions[session_id] = session
        logger.info("Session %s registered (%d active)", session_id, len(self._sessions))
        return session

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> Optional[Session]:
        """Drop a session; unknown ids are ignored."""
        session = self._sessions.pop(session_id, None)
        if session is not None:
            logger.info("Session %s removed (%d active)", session_id, len(self._sessions))
        return session

    def session_ids(self) -> list[str]:
        return list(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
