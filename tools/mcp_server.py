# =============================================================================
# tools/mcp_server.py  —  FastMCP Tool Server (the one tool we expose)
# =============================================================================
#
# WHAT THIS FILE DOES:
#   Defines the MCP tool clients call to look up an inventory record.  The
#   tool is a thin wrapper around core.drupal.ContentResolver: it validates
#   the input, runs the lookup, and formats the outcome as
#     - structured content (the LookupOutcome as a dict), and
#     - one human-readable line of text.
#
# ONE SERVER PER SESSION:
#   build_mcp_server() is called by the session dispatcher for every new
#   MCP session, so each session owns its own FastMCP instance.  They all
#   share the same ContentResolver (which holds no per-call state).
#
# TOOL NAMING:
#   get_opera_by_inventario is a read-only retrieval (idempotent, safe to
#   retry).  Its annotations say so, for clients that honour them.
# =============================================================================

import json
import logging
import sys
from typing import Annotated

from fastmcp import FastMCP
from fastmcp.tools.tool import ToolResult
from mcp.server.lowlevel import Server
from mcp.types import TextContent, ToolAnnotations
from pydantic import Field

from core.drupal import ContentResolver
from core.models import Found, LookupOutcome, RequestFailed

SERVER_NAME = "vive-inventario-mcp"
SERVER_VERSION = "1.0.0"
TOOL_NAME = "get_opera_by_inventario"

# =============================================================================
# Logging Setup
# =============================================================================
# Logs go to STDERR, colour-coded so tool calls stand out in a terminal:
#   - CYAN for incoming tool calls (tool name + parameters)
#   - YELLOW for intermediate status
#   - GREEN for the response JSON
# =============================================================================

_CYAN = "\033[36m"     # Requests (tool calls with params)
_GREEN = "\033[32m"    # Responses (JSON output)
_YELLOW = "\033[33m"   # Status/progress messages
_RESET = "\033[0m"     # Reset to default terminal color

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Send all log records to stderr with the [MCP] prefix."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s [MCP] %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


def _log_request(tool_name: str, **params) -> None:
    """Log an incoming tool call with its parameters in CYAN."""
    param_str = ", ".join(f"{k}={v!r}" for k, v in params.items())
    logger.info(f"{_CYAN}{tool_name} called with: {param_str}{_RESET}")


def _log_status(message: str) -> None:
    """Log an intermediate status message in YELLOW."""
    logger.info(f"{_YELLOW}  → {message}{_RESET}")


def _log_response(tool_name: str, result: dict) -> dict:
    """Log the tool response as compact JSON in GREEN, then return it."""
    logger.info(
        f"{_GREEN}  ← {tool_name} response: "
        f"{json.dumps(result, separators=(',', ':'), default=str)}{_RESET}"
    )
    return result


# =============================================================================
# Result formatting
# =============================================================================
def summarize(numero_inventario: str, outcome: LookupOutcome) -> str:
    """One line of text describing the outcome, for clients that show text."""
    if isinstance(outcome, Found):
        item = outcome.item
        return f"Found: {item.title} (inventario {item.numero_inventario})"
    if isinstance(outcome, RequestFailed):
        return (
            f"No item found or request failed for inventario "
            f"{numero_inventario}: {outcome.error}"
        )
    return f"No item found for inventario {numero_inventario}"


def to_tool_result(numero_inventario: str, outcome: LookupOutcome) -> ToolResult:
    structured = outcome.to_dict()
    return ToolResult(
        content=[TextContent(type="text", text=summarize(numero_inventario, outcome))],
        structured_content=structured,
    )


# =============================================================================
# Server factory
# =============================================================================
def build_mcp_server(resolver: ContentResolver) -> FastMCP:
    """Create a FastMCP server exposing get_opera_by_inventario."""
    mcp = FastMCP(SERVER_NAME, version=SERVER_VERSION)

    @mcp.tool(
        name=TOOL_NAME,
        title="Get item by inventario",
        description=(
            "Given an inventory number (field_inventario / numero inventario), "
            "returns the corresponding Opera item from Drupal JSON:API."
        ),
        output_schema=None,
        annotations=ToolAnnotations(
            readOnlyHint=True,
            openWorldHint=False,
            destructiveHint=False,
        ),
    )
    async def get_opera_by_inventario(
        numero_inventario: Annotated[
            str,
            Field(min_length=1, description="The inventory number typed by the user, e.g. 10220"),
        ],
    ) -> ToolResult:
        _log_request(TOOL_NAME, numero_inventario=numero_inventario)

        outcome = await resolver.resolve_by_inventory_number(numero_inventario)
        if isinstance(outcome, RequestFailed):
            _log_status(outcome.error)
        elif isinstance(outcome, Found):
            _log_status(f"Resolved node {outcome.item.id}")
        else:
            _log_status("No matching node")

        result = to_tool_result(numero_inventario, outcome)
        _log_response(TOOL_NAME, result.structured_content)
        return result

    return mcp


def lowlevel_server(mcp: FastMCP) -> Server:
    """The low-level MCP server FastMCP drives, for running it on our own transport."""
    return mcp._mcp_server
