# =============================================================================
# sessions/__init__.py
# =============================================================================
# This package multiplexes MCP client sessions over the /mcp endpoint.
#
#   registry.py    session id → Session (transport + tool server)
#   transport.py   SessionTransport: SDK Streamable HTTP transport plus
#                  on_initialized / on_closed hooks and idle timeout
#   dispatcher.py  SessionDispatcher: routes each request by method and
#                  mcp-session-id header
# =============================================================================
