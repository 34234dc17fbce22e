# =============================================================================
# core/__init__.py
# =============================================================================
# This package contains the lookup logic of the inventario server:
# configuration, data models, markup stripping, relationship resolution and
# the Drupal JSON:API content resolver.
#
# ARCHITECTURAL RULE:
#   Nothing in this package imports FastMCP, Starlette or the MCP SDK.  The
#   only I/O it does is the outbound request to Drupal (httpx), and that can
#   be replaced with an injected client, so every module here is testable
#   without a server.
# =============================================================================
