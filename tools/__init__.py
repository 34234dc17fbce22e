# =============================================================================
# tools/__init__.py
# =============================================================================
# This package contains the FastMCP tool server.
#
# ARCHITECTURAL ROLE:
#   tools/ is the translation layer between the MCP protocol and the core
#   lookup logic.  It:
#     1. Declares the tool contract (name, typed parameter, annotations)
#     2. Calls core.drupal.ContentResolver
#     3. Serialises the LookupOutcome to structured content plus a text line
#
# WHAT TOOLS DO NOT DO:
#   - They do NOT talk to Drupal directly (that's core/)
#   - They do NOT know about HTTP sessions (that's sessions/)
# =============================================================================
