# =============================================================================
# core/errors.py  —  Exception types
# =============================================================================
#
# Only misconfiguration and programming errors are raised as exceptions.
# Repository failures are NOT exceptions: the content resolver returns them
# as a RequestFailed outcome (see core/models.py), and protocol violations
# from clients become HTTP error responses in sessions/dispatcher.py.
# =============================================================================


class InventarioError(Exception):
    """Base class for errors raised by this service."""


class ConfigError(InventarioError):
    """The environment does not describe a usable configuration."""


class SessionError(InventarioError):
    """A session registry operation violated the one-session-per-id rule."""
