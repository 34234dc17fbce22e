# =============================================================================
# core/config.py  —  Runtime settings read from the environment
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Reads every knob the server needs from environment variables (a .env
#   file is loaded first by main.py via python-dotenv) and freezes them into
#   a Settings object.  Nothing else in the project reads os.environ.
#
# VARIABLES:
#   PORT                        Listening port (default 3000)
#   HOST                        Bind address (default 0.0.0.0)
#   DRUPAL_JSONAPI_ENDPOINT     e.g. https://example.org/jsonapi/node/opera
#   DRUPAL_BEARER_TOKEN         Optional "Authorization: Bearer" token
#   DRUPAL_BASIC_AUTH           Optional "user:password" for HTTP Basic
#   DRUPAL_TIMEOUT_MS           Per-request timeout (default 10000)
#   MCP_JSON_RESPONSE           "true" to answer POSTs with JSON, not SSE
#   MCP_SESSION_IDLE_TIMEOUT_S  Close sessions idle this long (unset = never)
#   LOG_LEVEL                   Python logging level name (default INFO)
# =============================================================================

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from core.errors import ConfigError

DEFAULT_PORT = 3000
DEFAULT_HOST = "0.0.0.0"
DEFAULT_TIMEOUT_MS = 10000

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Immutable server configuration."""

    drupal_endpoint: str
    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    drupal_bearer_token: str = ""
    drupal_basic_auth: str = ""        # "user:password", sent as HTTP Basic
    drupal_timeout_ms: int = DEFAULT_TIMEOUT_MS
    json_response: bool = False
    session_idle_timeout_s: Optional[float] = None
    log_level: str = "INFO"

    @property
    def drupal_timeout_s(self) -> float:
        return self.drupal_timeout_ms / 1000


def _int_var(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def _float_var(env: Mapping[str, str], name: str) -> Optional[float]:
    raw = env.get(name, "").strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from ``env`` (defaults to ``os.environ``).

    Raises:
        ConfigError: if the Drupal endpoint is missing or a numeric
            variable cannot be parsed.
    """
    if env is None:
        env = os.environ

    endpoint = env.get("DRUPAL_JSONAPI_ENDPOINT", "").strip()
    if not endpoint:
        raise ConfigError("DRUPAL_JSONAPI_ENDPOINT is not set")

    return Settings(
        drupal_endpoint=endpoint,
        port=_int_var(env, "PORT", DEFAULT_PORT),
        host=env.get("HOST", "").strip() or DEFAULT_HOST,
        drupal_bearer_token=env.get("DRUPAL_BEARER_TOKEN", "").strip(),
        drupal_basic_auth=env.get("DRUPAL_BASIC_AUTH", "").strip(),
        drupal_timeout_ms=_int_var(env, "DRUPAL_TIMEOUT_MS", DEFAULT_TIMEOUT_MS),
        json_response=env.get("MCP_JSON_RESPONSE", "false").strip().lower() in _TRUTHY,
        session_idle_timeout_s=_float_var(env, "MCP_SESSION_IDLE_TIMEOUT_S"),
        log_level=env.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )
