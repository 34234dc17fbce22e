"""Shared builders for the test suite."""

import httpx

from core.config import Settings
from core.drupal import ContentResolver

DRUPAL_ENDPOINT = "https://drupal.test/jsonapi/node/opera"


def make_settings(**overrides) -> Settings:
    values = {"drupal_endpoint": DRUPAL_ENDPOINT, "drupal_timeout_ms": 1000}
    values.update(overrides)
    return Settings(**values)


def make_resolver(handler, settings: Settings | None = None) -> ContentResolver:
    """A ContentResolver whose HTTP calls are answered by ``handler``."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ContentResolver(settings or make_settings(), client=client)


def opera_document(**attributes) -> dict:
    """Minimal JSON:API document with one opera node."""
    return {
        "data": [
            {
                "id": "1",
                "type": "node--opera",
                "attributes": {"title": "Vase", "field_inventario": "10220", **attributes},
            }
        ]
    }
