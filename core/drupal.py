# =============================================================================
# core/drupal.py  —  Content resolver for the Drupal JSON:API repository
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Turns an inventory number typed by a user into a fully dereferenced
#   ResolvedItem, by querying Drupal's JSON:API endpoint for "opera" nodes.
#
# THE QUERY STRATEGY:
#   1. Compact filter:   ?filter[field_inventario]=10220
#   2. If Drupal answers 400 or 403 (some sites disable the shortcut
#      filter syntax), retry ONCE with the verbose condition syntax:
#        ?filter[inventario][condition][path]=field_inventario
#        &filter[inventario][condition][operator]==
#        &filter[inventario][condition][value]=10220
#   Both variants ask for page[limit]=1 and include the six relationship
#   fields, so the related taxonomy terms and nodes come back side-loaded.
#
# FAILURE SEMANTICS:
#   resolve_by_inventory_number() never raises for network or HTTP
#   problems.  Timeouts, refused connections and non-2xx statuses come back
#   as RequestFailed; an empty result is NotFound.  Only an empty
#   identifier (a caller bug) raises.
#
# TIMEOUT:
#   The whole request (connect + send + read) is bounded by
#   DRUPAL_TIMEOUT_MS.  When the budget runs out the request is cancelled,
#   httpx releases the connection and the lookup reports RequestFailed.
#   A timed-out request is not retried.
# =============================================================================

import base64
import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import anyio
import httpx

from core.config import Settings
from core.markup import strip_html
from core.models import (
    Description,
    Dimensions,
    Found,
    InventoryQuery,
    LookupOutcome,
    NotFound,
    RequestFailed,
    ResolvedItem,
)
from core.relationships import relationship_data, resolve_included_names

logger = logging.getLogger(__name__)

JSONAPI_MEDIA_TYPE = "application/vnd.api+json"

# Statuses that mean "Drupal rejected the compact filter syntax".
FALLBACK_STATUSES = frozenset({400, 403})

# How much of a non-JSON error body to keep for diagnostics.
MAX_ERROR_TEXT = 500

# ResolvedItem relationship attribute → Drupal relationship field
RELATIONSHIP_FIELDS: dict[str, str] = {
    "autore": "field_autore",
    "tipologia": "field_tipologia",
    "luogo": "field_luogo",
    "tecnica": "field_tecnica",
    "materiale": "field_materiale",
    "schedatore": "field_schedatore",
}


# -----------------------------------------------------------------------------
# URL building
# -----------------------------------------------------------------------------
def _base_params(query: InventoryQuery) -> dict[str, str]:
    return {
        "page[limit]": "1",
        "include": ",".join(query.include_paths),
    }


def build_compact_url(endpoint: str, query: InventoryQuery) -> httpx.URL:
    """Query URL using the shortcut filter, e.g. ``filter[field_inventario]=10220``."""
    params = _base_params(query)
    params["filter[field_inventario]"] = query.identifier
    return httpx.URL(endpoint).copy_merge_params(params)


def build_verbose_url(endpoint: str, query: InventoryQuery) -> httpx.URL:
    """Query URL using the verbose condition filter syntax."""
    params = _base_params(query)
    params["filter[inventario][condition][path]"] = "field_inventario"
    params["filter[inventario][condition][operator]"] = "="
    params["filter[inventario][condition][value]"] = query.identifier
    return httpx.URL(endpoint).copy_merge_params(params)


def build_headers(settings: Settings) -> dict[str, str]:
    """Accept header, plus Authorization when the repository is protected."""
    headers = {"Accept": JSONAPI_MEDIA_TYPE}
    if settings.drupal_basic_auth:
        token = base64.b64encode(settings.drupal_basic_auth.encode("utf-8")).decode("ascii")
        headers["Authorization"] = f"Basic {token}"
    elif settings.drupal_bearer_token:
        headers["Authorization"] = f"Bearer {settings.drupal_bearer_token}"
    return headers


# -----------------------------------------------------------------------------
# Response handling
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class FetchResult:
    """What came back from one GET: status, raw text and parsed JSON (if any)."""

    status_code: int
    text: str
    document: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def _parse_document(text: str) -> Any:
    # Read as text first: a JSON error would otherwise hide the body.
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError as exc:
        logger.warning("Drupal response is not valid JSON: %s", exc)
        return None


def _failure_details(result: FetchResult) -> Any:
    doc = result.document
    if isinstance(doc, Mapping) and doc.get("errors"):
        return doc["errors"]
    return result.text[:MAX_ERROR_TEXT] or None


def _primary_resource(document: Any) -> Optional[Mapping[str, Any]]:
    if not isinstance(document, Mapping):
        return None
    data = document.get("data")
    if isinstance(data, list):
        data = data[0] if data else None
    if not isinstance(data, Mapping) or not data:
        return None
    return data


def _description_markup(value: Any) -> str:
    if isinstance(value, Mapping):
        return value.get("processed") or value.get("value") or ""
    if isinstance(value, str):
        return value
    return ""


def map_resource(document: Mapping[str, Any], resource: Mapping[str, Any]) -> ResolvedItem:
    """Flatten one JSON:API "opera" resource into a ResolvedItem.

    Text fields collapse empty strings to None; numeric fields keep zero.
    """
    a = resource.get("attributes")
    if not isinstance(a, Mapping):
        a = {}

    relationships = {
        name: resolve_included_names(document, relationship_data(resource, field_name))
        for name, field_name in RELATIONSHIP_FIELDS.items()
    }

    html = _description_markup(a.get("field_descrizione"))
    links = resource.get("links")

    return ResolvedItem(
        id=resource.get("id"),
        type=resource.get("type"),
        title=a.get("title") or None,
        numero_inventario=a.get("field_inventario") or None,
        periodo=a.get("field_periodo") or None,
        data_label=a.get("field_data_label") or None,
        data_da=a.get("field_data_0"),
        data_a=a.get("field_data_1"),
        acquisizione=a.get("field_acquisizione") or None,
        dimensioni=Dimensions(
            altezza=a.get("field_altezza"),
            larghezza=a.get("field_larghezza"),
            diametro=a.get("field_diametro"),
            spessore=a.get("field_spessore"),
        ),
        descrizione=Description(text=strip_html(html), html=html),
        links=links if isinstance(links, Mapping) else None,
        **relationships,
    )


# -----------------------------------------------------------------------------
# ContentResolver
# -----------------------------------------------------------------------------
class ContentResolver:
    """Looks up "opera" nodes by inventory number.

    Holds no per-lookup state: one resolver is shared by every session.
    Pass ``client`` to reuse (or, in tests, mock) an ``httpx.AsyncClient``;
    otherwise the resolver creates one and closes it in ``aclose()``.
    """

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=settings.drupal_timeout_s)
        self._headers = build_headers(settings)

    async def __aenter__(self) -> "ContentResolver":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch(self, url: httpx.URL) -> FetchResult:
        """GET ``url`` within the timeout budget.

        Raises:
            TimeoutError: the budget ran out (request cancelled).
            httpx.HTTPError: the request could not be completed.
        """
        with anyio.fail_after(self.settings.drupal_timeout_s):
            response = await self._client.get(url, headers=self._headers)
        text = response.text
        return FetchResult(
            status_code=response.status_code,
            text=text,
            document=_parse_document(text),
        )

    async def _fetch_with_fallback(self, query: InventoryQuery) -> FetchResult:
        endpoint = self.settings.drupal_endpoint
        result = await self.fetch(build_compact_url(endpoint, query))
        logger.info("Drupal lookup inventario=%s status=%s", query.identifier, result.status_code)

        if not result.ok and result.status_code in FALLBACK_STATUSES:
            logger.warning(
                "Drupal rejected compact filter (%s), retrying with condition syntax",
                result.status_code,
            )
            result = await self.fetch(build_verbose_url(endpoint, query))
            logger.info(
                "Drupal fallback lookup inventario=%s status=%s",
                query.identifier,
                result.status_code,
            )
        return result

    async def resolve_by_inventory_number(self, identifier: str) -> LookupOutcome:
        """Look up one record; always returns Found, NotFound or RequestFailed.

        Raises:
            ValueError: ``identifier`` is empty.
        """
        query = InventoryQuery(identifier=identifier)

        try:
            result = await self._fetch_with_fallback(query)
        except (TimeoutError, httpx.TimeoutException):
            logger.warning(
                "Drupal lookup inventario=%s timed out after %d ms",
                identifier,
                self.settings.drupal_timeout_ms,
            )
            return RequestFailed(
                status_code=None,
                reason=f"timeout after {self.settings.drupal_timeout_ms} ms",
            )
        except httpx.InvalidURL as exc:
            logger.warning("Drupal lookup inventario=%s has an unusable URL: %s", identifier[:80], exc)
            return RequestFailed(status_code=None, details=str(exc), reason="invalid request URL")
        except httpx.HTTPError as exc:
            logger.warning("Drupal lookup inventario=%s failed: %r", identifier, exc)
            return RequestFailed(status_code=None, details=str(exc) or None, reason=type(exc).__name__)

        if not result.ok:
            return RequestFailed(status_code=result.status_code, details=_failure_details(result))

        resource = _primary_resource(result.document)
        if resource is None:
            return NotFound()

        return Found(map_resource(result.document, resource))
