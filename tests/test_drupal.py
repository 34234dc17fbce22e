"""Tests for the Drupal content resolver."""

import base64

import anyio
import httpx
import pytest

from core.drupal import build_compact_url, build_headers, build_verbose_url
from core.models import Found, InventoryQuery, NotFound, RequestFailed
from tests.helpers import DRUPAL_ENDPOINT, make_resolver, make_settings, opera_document

INCLUDE = "field_autore,field_tipologia,field_luogo,field_tecnica,field_materiale,field_schedatore"


class Recorder:
    """MockTransport handler that answers from a list of responses, in order."""

    def __init__(self, *responses: httpx.Response):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


def test_compact_url():
    url = build_compact_url(DRUPAL_ENDPOINT, InventoryQuery("10220"))
    assert url.path == "/jsonapi/node/opera"
    assert url.params["page[limit]"] == "1"
    assert url.params["filter[field_inventario]"] == "10220"
    assert url.params["include"] == INCLUDE


def test_verbose_url():
    url = build_verbose_url(DRUPAL_ENDPOINT, InventoryQuery("10220"))
    assert url.params["filter[inventario][condition][path]"] == "field_inventario"
    assert url.params["filter[inventario][condition][operator]"] == "="
    assert url.params["filter[inventario][condition][value]"] == "10220"
    assert url.params["include"] == INCLUDE
    assert "filter[field_inventario]" not in url.params


def test_endpoint_query_is_preserved():
    url = build_compact_url(DRUPAL_ENDPOINT + "?langcode=it", InventoryQuery("7"))
    assert url.params["langcode"] == "it"
    assert url.params["filter[field_inventario]"] == "7"


def test_headers():
    assert build_headers(make_settings()) == {"Accept": "application/vnd.api+json"}
    assert build_headers(make_settings(drupal_bearer_token="tok"))["Authorization"] == "Bearer tok"

    basic = build_headers(make_settings(drupal_basic_auth="user:pw", drupal_bearer_token="tok"))
    expected = base64.b64encode(b"user:pw").decode()
    assert basic["Authorization"] == f"Basic {expected}"


def test_empty_identifier_is_rejected():
    with pytest.raises(ValueError):
        InventoryQuery("")


@pytest.mark.anyio
async def test_minimal_record_is_found():
    handler = Recorder(httpx.Response(200, json=opera_document()))
    async with make_resolver(handler) as resolver:
        outcome = await resolver.resolve_by_inventory_number("10220")

    assert isinstance(outcome, Found)
    item = outcome.item
    assert item.title == "Vase"
    assert item.numero_inventario == "10220"
    for name in ("autore", "tipologia", "luogo", "tecnica", "materiale", "schedatore"):
        assert getattr(item, name) is None
    assert item.descrizione.text == ""
    assert item.descrizione.html == ""
    assert len(handler.requests) == 1
    assert handler.requests[0].headers["accept"] == "application/vnd.api+json"


@pytest.mark.anyio
async def test_full_record_mapping():
    document = {
        "data": {
            "id": "abc",
            "type": "node--opera",
            "attributes": {
                "title": "Cratere a calice",
                "field_inventario": "10220",
                "field_periodo": "",
                "field_data_label": "V sec. a.C.",
                "field_data_0": -450,
                "field_data_1": 0,
                "field_acquisizione": "Dono",
                "field_altezza": 42.5,
                "field_diametro": 0,
                "field_descrizione": {
                    "value": "raw",
                    "processed": "<p>Figure <em>rosse</em></p><script>x()</script>",
                },
            },
            "relationships": {
                "field_autore": {"data": [{"type": "node--autore", "id": "A"}]},
                "field_tecnica": {"data": {"type": "taxonomy_term--tecnica", "id": "T"}},
                "field_materiale": {"data": None},
            },
            "links": {"self": {"href": "https://drupal.test/node/abc"}},
        },
        "included": [
            {"type": "node--autore", "id": "A", "attributes": {"title": "Pittore di Berlino"}},
            {"type": "taxonomy_term--tecnica", "id": "T", "attributes": {"name": "Figure rosse"}},
        ],
    }
    async with make_resolver(Recorder(httpx.Response(200, json=document))) as resolver:
        outcome = await resolver.resolve_by_inventory_number("10220")

    assert isinstance(outcome, Found)
    result = outcome.to_dict()
    assert result["found"] is True
    assert result["id"] == "abc"
    assert result["periodo"] is None
    assert result["data_da"] == -450
    assert result["data_a"] == 0
    assert result["dimensioni"] == {"altezza": 42.5, "larghezza": None, "diametro": 0, "spessore": None}
    assert result["autore"] == ["Pittore di Berlino"]
    assert result["tecnica"] == "Figure rosse"
    assert result["materiale"] is None
    assert result["descrizione"] == {
        "text": "Figure rosse",
        "html": "<p>Figure <em>rosse</em></p><script>x()</script>",
    }
    assert result["links"] == {"self": {"href": "https://drupal.test/node/abc"}}


@pytest.mark.anyio
@pytest.mark.parametrize("status", [400, 403])
async def test_rejected_compact_filter_retries_with_condition_syntax(status):
    handler = Recorder(
        httpx.Response(status, json={"errors": [{"title": "Bad filter"}]}),
        httpx.Response(200, json=opera_document()),
    )
    async with make_resolver(handler) as resolver:
        outcome = await resolver.resolve_by_inventory_number("10220")

    assert isinstance(outcome, Found)
    assert len(handler.requests) == 2
    assert "filter[field_inventario]" in handler.requests[0].url.params
    assert handler.requests[1].url.params["filter[inventario][condition][value]"] == "10220"


@pytest.mark.anyio
async def test_fallback_is_attempted_only_once():
    errors = [{"status": "403", "title": "Forbidden"}]
    handler = Recorder(
        httpx.Response(403, json={"errors": errors}),
        httpx.Response(403, json={"errors": errors}),
    )
    async with make_resolver(handler) as resolver:
        outcome = await resolver.resolve_by_inventory_number("10220")

    assert outcome == RequestFailed(status_code=403, details=errors)
    assert outcome.to_dict()["error"] == "Drupal request failed (403)"
    assert len(handler.requests) == 2


@pytest.mark.anyio
@pytest.mark.parametrize("status", [401, 404, 500, 503])
async def test_other_failures_are_not_retried(status):
    handler = Recorder(httpx.Response(status, text="x" * 1200))
    async with make_resolver(handler) as resolver:
        outcome = await resolver.resolve_by_inventory_number("10220")

    assert isinstance(outcome, RequestFailed)
    assert outcome.status_code == status
    assert outcome.details == "x" * 500
    assert len(handler.requests) == 1


@pytest.mark.anyio
async def test_failure_without_body_has_no_details():
    async with make_resolver(Recorder(httpx.Response(502))) as resolver:
        outcome = await resolver.resolve_by_inventory_number("10220")
    assert outcome == RequestFailed(status_code=502, details=None)


@pytest.mark.anyio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"data": []}),
        httpx.Response(200, json={"data": None}),
        httpx.Response(200, json={"meta": {}}),
        httpx.Response(200, text="<html>not json</html>"),
        httpx.Response(200),
    ],
)
async def test_empty_results_are_not_found(response):
    async with make_resolver(Recorder(response)) as resolver:
        outcome = await resolver.resolve_by_inventory_number("10220")
    assert outcome == NotFound()
    assert outcome.to_dict() == {"found": False, "error": None}


@pytest.mark.anyio
async def test_timeout_is_reported_not_raised():
    async def slow(request: httpx.Request) -> httpx.Response:
        await anyio.sleep(5)
        return httpx.Response(200, json=opera_document())

    settings = make_settings(drupal_timeout_ms=50)
    async with make_resolver(slow, settings) as resolver:
        outcome = await resolver.resolve_by_inventory_number("10220")

    assert isinstance(outcome, RequestFailed)
    assert outcome.status_code is None
    assert "timeout" in outcome.error


@pytest.mark.anyio
async def test_connection_error_is_reported_not_raised():
    calls = []

    def refuse(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    async with make_resolver(refuse) as resolver:
        outcome = await resolver.resolve_by_inventory_number("10220")

    assert isinstance(outcome, RequestFailed)
    assert outcome.status_code is None
    assert outcome.details == "connection refused"
    assert len(calls) == 1


@pytest.mark.anyio
async def test_oversized_identifier_is_reported_not_raised():
    recorder = Recorder(httpx.Response(200, json={"data": []}))
    async with make_resolver(recorder) as resolver:
        outcome = await resolver.resolve_by_inventory_number("x" * 70000)

    assert isinstance(outcome, RequestFailed)
    assert outcome.status_code is None
    assert outcome.error == "Drupal request failed (invalid request URL)"
    assert outcome.details
    assert recorder.requests == []
