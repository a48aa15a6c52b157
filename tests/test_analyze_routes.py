import base64

import pytest
from fastapi.testclient import TestClient

from leadsight.adapters.cache import CoordinateCache
from leadsight.domain.types import LeadCategory, PropertyCandidate
from leadsight.entrypoints.fastapi_app import create_app
from leadsight.service_layer.formatter import CATEGORY_CSV_HEADERS, CSV_HEADERS
from leadsight.service_layer.vision_verifier import VisionVerifier

from fakes import FakeImagery, FakeListings, FakeProvider, backyard_json, make_candidate, pool_json


def _prop(i: int, **overrides):
    body = {
        "zpid": f"z{i}",
        "latitude": 30.0 + i / 1000,
        "longitude": -97.0 - i / 1000,
        "address": f"{i} Test St, Austin, TX 78701",
        "zillow_data": {"has_pool": True},
    }
    body.update(overrides)
    return body


def _no_coords(pid: str) -> PropertyCandidate:
    return PropertyCandidate(id=pid, address=f"{pid} Unmapped Rd", latitude=None, longitude=None)


@pytest.fixture
def listings() -> FakeListings:
    located = [make_candidate(i, has_pool=True) for i in range(1, 6)]
    return FakeListings(
        {0: [_no_coords("n1"), *located]},
        details={"z1": make_candidate(1, has_pool=True)},
    )


def _client(listings: FakeListings, provider: FakeProvider) -> TestClient:
    app = create_app(
        cache=CoordinateCache(),
        listings=listings,
        verifier=VisionVerifier(FakeImagery(), [provider]),
        run_scheduler=False,
    )
    return TestClient(app)


@pytest.fixture
def pool_provider() -> FakeProvider:
    return FakeProvider("openai", pool_json(True, 90))


@pytest.fixture
def client(listings, pool_provider):
    with _client(listings, pool_provider) as c:
        yield c


def test_analyze_pool_single_property(client):
    r = client.post("/leads/analyze-pool", json=_prop(1))
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["metadata"]["analysis_type"] == "PoolLeadGen"
    data = body["data"]
    assert data["location"] == "TX 78701"
    assert data["count"] == 1
    lead = data["leads"][0]
    assert lead["zpid"] == "z1"
    assert lead["vision"]["pool_present"] is True
    assert lead["quality_report"]["score"] == "high"


def test_analyze_single_property_errors_map_to_status(client, pool_provider):
    r = client.post("/leads/analyze-pool", json=_prop(1, zpid=""))
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_INPUT"

    r = client.post("/leads/analyze-pool", json=_prop(1, address=None))
    assert r.status_code == 400

    r = client.post("/leads/analyze-pool", json=_prop(1, latitude=95))
    assert r.status_code == 400
    assert pool_provider.calls == []


def test_analyze_list_collects_per_item_errors_as_partial(client, pool_provider):
    props = [_prop(1), _prop(2, latitude="north"), _prop(3), _prop(4, address="  ")]
    r = client.post("/leads/analyze-pool", json={"properties": props})

    assert r.status_code == 207
    body = r.json()
    assert body["success"] is False
    assert [e["property_index"] for e in body["errors"]] == [1, 3]
    assert [e["zpid"] for e in body["errors"]] == ["z2", "z4"]
    assert "latitude" in body["errors"][0]["error"]
    assert [lead["zpid"] for lead in body["data"]["leads"]] == ["z1", "z3"]
    assert body["data"]["statistics"]["validation_rate"] == 50.0
    assert len(pool_provider.calls) == 2


def test_analyze_list_without_errors_is_200(client):
    r = client.post("/leads/analyze-pool", json={"properties": [_prop(1), _prop(2)]})
    assert r.status_code == 200
    assert r.json()["success"] is True
    assert r.json()["errors"] == []
    assert r.json()["data"]["count"] == 2


def test_analyze_keeps_properties_the_batch_would_reject(listings):
    # no pool seen: the batch drops it, ad-hoc analysis still reports it
    with _client(listings, FakeProvider("openai", pool_json(False, 92))) as c:
        r = c.post("/leads/analyze-pool", json=_prop(1))
    assert r.status_code == 200
    lead = r.json()["data"]["leads"][0]
    assert lead["vision"]["pool_present"] is False
    assert lead["quality_report"]["discrepancy"]["type"] == "pool_mismatch"
    assert lead["quality_report"]["flagged"] is True


def test_analyze_backyard_list(listings):
    answer = backyard_json(empty=True, underdeveloped=True, free_area="high", potential="high", confidence=80)
    with _client(listings, FakeProvider("groq", answer)) as c:
        r = c.post("/leads/analyze-backyard", json={"properties": [_prop(1), _prop(2)]})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["lead_type"] == "BackyardBoost"
    assert [lead["vision"]["empty_backyard"] for lead in data["leads"]] == [True, True]
    assert data["csv"]["filename"].startswith("backyardboost_leads_")


def test_search_and_analyze_pool_skips_unmapped_and_honors_count(client, listings, pool_provider):
    r = client.post(
        "/leads/search-and-analyze-pool",
        json={"location": "Austin, TX", "filters": {"minPrice": 0, "maxPrice": 500000}, "count": 3},
    )
    assert r.status_code == 200
    data = r.json()["data"]
    assert [lead["zpid"] for lead in data["leads"]] == ["z1", "z2", "z3"]
    assert data["statistics"]["candidates_found"] == 6
    assert data["statistics"]["price_bands_searched"] == 1
    assert len(pool_provider.calls) == 3
    assert len(listings.calls) == 1
    assert listings.calls[0][1].max_price == 500000


def test_search_and_analyze_without_count_analyzes_every_located_result(client, pool_provider):
    r = client.post("/leads/search-and-analyze-pool", json={"location": "Austin, TX"})
    assert r.json()["data"]["count"] == 5
    assert len(pool_provider.calls) == 5


def test_search_and_analyze_empty_search_returns_header_only_csv(client, listings):
    listings.bands = {}
    r = client.post("/leads/search-and-analyze-pool", json={"location": "Nowhere"})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["count"] == 0
    assert data["leads"] == []
    text = base64.b64decode(data["csv"]["base64"]).decode("utf-8")
    assert text == ",".join(CSV_HEADERS + CATEGORY_CSV_HEADERS[LeadCategory.pool_check])


def test_search_and_analyze_needs_a_lead_type_and_location(client, listings):
    r = client.post("/leads/search-and-analyze", json={"location": "Austin, TX"})
    assert r.status_code == 400
    r = client.post("/leads/search-and-analyze", json={"location": "", "lead_type": "PoolLeadGen"})
    assert r.status_code == 400
    assert listings.calls == []

    r = client.post("/leads/search-and-analyze", json={"location": "Austin, TX", "lead_type": "PoolLeadGen", "count": 2})
    assert r.status_code == 200
    assert r.json()["data"]["lead_type"] == "PoolLeadGen"
    assert r.json()["data"]["count"] == 2


def test_search_and_analyze_backyard_records_wrong_shape_as_invalid(client):
    # a pool-shaped answer does not parse as a backyard analysis
    r = client.post("/leads/search-and-analyze-backyard", json={"location": "Austin, TX", "count": 2})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["count"] == 0
    assert [x["id"] for x in data["invalid"]] == ["z1", "z2"]


def test_property_details_is_cached(client, listings):
    r = client.get("/listings/z1")
    assert r.status_code == 200
    assert r.json()["data"]["id"] == "z1"
    assert r.json()["data"]["attributes"] == {"has_pool": True}

    client.get("/listings/z1")
    assert listings.detail_calls == ["z1"]


def test_unknown_property_is_404(client):
    r = client.get("/listings/z999")
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "NO_PROPERTIES_FOUND"
