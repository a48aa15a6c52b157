import asyncio

import pytest

from leadsight.adapters.clients.base import SearchFilters
from leadsight.domain.errors import InvalidInput, InvalidRequestSize, ListingsUnavailable, NoPropertiesFound
from leadsight.domain.types import BatchResult, CategoryFailure, Lead, LeadCategory, PropertyCandidate, SatelliteImage
from leadsight.service_layer.batch_leads import PRICE_BANDS, bands_to_search, fetch_target

from fakes import FakeListings, FakeProvider, backyard_json, by_latitude, down, make_candidate, pool_json

POOL = LeadCategory.pool_check
YARD = LeadCategory.backyard_check


def _lat(i: int) -> float:
    return round(make_candidate(i).latitude, 6)


@pytest.mark.parametrize("requested,target,bands", [(10, 25, 2), (25, 40, 2), (50, 65, 4), (100, 115, 4)])
def test_fetch_target_and_band_count(requested, target, bands):
    assert fetch_target(requested, 15) == target
    assert bands_to_search(target, 20) == bands


def test_price_bands_are_ascending_and_disjoint():
    assert PRICE_BANDS[0] == (0, 500_000)
    for (lo_a, hi_a), (lo_b, _) in zip(PRICE_BANDS, PRICE_BANDS[1:]):
        assert lo_a < hi_a < lo_b


@pytest.mark.asyncio
async def test_scenario_d_partial_delivery_is_not_an_error(make_orchestrator):
    cands = [make_candidate(i) for i in range(8)]
    answers = {_lat(i): pool_json(True, 85) for i in range(6)}
    answers.update({_lat(i): pool_json(False, 90) for i in (6, 7)})
    listings = FakeListings({0: cands})
    orch = make_orchestrator(listings, FakeProvider("openai", by_latitude(answers)))

    result = await orch.get_batch_leads("Austin, TX", POOL, 10)

    assert result.delivered_leads == 6
    assert result.requested_leads == 10
    assert result.status == "partial"
    assert result.statistics.candidates_considered == 8
    assert result.statistics.validation_rate == 75.0
    assert result.statistics.price_bands_searched == 2
    assert result.statistics.average_confidence == 85.0
    assert [x.reason for x in result.invalid] == ["no pool detected", "no pool detected"]


@pytest.mark.asyncio
async def test_scenario_e_blank_location_fails_before_any_call(make_orchestrator):
    listings = FakeListings({0: [make_candidate(1)]})
    primary = FakeProvider("openai", pool_json())
    orch = make_orchestrator(listings, primary)

    for bad in ("", "   "):
        with pytest.raises(InvalidInput):
            await orch.get_batch_leads(bad, POOL, 10)
    assert listings.calls == []
    assert primary.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("size", [0, 5, 11, 101, True, "10", None])
async def test_request_size_must_be_enumerated(make_orchestrator, size):
    listings = FakeListings({0: [make_candidate(1)]})
    orch = make_orchestrator(listings)
    with pytest.raises(InvalidRequestSize):
        await orch.get_batch_leads("Austin, TX", POOL, size)
    assert listings.calls == []


@pytest.mark.asyncio
async def test_unknown_lead_type_is_invalid_input(make_orchestrator):
    orch = make_orchestrator(FakeListings())
    with pytest.raises(InvalidInput):
        await orch.get_batch_leads("Austin, TX", "SolarCheck", 10)


@pytest.mark.asyncio
async def test_no_candidates_anywhere_raises(make_orchestrator):
    listings = FakeListings({})
    orch = make_orchestrator(listings)
    with pytest.raises(NoPropertiesFound):
        await orch.get_batch_leads("Nowhere, ZZ", POOL, 10)
    assert len(listings.calls) == 2


@pytest.mark.asyncio
async def test_band_failure_is_skipped_and_dedupe_applies(make_orchestrator):
    listings = FakeListings(
        {
            0: ListingsUnavailable("listings provider returned status 503"),
            500_001: [make_candidate(1), make_candidate(2), make_candidate(1)],
        }
    )
    orch = make_orchestrator(listings, FakeProvider("openai", pool_json()))

    result = await orch.get_batch_leads("Austin, TX", POOL, 10)

    assert result.statistics.price_bands_searched == 2
    assert result.statistics.candidates_found == 2
    assert [lead.candidate.id for lead in result.leads] == ["z1", "z2"]


@pytest.mark.asyncio
async def test_search_uses_category_bedroom_filters(make_orchestrator):
    listings = FakeListings({0: [make_candidate(1)]})
    orch = make_orchestrator(listings, FakeProvider("openai", "{}"))

    await orch.get_batch_leads("Austin, TX", YARD, 10)

    _, filters = listings.calls[0]
    assert filters == SearchFilters(min_price=0, max_price=500_000, min_bedrooms=2, max_bedrooms=6)


@pytest.mark.asyncio
async def test_early_stop_caps_pool_and_vision_calls(make_orchestrator):
    listings = FakeListings({0: [make_candidate(i) for i in range(40)]})
    primary = FakeProvider("openai", pool_json(True, 90))
    orch = make_orchestrator(listings, primary)

    result = await orch.get_batch_leads("Austin, TX", POOL, 10)

    assert len(listings.calls) == 1
    assert result.statistics.candidates_found == 25
    assert result.status == "satisfied"
    assert [lead.candidate.id for lead in result.leads] == [f"z{i}" for i in range(10)]
    assert len(primary.calls) == 10


class _SlowFirstProvider(FakeProvider):
    """Earlier candidates answer later, so arrival order is reversed within a window."""

    async def classify(self, image: SatelliteImage, prompt: str) -> str:
        i = int(round((image.latitude - 30.0) * 1000))
        await asyncio.sleep(max(0, 30 - i) / 1000)
        return await super().classify(image, prompt)


@pytest.mark.asyncio
async def test_concurrent_validation_keeps_discovery_order_and_cost(make_orchestrator):
    # even-numbered candidates have pools; a one-by-one loop stops after z18
    cands = [make_candidate(i) for i in range(25)]
    answers = {_lat(i): pool_json(i % 2 == 0, 88) for i in range(25)}
    provider = _SlowFirstProvider("openai", by_latitude(answers))
    orch = make_orchestrator(FakeListings({0: cands}), provider, concurrency=5)

    result = await orch.get_batch_leads("Austin, TX", POOL, 10)

    assert [lead.candidate.id for lead in result.leads] == [f"z{i}" for i in range(0, 20, 2)]
    assert result.statistics.candidates_considered == 19
    assert len(provider.calls) == 19


@pytest.mark.asyncio
async def test_per_candidate_failures_do_not_abort_batch(make_orchestrator):
    cands = [
        make_candidate(0),
        PropertyCandidate(id="nocoords", address="1 Void Rd", latitude=None, longitude=-97.0),
        make_candidate(2),
        make_candidate(3),
    ]
    answers = {_lat(0): pool_json(True, 70), _lat(3): "not json at all"}
    # z2 has no scripted answer -> every provider is down for it
    orch = make_orchestrator(
        FakeListings({0: cands}),
        FakeProvider("openai", by_latitude(answers)),
        down("groq"),
    )

    result = await orch.get_batch_leads("Austin, TX", POOL, 10)

    assert [lead.candidate.id for lead in result.leads] == ["z0"]
    reasons = {x.id: x.reason for x in result.invalid}
    assert reasons["nocoords"] == "missing coordinates"
    assert reasons["z2"].startswith("VisionUnavailable")
    assert reasons["z3"].startswith("MalformedAnalysis")
    assert result.statistics.candidates_considered == 4
    assert result.statistics.validation_rate == 25.0


@pytest.mark.asyncio
async def test_vision_results_are_reused_from_cache(make_orchestrator, cache, imagery):
    listings = FakeListings({0: [make_candidate(i) for i in range(3)]})
    primary = FakeProvider("openai", pool_json(True, 90))
    orch = make_orchestrator(listings, primary)

    await orch.validate_visual(_lat(0), make_candidate(0).longitude, "PoolLeadGen")
    assert len(primary.calls) == 1

    first = await orch.get_batch_leads("Austin, TX", POOL, 10)
    assert len(primary.calls) == 3
    second = await orch.get_batch_leads("Austin, TX", POOL, 10)

    assert len(primary.calls) == 3
    assert len(imagery.calls) == 3
    assert len(listings.calls) == 2
    assert [lead.candidate.id for lead in second.leads] == [lead.candidate.id for lead in first.leads]


@pytest.mark.asyncio
async def test_backyard_validity_predicate(make_orchestrator):
    cands = [make_candidate(i) for i in range(4)]
    answers = {
        _lat(0): backyard_json(confidence=80),
        _lat(1): backyard_json(empty=True, confidence=80),
        _lat(2): backyard_json(surface="concrete", confidence=80),
        _lat(3): backyard_json(confidence=59),
    }
    orch = make_orchestrator(FakeListings({0: cands}), FakeProvider("openai", by_latitude(answers)))

    result = await orch.get_batch_leads("Austin, TX", YARD, 10)

    assert [lead.candidate.id for lead in result.leads] == ["z0"]
    assert [x.id for x in result.invalid] == ["z1", "z2", "z3"]
    assert result.leads[0].quality_report.confidence == 80


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "category,text",
    [(POOL, lambda conf: pool_json(True, conf)), (YARD, lambda conf: backyard_json(confidence=conf))],
)
async def test_confidence_60_is_accepted_and_59_rejected(make_orchestrator, category, text):
    cands = [make_candidate(0), make_candidate(1)]
    answers = {_lat(0): text(60), _lat(1): text(59)}
    orch = make_orchestrator(FakeListings({0: cands}), FakeProvider("openai", by_latitude(answers)))

    result = await orch.get_batch_leads("Austin, TX", category, 10)

    assert [lead.candidate.id for lead in result.leads] == ["z0"]
    assert result.leads[0].quality_report.confidence == 60
    assert [x.id for x in result.invalid] == ["z1"]
    assert "59 below 60" in result.invalid[0].reason


@pytest.mark.asyncio
async def test_analyze_many_keeps_input_order_and_isolates_errors(make_orchestrator):
    cands = [
        make_candidate(0),
        PropertyCandidate(id="z1", address="", latitude=30.1, longitude=-97.1),
        make_candidate(2),
        PropertyCandidate(id="z3", address="3 Test St", latitude=None, longitude=None),
    ]
    answers = {_lat(0): pool_json(False, 90), _lat(2): pool_json(True, 70)}
    primary = FakeProvider("openai", by_latitude(answers))
    orch = make_orchestrator(FakeListings(), primary, concurrency=2)

    outcomes = await orch.analyze_many(cands, POOL)

    assert [isinstance(o, Lead) for o in outcomes] == [True, False, True, False]
    assert [o.id for o in outcomes[1::2]] == ["z1", "z3"]
    assert outcomes[0].validation.analysis.has_pool is False
    assert outcomes[1].reason.startswith("InvalidInput")
    assert outcomes[3].reason.startswith("InvalidInput")
    assert len(primary.calls) == 2

    result = orch.analysis_result("Austin, TX", POOL, outcomes)
    assert result.delivered_leads == 2
    assert result.statistics.validation_rate == 50.0
    assert result.statistics.average_confidence == 80.0


@pytest.mark.asyncio
async def test_search_and_analyze_runs_one_unbanded_search(make_orchestrator):
    listings = FakeListings({0: [make_candidate(i) for i in range(30)]})
    orch = make_orchestrator(listings, FakeProvider("openai", pool_json(True, 90)))

    result = await orch.search_and_analyze("Austin, TX", POOL, SearchFilters(min_bedrooms=4), count=4)

    assert len(listings.calls) == 1
    assert listings.calls[0][1].min_bedrooms == 4
    assert listings.calls[0][1].max_price is None
    assert result.delivered_leads == 4
    assert result.statistics.candidates_found == 30
    assert result.status == "satisfied"


class _BedroomListings(FakeListings):
    """Only answers searches with min_bedrooms == 3 (the pool filter)."""

    async def search(self, location, filters):
        self.calls.append((location, filters))
        return [make_candidate(1)] if filters.min_bedrooms == 3 else []


@pytest.mark.asyncio
async def test_multi_category_isolates_failures(make_orchestrator):
    orch = make_orchestrator(_BedroomListings(), FakeProvider("openai", pool_json(True, 90)))

    multi = await orch.get_batch_leads_multiple("Austin, TX", ["PoolLeadGen", "BackyardBoost"], 10)

    assert isinstance(multi.results[POOL], BatchResult)
    assert multi.results[POOL].delivered_leads == 1
    failure = multi.results[YARD]
    assert isinstance(failure, CategoryFailure)
    assert failure.error_type == "NoPropertiesFound"
    assert multi.success is False


@pytest.mark.asyncio
async def test_multi_category_validates_inputs(make_orchestrator):
    orch = make_orchestrator(FakeListings({0: [make_candidate(1)]}))
    with pytest.raises(InvalidInput):
        await orch.get_batch_leads_multiple("Austin, TX", [], 10)
    with pytest.raises(InvalidInput):
        await orch.get_batch_leads_multiple("Austin, TX", ["PoolLeadGen", "Nope"], 10)
    with pytest.raises(InvalidRequestSize):
        await orch.get_batch_leads_multiple("Austin, TX", ["PoolLeadGen"], 12)
