# tests/conftest.py
import pytest

from leadsight.adapters.cache import CoordinateCache
from leadsight.adapters.clients.http_resilience import reset_circuits
from leadsight.service_layer.batch_leads import BatchLeadOrchestrator
from leadsight.service_layer.vision_verifier import VisionVerifier

from fakes import FakeImagery, FakeListings, FakeProvider, pool_json


@pytest.fixture(autouse=True)
def _reset_circuits():
    reset_circuits()
    yield
    reset_circuits()


@pytest.fixture
def cache() -> CoordinateCache:
    return CoordinateCache(default_ttl_s=3600)


@pytest.fixture
def imagery() -> FakeImagery:
    return FakeImagery()


@pytest.fixture
def make_orchestrator(cache, imagery):
    def _make(listings: FakeListings, *providers: FakeProvider, concurrency: int = 5) -> BatchLeadOrchestrator:
        verifier = VisionVerifier(imagery, list(providers) or [FakeProvider("primary", pool_json())])
        return BatchLeadOrchestrator(
            listings,
            verifier,
            cache,
            concurrency=concurrency,
            vision_ttl_s=1800,
            search_ttl_s=3600,
            buffer=15,
            per_band=20,
        )

    return _make
