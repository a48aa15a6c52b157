# scripts/smoke_batch_leads.py
import asyncio
import logging
import sys

from leadsight.adapters.cache import CoordinateCache
from leadsight.adapters.clients.zillow_listings import ZillowListingsClient
from leadsight.service_layer.batch_leads import BatchLeadOrchestrator
from leadsight.service_layer.vision_verifier import VisionVerifier


async def main(location: str, lead_type: str, requested: int) -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(name)s:%(message)s")
    logging.getLogger("httpx").setLevel(logging.WARNING)

    orch = BatchLeadOrchestrator(ZillowListingsClient(), VisionVerifier.from_settings(), CoordinateCache())
    result = await orch.get_batch_leads(location, lead_type, requested)

    print(result.status, f"{result.delivered_leads}/{result.requested_leads}", result.statistics)
    for lead in result.leads:
        r = lead.quality_report
        print(lead.candidate.id, lead.candidate.address, r.quality_score.value, r.confidence, r.recommendation)


if __name__ == "__main__":
    loc = sys.argv[1] if len(sys.argv) > 1 else "Austin, TX"
    lt = sys.argv[2] if len(sys.argv) > 2 else "PoolLeadGen"
    n = int(sys.argv[3]) if len(sys.argv) > 3 else 10
    asyncio.run(main(loc, lt, n))
