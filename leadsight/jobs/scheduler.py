# leadsight/jobs/scheduler.py
from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..adapters.cache import CoordinateCache
from ..config import settings

log = logging.getLogger(__name__)


def _sweep(cache: CoordinateCache) -> None:
    removed = cache.sweep()
    if removed:
        log.info("cache sweep removed=%s remaining=%s", removed, len(cache))


def build_scheduler(cache: CoordinateCache, *, interval_s: int | None = None) -> AsyncIOScheduler:
    sched = AsyncIOScheduler()

    # expired entries also drop lazily on read; this bounds memory between reads
    sched.add_job(
        _sweep,
        "interval",
        seconds=int(interval_s or settings.CACHE_SWEEP_INTERVAL_S),
        args=[cache],
        id="cache_sweep",
        coalesce=True,
        max_instances=1,
    )

    return sched
