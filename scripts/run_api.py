# scripts/run_api.py
from __future__ import annotations

import logging

import uvicorn

from leadsight.config import settings


def _quiet_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(levelname)s:%(name)s:%(message)s",
    )

    # Quiet the usual offenders
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def main() -> None:
    _quiet_logging()
    uvicorn.run("leadsight.main:app", host="0.0.0.0", port=8000, log_config=None)


if __name__ == "__main__":
    main()
