from __future__ import annotations

import asyncio
import logging

from crmsync.jobs.scheduler import build_scheduler


def _quiet_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(levelname)s:%(name)s:%(message)s",
    )

    # Quiet the usual offenders
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


async def main() -> None:
    _quiet_logging()

    scheduler = build_scheduler()
    scheduler.start()
    logging.getLogger(__name__).info("Enrichment scheduler started")

    try:
        while True:
            await asyncio.sleep(3600)
    except (KeyboardInterrupt, asyncio.CancelledError):
        scheduler.shutdown()
        logging.getLogger(__name__).info("Enrichment scheduler stopped")


if __name__ == "__main__":
    asyncio.run(main())
