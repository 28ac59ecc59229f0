from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from datetime import datetime

from common.utils import utc_now
from fastapi.concurrency import run_in_threadpool

from portal.repository import PortalRepository

LOGGER = logging.getLogger("jobsearch.portal.housekeeping")


class Housekeeper:
    def __init__(
        self,
        repository: PortalRepository,
        *,
        interval: float = 6 * 60 * 60,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.interval = interval
        self.clock = clock

    async def sweep(self, now: datetime | None = None) -> dict[str, int]:
        moment = now or self.clock()
        revoked = await run_in_threadpool(self.repository.purge_expired_revocations, moment)
        otps = await run_in_threadpool(self.repository.purge_expired_otps, moment)
        summary = {"revoked_tokens": revoked, "otps": otps}
        LOGGER.info(json.dumps({"event": "housekeeping_sweep", **summary}))
        return summary

    async def run(self) -> None:
        while True:
            try:
                await self.sweep()
            except Exception:
                LOGGER.exception(json.dumps({"event": "housekeeping_failed"}))
            await asyncio.sleep(self.interval)
