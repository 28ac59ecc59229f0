from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta

from common.utils import utc_now
from fastapi.concurrency import run_in_threadpool

from portal.models import ScheduledDeletion
from portal.registry import ConnectionRegistry
from portal.repository import PortalRepository

LOGGER = logging.getLogger("jobsearch.portal.scheduler")
CHAT_DELETED_EVENT = "chatDeleted"
CHAT_DELETED_MESSAGE = "Chat history deleted after 24 hours"


class ChatDeletionScheduler:
    """Durable deferred deletion of conversations.

    Jobs live in ``scheduled_deletions``; ``run`` polls for due jobs so
    pending deletions resume after a restart.
    """

    def __init__(
        self,
        repository: PortalRepository,
        registry: ConnectionRegistry,
        *,
        delay: timedelta = timedelta(hours=24),
        poll_interval: float = 30.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.registry = registry
        self.delay = delay
        self.poll_interval = poll_interval
        self.clock = clock

    async def schedule(self, requested_by: str, counterpart: str) -> ScheduledDeletion:
        deletion = await run_in_threadpool(
            self.repository.schedule_deletion,
            requested_by=requested_by,
            counterpart=counterpart,
            due_at=self.clock() + self.delay,
        )
        LOGGER.info(
            json.dumps(
                {
                    "event": "chat_deletion_scheduled",
                    "job_id": deletion.job_id,
                    "pair_key": deletion.pair_key,
                    "due_at": deletion.due_at,
                }
            )
        )
        return deletion

    async def cancel(self, identity_id: str, counterpart: str) -> bool:
        cancelled = await run_in_threadpool(
            self.repository.cancel_deletion, identity_id, counterpart
        )
        if cancelled:
            LOGGER.info(
                json.dumps(
                    {
                        "event": "chat_deletion_cancelled",
                        "requested_by": identity_id,
                        "counterpart": counterpart,
                    }
                )
            )
        return cancelled

    async def run_due(self, now: datetime | None = None) -> list[ScheduledDeletion]:
        moment = now or self.clock()
        due = await run_in_threadpool(self.repository.list_due_deletions, moment)
        executed: list[ScheduledDeletion] = []
        for deletion in due:
            claimed = await run_in_threadpool(
                self.repository.execute_deletion,
                deletion.job_id,
                uuid.uuid4().hex,
                moment,
            )
            if not claimed:
                continue
            executed.append(deletion)
            LOGGER.info(
                json.dumps(
                    {
                        "event": "chat_deleted",
                        "job_id": deletion.job_id,
                        "pair_key": deletion.pair_key,
                    }
                )
            )
            await self._notify(deletion)
        return executed

    async def _notify(self, deletion: ScheduledDeletion) -> None:
        frame = {"event": CHAT_DELETED_EVENT, "data": {"message": CHAT_DELETED_MESSAGE}}
        for identity_id in dict.fromkeys([deletion.requested_by, deletion.counterpart]):
            connection = self.registry.resolve(identity_id)
            if connection is None:
                continue
            try:
                await connection.send_json(frame)
            except Exception:
                LOGGER.warning(
                    json.dumps(
                        {
                            "event": "chat_deleted_notify_failed",
                            "job_id": deletion.job_id,
                            "identity_id": identity_id,
                        }
                    )
                )

    async def run(self) -> None:
        while True:
            try:
                await self.run_due()
            except Exception:
                LOGGER.exception(json.dumps({"event": "chat_deletion_poll_failed"}))
            await asyncio.sleep(self.poll_interval)
