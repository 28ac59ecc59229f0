from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from common.utils import now_utc_iso

LOGGER = logging.getLogger("jobsearch.emailer")


@dataclass
class EmailJob:
    recipient: str
    subject: str
    html: str
    attempts: int = 0
    last_error: str | None = None
    queued_at: str = field(default_factory=now_utc_iso)


@dataclass
class FailedEmail:
    recipient: str
    subject: str
    attempts: int
    error: str
    failed_at: str


EmailSender = Callable[[EmailJob], None]


class EmailWorker:
    def __init__(
        self,
        sender: EmailSender | None = None,
        *,
        max_attempts: int = 3,
        retry_delay: float = 5.0,
    ) -> None:
        self.queue: asyncio.Queue[EmailJob] = asyncio.Queue()
        self.sender = sender
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.sent = 0
        self.failed: list[FailedEmail] = []
        self._retries: set[asyncio.Task[None]] = set()

    async def enqueue(self, job: EmailJob) -> int:
        await self.queue.put(job)
        return self.queue.qsize()

    async def deliver(self, job: EmailJob) -> bool:
        job.attempts += 1
        try:
            if self.sender is None:
                LOGGER.info(
                    json.dumps(
                        {
                            "event": "email_skipped",
                            "recipient": job.recipient,
                            "subject": job.subject,
                            "reason": "no transport configured",
                        }
                    )
                )
            else:
                await asyncio.to_thread(self.sender, job)
        except Exception as exc:
            job.last_error = str(exc)
            LOGGER.warning(
                json.dumps(
                    {
                        "event": "email_failed",
                        "recipient": job.recipient,
                        "subject": job.subject,
                        "attempt": job.attempts,
                        "error": job.last_error,
                    }
                )
            )
            return False

        self.sent += 1
        return True

    def _schedule_retry(self, job: EmailJob) -> None:
        task = asyncio.create_task(self._requeue_later(job))
        self._retries.add(task)
        task.add_done_callback(self._retries.discard)

    async def _requeue_later(self, job: EmailJob) -> None:
        # The slot from the original get stays unfinished until the job is back on the queue.
        try:
            await asyncio.sleep(self.retry_delay)
            await self.queue.put(job)
        finally:
            self.queue.task_done()

    async def run(self) -> None:
        try:
            while True:
                job = await self.queue.get()
                retrying = False
                try:
                    if await self.deliver(job):
                        continue
                    if job.attempts < self.max_attempts:
                        self._schedule_retry(job)
                        retrying = True
                        continue
                    self.failed.append(
                        FailedEmail(
                            recipient=job.recipient,
                            subject=job.subject,
                            attempts=job.attempts,
                            error=job.last_error or "unknown error",
                            failed_at=now_utc_iso(),
                        )
                    )
                    LOGGER.error(
                        json.dumps(
                            {
                                "event": "email_dropped",
                                "recipient": job.recipient,
                                "subject": job.subject,
                                "attempts": job.attempts,
                            }
                        )
                    )
                finally:
                    if not retrying:
                        self.queue.task_done()
        finally:
            for task in list(self._retries):
                task.cancel()
