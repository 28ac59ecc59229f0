from __future__ import annotations

import asyncio
import contextlib

from common.utils import now_utc_iso
from fastapi import FastAPI
from pydantic import BaseModel, EmailStr, Field

from emailer.transport import SmtpSender
from emailer.worker import EmailJob, EmailWorker

app = FastAPI(title="Job Search Emailer", version="0.2.0")
worker = EmailWorker(sender=SmtpSender.from_env())
worker_task: asyncio.Task | None = None


class EmailRequest(BaseModel):
    recipients: list[EmailStr] = Field(default_factory=list, min_length=1)
    subject: str = Field(..., min_length=1, max_length=200)
    html: str = Field(..., min_length=1)


class FailedEmailItem(BaseModel):
    recipient: str
    subject: str
    attempts: int
    error: str
    failed_at: str


@app.on_event("startup")
async def startup() -> None:
    global worker_task
    worker_task = asyncio.create_task(worker.run())


@app.on_event("shutdown")
async def shutdown() -> None:
    if worker_task:
        worker_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await worker_task


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "service": "emailer"}


@app.post("/emails")
async def queue_emails(payload: EmailRequest) -> dict[str, str | int]:
    queued = 0
    for recipient in payload.recipients:
        queued = await worker.enqueue(
            EmailJob(recipient=str(recipient), subject=payload.subject, html=payload.html)
        )

    return {
        "status": "queued",
        "queued_jobs": queued,
        "scheduled_at": now_utc_iso(),
    }


@app.get("/emails/failed", response_model=list[FailedEmailItem])
async def failed_emails() -> list[FailedEmailItem]:
    return [
        FailedEmailItem(
            recipient=item.recipient,
            subject=item.subject,
            attempts=item.attempts,
            error=item.error,
            failed_at=item.failed_at,
        )
        for item in getattr(worker, "failed", [])
    ]
