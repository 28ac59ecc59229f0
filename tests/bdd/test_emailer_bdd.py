from __future__ import annotations

import asyncio

import emailer.main as emailer_main
import pytest
from fastapi.testclient import TestClient
from pytest_bdd import given, scenario, then, when

pytestmark = pytest.mark.bdd


class FakeWorker:
    def __init__(self) -> None:
        self.jobs: list[emailer_main.EmailJob] = []
        self.failed: list = []

    async def run(self) -> None:
        await asyncio.Event().wait()

    async def enqueue(self, job: emailer_main.EmailJob) -> int:
        self.jobs.append(job)
        return len(self.jobs)


@scenario("features/emailer.feature", "Queue an email for each recipient")
def test_queue_email_for_each_recipient() -> None:
    pass


@pytest.fixture
def context() -> dict[str, object]:
    return {}


@given("two email recipients")
def given_email_request_payload(
    context: dict[str, object], monkeypatch: pytest.MonkeyPatch
) -> None:
    fake_worker = FakeWorker()
    monkeypatch.setattr(emailer_main, "worker", fake_worker)
    context["worker"] = fake_worker
    context["payload"] = {
        "recipients": ["one@example.com", "two@example.com"],
        "subject": "Verify your email",
        "html": "<h3>Your Otp Is 123456</h3>",
    }


@when("the email endpoint is called", target_fixture="response")
def when_email_endpoint_is_called(context: dict[str, object]):
    with TestClient(emailer_main.app) as client:
        return client.post("/emails", json=context["payload"])


@then("the email endpoint responds with queued status")
def then_email_endpoint_reports_success(response) -> None:
    assert response.status_code == 200
    assert response.json()["status"] == "queued"
    assert response.json()["queued_jobs"] == 2


@then("one email job is queued per recipient")
def then_one_job_per_recipient(context: dict[str, object]) -> None:
    fake_worker = context["worker"]
    recipients = [job.recipient for job in fake_worker.jobs]
    assert recipients == ["one@example.com", "two@example.com"]
