from __future__ import annotations

import asyncio
import itertools
import re
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from common.utils import utc_now
from emailer.worker import EmailJob
from fastapi.testclient import TestClient
from portal.auth import TokenAuthenticator, static_secrets
from portal.main import create_app
from portal.models import Identity
from portal.repository import PortalRepository
from portal.settings import PortalSettings

ACCESS_SECRET = "access-secret-for-tests-0123456789"
REFRESH_SECRET = "refresh-secret-for-tests-0123456789"


class RecordingConnection:
    def __init__(self) -> None:
        self.accepted = False
        self.closed_code: int | None = None
        self.sent: list[dict[str, Any]] = []

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data: Any) -> None:
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.closed_code = code

    def events(self) -> list[str]:
        return [frame["event"] for frame in self.sent]


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or utc_now()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture
def repository(tmp_path: Path):
    repo = PortalRepository(str(tmp_path / "portal.sqlite3"))
    repo.connect()
    yield repo
    repo.close()


@pytest.fixture
def make_user(repository: PortalRepository) -> Callable[..., Identity]:
    counter = itertools.count(1)

    def factory(first_name: str = "User", last_name: str = "Test") -> Identity:
        index = next(counter)
        return repository.create_user(
            first_name=first_name,
            last_name=last_name,
            email=f"{first_name.lower()}{index}@example.com",
            password_hash="not-a-real-hash",
        )

    return factory


@pytest.fixture
def make_owner(
    repository: PortalRepository, make_user: Callable[..., Identity]
) -> Callable[..., Identity]:
    counter = itertools.count(1)

    def factory(first_name: str = "Owner", hr_ids: list[str] | None = None) -> Identity:
        owner = make_user(first_name, "Boss")
        index = next(counter)
        repository.create_company(
            owner_id=owner.user_id,
            company_name=f"Company {index} of {owner.user_id}",
            company_email=f"company{index}.{owner.user_id}@example.com",
            description=None,
            hr_ids=hr_ids or [],
        )
        return repository.get_identity_or_raise(owner.user_id)

    return factory


@pytest.fixture
def authenticator(repository: PortalRepository) -> TokenAuthenticator:
    return TokenAuthenticator(repository, static_secrets(ACCESS_SECRET, REFRESH_SECRET))


@pytest.fixture
def connection_factory() -> Callable[[], RecordingConnection]:
    return RecordingConnection


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class FakeMailer:
    def __init__(self) -> None:
        self.jobs: list[EmailJob] = []

    async def run(self) -> None:
        await asyncio.Event().wait()

    async def enqueue(self, job: EmailJob) -> int:
        self.jobs.append(job)
        return len(self.jobs)

    def last_code(self, recipient: str) -> str:
        for job in reversed(self.jobs):
            if job.recipient == recipient:
                return re.search(r"\d{6}", job.html).group(0)
        raise AssertionError(f"no email sent to {recipient}")


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def client(tmp_path: Path, mailer: FakeMailer):
    settings = PortalSettings.from_env(
        database_path=str(tmp_path / "portal-app.sqlite3"),
        access_token_secret=ACCESS_SECRET,
        refresh_token_secret=REFRESH_SECRET,
    )
    with TestClient(create_app(settings, email_worker=mailer)) as test_client:
        yield test_client


@pytest.fixture
def sign_up_user(client: TestClient, mailer: FakeMailer) -> Callable[..., dict[str, str]]:
    counter = itertools.count(1)

    def factory(first_name: str = "User", last_name: str = "Test") -> dict[str, str]:
        email = f"{first_name.lower()}.{next(counter)}@example.com"
        password = "Secret1@pass"
        created = client.post(
            "/auth/signup",
            json={
                "first_name": first_name,
                "last_name": last_name,
                "email": email,
                "password": password,
                "confirm_password": password,
            },
        )
        assert created.status_code == 201
        confirmed = client.put(
            "/auth/confirm-email", json={"email": email, "code": mailer.last_code(email)}
        )
        assert confirmed.status_code == 200
        signed_in = client.post("/auth/signin", json={"email": email, "password": password})
        assert signed_in.status_code == 200
        tokens = signed_in.json()["token"]
        return {
            "user_id": created.json()["user_id"],
            "email": email,
            "password": password,
            "access_token": tokens["access_token"],
            "refresh_token": tokens["refresh_token"],
        }

    return factory
