from __future__ import annotations

import asyncio
from datetime import timedelta
from pathlib import Path

import pytest
from common.utils import utc_now
from portal.auth import TokenAuthenticator, static_secrets
from portal.chat import ChatSessionHandler
from portal.models import DeleteChatPayload, SendMessagePayload
from portal.registry import ConnectionRegistry
from portal.repository import PortalRepository
from portal.scheduler import ChatDeletionScheduler
from pytest_bdd import given, parsers, scenario, then, when

pytestmark = pytest.mark.bdd


@scenario("features/chat.feature", "A plain user cannot open a conversation")
def test_plain_user_cannot_open_conversation() -> None:
    pass


@scenario("features/chat.feature", "A company owner opens a conversation with an offline applicant")
def test_owner_opens_conversation() -> None:
    pass


@scenario("features/chat.feature", "A scheduled deletion removes the conversation after a day")
def test_scheduled_deletion() -> None:
    pass


@pytest.fixture
def context(tmp_path: Path):
    repository = PortalRepository(str(tmp_path / "chat-bdd.sqlite3"))
    repository.connect()
    registry = ConnectionRegistry()
    armed_at = utc_now()
    scheduler = ChatDeletionScheduler(
        repository, registry, delay=timedelta(hours=24), clock=lambda: armed_at
    )
    authenticator = TokenAuthenticator(
        repository,
        static_secrets("bdd-access-secret-0123456789", "bdd-refresh-secret-0123456789"),
    )
    yield {
        "repository": repository,
        "scheduler": scheduler,
        "handler": ChatSessionHandler(repository, authenticator, registry, scheduler),
        "armed_at": armed_at,
    }
    repository.close()


def create_user(repository: PortalRepository, first_name: str):
    return repository.create_user(
        first_name=first_name,
        last_name="Example",
        email=f"{first_name.lower()}@example.com",
        password_hash="not-a-real-hash",
    )


def send(context: dict, sender, body: str) -> dict:
    payload = SendMessagePayload(body=body, receiver_id=context["applicant"].user_id)
    return asyncio.run(context["handler"].send_message(sender, payload))


@given("a plain user and an applicant")
def given_plain_user(context: dict) -> None:
    context["sender"] = create_user(context["repository"], "Plain")
    context["applicant"] = create_user(context["repository"], "Applicant")


@given("a company owner and an applicant")
def given_company_owner(context: dict) -> None:
    repository = context["repository"]
    owner = create_user(repository, "Owner")
    repository.create_company(
        owner_id=owner.user_id,
        company_name="Acme",
        company_email="jobs@acme.example.com",
        description=None,
        hr_ids=[],
    )
    context["sender"] = repository.get_identity_or_raise(owner.user_id)
    context["applicant"] = create_user(repository, "Applicant")


@given(parsers.parse('the owner has sent "{body}" to the applicant'))
def given_owner_has_sent(context: dict, body: str) -> None:
    reply = send(context, context["sender"], body)
    assert reply["event"] == "successMessage"


@when(parsers.parse('the plain user sends "{body}" to the applicant'))
@when(parsers.parse('the owner sends "{body}" to the applicant'))
def when_sender_sends(context: dict, body: str) -> None:
    context["reply"] = send(context, context["sender"], body)


@when("the owner schedules deletion of the chat")
def when_owner_schedules_deletion(context: dict) -> None:
    payload = DeleteChatPayload(receiver_id=context["applicant"].user_id)
    context["reply"] = asyncio.run(
        context["handler"].schedule_deletion(context["sender"], payload)
    )
    assert context["reply"]["event"] == "deleteChatScheduled"


@then(parsers.parse('the sender receives the error "{message}"'))
def then_sender_receives_error(context: dict, message: str) -> None:
    assert context["reply"] == {"event": "error", "data": {"message": message}}


@then("the sender receives a success acknowledgment")
def then_sender_receives_success(context: dict) -> None:
    assert context["reply"]["event"] == "successMessage"


@then("no conversation exists between them")
def then_no_conversation(context: dict) -> None:
    repository = context["repository"]
    assert repository.find_conversation(
        context["sender"].user_id, context["applicant"].user_id
    ) is None


@then(parsers.parse('the conversation holds the messages "{bodies}"'))
def then_conversation_holds(context: dict, bodies: str) -> None:
    history = context["repository"].fetch_history(
        context["applicant"].user_id, context["sender"].user_id
    )
    assert [item.body for item in history.messages] == bodies.split(",")


@then("the conversation still exists after 23 hours and 59 minutes")
def then_conversation_still_exists(context: dict) -> None:
    moment = context["armed_at"] + timedelta(hours=23, minutes=59)
    assert asyncio.run(context["scheduler"].run_due(moment)) == []
    assert context["repository"].find_conversation(
        context["sender"].user_id, context["applicant"].user_id
    ) is not None


@then("the conversation is gone after 24 hours")
def then_conversation_is_gone(context: dict) -> None:
    moment = context["armed_at"] + timedelta(hours=24)
    assert len(asyncio.run(context["scheduler"].run_due(moment))) == 1
    assert context["repository"].find_conversation(
        context["sender"].user_id, context["applicant"].user_id
    ) is None
