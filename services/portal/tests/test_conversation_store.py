from __future__ import annotations

import pytest
from common.utils import now_utc_iso
from portal.errors import ConversationNotFound
from portal.models import Message

pytestmark = pytest.mark.integration


def message(body: str, sender_id: str) -> Message:
    return Message(body=body, sender_id=sender_id, sent_at=now_utc_iso())


def test_append_without_conversation_raises(repository, make_user) -> None:
    first, second = make_user(), make_user()

    with pytest.raises(ConversationNotFound):
        repository.append_message(first.user_id, second.user_id, message("hi", first.user_id))

    assert repository.find_conversation(first.user_id, second.user_id) is None


def test_pair_is_unordered_for_lookup_and_append(repository, make_user) -> None:
    hr, applicant = make_user("Hr"), make_user("Applicant")
    created = repository.create_conversation(
        hr.user_id, applicant.user_id, message("Hello", hr.user_id)
    )

    appended = repository.append_message(
        applicant.user_id, hr.user_id, message("Hi there", applicant.user_id)
    )

    assert appended.conversation_id == created.conversation_id
    assert repository.find_conversation(applicant.user_id, hr.user_id).conversation_id == (
        created.conversation_id
    )
    assert [item.body for item in appended.messages] == ["Hello", "Hi there"]


def test_history_is_in_append_order_with_display_names(repository, make_user) -> None:
    hr = make_user("Grace", "Hopper")
    applicant = make_user("Alan", "Turing")
    repository.create_conversation(hr.user_id, applicant.user_id, message("one", hr.user_id))
    for index, body in enumerate(["two", "three", "four"]):
        sender = applicant if index % 2 == 0 else hr
        repository.append_message(hr.user_id, applicant.user_id, message(body, sender.user_id))

    history = repository.fetch_history(applicant.user_id, hr.user_id)

    assert [item.body for item in history.messages] == ["one", "two", "three", "four"]
    assert history.messages[0].sender_name == "Grace Hopper"
    assert history.messages[-1].sender_name == "Alan Turing"
    assert history.messages[1].sender_name == "Alan Turing"
    assert {participant.name for participant in history.participants} == {
        "Grace Hopper",
        "Alan Turing",
    }


def test_history_of_missing_conversation_is_empty(repository, make_user) -> None:
    first, second = make_user(), make_user()

    history = repository.fetch_history(first.user_id, second.user_id)

    assert history.conversation_id is None
    assert history.messages == []
    assert history.participants == []


def test_concurrent_creation_converges_on_one_conversation(repository, make_user) -> None:
    first, second = make_user(), make_user()

    one = repository.create_conversation(first.user_id, second.user_id, message("a", first.user_id))
    two = repository.create_conversation(
        second.user_id, first.user_id, message("b", second.user_id)
    )

    assert one.conversation_id == two.conversation_id
    assert [item.body for item in two.messages] == ["a", "b"]
    count = repository.connection.execute("SELECT COUNT(*) FROM conversations").fetchone()[0]
    assert count == 1


def test_remove_is_idempotent_and_drops_messages(repository, make_user) -> None:
    first, second = make_user(), make_user()
    repository.create_conversation(first.user_id, second.user_id, message("a", first.user_id))

    assert repository.remove_conversation(second.user_id, first.user_id) is True
    assert repository.remove_conversation(first.user_id, second.user_id) is False
    assert repository.find_conversation(first.user_id, second.user_id) is None
    remaining = repository.connection.execute("SELECT COUNT(*) FROM messages").fetchone()[0]
    assert remaining == 0


def test_hr_and_owner_detection(repository, make_user, make_owner) -> None:
    hr = make_user("Hr")
    plain = make_user("Plain")
    owner = make_owner(hr_ids=[hr.user_id])

    assert repository.is_hr_or_company_owner(owner.user_id)
    assert repository.is_hr_or_company_owner(hr.user_id)
    assert not repository.is_hr_or_company_owner(plain.user_id)
    assert repository.get_identity_or_raise(hr.user_id).role.value == "admin"
    assert repository.get_identity_or_raise(hr.user_id).company_id == owner.company_id
