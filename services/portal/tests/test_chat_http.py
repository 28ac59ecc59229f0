from __future__ import annotations

from datetime import timedelta

import pytest
from common.utils import now_utc_iso
from fastapi.testclient import TestClient
from portal.models import Message

pytestmark = pytest.mark.integration


def seed_conversation(client: TestClient, sender_id: str, receiver_id: str, *bodies: str) -> None:
    repository = client.app.state.repository
    for index, body in enumerate(bodies):
        message = Message(body=body, sender_id=sender_id, sent_at=now_utc_iso())
        if index == 0:
            repository.create_conversation(sender_id, receiver_id, message)
        else:
            repository.append_message(sender_id, receiver_id, message)


def test_history_is_empty_without_conversation(client: TestClient, sign_up_user) -> None:
    user = sign_up_user()

    response = client.get("/user/get-chat-history/other", headers={"token": user["access_token"]})

    assert response.status_code == 200
    assert response.json() == {"conversation_id": None, "participants": [], "messages": []}


def test_history_lists_messages_with_names(client: TestClient, sign_up_user) -> None:
    hr = sign_up_user("Grace", "Hopper")
    applicant = sign_up_user("Alan", "Turing")
    seed_conversation(client, hr["user_id"], applicant["user_id"], "first", "second")

    response = client.get(
        f"/user/get-chat-history/{hr['user_id']}", headers={"token": applicant["access_token"]}
    )

    assert response.status_code == 200
    body = response.json()
    assert [item["body"] for item in body["messages"]] == ["first", "second"]
    assert {item["sender_name"] for item in body["messages"]} == {"Grace Hopper"}


def test_any_participant_can_delete_history(client: TestClient, sign_up_user) -> None:
    hr = sign_up_user("Hr")
    applicant = sign_up_user("Applicant")
    seed_conversation(client, hr["user_id"], applicant["user_id"], "hello")
    headers = {"token": applicant["access_token"]}

    deleted = client.delete(f"/user/delete-chat-history/{hr['user_id']}", headers=headers)
    assert deleted.status_code == 200
    assert deleted.json()["deleted"] is True

    again = client.delete(f"/user/delete-chat-history/{hr['user_id']}", headers=headers)
    assert again.status_code == 200
    assert again.json()["deleted"] is False


def test_cancel_pending_deletion_over_http(client: TestClient, sign_up_user) -> None:
    hr = sign_up_user("Hr")
    applicant = sign_up_user("Applicant")
    client.app.state.repository.schedule_deletion(
        requested_by=hr["user_id"],
        counterpart=applicant["user_id"],
        due_at=client.app.state.scheduler.clock() + timedelta(hours=1),
    )
    headers = {"token": applicant["access_token"]}

    first = client.delete(f"/user/chat-deletions/{hr['user_id']}", headers=headers)
    second = client.delete(f"/user/chat-deletions/{hr['user_id']}", headers=headers)

    assert first.json() == {"cancelled": True}
    assert second.json() == {"cancelled": False}


def test_chat_routes_require_authentication(client: TestClient) -> None:
    assert client.get("/user/get-chat-history/other").status_code == 401
    assert client.delete("/user/delete-chat-history/other").status_code == 401
    assert client.delete("/user/chat-deletions/other").status_code == 401
