from __future__ import annotations

import json
import logging
import sqlite3
from enum import Enum
from typing import Any, Protocol

from common.utils import now_utc_iso
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError

from portal.auth import TokenAuthenticator
from portal.errors import AuthenticationError, ConversationNotFound
from portal.models import (
    CancelDeleteChatPayload,
    ChatFrame,
    DeleteChatPayload,
    Identity,
    Message,
    SendMessagePayload,
    TokenKind,
)
from portal.registry import Connection, ConnectionRegistry
from portal.repository import PortalRepository
from portal.scheduler import ChatDeletionScheduler

LOGGER = logging.getLogger("jobsearch.portal.chat")
POLICY_VIOLATION = 1008
UNAUTHORIZED_START_MESSAGE = "Only Hr or Company owner start chat"
DELIVERY_FAILED_MESSAGE = "Message could not be delivered"


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    DISPATCHING = "dispatching"
    DISCONNECTED = "disconnected"


class ChatConnection(Connection, Protocol):
    async def accept(self) -> None: ...


def frame(event: str, **data: Any) -> dict[str, Any]:
    return {"event": event, "data": data}


def error_frame(message: str) -> dict[str, Any]:
    return frame("error", message=message)


def validation_message(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first['msg']}" if location else first["msg"]


class ChatSessionHandler:
    """Send, schedule and cancel flows shared by every live chat session."""

    def __init__(
        self,
        repository: PortalRepository,
        authenticator: TokenAuthenticator,
        registry: ConnectionRegistry,
        scheduler: ChatDeletionScheduler,
    ) -> None:
        self.repository = repository
        self.authenticator = authenticator
        self.registry = registry
        self.scheduler = scheduler

    async def authenticate(self, token: str) -> Identity:
        authenticated = await run_in_threadpool(
            self.authenticator.authenticate, token, TokenKind.ACCESS
        )
        return authenticated.identity

    async def send_message(self, sender: Identity, payload: SendMessagePayload) -> dict[str, Any]:
        receiver_id = payload.receiver_id
        if receiver_id == sender.user_id:
            return error_frame("You cannot send a message to yourself")

        message = Message(body=payload.body, sender_id=sender.user_id, sent_at=now_utc_iso())
        try:
            try:
                conversation = await run_in_threadpool(
                    self.repository.append_message, sender.user_id, receiver_id, message
                )
            except ConversationNotFound:
                allowed = await run_in_threadpool(
                    self.repository.is_hr_or_company_owner, sender.user_id
                )
                if not allowed:
                    LOGGER.info(
                        json.dumps(
                            {
                                "event": "chat_start_rejected",
                                "sender_id": sender.user_id,
                                "receiver_id": receiver_id,
                            }
                        )
                    )
                    return error_frame(UNAUTHORIZED_START_MESSAGE)
                known = await run_in_threadpool(self.repository.existing_user_ids, [receiver_id])
                if receiver_id not in known:
                    return error_frame("Receiver not found")
                conversation = await run_in_threadpool(
                    self.repository.create_conversation, sender.user_id, receiver_id, message
                )
        except sqlite3.Error:
            LOGGER.exception(
                json.dumps(
                    {
                        "event": "chat_message_failed",
                        "sender_id": sender.user_id,
                        "receiver_id": receiver_id,
                    }
                )
            )
            return error_frame(DELIVERY_FAILED_MESSAGE)

        receiver = self.registry.resolve(receiver_id)
        if receiver is not None:
            try:
                await receiver.send_json(frame("receiveMessage", body=payload.body))
            except Exception:
                LOGGER.warning(
                    json.dumps({"event": "chat_forward_failed", "receiver_id": receiver_id})
                )
        LOGGER.info(
            json.dumps(
                {
                    "event": "chat_message_sent",
                    "conversation_id": conversation.conversation_id,
                    "sender_id": sender.user_id,
                    "forwarded": receiver is not None,
                }
            )
        )
        return frame("successMessage", body=payload.body, chat=conversation.model_dump())

    async def schedule_deletion(self, sender: Identity, payload: DeleteChatPayload) -> dict[str, Any]:
        if payload.receiver_id == sender.user_id:
            return error_frame("You cannot delete a chat with yourself")
        deletion = await self.scheduler.schedule(sender.user_id, payload.receiver_id)
        return frame("deleteChatScheduled", job_id=deletion.job_id, due_at=deletion.due_at)

    async def cancel_deletion(
        self, sender: Identity, payload: CancelDeleteChatPayload
    ) -> dict[str, Any]:
        cancelled = await self.scheduler.cancel(sender.user_id, payload.receiver_id)
        return frame("deleteChatCancelled", cancelled=cancelled)


class ChatSession:
    """State machine for one live connection."""

    def __init__(self, handler: ChatSessionHandler, connection: ChatConnection) -> None:
        self.handler = handler
        self.connection = connection
        self.state = SessionState.UNAUTHENTICATED
        self.identity: Identity | None = None

    async def open(self, token: str | None) -> bool:
        if self.state is not SessionState.UNAUTHENTICATED:
            return False
        try:
            identity = await self.handler.authenticate(token or "")
        except AuthenticationError as exc:
            LOGGER.info(json.dumps({"event": "chat_handshake_rejected", "reason": exc.reason}))
            self.state = SessionState.DISCONNECTED
            await self.connection.close(code=POLICY_VIOLATION)
            return False

        previous = self.handler.registry.register(identity.user_id, self.connection)
        self.identity = identity
        self.state = SessionState.AUTHENTICATED
        await self.connection.accept()
        LOGGER.info(
            json.dumps(
                {
                    "event": "chat_connected",
                    "user_id": identity.user_id,
                    "replaced_previous": previous is not None,
                }
            )
        )
        return True

    async def receive_text(self, text: str) -> None:
        try:
            raw = json.loads(text)
        except json.JSONDecodeError:
            await self.connection.send_json(error_frame("Frames must be JSON objects"))
            return
        await self.dispatch(raw)

    async def receive_bytes(self, data: bytes) -> None:
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            await self.connection.send_json(error_frame("Frames must be JSON objects"))
            return
        await self.receive_text(text)

    async def dispatch(self, raw: Any) -> None:
        if self.state is not SessionState.AUTHENTICATED or self.identity is None:
            return
        try:
            incoming = ChatFrame.model_validate(raw)
        except ValidationError as exc:
            await self.connection.send_json(error_frame(validation_message(exc)))
            return

        self.state = SessionState.DISPATCHING
        try:
            reply = await self._route(self.identity, incoming)
        finally:
            if self.state is SessionState.DISPATCHING:
                self.state = SessionState.AUTHENTICATED
        await self.connection.send_json(reply)

    async def _route(self, sender: Identity, incoming: ChatFrame) -> dict[str, Any]:
        try:
            if incoming.event == "sendMessage":
                payload = SendMessagePayload.model_validate(incoming.data)
                return await self.handler.send_message(sender, payload)
            if incoming.event == "deleteChat":
                payload = DeleteChatPayload.model_validate(incoming.data)
                return await self.handler.schedule_deletion(sender, payload)
            if incoming.event == "cancelDeleteChat":
                payload = CancelDeleteChatPayload.model_validate(incoming.data)
                return await self.handler.cancel_deletion(sender, payload)
        except ValidationError as exc:
            return error_frame(validation_message(exc))
        return error_frame(f"Unknown event: {incoming.event}")

    def close(self) -> None:
        if self.state is SessionState.DISCONNECTED:
            return
        if self.identity is not None:
            self.handler.registry.unregister(self.identity.user_id, self.connection)
            LOGGER.info(json.dumps({"event": "chat_disconnected", "user_id": self.identity.user_id}))
        self.state = SessionState.DISCONNECTED
