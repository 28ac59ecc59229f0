from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import threading
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any

from common.utils import now_utc_iso
from emailer.transport import SmtpSender
from emailer.worker import EmailWorker
from fastapi import FastAPI, Header, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from portal.accounts import AccountService
from portal.auth import TokenAuthenticator, static_secrets
from portal.chat import ChatSession, ChatSessionHandler
from portal.errors import AuthenticationError, RequestRejected
from portal.housekeeping import Housekeeper
from portal.models import (
    AuthenticatedIdentity,
    ChatHistory,
    Company,
    CompanyCreateRequest,
    CompanyHrsRequest,
    ConfirmEmailRequest,
    ResetPasswordRequest,
    SignInRequest,
    SignUpRequest,
    TokenKind,
)
from portal.registry import ConnectionRegistry
from portal.repository import PortalRepository
from portal.scheduler import ChatDeletionScheduler
from portal.settings import PortalSettings

LOGGER = logging.getLogger("jobsearch.portal")


class MetricsSnapshot(BaseModel):
    generated_at: str
    totals: dict[str, int]
    endpoints: dict[str, dict[str, float | int]]


class MetricsStore:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._totals = {"requests": 0, "errors": 0}
        self._endpoints: dict[str, dict[str, float | int]] = {}

    def observe(self, *, method: str, path: str, status_code: int, duration_ms: float) -> None:
        key = f"{method} {path}"
        with self._lock:
            self._totals["requests"] += 1
            if status_code >= 400:
                self._totals["errors"] += 1
            endpoint = self._endpoints.setdefault(
                key,
                {"count": 0, "2xx": 0, "4xx": 0, "5xx": 0, "latency_ms_sum": 0.0},
            )
            endpoint["count"] = int(endpoint["count"]) + 1
            bucket = f"{status_code // 100}xx"
            if bucket in endpoint:
                endpoint[bucket] = int(endpoint[bucket]) + 1
            endpoint["latency_ms_sum"] = float(endpoint["latency_ms_sum"]) + duration_ms
            endpoint["latency_ms_avg"] = float(endpoint["latency_ms_sum"]) / int(endpoint["count"])

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                generated_at=now_utc_iso(),
                totals=dict(self._totals),
                endpoints={key: dict(value) for key, value in self._endpoints.items()},
            )


def extract_access_token(request: Request) -> str:
    token = request.headers.get("token", "").strip()
    if token:
        return token
    authorization = request.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer":
        return credentials.strip()
    return ""


def create_app(
    settings: PortalSettings | None = None,
    *,
    database_path: str | None = None,
    email_worker: Any | None = None,
) -> FastAPI:
    resolved = settings or PortalSettings.from_env(database_path=database_path)
    repository = PortalRepository(database_path=resolved.database_path)
    registry = ConnectionRegistry()
    mailer = email_worker or EmailWorker(sender=SmtpSender.from_env())
    authenticator = TokenAuthenticator(
        repository,
        static_secrets(resolved.access_token_secret, resolved.refresh_token_secret),
        access_ttl=resolved.access_token_ttl,
        refresh_ttl=resolved.refresh_token_ttl,
        algorithm=resolved.token_algorithm,
    )
    scheduler = ChatDeletionScheduler(
        repository,
        registry,
        delay=resolved.chat_deletion_delay,
        poll_interval=resolved.scheduler_poll_seconds,
    )
    housekeeper = Housekeeper(repository, interval=resolved.housekeeping_interval_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await run_in_threadpool(repository.connect)
        app.state.settings = resolved
        app.state.repository = repository
        app.state.registry = registry
        app.state.email_worker = mailer
        app.state.authenticator = authenticator
        app.state.scheduler = scheduler
        app.state.housekeeper = housekeeper
        app.state.accounts = AccountService(
            repository, authenticator, mailer, otp_ttl=resolved.otp_ttl
        )
        app.state.chat_handler = ChatSessionHandler(repository, authenticator, registry, scheduler)
        app.state.metrics = MetricsStore()
        tasks = [
            asyncio.create_task(mailer.run()),
            asyncio.create_task(scheduler.run()),
            asyncio.create_task(housekeeper.run()),
        ]
        try:
            yield
        finally:
            for task in tasks:
                task.cancel()
            for task in tasks:
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            await run_in_threadpool(repository.close)

    app = FastAPI(title="Job Search Portal", version="0.3.0", lifespan=lifespan)

    @app.middleware("http")
    async def observability_middleware(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = (time.perf_counter() - started) * 1000
            request.app.state.metrics.observe(
                method=request.method,
                path=request.url.path,
                status_code=500,
                duration_ms=duration_ms,
            )
            LOGGER.exception(
                json.dumps(
                    {
                        "event": "request_complete",
                        "request_id": request_id,
                        "method": request.method,
                        "path": request.url.path,
                        "status_code": 500,
                        "duration_ms": round(duration_ms, 3),
                        "error": str(exc),
                    }
                )
            )
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal Server Error", "request_id": request_id},
                headers={"x-request-id": request_id},
            )

        duration_ms = (time.perf_counter() - started) * 1000
        request.app.state.metrics.observe(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=duration_ms,
        )
        response.headers["x-request-id"] = request_id
        LOGGER.info(
            json.dumps(
                {
                    "event": "request_complete",
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round(duration_ms, 3),
                }
            )
        )
        return response

    @app.exception_handler(AuthenticationError)
    async def authentication_error_handler(
        request: Request, exc: AuthenticationError
    ) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(RequestRejected)
    async def request_rejected_handler(request: Request, exc: RequestRejected) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    async def require_identity(request: Request) -> AuthenticatedIdentity:
        try:
            return await run_in_threadpool(
                request.app.state.authenticator.authenticate,
                extract_access_token(request),
                TokenKind.ACCESS,
            )
        except AuthenticationError as exc:
            LOGGER.info(
                json.dumps(
                    {
                        "event": "authentication_failed",
                        "request_id": getattr(request.state, "request_id", None),
                        "path": request.url.path,
                        "reason": exc.reason,
                    }
                )
            )
            raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": "portal"}

    @app.get("/metrics", response_model=MetricsSnapshot)
    async def metrics(request: Request) -> MetricsSnapshot:
        return request.app.state.metrics.snapshot()

    @app.post("/auth/signup", status_code=201)
    async def sign_up(payload: SignUpRequest, request: Request) -> dict[str, str]:
        identity = await request.app.state.accounts.sign_up(payload)
        return {
            "message": "User Registered Successfully , please check your email to verify",
            "user_id": identity.user_id,
        }

    @app.put("/auth/confirm-email")
    async def confirm_email(payload: ConfirmEmailRequest, request: Request) -> dict[str, str]:
        await request.app.state.accounts.confirm_email(payload)
        return {"message": "Email confirmed successfully"}

    @app.post("/auth/signin")
    async def sign_in(payload: SignInRequest, request: Request) -> dict[str, Any]:
        tokens = await request.app.state.accounts.sign_in(payload)
        return {"message": "User authenticated successfully", "token": tokens.model_dump()}

    @app.post("/auth/signout", status_code=201)
    async def sign_out(
        request: Request,
        token: str = Header(default=""),
        refreshtoken: str = Header(default=""),
    ) -> dict[str, str]:
        await run_in_threadpool(request.app.state.authenticator.sign_out, token, refreshtoken)
        return {"message": "Logged out Successfully"}

    @app.post("/auth/refresh-token")
    async def refresh_token(
        request: Request,
        refreshtoken: str = Header(default=""),
    ) -> dict[str, str]:
        access_token = await run_in_threadpool(request.app.state.authenticator.refresh, refreshtoken)
        return {"message": "Token refreshed successfully", "access_token": access_token}

    @app.post("/auth/forget-password/{email}")
    async def forget_password(email: str, request: Request) -> dict[str, str]:
        await request.app.state.accounts.forget_password(email)
        return {"message": "Check your email for the reset code"}

    @app.post("/auth/reset-password/{email}")
    async def reset_password(
        email: str, payload: ResetPasswordRequest, request: Request
    ) -> dict[str, str]:
        await request.app.state.accounts.reset_password(email, payload)
        return {"message": "Password reset successfully"}

    @app.delete("/user/soft-delete-account")
    async def soft_delete_account(request: Request) -> dict[str, str]:
        authenticated = await require_identity(request)
        await request.app.state.accounts.soft_delete_account(authenticated.identity)
        return {"message": "Account soft deleted successfully"}

    @app.post("/company", response_model=Company, status_code=201)
    async def create_company(payload: CompanyCreateRequest, request: Request) -> Company:
        authenticated = await require_identity(request)
        return await request.app.state.accounts.create_company(authenticated.identity, payload)

    @app.patch("/company/{company_id}/hrs", response_model=Company)
    async def add_company_hrs(
        company_id: str, payload: CompanyHrsRequest, request: Request
    ) -> Company:
        authenticated = await require_identity(request)
        return await request.app.state.accounts.add_hrs(authenticated.identity, company_id, payload)

    @app.get("/company/{company_id}", response_model=Company)
    async def get_company(company_id: str, request: Request) -> Company:
        await require_identity(request)
        return await request.app.state.accounts.get_company(company_id)

    @app.get("/user/get-chat-history/{receiver_id}", response_model=ChatHistory)
    async def get_chat_history(receiver_id: str, request: Request) -> ChatHistory:
        authenticated = await require_identity(request)
        return await run_in_threadpool(
            request.app.state.repository.fetch_history,
            authenticated.identity.user_id,
            receiver_id,
        )

    @app.delete("/user/delete-chat-history/{receiver_id}")
    async def delete_chat_history(receiver_id: str, request: Request) -> dict[str, str | bool]:
        authenticated = await require_identity(request)
        deleted = await run_in_threadpool(
            request.app.state.repository.remove_conversation,
            authenticated.identity.user_id,
            receiver_id,
        )
        LOGGER.info(
            json.dumps(
                {
                    "event": "chat_history_deleted",
                    "user_id": authenticated.identity.user_id,
                    "receiver_id": receiver_id,
                    "deleted": deleted,
                }
            )
        )
        return {"message": "Chat history deleted successfully", "deleted": deleted}

    @app.delete("/user/chat-deletions/{receiver_id}")
    async def cancel_chat_deletion(receiver_id: str, request: Request) -> dict[str, bool]:
        authenticated = await require_identity(request)
        cancelled = await request.app.state.scheduler.cancel(
            authenticated.identity.user_id, receiver_id
        )
        return {"cancelled": cancelled}

    @app.websocket("/ws/chat")
    async def chat_socket(websocket: WebSocket) -> None:
        token = websocket.headers.get("accesstoken") or websocket.query_params.get("accesstoken")
        session = ChatSession(websocket.app.state.chat_handler, websocket)
        try:
            if not await session.open(token):
                return
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))
                if message.get("text") is not None:
                    await session.receive_text(message["text"])
                else:
                    await session.receive_bytes(message.get("bytes") or b"")
        except WebSocketDisconnect:
            LOGGER.debug(json.dumps({"event": "chat_socket_closed"}))
        finally:
            session.close()

    return app


app = create_app()
