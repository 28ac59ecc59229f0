from __future__ import annotations

import json
import logging
from datetime import timedelta

from common.utils import parse_iso_datetime, utc_now
from emailer.worker import EmailJob, EmailWorker
from fastapi.concurrency import run_in_threadpool

from portal.auth import TokenAuthenticator
from portal.errors import RequestRejected
from portal.models import (
    Company,
    CompanyCreateRequest,
    CompanyHrsRequest,
    ConfirmEmailRequest,
    Identity,
    OtpType,
    ResetPasswordRequest,
    SignInRequest,
    SignUpRequest,
    TokenPair,
)
from portal.repository import PortalRepository
from portal.security import generate_otp, hash_secret, verify_secret

LOGGER = logging.getLogger("jobsearch.portal.accounts")


class AccountService:
    def __init__(
        self,
        repository: PortalRepository,
        authenticator: TokenAuthenticator,
        mailer: EmailWorker,
        *,
        otp_ttl: timedelta = timedelta(minutes=10),
    ) -> None:
        self.repository = repository
        self.authenticator = authenticator
        self.mailer = mailer
        self.otp_ttl = otp_ttl

    async def sign_up(self, payload: SignUpRequest) -> Identity:
        existing = await run_in_threadpool(self.repository.get_identity_by_email, payload.email)
        if existing is not None:
            raise RequestRejected("User is already exist")

        password_hash = await run_in_threadpool(hash_secret, payload.password)
        try:
            identity = await run_in_threadpool(
                self.repository.create_user,
                first_name=payload.first_name,
                last_name=payload.last_name,
                email=payload.email,
                password_hash=password_hash,
            )
        except ValueError as exc:
            raise RequestRejected("User is already exist") from exc

        await self._send_otp(identity, OtpType.CONFIRM_EMAIL, subject="Verify your email")
        LOGGER.info(json.dumps({"event": "user_signed_up", "user_id": identity.user_id}))
        return identity

    async def confirm_email(self, payload: ConfirmEmailRequest) -> Identity:
        identity = await run_in_threadpool(self.repository.get_identity_by_email, payload.email)
        if identity is None:
            raise RequestRejected("User not found")
        await self._check_otp(identity, OtpType.CONFIRM_EMAIL, payload.code)
        await run_in_threadpool(self.repository.mark_confirmed, identity.user_id)
        return await run_in_threadpool(self.repository.get_identity_or_raise, identity.user_id)

    async def sign_in(self, payload: SignInRequest) -> TokenPair:
        identity = await run_in_threadpool(self.repository.get_identity_by_email, payload.email)
        password_hash = None
        if identity is not None and identity.provider == "system":
            password_hash = await run_in_threadpool(
                self.repository.get_password_hash, identity.user_id
            )
        matches = await run_in_threadpool(verify_secret, payload.password, password_hash)
        if identity is None or not matches:
            raise RequestRejected("Invalid credentials", status_code=401)
        LOGGER.info(json.dumps({"event": "user_signed_in", "user_id": identity.user_id}))
        return self.authenticator.issue_token_pair(identity.user_id)

    async def forget_password(self, email: str) -> None:
        identity = await run_in_threadpool(self.repository.get_identity_by_email, email)
        if identity is None:
            raise RequestRejected("User not found", status_code=404)
        await self._send_otp(identity, OtpType.FORGET_PASSWORD, subject="Reset your password")

    async def reset_password(self, email: str, payload: ResetPasswordRequest) -> None:
        identity = await run_in_threadpool(self.repository.get_identity_by_email, email)
        if identity is None:
            raise RequestRejected("User not found", status_code=404)
        await self._check_otp(identity, OtpType.FORGET_PASSWORD, payload.otp)
        password_hash = await run_in_threadpool(hash_secret, payload.password)
        await run_in_threadpool(self.repository.update_password, identity.user_id, password_hash)
        LOGGER.info(json.dumps({"event": "password_reset", "user_id": identity.user_id}))

    async def soft_delete_account(self, identity: Identity) -> None:
        deleted = await run_in_threadpool(self.repository.soft_delete_user, identity.user_id)
        if not deleted:
            raise RequestRejected("User not found", status_code=404)
        LOGGER.info(json.dumps({"event": "account_soft_deleted", "user_id": identity.user_id}))

    async def create_company(self, owner: Identity, payload: CompanyCreateRequest) -> Company:
        hr_ids = [hr_id for hr_id in dict.fromkeys(payload.hrs) if hr_id != owner.user_id]
        await self._require_identities(hr_ids)
        try:
            company = await run_in_threadpool(
                self.repository.create_company,
                owner_id=owner.user_id,
                company_name=payload.company_name,
                company_email=payload.company_email,
                description=payload.description,
                hr_ids=hr_ids,
            )
        except ValueError as exc:
            raise RequestRejected("Company name or email already exists") from exc
        LOGGER.info(
            json.dumps(
                {
                    "event": "company_created",
                    "company_id": company.company_id,
                    "created_by": owner.user_id,
                    "hrs": company.hrs,
                }
            )
        )
        return company

    async def add_hrs(self, owner: Identity, company_id: str, payload: CompanyHrsRequest) -> Company:
        hr_ids = list(dict.fromkeys(payload.hrs))
        await self._require_identities(hr_ids)
        company = await run_in_threadpool(
            self.repository.add_company_hrs, company_id, owner.user_id, hr_ids
        )
        if company is None:
            raise RequestRejected("Company not found", status_code=404)
        return company

    async def get_company(self, company_id: str) -> Company:
        company = await run_in_threadpool(self.repository.get_company, company_id)
        if company is None:
            raise RequestRejected("Company not found", status_code=404)
        return company

    async def _require_identities(self, user_ids: list[str]) -> None:
        if not user_ids:
            return
        known = await run_in_threadpool(self.repository.existing_user_ids, user_ids)
        missing = [user_id for user_id in user_ids if user_id not in known]
        if missing:
            raise RequestRejected(f"Unknown HR user ids: {', '.join(missing)}")

    async def _send_otp(self, identity: Identity, otp_type: OtpType, *, subject: str) -> None:
        code = generate_otp()
        code_hash = await run_in_threadpool(hash_secret, code)
        await run_in_threadpool(
            self.repository.replace_otp,
            identity.user_id,
            otp_type,
            code_hash=code_hash,
            expires_at=utc_now() + self.otp_ttl,
        )
        await self.mailer.enqueue(
            EmailJob(recipient=identity.email, subject=subject, html=f"<h3>Your Otp Is {code}</h3>")
        )

    async def _check_otp(self, identity: Identity, otp_type: OtpType, code: str) -> None:
        stored = await run_in_threadpool(self.repository.get_otp, identity.user_id, otp_type)
        if stored is None:
            raise RequestRejected("Invalid OTP or OTP expired")
        code_hash, expires_at = stored
        expiry = parse_iso_datetime(expires_at)
        if expiry is None or expiry < utc_now():
            raise RequestRejected("Invalid OTP or OTP expired")
        matches = await run_in_threadpool(verify_secret, code, code_hash)
        if not matches:
            raise RequestRejected("Invalid OTP")
