from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from portal.security import PASSWORD_POLICY_MESSAGE, is_strong_password


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class OtpType(str, Enum):
    CONFIRM_EMAIL = "confirmEmail"
    FORGET_PASSWORD = "forgetPassword"


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class Identity(BaseModel):
    user_id: str
    first_name: str
    last_name: str
    email: str
    role: Role = Role.USER
    company_id: str | None = None
    provider: str = "system"
    is_confirmed: bool = False
    created_at: str
    updated_at: str


class TokenMetadata(BaseModel):
    token_id: str
    expires_at: str


class AuthenticatedIdentity(BaseModel):
    identity: Identity
    token: TokenMetadata


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str


class Message(BaseModel):
    body: str
    sender_id: str
    sent_at: str


class Conversation(BaseModel):
    conversation_id: str
    participant_a: str
    participant_b: str
    messages: list[Message] = Field(default_factory=list)
    created_at: str
    updated_at: str


class Participant(BaseModel):
    user_id: str
    name: str


class HistoryMessage(BaseModel):
    body: str
    sender_id: str
    sender_name: str
    sent_at: str


class ChatHistory(BaseModel):
    conversation_id: str | None = None
    participants: list[Participant] = Field(default_factory=list)
    messages: list[HistoryMessage] = Field(default_factory=list)


class Company(BaseModel):
    company_id: str
    company_name: str
    company_email: str
    description: str | None = None
    created_by: str
    hrs: list[str] = Field(default_factory=list)
    created_at: str
    updated_at: str


class ScheduledDeletion(BaseModel):
    job_id: str
    pair_key: str
    requested_by: str
    counterpart: str
    due_at: str
    status: Literal["pending", "done", "cancelled"]
    created_at: str
    executed_at: str | None = None


class SignUpRequest(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=80)
    last_name: str = Field(..., min_length=1, max_length=80)
    email: EmailStr
    password: str
    confirm_password: str

    @model_validator(mode="after")
    def validate_password(self) -> SignUpRequest:
        if not is_strong_password(self.password):
            raise ValueError(PASSWORD_POLICY_MESSAGE)
        if self.password != self.confirm_password:
            raise ValueError("confirm_password must match password")
        return self


class ConfirmEmailRequest(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=1, max_length=6)


class SignInRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ResetPasswordRequest(BaseModel):
    password: str
    confirm_password: str
    otp: str = Field(..., min_length=1, max_length=6)

    @model_validator(mode="after")
    def validate_password(self) -> ResetPasswordRequest:
        if not is_strong_password(self.password):
            raise ValueError(PASSWORD_POLICY_MESSAGE)
        if self.password != self.confirm_password:
            raise ValueError("confirm_password must match password")
        return self


class CompanyCreateRequest(BaseModel):
    company_name: str = Field(..., min_length=1, max_length=120)
    company_email: EmailStr
    description: str | None = Field(default=None, max_length=2000)
    hrs: list[str] = Field(default_factory=list)


class CompanyHrsRequest(BaseModel):
    hrs: list[str] = Field(..., min_length=1)


class SendMessagePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    body: str = Field(..., min_length=1, max_length=5000)
    receiver_id: str = Field(..., min_length=1, alias="receiverId")


class DeleteChatPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    body: str | None = None
    receiver_id: str = Field(..., min_length=1, alias="receiverId")


class CancelDeleteChatPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    receiver_id: str = Field(..., min_length=1, alias="receiverId")


class ChatFrame(BaseModel):
    event: str = Field(..., min_length=1)
    data: dict = Field(default_factory=dict)
