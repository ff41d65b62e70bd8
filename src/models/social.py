from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class PlatformInfo(BaseModel):
    name: str
    display_name: str
    provider: str
    features: list[str]


class ProfileLookupResponse(BaseModel):
    provider: str
    provider_id: str
    profile_name: str
    public_identifier: str
    requested_identifier: str
    profile_match: bool


class InvitationRecipient(BaseModel):
    profile: str | None = None
    provider_id: str | None = None
    name: str | None = None


class SendInvitationRequest(BaseModel):
    account_id: str
    profile: str | None = None
    provider_id: str | None = None
    message: str | None = None


class SendInvitationResponse(BaseModel):
    success: bool
    already_sent: bool = False
    provider_id: str
    profile_name: str | None = None
    data: Any = None


class BatchInvitationRequest(BaseModel):
    account_id: str
    recipients: list[InvitationRecipient] = Field(min_length=1, max_length=100)
    message: str | None = None
    delay_ms: int | None = Field(default=None, ge=0, le=60_000)


class BatchInvitationItem(BaseModel):
    profile: str | None = None
    provider_id: str | None = None
    name: str | None = None
    status: str
    error: str | None = None


class BatchInvitationResponse(BaseModel):
    total: int
    successful: int
    already_sent: int
    failed: int
    results: list[BatchInvitationItem]


class SendMessageRequest(BaseModel):
    account_id: str
    message: str = Field(min_length=1)
    profile: str | None = None
    provider_id: str | None = None


class SendMessageResponse(BaseModel):
    success: bool
    provider_id: str
    data: Any = None


class AccountsResponse(BaseModel):
    success: bool
    accounts: dict[str, list[dict[str, Any]]]
    total: int


class PlatformStatusResponse(BaseModel):
    success: bool
    platform: str
    connected: bool | None = None
    configured: bool | None = None
    account: dict[str, Any] | None = None
    message: str | None = None


class DisconnectRequest(BaseModel):
    account_id: str | None = None


class DisconnectResponse(BaseModel):
    success: bool
    platform: str
    account_id: str
    data: Any = None
