from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class PhoneRevealResult(BaseModel):
    success: bool
    phone: str | None = None
    already_exists: bool = False
    from_cache: bool = False
    steps: dict[str, str] = Field(default_factory=dict)
    error: str | None = None
    message: str | None = None


class AutoCallResult(BaseModel):
    success: bool
    queued: bool = False
    lead_id: str | None = None
    lead_name: str | None = None
    phone: str | None = None
    agent_id: str | None = None
    stage: str | None = None
    call_data: dict[str, Any] | None = None
    error: str | None = None
    message: str | None = None


class WebhookEventResult(BaseModel):
    success: bool = True
    event_type: str | None = None
    event_id: str | None = None
    lead_id: str | None = None
    skipped: bool = False
    reason: str | None = None
    message: str | None = None
    error: str | None = None
    timestamp: str | None = None
    updated_status: str | None = None
    updated_stage: str | None = None
    created_lead: bool = False
    existing_call_id: str | None = None
    call_count: int | None = None
    phone_reveal: PhoneRevealResult | None = None
    auto_call: AutoCallResult | None = None
    note: str | None = None
    account_id: str | None = None
    account_status: str | None = None
    status_message: str | None = None
    is_connected: bool | None = None


class WebhookAck(BaseModel):
    success: bool
    message: str
    event_type: str | None = None
    error: str | None = None
    result: WebhookEventResult | None = None


class WebhookTestResponse(BaseModel):
    success: bool
    message: str
    timestamp: str
