from __future__ import annotations

import hmac
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable

from fastapi import APIRouter, Depends, HTTPException, Request, status
from starlette.concurrency import run_in_threadpool

from src.config import settings
from src.db import get_supabase
from src.domain.event_dedup import EventDeduplicator
from src.domain.webhook_dispatch import WebhookDispatcher
from src.models.webhooks import WebhookAck, WebhookTestResponse
from src.observability import incr_metric, log_event
from src.providers.voice_agent.client import place_call
from src.stores import build_stores


router = APIRouter(prefix="/api/social-integration/webhook", tags=["webhooks"])

# Shared by every request in this process.
event_deduplicator = EventDeduplicator(capacity=settings.webhook_dedup_capacity)

DispatcherFactory = Callable[[str | None], WebhookDispatcher]


def _request_id(request: Request | None) -> str | None:
    if not request:
        return None
    return getattr(getattr(request, "state", None), "request_id", None)


def build_webhook_dispatcher(request_id: str | None) -> WebhookDispatcher:
    return WebhookDispatcher(
        build_stores(get_supabase(), call_logs_table=settings.call_logs_table),
        event_deduplicator,
        place_call,
        auto_call_enabled=settings.linkedin_auto_call_enabled,
        batch_call_enabled=settings.linkedin_batch_call_enabled,
        default_agent_id=settings.default_voice_agent_id,
        internal_api_url=settings.internal_api_url,
        call_timeout_seconds=settings.auto_call_api_timeout_seconds,
        max_event_age_hours=settings.acceptance_max_age_hours,
        call_lookback_days=settings.call_history_lookback_days,
        request_id=request_id,
    )


def get_dispatcher_factory() -> DispatcherFactory:
    return build_webhook_dispatcher


def _verify_shared_secret_or_raise(header_value: str | None) -> None:
    secret = settings.unipile_webhook_secret
    if not secret:
        return
    if not header_value or not hmac.compare_digest(header_value, secret):
        incr_metric("webhook.events.rejected", reason="invalid_secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "type": "webhook_auth_failed",
                "provider": "unipile",
                "message": "Invalid Unipile webhook secret",
            },
        )


def _dispatch(factory: DispatcherFactory, payload: Any, request_id: str | None) -> WebhookAck:
    try:
        dispatcher = factory(request_id)
    except Exception as exc:
        incr_metric("webhook.events.failed", event_type="setup")
        log_event("webhook_dispatcher_setup_failed", level=logging.ERROR, request_id=request_id, error=str(exc))
        return WebhookAck(success=False, message="Webhook received but processing failed", error=str(exc))
    return dispatcher.dispatch(payload)


@router.post("", response_model=WebhookAck, response_model_exclude_none=True)
async def ingest_unipile_webhook(
    request: Request,
    factory: DispatcherFactory = Depends(get_dispatcher_factory),
):
    req_id = _request_id(request)
    _verify_shared_secret_or_raise(request.headers.get("Unipile-Auth"))
    raw_body = await request.body()

    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        incr_metric("webhook.events.malformed")
        log_event("webhook_invalid_json", level=logging.WARNING, request_id=req_id, error=str(exc))
        return WebhookAck(success=False, message="Webhook received but payload was not valid JSON", error="invalid_json")

    return await run_in_threadpool(_dispatch, factory, payload, req_id)


@router.get("/test", response_model=WebhookTestResponse)
async def webhook_test():
    return WebhookTestResponse(
        success=True,
        message="Webhook endpoint is reachable",
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
