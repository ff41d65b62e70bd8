from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from src.domain.event_dedup import EventDeduplicator, event_fingerprint
from src.domain.lead_matching import LeadMatcher, event_data, extract_profile_url, subject_identifier
from src.domain.lead_state import (
    STATUS_REQUEST_ACCEPTED,
    STATUS_REQUEST_DECLINED,
    STATUS_REQUEST_SENT,
    LeadStateMachine,
    parse_event_timestamp,
)
from src.domain.normalization import normalize_account_status, normalize_profile_url
from src.domain.side_effects import PlaceCall, SideEffectOrchestrator
from src.models.webhooks import WebhookAck, WebhookEventResult
from src.observability import incr_metric, log_event, record_skip
from src.stores import Stores


EVENT_CONNECTION_ACCEPTED = "connection.accepted"
EVENT_CONNECTION_SENT = "connection.sent"
EVENT_CONNECTION_DECLINED = "connection.declined"
EVENT_ACCOUNT_STATUS = "account.status_changed"
EVENT_MESSAGE_RECEIVED = "message.received"

EVENT_TYPE_ALIASES: dict[str, str] = {
    "connection.accepted": EVENT_CONNECTION_ACCEPTED,
    "invitation.accepted": EVENT_CONNECTION_ACCEPTED,
    "new_relation": EVENT_CONNECTION_ACCEPTED,
    "relation": EVENT_CONNECTION_ACCEPTED,
    "connection.sent": EVENT_CONNECTION_SENT,
    "invitation.sent": EVENT_CONNECTION_SENT,
    "invitation.created": EVENT_CONNECTION_SENT,
    "connection.requested": EVENT_CONNECTION_SENT,
    "connection.declined": EVENT_CONNECTION_DECLINED,
    "invitation.declined": EVENT_CONNECTION_DECLINED,
    "account.status_changed": EVENT_ACCOUNT_STATUS,
    "account.status": EVENT_ACCOUNT_STATUS,
    "account.state_changed": EVENT_ACCOUNT_STATUS,
    "account.state": EVENT_ACCOUNT_STATUS,
    "message.received": EVENT_MESSAGE_RECEIVED,
}

ACCOUNT_STATUS_WRAPPER_KEY = "AccountStatus"


def raw_event_type(payload: dict[str, Any]) -> str | None:
    for key in ("event", "type", "object"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def resolve_event_type(payload: dict[str, Any]) -> str | None:
    if isinstance(payload.get(ACCOUNT_STATUS_WRAPPER_KEY), dict):
        return EVENT_ACCOUNT_STATUS
    raw = raw_event_type(payload)
    if raw is None:
        return None
    return EVENT_TYPE_ALIASES.get(raw) or EVENT_TYPE_ALIASES.get(raw.lower())


def _first_present(sources: list[dict[str, Any]], keys: tuple[str, ...]) -> Any:
    for source in sources:
        for key in keys:
            value = source.get(key)
            if value not in (None, ""):
                return value
    return None


class WebhookDispatcher:
    """
    Routes one inbound provider event through the reconciliation pipeline.

    `dispatch` never raises: every outcome, including internal failures,
    becomes a `WebhookAck` so the provider always receives a 2xx.
    """

    def __init__(
        self,
        stores: Stores,
        deduplicator: EventDeduplicator,
        place_call: PlaceCall,
        *,
        auto_call_enabled: bool = True,
        batch_call_enabled: bool = False,
        default_agent_id: str = "24",
        internal_api_url: str | None = None,
        call_timeout_seconds: float = 10.0,
        max_event_age_hours: int = 24,
        call_lookback_days: int = 7,
        request_id: str | None = None,
    ) -> None:
        self.stores = stores
        self.deduplicator = deduplicator
        self.request_id = request_id
        self.matcher = LeadMatcher(stores.leads, stores.enrichment_cache, stores.account_links)
        self.state_machine = LeadStateMachine(
            stores.leads,
            stores.stages,
            stores.call_history,
            max_event_age=timedelta(hours=max_event_age_hours),
            call_lookback_days=call_lookback_days,
        )
        self.side_effects = SideEffectOrchestrator(
            stores.leads,
            stores.enrichment_cache,
            stores.org_settings,
            self.state_machine,
            place_call,
            auto_call_enabled=auto_call_enabled,
            batch_call_enabled=batch_call_enabled,
            default_agent_id=default_agent_id,
            internal_api_url=internal_api_url,
            call_timeout_seconds=call_timeout_seconds,
            request_id=request_id,
        )

    def dispatch(self, payload: Any) -> WebhookAck:
        if not isinstance(payload, dict):
            incr_metric("webhook.events.malformed")
            log_event("webhook_malformed_payload", level=logging.WARNING, request_id=self.request_id)
            return WebhookAck(success=False, message="Webhook received but payload was not an object")

        event_type = resolve_event_type(payload)
        raw_type = raw_event_type(payload)
        incr_metric("webhook.events.received", event_type=event_type or "unhandled")
        log_event(
            "webhook_received",
            request_id=self.request_id,
            event_type=event_type,
            raw_event_type=raw_type,
            timestamp=payload.get("timestamp"),
        )

        handlers = {
            EVENT_CONNECTION_ACCEPTED: self.handle_connection_accepted,
            EVENT_CONNECTION_SENT: self.handle_connection_sent,
            EVENT_CONNECTION_DECLINED: self.handle_connection_declined,
            EVENT_ACCOUNT_STATUS: self.handle_account_status_changed,
            EVENT_MESSAGE_RECEIVED: self.handle_message_received,
        }
        handler = handlers.get(event_type) if event_type else None
        if handler is None:
            incr_metric("webhook.events.unhandled")
            log_event("webhook_event_unhandled", request_id=self.request_id, raw_event_type=raw_type)
            return WebhookAck(success=True, message="Webhook received; event type not handled", event_type=raw_type)

        try:
            result = handler(payload)
        except Exception as exc:
            incr_metric("webhook.events.failed", event_type=event_type)
            log_event(
                "webhook_failed",
                level=logging.ERROR,
                request_id=self.request_id,
                event_type=event_type,
                error=str(exc),
            )
            return WebhookAck(
                success=False,
                message="Webhook received but processing failed",
                event_type=event_type,
                error=str(exc),
            )

        result.event_type = event_type
        outcome = result.reason if result.skipped else "processed"
        incr_metric("webhook.events.processed", event_type=event_type, outcome=outcome)
        log_event(
            "webhook_processed",
            request_id=self.request_id,
            event_type=event_type,
            lead_id=result.lead_id,
            skipped=result.skipped,
            reason=result.reason,
        )
        return WebhookAck(success=True, message="Webhook received and processed", event_type=event_type, result=result)

    def _skip(self, reason: str, *, message: str | None = None, **fields: Any) -> WebhookEventResult:
        record_skip("webhook.events.skipped", "webhook_event_skipped", reason, request_id=self.request_id, **fields)
        return WebhookEventResult(skipped=True, reason=reason, message=message, **fields)

    def _normalized_subject(self, data: dict[str, Any]) -> str | None:
        url = extract_profile_url(data)
        if not url:
            log_event("webhook_missing_profile_url", level=logging.WARNING, request_id=self.request_id)
            return None
        return normalize_profile_url(url)

    def handle_connection_accepted(self, payload: dict[str, Any]) -> WebhookEventResult:
        data = event_data(payload)
        raw_timestamp = payload.get("timestamp") or data.get("timestamp")
        fingerprint = event_fingerprint(payload.get("timestamp"), subject_identifier(data))
        if not self.deduplicator.check_and_record(fingerprint):
            return self._skip("duplicate_event", message="Duplicate event - already processed", event_id=fingerprint)

        normalized_url = self._normalized_subject(data)
        if not normalized_url:
            return self._skip("missing_profile_url", event_id=fingerprint)

        received_at = datetime.now(timezone.utc)
        event_time = parse_event_timestamp(raw_timestamp)
        # Stale acceptances must not reach auto-creation either.
        if self.state_machine.is_stale_event(event_time, received_at):
            existing = self.matcher.resolve(normalized_url)
            lead_id = str(existing.lead["id"]) if existing.found else None
            skip = self.state_machine.stale_result(lead_id, event_time)
            skip.event_id = fingerprint
            return skip

        match = self.matcher.resolve_or_create(normalized_url, data)
        if not match.found:
            message = None
            if match.reason == "not_in_employees_cache":
                message = "Connection accepted but not a known employee; lead not created"
            return WebhookEventResult(skipped=True, reason=match.reason, message=message, event_id=fingerprint)

        lead = match.lead
        skip = self.state_machine.check_acceptance_guards(lead, event_time=event_time, received_at=received_at)
        if skip is not None:
            skip.event_id = fingerprint
            skip.created_lead = match.created
            return skip

        lead, _ = self.state_machine.mark_request_accepted(lead)
        result = self.side_effects.run(lead, normalized_url)
        result.event_id = fingerprint
        result.created_lead = match.created
        return result

    def _handle_lead_transition(self, payload: dict[str, Any], status: str) -> WebhookEventResult:
        normalized_url = self._normalized_subject(event_data(payload))
        if not normalized_url:
            return self._skip("missing_profile_url")

        match = self.matcher.resolve(normalized_url)
        if not match.found:
            return self._skip("lead_not_found", message=f"No lead matches {normalized_url}")

        lead = match.lead
        if status == STATUS_REQUEST_SENT:
            updated = self.state_machine.mark_request_sent(lead)
        else:
            updated = self.state_machine.mark_request_declined(lead)
        return WebhookEventResult(
            lead_id=str(lead["id"]),
            updated_status=status,
            updated_stage=(updated or {}).get("stage"),
        )

    def handle_connection_sent(self, payload: dict[str, Any]) -> WebhookEventResult:
        return self._handle_lead_transition(payload, STATUS_REQUEST_SENT)

    def handle_connection_declined(self, payload: dict[str, Any]) -> WebhookEventResult:
        return self._handle_lead_transition(payload, STATUS_REQUEST_DECLINED)

    def handle_account_status_changed(self, payload: dict[str, Any]) -> WebhookEventResult:
        body = payload.get(ACCOUNT_STATUS_WRAPPER_KEY)
        if not isinstance(body, dict):
            body = payload
        data = body.get("data") if isinstance(body.get("data"), dict) else {}

        account_id = _first_present([body, data], ("account_id", "accountId", "id"))
        if account_id is None:
            return self._skip("missing_account_id")

        status_message = str(_first_present([body, data], ("message", "status", "state")) or "unknown")
        mapped = normalize_account_status(status_message)
        is_connected = mapped == "connected"
        updated = self.stores.account_links.update_status_by_account_id(
            str(account_id),
            is_active=is_connected,
            status=mapped,
            status_message=status_message,
        )
        if updated is None:
            log_event(
                "account_link_not_found",
                level=logging.WARNING,
                request_id=self.request_id,
                account_id=account_id,
            )
        incr_metric("account.status_changed", status=mapped)
        log_event(
            "account_status_updated",
            request_id=self.request_id,
            account_id=account_id,
            account_type=body.get("account_type"),
            status=mapped,
            status_message=status_message,
            is_active=is_connected,
        )
        return WebhookEventResult(
            account_id=str(account_id),
            account_status=mapped,
            status_message=status_message,
            is_connected=is_connected,
            note=None if updated else "No account link registered for this account",
        )

    def handle_message_received(self, payload: dict[str, Any]) -> WebhookEventResult:
        data = event_data(payload)
        log_event(
            "webhook_message_received",
            request_id=self.request_id,
            account_id=data.get("account_id"),
            chat_id=data.get("chat_id"),
        )
        return WebhookEventResult(note="Message events are acknowledged without lead changes")
