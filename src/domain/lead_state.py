from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from src.models.webhooks import WebhookEventResult
from src.observability import incr_metric, log_event, record_skip
from src.stores import CallHistoryStore, LeadStageStore, LeadStore


STATUS_NEW = "new"
STATUS_REQUEST_SENT = "request_sent"
STATUS_REQUEST_ACCEPTED = "request_accepted"
STATUS_REQUEST_DECLINED = "request_declined"
STATUS_CALL_TRIGGERED = "call_triggered"

ACCEPTANCE_SKIP_METRIC = "webhook.acceptance.skipped"
ACCEPTANCE_SKIP_EVENT = "lead_acceptance_skipped"

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_NEW: frozenset({STATUS_REQUEST_SENT, STATUS_REQUEST_ACCEPTED, STATUS_REQUEST_DECLINED}),
    STATUS_REQUEST_SENT: frozenset({STATUS_REQUEST_SENT, STATUS_REQUEST_ACCEPTED, STATUS_REQUEST_DECLINED}),
    STATUS_REQUEST_ACCEPTED: frozenset({STATUS_REQUEST_ACCEPTED, STATUS_REQUEST_DECLINED, STATUS_CALL_TRIGGERED}),
    STATUS_REQUEST_DECLINED: frozenset({STATUS_REQUEST_DECLINED}),
    STATUS_CALL_TRIGGERED: frozenset({STATUS_CALL_TRIGGERED}),
}


@dataclass(frozen=True)
class StageTarget:
    status: str
    fragments: tuple[str, ...]
    default_stage: str | None


STAGE_TARGETS: dict[str, StageTarget] = {
    STATUS_REQUEST_SENT: StageTarget(
        status=STATUS_REQUEST_SENT,
        fragments=("request sent", "request_sent", "connection sent", "connection_sent", "sent"),
        default_stage=STATUS_REQUEST_SENT,
    ),
    STATUS_REQUEST_ACCEPTED: StageTarget(
        status=STATUS_REQUEST_ACCEPTED,
        fragments=("request_accepted", "connection_accepted", "accepted"),
        default_stage=STATUS_REQUEST_ACCEPTED,
    ),
    STATUS_CALL_TRIGGERED: StageTarget(
        status=STATUS_CALL_TRIGGERED,
        fragments=("call_triggered", "call triggered", "triggered"),
        default_stage=STATUS_CALL_TRIGGERED,
    ),
    # No stage fallback: declines only touch `status` unless the org has a stage for them.
    STATUS_REQUEST_DECLINED: StageTarget(
        status=STATUS_REQUEST_DECLINED,
        fragments=("request_declined", "declined"),
        default_stage=None,
    ),
}


def parse_event_timestamp(value: Any) -> datetime | None:
    """Epoch milliseconds (number or digit string) or ISO-8601; None when unparseable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) or (isinstance(value, str) and value.strip().isdigit()):
        try:
            return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    text = str(value).strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def can_transition(current: str | None, target: str) -> bool:
    allowed = ALLOWED_TRANSITIONS.get(current or STATUS_NEW)
    # Free-form statuses written by other parts of the CRM are not blocked.
    if allowed is None:
        return True
    return target in allowed


class LeadStateMachine:
    def __init__(
        self,
        leads: LeadStore,
        stages: LeadStageStore,
        call_history: CallHistoryStore,
        *,
        max_event_age: timedelta = timedelta(hours=24),
        call_lookback_days: int = 7,
    ) -> None:
        self.leads = leads
        self.stages = stages
        self.call_history = call_history
        self.max_event_age = max_event_age
        self.call_lookback_days = call_lookback_days

    def resolve_stage_key(self, org_id: str | None, status: str) -> str | None:
        target = STAGE_TARGETS[status]
        return self.stages.find_stage_key(org_id, target.fragments, target.default_stage)

    def is_call_triggered(self, lead: dict[str, Any]) -> bool:
        if lead.get("status") == STATUS_CALL_TRIGGERED or lead.get("stage") == STATUS_CALL_TRIGGERED:
            return True
        stage = lead.get("stage")
        if not stage:
            return False
        return stage == self.resolve_stage_key(lead.get("organization_id"), STATUS_CALL_TRIGGERED)

    def is_stale_event(self, event_time: datetime | None, received_at: datetime) -> bool:
        return event_time is not None and event_time < received_at - self.max_event_age

    def stale_result(self, lead_id: str | None, event_time: datetime) -> WebhookEventResult:
        record_skip(
            ACCEPTANCE_SKIP_METRIC,
            ACCEPTANCE_SKIP_EVENT,
            "acceptance_too_old",
            lead_id=lead_id,
            event_time=event_time.isoformat(),
        )
        return WebhookEventResult(
            lead_id=lead_id,
            skipped=True,
            reason="acceptance_too_old",
            timestamp=event_time.isoformat(),
        )

    def check_acceptance_guards(
        self,
        lead: dict[str, Any],
        *,
        event_time: datetime | None,
        received_at: datetime,
    ) -> WebhookEventResult | None:
        """Return a skip result when the acceptance must not mutate the lead."""
        lead_id = str(lead["id"])
        if event_time is not None and self.is_stale_event(event_time, received_at):
            return self.stale_result(lead_id, event_time)

        if self.is_call_triggered(lead):
            record_skip(ACCEPTANCE_SKIP_METRIC, ACCEPTANCE_SKIP_EVENT, "stage_already_call_triggered", lead_id=lead_id)
            return WebhookEventResult(lead_id=lead_id, skipped=True, reason="stage_already_call_triggered")

        calls = self.call_history.find_recent_calls_for_lead(lead_id, self.call_lookback_days)
        if calls:
            record_skip(
                ACCEPTANCE_SKIP_METRIC,
                ACCEPTANCE_SKIP_EVENT,
                "call_already_made",
                lead_id=lead_id,
                existing_call_id=calls[0].get("id"),
                call_count=len(calls),
            )
            return WebhookEventResult(
                lead_id=lead_id,
                skipped=True,
                reason="call_already_made",
                existing_call_id=str(calls[0].get("id")),
                call_count=len(calls),
            )
        return None

    def check_phone_call_guard(self, lead_id: str, phone: str) -> WebhookEventResult | None:
        if not self.call_history.has_recent_call_for_phone(phone, self.call_lookback_days):
            return None
        record_skip(ACCEPTANCE_SKIP_METRIC, ACCEPTANCE_SKIP_EVENT, "call_already_made_for_phone", lead_id=lead_id)
        return WebhookEventResult(lead_id=lead_id, skipped=True, reason="call_already_made_for_phone")

    def _apply(self, lead: dict[str, Any], status: str, stage_key: str | None) -> dict[str, Any] | None:
        if not can_transition(lead.get("status"), status):
            log_event(
                "lead_transition_unusual",
                level=logging.WARNING,
                lead_id=lead.get("id"),
                from_status=lead.get("status"),
                to_status=status,
            )
        if stage_key is None:
            updated = self.leads.update_status(str(lead["id"]), status)
        else:
            updated = self.leads.update_stage(str(lead["id"]), status, stage_key)
        incr_metric("lead.transition", status=status)
        log_event(
            "lead_transitioned",
            lead_id=lead.get("id"),
            from_status=lead.get("status"),
            to_status=status,
            stage=stage_key,
        )
        return updated

    def _transition(self, lead: dict[str, Any], status: str) -> dict[str, Any] | None:
        return self._apply(lead, status, self.resolve_stage_key(lead.get("organization_id"), status))

    def mark_request_sent(self, lead: dict[str, Any]) -> dict[str, Any] | None:
        return self._transition(lead, STATUS_REQUEST_SENT)

    def mark_request_declined(self, lead: dict[str, Any]) -> dict[str, Any] | None:
        return self._transition(lead, STATUS_REQUEST_DECLINED)

    def mark_request_accepted(self, lead: dict[str, Any]) -> tuple[dict[str, Any], bool]:
        """Apply the acceptance; returns (lead, changed). Already-accepted leads are left as is."""
        stage_key = self.resolve_stage_key(lead.get("organization_id"), STATUS_REQUEST_ACCEPTED)
        if lead.get("status") == STATUS_REQUEST_ACCEPTED and lead.get("stage") == stage_key:
            log_event("lead_already_accepted", lead_id=lead.get("id"), stage=stage_key)
            return lead, False
        updated = self._apply(lead, STATUS_REQUEST_ACCEPTED, stage_key)
        return (updated or lead), updated is not None

    def mark_call_triggered(self, lead: dict[str, Any]) -> dict[str, Any] | None:
        return self._transition(lead, STATUS_CALL_TRIGGERED)
