from __future__ import annotations

import logging
from typing import Any, Callable

from src.domain.lead_state import STATUS_REQUEST_ACCEPTED, LeadStateMachine
from src.domain.normalization import normalize_phone_number, phone_digit_count
from src.models.webhooks import AutoCallResult, PhoneRevealResult, WebhookEventResult
from src.observability import incr_metric, log_event
from src.providers.voice_agent.client import VoiceAgentProviderError
from src.stores import EnrichmentCacheStore, LeadStore, OrganizationSettingsStore
from src.stores.call_history import connection_call_idempotency_key


MIN_PHONE_DIGITS = 5
DEFAULT_CALL_LEAD_NAME = "LinkedIn Connection"
STEP_NOT_IMPLEMENTED = "not_implemented"

PlaceCall = Callable[..., dict[str, Any]]


def build_call_context(lead: dict[str, Any]) -> str:
    name = lead.get("name") or DEFAULT_CALL_LEAD_NAME
    company = f" from {lead['company']}" if lead.get("company") else ""
    title = f", {lead['job_title']}" if lead.get("job_title") else ""
    return f"Calling {name}{company}{title} who just accepted our LinkedIn connection request."


class SideEffectOrchestrator:
    """Phone reveal followed by the auto-dial for a freshly accepted connection."""

    def __init__(
        self,
        leads: LeadStore,
        enrichment_cache: EnrichmentCacheStore,
        org_settings: OrganizationSettingsStore,
        state_machine: LeadStateMachine,
        place_call: PlaceCall,
        *,
        auto_call_enabled: bool = True,
        batch_call_enabled: bool = False,
        default_agent_id: str = "24",
        internal_api_url: str | None = None,
        call_timeout_seconds: float = 10.0,
        request_id: str | None = None,
    ) -> None:
        self.leads = leads
        self.enrichment_cache = enrichment_cache
        self.org_settings = org_settings
        self.state_machine = state_machine
        self.place_call = place_call
        self.auto_call_enabled = auto_call_enabled
        self.batch_call_enabled = batch_call_enabled
        self.default_agent_id = default_agent_id
        self.internal_api_url = internal_api_url
        self.call_timeout_seconds = call_timeout_seconds
        self.request_id = request_id

    def reveal_phone(self, lead: dict[str, Any], normalized_url: str) -> PhoneRevealResult:
        lead_id = str(lead["id"])
        if lead.get("phone"):
            return PhoneRevealResult(success=True, phone=lead["phone"], already_exists=True)

        steps: dict[str, str] = {}
        try:
            cached = self.enrichment_cache.find_by_profile_reference(normalized_url)
        except Exception as exc:
            log_event(
                "phone_reveal_cache_failed",
                level=logging.WARNING,
                request_id=self.request_id,
                lead_id=lead_id,
                error=str(exc),
            )
            cached = None
            steps["enrichment_cache"] = "error"

        if cached and cached.get("employee_phone"):
            phone = str(cached["employee_phone"])
            self.leads.update_phone_if_empty(lead_id, phone)
            incr_metric("side_effect.phone_reveal", outcome="from_cache")
            log_event("phone_revealed", request_id=self.request_id, lead_id=lead_id, source="employees_cache")
            return PhoneRevealResult(success=True, phone=phone, from_cache=True)
        steps.setdefault("enrichment_cache", "miss")

        # Neither lookup is wired to a provider yet; both report their placeholder status.
        steps["profile_contact_check"] = STEP_NOT_IMPLEMENTED
        steps["enrichment_fallback"] = STEP_NOT_IMPLEMENTED
        incr_metric("side_effect.phone_reveal", outcome="unavailable")
        log_event("phone_reveal_unavailable", request_id=self.request_id, lead_id=lead_id, steps=steps)
        return PhoneRevealResult(
            success=False,
            steps=steps,
            error="No phone number available",
            message="Phone reveal requires an enrichment provider integration",
        )

    def resolve_agent_id(self, lead: dict[str, Any]) -> str:
        if lead.get("agent_id"):
            return str(lead["agent_id"])
        if lead.get("organization_id"):
            try:
                configured = self.org_settings.get_setting(lead["organization_id"], "default_agent_id")
            except Exception as exc:
                log_event(
                    "auto_call_agent_lookup_failed",
                    level=logging.WARNING,
                    request_id=self.request_id,
                    lead_id=lead.get("id"),
                    error=str(exc),
                )
                configured = None
            if configured:
                return configured
        return self.default_agent_id

    def trigger_auto_call(self, lead: dict[str, Any]) -> AutoCallResult:
        lead_id = str(lead["id"])
        if not self.auto_call_enabled:
            return AutoCallResult(success=False, lead_id=lead_id, error="Auto-call is disabled")

        phone = normalize_phone_number(lead.get("phone"))
        if not phone:
            return AutoCallResult(success=False, lead_id=lead_id, error="No phone number available")
        if phone_digit_count(phone) < MIN_PHONE_DIGITS:
            incr_metric("side_effect.auto_call", outcome="invalid_phone")
            log_event(
                "auto_call_invalid_phone",
                level=logging.WARNING,
                request_id=self.request_id,
                lead_id=lead_id,
                phone=phone,
            )
            return AutoCallResult(success=False, lead_id=lead_id, phone=phone, error="Invalid phone number format")

        agent_id = self.resolve_agent_id(lead)
        lead_name = lead.get("name") or DEFAULT_CALL_LEAD_NAME
        try:
            call_data = self.place_call(
                base_url=self.internal_api_url,
                agent_id=agent_id,
                to_number=phone,
                lead_name=lead_name,
                added_context=build_call_context(lead),
                lead_id=lead_id,
                idempotency_key=connection_call_idempotency_key(lead_id),
                timeout_seconds=self.call_timeout_seconds,
            )
        except VoiceAgentProviderError as exc:
            incr_metric("side_effect.auto_call", outcome="failed")
            log_event(
                "auto_call_failed",
                level=logging.ERROR,
                request_id=self.request_id,
                lead_id=lead_id,
                category=exc.category,
                error=str(exc),
            )
            return AutoCallResult(
                success=False,
                lead_id=lead_id,
                lead_name=lead_name,
                phone=phone,
                agent_id=agent_id,
                error=str(exc),
            )

        if call_data.get("success") is False:
            incr_metric("side_effect.auto_call", outcome="rejected")
            log_event("auto_call_rejected", level=logging.WARNING, request_id=self.request_id, lead_id=lead_id)
            return AutoCallResult(
                success=False,
                lead_id=lead_id,
                lead_name=lead_name,
                phone=phone,
                agent_id=agent_id,
                call_data=call_data,
                error=str(call_data.get("error") or "Call placement rejected"),
            )

        stage = None
        try:
            updated = self.state_machine.mark_call_triggered(lead)
            stage = updated.get("stage") if updated else None
        except Exception as exc:
            # The call is already out; a failed stage write must not report it as failed.
            log_event(
                "auto_call_stage_update_failed",
                level=logging.WARNING,
                request_id=self.request_id,
                lead_id=lead_id,
                error=str(exc),
            )

        incr_metric("side_effect.auto_call", outcome="placed")
        log_event("auto_call_placed", request_id=self.request_id, lead_id=lead_id, agent_id=agent_id, stage=stage)
        return AutoCallResult(
            success=True,
            lead_id=lead_id,
            lead_name=lead_name,
            phone=phone,
            agent_id=agent_id,
            stage=stage,
            call_data=call_data,
        )

    def run(self, lead: dict[str, Any], normalized_url: str) -> WebhookEventResult:
        lead_id = str(lead["id"])
        reveal = self.reveal_phone(lead, normalized_url)
        current = self.leads.get_lead(lead_id) or lead
        phone = current.get("phone") or (reveal.phone if reveal.success else None)

        if phone:
            guard = self.state_machine.check_phone_call_guard(lead_id, phone)
            if guard is not None:
                guard.phone_reveal = reveal
                return guard

        auto_call: AutoCallResult | None = None
        if self.auto_call_enabled and not self.batch_call_enabled:
            if phone:
                auto_call = self.trigger_auto_call({**current, "phone": phone})
            else:
                log_event("auto_call_deferred", request_id=self.request_id, lead_id=lead_id, reason="no_phone")
        elif self.auto_call_enabled:
            incr_metric("side_effect.auto_call", outcome="queued")
            auto_call = AutoCallResult(
                success=True,
                queued=True,
                lead_id=lead_id,
                message="Queued for batch processing",
            )
        else:
            log_event("auto_call_disabled", request_id=self.request_id, lead_id=lead_id)

        if auto_call is None:
            note = "Will call after phone reveal" if self.auto_call_enabled else "Auto-call disabled"
        elif auto_call.queued:
            note = "Queued for batch call"
        elif not auto_call.success:
            note = "Call attempt failed"
        elif reveal.from_cache:
            note = "Called immediately (phone from enrichment cache)"
        else:
            note = "Called immediately (phone already on lead)"

        return WebhookEventResult(
            lead_id=lead_id,
            updated_status=STATUS_REQUEST_ACCEPTED,
            updated_stage=current.get("stage"),
            phone_reveal=reveal,
            auto_call=auto_call,
            note=note,
        )
