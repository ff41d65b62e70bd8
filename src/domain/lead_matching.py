from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from src.domain.lead_state import STATUS_REQUEST_ACCEPTED
from src.observability import incr_metric, log_event, record_skip
from src.stores import AccountLinkStore, EnrichmentCacheStore, LeadStore


UNKNOWN_CONTACT_NAME = "LinkedIn User"

# Field names have moved between webhook versions; first hit wins.
SUBJECT_FIELD_PATHS: tuple[tuple[str, ...], ...] = (
    ("user_profile_url",),
    ("recipient", "linkedin_profile_url"),
    ("recipient", "profile_url"),
    ("recipient", "linkedin_url"),
    ("linkedin_url",),
    ("profile_url",),
)
NAME_FIELD_PATHS: tuple[tuple[str, ...], ...] = (
    ("user_full_name",),
    ("full_name",),
    ("name",),
    ("recipient", "full_name"),
    ("recipient", "name"),
)


def event_data(payload: dict[str, Any]) -> dict[str, Any]:
    data = payload.get("data")
    return data if isinstance(data, dict) else payload


def _lookup_path(data: dict[str, Any], path: tuple[str, ...]) -> Any:
    node: Any = data
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _first_text(data: dict[str, Any], paths: tuple[tuple[str, ...], ...]) -> str | None:
    for path in paths:
        value = _lookup_path(data, path)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def extract_profile_url(data: dict[str, Any]) -> str | None:
    return _first_text(data, SUBJECT_FIELD_PATHS)


def subject_identifier(data: dict[str, Any]) -> str | None:
    """Best-effort subject used for fingerprints; falls back to the public identifier."""
    return extract_profile_url(data) or _first_text(data, (("user_public_identifier",),))


def name_from_public_identifier(public_identifier: str | None) -> str | None:
    if not public_identifier:
        return None
    parts = [part for part in public_identifier.split("-") if part and not re.fullmatch(r"\d+", part)]
    if not parts:
        return None
    return " ".join(part[:1].upper() + part[1:] for part in parts)


def derive_lead_name(data: dict[str, Any]) -> str:
    return (
        _first_text(data, NAME_FIELD_PATHS)
        or name_from_public_identifier(_first_text(data, (("user_public_identifier",),)))
        or UNKNOWN_CONTACT_NAME
    )


@dataclass
class LeadMatch:
    lead: dict[str, Any] | None
    created: bool = False
    reason: str | None = None

    @property
    def found(self) -> bool:
        return self.lead is not None


class LeadMatcher:
    def __init__(
        self,
        leads: LeadStore,
        enrichment_cache: EnrichmentCacheStore,
        account_links: AccountLinkStore,
        *,
        platform: str = "linkedin",
    ) -> None:
        self.leads = leads
        self.enrichment_cache = enrichment_cache
        self.account_links = account_links
        self.platform = platform

    def resolve(self, normalized_url: str) -> LeadMatch:
        lead = self.leads.find_by_profile_reference(normalized_url, self.platform)
        if lead is None:
            log_event("lead_match_missed", profile_url=normalized_url)
            return LeadMatch(lead=None, reason="lead_not_found")
        log_event("lead_matched", profile_url=normalized_url, lead_id=lead.get("id"))
        return LeadMatch(lead=lead)

    def resolve_or_create(self, normalized_url: str, data: dict[str, Any]) -> LeadMatch:
        """
        Resolve the lead, creating one only when the enrichment cache
        independently knows the profile.
        """
        match = self.resolve(normalized_url)
        if match.found:
            return match

        cached = self.enrichment_cache.find_by_profile_reference(normalized_url)
        if cached is None:
            record_skip(
                "lead.auto_create.skipped",
                "lead_auto_create_skipped",
                "not_in_employees_cache",
                profile_url=normalized_url,
            )
            return LeadMatch(lead=None, reason="not_in_employees_cache")

        name = derive_lead_name(data)
        organization_id = self._resolve_organization_id()
        created = self.leads.create_lead(
            {
                "name": name,
                "status": STATUS_REQUEST_ACCEPTED,
                "stage": STATUS_REQUEST_ACCEPTED,
                "source": "linkedin_connection",
                "channel": self.platform,
                "organization_id": organization_id,
                "company": cached.get("company_name"),
            }
        )
        if not created:
            log_event("lead_auto_create_failed", level=logging.ERROR, profile_url=normalized_url)
            return LeadMatch(lead=None, reason="lead_creation_failed")

        try:
            self.leads.link_profile(str(created["id"]), normalized_url, self.platform)
        except Exception:
            # Without its profile link the lead could never be matched again.
            self.leads.soft_delete(str(created["id"]))
            raise

        incr_metric("lead.auto_created", platform=self.platform)
        log_event(
            "lead_auto_created",
            lead_id=created.get("id"),
            name=name,
            organization_id=organization_id,
            profile_url=normalized_url,
        )
        return LeadMatch(lead=created, created=True)

    def _resolve_organization_id(self) -> str | None:
        try:
            return self.account_links.find_active_organization_id()
        except Exception as exc:
            log_event("lead_auto_create_org_lookup_failed", level=logging.WARNING, error=str(exc))
            return None
