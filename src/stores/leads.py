from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from src.domain.normalization import is_profile_root, profile_match_key


LEAD_COLUMNS = (
    "id, name, status, stage, organization_id, phone, email, company, job_title, "
    "agent_id, is_deleted, updated_at"
)
PROFILE_COLUMNS = {
    "linkedin": "linkedin",
    "instagram": "instagram",
    "facebook": "facebook",
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _match_tier(stored: str | None, normalized_url: str, match_key: str) -> int | None:
    """0 exact, 1 equal once scheme/www are stripped, 2 substring, None no match."""
    if not stored:
        return None
    if stored == normalized_url:
        return 0
    stored_key = profile_match_key(stored).lower()
    if stored_key == match_key:
        return 1
    if match_key in stored.lower():
        return 2
    return None


class LeadStore:
    def __init__(self, client: Any) -> None:
        self.client = client

    def find_by_profile_reference(self, normalized_url: str, platform: str = "linkedin") -> dict[str, Any] | None:
        column = PROFILE_COLUMNS.get(platform, "linkedin")
        match_key = profile_match_key(normalized_url).lower()
        if not match_key or is_profile_root(match_key, platform):
            return None

        links = (
            self.client.table("lead_social")
            .select(f"lead_id, {column}")
            .ilike(column, f"%{match_key}%")
            .execute()
        ).data or []

        tiers: dict[str, int] = {}
        for link in links:
            tier = _match_tier(link.get(column), normalized_url, match_key)
            if tier is None or link.get("lead_id") is None:
                continue
            lead_id = str(link["lead_id"])
            tiers[lead_id] = min(tier, tiers.get(lead_id, tier))
        if not tiers:
            return None

        leads = (
            self.client.table("leads")
            .select(LEAD_COLUMNS)
            .in_("id", list(tiers))
            .execute()
        ).data or []
        candidates = [lead for lead in leads if not lead.get("is_deleted")]
        if not candidates:
            return None

        candidates.sort(key=lambda lead: str(lead.get("updated_at") or ""), reverse=True)
        candidates.sort(key=lambda lead: tiers.get(str(lead["id"]), 2))
        return candidates[0]

    def get_lead(self, lead_id: str) -> dict[str, Any] | None:
        result = self.client.table("leads").select(LEAD_COLUMNS).eq("id", lead_id).execute()
        return result.data[0] if result.data else None

    def create_lead(self, fields: dict[str, Any]) -> dict[str, Any] | None:
        now_iso = _now_iso()
        row = {"is_deleted": False, "created_at": now_iso, "updated_at": now_iso, **fields}
        created = self.client.table("leads").insert(row).execute()
        return created.data[0] if created.data else None

    def link_profile(self, lead_id: str, profile_url: str, platform: str = "linkedin") -> None:
        column = PROFILE_COLUMNS.get(platform, "linkedin")
        self.client.table("lead_social").upsert(
            {"lead_id": lead_id, column: profile_url},
            on_conflict="lead_id",
        ).execute()

    def soft_delete(self, lead_id: str) -> None:
        self.client.table("leads").update({"is_deleted": True, "updated_at": _now_iso()}).eq("id", lead_id).execute()

    def update_stage(self, lead_id: str, status: str, stage: str) -> dict[str, Any] | None:
        updated = (
            self.client.table("leads")
            .update({"status": status, "stage": stage, "updated_at": _now_iso()})
            .eq("id", lead_id)
            .execute()
        )
        return updated.data[0] if updated.data else None

    def update_status(self, lead_id: str, status: str) -> dict[str, Any] | None:
        updated = (
            self.client.table("leads")
            .update({"status": status, "updated_at": _now_iso()})
            .eq("id", lead_id)
            .execute()
        )
        return updated.data[0] if updated.data else None

    def update_phone_if_empty(self, lead_id: str, phone: str) -> bool:
        """Write `phone` only while the lead still has none; True if a row changed."""
        payload = {"phone": phone, "updated_at": _now_iso()}
        updated = (
            self.client.table("leads").update(payload).eq("id", lead_id).is_("phone", "null").execute()
        )
        if updated.data:
            return True
        updated = self.client.table("leads").update(payload).eq("id", lead_id).eq("phone", "").execute()
        return bool(updated.data)
