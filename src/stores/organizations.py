from __future__ import annotations

from typing import Any


class LeadStageStore:
    def __init__(self, client: Any) -> None:
        self.client = client

    def find_stage_key(
        self,
        org_id: str | None,
        fragments: tuple[str, ...],
        default: str | None,
    ) -> str | None:
        """First stage by display order whose key or name contains any fragment."""
        if not org_id:
            return default
        rows = (
            self.client.table("lead_stages")
            .select("key, name, display_order")
            .eq("organization_id", org_id)
            .execute()
        ).data or []
        rows.sort(key=lambda row: row.get("display_order") if row.get("display_order") is not None else 1_000_000)
        for row in rows:
            haystacks = (str(row.get("key") or "").lower(), str(row.get("name") or "").lower())
            if any(fragment in text for fragment in fragments for text in haystacks):
                return row["key"]
        return default


class OrganizationSettingsStore:
    def __init__(self, client: Any) -> None:
        self.client = client

    def get_setting(self, org_id: str | None, key: str) -> str | None:
        if not org_id:
            return None
        result = (
            self.client.table("organization_settings")
            .select("value")
            .eq("organization_id", org_id)
            .eq("key", key)
            .execute()
        )
        if not result.data:
            return None
        value = result.data[0].get("value")
        return str(value) if value not in (None, "") else None
