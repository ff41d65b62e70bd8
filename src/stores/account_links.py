from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


class AccountLinkStore:
    """Provider account registrations kept in `linkedin_integrations`."""

    def __init__(self, client: Any) -> None:
        self.client = client

    def update_status_by_account_id(
        self,
        account_id: str,
        *,
        is_active: bool,
        status: str,
        status_message: str,
    ) -> dict[str, Any] | None:
        existing = (
            self.client.table("linkedin_integrations")
            .select("id, user_id, profile_name, email, connection_data")
            .eq("unipile_account_id", account_id)
            .execute()
        )
        if not existing.data:
            return None

        now_iso = datetime.now(timezone.utc).isoformat()
        connection_data = dict(existing.data[0].get("connection_data") or {})
        connection_data.update(
            {
                "status": status,
                "status_message": status_message,
                "last_status_update": now_iso,
            }
        )
        updated = (
            self.client.table("linkedin_integrations")
            .update(
                {
                    "is_active": is_active,
                    "connection_data": connection_data,
                    "updated_at": now_iso,
                }
            )
            .eq("unipile_account_id", account_id)
            .execute()
        )
        return updated.data[0] if updated.data else None

    def find_active_organization_id(self) -> str | None:
        rows = (
            self.client.table("linkedin_integrations")
            .select("organization_id, unipile_account_id")
            .eq("is_active", True)
            .execute()
        ).data or []
        for row in rows:
            if row.get("unipile_account_id") and row.get("organization_id"):
                return row["organization_id"]
        return None
