from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any


# Every auto-call context built for accepted connections contains this phrase.
CONNECTION_CALL_TAG = "LinkedIn connection request"
CONNECTION_CALL_KEY_PREFIX = "linkedin-accept:"

CALL_COLUMNS = "id, target, to_number, added_context, idempotency_key, status, started_at"


def connection_call_idempotency_key(lead_id: str) -> str:
    return f"{CONNECTION_CALL_KEY_PREFIX}{lead_id}"


def _is_connection_call(row: dict[str, Any]) -> bool:
    key = row.get("idempotency_key")
    if key and str(key).startswith(CONNECTION_CALL_KEY_PREFIX):
        return True
    return CONNECTION_CALL_TAG in str(row.get("added_context") or "")


class CallHistoryStore:
    def __init__(self, client: Any, table_name: str = "call_logs_voiceagent") -> None:
        self.client = client
        self.table_name = table_name

    def _recent_calls(self, targets: list[str], within_days: int) -> list[dict[str, Any]]:
        if not targets:
            return []
        cutoff = (datetime.now(timezone.utc) - timedelta(days=within_days)).isoformat()
        rows = (
            self.client.table(self.table_name)
            .select(CALL_COLUMNS)
            .in_("target", targets)
            .gte("started_at", cutoff)
            .execute()
        ).data or []
        calls = [row for row in rows if row.get("target") is not None and _is_connection_call(row)]
        calls.sort(key=lambda row: str(row.get("started_at") or ""), reverse=True)
        return calls

    def find_recent_calls_for_lead(self, lead_id: str, within_days: int = 7) -> list[dict[str, Any]]:
        return self._recent_calls([str(lead_id)], within_days)

    def find_recent_calls_for_phone(self, phone: str, within_days: int = 7) -> list[dict[str, Any]]:
        leads = self.client.table("leads").select("id").eq("phone", phone).execute().data or []
        return self._recent_calls([str(lead["id"]) for lead in leads], within_days)

    def has_recent_call_for_lead(self, lead_id: str, within_days: int = 7) -> bool:
        return bool(self.find_recent_calls_for_lead(lead_id, within_days))

    def has_recent_call_for_phone(self, phone: str, within_days: int = 7) -> bool:
        return bool(self.find_recent_calls_for_phone(phone, within_days))
