from __future__ import annotations

from typing import Any

from src.domain.normalization import is_profile_root, profile_match_key


CACHE_COLUMNS = "employee_name, employee_linkedin_url, employee_phone, company_name, apollo_person_id"


class EnrichmentCacheStore:
    """Read-only view of the employee/enrichment cache filled by the scraping pipeline."""

    def __init__(self, client: Any) -> None:
        self.client = client

    def find_by_profile_reference(self, normalized_url: str) -> dict[str, Any] | None:
        exact = (
            self.client.table("employees_cache")
            .select(CACHE_COLUMNS)
            .eq("employee_linkedin_url", normalized_url)
            .execute()
        )
        if exact.data:
            return exact.data[0]

        match_key = profile_match_key(normalized_url).lower()
        if not match_key or is_profile_root(match_key):
            return None
        loose = (
            self.client.table("employees_cache")
            .select(CACHE_COLUMNS)
            .ilike("employee_linkedin_url", f"%{match_key}%")
            .execute()
        ).data or []
        for row in loose:
            stored = row.get("employee_linkedin_url")
            if stored and profile_match_key(stored).lower() == match_key:
                return row
        return None
