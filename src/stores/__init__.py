from dataclasses import dataclass
from typing import Any

from src.stores.account_links import AccountLinkStore
from src.stores.call_history import CallHistoryStore
from src.stores.enrichment import EnrichmentCacheStore
from src.stores.leads import LeadStore
from src.stores.organizations import LeadStageStore, OrganizationSettingsStore


@dataclass
class Stores:
    """Every persistence collaborator the webhook pipeline reads or writes."""
    leads: LeadStore
    enrichment_cache: EnrichmentCacheStore
    call_history: CallHistoryStore
    stages: LeadStageStore
    org_settings: OrganizationSettingsStore
    account_links: AccountLinkStore


def build_stores(client: Any, call_logs_table: str = "call_logs_voiceagent") -> Stores:
    return Stores(
        leads=LeadStore(client),
        enrichment_cache=EnrichmentCacheStore(client),
        call_history=CallHistoryStore(client, table_name=call_logs_table),
        stages=LeadStageStore(client),
        org_settings=OrganizationSettingsStore(client),
        account_links=AccountLinkStore(client),
    )


__all__ = [
    "AccountLinkStore",
    "CallHistoryStore",
    "EnrichmentCacheStore",
    "LeadStageStore",
    "LeadStore",
    "OrganizationSettingsStore",
    "Stores",
    "build_stores",
]
