"""Quota-limited enrichment from the Secondary Provider."""

from .cache import EnrichmentCache
from .provider import SecondaryProviderClient
from .quota import MonthlyQuotaCounter
from .store import EnrichmentStore, SQLiteEnrichmentStore

__all__ = [
    "EnrichmentCache",
    "EnrichmentStore",
    "MonthlyQuotaCounter",
    "SQLiteEnrichmentStore",
    "SecondaryProviderClient",
]
