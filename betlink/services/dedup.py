"""
Deduplication guard for conversion events.

A fast pre-check only; the unique constraint on
(house_id, customer_id, event_type) decides concurrent races.
"""
from typing import Optional

from .store import ConversionStore


class DedupGuard:
    def __init__(self, store: ConversionStore):
        self.store = store

    def is_duplicate(self, house_id: int, customer_id: Optional[str], event_type: str) -> bool:
        """Events without a customer id can never be matched, so they are never duplicates."""
        if not customer_id:
            return False
        return self.store.find_conversion(house_id, customer_id, event_type) is not None

    def has_cpa_been_paid(self, house_id: int, customer_id: Optional[str]) -> bool:
        return self.store.has_cpa_been_paid(house_id, customer_id)
