"""
Record path shared by postback ingestion and API sync:
dedup check -> commission evaluation -> conversion insert.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError

from ..models import BettingHouse, Conversion, User
from ..schemas.events import ConversionEvent
from ..utils.log import get_logger
from .audit_log import filter_secrets
from .commission import CommissionResult, evaluate, quantize_money
from .dedup import DedupGuard
from .store import ConversionStore

logger = get_logger(__name__)

DUPLICATE_REASON = "duplicate event"


@dataclass
class RecordOutcome:
    result: CommissionResult
    conversion: Optional[Conversion] = None
    duplicate: bool = False

    def details(self) -> Dict[str, Any]:
        """Audit log details for a successful attempt."""
        return {
            "commission": str(quantize_money(self.result.affiliate_commission)),
            "master_commission": str(quantize_money(self.result.master_commission)),
            "commission_type": self.result.commission_type,
            "valid": self.result.valid,
            "reason": self.result.reason,
            "duplicate": self.duplicate,
            "conversion_id": self.conversion.id if self.conversion else None,
        }


class ConversionRecorder:
    def __init__(self, store: ConversionStore, guard: Optional[DedupGuard] = None):
        self.store = store
        self.guard = guard or DedupGuard(store)

    def _duplicate(self, house: BettingHouse) -> RecordOutcome:
        return RecordOutcome(
            result=CommissionResult(commission_type=house.commission_type, reason=DUPLICATE_REASON),
            duplicate=True,
        )

    def record(
        self,
        house: BettingHouse,
        affiliate: User,
        event: ConversionEvent,
        source: str,
        affiliate_link_id: Optional[int] = None,
    ) -> RecordOutcome:
        house_id = house.id
        if self.guard.is_duplicate(house_id, event.customer_id, event.event_type):
            return self._duplicate(house)

        cpa_paid = self.guard.has_cpa_been_paid(house_id, event.customer_id)
        result = evaluate(house, event.event_type, event.amount, cpa_paid)

        try:
            conversion = self.store.insert_conversion(
                user_id=affiliate.id,
                house_id=house_id,
                affiliate_link_id=affiliate_link_id,
                event_type=event.event_type,
                customer_id=event.customer_id,
                amount=quantize_money(event.amount),
                affiliate_commission=quantize_money(result.affiliate_commission),
                master_commission=quantize_money(result.master_commission),
                commission_type=result.commission_type,
                cpa_paid=result.cpa_paid,
                source=source,
                conversion_data={
                    "source": source,
                    "payload": filter_secrets(event.raw_payload),
                    "breakdown": result.breakdown,
                    "reason": result.reason,
                },
                converted_at=event.timestamp,
            )
        except IntegrityError:
            # Lost a race with a concurrent insert of the same event
            if self.store.find_conversion(house_id, event.customer_id, event.event_type) is None:
                raise
            logger.info(
                "Concurrent duplicate for house %s customer %s event %s",
                house_id, event.customer_id, event.event_type,
            )
            return self._duplicate(house)

        return RecordOutcome(result=result, conversion=conversion)
