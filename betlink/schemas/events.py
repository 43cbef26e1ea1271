"""
Normalized conversion event, produced by both the postback endpoint and the
API sync service before dedup and commission evaluation.
"""
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Literal, Optional, get_args

from pydantic import BaseModel, Field, field_validator

EventType = Literal[
    "click",
    "registration",
    "deposit",
    "first_deposit",
    "profit",
    "revenue",
    "payout",
    "chargeback",
]

EVENT_TYPES = get_args(EventType)


class ConversionEvent(BaseModel):
    house_identifier: str = Field(..., min_length=1)
    event_type: EventType
    subid: Optional[str] = None
    customer_id: Optional[str] = None
    amount: Optional[Decimal] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    raw_payload: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("house_identifier", "subid", "customer_id", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("event_type", mode="before")
    @classmethod
    def _normalize_event(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("timestamp")
    @classmethod
    def _naive_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v

    @field_validator("amount", mode="before")
    @classmethod
    def _finite_amount(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        try:
            amount = Decimal(str(v).strip())
        except InvalidOperation:
            raise ValueError(f"amount must be a decimal number, got {v!r}")
        if not amount.is_finite():
            raise ValueError("amount must be a finite number")
        return amount
