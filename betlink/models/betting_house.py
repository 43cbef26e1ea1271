"""
A partner betting operator that sends postbacks or exposes a conversions API.
"""
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric, Text, JSON, Index

from ..db import Base


class CommissionType(str, Enum):
    CPA = "CPA"
    REVSHARE = "RevShare"
    HYBRID = "Hybrid"


class IntegrationType(str, Enum):
    POSTBACK = "postback"
    API = "api"
    HYBRID = "hybrid"


class SyncStatus(str, Enum):
    PENDING = "pending"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


class BettingHouse(Base):
    __tablename__ = "betting_houses"

    id = Column(Integer, primary_key=True)
    identifier = Column(String(100), unique=True, nullable=False, index=True)  # slug used in postback URLs
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Commission model
    commission_type = Column(String(20), nullable=False, default=CommissionType.CPA.value)
    cpa_value = Column(Numeric(12, 2), nullable=True)  # flat CPA paid by the house
    revshare_value = Column(Numeric(7, 4), nullable=True)  # total RevShare percent paid by the house
    cpa_affiliate_percent = Column(Numeric(7, 4), nullable=True)  # share of the CPA passed to the affiliate, 0-100
    revshare_affiliate_percent = Column(Numeric(7, 4), nullable=True)  # percentage points out of revshare_value
    min_deposit = Column(Numeric(12, 2), nullable=True)

    # Integration
    integration_type = Column(String(20), nullable=False, default=IntegrationType.POSTBACK.value)
    api_config = Column(JSON, nullable=True)  # parsed by schemas.integration_config
    security_token = Column(String(255), nullable=False)

    # Sync bookkeeping (written only by the API sync service)
    sync_interval = Column(Integer, nullable=True, default=30)  # minutes
    last_sync_at = Column(DateTime, nullable=True)
    sync_status = Column(String(20), nullable=False, default=SyncStatus.PENDING.value)
    sync_error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=True)

    __table_args__ = (
        Index("idx_houses_integration_active", "integration_type", "is_active"),
    )

    @property
    def is_api_enabled(self) -> bool:
        return self.integration_type in (IntegrationType.API.value, IntegrationType.HYBRID.value)
