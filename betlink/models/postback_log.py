"""
Append-only audit trail, one row per ingestion attempt.
"""
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, Index

from ..db import Base


class PostbackStatus(str, Enum):
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    ERROR_HOUSE_NOT_FOUND = "ERROR_HOUSE_NOT_FOUND"
    ERROR_AFFILIATE_NOT_FOUND = "ERROR_AFFILIATE_NOT_FOUND"
    ERROR_VALIDATION = "ERROR_VALIDATION"
    ERROR_PROCESSING = "ERROR_PROCESSING"


class PostbackLog(Base):
    __tablename__ = "postback_logs"

    id = Column(Integer, primary_key=True)
    source = Column(String(20), nullable=False, default="postback")  # postback, api_sync

    # Values exactly as received, before any validation
    house_identifier = Column(String(255), nullable=True)
    event_type = Column(String(100), nullable=True)
    subid = Column(String(255), nullable=True)
    customer_id = Column(String(255), nullable=True)
    raw_value = Column(String(100), nullable=True)
    ip = Column(String(64), nullable=True)
    raw_request = Column(Text, nullable=True)

    status = Column(String(40), nullable=False, default=PostbackStatus.PROCESSING.value, index=True)
    details = Column(JSON, nullable=True)  # commission, reason, duplicate marker, conversion id

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=True)

    __table_args__ = (
        Index("idx_postback_logs_house_created", "house_identifier", "created_at"),
    )
