"""
One row per accepted, non-duplicate conversion event. Never updated once written.
"""
from datetime import datetime

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric, ForeignKey, JSON, Index, UniqueConstraint

from ..db import Base


class Conversion(Base):
    __tablename__ = "conversions"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    house_id = Column(Integer, ForeignKey("betting_houses.id"), nullable=False, index=True)
    affiliate_link_id = Column(Integer, ForeignKey("affiliate_links.id"), nullable=True)

    event_type = Column(String(30), nullable=False)
    customer_id = Column(String(255), nullable=True)

    amount = Column(Numeric(14, 2), nullable=False, default=0)
    affiliate_commission = Column(Numeric(14, 2), nullable=False, default=0)
    master_commission = Column(Numeric(14, 2), nullable=False, default=0)
    commission_type = Column(String(20), nullable=False)
    cpa_paid = Column(Boolean, default=False, nullable=False)  # this row paid the one-time CPA

    source = Column(String(20), nullable=False, default="postback")  # postback, api_sync
    conversion_data = Column(JSON, nullable=True)  # source, payload, calculation breakdown

    converted_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        # NULL customer ids never collide, so clicks without a customer are unconstrained
        UniqueConstraint("house_id", "customer_id", "event_type", name="uq_conversions_house_customer_event"),
        Index("idx_conversions_house_customer_cpa", "house_id", "customer_id", "cpa_paid"),
    )
