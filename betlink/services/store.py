"""
ConversionStore: every query and write the ingestion pipeline needs, over one
SQLAlchemy session.

Writes commit immediately. The audit log must survive a rollback of the
conversion insert that follows it, so callers never batch the two.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import (
    AffiliateLink,
    BettingHouse,
    Conversion,
    IntegrationType,
    PostbackLog,
    PostbackStatus,
    User,
)


class ConversionStore:
    def __init__(self, db: Session):
        self.db = db

    def rollback(self) -> None:
        self.db.rollback()

    # Houses

    def get_house(self, house_id: int) -> Optional[BettingHouse]:
        return self.db.query(BettingHouse).filter(BettingHouse.id == house_id).first()

    def find_house_by_identifier(self, identifier: str) -> Optional[BettingHouse]:
        """Active house whose identifier matches, ignoring case and surrounding whitespace."""
        if not identifier or not identifier.strip():
            return None
        return (
            self.db.query(BettingHouse)
            .filter(
                func.lower(BettingHouse.identifier) == identifier.strip().lower(),
                BettingHouse.is_active.is_(True),
            )
            .first()
        )

    def list_syncable_houses(self) -> List[BettingHouse]:
        return (
            self.db.query(BettingHouse)
            .filter(
                BettingHouse.is_active.is_(True),
                BettingHouse.integration_type.in_(
                    [IntegrationType.API.value, IntegrationType.HYBRID.value]
                ),
            )
            .order_by(BettingHouse.id)
            .all()
        )

    def update_house_sync_status(
        self,
        house_id: int,
        status: str,
        error_message: Optional[str] = None,
        last_sync_at: Optional[datetime] = None,
    ) -> None:
        values: Dict[str, Any] = {
            BettingHouse.sync_status: status,
            BettingHouse.sync_error_message: error_message,
            BettingHouse.updated_at: datetime.utcnow(),
        }
        if last_sync_at is not None:
            values[BettingHouse.last_sync_at] = last_sync_at
        self.db.query(BettingHouse).filter(BettingHouse.id == house_id).update(
            values, synchronize_session=False
        )
        self.db.commit()

    # Affiliates

    def find_affiliate_by_username(self, username: str) -> Optional[User]:
        if not username:
            return None
        return (
            self.db.query(User)
            .filter(User.username == username, User.is_active.is_(True))
            .first()
        )

    def find_link_owner_for_house(self, house_id: int) -> Optional[Tuple[AffiliateLink, User]]:
        """Oldest active affiliate link on the house whose owner is also active."""
        row = (
            self.db.query(AffiliateLink, User)
            .join(User, AffiliateLink.user_id == User.id)
            .filter(
                AffiliateLink.house_id == house_id,
                AffiliateLink.is_active.is_(True),
                User.is_active.is_(True),
            )
            .order_by(AffiliateLink.id)
            .first()
        )
        return (row[0], row[1]) if row else None

    # Conversions

    def find_conversion(self, house_id: int, customer_id: Optional[str], event_type: str) -> Optional[Conversion]:
        if not customer_id:
            return None
        return (
            self.db.query(Conversion)
            .filter(
                Conversion.house_id == house_id,
                Conversion.customer_id == customer_id,
                Conversion.event_type == event_type,
            )
            .first()
        )

    def has_cpa_been_paid(self, house_id: int, customer_id: Optional[str]) -> bool:
        if not customer_id:
            return False
        return (
            self.db.query(Conversion.id)
            .filter(
                Conversion.house_id == house_id,
                Conversion.customer_id == customer_id,
                Conversion.cpa_paid.is_(True),
            )
            .first()
            is not None
        )

    def insert_conversion(self, **fields) -> Conversion:
        """
        Insert and commit one conversion.

        IntegrityError is re-raised after the session is rolled back, so the
        caller can look the winning row up on a clean session.
        """
        conversion = Conversion(**fields)
        self.db.add(conversion)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise
        self.db.refresh(conversion)
        return conversion

    # Audit log

    def insert_audit_log(self, **fields) -> PostbackLog:
        log = PostbackLog(status=PostbackStatus.PROCESSING.value, **fields)
        self.db.add(log)
        self.db.commit()
        self.db.refresh(log)
        return log

    def update_audit_log_status(self, log_id: int, status: str, details: Optional[Dict[str, Any]] = None) -> bool:
        """
        Move a PROCESSING log to `status`. Returns False when the log was
        already terminal, so a second update is a no-op.
        """
        updated = (
            self.db.query(PostbackLog)
            .filter(
                PostbackLog.id == log_id,
                PostbackLog.status == PostbackStatus.PROCESSING.value,
            )
            .update(
                {
                    PostbackLog.status: status,
                    PostbackLog.details: details,
                    PostbackLog.updated_at: datetime.utcnow(),
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        return updated == 1

    def get_audit_log(self, log_id: int) -> Optional[PostbackLog]:
        return self.db.query(PostbackLog).filter(PostbackLog.id == log_id).first()

    def list_audit_logs(
        self,
        house: Optional[str] = None,
        status: Optional[str] = None,
        source: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[int, List[PostbackLog]]:
        query = self.db.query(PostbackLog)
        if house:
            query = query.filter(func.lower(PostbackLog.house_identifier) == house.lower())
        if status:
            query = query.filter(PostbackLog.status == status)
        if source:
            query = query.filter(PostbackLog.source == source)
        total = query.count()
        rows = query.order_by(PostbackLog.id.desc()).offset(offset).limit(limit).all()
        return total, rows

    def audit_log_stats(self, house: Optional[str] = None) -> Dict[str, int]:
        query = self.db.query(PostbackLog.status, func.count(PostbackLog.id))
        if house:
            query = query.filter(func.lower(PostbackLog.house_identifier) == house.lower())
        counts = {status.value: 0 for status in PostbackStatus}
        for status, count in query.group_by(PostbackLog.status).all():
            counts[status] = count
        return counts
