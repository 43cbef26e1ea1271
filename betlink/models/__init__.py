"""
Models package - organized by domain
"""
from .betting_house import BettingHouse, CommissionType, IntegrationType, SyncStatus
from .user import User, AffiliateLink
from .conversion import Conversion
from .postback_log import PostbackLog, PostbackStatus

__all__ = [
    "BettingHouse",
    "CommissionType",
    "IntegrationType",
    "SyncStatus",
    "User",
    "AffiliateLink",
    "Conversion",
    "PostbackLog",
    "PostbackStatus",
]
