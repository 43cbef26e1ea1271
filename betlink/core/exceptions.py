"""
Domain exceptions for postback ingestion and API sync.

Ingestion errors carry the audit-log status and HTTP status they map to so
the postback service can finalize the log and the router can respond
without a lookup table of its own.
"""
from ..models.postback_log import PostbackStatus


class BetlinkError(Exception):
    """Base exception for the commission engine"""
    pass


class IngestionError(BetlinkError):
    """An ingestion attempt that ends in a terminal ERROR_* log status"""
    log_status = PostbackStatus.ERROR_PROCESSING
    http_status = 500

    def __init__(self, message: str, log_id=None):
        super().__init__(message)
        self.log_id = log_id


class ValidationError(IngestionError):
    """Missing or malformed postback parameters"""
    log_status = PostbackStatus.ERROR_VALIDATION
    http_status = 400


class UnauthorizedPostbackError(ValidationError):
    """Postback token missing or not matching the house security token"""
    http_status = 401


class NotFoundError(IngestionError):
    http_status = 404


class HouseNotFoundError(NotFoundError):
    log_status = PostbackStatus.ERROR_HOUSE_NOT_FOUND


class AffiliateNotFoundError(NotFoundError):
    log_status = PostbackStatus.ERROR_AFFILIATE_NOT_FOUND


class CommissionConfigError(BetlinkError):
    """House lacks the values its commission type needs"""
    pass


class HouseConfigError(BetlinkError):
    """House integration config failed validation"""
    pass


class UpstreamApiError(BetlinkError):
    """House API unreachable, non-2xx, or returned an unusable payload"""
    pass


class HouseNotSyncableError(BetlinkError):
    """House is inactive, postback-only, or has no usable API config"""
    pass


class SyncInProgressError(BetlinkError):
    """A sync for this house is already running"""
    pass
