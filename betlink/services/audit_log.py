"""
Audit log writer: one PostbackLog row per ingestion attempt.

`start` commits a PROCESSING row before anything is validated, and `finish`
moves it to a terminal status once. A failed `finish` is written to the
server log instead of propagating, since the caller is usually already
handling another error.
"""
import json
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..models import PostbackLog, PostbackStatus
from ..utils.log import get_logger
from .store import ConversionStore

logger = get_logger(__name__)

SECRET_FIELDS = {
    'token', 'security_token', 'api_key', 'api_secret', 'secret', 'password', 'authorization'
}

REDACTED = "[REDACTED]"


def filter_secrets(data: Dict[str, Any]) -> Dict[str, Any]:
    """Filter secrets from request data before it is stored"""
    if not isinstance(data, dict):
        return data

    filtered = {}
    for key, value in data.items():
        key_lower = str(key).lower()
        if any(secret_field in key_lower for secret_field in SECRET_FIELDS):
            filtered[key] = REDACTED
        elif isinstance(value, dict):
            filtered[key] = filter_secrets(value)
        elif isinstance(value, list):
            filtered[key] = [filter_secrets(item) if isinstance(item, dict) else item for item in value]
        else:
            filtered[key] = value

    return filtered


def _as_text(value) -> Optional[str]:
    if value is None:
        return None
    return str(value)[:255]


class AuditLogWriter:
    def __init__(self, store: ConversionStore):
        self.store = store

    def start(
        self,
        source: str,
        house_identifier: Optional[str],
        event_type: Optional[str],
        subid: Optional[str] = None,
        customer_id: Optional[str] = None,
        raw_value: Optional[Any] = None,
        ip: Optional[str] = None,
        raw_request: Optional[Dict[str, Any]] = None,
    ) -> PostbackLog:
        """Commit a PROCESSING row holding the values exactly as received."""
        return self.store.insert_audit_log(
            source=source,
            house_identifier=_as_text(house_identifier),
            event_type=_as_text(event_type),
            subid=_as_text(subid),
            customer_id=_as_text(customer_id),
            raw_value=_as_text(raw_value),
            ip=ip,
            raw_request=json.dumps(filter_secrets(raw_request or {}), default=str),
        )

    def finish(self, log_id: int, status: PostbackStatus, details: Optional[Dict[str, Any]] = None) -> bool:
        """
        Write the terminal status. Returns False if the row was already
        terminal or the write itself failed.
        """
        try:
            return self.store.update_audit_log_status(log_id, status.value, details)
        except SQLAlchemyError:
            logger.exception("Failed to finalize audit log %s as %s", log_id, status.value)
            try:
                self.store.rollback()
            except SQLAlchemyError:
                logger.exception("Rollback after audit log %s failure also failed", log_id)
            return False
