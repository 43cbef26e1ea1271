"""
Postback ingestion: turns one `/webhook/{house}/{event}` call into an audit
log row and, when the event is accepted, a Conversion.

RECEIVED -> PROCESSING logged -> house resolved -> affiliate resolved ->
dedup checked -> commission computed -> persisted -> SUCCESS logged.
Every early exit ends the log in an ERROR_* status instead.
"""
import hmac
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import (
    AffiliateNotFoundError,
    HouseConfigError,
    HouseNotFoundError,
    IngestionError,
    UnauthorizedPostbackError,
    ValidationError,
)
from ..models import PostbackStatus
from ..schemas.events import ConversionEvent
from ..schemas.integration_config import load_integration_config, postback_settings
from ..utils.log import get_logger, log_postback_event
from .audit_log import AuditLogWriter, filter_secrets
from .commission import quantize_money
from .conversions import ConversionRecorder, RecordOutcome
from .dedup import DedupGuard
from .store import ConversionStore

logger = get_logger(__name__)

SOURCE = "postback"
GENERIC_ERROR = "Internal processing error"


@dataclass
class PostbackRequest:
    house_identifier: str
    event_type: str
    params: Dict[str, Any]
    method: str = "GET"
    ip: Optional[str] = None
    query: Dict[str, Any] = field(default_factory=dict)
    body: Dict[str, Any] = field(default_factory=dict)

    def get(self, name: str) -> Optional[str]:
        value = self.params.get(name)
        if value is None:
            return None
        return str(value)


@dataclass
class PostbackOutcome:
    log_id: int
    house_name: str
    event_type: str
    affiliate: str
    record: RecordOutcome

    def to_response(self) -> Dict[str, Any]:
        result = self.record.result
        return {
            "success": True,
            "commission": float(quantize_money(result.affiliate_commission)),
            "masterCommission": float(quantize_money(result.master_commission)),
            "type": result.commission_type,
            "affiliate": self.affiliate,
            "house": self.house_name,
            "event": self.event_type,
            "logId": self.log_id,
            "reason": result.reason,
            "duplicate": self.record.duplicate,
            "conversionId": self.record.conversion.id if self.record.conversion else None,
        }


class PostbackService:
    def __init__(self, db: Session):
        self.store = ConversionStore(db)
        self.audit = AuditLogWriter(self.store)
        self.recorder = ConversionRecorder(self.store, DedupGuard(self.store))

    def process(self, request: PostbackRequest) -> PostbackOutcome:
        """
        Run one postback through the pipeline.

        Raises IngestionError (carrying log_id) for every rejected or failed
        attempt; unexpected errors are wrapped into a generic one.
        """
        try:
            log = self.audit.start(
                source=SOURCE,
                house_identifier=request.house_identifier,
                event_type=request.event_type,
                subid=request.get("subid"),
                customer_id=request.get("customer_id"),
                raw_value=request.get("amount"),
                ip=request.ip,
                raw_request={"method": request.method, "query": request.query, "body": request.body},
            )
        except SQLAlchemyError as e:
            logger.exception("Could not write audit log for postback to %s", request.house_identifier)
            self.store.rollback()
            raise IngestionError(GENERIC_ERROR) from e
        log_id = log.id
        log_postback_event(logger, "received", log_id, request.house_identifier, True,
                           {"event": request.event_type, "ip": request.ip})

        try:
            outcome = self._process(log_id, request)
        except IngestionError as e:
            e.log_id = log_id
            self.audit.finish(log_id, e.log_status, {"error": str(e)})
            log_postback_event(logger, "rejected", log_id, request.house_identifier, False,
                               {"status": e.log_status.value, "error": str(e)})
            raise
        except Exception as e:
            logger.exception("Postback %s failed", log_id)
            self.store.rollback()
            self.audit.finish(log_id, PostbackStatus.ERROR_PROCESSING, {"error": type(e).__name__})
            raise IngestionError(GENERIC_ERROR, log_id=log_id) from e

        self.audit.finish(log_id, PostbackStatus.SUCCESS, outcome.record.details())
        log_postback_event(logger, "completed", log_id, request.house_identifier, True, {
            "commission": str(quantize_money(outcome.record.result.affiliate_commission)),
            "duplicate": outcome.record.duplicate,
        })
        return outcome

    def _parse_event(self, request: PostbackRequest) -> ConversionEvent:
        if not request.get("subid") or not request.get("subid").strip():
            raise ValidationError("Missing required parameter: subid")
        try:
            return ConversionEvent(
                house_identifier=request.house_identifier,
                event_type=request.event_type,
                subid=request.get("subid"),
                customer_id=request.get("customer_id"),
                amount=request.get("amount"),
                raw_payload=filter_secrets(dict(request.params)),
            )
        except PydanticValidationError as e:
            err = e.errors(include_url=False)[0]
            loc = ".".join(str(part) for part in err.get("loc", ())) or "request"
            raise ValidationError(f"Invalid {loc}: {err.get('msg')}") from e

    def _process(self, log_id: int, request: PostbackRequest) -> PostbackOutcome:
        event = self._parse_event(request)

        house = self.store.find_house_by_identifier(event.house_identifier)
        if house is None:
            raise HouseNotFoundError(f"Betting house '{event.house_identifier}' not found")

        try:
            config = load_integration_config(house)
        except HouseConfigError as e:
            logger.error("%s", e)
            raise IngestionError("Betting house integration is misconfigured") from e

        postback_cfg = postback_settings(config)
        if postback_cfg.require_token:
            token = request.get("token") or ""
            if not hmac.compare_digest(token.encode(), (house.security_token or "").encode()):
                raise UnauthorizedPostbackError("Invalid or missing token")
        if postback_cfg.enabled_events and event.event_type not in postback_cfg.enabled_events:
            raise ValidationError(f"Event type '{event.event_type}' is not enabled for this house")

        affiliate = self.store.find_affiliate_by_username(event.subid)
        if affiliate is None:
            raise AffiliateNotFoundError(f"Affiliate '{event.subid}' not found")

        house_name = house.name
        username = affiliate.username
        log_postback_event(logger, "resolved", log_id, house.identifier, True,
                           {"affiliate": username, "customer_id": event.customer_id})

        record = self.recorder.record(house, affiliate, event, SOURCE)
        return PostbackOutcome(
            log_id=log_id,
            house_name=house_name,
            event_type=event.event_type,
            affiliate=username,
            record=record,
        )
