"""
API polling sync: pulls conversions from a house's REST API and feeds each
record through the same dedup and commission path as postbacks.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

from ..config import settings
from ..core.exceptions import (
    AffiliateNotFoundError,
    HouseConfigError,
    HouseNotSyncableError,
    IngestionError,
    SyncInProgressError,
    ValidationError,
)
from ..db import SessionLocal
from ..models import BettingHouse, PostbackStatus, SyncStatus, User
from ..schemas.events import ConversionEvent
from ..schemas.integration_config import ApiSettings, api_settings, load_integration_config
from ..utils.log import get_logger, log_postback_event
from .audit_log import AuditLogWriter
from .conversions import ConversionRecorder
from .house_api_client import HouseApiClient
from .store import ConversionStore

logger = get_logger(__name__)

SOURCE = "api_sync"


@dataclass
class SyncResult:
    synced: int = 0
    skipped: int = 0  # duplicates, neither synced nor errors
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"synced": self.synced, "skipped": self.skipped, "errors": list(self.errors)}


def normalize_record(house_identifier: str, api: ApiSettings, record: Any) -> ConversionEvent:
    """Map one upstream record onto a ConversionEvent using the house's field mapping."""
    if not isinstance(record, dict):
        raise ValidationError("Record is not a JSON object")

    mapping = api.field_mapping
    upstream_event = record.get(mapping.event_type)
    if upstream_event is None or not str(upstream_event).strip():
        raise ValidationError(f"Record has no '{mapping.event_type}' field")
    key = str(upstream_event).strip().lower()

    fields: Dict[str, Any] = {
        "house_identifier": house_identifier,
        "event_type": api.event_type_mapping.get(key, key),
        "subid": record.get(mapping.subid) if mapping.subid else None,
        "customer_id": record.get(mapping.customer_id),
        "amount": record.get(mapping.amount),
        "raw_payload": record,
    }
    if record.get(mapping.timestamp):
        fields["timestamp"] = record[mapping.timestamp]

    try:
        return ConversionEvent(**fields)
    except PydanticValidationError as e:
        err = e.errors(include_url=False)[0]
        loc = ".".join(str(part) for part in err.get("loc", ())) or "record"
        raise ValidationError(f"Invalid {loc}: {err.get('msg')}") from e


class ApiSyncService:
    """
    Owns the per-house in-progress set, so one instance must be shared by
    everything that can start a sync (scheduler ticks and manual runs).
    """

    def __init__(
        self,
        session_factory: Callable = SessionLocal,
        client_factory: Optional[Callable[[ApiSettings], HouseApiClient]] = None,
    ):
        self.session_factory = session_factory
        self.client_factory = client_factory or HouseApiClient
        self._in_progress: Set[int] = set()

    def is_syncing(self, house_id: int) -> bool:
        return house_id in self._in_progress

    def _load(self, store: ConversionStore, house_id: int) -> Tuple[BettingHouse, ApiSettings]:
        house = store.get_house(house_id)
        if house is None:
            raise HouseNotSyncableError(f"Betting house {house_id} not found")
        if not house.is_active:
            raise HouseNotSyncableError(f"Betting house '{house.identifier}' is inactive")
        if not house.is_api_enabled:
            raise HouseNotSyncableError(
                f"Betting house '{house.identifier}' is not configured for API integration"
            )
        try:
            config = load_integration_config(house)
        except HouseConfigError as e:
            raise HouseNotSyncableError(str(e)) from e
        return house, api_settings(config)

    async def test_connection(self, house_id: int) -> Tuple[bool, str]:
        db = self.session_factory()
        try:
            _, api = self._load(ConversionStore(db), house_id)
        finally:
            db.close()
        return await self.client_factory(api).check_health()

    async def sync_conversions(self, house_id: int, date_from: Optional[date] = None) -> SyncResult:
        """
        Pull and ingest one house's conversions since `date_from` (default:
        the last successful sync, or the configured lookback).

        Raises SyncInProgressError when this house is already syncing,
        HouseNotSyncableError before any state is touched, and re-raises
        whatever ended the run after recording it on the house.
        """
        if house_id in self._in_progress:
            raise SyncInProgressError(f"Sync already in progress for house {house_id}")
        self._in_progress.add(house_id)

        db = self.session_factory()
        store = ConversionStore(db)
        try:
            house, api = self._load(store, house_id)
            return await self._run(store, house, api, date_from)
        finally:
            self._in_progress.discard(house_id)
            db.close()

    async def _run(
        self, store: ConversionStore, house: BettingHouse, api: ApiSettings, date_from: Optional[date]
    ) -> SyncResult:
        house_id = house.id
        identifier = house.identifier
        last_sync_at = house.last_sync_at
        store.update_house_sync_status(house_id, SyncStatus.SYNCING.value)
        logger.info("Starting API sync for house %s", identifier)

        status_written = False
        try:
            today = datetime.utcnow().date()
            if date_from is None:
                date_from = last_sync_at.date() if last_sync_at else today - timedelta(days=settings.sync_lookback_days)

            records = await self.client_factory(api).fetch_conversions(date_from, today)

            result = SyncResult()
            audit = AuditLogWriter(store)
            recorder = ConversionRecorder(store)
            for record in records:
                self._ingest(store, audit, recorder, house_id, identifier, api, record, result)

            store.update_house_sync_status(house_id, SyncStatus.SUCCESS.value, last_sync_at=datetime.utcnow())
            status_written = True
            logger.info(
                "API sync for house %s finished: %s synced, %s duplicates, %s errors",
                identifier, result.synced, result.skipped, len(result.errors),
            )
            return result
        except Exception as e:
            logger.error("API sync for house %s failed: %s", identifier, e)
            status_written = self._mark_error(store, house_id, str(e) or type(e).__name__)
            raise
        finally:
            if not status_written:
                self._mark_error(store, house_id, "Sync interrupted")

    def _mark_error(self, store: ConversionStore, house_id: int, message: str) -> bool:
        try:
            store.rollback()
            store.update_house_sync_status(house_id, SyncStatus.ERROR.value, error_message=message[:1000])
            return True
        except SQLAlchemyError:
            logger.exception("Could not record sync error for house %s", house_id)
            return False

    def _attribute(
        self, store: ConversionStore, house_id: int, api: ApiSettings, event: ConversionEvent
    ) -> Tuple[User, Optional[int]]:
        if event.subid:
            user = store.find_affiliate_by_username(event.subid)
            if user is None:
                raise AffiliateNotFoundError(f"Affiliate '{event.subid}' not found")
            return user, None

        owner = store.find_link_owner_for_house(house_id)
        if owner is not None:
            link, user = owner
            return user, link.id

        if api.default_affiliate_username:
            user = store.find_affiliate_by_username(api.default_affiliate_username)
            if user is not None:
                return user, None
            raise AffiliateNotFoundError(
                f"Default affiliate '{api.default_affiliate_username}' not found"
            )

        raise AffiliateNotFoundError(
            "No affiliate for record: no subid, no active affiliate link, "
            "and no default_affiliate_username configured"
        )

    def _ingest(
        self,
        store: ConversionStore,
        audit: AuditLogWriter,
        recorder: ConversionRecorder,
        house_id: int,
        identifier: str,
        api: ApiSettings,
        record: Any,
        result: SyncResult,
    ) -> None:
        mapping = api.field_mapping
        fields = record if isinstance(record, dict) else {}
        customer_id = fields.get(mapping.customer_id)
        log = audit.start(
            source=SOURCE,
            house_identifier=identifier,
            event_type=fields.get(mapping.event_type),
            subid=fields.get(mapping.subid) if mapping.subid else None,
            customer_id=customer_id,
            raw_value=fields.get(mapping.amount),
            raw_request={"record": record},
        )
        label = f"record {customer_id or '?'}"

        try:
            event = normalize_record(identifier, api, record)
            affiliate, link_id = self._attribute(store, house_id, api, event)
            house = store.get_house(house_id)
            outcome = recorder.record(house, affiliate, event, SOURCE, affiliate_link_id=link_id)
        except IngestionError as e:
            audit.finish(log.id, e.log_status, {"error": str(e)})
            result.errors.append(f"{label}: {e}")
            log_postback_event(logger, "sync_record_rejected", log.id, identifier, False, {"error": str(e)})
            return
        except Exception as e:
            logger.exception("Unexpected error ingesting %s for house %s", label, identifier)
            store.rollback()
            audit.finish(log.id, PostbackStatus.ERROR_PROCESSING, {"error": type(e).__name__})
            result.errors.append(f"{label}: processing error")
            return

        audit.finish(log.id, PostbackStatus.SUCCESS, outcome.details())
        if outcome.duplicate:
            result.skipped += 1
        else:
            result.synced += 1
