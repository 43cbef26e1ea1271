"""
Admin endpoints for house API integrations: connection tests, manual sync,
schedules and postback URL previews.
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..config import settings
from ..core.exceptions import HouseConfigError, SyncInProgressError
from ..db import get_db
from ..dependencies import get_sync_scheduler, require_admin_token
from ..models import BettingHouse
from ..schemas.events import EVENT_TYPES
from ..schemas.integration_config import load_integration_config, postback_settings
from ..services.commission import validate_house_commission_config
from ..services.store import ConversionStore
from ..workers.sync_scheduler import SyncScheduler

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin_token)])


def _get_house_or_404(db: Session, house_id: int) -> BettingHouse:
    house = ConversionStore(db).get_house(house_id)
    if house is None:
        raise HTTPException(status_code=404, detail=f"Betting house {house_id} not found")
    return house

@router.post("/houses/{house_id}/test-connection")
async def test_connection(
    house_id: int,
    db: Session = Depends(get_db),
    scheduler: SyncScheduler = Depends(get_sync_scheduler),
):
    _get_house_or_404(db, house_id)
    return await scheduler.test_house_connection(house_id)

@router.post("/houses/{house_id}/sync")
async def sync_house(
    house_id: int,
    db: Session = Depends(get_db),
    scheduler: SyncScheduler = Depends(get_sync_scheduler),
):
    """Run a sync now; 409 while another sync of the same house is running."""
    _get_house_or_404(db, house_id)
    try:
        return await scheduler.manual_sync(house_id)
    except SyncInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))

@router.post("/houses/{house_id}/schedule")
async def reschedule_house(
    house_id: int,
    db: Session = Depends(get_db),
    scheduler: SyncScheduler = Depends(get_sync_scheduler),
):
    _get_house_or_404(db, house_id)
    scheduled = scheduler.update_house_schedule(house_id)
    return {
        "success": True,
        "scheduled": scheduled,
        "message": "Sync scheduled" if scheduled else "House is not eligible for scheduled sync",
    }

@router.get("/sync/schedules")
async def list_schedules(scheduler: SyncScheduler = Depends(get_sync_scheduler)):
    return {"running": scheduler.running, "schedules": scheduler.active_schedules()}

@router.get("/houses/{house_id}/postback-urls")
def postback_urls(house_id: int, db: Session = Depends(get_db)):
    """Example postback URLs for a house, plus anything wrong with its commission settings."""
    house = _get_house_or_404(db, house_id)

    config_error = None
    token_required = False
    events = list(EVENT_TYPES)
    try:
        postback_cfg = postback_settings(load_integration_config(house))
        token_required = postback_cfg.require_token
        events = postback_cfg.enabled_events or events
    except HouseConfigError as e:
        config_error = str(e)

    base = settings.base_url.rstrip("/")
    params = "subid={subid}&amount={amount}&customer_id={customer_id}"
    if token_required:
        params += "&token={token}"

    return {
        "house": house.name,
        "identifier": house.identifier,
        "token_required": token_required,
        "urls": {event: f"{base}/webhook/{house.identifier}/{event}?{params}" for event in events},
        "commission_errors": validate_house_commission_config(house),
        "config_error": config_error,
    }
