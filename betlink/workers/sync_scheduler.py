"""
Sync scheduler

One asyncio task per active API-enabled house, each running the house's
sync every `sync_interval` minutes. The scheduler is created in the app
lifespan and stored on `app.state`; nothing here is a module global.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from ..config import settings
from ..core.exceptions import HouseNotSyncableError, SyncInProgressError, UpstreamApiError
from ..db import SessionLocal
from ..models import BettingHouse
from ..services.api_sync import ApiSyncService
from ..services.store import ConversionStore

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Registry of per-house sync tasks"""

    def __init__(
        self,
        sync_service: Optional[ApiSyncService] = None,
        session_factory: Callable = SessionLocal,
        default_interval_min: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.sync_service = sync_service or ApiSyncService(session_factory=session_factory)
        self.default_interval_min = default_interval_min or settings.default_sync_interval_min
        self.running = False
        self._tasks: Dict[int, asyncio.Task] = {}
        self._intervals: Dict[int, int] = {}

    async def start(self):
        """Schedule every eligible house"""
        if self.running:
            logger.warning("Sync scheduler is already running")
            return

        self.running = True
        db = self.session_factory()
        try:
            houses = ConversionStore(db).list_syncable_houses()
            for house in houses:
                self.schedule_house(house)
        finally:
            db.close()
        logger.info("Sync scheduler started with %s house(s)", len(self._tasks))

    async def stop(self):
        """Cancel all house tasks and wait for them to finish"""
        self.running = False
        tasks = list(self._tasks.values())
        self._tasks.clear()
        self._intervals.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Sync scheduler stopped")

    def _interval_minutes(self, house: BettingHouse) -> int:
        return house.sync_interval if house.sync_interval and house.sync_interval > 0 else self.default_interval_min

    def schedule_house(self, house: BettingHouse) -> bool:
        """
        Start (or replace) the task for `house`. Returns False, with any old
        task removed, when the house is inactive or not API-enabled.
        """
        if not house.is_active or not house.is_api_enabled:
            self.remove_house_schedule(house.id)
            return False

        interval = self._interval_minutes(house)
        old = self._tasks.pop(house.id, None)
        if old is not None:
            old.cancel()
        self._tasks[house.id] = asyncio.create_task(
            self._run(house.id, house.identifier, interval), name=f"sync-house-{house.id}"
        )
        self._intervals[house.id] = interval
        logger.info("Scheduled sync for house %s every %s min", house.identifier, interval)
        return True

    def remove_house_schedule(self, house_id: int) -> bool:
        task = self._tasks.pop(house_id, None)
        self._intervals.pop(house_id, None)
        if task is None:
            return False
        task.cancel()
        logger.info("Removed sync schedule for house %s", house_id)
        return True

    def update_house_schedule(self, house_id: int) -> bool:
        """Re-read the house and reschedule it, or drop it when no longer eligible."""
        db = self.session_factory()
        try:
            house = ConversionStore(db).get_house(house_id)
            if house is None:
                self.remove_house_schedule(house_id)
                return False
            return self.schedule_house(house)
        finally:
            db.close()

    def active_schedules(self) -> List[Dict[str, Any]]:
        return [
            {
                "house_id": house_id,
                "interval_minutes": self._intervals.get(house_id),
                "syncing": self.sync_service.is_syncing(house_id),
            }
            for house_id, task in sorted(self._tasks.items())
            if not task.done()
        ]

    async def _run(self, house_id: int, identifier: str, interval_minutes: int):
        """Per-house loop; a failed run never stops the next one"""
        while True:
            await asyncio.sleep(interval_minutes * 60)
            try:
                result = await self.sync_service.sync_conversions(house_id)
                logger.info(
                    "Scheduled sync for house %s: %s synced, %s errors",
                    identifier, result.synced, len(result.errors),
                )
            except asyncio.CancelledError:
                raise
            except SyncInProgressError:
                logger.info("Skipping scheduled sync for house %s, a sync is already running", identifier)
            except Exception as e:
                logger.error("Scheduled sync for house %s failed: %s", identifier, e, exc_info=True)

    async def manual_sync(self, house_id: int) -> Dict[str, Any]:
        """
        Run a sync now. SyncInProgressError propagates so the caller can
        answer 409; other failures come back as success=False.
        """
        try:
            result = await self.sync_service.sync_conversions(house_id)
        except SyncInProgressError:
            raise
        except (HouseNotSyncableError, UpstreamApiError) as e:
            return {"success": False, "message": str(e), "data": None}
        except Exception as e:
            logger.error("Manual sync for house %s failed: %s", house_id, e, exc_info=True)
            return {"success": False, "message": "Sync failed", "data": None}

        return {
            "success": True,
            "message": f"Synced {result.synced} conversion(s) with {len(result.errors)} error(s)",
            "data": result.to_dict(),
        }

    async def test_house_connection(self, house_id: int) -> Dict[str, Any]:
        try:
            ok, message = await self.sync_service.test_connection(house_id)
        except HouseNotSyncableError as e:
            return {"success": False, "message": str(e)}
        return {"success": ok, "message": message}
