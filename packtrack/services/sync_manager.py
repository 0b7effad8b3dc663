"""
Order sync manager.

Owns the merged-order cache and coordinates a sync pass: fetch every
ShipStation page, join each entry with its UPS status, swap the cache and
mirror the rows into the persistent store.

At most one pass runs at a time. Concurrent readers attach to the pending
task instead of starting another one.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from packtrack.core.cache_manager import ResultCache
from packtrack.core.config import Settings, get_settings
from packtrack.db.shipstation_client import ShipStationClient
from packtrack.db.tracking_store import TrackingStore
from packtrack.db.ups_client import UPSTrackingClient
from packtrack.domain.models import MergedRecord, TrackingRecord
from packtrack.domain.value_objects import TrackingStatusKind
from packtrack.services.order_normalizer import OrderMerger
from packtrack.utils.error_handler import PersistenceError
from packtrack.utils.pagination import paginate

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of one sync pass."""

    success: bool
    count: int = 0
    pages_fetched: int = 0
    error: Optional[str] = None
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success, "count": self.count}
        if self.error:
            result["error"] = self.error
        return result


def _isoformat(epoch: Optional[float]) -> Optional[str]:
    if epoch is None:
        return None
    return datetime.fromtimestamp(epoch, UTC).isoformat()


class OrderSyncManager:
    """
    Cache-backed read path and sync coordinator.

    Args:
        order_source: ShipStation client
        tracking_client: UPS client
        store: Persistent store (optional)
        settings: Application settings
        cache: Result cache; built from ORDER_CACHE_TTL_SECONDS when None
        clock: Epoch-seconds time source
    """

    def __init__(
        self,
        order_source: ShipStationClient,
        tracking_client: UPSTrackingClient,
        store: Optional[TrackingStore] = None,
        settings: Optional[Settings] = None,
        cache: Optional[ResultCache[MergedRecord]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or get_settings()
        self.order_source = order_source
        self.tracking_client = tracking_client
        self.store = store
        self._clock = clock
        self.cache = cache or ResultCache(ttl_seconds=self.settings.ORDER_CACHE_TTL_SECONDS, clock=clock)
        self.merger = OrderMerger(tracking_client, order_source)
        self.last_result: Optional[SyncResult] = None

    # ------------------------------------------------------------------
    # Preserved carrier data
    # ------------------------------------------------------------------

    def is_trustworthy(self, tracking: TrackingRecord) -> bool:
        """
        Whether carried-over carrier fields may still be shown.

        Delivered is terminal. Anything else is trusted for
        PRESERVED_TRACKING_MAX_AGE_HOURS after it was fetched.
        """
        if tracking.delivered:
            return True
        if tracking.last_updated is None:
            return False

        age = datetime.fromtimestamp(self._clock(), UTC) - tracking.last_updated
        return age < timedelta(hours=self.settings.PRESERVED_TRACKING_MAX_AGE_HOURS)

    def expire_preserved(self, record: MergedRecord) -> MergedRecord:
        """Apply the staleness rule to a row whose carrier fields were carried over."""
        if not record.has_tracking or self.is_trustworthy(record.tracking):
            return record

        logger.debug(f"Preserved tracking for {record.tracking_number} is stale, marking unknown")
        stale = TrackingRecord.sentinel(
            TrackingStatusKind.UNKNOWN,
            tracking_url=record.tracking.tracking_url,
            last_updated=record.tracking.last_updated,
        )
        return record.with_tracking(stale, resolved=False)

    def _carry_over(self, records: List[MergedRecord]) -> List[MergedRecord]:
        previous = {record.order.order_id: record for record in self.cache.data}
        result = []
        for record in records:
            if record.tracking_resolved:
                result.append(record)
                continue

            old = previous.get(record.order.order_id)
            if old is not None and old.has_tracking and old.tracking_number == record.tracking_number:
                record = record.with_tracking(old.tracking, resolved=False)
                result.append(self.expire_preserved(record))
            elif old is not None and old.has_tracking and not record.has_tracking:
                # Tracking number found by the secondary lookup on an earlier pass
                carried = MergedRecord(
                    order=record.order,
                    tracking_number=old.tracking_number,
                    tracking=old.tracking,
                    tracking_resolved=False,
                )
                result.append(self.expire_preserved(carried))
            else:
                result.append(record)
        return result

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> int:
        """
        Warm-start the cache from the persistent store.

        Returns:
            int: Number of rows loaded
        """
        if self.store is None or not self.settings.WARM_START_FROM_STORE:
            return 0

        try:
            snapshot = await self.store.load_snapshot()
        except PersistenceError as e:
            logger.error(f"❌ Warm start failed, starting with an empty cache: {e.message}")
            return 0

        if not snapshot.records:
            logger.info("Store is empty, cache will fill on first read")
            return 0

        records = [self.expire_preserved(record) for record in snapshot.records]
        fetched_at = snapshot.last_sync if snapshot.last_sync is not None else 0.0
        self.cache.replace(records, fetched_at=fetched_at)
        self.cache.last_sync = snapshot.last_sync
        logger.info(f"✅ Warm start loaded {len(records)} orders (last sync {_isoformat(snapshot.last_sync)})")
        return len(records)

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    async def get_orders(self) -> List[MergedRecord]:
        """Fresh cached rows, or the rows produced by the current/new pass."""
        if self.cache.is_fresh():
            return self.cache.data

        await self.refresh()
        return self.cache.data

    async def list_orders(self, page: int = 1, limit: int = 25) -> Dict[str, Any]:
        records = await self.get_orders()
        result = paginate([record.to_dict() for record in records], page=page, limit=limit)
        result["lastSync"] = _isoformat(self.cache.last_sync)
        return result

    async def list_tracking(self, page: int = 1, limit: int = 25) -> Dict[str, Any]:
        records = await self.get_orders()
        rows = [record.to_tracking_row() for record in records if record.has_tracking]
        return paginate(rows, page=page, limit=limit)

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def refresh(self, enrich: Optional[bool] = None) -> SyncResult:
        """
        Run a sync pass, or join the one already running.

        Args:
            enrich: Resolve carrier status for every row; defaults to
                ENRICH_TRACKING. Ignored when joining a running pass.
        """
        pending = self.cache.pending
        if pending is None or pending.done():
            pending = asyncio.create_task(self._run_refresh(enrich))
            self.cache.pending = pending
        else:
            logger.debug("Sync already in flight, attaching to it")

        return await asyncio.shield(pending)

    async def _run_refresh(self, enrich: Optional[bool]) -> SyncResult:
        enrich = self.settings.ENRICH_TRACKING if enrich is None else enrich
        started = time.perf_counter()
        logger.info(f"🚀 Starting order sync (enrich={enrich})")

        try:
            result = await self._sync(enrich)
        except Exception as e:
            logger.exception(f"❌ Order sync crashed: {e}")
            result = SyncResult(success=False, count=len(self.cache.data), error=str(e))
            self.cache.touch()
        finally:
            self.cache.pending = None

        result.duration_seconds = round(time.perf_counter() - started, 3)
        self.last_result = result
        if result.success:
            logger.info(f"✅ Order sync finished: {result.count} orders in {result.duration_seconds}s")
        else:
            logger.warning(f"Order sync finished with errors: {result.error}")
        return result

    async def _sync(self, enrich: bool) -> SyncResult:
        page_size = self.settings.SHIPSTATION_PAGE_SIZE
        fetched = await self.order_source.fetch_all(
            max_pages=self.settings.SHIPSTATION_MAX_PAGES,
            page_size=page_size,
            inter_page_delay=self.settings.SHIPSTATION_PAGE_DELAY_SECONDS,
        )
        error = fetched.error.message if fetched.error else None

        if not fetched.records and fetched.error is not None and self.cache.entry is not None:
            # Keep serving the previous list; wait a full TTL before asking upstream again
            self.cache.touch()
            return SyncResult(success=False, count=len(self.cache.data), pages_fetched=0, error=error)

        semaphore = asyncio.Semaphore(self.settings.ENRICH_MAX_CONCURRENCY)
        merged: List[MergedRecord] = []
        for start in range(0, len(fetched.records), page_size):
            chunk = fetched.records[start : start + page_size]
            merged.extend(await self.merger.merge_many(chunk, enrich=enrich, semaphore=semaphore))

        merged = self._carry_over(merged)
        self.cache.replace(merged)

        await self._persist(merged, self.cache.last_sync)

        return SyncResult(
            success=fetched.complete,
            count=len(merged),
            pages_fetched=fetched.pages_fetched,
            error=error,
        )

    async def _persist(self, records: List[MergedRecord], last_sync: float) -> None:
        if self.store is None:
            return
        try:
            await self.store.save_snapshot(records, last_sync)
        except PersistenceError as e:
            logger.error(f"❌ Could not persist sync results, serving from memory: {e.message}")

    # ------------------------------------------------------------------
    # Single tracking refresh
    # ------------------------------------------------------------------

    async def refresh_one_tracking(self, tracking_number: str) -> TrackingRecord:
        """
        Re-resolve one tracking number bypassing every TTL.

        Only the cached rows with that number change; every other row stays
        the same object. An error sentinel is returned to the caller but never
        overwrites a row that already holds carrier data.
        """
        number = tracking_number.strip()
        tracking = await self.tracking_client.track(number, force=True)

        updated: List[MergedRecord] = []

        def _replace(record: MergedRecord) -> Optional[MergedRecord]:
            if record.tracking_number != number:
                return None
            if tracking.is_error and record.tracking.kind is TrackingStatusKind.LIVE:
                return None
            new_record = record.with_tracking(tracking)
            updated.append(new_record)
            return new_record

        replaced = self.cache.update_items(_replace)
        logger.info(f"Refreshed tracking {number}: {tracking.status} ({replaced} cached rows updated)")

        if self.store is not None:
            for record in updated:
                try:
                    await self.store.upsert_record(record)
                except PersistenceError as e:
                    logger.error(f"❌ Could not persist tracking {number}: {e.message}")

        return tracking

    def status(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "cacheSize": len(self.cache.data),
            "lastSync": _isoformat(self.cache.last_sync),
        }
