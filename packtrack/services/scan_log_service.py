"""
Warehouse scan log.

Tracking ids scanned at the packing station are appended to the store.
The enriched listing resolves each one with UPS and looks the shipment up
in ShipStation; scans that ShipStation does not know render as manual scans.
"""

import asyncio
import logging
import time
from datetime import UTC, datetime
from typing import Any, Callable, Dict, List, Optional

from packtrack.db.shipstation_client import ShipStationClient
from packtrack.db.tracking_store import TrackingStore
from packtrack.db.ups_client import UPSTrackingClient
from packtrack.services.order_normalizer import normalize_order
from packtrack.utils.error_handler import PersistenceError, ValidationException

logger = logging.getLogger(__name__)

NOT_FOUND_ORDER_NUMBER = "Not Found"
MANUAL_SCAN_CUSTOMER = "Manual Scan"


class ScanLogService:
    """
    Records scans and builds the enriched scan listing.
    """

    def __init__(
        self,
        store: TrackingStore,
        tracking_client: UPSTrackingClient,
        order_source: ShipStationClient,
        max_concurrency: int = 10,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.tracking_client = tracking_client
        self.order_source = order_source
        self.max_concurrency = max_concurrency
        self._clock = clock

    async def record_scan(self, tracking_id: str, date_str: Optional[str] = None) -> Dict[str, Any]:
        """
        Append one scan to the log.

        Args:
            tracking_id: Scanned tracking number
            date_str: Scan date as shown to the user; defaults to today (UTC)

        Raises:
            ValidationException: Blank tracking id
            PersistenceError: The store rejected the write
        """
        tracking_id = (tracking_id or "").strip()
        if not tracking_id:
            raise ValidationException("trackingId is required", field="trackingId", invalid_value=tracking_id)

        now = datetime.fromtimestamp(self._clock(), UTC)
        entry = {
            "trackingId": tracking_id,
            "dateStr": date_str or now.date().isoformat(),
            "loggedAt": now.isoformat(),
        }
        await self.store.add_scan_log(entry)
        logger.info(f"Scan logged: {tracking_id}")
        return entry

    async def _enrich(self, log: Dict[str, Any]) -> Dict[str, Any]:
        tracking_number = str(log["trackingId"]).strip()
        tracking = await self.tracking_client.track(tracking_number)
        shipment = await self.order_source.find_shipment_by_tracking(tracking_number)

        row: Dict[str, Any] = {
            "trackingNumber": tracking_number,
            "logDate": log.get("dateStr"),
            **tracking.to_dict(),
        }

        if not shipment:
            row.update(
                {
                    "orderId": None,
                    "orderNumber": NOT_FOUND_ORDER_NUMBER,
                    "customerName": MANUAL_SCAN_CUSTOMER,
                    "items": "",
                    "shipDate": log.get("dateStr"),
                }
            )
            return row

        order = normalize_order(shipment)
        row.update(
            {
                "orderId": shipment.get("orderId"),
                "orderNumber": shipment.get("orderKey") or order.order_number,
                "customerName": order.customer_name,
                "items": order.item_summary,
                "shipDate": order.ship_date,
            }
        )
        return row

    async def list_enriched(self) -> List[Dict[str, Any]]:
        """
        Enriched scan rows, most recently updated first.

        A store that cannot be read yields an empty list.
        """
        try:
            logs = await self.store.list_scan_logs()
        except PersistenceError as e:
            logger.error(f"❌ Could not read scan logs: {e.message}")
            return []

        logs = [log for log in logs if log.get("trackingId")]
        logger.info(f"Scan logs loaded: {len(logs)}")

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _bounded(log: Dict[str, Any]) -> Dict[str, Any]:
            async with semaphore:
                return await self._enrich(log)

        rows = await asyncio.gather(*(_bounded(log) for log in logs))
        return sorted(rows, key=lambda row: row.get("lastUpdated") or "", reverse=True)
