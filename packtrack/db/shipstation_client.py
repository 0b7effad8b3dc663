"""
ShipStation REST client (upstream order source).

Pages through the orders or shipments listing and exposes the two lookups
used by the merge step: tracking number by order id and shipment by
tracking number.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import aiohttp
from aiohttp import BasicAuth, ClientTimeout

from packtrack.core.config import Settings, get_settings
from packtrack.core.logging_config import log_api_call
from packtrack.utils.error_handler import UpstreamUnavailable

logger = logging.getLogger(__name__)


def _optional_int(value: Any) -> int | None:
    """Page metadata as an int, or None when upstream sends something unusable."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None



@dataclass
class UpstreamPage:
    """One page of the upstream listing."""

    records: list[dict[str, Any]]
    total: int | None = None
    pages: int | None = None


@dataclass
class FetchResult:
    """Concatenated records of a multi-page fetch."""

    records: list[dict[str, Any]] = field(default_factory=list)
    pages_fetched: int = 0
    error: UpstreamUnavailable | None = None

    @property
    def complete(self) -> bool:
        return self.error is None


class ShipStationClient:
    """
    Client for the ShipStation orders/shipments API.

    The session can be injected (tests); otherwise it is created by
    ``initialize()`` with Basic auth from settings.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        session: aiohttp.ClientSession | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        self.base_url = self.settings.SHIPSTATION_API_URL
        self.resource = self.settings.SHIPSTATION_RESOURCE
        self.session = session
        self._owns_session = session is None
        self._sleep = sleep

    async def initialize(self):
        """Create the HTTP session."""
        if self.session is not None:
            return

        if not self.settings.shipstation_configured:
            logger.warning("ShipStation credentials not configured; upstream calls will fail")

        auth = None
        if self.settings.shipstation_configured:
            auth = BasicAuth(self.settings.SHIPSTATION_API_KEY, self.settings.SHIPSTATION_API_SECRET)

        self.session = aiohttp.ClientSession(
            auth=auth,
            timeout=ClientTimeout(total=self.settings.SHIPSTATION_TIMEOUT_SECONDS),
            headers={"Accept": "application/json", "User-Agent": f"{self.settings.APP_NAME}/{self.settings.APP_VERSION}"},
        )
        self._owns_session = True
        logger.info(f"ShipStation client initialized for {self.base_url} ({self.resource})")

    async def close(self):
        """Close the HTTP session if this client created it."""
        if self.session and self._owns_session:
            await self.session.close()
            logger.info("ShipStation client closed")
        self.session = None

    async def _get_json(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        """
        Issue one GET and decode the JSON body.

        Raises:
            UpstreamUnavailable: On non-2xx, timeout, network error or malformed body
        """
        if self.session is None:
            raise UpstreamUnavailable("ShipStation client not initialized", endpoint=path)

        url = f"{self.base_url}{path}"
        started = time.perf_counter()
        try:
            async with self.session.get(url, params=params) as response:
                log_api_call("GET", url, response.status, time.perf_counter() - started)

                if response.status < 200 or response.status >= 300:
                    body = await response.text()
                    raise UpstreamUnavailable(
                        f"ShipStation HTTP {response.status}: {body[:200]}",
                        api_response_code=response.status,
                        endpoint=path,
                    )

                data = await response.json(content_type=None)

        except UpstreamUnavailable:
            raise
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailable("ShipStation request timed out", endpoint=path) from e
        except aiohttp.ClientError as e:
            raise UpstreamUnavailable(f"ShipStation network error: {e}", endpoint=path) from e
        except ValueError as e:
            raise UpstreamUnavailable(f"ShipStation returned malformed JSON: {e}", endpoint=path) from e

        if not isinstance(data, dict):
            raise UpstreamUnavailable("ShipStation returned an unexpected body", endpoint=path)

        return data

    async def fetch_page(self, page: int, page_size: int) -> UpstreamPage:
        """
        Fetch one page of the configured listing.

        Args:
            page: 1-based page number
            page_size: Records per page

        Returns:
            UpstreamPage with records and the total/pages metadata reported upstream

        Raises:
            UpstreamUnavailable: If the page cannot be retrieved
        """
        params: dict[str, Any] = {"page": page, "pageSize": page_size}
        if self.resource == "orders":
            params["orderStatus"] = self.settings.SHIPSTATION_ORDER_STATUS
        else:
            params["includeShipmentItems"] = "true"

        data = await self._get_json(f"/{self.resource}", params)

        records = data.get(self.resource)
        if not isinstance(records, list):
            raise UpstreamUnavailable(
                f"ShipStation response missing '{self.resource}' list", endpoint=f"/{self.resource}"
            )

        return UpstreamPage(
            records=records, total=_optional_int(data.get("total")), pages=_optional_int(data.get("pages"))
        )

    async def fetch_all(
        self,
        max_pages: int | None = None,
        page_size: int | None = None,
        inter_page_delay: float | None = None,
    ) -> FetchResult:
        """
        Fetch every page up to ``max_pages``.

        Stops on a short page, on the last page reported upstream, or at
        ``max_pages``. A failing page ends the loop and whatever was
        accumulated is returned with ``error`` set.
        """
        max_pages = max_pages or self.settings.SHIPSTATION_MAX_PAGES
        page_size = page_size or self.settings.SHIPSTATION_PAGE_SIZE
        if inter_page_delay is None:
            inter_page_delay = self.settings.SHIPSTATION_PAGE_DELAY_SECONDS

        result = FetchResult()
        page_number = 1

        while page_number <= max_pages:
            if page_number > 1 and inter_page_delay > 0:
                await self._sleep(inter_page_delay)

            try:
                page = await self.fetch_page(page_number, page_size)
            except UpstreamUnavailable as e:
                logger.error(
                    f"Stopping ShipStation fetch at page {page_number}: {e.message} "
                    f"({len(result.records)} records kept)"
                )
                result.error = e
                break

            result.records.extend(page.records)
            result.pages_fetched += 1
            logger.info(f"Fetched ShipStation page {page_number}: {len(page.records)} {self.resource}")

            if len(page.records) < page_size:
                break
            if page.pages is not None and page_number >= page.pages:
                break

            page_number += 1
        else:
            logger.warning(f"ShipStation fetch stopped at max_pages={max_pages}")

        return result

    async def find_tracking_number(self, order_id: str) -> str | None:
        """
        Look up the tracking number of an order through its shipments.

        Returns:
            First non-empty tracking number, or None when there is none or the lookup fails
        """
        try:
            data = await self._get_json("/shipments", {"orderId": order_id})
        except UpstreamUnavailable as e:
            logger.warning(f"Shipment lookup failed for order {order_id}: {e.message}")
            return None

        for shipment in data.get("shipments") or []:
            tracking_number = (shipment or {}).get("trackingNumber")
            if tracking_number:
                return str(tracking_number).strip()
        return None

    async def find_shipment_by_tracking(self, tracking_number: str) -> dict[str, Any] | None:
        """
        Look up a shipment (with items) by tracking number.

        Returns:
            The first matching shipment, or None when not found or the lookup fails
        """
        if not tracking_number:
            return None

        try:
            data = await self._get_json(
                "/shipments",
                {"trackingNumber": tracking_number, "includeShipmentItems": "true"},
            )
        except UpstreamUnavailable as e:
            logger.error(f"ShipStation lookup error for {tracking_number}: {e.message}")
            return None

        shipments = data.get("shipments") or []
        return shipments[0] if shipments else None

    def __repr__(self):
        return (
            f"ShipStationClient("
            f"base_url='{self.base_url}', "
            f"resource='{self.resource}', "
            f"initialized={self.session is not None})"
        )
