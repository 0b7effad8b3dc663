"""
UPS tracking client (carrier).

Resolves a tracking number to its current status using the UPS OAuth
client-credentials flow and the tracking-detail endpoint. ``track()`` never
raises: every failure is turned into a sentinel TrackingRecord so that a
carrier outage never aborts an order listing.
"""

import asyncio
import logging
import time
import uuid
from datetime import UTC, datetime
from typing import Any, Callable
from urllib.parse import quote

import aiohttp
from aiohttp import BasicAuth, ClientTimeout

from packtrack.core.cache_manager import TokenStore, TTLCache
from packtrack.core.config import Settings, get_settings
from packtrack.core.logging_config import log_api_call
from packtrack.domain.models import TrackingRecord
from packtrack.domain.models.tracking import NO_DATE, PENDING_DATE
from packtrack.domain.value_objects import TrackingStatusKind
from packtrack.utils.error_handler import AuthError, TrackingFetchError
from packtrack.utils.rate_limiter import TokenBucketRateLimiter

logger = logging.getLogger(__name__)

PUBLIC_TRACKING_URL = "https://www.ups.com/track?tracknum={tracking_number}"
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600


def format_delivery_date(raw: str | None) -> str:
    """Reformat a compact ``YYYYMMDD`` date as ``MM/DD/YYYY`` ("--" when absent)."""
    if not raw:
        return NO_DATE
    try:
        return datetime.strptime(str(raw), "%Y%m%d").strftime("%m/%d/%Y")
    except ValueError:
        return str(raw)


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _first(items: Any) -> dict[str, Any]:
    if isinstance(items, list) and items:
        return _dict(items[0])
    return {}


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def parse_tracking_response(payload: Any, tracking_url: str, fetched_at: datetime) -> TrackingRecord:
    """
    Extract status, location and delivery estimate from a tracking-detail body.

    Uses the first package of the first shipment and its most recent activity.
    Nested values of the wrong type are treated as missing.

    Raises:
        TrackingFetchError: When the body holds no package
    """
    shipment = _first(_dict(_dict(payload).get("trackResponse")).get("shipment"))
    package = _first(shipment.get("package"))
    if not package:
        warnings = shipment.get("warnings")
        detail = _text(_first(warnings).get("message")) or "no package in response"
        raise TrackingFetchError(f"Malformed tracking response: {detail}")

    activity = _first(package.get("activity"))
    status = _text(_dict(activity.get("status")).get("description"))
    if not status:
        status = _text(_dict(package.get("currentStatus")).get("description"))

    address = _dict(_dict(activity.get("location")).get("address"))
    location = ", ".join(part for part in (_text(address.get("city")), _text(address.get("stateProvince"))) if part)

    delivery_date = _first(package.get("deliveryDate")).get("date")
    expected = format_delivery_date(delivery_date if isinstance(delivery_date, str) else None)

    return TrackingRecord.live(
        status=status,
        location=location,
        expected_delivery=expected,
        last_updated=fetched_at,
        tracking_url=tracking_url,
    )


class UPSTrackingClient:
    """
    Client for the UPS OAuth and tracking APIs.

    Collaborators are injected so tests can supply fakes:

    Args:
        settings: Application settings
        session: aiohttp session (created by ``initialize()`` when None)
        token_store: OAuth token holder
        tracking_cache: Per-number result cache
        rate_limiter: Spacing between tracking calls
        clock: Epoch-seconds time source
    """

    def __init__(
        self,
        settings: Settings | None = None,
        session: aiohttp.ClientSession | None = None,
        token_store: TokenStore | None = None,
        tracking_cache: TTLCache[TrackingRecord] | None = None,
        rate_limiter: TokenBucketRateLimiter | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or get_settings()
        self.session = session
        self._owns_session = session is None
        self._clock = clock
        self.token_store = token_store or TokenStore(
            safety_margin_seconds=self.settings.UPS_TOKEN_SAFETY_MARGIN_SECONDS, clock=clock
        )
        self.tracking_cache = tracking_cache if tracking_cache is not None else TTLCache(clock=clock)
        self.rate_limiter = rate_limiter or TokenBucketRateLimiter(
            rate_per_second=self.settings.UPS_REQUESTS_PER_SECOND,
            capacity=self.settings.UPS_RATE_LIMIT_BURST,
        )
        self._token_lock = asyncio.Lock()
        self.prefix = self.settings.UPS_TRACKING_PREFIX.upper()

    async def initialize(self):
        """Create the HTTP session."""
        if self.session is not None:
            return

        if not self.settings.ups_configured:
            logger.warning("UPS credentials not configured; tracking will render as unavailable")

        self.session = aiohttp.ClientSession(timeout=ClientTimeout(total=self.settings.UPS_TIMEOUT_SECONDS))
        self._owns_session = True
        logger.info("UPS tracking client initialized")

    async def close(self):
        """Close the HTTP session if this client created it."""
        if self.session and self._owns_session:
            await self.session.close()
            logger.info("UPS tracking client closed")
        self.session = None

    def is_trackable(self, tracking_number: str | None) -> bool:
        """Cheap format check: UPS numbers start with the carrier prefix."""
        return bool(tracking_number) and tracking_number.strip().upper().startswith(self.prefix)

    def tracking_url(self, tracking_number: str) -> str:
        return PUBLIC_TRACKING_URL.format(tracking_number=quote(tracking_number.strip(), safe=""))

    async def get_token(self) -> str:
        """
        Return a valid bearer token, exchanging client credentials if needed.

        Raises:
            AuthError: Missing credentials, rejected exchange, or still inside
                the backoff window of a previous failure
        """
        token = self.token_store.get_valid()
        if token:
            return token

        async with self._token_lock:
            # Another waiter may have refreshed it
            token = self.token_store.get_valid()
            if token:
                return token

            if not self.settings.ups_configured:
                raise AuthError("UPS client credentials are not configured")

            if self.token_store.in_backoff():
                raise AuthError("UPS OAuth exchange failed recently; waiting before retrying")

            return await self._exchange_token()

    async def _exchange_token(self) -> str:
        if self.session is None:
            raise AuthError("UPS client not initialized")

        url = self.settings.ups_oauth_url
        started = time.perf_counter()
        try:
            async with self.session.post(
                url,
                data={"grant_type": "client_credentials"},
                auth=BasicAuth(self.settings.UPS_CLIENT_ID, self.settings.UPS_CLIENT_SECRET),
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=ClientTimeout(total=self.settings.UPS_TIMEOUT_SECONDS),
            ) as response:
                log_api_call("POST", url, response.status, time.perf_counter() - started)

                if response.status != 200:
                    body = await response.text()
                    raise AuthError(f"UPS OAuth HTTP {response.status}: {body[:200]}", api_response_code=response.status)

                data = await response.json(content_type=None)

            access_token = (data or {}).get("access_token")
            if not access_token:
                raise AuthError("UPS OAuth response has no access_token")

            try:
                expires_in = float(data.get("expires_in") or DEFAULT_TOKEN_LIFETIME_SECONDS)
            except (TypeError, ValueError):
                expires_in = DEFAULT_TOKEN_LIFETIME_SECONDS

        except AuthError as e:
            logger.error(f"UPS OAuth error: {e.message}")
            self.token_store.record_failure(self.settings.UPS_AUTH_FAILURE_BACKOFF_SECONDS)
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"UPS OAuth error: {e}")
            self.token_store.record_failure(self.settings.UPS_AUTH_FAILURE_BACKOFF_SECONDS)
            raise AuthError(f"UPS OAuth exchange failed: {e}") from e

        self.token_store.store(access_token, expires_in)
        logger.info("UPS OAuth token fetched")
        return access_token

    async def _fetch_details(self, tracking_number: str, token: str) -> dict[str, Any]:
        """
        Call the tracking-detail endpoint once.

        Raises:
            AuthError: The token was rejected (401)
            TrackingFetchError: Any other failure
        """
        if self.session is None:
            raise TrackingFetchError("UPS client not initialized", tracking_number=tracking_number)

        url = f"{self.settings.ups_tracking_url}/{quote(tracking_number, safe='')}"
        headers = {
            "Authorization": f"Bearer {token}",
            "transId": uuid.uuid4().hex,
            "transactionSrc": self.settings.UPS_TRANSACTION_SOURCE,
        }

        started = time.perf_counter()
        try:
            async with self.session.get(
                url,
                params={"locale": "en_US"},
                headers=headers,
                timeout=ClientTimeout(total=self.settings.UPS_TIMEOUT_SECONDS),
            ) as response:
                log_api_call("GET", url, response.status, time.perf_counter() - started)

                if response.status == 401:
                    raise AuthError("UPS rejected the bearer token", api_response_code=401)

                if response.status != 200:
                    body = await response.text()
                    raise TrackingFetchError(
                        f"UPS tracking HTTP {response.status}: {body[:200]}",
                        tracking_number=tracking_number,
                        api_response_code=response.status,
                    )

                data = await response.json(content_type=None)

        except (AuthError, TrackingFetchError):
            raise
        except asyncio.TimeoutError as e:
            raise TrackingFetchError("UPS tracking request timed out", tracking_number=tracking_number) from e
        except aiohttp.ClientError as e:
            raise TrackingFetchError(f"UPS network error: {e}", tracking_number=tracking_number) from e
        except ValueError as e:
            raise TrackingFetchError(f"UPS returned malformed JSON: {e}", tracking_number=tracking_number) from e

        if not isinstance(data, dict):
            raise TrackingFetchError("UPS returned an unexpected body", tracking_number=tracking_number)

        return data

    async def _track_remote(self, tracking_number: str) -> TrackingRecord:
        payload = None
        for attempt in range(2):
            token = await self.get_token()
            await self.rate_limiter.acquire()
            try:
                payload = await self._fetch_details(tracking_number, token)
                break
            except AuthError:
                # Token revoked or expired early: drop it and retry once
                self.token_store.invalidate()
                if attempt == 1:
                    raise
                logger.warning(f"UPS token rejected while tracking {tracking_number}, refreshing")

        fetched_at = datetime.fromtimestamp(self._clock(), UTC)
        try:
            return parse_tracking_response(payload, self.tracking_url(tracking_number), fetched_at)
        except TrackingFetchError as e:
            e.tracking_number = tracking_number
            raise

    async def track(self, tracking_number: str | None, force: bool = False) -> TrackingRecord:
        """
        Resolve a tracking number to its current status.

        Args:
            tracking_number: Carrier tracking number
            force: Skip the tracking cache (user-triggered refresh)

        Returns:
            TrackingRecord, a sentinel on any failure
        """
        number = (tracking_number or "").strip()
        if not number:
            return TrackingRecord.sentinel(TrackingStatusKind.NO_TRACKING)

        url = self.tracking_url(number)
        if not self.is_trackable(number):
            return TrackingRecord.sentinel(
                TrackingStatusKind.LABEL_CREATED,
                tracking_url=url,
                expected_delivery=PENDING_DATE,
            )

        if not force:
            cached = self.tracking_cache.get(number)
            if cached is not None:
                return cached

        now = datetime.fromtimestamp(self._clock(), UTC)
        try:
            record = await self._track_remote(number)
        except AuthError as e:
            logger.error(f"UPS auth unavailable while tracking {number}: {e.message}")
            return TrackingRecord.sentinel(
                TrackingStatusKind.AUTH_ERROR, tracking_url=url, last_updated=now, is_error=True
            )
        except Exception as e:
            if isinstance(e, TrackingFetchError):
                logger.error(f"UPS tracking error for {number}: {e.message}")
            else:
                logger.exception(f"Unexpected error tracking {number}: {e}")
            record = TrackingRecord.sentinel(
                TrackingStatusKind.PENDING_UPDATE, tracking_url=url, last_updated=now, is_error=True
            )
            self.tracking_cache.set(number, record, self.settings.TRACKING_ERROR_CACHE_TTL_SECONDS)
            return record

        self.tracking_cache.set(number, record, self.settings.TRACKING_CACHE_TTL_SECONDS)
        return record

    def __repr__(self):
        return (
            f"UPSTrackingClient("
            f"api_url='{self.settings.UPS_API_URL}', "
            f"initialized={self.session is not None}, "
            f"cached_results={len(self.tracking_cache)})"
        )
