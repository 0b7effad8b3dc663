"""
Contenedor de servicios de la aplicación.

Construye una sola vez los clientes, cachés y servicios de proceso y los
cuelga de ``app.state.container``. Los tests inyectan un contenedor con
colaboradores falsos.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from packtrack.core.cache_manager import ResultCache, TokenStore, TTLCache
from packtrack.core.config import Settings, get_settings
from packtrack.core.redis_client import create_redis_client
from packtrack.core.scheduler import SyncScheduler
from packtrack.db.shipstation_client import ShipStationClient
from packtrack.db.tracking_store import InMemoryTrackingStore, RedisTrackingStore, TrackingStore
from packtrack.db.ups_client import UPSTrackingClient
from packtrack.services.scan_log_service import ScanLogService
from packtrack.services.sync_manager import OrderSyncManager
from packtrack.utils.rate_limiter import TokenBucketRateLimiter

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Servicios compartidos por todas las peticiones."""

    settings: Settings
    order_source: ShipStationClient
    tracking_client: UPSTrackingClient
    store: TrackingStore
    sync_manager: OrderSyncManager
    scan_logs: ScanLogService
    scheduler: Optional[SyncScheduler] = None

    async def startup(self) -> None:
        """
        Inicializa sesiones HTTP, precarga la caché y arranca el scheduler.
        """
        await self.order_source.initialize()
        await self.tracking_client.initialize()

        if await self.store.ping():
            logger.info(f"✅ Almacén '{self.store.backend}' disponible")
        else:
            logger.warning(f"⚠️ Almacén '{self.store.backend}' no disponible, se sirve desde memoria")

        await self.sync_manager.start()

        if self.scheduler is not None:
            self.scheduler.start()

    async def shutdown(self) -> None:
        """
        Detiene el scheduler y cierra conexiones.
        """
        if self.scheduler is not None:
            await self.scheduler.stop()

        await self.order_source.close()
        await self.tracking_client.close()
        await self.store.close()


def build_store(settings: Settings) -> TrackingStore:
    """
    Crea el almacén persistente: Redis si hay REDIS_URL, memoria en caso contrario.
    """
    if settings.REDIS_URL:
        return RedisTrackingStore(create_redis_client(settings), key_prefix=settings.REDIS_KEY_PREFIX)

    logger.info("REDIS_URL no configurada, usando almacén en memoria")
    return InMemoryTrackingStore()


def build_container(settings: Optional[Settings] = None) -> ServiceContainer:
    """
    Construye el contenedor de servicios a partir de la configuración.
    """
    settings = settings or get_settings()

    order_source = ShipStationClient(settings=settings)
    tracking_client = UPSTrackingClient(
        settings=settings,
        token_store=TokenStore(safety_margin_seconds=settings.UPS_TOKEN_SAFETY_MARGIN_SECONDS),
        tracking_cache=TTLCache(),
        rate_limiter=TokenBucketRateLimiter(
            rate_per_second=settings.UPS_REQUESTS_PER_SECOND,
            capacity=settings.UPS_RATE_LIMIT_BURST,
        ),
    )
    store = build_store(settings)
    sync_manager = OrderSyncManager(
        order_source=order_source,
        tracking_client=tracking_client,
        store=store,
        settings=settings,
        cache=ResultCache(ttl_seconds=settings.ORDER_CACHE_TTL_SECONDS),
    )
    scan_logs = ScanLogService(
        store=store,
        tracking_client=tracking_client,
        order_source=order_source,
        max_concurrency=settings.ENRICH_MAX_CONCURRENCY,
    )

    scheduler = None
    if settings.ENABLE_SCHEDULED_SYNC:
        scheduler = SyncScheduler(sync_manager.refresh, interval_minutes=settings.SYNC_INTERVAL_MINUTES)

    return ServiceContainer(
        settings=settings,
        order_source=order_source,
        tracking_client=tracking_client,
        store=store,
        sync_manager=sync_manager,
        scan_logs=scan_logs,
        scheduler=scheduler,
    )
