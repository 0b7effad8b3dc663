"""
Motor de scheduling para la sincronización periódica ShipStation → caché.

Ejecuta ``OrderSyncManager.refresh()`` cada SYNC_INTERVAL_MINUTES mientras
ENABLE_SCHEDULED_SYNC esté activo.
"""

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class SyncScheduler:
    """
    Loop de sincronización en segundo plano.

    Args:
        sync: Corrutina que ejecuta una pasada de sincronización
        interval_minutes: Minutos entre pasadas
        sleep: Función de espera (inyectable en tests)
    """

    def __init__(
        self,
        sync: Callable[[], Awaitable[Any]],
        interval_minutes: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._sync = sync
        self.interval_seconds = interval_minutes * 60
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self.runs = 0
        self.last_run: Optional[datetime] = None
        self.last_error: Optional[str] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """
        Inicia el loop del scheduler.
        """
        if self.running:
            logger.warning("Scheduler ya está ejecutándose")
            return

        logger.info(f"🕒 Iniciando scheduler cada {self.interval_seconds / 60:g} minutos")
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        """
        Detiene el scheduler y espera a que la tarea termine.
        """
        if not self.running:
            logger.info("Scheduler no está ejecutándose")
            self._task = None
            return

        logger.info("🛑 Deteniendo scheduler")
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("✅ Scheduler detenido correctamente")

    async def run_once(self) -> None:
        """
        Ejecuta una pasada; los errores se registran y no detienen el loop.
        """
        self.runs += 1
        self.last_run = datetime.now(UTC)
        try:
            await self._sync()
            self.last_error = None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.last_error = str(e)
            logger.error(f"❌ Error en sincronización programada: {e}")

    async def _loop(self) -> None:
        while True:
            await self._sleep(self.interval_seconds)
            logger.info("🔄 Ejecutando sincronización programada")
            await self.run_once()

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "interval_minutes": self.interval_seconds / 60,
            "runs": self.runs,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_error": self.last_error,
        }
