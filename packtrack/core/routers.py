"""
Configuración centralizada de routers para la aplicación FastAPI.

Este módulo registra los endpoints raíz, el health check y los routers de
la API. La ruta comodín ``/{tracking_id}`` se registra al final.
"""

import logging
from datetime import UTC, datetime
from typing import Any, Dict

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse

from packtrack.api.v1.dependencies import get_container
from packtrack.api.v1.endpoints.orders import router as orders_router
from packtrack.api.v1.endpoints.tracking import redirect_router
from packtrack.api.v1.endpoints.tracking import router as tracking_router
from packtrack.core.container import ServiceContainer
from packtrack.version import VERSION, version_info

logger = logging.getLogger(__name__)


def create_root_endpoints(app: FastAPI) -> None:
    """
    Crea endpoints raíz de la aplicación.

    Args:
        app: Instancia de FastAPI
    """

    @app.get("/", tags=["Root"], summary="Service status")
    async def root(container: ServiceContainer = Depends(get_container)) -> Dict[str, Any]:
        """
        Estado básico: tamaño de la caché y última sincronización.
        """
        return container.sync_manager.status()


def create_health_endpoints(app: FastAPI) -> None:
    """
    Crea el endpoint de health check.

    Args:
        app: Instancia de FastAPI
    """

    @app.get("/health", tags=["Health"], summary="Health Check")
    async def health_check(container: ServiceContainer = Depends(get_container)):
        """
        Health check: 503 cuando el almacén persistente no responde.
        """
        store_ok = await container.store.ping()
        manager = container.sync_manager

        content = {
            "status": "healthy" if store_ok else "unhealthy",
            "store": {"backend": container.store.backend, "ok": store_ok},
            "cacheSize": len(manager.cache.data),
            "lastSync": manager.status()["lastSync"],
            "refreshInFlight": manager.cache.refresh_in_flight,
            "version": VERSION,
            "build": version_info(),
            "timestamp": datetime.now(UTC).isoformat(),
        }
        if container.scheduler is not None:
            content["scheduler"] = container.scheduler.get_status()

        return JSONResponse(status_code=200 if store_ok else 503, content=content)


def configure_api_routers(app: FastAPI) -> None:
    """
    Configura los routers de órdenes y rastreo.

    Args:
        app: Instancia de FastAPI
    """
    app.include_router(orders_router, tags=["Orders"])
    app.include_router(tracking_router, tags=["Tracking"])
    logger.info("✅ Routers de órdenes y rastreo configurados")


def configure_all_routers(app: FastAPI) -> None:
    """
    Configura todos los routers de la aplicación.

    Args:
        app: Instancia de FastAPI
    """
    create_root_endpoints(app)
    create_health_endpoints(app)
    configure_api_routers(app)

    # Comodín: siempre el último
    app.include_router(redirect_router, tags=["Tracking"])

    logger.info("✅ Todos los routers configurados")
