"""
Gestión del ciclo de vida de la aplicación FastAPI.

Este módulo maneja los eventos de startup y shutdown de la aplicación:
configuración de logging, construcción del contenedor de servicios,
precarga de la caché desde el almacén y el scheduler.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from packtrack.core.config import get_settings
from packtrack.core.container import ServiceContainer, build_container
from packtrack.core.logging_config import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Gestión del ciclo de vida de la aplicación.

    Si los tests ya colgaron un contenedor en ``app.state.container`` se usa
    ese; si no, se construye desde la configuración.

    Args:
        app: Instancia de FastAPI
    """
    settings = get_settings()

    # === STARTUP ===
    await startup_configure_logging()
    logger.info(f"🚀 Iniciando {settings.APP_NAME}...")

    container = getattr(app.state, "container", None)
    if container is None:
        container = build_container(settings)
        app.state.container = container

    try:
        await startup_verify_configuration(container)
        await container.startup()
        logger.info("🎉 Aplicación iniciada correctamente")
    except Exception as e:
        logger.error(f"❌ Error durante el startup: {e}")
        await container.shutdown()
        raise

    # === YIELD (aplicación corriendo) ===
    yield

    # === SHUTDOWN ===
    logger.info(f"🛑 Cerrando {settings.APP_NAME}...")

    try:
        await container.shutdown()
        logger.info("👋 Aplicación cerrada correctamente")
    except Exception as e:
        logger.error(f"❌ Error durante el shutdown: {e}")


# === FUNCIONES DE STARTUP ===


async def startup_configure_logging():
    """Configura el sistema de logging."""
    setup_logging()
    logger.info("✅ Sistema de logging configurado")


async def startup_verify_configuration(container: ServiceContainer):
    """
    Verifica la configuración.

    Las credenciales faltantes no impiden arrancar: ShipStation devolverá
    listas vacías y UPS registros centinela.
    """
    settings = container.settings

    if not settings.shipstation_configured:
        logger.warning("⚠️ SHIPSTATION_API_KEY/SHIPSTATION_API_SECRET no configuradas")

    if not settings.ups_configured:
        logger.warning("⚠️ UPS_CLIENT_ID/UPS_CLIENT_SECRET no configuradas - tracking no disponible")

    if settings.is_production and "*" in settings.allowed_origins:
        logger.warning("⚠️ CORS abierto a cualquier origen en producción")

    logger.info("✅ Configuración verificada")
