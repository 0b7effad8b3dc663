"""
PackTrack - FastAPI Application Entry Point

Agrega órdenes enviadas de ShipStation con el estado de rastreo de UPS y
sirve las filas unidas al dashboard.

Este archivo actúa como el punto de entrada principal de la aplicación,
orquestando todos los componentes de manera modular.
"""

import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI

from packtrack.core.config import Settings, get_settings
from packtrack.core.container import ServiceContainer
from packtrack.core.exception_handlers import configure_exception_handlers
from packtrack.core.lifespan import lifespan
from packtrack.core.middleware import configure_all_middleware
from packtrack.core.routers import configure_all_routers

logger = logging.getLogger(__name__)


def create_application(
    container: Optional[ServiceContainer] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Factory para crear y configurar la aplicación FastAPI.

    Args:
        container: Contenedor de servicios ya construido (tests); si es None
            el lifespan lo construye desde la configuración
        settings: Configuración; por defecto ``get_settings()``

    Returns:
        FastAPI: Instancia configurada de la aplicación
    """
    settings = settings or (container.settings if container else get_settings())
    logger.info("🏗️ Creando aplicación FastAPI...")

    docs_enabled = settings.DEBUG or settings.ENABLE_DOCS
    app = FastAPI(
        title=settings.APP_NAME,
        description="Agregación de órdenes ShipStation con rastreo UPS",
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )

    if container is not None:
        app.state.container = container

    # 1. Middleware (orden inverso de ejecución)
    configure_all_middleware(app, settings)

    # 2. Manejadores de excepciones
    configure_exception_handlers(app)

    # 3. Routers y endpoints
    configure_all_routers(app)

    logger.info("✅ Aplicación FastAPI creada y configurada")
    return app


app = create_application()


def run() -> None:
    """
    Ejecutar la aplicación con uvicorn.

    Para producción: uvicorn packtrack.main:app --host 0.0.0.0 --port 3000
    """
    settings = get_settings()
    logger.info("🚀 Iniciando aplicación desde main.py...")

    try:
        uvicorn.run(
            "packtrack.main:app",
            host=settings.HOST,
            port=settings.PORT,
            reload=settings.DEBUG,
            log_level=settings.LOG_LEVEL.lower(),
            access_log=True,
        )
    except KeyboardInterrupt:
        logger.info("🛑 Aplicación detenida por el usuario")


if __name__ == "__main__":
    run()
