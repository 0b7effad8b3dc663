"""
Configuración centralizada de la aplicación.

Este módulo maneja todas las variables de entorno y configuraciones
de PackTrack usando Pydantic Settings para validación automática.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Configuración de la aplicación usando Pydantic Settings.

    Todas las configuraciones se cargan desde variables de entorno
    con valores por defecto apropiados para desarrollo.
    """

    # === CONFIGURACIÓN BÁSICA DE LA APP ===
    APP_NAME: str = "PackTrack"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # === CONFIGURACIÓN DEL SERVIDOR ===
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=3000)
    LOG_LEVEL: str = Field(default="INFO")
    SLOW_REQUEST_THRESHOLD: float = Field(default=5.0, ge=0)

    # === CONFIGURACIÓN DE SEGURIDAD ===
    # Orígenes separados por comas; vacío permite cualquier origen (dashboard)
    ALLOWED_ORIGINS: str = Field(default="")
    ENABLE_DOCS: bool = Field(default=True)

    # === CONFIGURACIÓN DE SHIPSTATION ===
    SHIPSTATION_API_URL: str = Field(default="https://ssapi.shipstation.com")
    SHIPSTATION_API_KEY: Optional[str] = Field(default=None)
    SHIPSTATION_API_SECRET: Optional[str] = Field(default=None)
    # "orders" o "shipments"
    SHIPSTATION_RESOURCE: str = Field(default="orders")
    SHIPSTATION_ORDER_STATUS: str = Field(default="shipped")
    SHIPSTATION_PAGE_SIZE: int = Field(default=50, ge=1, le=500)
    SHIPSTATION_MAX_PAGES: int = Field(default=20, ge=1, le=100)
    SHIPSTATION_PAGE_DELAY_SECONDS: float = Field(default=0.3, ge=0)
    SHIPSTATION_TIMEOUT_SECONDS: float = Field(default=8.0, gt=0)

    # === CONFIGURACIÓN DE UPS ===
    UPS_API_URL: str = Field(default="https://onlinetools.ups.com")
    UPS_CLIENT_ID: Optional[str] = Field(default=None)
    UPS_CLIENT_SECRET: Optional[str] = Field(default=None)
    UPS_TRACKING_PREFIX: str = Field(default="1Z")
    UPS_TIMEOUT_SECONDS: float = Field(default=8.0, gt=0)
    # Un token de 1h se reutiliza durante 50 minutos
    UPS_TOKEN_SAFETY_MARGIN_SECONDS: int = Field(default=600, ge=0)
    UPS_AUTH_FAILURE_BACKOFF_SECONDS: int = Field(default=300, ge=0)
    UPS_REQUESTS_PER_SECOND: float = Field(default=1.0, gt=0)
    UPS_RATE_LIMIT_BURST: int = Field(default=1, ge=1)
    UPS_TRANSACTION_SOURCE: str = Field(default="PackTrack")

    # === CONFIGURACIÓN DE CACHÉ ===
    ORDER_CACHE_TTL_SECONDS: int = Field(default=120, ge=1)
    TRACKING_CACHE_TTL_SECONDS: int = Field(default=1800, ge=1)
    TRACKING_ERROR_CACHE_TTL_SECONDS: int = Field(default=60, ge=0)
    PRESERVED_TRACKING_MAX_AGE_HOURS: int = Field(default=24, ge=0)
    ENRICH_TRACKING: bool = Field(default=True)
    ENRICH_MAX_CONCURRENCY: int = Field(default=10, ge=1)

    # === CONFIGURACIÓN DE REDIS (almacén persistente opcional) ===
    REDIS_URL: Optional[str] = Field(default=None)
    REDIS_KEY_PREFIX: str = Field(default="packtrack")
    REDIS_SOCKET_TIMEOUT: int = Field(default=5)
    WARM_START_FROM_STORE: bool = Field(default=True)

    # === CONFIGURACIÓN DE SINCRONIZACIÓN PROGRAMADA ===
    ENABLE_SCHEDULED_SYNC: bool = Field(default=False)
    SYNC_INTERVAL_MINUTES: int = Field(default=15, ge=1)

    # === CONFIGURACIÓN DE LOGGING ===
    LOG_FILE_PATH: Optional[str] = Field(default=None)
    LOG_MAX_SIZE_MB: int = Field(default=10)
    LOG_BACKUP_COUNT: int = Field(default=5)
    LOG_FORMAT: str = Field(default="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore",
    }

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Valida que el nivel de log sea válido."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL debe ser uno de: {valid_levels}")
        return v.upper()

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Valida que el entorno sea válido."""
        valid_envs = ["development", "staging", "production", "testing"]
        if v.lower() not in valid_envs:
            raise ValueError(f"ENVIRONMENT debe ser uno de: {valid_envs}")
        return v.lower()

    @field_validator("PORT")
    @classmethod
    def validate_port(cls, v):
        """Valida que el puerto esté en rango válido."""
        if not 1 <= v <= 65535:
            raise ValueError("PORT debe estar entre 1 y 65535")
        return v

    @field_validator("SHIPSTATION_RESOURCE")
    @classmethod
    def validate_shipstation_resource(cls, v):
        """Solo se soportan los listados de orders y shipments."""
        if v.lower() not in ("orders", "shipments"):
            raise ValueError("SHIPSTATION_RESOURCE debe ser 'orders' o 'shipments'")
        return v.lower()

    @field_validator("SHIPSTATION_API_URL", "UPS_API_URL")
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip("/")

    @property
    def is_production(self) -> bool:
        """Verifica si está en entorno de producción."""
        return self.ENVIRONMENT == "production"

    @property
    def allowed_origins(self) -> List[str]:
        """Parsea ALLOWED_ORIGINS como lista separada por comas."""
        origins = [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]
        return origins or ["*"]

    @property
    def shipstation_configured(self) -> bool:
        return bool(self.SHIPSTATION_API_KEY and self.SHIPSTATION_API_SECRET)

    @property
    def ups_configured(self) -> bool:
        return bool(self.UPS_CLIENT_ID and self.UPS_CLIENT_SECRET)

    @property
    def ups_oauth_url(self) -> str:
        return f"{self.UPS_API_URL}/security/v1/oauth/token"

    @property
    def ups_tracking_url(self) -> str:
        return f"{self.UPS_API_URL}/api/track/v1/details"


@lru_cache()
def get_settings() -> Settings:
    """
    Obtiene instancia singleton de configuración.

    Usa LRU cache para evitar recrear la configuración
    múltiples veces durante la ejecución.

    Returns:
        Settings: Instancia de configuración
    """
    return Settings()


def reload_settings() -> Settings:
    """
    Recarga la configuración (útil para testing).

    Returns:
        Settings: Nueva instancia de configuración
    """
    get_settings.cache_clear()
    return get_settings()
