"""
Cliente Redis para el almacén persistente.

Este módulo crea el cliente ``redis.asyncio`` compartido a partir de la
configuración y verifica la conectividad.
"""

import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from packtrack.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


def create_redis_client(settings: Optional[Settings] = None) -> redis.Redis:
    """
    Crea una instancia de cliente Redis.

    La conexión real se establece de forma perezosa en el primer comando.

    Returns:
        redis.Redis: Cliente Redis

    Raises:
        RuntimeError: Si REDIS_URL no está configurada
    """
    settings = settings or get_settings()

    if not settings.REDIS_URL:
        raise RuntimeError("Redis URL not configured")

    client = redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
    )
    logger.debug("Redis client instance created")
    return client


async def test_redis_connection(client: redis.Redis) -> bool:
    """
    Verifica la conectividad con Redis.

    Returns:
        bool: True si la conexión es exitosa, False en caso contrario
    """
    try:
        await client.ping()
        return True
    except (RedisError, OSError) as e:
        logger.error(f"Redis connection test failed: {e}")
        return False


async def close_redis(client: Optional[redis.Redis]) -> None:
    """
    Cierra el cliente Redis y su pool de conexiones.
    """
    if client is None:
        return
    await client.aclose()
    logger.info("Redis connection pool closed")
