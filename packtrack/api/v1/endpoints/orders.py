"""
Endpoints de órdenes: listado paginado, sincronización manual y el listado
de escaneos de bodega enriquecido.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from packtrack.api.v1.dependencies import PageParams, get_container, get_page_params
from packtrack.api.v1.schemas.tracking_schemas import SyncResponse
from packtrack.core.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/orders", summary="Merged orders (paginated)")
async def list_orders(
    params: PageParams = Depends(get_page_params),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    """
    Órdenes unidas con su estado UPS.

    Sirve desde la caché mientras esté fresca; si no, espera la
    sincronización en curso o inicia una.
    """
    return await container.sync_manager.list_orders(page=params.page, limit=params.limit)


@router.post("/sync/orders", response_model=SyncResponse, response_model_exclude_none=True, summary="Force a sync")
async def sync_orders(
    tracking: Optional[bool] = Query(default=None, description="Resolver estado UPS de cada orden"),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    """
    Sincronización manual. Si ya hay una en curso se espera su resultado.
    """
    result = await container.sync_manager.refresh(enrich=tracking)
    return result.to_dict()


@router.get("/orders/with-tracking", summary="Warehouse scans with tracking")
async def orders_with_tracking(container: ServiceContainer = Depends(get_container)) -> List[Dict[str, Any]]:
    return await container.scan_logs.list_enriched()
