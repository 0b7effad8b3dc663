"""
Endpoints de rastreo UPS.

``redirect_router`` contiene la ruta comodín ``/{tracking_id}`` y debe
registrarse después de todas las demás.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse

from packtrack.api.v1.dependencies import PageParams, get_container, get_page_params
from packtrack.api.v1.schemas.tracking_schemas import ScanLogRequest, TrackingRefreshRequest
from packtrack.core.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter()
redirect_router = APIRouter()


@router.get("/tracking", summary="Trackable orders (paginated)")
async def list_tracking(
    params: PageParams = Depends(get_page_params),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    return await container.sync_manager.list_tracking(page=params.page, limit=params.limit)


@router.post("/tracking/single", summary="Refresh one tracking number")
async def refresh_single_tracking(
    body: TrackingRefreshRequest,
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    """
    Consulta UPS ignorando las cachés y actualiza solo las filas con ese número.
    """
    tracking = await container.sync_manager.refresh_one_tracking(body.tracking_number)
    return {"trackingNumber": body.tracking_number, **tracking.to_dict()}


@router.post("/scan-logs", summary="Log a warehouse scan")
async def add_scan_log(
    body: ScanLogRequest,
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    await container.scan_logs.record_scan(body.tracking_id, body.date_str)
    return {"success": True}


@redirect_router.get("/{tracking_id}", summary="Open a tracking number")
async def open_tracking(tracking_id: str, container: ServiceContainer = Depends(get_container)):
    """
    Redirige a la página pública de UPS si el número tiene formato UPS;
    si no, devuelve un registro de marcador.
    """
    client = container.tracking_client
    tracking_id = tracking_id.strip()

    if client.is_trackable(tracking_id):
        return RedirectResponse(url=client.tracking_url(tracking_id), status_code=307)

    placeholder = await client.track(tracking_id)
    return {
        "trackingNumber": tracking_id,
        **placeholder.to_dict(),
        "message": "Not a UPS tracking number",
    }
