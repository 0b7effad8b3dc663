"""
Normalización de órdenes de ShipStation y unión con el estado de UPS.

Acepta las dos formas que devuelve el upstream (``/orders`` y ``/shipments``)
y produce un MergedRecord por entrada.
"""

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Optional

from packtrack.db.shipstation_client import ShipStationClient
from packtrack.db.ups_client import UPSTrackingClient
from packtrack.domain.models import MergedRecord, OrderRecord, TrackingRecord
from packtrack.domain.models.order import UNKNOWN_SHIP_DATE
from packtrack.domain.value_objects import TrackingStatusKind

logger = logging.getLogger(__name__)

TrackingLookup = Callable[[str], Awaitable[Optional[str]]]


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _ship_date(raw: dict[str, Any]) -> str:
    value = raw.get("shipDate") or ""
    # ShipStation manda "2024-05-01T00:00:00.0000000" o "2024-05-01"
    date_part = str(value).split("T")[0].strip()
    return date_part or UNKNOWN_SHIP_DATE


def _format_total(value: Any) -> str:
    try:
        return f"{Decimal(str(value)):.2f}"
    except (InvalidOperation, ValueError):
        return "0.00"


def summarize_items(items: Any) -> str:
    """
    Construye el resumen de artículos ``"2x Widget, 1x Gadget"``.

    Args:
        items: Lista de artículos del upstream (``items`` o ``shipmentItems``)

    Returns:
        str: Resumen separado por comas; vacío si no hay artículos
    """
    if not isinstance(items, list):
        return ""

    parts = []
    for item in items:
        if not isinstance(item, dict):
            continue
        name = item.get("name") or item.get("sku") or "Item"
        quantity = item.get("quantity") or 1
        parts.append(f"{quantity}x {name}")
    return ", ".join(parts)


def normalize_order(raw: dict[str, Any]) -> OrderRecord:
    """
    Convierte una orden o envío de ShipStation en un OrderRecord.

    Forma de orden: ``items``, ``billTo.name`` (o ``shipTo.name``),
    ``orderTotal``, ``orderStatus``.
    Forma de envío: ``shipmentItems``, ``shipTo.name``, ``shipmentCost``,
    estado ``shipped`` o ``voided``.
    """
    is_shipment = "shipmentItems" in raw or "shipmentId" in raw

    bill_to = _dict(raw.get("billTo"))
    ship_to = _dict(raw.get("shipTo"))

    if is_shipment:
        customer_name = ship_to.get("name") or bill_to.get("name")
        items = raw.get("shipmentItems")
        total = raw.get("orderTotal", raw.get("shipmentCost"))
        status = raw.get("orderStatus") or ("voided" if raw.get("voided") else "shipped")
    else:
        customer_name = bill_to.get("name") or ship_to.get("name")
        items = raw.get("items")
        total = raw.get("orderTotal")
        status = raw.get("orderStatus") or ""

    order_id = raw.get("orderId")
    if order_id is None:
        order_id = raw.get("shipmentId")

    return OrderRecord(
        order_id="" if order_id is None else str(order_id),
        order_number=str(raw.get("orderNumber") or ""),
        ship_date=_ship_date(raw),
        customer_name=(customer_name.strip() if isinstance(customer_name, str) else "") or "Unknown",
        item_summary=summarize_items(items),
        carrier_code=str(raw.get("carrierCode") or ""),
        order_total=_format_total(total if total is not None else 0),
        order_status=str(status),
    )


def inline_tracking_number(raw: dict[str, Any]) -> Optional[str]:
    """
    Número de rastreo presente en la propia entrada.

    Prioridad: primer ``shipments[*].trackingNumber`` no vacío, luego
    ``trackingNumber`` de primer nivel.
    """
    shipments = raw.get("shipments")
    for shipment in shipments if isinstance(shipments, list) else []:
        if isinstance(shipment, dict):
            number = str(shipment.get("trackingNumber") or "").strip()
            if number:
                return number

    number = str(raw.get("trackingNumber") or "").strip()
    return number or None


async def resolve_tracking_number(raw: dict[str, Any], lookup: Optional[TrackingLookup] = None) -> Optional[str]:
    """
    Resuelve el número de rastreo de una entrada.

    Usa el número en línea si existe; si no, consulta los envíos de la orden
    mediante ``lookup``. Devuelve None cuando no hay número.
    """
    number = inline_tracking_number(raw)
    if number:
        return number

    order_id = raw.get("orderId")
    if lookup is None or order_id is None:
        return None

    number = await lookup(str(order_id))
    return number.strip() if number else None


class OrderMerger:
    """
    Une cada entrada del upstream con su estado de rastreo.
    """

    def __init__(self, tracking_client: UPSTrackingClient, order_source: Optional[ShipStationClient] = None):
        self.tracking_client = tracking_client
        self.order_source = order_source

    async def merge(self, raw: dict[str, Any], enrich: bool = True) -> MergedRecord:
        """
        Produce el registro unido para una entrada.

        Args:
            raw: Orden o envío tal como lo devuelve ShipStation
            enrich: Si es False no se consulta a UPS ni se hace la búsqueda
                secundaria de envíos, y el registro queda sin resolver

        Returns:
            MergedRecord
        """
        order = normalize_order(raw)

        if not enrich:
            tracking_number = inline_tracking_number(raw)
            tracking = TrackingRecord.sentinel(
                TrackingStatusKind.NO_TRACKING if not tracking_number else TrackingStatusKind.UNKNOWN,
                tracking_url=self.tracking_client.tracking_url(tracking_number) if tracking_number else "",
            )
            return MergedRecord(order=order, tracking_number=tracking_number, tracking=tracking, tracking_resolved=False)

        lookup = self.order_source.find_tracking_number if self.order_source else None
        tracking_number = await resolve_tracking_number(raw, lookup)
        tracking = await self.tracking_client.track(tracking_number)
        return MergedRecord(order=order, tracking_number=tracking_number, tracking=tracking)

    async def _merge_or_skip(self, raw: Any, enrich: bool) -> Optional[MergedRecord]:
        if not isinstance(raw, dict):
            logger.error(f"❌ Skipping upstream entry that is not an object: {type(raw).__name__}")
            return None
        try:
            return await self.merge(raw, enrich=enrich)
        except Exception as e:
            logger.exception(f"❌ Skipping order {raw.get('orderId')}: {e}")
            return None

    async def merge_many(
        self,
        raws: list[dict[str, Any]],
        enrich: bool = True,
        semaphore: Optional[asyncio.Semaphore] = None,
    ) -> list[MergedRecord]:
        """
        Une una tanda de entradas en paralelo conservando el orden de entrada.

        Una entrada que no se puede unir se registra y se omite; el resto de
        la tanda sigue adelante.
        """

        async def _bounded(raw: Any) -> Optional[MergedRecord]:
            if semaphore is None:
                return await self._merge_or_skip(raw, enrich)
            async with semaphore:
                return await self._merge_or_skip(raw, enrich)

        results = await asyncio.gather(*(_bounded(raw) for raw in raws))
        return [record for record in results if record is not None]
