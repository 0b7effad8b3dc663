"""
Order domain model.

One OrderRecord is produced by normalizing one ShipStation order or
shipment entry.
"""

from dataclasses import dataclass
from typing import Any

UNKNOWN_SHIP_DATE = "unknown"


@dataclass(frozen=True)
class OrderRecord:
    """
    Customer order as shown on the dashboard.

    Attributes:
        order_id: Opaque ShipStation order id (stringified)
        order_number: Human-facing order number
        ship_date: ``YYYY-MM-DD`` or ``"unknown"``
        customer_name: Billing (or ship-to) name
        item_summary: Comma-joined ``"<qty>x <name>"`` descriptions
        carrier_code: ShipStation carrier code (e.g. "ups")
        order_total: Two-decimal amount as string
        order_status: ShipStation order status
    """

    order_id: str
    order_number: str
    ship_date: str = UNKNOWN_SHIP_DATE
    customer_name: str = "Unknown"
    item_summary: str = ""
    carrier_code: str = ""
    order_total: str = "0.00"
    order_status: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "orderId": self.order_id,
            "orderNumber": self.order_number,
            "shipDate": self.ship_date,
            "customerName": self.customer_name,
            "itemSummary": self.item_summary,
            "carrierCode": self.carrier_code,
            "orderTotal": self.order_total,
            "orderStatus": self.order_status,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderRecord":
        return cls(
            order_id=str(data.get("orderId") or ""),
            order_number=str(data.get("orderNumber") or ""),
            ship_date=data.get("shipDate") or UNKNOWN_SHIP_DATE,
            customer_name=data.get("customerName") or "Unknown",
            item_summary=data.get("itemSummary") or "",
            carrier_code=data.get("carrierCode") or "",
            order_total=data.get("orderTotal") or "0.00",
            order_status=data.get("orderStatus") or "",
        )
