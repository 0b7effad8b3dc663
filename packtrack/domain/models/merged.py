"""
Merged order + tracking row.

This is what the read endpoints return and what the persistent store keeps,
one document per row.
"""

from dataclasses import dataclass, replace
from typing import Any

from .order import OrderRecord
from .tracking import TrackingRecord

# Keys of a flattened row that belong to the carrier side
TRACKING_FIELDS = (
    "status",
    "statusKind",
    "location",
    "delivered",
    "expectedDelivery",
    "lastUpdated",
    "trackingUrl",
    "isError",
)


@dataclass(frozen=True)
class MergedRecord:
    """
    One order joined with its (possibly sentinel) tracking result.

    Attributes:
        order: Normalized upstream order
        tracking_number: Resolved tracking number, None when the order has none
        tracking: Carrier status or sentinel
        tracking_resolved: False when the carrier fields were carried over from
            an earlier sync instead of being resolved in this pass
    """

    order: OrderRecord
    tracking_number: str | None
    tracking: TrackingRecord
    tracking_resolved: bool = True

    @property
    def record_id(self) -> str:
        """Identity of the row: tracking number, or order id when there is none."""
        return self.tracking_number or self.order.order_id

    @property
    def document_id(self) -> str:
        """
        Store key of the row.

        Combined shipments put several orders on one tracking number, so the
        order id is part of the key whenever both are known.
        """
        if self.tracking_number and self.order.order_id:
            return f"{self.order.order_id}:{self.tracking_number}"
        return self.record_id

    @property
    def has_tracking(self) -> bool:
        return bool(self.tracking_number)

    def with_tracking(self, tracking: TrackingRecord, resolved: bool = True) -> "MergedRecord":
        return replace(self, tracking=tracking, tracking_resolved=resolved)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.record_id,
            **self.order.to_dict(),
            "trackingNumber": self.tracking_number,
            **self.tracking.to_dict(),
        }

    def to_tracking_row(self) -> dict[str, Any]:
        """Tracking-shaped projection used by the trackable-only listing."""
        return {
            "trackingNumber": self.tracking_number,
            "orderNumber": self.order.order_number,
            "customerName": self.order.customer_name,
            "shipDate": self.order.ship_date,
            **self.tracking.to_dict(),
        }

    def to_document(self) -> dict[str, Any]:
        """Store document: flattened row plus the resolution flag."""
        return {**self.to_dict(), "trackingResolved": self.tracking_resolved}

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "MergedRecord":
        return cls(
            order=OrderRecord.from_dict(data),
            tracking_number=data.get("trackingNumber") or None,
            tracking=TrackingRecord.from_dict(data),
            tracking_resolved=bool(data.get("trackingResolved", True)),
        )
