"""
Tracking domain model.

A TrackingRecord is the result of resolving one tracking number with the
carrier, or a sentinel standing in for that result.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from packtrack.domain.value_objects import TrackingStatusKind

NO_DATE = "--"
PENDING_DATE = "Pending"


@dataclass(frozen=True)
class TrackingRecord:
    """
    Carrier status for one tracking number.

    ``delivered`` is derived from the status text so it can never disagree
    with it.
    """

    kind: TrackingStatusKind
    status: str
    location: str = ""
    expected_delivery: str = NO_DATE
    last_updated: datetime | None = None
    tracking_url: str = ""
    is_error: bool = False

    @property
    def delivered(self) -> bool:
        return "delivered" in (self.status or "").lower()

    @classmethod
    def live(
        cls,
        status: str,
        location: str = "",
        expected_delivery: str = NO_DATE,
        last_updated: datetime | None = None,
        tracking_url: str = "",
    ) -> "TrackingRecord":
        """Build a record from carrier data; falls back to UNKNOWN when the status is blank."""
        if not status:
            return cls(
                kind=TrackingStatusKind.UNKNOWN,
                status=TrackingStatusKind.UNKNOWN.display,
                location=location,
                expected_delivery=expected_delivery,
                last_updated=last_updated,
                tracking_url=tracking_url,
            )
        return cls(
            kind=TrackingStatusKind.LIVE,
            status=status,
            location=location,
            expected_delivery=expected_delivery,
            last_updated=last_updated,
            tracking_url=tracking_url,
        )

    @classmethod
    def sentinel(
        cls,
        kind: TrackingStatusKind,
        tracking_url: str = "",
        expected_delivery: str = NO_DATE,
        last_updated: datetime | None = None,
        is_error: bool = False,
    ) -> "TrackingRecord":
        if kind is TrackingStatusKind.LIVE:
            raise ValueError("LIVE records must be built with TrackingRecord.live()")
        return cls(
            kind=kind,
            status=kind.display,
            expected_delivery=expected_delivery,
            last_updated=last_updated,
            tracking_url=tracking_url,
            is_error=is_error,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "statusKind": self.kind.value,
            "location": self.location,
            "delivered": self.delivered,
            "expectedDelivery": self.expected_delivery,
            "lastUpdated": self.last_updated.isoformat() if self.last_updated else None,
            "trackingUrl": self.tracking_url,
            "isError": self.is_error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrackingRecord":
        try:
            kind = TrackingStatusKind(data.get("statusKind") or TrackingStatusKind.LIVE.value)
        except ValueError:
            kind = TrackingStatusKind.UNKNOWN

        last_updated = data.get("lastUpdated")
        return cls(
            kind=kind,
            status=data.get("status") or kind.display or TrackingStatusKind.UNKNOWN.display,
            location=data.get("location") or "",
            expected_delivery=data.get("expectedDelivery") or NO_DATE,
            last_updated=datetime.fromisoformat(last_updated) if last_updated else None,
            tracking_url=data.get("trackingUrl") or "",
            is_error=bool(data.get("isError", False)),
        )
