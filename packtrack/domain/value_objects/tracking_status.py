"""
Closed vocabulary of tracking status kinds.

Only ``LIVE`` carries free text from the carrier; every other kind is a
sentinel with a fixed display string, so callers compare kinds instead of
matching strings like "No Tracking" or "Pending Update".
"""

from enum import Enum


class TrackingStatusKind(str, Enum):
    """Kind of a TrackingRecord status."""

    LIVE = "live"
    UNKNOWN = "unknown"
    PENDING_UPDATE = "pending_update"
    NO_TRACKING = "no_tracking"
    LABEL_CREATED = "label_created"
    AUTH_ERROR = "auth_error"

    @property
    def display(self) -> str:
        """Fixed display string for sentinel kinds ("" for LIVE)."""
        return _DISPLAY[self]


_DISPLAY = {
    TrackingStatusKind.LIVE: "",
    TrackingStatusKind.UNKNOWN: "Unknown",
    TrackingStatusKind.PENDING_UPDATE: "Pending Update",
    TrackingStatusKind.NO_TRACKING: "No Tracking",
    TrackingStatusKind.LABEL_CREATED: "Label Created",
    TrackingStatusKind.AUTH_ERROR: "UPS Auth Error",
}
