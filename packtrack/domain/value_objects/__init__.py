"""
Value objects for the PackTrack domain.
"""

from .tracking_status import TrackingStatusKind

__all__ = ["TrackingStatusKind"]
