"""
Domain models for PackTrack.

These records are immutable once produced and are replaced wholesale on
each sync.
"""

from .merged import MergedRecord
from .order import OrderRecord
from .tracking import TrackingRecord

__all__ = ["OrderRecord", "TrackingRecord", "MergedRecord"]
