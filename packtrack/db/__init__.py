"""
Acceso a servicios externos y almacenamiento para PackTrack.

- ShipStationClient: órdenes y envíos (upstream)
- UPSTrackingClient: OAuth y rastreo (carrier)
- TrackingStore: almacén persistente (Redis o memoria)
"""

from packtrack.db.shipstation_client import FetchResult, ShipStationClient, UpstreamPage
from packtrack.db.tracking_store import (
    InMemoryTrackingStore,
    RedisTrackingStore,
    StoreSnapshot,
    TrackingStore,
)
from packtrack.db.ups_client import UPSTrackingClient

__all__ = [
    "ShipStationClient",
    "UpstreamPage",
    "FetchResult",
    "UPSTrackingClient",
    "TrackingStore",
    "RedisTrackingStore",
    "InMemoryTrackingStore",
    "StoreSnapshot",
]
