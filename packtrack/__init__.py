"""
PackTrack - shipment and delivery tracking aggregation service.

Pulls shipped orders from ShipStation, enriches them with live UPS tracking
status and serves the merged rows to the dashboard frontend.
"""
