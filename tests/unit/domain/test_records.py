"""Tests unitarios para los modelos de dominio."""

from datetime import UTC, datetime

import pytest

from packtrack.domain.models import MergedRecord, OrderRecord, TrackingRecord
from packtrack.domain.value_objects import TrackingStatusKind


def _order(**overrides) -> OrderRecord:
    values = {"order_id": "1001", "order_number": "A-1001", "customer_name": "Jane Doe"}
    values.update(overrides)
    return OrderRecord(**values)


class TestTrackingRecord:
    """Tests para TrackingRecord."""

    @pytest.mark.parametrize(
        "status,delivered",
        [
            ("Delivered", True),
            ("DELIVERED TO FRONT DOOR", True),
            ("Your package was delivered", True),
            ("Out For Delivery Today", False),
            ("In Transit", False),
            ("", False),
        ],
    )
    def test_delivered_is_substring_match(self, status, delivered):
        """delivered es verdadero sii el estado contiene 'delivered'."""
        record = TrackingRecord(kind=TrackingStatusKind.LIVE, status=status)

        assert record.delivered is delivered

    def test_live_with_blank_status_is_unknown(self):
        record = TrackingRecord.live(status="", location="Atlanta, GA")

        assert record.kind is TrackingStatusKind.UNKNOWN
        assert record.status == "Unknown"
        assert record.location == "Atlanta, GA"

    def test_sentinel_uses_fixed_display(self):
        record = TrackingRecord.sentinel(TrackingStatusKind.PENDING_UPDATE, is_error=True)

        assert record.status == "Pending Update"
        assert record.is_error is True
        assert record.delivered is False

    def test_sentinel_rejects_live(self):
        with pytest.raises(ValueError):
            TrackingRecord.sentinel(TrackingStatusKind.LIVE)

    def test_dict_round_trip_keeps_timestamp(self):
        fetched = datetime(2024, 1, 3, 12, 30, tzinfo=UTC)
        record = TrackingRecord.live("Delivered", "Austin, TX", "01/04/2024", fetched, "https://x")

        rebuilt = TrackingRecord.from_dict(record.to_dict())

        assert rebuilt == record
        assert record.to_dict()["lastUpdated"] == "2024-01-03T12:30:00+00:00"

    def test_from_dict_with_unknown_kind(self):
        rebuilt = TrackingRecord.from_dict({"status": "Whatever", "statusKind": "bogus"})

        assert rebuilt.kind is TrackingStatusKind.UNKNOWN
        assert rebuilt.status == "Whatever"


class TestMergedRecord:
    """Tests para MergedRecord."""

    def test_record_id_prefers_tracking_number(self):
        tracking = TrackingRecord.sentinel(TrackingStatusKind.UNKNOWN)

        assert MergedRecord(_order(), "1Z999", tracking).record_id == "1Z999"
        assert MergedRecord(_order(), None, tracking).record_id == "1001"

    def test_document_id_includes_order(self):
        """Dos órdenes con el mismo número de rastreo no comparten documento."""
        tracking = TrackingRecord.sentinel(TrackingStatusKind.UNKNOWN)

        assert MergedRecord(_order(), "1Z999", tracking).document_id == "1001:1Z999"
        assert MergedRecord(_order(), None, tracking).document_id == "1001"

    def test_to_dict_flattens_to_camel_case(self):
        tracking = TrackingRecord.live("In Transit", "Atlanta, GA", "01/05/2024")
        row = MergedRecord(_order(item_summary="2x Widget"), "1Z999", tracking).to_dict()

        assert row["id"] == "1Z999"
        assert row["orderNumber"] == "A-1001"
        assert row["customerName"] == "Jane Doe"
        assert row["itemSummary"] == "2x Widget"
        assert row["trackingNumber"] == "1Z999"
        assert row["status"] == "In Transit"
        assert row["expectedDelivery"] == "01/05/2024"
        assert row["delivered"] is False

    def test_tracking_row_projection(self):
        tracking = TrackingRecord.live("Delivered")
        row = MergedRecord(_order(ship_date="2024-01-02"), "1Z999", tracking).to_tracking_row()

        assert set(row) >= {"trackingNumber", "orderNumber", "customerName", "shipDate", "status", "delivered"}
        assert "itemSummary" not in row
        assert row["delivered"] is True

    def test_document_round_trip(self):
        record = MergedRecord(
            _order(order_total="19.50"),
            "1Z999",
            TrackingRecord.live("Delivered", last_updated=datetime(2024, 1, 3, tzinfo=UTC)),
            tracking_resolved=False,
        )

        rebuilt = MergedRecord.from_document(record.to_document())

        assert rebuilt == record

    def test_with_tracking_returns_new_record(self):
        record = MergedRecord(_order(), "1Z999", TrackingRecord.sentinel(TrackingStatusKind.UNKNOWN))

        updated = record.with_tracking(TrackingRecord.live("Delivered"))

        assert updated is not record
        assert updated.tracking.status == "Delivered"
        assert record.tracking.status == "Unknown"
