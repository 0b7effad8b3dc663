"""Tests unitarios para el almacén persistente."""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from packtrack.db.tracking_store import InMemoryTrackingStore, RedisTrackingStore, merge_document
from packtrack.domain.models import MergedRecord, OrderRecord, TrackingRecord
from packtrack.domain.value_objects import TrackingStatusKind
from packtrack.utils.error_handler import PersistenceError

FETCHED = datetime(2024, 1, 3, tzinfo=UTC)


def _record(order_id="1001", tracking_number="1Z999", status="In Transit", resolved=True) -> MergedRecord:
    tracking = (
        TrackingRecord.live(status, "Atlanta, GA", last_updated=FETCHED)
        if resolved
        else TrackingRecord.sentinel(TrackingStatusKind.UNKNOWN)
    )
    return MergedRecord(
        order=OrderRecord(order_id=order_id, order_number=f"A-{order_id}"),
        tracking_number=tracking_number,
        tracking=tracking,
        tracking_resolved=resolved,
    )


class TestMergeDocument:
    """Tests para la semántica de upsert con merge."""

    def test_resolved_record_overwrites_carrier_fields(self):
        existing = _record(status="In Transit").to_document()

        document = merge_document(existing, _record(status="Delivered"))

        assert document["status"] == "Delivered"
        assert document["delivered"] is True

    def test_unresolved_record_keeps_stored_carrier_fields(self):
        """Sin re-resolución se conservan los campos de UPS ya guardados."""
        existing = _record(status="Delivered").to_document()
        incoming = _record(resolved=False)

        document = merge_document(existing, incoming)

        assert document["status"] == "Delivered"
        assert document["statusKind"] == "live"
        assert document["location"] == "Atlanta, GA"
        assert document["lastUpdated"] == FETCHED.isoformat()
        assert document["trackingResolved"] is False
        assert document["orderNumber"] == "A-1001"

    def test_unresolved_without_existing_document(self):
        document = merge_document(None, _record(resolved=False))

        assert document["status"] == "Unknown"


class TestInMemoryTrackingStore:
    """Tests para InMemoryTrackingStore."""

    @pytest.mark.asyncio
    async def test_snapshot_round_trip_in_order(self):
        store = InMemoryTrackingStore()
        records = [_record("1", "1Z1"), _record("2", None), _record("3", "1Z3")]

        await store.save_snapshot(records, last_sync=123.0)
        snapshot = await store.load_snapshot()

        assert [r.record_id for r in snapshot.records] == ["1Z1", "2", "1Z3"]
        assert snapshot.last_sync == 123.0

    @pytest.mark.asyncio
    async def test_save_snapshot_merges(self):
        store = InMemoryTrackingStore()
        await store.save_snapshot([_record(status="Delivered")], last_sync=1.0)

        await store.save_snapshot([_record(resolved=False)], last_sync=2.0)
        snapshot = await store.load_snapshot()

        assert snapshot.records[0].tracking.status == "Delivered"
        assert snapshot.records[0].tracking_resolved is False

    @pytest.mark.asyncio
    async def test_snapshot_only_lists_latest_sync(self):
        """Los documentos viejos se conservan pero no forman parte del snapshot."""
        store = InMemoryTrackingStore()
        await store.save_snapshot([_record("1", "1Z1"), _record("2", "1Z2")], last_sync=1.0)

        await store.save_snapshot([_record("2", "1Z2")], last_sync=2.0)
        snapshot = await store.load_snapshot()

        assert [r.record_id for r in snapshot.records] == ["1Z2"]
        assert "1:1Z1" in store.documents

    @pytest.mark.asyncio
    async def test_combined_shipment_keeps_both_orders(self):
        """Órdenes que comparten número de rastreo se guardan por separado."""
        store = InMemoryTrackingStore()

        await store.save_snapshot([_record("1", "1Z1"), _record("2", "1Z1")], last_sync=1.0)
        snapshot = await store.load_snapshot()

        assert [r.order.order_id for r in snapshot.records] == ["1", "2"]
        assert len(store.documents) == 2

    @pytest.mark.asyncio
    async def test_upsert_record(self):
        store = InMemoryTrackingStore()
        await store.save_snapshot([_record(status="In Transit")], last_sync=1.0)

        await store.upsert_record(_record(status="Delivered"))

        assert store.documents["1001:1Z999"]["status"] == "Delivered"

    @pytest.mark.asyncio
    async def test_scan_logs(self):
        store = InMemoryTrackingStore()

        await store.add_scan_log({"trackingId": "1Z1", "dateStr": "2024-01-02"})
        await store.add_scan_log({"trackingId": "1Z2", "dateStr": "2024-01-03"})

        assert [log["trackingId"] for log in await store.list_scan_logs()] == ["1Z1", "1Z2"]
        assert await store.ping() is True


def _redis_client():
    client = MagicMock()
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[])
    client.pipeline.return_value = pipe
    client.mget = AsyncMock(return_value=[])
    client.get = AsyncMock(return_value=None)
    client.set = AsyncMock()
    client.sadd = AsyncMock()
    client.lrange = AsyncMock(return_value=[])
    client.rpush = AsyncMock()
    client.ping = AsyncMock(return_value=True)
    client.aclose = AsyncMock()
    return client, pipe


class TestRedisTrackingStore:
    """Tests para RedisTrackingStore con cliente simulado."""

    @pytest.mark.asyncio
    async def test_save_snapshot_writes_documents_and_index(self):
        client, pipe = _redis_client()
        client.mget.return_value = [None, None]
        store = RedisTrackingStore(client, key_prefix="pt")

        count = await store.save_snapshot([_record("1", "1Z1"), _record("2", None)], last_sync=99.5)

        assert count == 2
        client.mget.assert_awaited_once_with(["pt:shipment:1:1Z1", "pt:shipment:2"])
        written = {call.args[0]: call.args[1] for call in pipe.set.call_args_list}
        assert json.loads(written["pt:shipment:1:1Z1"])["trackingNumber"] == "1Z1"
        assert written["pt:meta:last_sync"] == "99.5"
        pipe.delete.assert_called_once_with("pt:snapshot")
        pipe.rpush.assert_called_once_with("pt:snapshot", "1:1Z1", "2")
        pipe.sadd.assert_called_once_with("pt:shipments", "1:1Z1", "2")
        pipe.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_save_snapshot_keeps_stored_tracking_when_unresolved(self):
        client, pipe = _redis_client()
        client.mget.return_value = [json.dumps(_record(status="Delivered").to_document())]
        store = RedisTrackingStore(client, key_prefix="pt")

        await store.save_snapshot([_record(resolved=False)], last_sync=1.0)

        written = {call.args[0]: call.args[1] for call in pipe.set.call_args_list}
        assert json.loads(written["pt:shipment:1001:1Z999"])["status"] == "Delivered"

    @pytest.mark.asyncio
    async def test_load_snapshot_skips_corrupt_documents(self):
        client, _ = _redis_client()
        client.lrange.return_value = ["1Z1", "1Z2", "1Z3"]
        client.get.return_value = "42.0"
        client.mget.return_value = [json.dumps(_record("1", "1Z1").to_document()), "{not json", None]
        store = RedisTrackingStore(client, key_prefix="pt")

        snapshot = await store.load_snapshot()

        assert [r.record_id for r in snapshot.records] == ["1Z1"]
        assert snapshot.last_sync == 42.0

    @pytest.mark.asyncio
    async def test_redis_errors_become_persistence_errors(self):
        client, pipe = _redis_client()
        client.mget.side_effect = RedisConnectionError("down")
        client.lrange.side_effect = RedisConnectionError("down")
        client.rpush.side_effect = RedisConnectionError("down")
        client.get.side_effect = RedisConnectionError("down")
        store = RedisTrackingStore(client)

        with pytest.raises(PersistenceError):
            await store.save_snapshot([_record()], last_sync=1.0)
        with pytest.raises(PersistenceError):
            await store.load_snapshot()
        with pytest.raises(PersistenceError):
            await store.add_scan_log({"trackingId": "1Z1"})
        with pytest.raises(PersistenceError):
            await store.list_scan_logs()
        with pytest.raises(PersistenceError):
            await store.upsert_record(_record())

    @pytest.mark.asyncio
    async def test_ping_failure_is_false(self):
        client, _ = _redis_client()
        client.ping.side_effect = RedisConnectionError("down")

        assert await RedisTrackingStore(client).ping() is False

    @pytest.mark.asyncio
    async def test_scan_log_round_trip(self):
        client, _ = _redis_client()
        store = RedisTrackingStore(client, key_prefix="pt")

        await store.add_scan_log({"trackingId": "1Z1", "dateStr": "2024-01-02"})
        pushed = client.rpush.call_args.args
        client.lrange.return_value = [pushed[1]]

        assert pushed[0] == "pt:scan_logs"
        assert await store.list_scan_logs() == [{"trackingId": "1Z1", "dateStr": "2024-01-02"}]

    @pytest.mark.asyncio
    async def test_close(self):
        client, _ = _redis_client()

        await RedisTrackingStore(client).close()

        client.aclose.assert_awaited_once()
