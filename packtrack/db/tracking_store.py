"""
Persistent store for merged shipment rows.

Mirrors the in-memory order cache so a restarted process can warm-start, and
keeps the warehouse scan log. Store failures are raised as PersistenceError;
callers log them and keep serving from memory.

Redis layout (``{prefix}`` = REDIS_KEY_PREFIX):

- ``{prefix}:shipment:{document_id}``  JSON document per merged row
- ``{prefix}:shipments``             set of every document id ever stored
- ``{prefix}:snapshot``              ordered document ids of the latest sync
- ``{prefix}:meta:last_sync``        epoch seconds of the latest sync
- ``{prefix}:scan_logs``             list of JSON scan-log entries
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from packtrack.core.redis_client import close_redis, test_redis_connection
from packtrack.domain.models import MergedRecord
from packtrack.domain.models.merged import TRACKING_FIELDS
from packtrack.utils.error_handler import PersistenceError

logger = logging.getLogger(__name__)


@dataclass
class StoreSnapshot:
    """Rows of the latest stored sync."""

    records: list[MergedRecord] = field(default_factory=list)
    last_sync: float | None = None


def merge_document(existing: dict[str, Any] | None, record: MergedRecord) -> dict[str, Any]:
    """
    Build the document to write for ``record``.

    When the record's carrier fields were not re-resolved in this pass the
    carrier fields already in the store win.
    """
    document = record.to_document()
    if existing and not record.tracking_resolved:
        for key in TRACKING_FIELDS:
            if key in existing:
                document[key] = existing[key]
    return document


class TrackingStore(ABC):
    """Contract shared by the Redis and in-memory stores."""

    backend = "abstract"

    @abstractmethod
    async def load_snapshot(self) -> StoreSnapshot:
        """Load the rows of the latest sync in their original order."""

    @abstractmethod
    async def save_snapshot(self, records: list[MergedRecord], last_sync: float) -> int:
        """Upsert every row (merge semantics) and mark them as the latest sync."""

    @abstractmethod
    async def upsert_record(self, record: MergedRecord) -> None:
        """Upsert a single row."""

    @abstractmethod
    async def list_scan_logs(self) -> list[dict[str, Any]]:
        """Return every scan-log entry, oldest first."""

    @abstractmethod
    async def add_scan_log(self, entry: dict[str, Any]) -> None:
        """Append one scan-log entry."""

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class InMemoryTrackingStore(TrackingStore):
    """
    Process-local store used when no Redis URL is configured.
    """

    backend = "memory"

    def __init__(self):
        self.documents: dict[str, dict[str, Any]] = {}
        self.snapshot_ids: list[str] = []
        self.last_sync: float | None = None
        self.scan_logs: list[dict[str, Any]] = []

    async def load_snapshot(self) -> StoreSnapshot:
        records = [
            MergedRecord.from_document(self.documents[document_id])
            for document_id in self.snapshot_ids
            if document_id in self.documents
        ]
        return StoreSnapshot(records=records, last_sync=self.last_sync)

    async def save_snapshot(self, records: list[MergedRecord], last_sync: float) -> int:
        for record in records:
            self.documents[record.document_id] = merge_document(self.documents.get(record.document_id), record)
        self.snapshot_ids = [record.document_id for record in records]
        self.last_sync = last_sync
        return len(records)

    async def upsert_record(self, record: MergedRecord) -> None:
        self.documents[record.document_id] = merge_document(self.documents.get(record.document_id), record)

    async def list_scan_logs(self) -> list[dict[str, Any]]:
        return list(self.scan_logs)

    async def add_scan_log(self, entry: dict[str, Any]) -> None:
        self.scan_logs.append(dict(entry))


class RedisTrackingStore(TrackingStore):
    """
    Redis-backed document store.
    """

    backend = "redis"

    def __init__(self, client: redis.Redis, key_prefix: str = "packtrack"):
        self.client = client
        self.key_prefix = key_prefix

    def _key(self, *parts: str) -> str:
        return ":".join((self.key_prefix, *parts))

    def _document_key(self, document_id: str) -> str:
        return self._key("shipment", document_id)

    @staticmethod
    def _decode(raw: str | None, key: str) -> dict[str, Any] | None:
        if not raw:
            return None
        try:
            document = json.loads(raw)
        except ValueError:
            logger.warning(f"Skipping corrupt document at {key}")
            return None
        return document if isinstance(document, dict) else None

    async def load_snapshot(self) -> StoreSnapshot:
        try:
            document_ids = await self.client.lrange(self._key("snapshot"), 0, -1)
            last_sync_raw = await self.client.get(self._key("meta", "last_sync"))
            keys = [self._document_key(document_id) for document_id in document_ids]
            raw_documents = await self.client.mget(keys) if keys else []
        except RedisError as e:
            raise PersistenceError(f"Failed to load snapshot from Redis: {e}", operation="load_snapshot") from e

        records = []
        for key, raw in zip(keys, raw_documents):
            document = self._decode(raw, key)
            if document is not None:
                records.append(MergedRecord.from_document(document))

        last_sync = float(last_sync_raw) if last_sync_raw else None
        logger.info(f"Loaded {len(records)} records from Redis snapshot")
        return StoreSnapshot(records=records, last_sync=last_sync)

    async def save_snapshot(self, records: list[MergedRecord], last_sync: float) -> int:
        keys = [self._document_key(record.document_id) for record in records]
        try:
            existing_raw = await self.client.mget(keys) if keys else []

            pipe = self.client.pipeline(transaction=True)
            for key, record, raw in zip(keys, records, existing_raw):
                document = merge_document(self._decode(raw, key), record)
                pipe.set(key, json.dumps(document, default=str))

            pipe.delete(self._key("snapshot"))
            if records:
                document_ids = [record.document_id for record in records]
                pipe.rpush(self._key("snapshot"), *document_ids)
                pipe.sadd(self._key("shipments"), *document_ids)
            pipe.set(self._key("meta", "last_sync"), str(last_sync))
            await pipe.execute()
        except RedisError as e:
            raise PersistenceError(f"Failed to save snapshot to Redis: {e}", operation="save_snapshot") from e

        logger.info(f"Upserted {len(records)} records into Redis")
        return len(records)

    async def upsert_record(self, record: MergedRecord) -> None:
        key = self._document_key(record.document_id)
        try:
            existing = self._decode(await self.client.get(key), key)
            await self.client.set(key, json.dumps(merge_document(existing, record), default=str))
            await self.client.sadd(self._key("shipments"), record.document_id)
        except RedisError as e:
            raise PersistenceError(f"Failed to upsert {record.document_id}: {e}", operation="upsert_record") from e

    async def list_scan_logs(self) -> list[dict[str, Any]]:
        key = self._key("scan_logs")
        try:
            raw_entries = await self.client.lrange(key, 0, -1)
        except RedisError as e:
            raise PersistenceError(f"Failed to read scan logs: {e}", operation="list_scan_logs") from e

        entries = []
        for raw in raw_entries:
            entry = self._decode(raw, key)
            if entry is not None:
                entries.append(entry)
        return entries

    async def add_scan_log(self, entry: dict[str, Any]) -> None:
        try:
            await self.client.rpush(self._key("scan_logs"), json.dumps(entry, default=str))
        except RedisError as e:
            raise PersistenceError(f"Failed to append scan log: {e}", operation="add_scan_log") from e

    async def ping(self) -> bool:
        return await test_redis_connection(self.client)

    async def close(self) -> None:
        await close_redis(self.client)
