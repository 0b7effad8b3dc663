"""Tests unitarios para el scheduler de sincronización."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from packtrack.core.scheduler import SyncScheduler


class TestSyncScheduler:
    """Tests para SyncScheduler."""

    @pytest.mark.asyncio
    async def test_run_once_records_error_and_continues(self):
        """Un error en la sincronización se registra sin propagarse."""
        sync = AsyncMock(side_effect=RuntimeError("upstream down"))
        scheduler = SyncScheduler(sync, interval_minutes=15)

        await scheduler.run_once()

        assert scheduler.runs == 1
        assert scheduler.last_error == "upstream down"

    @pytest.mark.asyncio
    async def test_loop_runs_sync_after_each_interval(self):
        """Debe dormir el intervalo y luego sincronizar, repetidamente."""
        sleeps = []
        ran = asyncio.Event()
        sync = AsyncMock()

        async def fake_sleep(seconds):
            sleeps.append(seconds)
            if len(sleeps) >= 3:
                ran.set()
                await asyncio.Event().wait()

        scheduler = SyncScheduler(sync, interval_minutes=15, sleep=fake_sleep)
        scheduler.start()
        await asyncio.wait_for(ran.wait(), timeout=1)

        assert scheduler.running is True
        assert sleeps == [900, 900, 900]
        assert sync.await_count == 2

        await scheduler.stop()
        assert scheduler.running is False

    @pytest.mark.asyncio
    async def test_stop_when_not_running(self):
        scheduler = SyncScheduler(AsyncMock(), interval_minutes=1)

        await scheduler.stop()

        assert scheduler.get_status()["running"] is False
