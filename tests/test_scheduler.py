"""
Tests del planificador de tareas periódicas.
"""
import asyncio
import threading

import pytest

from erp_marketplace_sync.scheduler import SyncScheduler


class TestSyncScheduler:

    def test_run_job_executes_function(self):
        scheduler = SyncScheduler()
        calls = []

        assert asyncio.run(scheduler.run_job("stock_sync", lambda: calls.append(1))) is True

        assert calls == [1]
        status = scheduler.get_status()["stock_sync"]
        assert status["runs"] == 1
        assert status["running"] is False
        assert status["last_error"] is None

    def test_errors_are_logged_not_raised(self):
        scheduler = SyncScheduler()

        def fail():
            raise RuntimeError("fallo en el barrido")

        assert asyncio.run(scheduler.run_job("stock_sync", fail)) is True
        assert scheduler.get_status()["stock_sync"]["last_error"] == "fallo en el barrido"

    def test_overlapping_run_is_skipped(self):
        """Un ciclo que llega mientras el anterior sigue en curso se omite"""
        scheduler = SyncScheduler()
        started = threading.Event()
        release = threading.Event()
        calls = []

        def slow_job():
            calls.append(1)
            started.set()
            release.wait(timeout=5)

        async def scenario():
            first = asyncio.create_task(scheduler.run_job("order_polling", slow_job))
            await asyncio.to_thread(started.wait, 5)
            skipped = await scheduler.run_job("order_polling", slow_job)
            release.set()
            await first
            return skipped

        assert asyncio.run(scenario()) is False
        assert calls == [1]
        assert scheduler.get_status()["order_polling"]["skipped"] == 1

    @pytest.mark.parametrize("interval", [0, -5])
    def test_interval_must_be_at_least_one_minute(self, interval):
        with pytest.raises(ValueError):
            SyncScheduler().schedule("stock_sync", interval, lambda: None)

    def test_schedule_and_stop_all(self):
        scheduler = SyncScheduler()

        async def scenario():
            scheduler.schedule_stock_sync(10, lambda: None)
            scheduler.schedule_order_polling(5, lambda: None)
            with pytest.raises(ValueError):
                scheduler.schedule_stock_sync(10, lambda: None)
            status = scheduler.get_status()
            scheduler.stop_all()
            await asyncio.sleep(0)
            return status

        status = asyncio.run(scenario())

        assert status["stock_sync"]["scheduled"] is True
        assert status["order_polling"]["interval_minutes"] == 5
        assert scheduler.get_status()["stock_sync"]["scheduled"] is False
