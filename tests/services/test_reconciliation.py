"""
Tests for the reconciliation job
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

from smartbooking.exceptions import ConnectivityError
from smartbooking.models.appointment import Appointment
from smartbooking.models.sync import SyncStats
from smartbooking.services.business_settings import BusinessSettingsService
from tests.test_base import make_appointment

T1 = datetime(2030, 1, 1, 10, 0, tzinfo=timezone.utc)
T2 = datetime(2030, 1, 1, 11, 0, tzinfo=timezone.utc)
T3 = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)


def primary_rows(supabase_client):
    return {row["id"]: Appointment.from_document(row) for row in supabase_client.data.get("appointments", [])}


def seed_primary(supabase_client, *appointments):
    supabase_client.data.setdefault("appointments", []).extend(a.to_document() for a in appointments)


class TestReconcile:
    """Test suite for ReconciliationJob.reconcile"""

    async def test_fallback_only_record_is_pushed_once(self, job, fallback_store, supabase_client):
        record = make_appointment(id="fb-1", updated_at=T1)
        await fallback_store.create_appointment(record)

        first = await job.reconcile()
        second = await job.reconcile()

        assert first.created == 1
        assert "fb-1" in primary_rows(supabase_client)
        assert second == SyncStats()

    async def test_pending_cache_record_is_pushed_and_cleared(self, job, cache, supabase_client):
        stored = await cache.put(make_appointment())

        stats = await job.reconcile()

        assert stats.created == 1
        assert stored.id in primary_rows(supabase_client)
        assert await cache.get_pending() == []
        assert (await cache.get(stored.id)).pending_sync is False

    async def test_second_run_makes_no_changes(self, job, cache, fallback_store):
        await cache.put(make_appointment(time="09:00"))
        await fallback_store.create_appointment(make_appointment(time="10:00"))

        await job.reconcile()
        second = await job.reconcile()

        assert second.created == 0
        assert second.updated == 0
        assert second.deleted == 0

    async def test_newer_local_record_overwrites_primary(self, job, cache, supabase_client):
        seed_primary(supabase_client, make_appointment(id="a-1", notes="primary", updated_at=T1))
        await cache.put(make_appointment(id="a-1", notes="local", updated_at=T2))

        stats = await job.reconcile()

        assert stats.updated == 1
        assert primary_rows(supabase_client)["a-1"].notes == "local"
        assert (await cache.get("a-1")).notes == "local"

    async def test_older_local_record_loses(self, job, fallback_store, supabase_client):
        seed_primary(supabase_client, make_appointment(id="a-1", notes="primary", updated_at=T3))
        await fallback_store.create_appointment(make_appointment(id="a-1", notes="fallback", updated_at=T2))

        stats = await job.reconcile()

        assert stats.updated == 0
        assert primary_rows(supabase_client)["a-1"].notes == "primary"
        assert (await fallback_store.get_appointment("a-1")).notes == "primary"

    async def test_equal_timestamps_keep_primary_copy(self, job, cache, supabase_client):
        seed_primary(supabase_client, make_appointment(id="a-1", notes="primary", updated_at=T2))
        await cache.put(make_appointment(id="a-1", notes="local", updated_at=T2))

        stats = await job.reconcile()

        assert stats.updated == 0
        assert primary_rows(supabase_client)["a-1"].notes == "primary"
        assert (await cache.get("a-1")).notes == "primary"

    async def test_tombstone_is_deleted_and_purged(self, job, cache, supabase_client):
        record = make_appointment(id="a-1")
        seed_primary(supabase_client, record)
        await cache.put(record, local=False)
        await cache.delete("a-1")

        stats = await job.reconcile()

        assert stats.deleted == 1
        assert "a-1" not in primary_rows(supabase_client)
        assert await cache.get_pending() == []

    async def test_tombstone_missing_from_primary_counts_as_deleted(self, job, cache):
        await cache.put(make_appointment(id="a-1"))
        await cache.delete("a-1")

        stats = await job.reconcile()

        assert stats.deleted == 1
        assert stats.errors == 0
        assert await cache.get_pending() == []

    async def test_single_record_failure_does_not_abort_batch(self, job, cache, primary_store, supabase_client):
        await cache.put(make_appointment(id="good", time="09:00"))
        await cache.put(make_appointment(id="bad", time="10:00"))
        original_create = primary_store.create_appointment

        async def flaky_create(appointment):
            if appointment.id == "bad":
                raise ValueError("constraint violation")
            return await original_create(appointment)

        primary_store.create_appointment = flaky_create

        stats = await job.reconcile()

        assert stats.created == 1
        assert stats.errors == 1
        assert "good" in primary_rows(supabase_client)
        pending = await cache.get_pending()
        assert [a.id for a in pending] == ["bad"]
        assert pending[0].pending_sync is True

    async def test_success_status_is_persisted(self, job, status_store, cache, fallback_store):
        await cache.put(make_appointment())

        await job.reconcile()

        status = status_store.read()
        assert status.success is True
        assert status.primary_connected is True
        assert status.sync_performed is True
        assert status.stats.created == 1
        assert status.end_time is not None
        assert await fallback_store.last_synced_with_primary() is not None


class TestWritesDuringReconcile:

    async def test_cache_write_during_pull_survives(self, job, cache, primary_store, supabase_client):
        original_list = primary_store.list_appointments

        async def list_with_booking():
            await cache.put(make_appointment(id="booked-during-sync"))
            return await original_list()

        primary_store.list_appointments = list_with_booking

        await job.reconcile()

        booked = await cache.get("booked-during-sync")
        assert booked is not None
        assert booked.pending_sync is True
        assert [a.id for a in await cache.get_pending()] == ["booked-during-sync"]

        primary_store.list_appointments = original_list
        stats = await job.reconcile()

        assert stats.created == 1
        assert "booked-during-sync" in primary_rows(supabase_client)
        assert await cache.get_pending() == []

    async def test_fallback_write_during_pull_survives(self, job, fallback_store, primary_store, supabase_client):
        original_list = primary_store.list_appointments

        async def list_with_booking():
            await fallback_store.create_appointment(make_appointment(id="stored-during-sync", time="11:00"))
            return await original_list()

        primary_store.list_appointments = list_with_booking

        await job.reconcile()

        assert "stored-during-sync" in {a.id for a in await fallback_store.list_appointments()}

        primary_store.list_appointments = original_list
        stats = await job.reconcile()

        assert stats.created == 1
        assert "stored-during-sync" in primary_rows(supabase_client)


class TestReconcileAborts:

    async def test_unreachable_primary_aborts_and_keeps_flags(self, job, cache, supabase_client, status_store):
        stored = await cache.put(make_appointment())
        supabase_client.fail_with = ConnectionError("refused")

        stats = await job.reconcile()

        assert stats == SyncStats()
        status = status_store.read()
        assert status.success is False
        assert status.primary_connected is False
        assert status.sync_performed is False
        assert status.error
        assert [a.id for a in await cache.get_pending()] == [stored.id]

    async def test_listing_failure_aborts_without_touching_local_state(
        self, job, cache, primary_store, fallback_store, status_store
    ):
        stored = await cache.put(make_appointment())
        await fallback_store.create_appointment(make_appointment(id="fb-1", time="11:00"))
        primary_store.list_appointments = AsyncMock(side_effect=ConnectivityError("dropped"))

        await job.reconcile()

        status = status_store.read()
        assert status.success is False
        assert "dropped" in status.error
        assert [a.id for a in await cache.get_pending()] == [stored.id]
        assert [a.id for a in await fallback_store.list_appointments()] == ["fb-1"]
        assert "last_synced_with_primary" not in await fallback_store.get_data()


class TestTriggerAndSerialization:

    async def test_trigger_acknowledges_before_completion(self, job, status_store):
        ticket = job.trigger()

        assert ticket.status == "running"
        assert ticket.job_id
        assert status_store.read() is None

        await job._tasks[ticket.job_id]

        assert status_store.read().success is True

    async def test_overlapping_runs_are_serialized(self, job, primary_store):
        active = 0
        peak = 0
        original_list = primary_store.list_appointments

        async def tracking_list():
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return await original_list()

        primary_store.list_appointments = tracking_list

        await asyncio.gather(job.reconcile(), job.reconcile(), job.reconcile())

        assert peak == 1

    async def test_pending_settings_are_pushed(self, job, redis_client, selector):
        settings_service = BusinessSettingsService(redis_client, selector, is_online=lambda: False)
        await settings_service.update_settings({"appointment_buffer": 30})
        job.settings_service = settings_service
        await selector.initialize()

        await job.reconcile()

        assert await settings_service.has_pending_changes() is False
        assert (await selector.get_settings()).appointment_buffer == 30
