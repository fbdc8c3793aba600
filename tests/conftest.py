"""
Shared pytest fixtures for the sync subsystem
"""

import pytest

from smartbooking.models.service import InMemoryServiceLookup, Service
from smartbooking.models.settings import BusinessSettings, DayConfig, WorkingHours
from smartbooking.services.appointment_cache import AppointmentCache
from smartbooking.services.connectivity import ConnectivityProbe
from smartbooking.services.fallback_store import FallbackStore
from smartbooking.services.primary_store import PrimaryStore
from smartbooking.services.reconciliation import ReconciliationJob
from smartbooking.services.store_selector import StoreSelector
from smartbooking.services.sync_status import SyncStatusStore
from tests.test_base import MockRedis, MockSupabaseClient


@pytest.fixture
def supabase_client():
    return MockSupabaseClient()


@pytest.fixture
def redis_client():
    return MockRedis()


@pytest.fixture
def primary_store(supabase_client):
    return PrimaryStore(supabase_client)


@pytest.fixture
async def fallback_store(tmp_path):
    store = FallbackStore(tmp_path)
    await store.initialize()
    return store


@pytest.fixture
def probe(primary_store):
    return ConnectivityProbe(primary_store.ping, timeout=1.0, recheck_interval=0)


@pytest.fixture
def selector(primary_store, fallback_store, probe):
    return StoreSelector(primary_store, fallback_store, probe, connect_attempts=2, connect_delay=0)


@pytest.fixture
async def cache(redis_client):
    appointment_cache = AppointmentCache(redis_client)
    await appointment_cache.initialize()
    return appointment_cache


@pytest.fixture
def status_store(tmp_path):
    return SyncStatusStore(tmp_path)


@pytest.fixture
def job(primary_store, fallback_store, probe, status_store, cache):
    return ReconciliationJob(primary_store, fallback_store, probe, status_store, cache=cache)


@pytest.fixture
def monday_settings():
    """Monday 09:00-17:00, no buffer."""
    return BusinessSettings(
        working_hours=WorkingHours(start="09:00", end="17:00"),
        days_open={
            "monday": DayConfig(open=True, start="09:00", end="17:00"),
            "friday": DayConfig(open=False),
        },
        appointment_buffer=0,
    )


@pytest.fixture
def haircut():
    return Service(id="svc-haircut", name="Haircut", duration_minutes=30, price=25.0)


@pytest.fixture
def service_lookup(haircut):
    return InMemoryServiceLookup([haircut])
