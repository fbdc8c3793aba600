"""
Service wiring for the sync subsystem

build_sync_services() constructs every component with its collaborators
injected; initialize_sync_services() opens the stores. The FastAPI lifespan
uses both, tests call them with in-memory doubles.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from smartbooking.config import LOCAL_DATA_DIR
from smartbooking.database import create_supabase_client
from smartbooking.exceptions import CacheInitializationError
from smartbooking.models.service import CustomerLookup, InMemoryServiceLookup, ServiceLookup
from smartbooking.services.appointment_cache import AppointmentCache
from smartbooking.services.appointment_service import AppointmentService
from smartbooking.services.availability import AvailabilityCache
from smartbooking.services.business_settings import BusinessSettingsService
from smartbooking.services.connectivity import ConnectivityProbe
from smartbooking.services.fallback_store import FallbackStore
from smartbooking.services.primary_store import PrimaryStore
from smartbooking.services.reconciliation import ReconciliationJob
from smartbooking.services.store_selector import StoreSelector
from smartbooking.services.sync_status import SyncStatusStore

logger = logging.getLogger(__name__)


@dataclass
class SyncServices:
    probe: ConnectivityProbe
    primary: PrimaryStore
    fallback: FallbackStore
    selector: StoreSelector
    status_store: SyncStatusStore
    job: ReconciliationJob
    cache: Optional[AppointmentCache] = None
    settings_service: Optional[BusinessSettingsService] = None
    appointment_service: Optional[AppointmentService] = None


def build_sync_services(
    supabase_client=None,
    redis_client=None,
    data_dir: Path = LOCAL_DATA_DIR,
    service_lookup: Optional[ServiceLookup] = None,
    customer_lookup: Optional[CustomerLookup] = None,
    **selector_options,
) -> SyncServices:
    """
    Construct the sync subsystem.

    Args:
        supabase_client: Primary store client; the shared Supabase client when omitted
        redis_client: Enables the appointment cache and the booking flow
        data_dir: Directory for the fallback file, snapshots and db-status.json
        service_lookup: Resolves service durations for the booking flow
        customer_lookup: When given, bookings for unknown customers are rejected
        selector_options: Passed to StoreSelector (connect_attempts, connect_delay)
    """
    primary = PrimaryStore(supabase_client, client_factory=create_supabase_client)
    fallback = FallbackStore(data_dir)
    probe = ConnectivityProbe(primary.ping)
    selector = StoreSelector(primary, fallback, probe, **selector_options)
    status_store = SyncStatusStore(data_dir)

    cache = settings_service = appointment_service = None
    if redis_client is not None:
        availability_cache = AvailabilityCache()
        cache = AppointmentCache(redis_client)
        settings_service = BusinessSettingsService(redis_client, selector, availability_cache)
        appointment_service = AppointmentService(
            cache,
            selector,
            settings_service,
            service_lookup or InMemoryServiceLookup(),
            availability_cache=availability_cache,
            customer_lookup=customer_lookup,
        )

    job = ReconciliationJob(
        primary,
        fallback,
        probe,
        status_store,
        cache=cache,
        settings_service=settings_service,
    )

    return SyncServices(
        probe=probe,
        primary=primary,
        fallback=fallback,
        selector=selector,
        status_store=status_store,
        job=job,
        cache=cache,
        settings_service=settings_service,
        appointment_service=appointment_service,
    )


async def initialize_sync_services(services: SyncServices) -> None:
    """Open the stores. A cache that fails to open is logged and left for a later retry."""
    await services.selector.initialize()

    if services.cache is not None:
        try:
            await services.cache.initialize()
        except CacheInitializationError as e:
            logger.error(f"Appointment cache unavailable at startup: {e}")
