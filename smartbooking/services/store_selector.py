"""
Store Selector - routes every backend operation to whichever store is live

The primary (Supabase) store is used while the connectivity probe reports it
connected. A driver error marks the probe disconnected and the same operation
is retried once against the fallback flat-file store. Only a fallback failure
reaches the caller.
"""

import logging
from datetime import date
from typing import List, Optional, Protocol

from smartbooking.config import PRIMARY_CONNECT_ATTEMPTS, PRIMARY_CONNECT_DELAY
from smartbooking.exceptions import ConnectivityError
from smartbooking.models.appointment import Appointment
from smartbooking.models.settings import BusinessSettings
from smartbooking.resilience import with_retry
from smartbooking.services.connectivity import ConnectivityProbe
from smartbooking.services.fallback_store import FallbackStore
from smartbooking.services.primary_store import PRIMARY_DRIVER_ERRORS, PrimaryStore

logger = logging.getLogger(__name__)


class AppointmentStore(Protocol):
    """CRUD surface shared by the primary store, the fallback store and the selector."""

    async def list_appointments(self) -> List[Appointment]: ...

    async def get_appointment(self, appointment_id: str) -> Appointment: ...

    async def create_appointment(self, appointment: Appointment) -> Appointment: ...

    async def update_appointment(self, appointment: Appointment) -> Appointment: ...

    async def delete_appointment(self, appointment_id: str) -> None: ...

    async def find_by_date(self, day: date) -> List[Appointment]: ...

    async def get_settings(self) -> Optional[BusinessSettings]: ...

    async def save_settings(self, settings: BusinessSettings) -> BusinessSettings: ...


class StoreSelector:
    """AppointmentStore that picks the primary or the fallback store per call."""

    def __init__(
        self,
        primary: PrimaryStore,
        fallback: FallbackStore,
        probe: ConnectivityProbe,
        connect_attempts: int = PRIMARY_CONNECT_ATTEMPTS,
        connect_delay: float = PRIMARY_CONNECT_DELAY,
    ):
        self.primary = primary
        self.fallback = fallback
        self.probe = probe
        self.connect_attempts = connect_attempts
        self.connect_delay = connect_delay

    async def initialize(self) -> bool:
        """
        Open the fallback store, then try to reach the primary.

        Returns:
            True if the primary answered within the retry budget
        """
        await self.fallback.initialize()

        @with_retry(
            max_attempts=self.connect_attempts,
            delay=self.connect_delay,
            backoff=1.0,
            exceptions=(ConnectivityError,),
        )
        async def _connect():
            if not await self.probe.refresh():
                raise ConnectivityError(self.probe.last_error or "Primary store is unreachable")

        try:
            await _connect()
        except ConnectivityError as e:
            logger.error(
                f"Primary store unreachable after {self.connect_attempts} attempts ({e}); "
                f"serving from fallback store"
            )
            return False

        logger.info("Primary store connected, serving from primary")
        return True

    def is_primary_connected(self) -> bool:
        return self.probe.is_connected

    async def _run(self, operation: str, *args):
        if await self.probe.check():
            try:
                result = await getattr(self.primary, operation)(*args)
            except PRIMARY_DRIVER_ERRORS as e:
                logger.warning(f"Primary store {operation} failed, retrying on fallback store: {e}")
                self.probe.mark_disconnected(str(e))
            else:
                self.probe.mark_connected()
                return result

        return await getattr(self.fallback, operation)(*args)

    async def list_appointments(self) -> List[Appointment]:
        return await self._run("list_appointments")

    async def get_appointment(self, appointment_id: str) -> Appointment:
        return await self._run("get_appointment", appointment_id)

    async def create_appointment(self, appointment: Appointment) -> Appointment:
        return await self._run("create_appointment", appointment)

    async def update_appointment(self, appointment: Appointment) -> Appointment:
        return await self._run("update_appointment", appointment)

    async def delete_appointment(self, appointment_id: str) -> None:
        return await self._run("delete_appointment", appointment_id)

    async def find_by_date(self, day: date) -> List[Appointment]:
        return await self._run("find_by_date", day)

    async def get_settings(self) -> Optional[BusinessSettings]:
        return await self._run("get_settings")

    async def save_settings(self, settings: BusinessSettings) -> BusinessSettings:
        return await self._run("save_settings", settings)
