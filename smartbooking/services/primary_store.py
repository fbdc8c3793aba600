"""
Primary Store Adapter - appointments and settings in Supabase

The supabase client is synchronous; every query runs through asyncio.to_thread
so a slow primary never blocks the event loop. Transport failures surface as
ConnectivityError, which the store selector treats as "primary down".
"""

import asyncio
import logging
from datetime import date
from typing import Any, Callable, List, Optional

import httpx
from postgrest.exceptions import APIError

from smartbooking.config import APPOINTMENTS_TABLE, SETTINGS_TABLE
from smartbooking.exceptions import AppointmentNotFoundError, ConnectivityError
from smartbooking.models.appointment import Appointment
from smartbooking.models.settings import BusinessSettings
from smartbooking.utils.time_utils import utc_now

logger = logging.getLogger(__name__)

# Errors that mean the primary could not serve the request
PRIMARY_DRIVER_ERRORS = (ConnectivityError, APIError, asyncio.TimeoutError)

SETTINGS_ROW_ID = "default"


class PrimaryStore:
    """Supabase-backed appointment store."""

    def __init__(
        self,
        client=None,
        client_factory: Optional[Callable[[], Any]] = None,
        appointments_table: str = APPOINTMENTS_TABLE,
        settings_table: str = SETTINGS_TABLE,
    ):
        self._client = client
        self._client_factory = client_factory
        self.appointments_table = appointments_table
        self.settings_table = settings_table

    @property
    def client(self):
        """The Supabase client, created on first use when a factory was given."""
        if self._client is None:
            if self._client_factory is None:
                raise ConnectivityError("Primary store is not configured")
            self._client = self._client_factory()
        return self._client

    async def _execute(self, build_query):
        """Run a PostgREST query built by `build_query` off the event loop."""
        def _run():
            return build_query().execute()

        try:
            return await asyncio.to_thread(_run)
        except (httpx.HTTPError, OSError) as e:
            raise ConnectivityError(f"Primary store request failed: {e}") from e

    async def ping(self) -> bool:
        """Cheap round trip used by the connectivity probe."""
        await self._execute(lambda: self.client.table(self.appointments_table).select("id").limit(1))
        return True

    async def list_appointments(self) -> List[Appointment]:
        result = await self._execute(lambda: self.client.table(self.appointments_table).select("*"))
        return [Appointment.from_document(row) for row in result.data or []]

    async def get_appointment(self, appointment_id: str) -> Appointment:
        result = await self._execute(
            lambda: self.client.table(self.appointments_table).select("*").eq("id", appointment_id)
        )
        if not result.data:
            raise AppointmentNotFoundError(appointment_id)
        return Appointment.from_document(result.data[0])

    async def find_by_date(self, day: date) -> List[Appointment]:
        result = await self._execute(
            lambda: self.client.table(self.appointments_table).select("*").eq("date", day.isoformat())
        )
        return [Appointment.from_document(row) for row in result.data or []]

    async def create_appointment(self, appointment: Appointment) -> Appointment:
        document = appointment.to_document()
        result = await self._execute(lambda: self.client.table(self.appointments_table).insert(document))
        logger.debug(f"Inserted appointment {appointment.id} into primary store")
        return Appointment.from_document(result.data[0]) if result.data else Appointment.from_document(document)

    async def update_appointment(self, appointment: Appointment) -> Appointment:
        document = appointment.to_document()
        result = await self._execute(
            lambda: self.client.table(self.appointments_table).update(document).eq("id", appointment.id)
        )
        if not result.data:
            raise AppointmentNotFoundError(appointment.id)
        logger.debug(f"Updated appointment {appointment.id} in primary store")
        return Appointment.from_document(result.data[0])

    async def delete_appointment(self, appointment_id: str) -> None:
        result = await self._execute(
            lambda: self.client.table(self.appointments_table).delete().eq("id", appointment_id)
        )
        if not result.data:
            raise AppointmentNotFoundError(appointment_id)
        logger.debug(f"Deleted appointment {appointment_id} from primary store")

    async def get_settings(self) -> Optional[BusinessSettings]:
        result = await self._execute(
            lambda: self.client.table(self.settings_table).select("*").eq("id", SETTINGS_ROW_ID)
        )
        if not result.data:
            return None
        return BusinessSettings.model_validate(result.data[0].get("settings") or {})

    async def save_settings(self, settings: BusinessSettings) -> BusinessSettings:
        row = {
            "id": SETTINGS_ROW_ID,
            "settings": settings.model_dump(mode="json"),
            "updated_at": utc_now().isoformat(),
        }
        await self._execute(lambda: self.client.table(self.settings_table).upsert(row))
        logger.info("Saved business settings to primary store")
        return settings
