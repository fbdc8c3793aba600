"""
Reconciliation Job - converges the cache, the fallback store and the primary store

One pass:
1. Local -> Primary: push every fallback record, then every pending cache record.
   Deletes ignore "not found"; upserts insert when absent and overwrite only
   when the local updated_at is strictly newer (equal timestamps keep the
   primary copy).
2. Primary -> Local: overwrite the cache and the fallback appointments with
   the primary set. Only records that are unchanged since they were read and
   whose push succeeded give way; failed pushes and anything written while the
   pass was running stay for the next pass.
3. Persist a SyncStatus for the status surface.

Runs are serialized by an asyncio.Lock; overlapping callers wait their turn.
"""

import asyncio
import logging
import uuid
from typing import Dict, List, Optional, Set

from smartbooking.exceptions import AppointmentNotFoundError, SyncError
from smartbooking.models.appointment import Appointment
from smartbooking.models.sync import SyncStats, SyncStatus, SyncTicket
from smartbooking.services.appointment_cache import AppointmentCache
from smartbooking.services.connectivity import ConnectivityProbe
from smartbooking.services.fallback_store import FallbackStore
from smartbooking.services.primary_store import PRIMARY_DRIVER_ERRORS, PrimaryStore
from smartbooking.services.sync_status import SyncStatusStore
from smartbooking.utils.time_utils import utc_now

logger = logging.getLogger(__name__)


class ReconciliationJob:

    def __init__(
        self,
        primary: PrimaryStore,
        fallback: FallbackStore,
        probe: ConnectivityProbe,
        status_store: SyncStatusStore,
        cache: Optional[AppointmentCache] = None,
        settings_service=None,
    ):
        self.primary = primary
        self.fallback = fallback
        self.probe = probe
        self.status_store = status_store
        self.cache = cache
        self.settings_service = settings_service
        self._lock = asyncio.Lock()
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def reconcile(self) -> SyncStats:
        """
        Run one reconciliation pass.

        Returns:
            Counters for the pass; a run aborted because the primary is
            unreachable returns whatever was counted before the abort
        """
        async with self._lock:
            status = SyncStatus(start_time=utc_now())
            stats = SyncStats()

            if not await self.probe.refresh():
                return await self._abort(status, stats, f"Primary store unreachable: {self.probe.last_error}")

            logger.info("Starting reconciliation with primary store")

            try:
                stored = await self.fallback.list_appointments()
                confirmed_stored = await self._push_all(stored, stats)

                cached: List[Appointment] = []
                if self.cache is not None:
                    cached = await self.cache.get_all(include_deleted=True)
                pending = [a for a in cached if a.pending_sync or a.pending_delete]
                confirmed_pending = await self._push_all(pending, stats)

                try:
                    remote = await self.primary.list_appointments()
                except PRIMARY_DRIVER_ERRORS as e:
                    self.probe.mark_disconnected(str(e))
                    return await self._abort(status, stats, f"Failed to list primary appointments: {e}")

                if self.cache is not None:
                    await self.cache.replace_all(remote, pulled=cached, confirmed_ids=confirmed_pending)
                await self.fallback.replace_appointments(remote, pulled=stored, confirmed_ids=confirmed_stored)

                if self.settings_service is not None:
                    await self.settings_service.sync_pending_settings()
            except Exception as e:
                logger.error(f"Reconciliation failed: {e}", exc_info=True)
                await self._abort(status, stats, str(e), primary_connected=self.probe.is_connected)
                raise

            status.end_time = utc_now()
            status.success = True
            status.primary_connected = True
            status.sync_performed = True
            status.stats = stats
            await self.status_store.save(status)

            logger.info(
                f"Reconciliation completed: {stats.created} created, {stats.updated} updated, "
                f"{stats.deleted} deleted, {stats.errors} errors"
            )
            return stats

    async def _abort(self, status: SyncStatus, stats: SyncStats, error: str, primary_connected: bool = False) -> SyncStats:
        logger.error(f"Reconciliation aborted: {error}")
        status.end_time = utc_now()
        status.success = False
        status.primary_connected = primary_connected
        status.sync_performed = False
        status.stats = stats
        status.error = error
        await self.status_store.save(status)
        return stats

    async def _push_all(self, records: List[Appointment], stats: SyncStats) -> Set[str]:
        """Push records to the primary; returns the ids that were pushed."""
        pushed = set()
        for record in records:
            try:
                await self._push(record, stats)
            except SyncError as e:
                logger.warning(str(e))
                stats.errors += 1
            else:
                pushed.add(record.id)
        return pushed

    async def _push(self, record: Appointment, stats: SyncStats) -> None:
        try:
            if record.pending_delete:
                try:
                    await self.primary.delete_appointment(record.id)
                except AppointmentNotFoundError:
                    logger.debug(f"Appointment {record.id} already absent from primary store")
                stats.deleted += 1
                return

            try:
                existing = await self.primary.get_appointment(record.id)
            except AppointmentNotFoundError:
                await self.primary.create_appointment(record)
                stats.created += 1
                logger.debug(f"Created appointment {record.id} in primary store")
                return

            if record.updated_at > existing.updated_at:
                await self.primary.update_appointment(record)
                stats.updated += 1
                logger.debug(f"Updated appointment {record.id} in primary store")
        except Exception as e:
            raise SyncError(record.id, e) from e

    def trigger(self) -> SyncTicket:
        """
        Start a reconciliation run in the background and return immediately.

        Completion is only visible through the sync status store.
        """
        ticket = SyncTicket(job_id=uuid.uuid4().hex)
        task = asyncio.create_task(self._run_triggered(ticket.job_id))
        self._tasks[ticket.job_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(ticket.job_id, None))
        logger.info(f"Manual reconciliation triggered (job {ticket.job_id})")
        return ticket

    async def _run_triggered(self, job_id: str) -> None:
        try:
            await self.reconcile()
        except Exception as e:
            logger.error(f"Manual reconciliation {job_id} failed: {e}", exc_info=True)
