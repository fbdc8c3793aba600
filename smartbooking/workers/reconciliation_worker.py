"""
Background worker for periodic reconciliation with the primary store

Runs the reconciliation job every SYNC_INTERVAL_MINUTES while the primary is
reachable, plus once shortly after startup. When the booking flow is wired in,
past appointments are also swept to Completed every COMPLETION_SWEEP_MINUTES.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from smartbooking.config import COMPLETION_SWEEP_MINUTES, SYNC_INTERVAL_MINUTES, SYNC_ON_STARTUP
from smartbooking.models.sync import SyncStats
from smartbooking.services.appointment_service import AppointmentService
from smartbooking.services.connectivity import ConnectivityProbe
from smartbooking.services.reconciliation import ReconciliationJob

logger = logging.getLogger(__name__)


class ReconciliationWorker:
    """
    Scheduled reconciliation between the local stores and the primary store.
    Skips a run entirely while the primary is down.
    """

    def __init__(
        self,
        job: ReconciliationJob,
        probe: ConnectivityProbe,
        interval_minutes: int = SYNC_INTERVAL_MINUTES,
        run_on_startup: bool = SYNC_ON_STARTUP,
        startup_delay_seconds: int = 5,
        appointment_service: Optional[AppointmentService] = None,
        sweep_interval_minutes: int = COMPLETION_SWEEP_MINUTES,
    ):
        self.job = job
        self.probe = probe
        self.appointment_service = appointment_service
        self.sweep_interval_minutes = sweep_interval_minutes
        self.scheduler = AsyncIOScheduler()
        self.interval_minutes = interval_minutes
        self.run_on_startup = run_on_startup
        self.startup_delay_seconds = startup_delay_seconds
        self.is_running = False

        logger.info(f"Initialized ReconciliationWorker with {interval_minutes} minute interval")

    def start(self):
        """Start the scheduled reconciliation worker"""
        if self.is_running:
            return

        self.scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id='reconciliation_worker',
            name='Reconciliation Worker',
            misfire_grace_time=120,
            coalesce=True,
            max_instances=1
        )

        if self.run_on_startup and self.probe.is_connected:
            self.scheduler.add_job(
                self.run_once,
                trigger='date',
                run_date=datetime.now() + timedelta(seconds=self.startup_delay_seconds),
                id='reconciliation_startup',
                name='Reconciliation Worker (Startup)'
            )

        if self.appointment_service is not None:
            self.scheduler.add_job(
                self.run_completion_sweep,
                trigger=IntervalTrigger(minutes=self.sweep_interval_minutes),
                id='completion_sweep',
                name='Appointment Completion Sweep',
                next_run_time=datetime.now(),
                coalesce=True,
                max_instances=1
            )

        self.scheduler.start()
        self.is_running = True
        logger.info(f"Reconciliation worker started (runs every {self.interval_minutes} minutes)")

    def stop(self):
        """Stop the scheduled reconciliation worker"""
        if self.is_running:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Reconciliation worker stopped")

    async def run_once(self) -> Optional[SyncStats]:
        """
        One scheduled pass.

        Returns:
            Sync counters, or None when the run was skipped or failed
        """
        if not await self.probe.check():
            logger.info("Primary store unreachable, skipping scheduled reconciliation")
            return None

        try:
            return await self.job.reconcile()
        except Exception as e:
            logger.error(f"Scheduled reconciliation failed: {e}", exc_info=True)
            return None

    async def run_completion_sweep(self) -> int:
        """
        Mark past appointments Completed.

        Returns:
            Number of appointments completed; 0 when the sweep failed
        """
        try:
            completed = await self.appointment_service.complete_past_appointments()
        except Exception as e:
            logger.error(f"Completion sweep failed: {e}", exc_info=True)
            return 0
        return len(completed)


# Global worker instance
_worker_instance: Optional[ReconciliationWorker] = None


def get_worker_instance(
    job: Optional[ReconciliationJob] = None,
    probe: Optional[ConnectivityProbe] = None,
    appointment_service: Optional[AppointmentService] = None
) -> Optional[ReconciliationWorker]:
    """Get or create global worker instance"""
    global _worker_instance
    if _worker_instance is None and job is not None and probe is not None:
        _worker_instance = ReconciliationWorker(job, probe, appointment_service=appointment_service)
    return _worker_instance


async def start_worker(
    job: ReconciliationJob,
    probe: ConnectivityProbe,
    appointment_service: Optional[AppointmentService] = None
):
    """Start the reconciliation worker"""
    worker = get_worker_instance(job, probe, appointment_service)
    worker.start()


async def stop_worker():
    """Stop the reconciliation worker"""
    global _worker_instance
    if _worker_instance is not None:
        _worker_instance.stop()
        _worker_instance = None
