"""
Fallback Flat-File Store - server-side JSON store used while the primary is down

The whole dataset is one document in local-data.json:
    {users, customers, appointments, services, settings, last_updated}

Every write also leaves an immutable backup-<UTC timestamp>.json snapshot next
to it. Reads and writes go through a single asyncio.Lock so concurrent
read-modify-write cycles never interleave. The file I/O itself runs
in a worker thread.
"""

import asyncio
import json
import logging
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from smartbooking.config import FALLBACK_MAX_SNAPSHOTS, LOCAL_DATA_DIR
from smartbooking.exceptions import AppointmentNotFoundError, StoreInitializationError
from smartbooking.models.appointment import Appointment
from smartbooking.models.settings import BusinessSettings
from smartbooking.utils.time_utils import utc_now

logger = logging.getLogger(__name__)

DATA_FILE_NAME = "local-data.json"
SNAPSHOT_PREFIX = "backup-"

COLLECTIONS = ("users", "customers", "appointments", "services")


def _empty_document() -> Dict[str, Any]:
    document: Dict[str, Any] = {name: [] for name in COLLECTIONS}
    document["settings"] = None
    document["last_updated"] = utc_now().isoformat()
    return document


class FallbackStore:
    """JSON flat-file appointment store with write snapshots."""

    def __init__(self, data_dir: Path = LOCAL_DATA_DIR, max_snapshots: Optional[int] = FALLBACK_MAX_SNAPSHOTS):
        self.data_dir = Path(data_dir)
        self.data_file = self.data_dir / DATA_FILE_NAME
        self.max_snapshots = max_snapshots
        self._lock = asyncio.Lock()
        self._initialized = False

    @property
    def is_available(self) -> bool:
        return self._initialized

    def _open(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        if not self.data_file.exists():
            self._write(_empty_document())
            logger.info(f"Created fallback data file at {self.data_file}")
        else:
            self._read()

    async def initialize(self) -> None:
        """Create the data directory and file, repairing a damaged structure."""
        async with self._lock:
            try:
                await asyncio.to_thread(self._open)
            except (OSError, ValueError) as e:
                self._initialized = False
                logger.error(f"Failed to open fallback store at {self.data_file}: {e}")
                raise StoreInitializationError(f"Failed to open fallback store: {e}") from e

        self._initialized = True
        logger.info(f"Fallback store ready at {self.data_file}")

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise StoreInitializationError()

    async def _mutate(self, change: Callable[[Dict[str, Any]], Any]) -> Any:
        """
        Read-modify-write the data document under the store lock.

        File I/O runs in a worker thread; `change` edits the document in place
        and may raise to abandon the write.
        """
        self._require_initialized()

        def _apply():
            document = self._read()
            result = change(document)
            self._write(document)
            return result

        async with self._lock:
            return await asyncio.to_thread(_apply)

    def _read(self) -> Dict[str, Any]:
        """Load the data document; missing or non-list collections are repaired on disk."""
        with open(self.data_file, "r", encoding="utf-8") as f:
            document = json.load(f)

        if not isinstance(document, dict):
            raise ValueError("fallback data file does not hold a JSON object")

        repaired = False
        for name in COLLECTIONS:
            if not isinstance(document.get(name), list):
                logger.warning(f"Repairing fallback collection '{name}'")
                document[name] = []
                repaired = True
        if "settings" not in document:
            document["settings"] = None
            repaired = True

        if repaired:
            self._write(document)
        return document

    def _write(self, document: Dict[str, Any]) -> None:
        document["last_updated"] = utc_now().isoformat()
        payload = json.dumps(document, indent=2)

        tmp_file = self.data_file.with_suffix(".tmp")
        tmp_file.write_text(payload, encoding="utf-8")
        tmp_file.replace(self.data_file)

        self._write_snapshot(payload)

    def _write_snapshot(self, payload: str) -> None:
        stamp = utc_now().isoformat(timespec="microseconds").replace(":", "-").replace("+00-00", "Z")
        snapshot = self.data_dir / f"{SNAPSHOT_PREFIX}{stamp}.json"
        counter = 1
        while snapshot.exists():
            snapshot = self.data_dir / f"{SNAPSHOT_PREFIX}{stamp}-{counter}.json"
            counter += 1
        snapshot.write_text(payload, encoding="utf-8")

        if self.max_snapshots is not None:
            self._prune_snapshots()

    def _prune_snapshots(self) -> None:
        snapshots = self.list_snapshots()
        for old in snapshots[: max(len(snapshots) - self.max_snapshots, 0)]:
            try:
                old.unlink()
                logger.debug(f"Deleted old snapshot {old.name}")
            except OSError as e:
                logger.error(f"Failed to delete snapshot {old.name}: {e}")

    def list_snapshots(self) -> List[Path]:
        """Snapshot files, oldest first."""
        if not self.data_dir.exists():
            return []
        return sorted(
            (p for p in self.data_dir.glob(f"{SNAPSHOT_PREFIX}*.json")),
            key=lambda p: (p.stat().st_mtime_ns, p.name),
        )

    def snapshot_count(self) -> int:
        return len(self.list_snapshots())

    async def get_data(self) -> Dict[str, Any]:
        """The raw data document."""
        self._require_initialized()
        async with self._lock:
            return await asyncio.to_thread(self._read)

    async def last_synced_with_primary(self) -> Optional[str]:
        return (await self.get_data()).get("last_synced_with_primary")

    # Appointment store surface

    async def list_appointments(self) -> List[Appointment]:
        data = await self.get_data()
        return [Appointment.from_document(row) for row in data["appointments"]]

    async def get_appointment(self, appointment_id: str) -> Appointment:
        for appointment in await self.list_appointments():
            if appointment.id == appointment_id:
                return appointment
        raise AppointmentNotFoundError(appointment_id)

    async def find_by_date(self, day: date) -> List[Appointment]:
        return [a for a in await self.list_appointments() if a.date == day]

    async def create_appointment(self, appointment: Appointment) -> Appointment:
        row = appointment.to_document()

        def change(document):
            document["appointments"] = [r for r in document["appointments"] if r.get("id") != appointment.id]
            document["appointments"].append(row)

        await self._mutate(change)
        logger.debug(f"Stored appointment {appointment.id} in fallback store")
        return Appointment.from_document(row)

    async def update_appointment(self, appointment: Appointment) -> Appointment:
        row = appointment.to_document()

        def change(document):
            rows = document["appointments"]
            for index, existing in enumerate(rows):
                if existing.get("id") == appointment.id:
                    rows[index] = row
                    return
            raise AppointmentNotFoundError(appointment.id)

        await self._mutate(change)
        logger.debug(f"Updated appointment {appointment.id} in fallback store")
        return Appointment.from_document(row)

    async def delete_appointment(self, appointment_id: str) -> None:
        def change(document):
            rows = document["appointments"]
            remaining = [row for row in rows if row.get("id") != appointment_id]
            if len(remaining) == len(rows):
                raise AppointmentNotFoundError(appointment_id)
            document["appointments"] = remaining

        await self._mutate(change)
        logger.debug(f"Deleted appointment {appointment_id} from fallback store")

    async def replace_appointments(
        self,
        records: Iterable[Appointment],
        pulled: Iterable[Appointment] = (),
        confirmed_ids: Iterable[str] = ()
    ) -> None:
        """
        Merge the primary's appointment set into the file after a pull.

        A stored row gives way to the primary copy (or is dropped) only while
        it still equals its copy in `pulled` and its push is listed in
        `confirmed_ids`. Rows that failed to push or were written after the
        pull stay for the next pass.
        """
        before = {record.id: record.to_document() for record in pulled}
        confirmed = set(confirmed_ids)
        remote = [record.to_document() for record in records]

        def change(document):
            merged: Dict[str, Dict[str, Any]] = {}
            for row in document["appointments"]:
                appointment_id = row.get("id")
                unchanged = before.get(appointment_id) == Appointment.from_document(row).to_document()
                if appointment_id in confirmed and unchanged:
                    continue
                merged[appointment_id] = row
            kept = len(merged)
            for row in remote:
                merged.setdefault(row["id"], row)

            document["appointments"] = list(merged.values())
            document["last_synced_with_primary"] = utc_now().isoformat()
            return kept, len(merged)

        kept, total = await self._mutate(change)
        logger.info(f"Fallback store appointments merged with primary: {total} records, {kept} kept for the next pass")

    async def get_settings(self) -> Optional[BusinessSettings]:
        data = await self.get_data()
        if not data.get("settings"):
            return None
        return BusinessSettings.model_validate(data["settings"])

    async def save_settings(self, settings: BusinessSettings) -> BusinessSettings:
        payload = settings.model_dump(mode="json")

        def change(document):
            document["settings"] = payload

        await self._mutate(change)
        return settings
