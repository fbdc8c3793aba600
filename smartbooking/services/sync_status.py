"""
Persisted outcome of the last reconciliation run (db-status.json)
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from smartbooking.config import LOCAL_DATA_DIR
from smartbooking.models.sync import SyncStatus

logger = logging.getLogger(__name__)

STATUS_FILE_NAME = "db-status.json"


class SyncStatusStore:

    def __init__(self, data_dir: Path = LOCAL_DATA_DIR):
        self.status_file = Path(data_dir) / STATUS_FILE_NAME

    def read(self) -> Optional[SyncStatus]:
        """Last persisted status, or None if no run has been recorded."""
        if not self.status_file.exists():
            return None
        try:
            return SyncStatus.model_validate_json(self.status_file.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning(f"Could not read sync status from {self.status_file}: {e}")
            return None

    def write(self, status: SyncStatus) -> None:
        self.status_file.parent.mkdir(parents=True, exist_ok=True)
        self.status_file.write_text(json.dumps(status.model_dump(mode="json"), indent=2), encoding="utf-8")

    async def load(self) -> Optional[SyncStatus]:
        """read() off the event loop."""
        return await asyncio.to_thread(self.read)

    async def save(self, status: SyncStatus) -> None:
        """write() off the event loop."""
        await asyncio.to_thread(self.write, status)
