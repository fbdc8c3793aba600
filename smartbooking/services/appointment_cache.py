"""
Appointment Cache - durable client-side appointment store backed by Redis

Layout:
- {prefix}:appointments          hash, appointment id -> JSON document
- {prefix}:appointments:by_date  sorted set, appointment id scored by date ordinal

Pending flags live on the cached documents:
- pending_sync: local change the backend has not confirmed yet
- pending_delete: tombstone, hidden from reads until the backend confirms the delete
"""

import json
import logging
from datetime import date
from typing import Dict, Iterable, List, Optional, Set

from pydantic import ValidationError
from redis.exceptions import RedisError

from smartbooking.config import CACHE_PREFIX
from smartbooking.exceptions import CacheInitializationError
from smartbooking.models.appointment import Appointment

logger = logging.getLogger(__name__)


class AppointmentCache:
    """
    Redis-backed cache of appointments with pending-operation tracking.

    Every operation raises CacheInitializationError until initialize() has
    succeeded. Callers are expected to retry initialize().
    """

    def __init__(self, redis_client, prefix: str = CACHE_PREFIX):
        self.redis = redis_client
        self.hash_key = f"{prefix}:appointments"
        self.index_key = f"{prefix}:appointments:by_date"
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Open the cache and verify every stored document parses."""
        try:
            await self.redis.ping()
            raw = await self.redis.hgetall(self.hash_key)
        except RedisError as e:
            self._initialized = False
            logger.error(f"Appointment cache unavailable: {e}")
            raise CacheInitializationError(f"Appointment cache unavailable: {e}") from e

        for appointment_id, document in raw.items():
            self._decode(appointment_id, document)

        self._initialized = True
        logger.info(f"Appointment cache initialized with {len(raw)} records")

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise CacheInitializationError()

    def _decode(self, appointment_id: str, document: str) -> Appointment:
        try:
            return Appointment.model_validate(json.loads(document))
        except (ValueError, ValidationError) as e:
            self._initialized = False
            logger.error(f"Corrupt cache document for appointment {appointment_id}: {e}")
            raise CacheInitializationError(f"Corrupt cache document for {appointment_id}") from e

    async def _call(self, coro):
        try:
            return await coro
        except RedisError as e:
            logger.error(f"Appointment cache operation failed: {e}")
            raise CacheInitializationError(f"Appointment cache unavailable: {e}") from e

    async def _load(self, appointment_id: str) -> Optional[Appointment]:
        document = await self._call(self.redis.hget(self.hash_key, appointment_id))
        if document is None:
            return None
        return self._decode(appointment_id, document)

    async def _store(self, appointment: Appointment) -> None:
        await self._call(self.redis.hset(self.hash_key, appointment.id, json.dumps(appointment.to_cache())))
        await self._call(self.redis.zadd(self.index_key, {appointment.id: appointment.date.toordinal()}))

    async def _load_all(self) -> List[Appointment]:
        raw: Dict[str, str] = await self._call(self.redis.hgetall(self.hash_key))
        return [self._decode(appointment_id, document) for appointment_id, document in raw.items()]

    async def get(self, appointment_id: str) -> Optional[Appointment]:
        """Return a live appointment; tombstones read as missing."""
        self._require_initialized()
        appointment = await self._load(appointment_id)
        if appointment is None or appointment.pending_delete:
            return None
        return appointment

    async def get_all(self, include_deleted: bool = False) -> List[Appointment]:
        """Live appointments; tombstones too when include_deleted is set."""
        self._require_initialized()
        return [a for a in await self._load_all() if include_deleted or not a.pending_delete]

    async def put(self, appointment: Appointment, local: bool = True) -> Appointment:
        """
        Upsert by id, overwriting the whole record.

        Args:
            appointment: Record to store
            local: True for client-originated changes (marked pending_sync),
                   False for records pulled from the backend (flags cleared)
        """
        self._require_initialized()
        if local:
            stored = appointment.model_copy(update={"pending_sync": True, "pending_delete": False})
        else:
            stored = appointment.model_copy(update={"pending_sync": False, "pending_delete": False})

        await self._store(stored)
        logger.debug(f"Cached appointment {stored.id} (local={local})")
        return stored

    async def delete(self, appointment_id: str, local: bool = True) -> None:
        """
        Delete an appointment.

        A local delete leaves a tombstone for reconciliation to push; a
        backend-confirmed delete removes the record outright.
        """
        self._require_initialized()
        if not local:
            await self.purge(appointment_id)
            return

        appointment = await self._load(appointment_id)
        if appointment is None:
            return

        await self._store(appointment.model_copy(update={"pending_delete": True}))
        logger.debug(f"Tombstoned appointment {appointment_id}")

    async def get_by_date_range(self, start: date, end: date) -> List[Appointment]:
        """Live appointments with start <= date <= end."""
        self._require_initialized()
        ids = await self._call(self.redis.zrangebyscore(self.index_key, start.toordinal(), end.toordinal()))
        if not ids:
            return []

        documents = await self._call(self.redis.hmget(self.hash_key, ids))
        results = []
        for appointment_id, document in zip(ids, documents):
            if document is None:
                continue
            appointment = self._decode(appointment_id, document)
            if not appointment.pending_delete:
                results.append(appointment)
        return sorted(results, key=lambda a: (a.date, a.start_minutes))

    async def get_pending(self) -> List[Appointment]:
        """Records with pending_sync or pending_delete set, tombstones included."""
        self._require_initialized()
        return [a for a in await self._load_all() if a.pending_sync or a.pending_delete]

    async def purge(self, appointment_id: str) -> None:
        self._require_initialized()
        await self._call(self.redis.hdel(self.hash_key, appointment_id))
        await self._call(self.redis.zrem(self.index_key, appointment_id))

    async def replace_all(
        self,
        records: Iterable[Appointment],
        pulled: Iterable[Appointment] = (),
        confirmed_ids: Iterable[str] = ()
    ) -> None:
        """
        Overwrite the cache with backend records.

        A cached record is replaced or purged only while it still equals its
        copy in `pulled` (the cache as read at the start of the pass) and is
        either not pending or listed in `confirmed_ids`. Records written after
        the pull, and pending records whose push failed, are left as they are
        for the next reconciliation pass.
        """
        self._require_initialized()
        before = {record.id: record for record in pulled}
        confirmed = set(confirmed_ids)
        remote = {record.id: record for record in records}
        cached_ids = await self._call(self.redis.hkeys(self.hash_key))

        replaced = purged = kept = 0
        for appointment_id in sorted(set(cached_ids) | set(remote)):
            cached = await self._load(appointment_id)
            if cached is not None and not self._settled(cached, before, confirmed):
                kept += 1
                continue

            if appointment_id in remote:
                await self._store(
                    remote[appointment_id].model_copy(update={"pending_sync": False, "pending_delete": False})
                )
                replaced += 1
            elif cached is not None:
                await self.purge(appointment_id)
                purged += 1

        logger.info(
            f"Appointment cache refreshed from backend: {replaced} replaced, "
            f"{purged} purged, {kept} kept for the next pass"
        )

    @staticmethod
    def _settled(cached: Appointment, before: Dict[str, Appointment], confirmed: Set[str]) -> bool:
        """True if the cached copy is unchanged since the pull and nothing local is outstanding."""
        previous = before.get(cached.id)
        if previous is None or previous.to_cache() != cached.to_cache():
            return False
        return not (cached.pending_sync or cached.pending_delete) or cached.id in confirmed

    async def clear(self) -> None:
        self._require_initialized()
        await self._call(self.redis.delete(self.hash_key, self.index_key))
