"""Shared write path of the entity services.

Every write lands in the local store first. The remote call that follows is best
effort: when it fails, or when the session is offline or local-only, the write is put
on the pending queue and the orchestrator uploads it on the next sync pass.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Set

from ..core.adapters import settle_insert
from ..core.connectivity import ConnectivityMonitor
from ..core.database import LocalStore
from ..core.models import (
    EntityType,
    RECORD_TYPES,
    Record,
    TemporaryIdFactory,
    parse_id,
    records_from_dicts,
)
from ..core.queue import PendingEntry, PendingOp, PendingQueue
from ..core.remote import RemoteStore
from ..core.signals import signals
from ..status import status


class EntityService:
    """Local-first create, edit and delete of one entity type.

    Args:
        store (LocalStore): Local record lists.
        queue (PendingQueue): Pending writes.
        remote (RemoteStore): The remote collection of this entity type.
        monitor (ConnectivityMonitor): Tells whether remote calls should be attempted.
        id_factory (TemporaryIdFactory): Source of temporary ids, shared across services.

    Attributes:
        local_only (bool): Set when the backend was unavailable for the initial load.
            Writes then skip the remote call and queue directly.
    """
    entity_type: EntityType
    order_by: str = 'created_at'
    descending: bool = False

    def __init__(
            self,
            store: LocalStore,
            queue: PendingQueue,
            remote: RemoteStore,
            monitor: ConnectivityMonitor,
            id_factory: Optional[TemporaryIdFactory] = None,
    ) -> None:
        self.store = store
        self.queue = queue
        self.remote = remote
        self.monitor = monitor
        self.id_factory = id_factory or TemporaryIdFactory()
        self.local_only: bool = False
        self._tasks: Set[asyncio.Task] = set()

    @property
    def can_reach_remote(self) -> bool:
        return not self.local_only and self.remote.backend is not None and self.monitor.is_online

    def records(self) -> List[Record]:
        return self.store.load(self.entity_type)

    def get(self, record_id: Any) -> Record:
        """Return the record with ``record_id``.

        Raises:
            status.RecordNotFoundException: If no such record is stored.
        """
        record_id = parse_id(record_id)
        for record in self.records():
            if record.id == record_id:
                return record
        raise status.RecordNotFoundException(f'{self.entity_type.value} "{record_id}" does not exist.')

    def _save(self, records: List[Record]) -> None:
        self.store.save(self.entity_type, records)
        signals.recordsChanged.emit(self.entity_type.value)

    def _enqueue(self, op: PendingOp, record: Record) -> None:
        self.queue.enqueue(self.entity_type, PendingEntry(op, record))

    async def load(self) -> List[Record]:
        """Return the records, refreshed from the remote collection when possible.

        The remote list replaces the local one only while nothing is queued, otherwise
        the local records are kept until the next sync pass. A backend that cannot be
        reached at all switches the service to local-only mode.
        """
        if not self.can_reach_remote:
            return self.records()
        if self.queue_count():
            logging.debug(f'Pending {self.entity_type.value} writes exist, loading from the local store.')
            return self.records()

        try:
            rows = await self.remote.list(order_by=self.order_by, descending=self.descending)
        except status.BackendUnavailableException:
            logging.warning(f'Remote backend unavailable, {self.entity_type.value} run in local-only mode.')
            self.local_only = True
            return self.records()
        except status.RemoteException as ex:
            logging.warning(f'Could not load remote {self.entity_type.value}, using local records: {ex}')
            return self.records()

        records = records_from_dicts(self.entity_type, rows)
        self._save(records)
        logging.debug(f'Loaded {len(records)} {self.entity_type.value} from the remote backend.')
        return records

    async def refresh(self) -> List[Record]:
        return await self.load()

    def queue_count(self) -> int:
        if self.entity_type.pending_key is None:
            return 0
        return self.queue.count(self.entity_type)

    def subscribe_remote(self) -> Callable[[], None]:
        """Reload the records whenever the remote collection pushes a change.

        Returns:
            A function that removes the subscription.
        """
        def on_change(collection: str, event: str, row: Dict[str, Any]) -> None:
            logging.debug(f'Remote {event} in "{collection}", reloading.')
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                return
            task = loop.create_task(self.load())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        return self.remote.subscribe_to_changes(on_change)

    async def _create(self, record: Record, prepend: bool = False) -> Record:
        """Store a new record under its temporary id and upload it or queue it.

        Returns:
            The stored record, carrying the remote id when the upload succeeded.
        """
        records = self.records()
        if prepend:
            records.insert(0, record)
        else:
            records.append(record)
        self._save(records)
        return await self._upload_new(record)

    async def _upload_new(self, record: Record) -> Record:
        """Insert a locally stored record remotely, queueing it when that is not possible."""
        if not self.can_reach_remote:
            self._enqueue(PendingOp.Insert, record)
            return record

        try:
            row = await self.remote.insert(record.to_payload())
        except status.RemoteException:
            self._enqueue(PendingOp.Insert, record)
            return record

        server_record = RECORD_TYPES[self.entity_type].from_dict(row)
        stored = await settle_insert(self.store, self.queue, self.remote, self.entity_type, record, server_record)
        signals.recordsChanged.emit(self.entity_type.value)
        if stored is None:
            return record
        return stored

    async def _edit(self, record: Record) -> Record:
        """Replace the stored record with the same id and propagate the change."""
        records = self.records()
        for index, existing in enumerate(records):
            if existing.id == record.id:
                records[index] = record
                break
        else:
            raise status.RecordNotFoundException(f'{self.entity_type.value} "{record.id}" does not exist.')
        self._save(records)

        if record.id.is_temporary:
            # Not uploaded yet: the queued insert carries the edit, an insert in flight
            # picks it up once the remote id is known
            self.queue.replace(self.entity_type, record)
            return record

        if not self.can_reach_remote:
            self._enqueue(PendingOp.Update, record)
            return record
        try:
            await self.remote.update(str(record.id), record.to_payload())
        except status.RemoteException:
            self._enqueue(PendingOp.Update, record)
        return record

    async def _delete(self, record_id: Any) -> Record:
        """Remove a record locally, drop its queued writes and delete it remotely."""
        record_id = parse_id(record_id)
        records = self.records()
        remaining = [record for record in records if record.id != record_id]
        if len(remaining) == len(records):
            raise status.RecordNotFoundException(f'{self.entity_type.value} "{record_id}" does not exist.')
        deleted = next(record for record in records if record.id == record_id)
        self._save(remaining)

        if self.entity_type.pending_key is not None:
            self.queue.discard(self.entity_type, record_id)
        if record_id.is_temporary:
            return deleted

        await self._delete_remote(deleted)
        return deleted

    async def _delete_remote(self, record: Record) -> None:
        if not self.can_reach_remote:
            self._enqueue(PendingOp.Delete, record)
            return
        try:
            await self.remote.delete(str(record.id))
        except status.RemoteException:
            self._enqueue(PendingOp.Delete, record)
