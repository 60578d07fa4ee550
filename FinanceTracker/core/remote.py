"""Remote backend contract and the per-collection facade used by services and adapters.

A backend stores rows (plain dicts) in named collections. Every call is a coroutine
and may fail with :class:`~FinanceTracker.status.status.TransientRemoteException`
(retry later) or :class:`~FinanceTracker.status.status.PermanentRemoteException`
(the backend refused the request).

:class:`MemoryBackend` keeps everything in process. It backs local-only sessions and
is the test double of the hosted backend.
"""
import abc
import copy
import datetime
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional

from ..status import status

ChangeCallback = Callable[[str, str, Dict[str, Any]], None]
Unsubscribe = Callable[[], None]


def _noop() -> None:
    pass


class RemoteBackend(abc.ABC):
    """Collection oriented contract every remote backend implements."""

    @abc.abstractmethod
    async def list(self, collection: str, order_by: str = 'created_at',
                   descending: bool = False) -> List[Dict[str, Any]]:
        """Return every row of a collection ordered by ``order_by``."""

    @abc.abstractmethod
    async def insert(self, collection: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """Store a row without an id and return it with the id and creation stamp assigned."""

    @abc.abstractmethod
    async def update(self, collection: str, row_id: str, patch: Dict[str, Any]) -> None:
        """Merge ``patch`` into the row with ``row_id``."""

    @abc.abstractmethod
    async def delete(self, collection: str, row_id: str) -> None:
        """Remove the row with ``row_id``."""

    @abc.abstractmethod
    async def delete_where(self, collection: str, field: str, value: Any) -> None:
        """Remove every row whose ``field`` equals ``value``."""

    @abc.abstractmethod
    async def clear(self, collection: str) -> None:
        """Remove every row of a collection."""

    def subscribe(self, collection: str, callback: ChangeCallback) -> Unsubscribe:
        """Register a push notification callback.

        Backends without push support keep this default, which registers nothing.
        """
        return _noop


class MemoryBackend(RemoteBackend):
    """In-process backend.

    Ids are random uuid4 strings and ``created_at`` stamps are strictly increasing.
    Setting :attr:`available` to False makes every call fail with a transient error,
    the way an unreachable network does.

    Attributes:
        available (bool): Whether calls succeed.
        calls (list[tuple[str, str]]): ``(method, collection)`` of every call made.
    """

    def __init__(self) -> None:
        self.available: bool = True
        self.calls: List[tuple] = []
        self._collections: Dict[str, List[Dict[str, Any]]] = {}
        self._subscribers: Dict[str, List[ChangeCallback]] = {}
        self._last_stamp: Optional[datetime.datetime] = None

    def _check(self, method: str, collection: str) -> None:
        self.calls.append((method, collection))
        if not self.available:
            raise status.TransientRemoteException(f'{method} on "{collection}" failed: backend is offline.')

    def _stamp(self) -> str:
        stamp = datetime.datetime.now(datetime.timezone.utc)
        if self._last_stamp is not None and stamp <= self._last_stamp:
            stamp = self._last_stamp + datetime.timedelta(microseconds=1)
        self._last_stamp = stamp
        return stamp.isoformat()

    def _notify(self, collection: str, event: str, row: Dict[str, Any]) -> None:
        for callback in list(self._subscribers.get(collection, [])):
            callback(collection, event, copy.deepcopy(row))

    def rows(self, collection: str) -> List[Dict[str, Any]]:
        """Return a copy of the stored rows in insertion order."""
        return copy.deepcopy(self._collections.get(collection, []))

    async def list(self, collection, order_by='created_at', descending=False):
        self._check('list', collection)
        rows = self.rows(collection)
        return sorted(rows, key=lambda r: str(r.get(order_by) or ''), reverse=descending)

    async def insert(self, collection, row):
        self._check('insert', collection)
        stored = copy.deepcopy(row)
        stored.pop('id', None)
        stored['id'] = str(uuid.uuid4())
        stored['created_at'] = self._stamp()
        self._collections.setdefault(collection, []).append(stored)
        logging.debug(f'Inserted "{stored["id"]}" into memory collection "{collection}".')
        self._notify(collection, 'insert', stored)
        return copy.deepcopy(stored)

    async def update(self, collection, row_id, patch):
        self._check('update', collection)
        for row in self._collections.get(collection, []):
            if row['id'] == row_id:
                row.update({k: copy.deepcopy(v) for k, v in patch.items() if k != 'id'})
                self._notify(collection, 'update', row)
                return
        logging.debug(f'Update of missing row "{row_id}" in "{collection}" ignored.')

    async def delete(self, collection, row_id):
        self._check('delete', collection)
        rows = self._collections.get(collection, [])
        for row in rows:
            if row['id'] == row_id:
                rows.remove(row)
                self._notify(collection, 'delete', row)
                return
        logging.debug(f'Delete of missing row "{row_id}" in "{collection}" ignored.')

    async def delete_where(self, collection, field, value):
        self._check('delete_where', collection)
        rows = self._collections.get(collection, [])
        removed = [row for row in rows if row.get(field) == value]
        self._collections[collection] = [row for row in rows if row.get(field) != value]
        for row in removed:
            self._notify(collection, 'delete', row)

    async def clear(self, collection):
        self._check('clear', collection)
        removed = self._collections.pop(collection, [])
        for row in removed:
            self._notify(collection, 'delete', row)

    def subscribe(self, collection, callback):
        self._subscribers.setdefault(collection, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(collection, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe


class RemoteStore:
    """One collection of a :class:`RemoteBackend`.

    Args:
        backend (RemoteBackend): The backend, None for a session without remote.
        collection (str): Collection name, e.g. ``transactions``.
    """

    def __init__(self, backend: Optional[RemoteBackend], collection: str) -> None:
        self.backend = backend
        self.collection = collection

    @property
    def backend_or_raise(self) -> RemoteBackend:
        if self.backend is None:
            raise status.BackendUnavailableException('No remote backend is configured.')
        return self.backend

    async def list(self, order_by: str = 'created_at', descending: bool = False) -> List[Dict[str, Any]]:
        return await self.backend_or_raise.list(self.collection, order_by=order_by, descending=descending)

    async def insert(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.backend_or_raise.insert(self.collection, payload)

    async def update(self, row_id: str, patch: Dict[str, Any]) -> None:
        await self.backend_or_raise.update(self.collection, row_id, patch)

    async def delete(self, row_id: str) -> None:
        await self.backend_or_raise.delete(self.collection, row_id)

    async def delete_where(self, field: str, value: Any) -> None:
        await self.backend_or_raise.delete_where(self.collection, field, value)

    async def clear(self) -> None:
        await self.backend_or_raise.clear(self.collection)

    async def upsert_singleton(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Write ``fields`` to the collection's only row, creating the row on first use.

        Returns:
            The row as stored.
        """
        rows = await self.list()
        if rows:
            row = rows[0]
            await self.update(row['id'], fields)
            row.update(fields)
            return row
        return await self.insert(fields)

    def subscribe_to_changes(self, callback: ChangeCallback) -> Unsubscribe:
        if self.backend is None:
            return _noop
        return self.backend.subscribe(self.collection, callback)
