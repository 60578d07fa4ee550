"""Durable queue of writes that the remote backend has not confirmed yet.

One queue exists per entity type, stored in the local database under the type's
pending key. Entries keep their call order and are uploaded oldest first.
"""
import dataclasses
import enum
import logging
import sqlite3
from typing import Any, Dict, List

from .database import DatabaseAPI
from .models import EntityType, Record, RecordId, record_from_dict
from .signals import signals
from ..status import status


class PendingOp(enum.StrEnum):
    Insert = 'insert'
    Update = 'update'
    Delete = 'delete'


@dataclasses.dataclass
class PendingEntry:
    """A queued write and the full record it carries.

    Insert entries carry the record under its temporary id. Update and delete entries
    carry the id assigned by the remote backend.
    """
    op: PendingOp
    record: Record

    @property
    def record_id(self) -> RecordId:
        return self.record.id

    def to_dict(self) -> Dict[str, Any]:
        return {'op': self.op.value, 'record': self.record.to_dict()}

    @classmethod
    def from_dict(cls, entity_type: EntityType, data: Dict[str, Any]) -> 'PendingEntry':
        return cls(PendingOp(data['op']), record_from_dict(entity_type, data['record']))


def _pending_key(entity_type: EntityType) -> str:
    key = entity_type.pending_key
    if key is None:
        raise ValueError(f'{entity_type.value} has no pending queue.')
    return key


class PendingQueue:
    """Per entity type queue of :class:`PendingEntry` items backed by :class:`DatabaseAPI`."""

    def __init__(self, database: DatabaseAPI) -> None:
        self.database = database

    def _read(self, entity_type: EntityType) -> List[PendingEntry]:
        key = _pending_key(entity_type)
        rows = self.database.get_value(key, [])
        return self._parse(entity_type, rows)

    @staticmethod
    def _parse(entity_type: EntityType, rows: Any) -> List[PendingEntry]:
        if not isinstance(rows, list):
            logging.error(f'Pending {entity_type.value} is not a list, ignoring it.')
            return []
        entries = []
        for row in rows:
            try:
                entries.append(PendingEntry.from_dict(entity_type, row))
            except (KeyError, ValueError, TypeError) as ex:
                logging.error(f'Dropping malformed pending {entity_type.value} entry {row!r}: {ex}')
        return entries

    def _write(self, entity_type: EntityType, entries: List[PendingEntry]) -> None:
        key = _pending_key(entity_type)
        try:
            if entries:
                self.database.set_value(key, [entry.to_dict() for entry in entries])
            else:
                self.database.delete_value(key)
        except sqlite3.Error as ex:
            raise status.LocalStoreException(f'Could not save pending {entity_type.value}: {ex}') from ex

    def enqueue(self, entity_type: EntityType, entry: PendingEntry) -> None:
        """Append an entry to the end of the queue.

        Raises:
            ValueError: If the entity type has no pending queue.
        """
        entries = self._read(entity_type)
        entries.append(entry)
        self._write(entity_type, entries)
        logging.info(
            f'Queued {entry.op.value} of {entity_type.value} "{entry.record_id}" ({len(entries)} pending).'
        )
        signals.recordQueued.emit(entity_type.value, str(entry.record_id))

    def drain_all(self, entity_type: EntityType) -> List[PendingEntry]:
        """Return every queued entry, oldest first, and empty the queue in one transaction."""
        key = _pending_key(entity_type)
        try:
            rows = self.database.take_value(key, [])
        except sqlite3.Error as ex:
            raise status.LocalStoreException(f'Could not drain pending {entity_type.value}: {ex}') from ex
        entries = self._parse(entity_type, rows)
        if entries:
            logging.debug(f'Drained {len(entries)} pending {entity_type.value} entries.')
        return entries

    def peek(self, entity_type: EntityType) -> List[PendingEntry]:
        """Return the queued entries without removing them."""
        return self._read(entity_type)

    def count(self, entity_type: EntityType) -> int:
        return len(self._read(entity_type))

    def discard(self, entity_type: EntityType, record_id: RecordId) -> int:
        """Remove every entry for ``record_id``.

        Returns:
            int: The number of entries removed.
        """
        entries = self._read(entity_type)
        kept = [entry for entry in entries if entry.record_id != record_id]
        removed = len(entries) - len(kept)
        if removed:
            self._write(entity_type, kept)
            logging.debug(f'Discarded {removed} pending {entity_type.value} entries for "{record_id}".')
        return removed

    def replace(self, entity_type: EntityType, record: Record) -> int:
        """Swap in ``record`` as the payload of every entry with the same id.

        Returns:
            int: The number of entries rewritten.
        """
        entries = self._read(entity_type)
        replaced = 0
        for entry in entries:
            if entry.record_id == record.id:
                entry.record = record
                replaced += 1
        if replaced:
            self._write(entity_type, entries)
        return replaced

    def remap_field(self, entity_type: EntityType, field: str, old: Any, new: Any) -> int:
        """Rewrite ``field`` from ``old`` to ``new`` in every queued record.

        Returns:
            int: The number of entries rewritten.
        """
        entries = self._read(entity_type)
        remapped = 0
        for entry in entries:
            if getattr(entry.record, field, None) == old:
                entry.record = dataclasses.replace(entry.record, **{field: new})
                remapped += 1
        if remapped:
            self._write(entity_type, entries)
            logging.debug(f'Remapped {field} "{old}" to "{new}" in {remapped} pending {entity_type.value} entries.')
        return remapped

    def clear(self, entity_type: EntityType) -> None:
        self._write(entity_type, [])
        logging.debug(f'Cleared pending {entity_type.value}.')
