"""Per entity type upload and download behavior used by the sync orchestrator.

A sync pass for one entity type drains its pending queue, uploads the entries oldest
first and then replaces the local list with the remote list. Entries that fail to
upload go back to the queue. The download step is remote-wins: whatever the remote
returns overwrites the local list.
"""
import dataclasses
import datetime
import logging
from typing import List, Optional, Type

from .database import LocalStore
from .models import (
    EntityType,
    RECORD_TYPES,
    Record,
    RecordId,
    Transaction,
    records_from_dicts,
)
from .queue import PendingEntry, PendingOp, PendingQueue
from .remote import RemoteStore
from .signals import signals
from ..status import status


async def settle_insert(
        store: LocalStore,
        queue: PendingQueue,
        remote: RemoteStore,
        entity_type: EntityType,
        uploaded: Record,
        server_record: Record,
) -> Optional[Record]:
    """Put an inserted record in place of the temporary record it was uploaded from.

    The local record may change while the insert is running. When it was deleted, the
    inserted row is deleted remotely as well. When it was edited, the local fields are
    kept under the remote id and sent as an update. A failed remote call is queued.

    Returns:
        The stored record, or None when the record was deleted during the upload.
    """
    records = store.load(entity_type)
    index = next((i for i, record in enumerate(records) if record.id == uploaded.id), None)

    if index is None:
        logging.debug(f'{entity_type.value} "{uploaded.id}" was deleted during upload, removing it remotely.')
        entry = PendingEntry(PendingOp.Delete, server_record)
    else:
        local = records[index]
        stored = server_record
        if local.to_payload() != uploaded.to_payload():
            stored = dataclasses.replace(local, id=server_record.id, created_at=server_record.created_at)
        records[index] = stored
        store.save(entity_type, records)
        if stored is server_record:
            return stored
        logging.debug(f'{entity_type.value} "{uploaded.id}" was edited during upload, updating "{stored.id}".')
        entry = PendingEntry(PendingOp.Update, stored)

    try:
        if entry.op == PendingOp.Delete:
            await remote.delete(str(entry.record_id))
        else:
            await remote.update(str(entry.record_id), entry.record.to_payload())
    except status.RemoteException as ex:
        logging.warning(f'Could not {entry.op.value} {entity_type.value} "{entry.record_id}", queueing it: {ex}')
        queue.enqueue(entity_type, entry)
    return None if index is None else entry.record


class EntitySyncAdapter:
    """Sync behavior of one entity type.

    Attributes:
        entity_type (EntityType): The synced entity type.
        order_by (str): Remote field the download is ordered by.
        descending (bool): Download order direction.
        remote (RemoteStore): The collection facade.
    """
    entity_type: EntityType
    order_by: str = 'created_at'
    descending: bool = False

    def __init__(self, remote: RemoteStore) -> None:
        self.remote = remote

    @property
    def record_type(self) -> Type[Record]:
        return RECORD_TYPES[self.entity_type]

    async def sync(self, store: LocalStore, queue: PendingQueue) -> None:
        await self.upload(store, queue)
        await self.download(store)

    async def upload(self, store: LocalStore, queue: PendingQueue) -> None:
        entries = queue.drain_all(self.entity_type)
        if not entries:
            return

        logging.debug(f'Uploading {len(entries)} pending {self.entity_type.value} entries.')
        failed: List[PendingEntry] = []
        processed = 0
        try:
            for entry in entries:
                try:
                    await self.upload_entry(store, queue, entry)
                except status.PermanentRemoteException as ex:
                    logging.error(
                        f'Remote rejected {entry.op.value} of {self.entity_type.value} "{entry.record_id}", '
                        f'keeping it queued: {ex}'
                    )
                    failed.append(entry)
                except status.RemoteException as ex:
                    logging.warning(
                        f'Could not upload {entry.op.value} of {self.entity_type.value} "{entry.record_id}": {ex}'
                    )
                    failed.append(entry)
                processed += 1
        finally:
            # Failed entries and any entry not reached go back to the queue
            for entry in failed + entries[processed:]:
                queue.enqueue(self.entity_type, entry)

        uploaded = len(entries) - len(failed)
        logging.info(f'Uploaded {uploaded}/{len(entries)} pending {self.entity_type.value} entries.')

    async def upload_entry(self, store: LocalStore, queue: PendingQueue, entry: PendingEntry) -> None:
        record = entry.record
        if entry.op == PendingOp.Insert:
            row = await self.remote.insert(record.to_payload())
            server_record = self.record_type.from_dict(row)
            stored = await settle_insert(store, queue, self.remote, self.entity_type, record, server_record)
            if stored is not None:
                await self.on_id_replaced(store, queue, record.id, stored.id)
        elif entry.op == PendingOp.Update:
            await self.remote.update(str(record.id), record.to_payload())
        elif entry.op == PendingOp.Delete:
            await self.remote.delete(str(record.id))

    async def on_id_replaced(self, store: LocalStore, queue: PendingQueue, old_id: RecordId,
                             new_id: RecordId) -> None:
        """Called after a temporary id was replaced by the remote id."""

    async def download(self, store: LocalStore) -> None:
        rows = await self.remote.list(order_by=self.order_by, descending=self.descending)
        records = records_from_dicts(self.entity_type, rows)
        store.save(self.entity_type, records)
        logging.debug(f'Downloaded {len(records)} {self.entity_type.value} records.')
        signals.recordsChanged.emit(self.entity_type.value)


class TransactionSyncAdapter(EntitySyncAdapter):
    entity_type = EntityType.Transactions
    descending = True


class WalletSyncAdapter(EntitySyncAdapter):
    """Wallet sync. A replaced wallet id is carried over to every transaction referencing it.

    Args:
        remote (RemoteStore): The wallets collection.
        transactions_remote (RemoteStore): The transactions collection, used to fix
            transactions that were uploaded while their wallet still had a temporary id.
    """
    entity_type = EntityType.Wallets

    def __init__(self, remote: RemoteStore, transactions_remote: Optional[RemoteStore] = None) -> None:
        super().__init__(remote)
        self.transactions_remote = transactions_remote

    async def on_id_replaced(self, store, queue, old_id, new_id):
        old, new = str(old_id), str(new_id)
        queue.remap_field(EntityType.Transactions, 'wallet_id', old, new)

        transactions = store.load(EntityType.Transactions)
        changed: List[Transaction] = []
        for transaction in transactions:
            if transaction.wallet_id == old:
                transaction.wallet_id = new
                changed.append(transaction)
        if not changed:
            return

        store.save(EntityType.Transactions, transactions)
        logging.debug(f'Moved {len(changed)} transaction(s) from wallet "{old}" to "{new}".')

        for transaction in changed:
            if transaction.id.is_temporary or self.transactions_remote is None:
                continue
            try:
                await self.transactions_remote.update(str(transaction.id), {'wallet_id': new})
            except status.RemoteException:
                queue.enqueue(EntityType.Transactions, PendingEntry(PendingOp.Update, transaction))


class CustomCategorySyncAdapter(EntitySyncAdapter):
    entity_type = EntityType.CustomCategories


class DashboardSettingsSyncAdapter(EntitySyncAdapter):
    """Dashboard layout sync.

    The layout has no pending queue: the local card list is pushed to the singleton
    row on every pass. When the push fails the download is skipped so the unsent
    layout is not overwritten.
    """
    entity_type = EntityType.DashboardSettings

    async def sync(self, store: LocalStore, queue: PendingQueue) -> None:
        if await self.upload(store, queue):
            await self.download(store)

    async def upload(self, store: LocalStore, queue: PendingQueue) -> bool:
        cards = store.load(self.entity_type)
        if not cards:
            return True
        try:
            await self.remote.upsert_singleton({
                'cards': [card.to_dict() for card in cards],
                'updated_at': datetime.datetime.now(datetime.timezone.utc).isoformat(),
            })
        except status.RemoteException as ex:
            logging.warning(f'Could not upload the dashboard layout: {ex}')
            return False
        logging.debug(f'Uploaded dashboard layout with {len(cards)} cards.')
        return True

    async def download(self, store: LocalStore) -> None:
        rows = await self.remote.list()
        if not rows or not rows[0].get('cards'):
            logging.debug('No remote dashboard layout stored.')
            return
        cards = records_from_dicts(self.entity_type, rows[0]['cards'])
        store.save(self.entity_type, cards)
        signals.recordsChanged.emit(self.entity_type.value)


def default_adapters(backend, transactions_remote: Optional[RemoteStore] = None) -> List[EntitySyncAdapter]:
    """Build the adapters in sync order: wallets, transactions, custom categories, dashboard layout."""
    transactions = transactions_remote or RemoteStore(backend, EntityType.Transactions.collection)
    return [
        WalletSyncAdapter(RemoteStore(backend, EntityType.Wallets.collection), transactions),
        TransactionSyncAdapter(transactions),
        CustomCategorySyncAdapter(RemoteStore(backend, EntityType.CustomCategories.collection)),
        DashboardSettingsSyncAdapter(RemoteStore(backend, EntityType.DashboardSettings.collection)),
    ]
