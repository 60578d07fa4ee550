"""Transactions: validation, normalization and local-first writes.

Creating, editing or deleting a transaction that belongs to a wallet also moves that
wallet's running balance, before anything is persisted, so balances are correct
immediately even while offline.
"""
import dataclasses
import datetime
import decimal
import logging
from typing import Any, Dict, List, Optional

from .base import EntityService
from .wallets import WalletService
from ..core.models import (
    EntityType,
    GLOBAL_WALLET_ID,
    RecordId,
    Transaction,
    TransactionType,
)
from ..core.queue import PendingOp
from ..core.remote import RemoteStore
from ..core.signals import signals
from ..settings import locale as locale_lib
from ..status import status

DEFAULT_DESCRIPTIONS: Dict[TransactionType, str] = {
    TransactionType.Income: 'Pemasukan',
    TransactionType.Expense: 'Pengeluaran',
}


def describe_default(transaction_type: Any) -> str:
    """Return the description shown for a transaction entered without one."""
    return DEFAULT_DESCRIPTIONS[TransactionType(transaction_type)]


def _text(value: Any) -> str:
    if value is None:
        return ''
    return str(value).strip()


class TransactionService(EntityService):
    """Writes transactions and keeps wallet balances in step.

    Args:
        wallets (WalletService): Receives the balance deltas.
        locale (str): Locale used to parse amounts entered as text.
    """
    entity_type = EntityType.Transactions
    descending = True

    def __init__(self, store, queue, remote, monitor, wallets: WalletService, locale: str = 'id_ID',
                 id_factory=None) -> None:
        super().__init__(store, queue, remote, monitor, id_factory=id_factory)
        self.wallets = wallets
        self.locale = locale

    def list(self) -> List[Transaction]:
        return self.records()

    def filter_by_wallet(self, wallet_id: Optional[str]) -> List[Transaction]:
        """Return the transactions of a wallet. The Global wallet and None return every transaction."""
        if wallet_id is None or wallet_id == GLOBAL_WALLET_ID:
            return self.list()
        return [t for t in self.list() if t.wallet_id == str(wallet_id)]

    def total_balance(self) -> decimal.Decimal:
        """Sum of the signed amounts of every transaction."""
        return sum((t.signed_amount for t in self.list()), decimal.Decimal(0))

    def _parse_amount(self, value: Any) -> decimal.Decimal:
        return locale_lib.parse_amount(value, self.locale)

    def validate(self, data: Dict[str, Any]) -> bool:
        """Return True if the amount is a positive number and category and description are set."""
        amount = data.get('amount')
        if amount is None or amount == '':
            return False
        try:
            if self._parse_amount(amount) <= 0:
                return False
        except (ValueError, decimal.InvalidOperation):
            return False
        return bool(_text(data.get('category'))) and bool(_text(data.get('description')))

    def normalize(self, data: Dict[str, Any], selected_wallet: Optional[str] = GLOBAL_WALLET_ID,
                  record_id: Optional[RecordId] = None) -> Transaction:
        """Build a transaction from raw input.

        Args:
            data (dict): Raw input. ``amount`` may be a locale formatted string.
            selected_wallet (str): The wallet the input was entered in. The Global wallet
                or None keep the input's own ``wallet_id``, any other wallet is forced onto
                the transaction.
            record_id (RecordId): Id of the transaction. New transactions get their
                temporary id from the caller once their wallet balance has moved.

        Raises:
            status.ValidationException: If a field cannot be converted.
        """
        try:
            amount = self._parse_amount(data['amount'])
            transaction_type = TransactionType(data.get('type') or TransactionType.Expense)
            date = data.get('date') or datetime.date.today()
            if isinstance(date, datetime.datetime):
                date = date.date()
            elif not isinstance(date, datetime.date):
                date = datetime.date.fromisoformat(_text(date)[:10])
        except (KeyError, ValueError, decimal.InvalidOperation) as ex:
            raise status.ValidationException(f'Invalid transaction input: {ex}') from ex

        if selected_wallet is None or selected_wallet == GLOBAL_WALLET_ID:
            wallet_id = _text(data.get('wallet_id')) or None
        else:
            wallet_id = str(selected_wallet)
        if wallet_id == GLOBAL_WALLET_ID:
            wallet_id = None

        return Transaction(
            id=record_id,
            amount=abs(amount),
            type=transaction_type,
            category=_text(data.get('category')),
            description=_text(data.get('description')),
            date=date,
            time=_text(data.get('time')) or None,
            subcategory=_text(data.get('subcategory')) or None,
            wallet_id=wallet_id,
        )

    def _check(self, data: Dict[str, Any]) -> None:
        if not self.validate(data):
            raise status.ValidationException(
                'A transaction needs a positive amount, a category and a description.'
            )

    async def write(self, data: Dict[str, Any], selected_wallet: Optional[str] = GLOBAL_WALLET_ID) -> Transaction:
        """Create a transaction.

        The wallet balance moves first, then the transaction is stored at the top of the
        list and uploaded, or queued when the upload is not possible.

        Raises:
            status.ValidationException: If the input is invalid.
            status.LocalStoreException: If the transaction could not be stored.
        """
        self._check(data)
        transaction = self.normalize(data, selected_wallet)
        await self._apply_delta(transaction, 1)
        transaction.id = self.id_factory.new()
        logging.debug(f'Writing transaction "{transaction.id}" ({transaction.signed_amount}).')
        return await self._create(transaction, prepend=True)

    async def edit(self, record_id: Any, data: Dict[str, Any]) -> Transaction:
        """Replace a transaction's fields, moving wallet balances by the difference.

        Raises:
            status.RecordNotFoundException: If the transaction does not exist.
            status.ValidationException: If the input is invalid.
        """
        previous = self.get(record_id)
        self._check(data)
        data = {'wallet_id': previous.wallet_id, **data}
        updated = self.normalize(data, GLOBAL_WALLET_ID, record_id=previous.id)
        updated = dataclasses.replace(updated, created_at=previous.created_at)

        await self._apply_delta(previous, -1)
        await self._apply_delta(updated, 1)
        return await self._edit(updated)

    async def delete(self, record_id: Any) -> Transaction:
        """Delete a transaction and take its amount back out of its wallet.

        Raises:
            status.RecordNotFoundException: If the transaction does not exist.
        """
        transaction = self.get(record_id)
        await self._apply_delta(transaction, -1)
        return await self._delete(transaction.id)

    async def _apply_delta(self, transaction: Transaction, direction: int) -> None:
        if not transaction.wallet_id or transaction.wallet_id == GLOBAL_WALLET_ID:
            return
        try:
            await self.wallets.apply_balance_delta(transaction.wallet_id, transaction.signed_amount * direction)
        except status.RecordNotFoundException:
            logging.warning(f'Wallet "{transaction.wallet_id}" does not exist, its balance was not changed.')

    async def import_transactions(self, items: List[Dict[str, Any]],
                                  wallet_id: Optional[str] = None) -> List[Transaction]:
        """Create many transactions at once.

        Every item gets its own bulk temporary id. The new transactions are placed ahead
        of the existing ones in input order.

        Raises:
            status.ValidationException: If any item is invalid. Nothing is written then.
        """
        selected = wallet_id or GLOBAL_WALLET_ID
        for data in items:
            self._check(data)
        transactions = [self.normalize(data, selected) for data in items]

        for transaction in transactions:
            await self._apply_delta(transaction, 1)
            transaction.id = self.id_factory.new(bulk=True)

        records = self.records()
        self._save(transactions + records)
        logging.info(f'Imported {len(transactions)} transactions.')

        results: List[Transaction] = []
        for transaction in transactions:
            results.append(await self._upload_new(transaction))
        return results

    async def delete_transactions_by_wallet(self, wallet_id: str) -> List[Transaction]:
        """Delete every transaction assigned to ``wallet_id``. Unassigned transactions are kept.

        Returns:
            The deleted transactions.
        """
        wallet_id = str(wallet_id)
        records = self.records()
        removed = [t for t in records if t.wallet_id == wallet_id]
        self._save([t for t in records if t.wallet_id != wallet_id])
        for transaction in removed:
            self.queue.discard(self.entity_type, transaction.id)
        logging.info(f'Deleted {len(removed)} transactions of wallet "{wallet_id}".')

        uploaded = [t for t in removed if not t.id.is_temporary]
        if not uploaded:
            return removed

        if self.can_reach_remote:
            try:
                await self.remote.delete_where('wallet_id', wallet_id)
                return removed
            except status.RemoteException as ex:
                logging.warning(f'Could not delete the remote transactions of wallet "{wallet_id}": {ex}')
        for transaction in uploaded:
            self._enqueue(PendingOp.Delete, transaction)
        return removed

    async def reset_all(self) -> None:
        """Wipe every entity type locally and, best effort, remotely.

        The local store and the pending queues are always cleared, even when the remote
        collections cannot be cleared.
        """
        for entity_type in EntityType:
            self.store.clear(entity_type)
            if entity_type.pending_key is not None:
                self.queue.clear(entity_type)
            signals.recordsChanged.emit(entity_type.value)
        logging.info('Cleared every local record and pending write.')

        if not self.can_reach_remote:
            logging.warning('Remote records were not cleared: the remote backend is not reachable.')
            return
        for entity_type in EntityType:
            remote = RemoteStore(self.remote.backend, entity_type.collection)
            try:
                await remote.clear()
            except status.RemoteException as ex:
                logging.warning(f'Could not clear remote {entity_type.value}: {ex}')
