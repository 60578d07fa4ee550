"""Wallets and the synthetic Global wallet.

A stored wallet carries a running balance moved by explicit deltas. The Global wallet
is never stored: its balance is recomputed from every transaction on each request.
"""
import dataclasses
import datetime
import decimal
import logging
from typing import Any, List, Optional, TYPE_CHECKING

from .base import EntityService
from ..core.models import (
    DEFAULT_WALLET_ICON,
    EntityType,
    GLOBAL_WALLET_COLOR,
    GLOBAL_WALLET_ICON,
    GLOBAL_WALLET_ID,
    GLOBAL_WALLET_NAME,
    RemoteId,
    TransactionType,
    Wallet,
)
from ..settings import locale as locale_lib
from ..status import status

if TYPE_CHECKING:
    from .transactions import TransactionService

INITIAL_BALANCE_CATEGORY = 'Initial Balance'


class WalletService(EntityService):
    """Creates, edits and deletes wallets and maintains their balances.

    The transaction service is attached after construction with :meth:`attach`, since
    the two services call each other.
    """
    entity_type = EntityType.Wallets

    def __init__(self, store, queue, remote, monitor, id_factory=None, locale: str = 'id_ID') -> None:
        super().__init__(store, queue, remote, monitor, id_factory=id_factory)
        self.locale = locale
        self.transactions: Optional['TransactionService'] = None

    def attach(self, transactions: 'TransactionService') -> None:
        self.transactions = transactions

    def global_wallet(self) -> Wallet:
        """Return the Global wallet with its balance summed from every transaction."""
        balance = self.transactions.total_balance() if self.transactions else decimal.Decimal(0)
        return Wallet(
            id=RemoteId(GLOBAL_WALLET_ID),
            name=GLOBAL_WALLET_NAME,
            color=GLOBAL_WALLET_COLOR,
            icon=GLOBAL_WALLET_ICON,
            balance=balance,
        )

    def list_wallets(self, include_global: bool = True) -> List[Wallet]:
        wallets = self.records()
        if include_global:
            return [self.global_wallet()] + wallets
        return wallets

    def validate_name(self, name: Any, exclude_id: Any = None) -> str:
        """Return the stripped wallet name.

        Raises:
            status.ValidationException: If the name is empty, reserved or already used.
        """
        name = str(name or '').strip()
        if not name:
            raise status.ValidationException('Wallet name is empty.')
        if name.lower() == GLOBAL_WALLET_ID:
            raise status.ValidationException(f'"{name}" is a reserved wallet name.')
        for wallet in self.records():
            if exclude_id is not None and str(wallet.id) == str(exclude_id):
                continue
            if wallet.name.strip().lower() == name.lower():
                raise status.ValidationException(f'A wallet named "{wallet.name}" already exists.')
        return name

    async def create_wallet(self, name: str, color: str, icon: str = DEFAULT_WALLET_ICON,
                            initial_balance: Any = None) -> Wallet:
        """Create a wallet.

        A non-zero initial balance is recorded as a transaction of the new wallet, which
        moves the wallet balance and keeps the Global wallet consistent.

        Raises:
            status.ValidationException: If the name is invalid or the initial balance is not a number.
        """
        name = self.validate_name(name)
        balance = decimal.Decimal(0)
        if initial_balance not in (None, ''):
            try:
                balance = locale_lib.parse_amount(initial_balance, self.locale)
            except ValueError as ex:
                raise status.ValidationException(f'Invalid initial balance: {ex}') from ex

        wallet = Wallet(id=self.id_factory.new(), name=name, color=color, icon=icon or DEFAULT_WALLET_ICON)
        wallet = await self._create(wallet)
        logging.info(f'Created wallet "{name}" ({wallet.id}).')

        if balance and self.transactions is not None:
            now = datetime.datetime.now()
            await self.transactions.write({
                'amount': abs(balance),
                'description': f'Initial balance for {name}',
                'category': INITIAL_BALANCE_CATEGORY,
                'type': TransactionType.Income if balance > 0 else TransactionType.Expense,
                'date': now.date(),
                'time': now.strftime('%H:%M'),
            }, selected_wallet=str(wallet.id))
            wallet = self.get(wallet.id) if self._exists(wallet.id) else wallet
        return wallet

    def _exists(self, wallet_id: Any) -> bool:
        return any(str(w.id) == str(wallet_id) for w in self.records())

    async def update_wallet(self, wallet_id: Any, name: Optional[str] = None, color: Optional[str] = None,
                            icon: Optional[str] = None) -> Wallet:
        """Change a wallet's name, color or icon.

        Raises:
            status.RecordNotFoundException: If the wallet does not exist.
            status.ValidationException: If the new name is invalid.
        """
        wallet = self.get(wallet_id)
        changes = {}
        if name is not None:
            changes['name'] = self.validate_name(name, exclude_id=wallet.id)
        if color is not None:
            changes['color'] = color
        if icon is not None:
            changes['icon'] = icon
        return await self._edit(dataclasses.replace(wallet, **changes))

    async def apply_balance_delta(self, wallet_id: Any, delta: decimal.Decimal) -> Optional[Wallet]:
        """Move a wallet's running balance by ``delta``. The Global wallet is ignored.

        Raises:
            status.RecordNotFoundException: If the wallet does not exist.
        """
        if str(wallet_id) == GLOBAL_WALLET_ID:
            return None
        wallet = self.get(wallet_id)
        updated = dataclasses.replace(wallet, balance=wallet.balance + decimal.Decimal(delta))
        logging.debug(f'Wallet "{wallet.name}" balance {wallet.balance} -> {updated.balance}.')
        return await self._edit(updated)

    async def delete_wallet(self, wallet_id: Any, delete_transactions: bool = True) -> Wallet:
        """Delete a wallet, and by default every transaction assigned to it.

        Raises:
            status.ValidationException: If the Global wallet is targeted.
            status.RecordNotFoundException: If the wallet does not exist.
        """
        if str(wallet_id) == GLOBAL_WALLET_ID:
            raise status.ValidationException('The Global wallet cannot be deleted.')
        wallet = self.get(wallet_id)
        if delete_transactions and self.transactions is not None:
            await self.transactions.delete_transactions_by_wallet(str(wallet.id))
        deleted = await self._delete(wallet.id)
        logging.info(f'Deleted wallet "{wallet.name}".')
        return deleted
