"""Typed records, identifiers and built-in defaults.

Records are plain dataclasses. Each one converts to and from a JSON-safe dict
(amounts as decimal strings, dates as ISO strings) which is the form kept in the
local store, the pending queue and the remote rows.

A record id is either a :class:`LocalId`, generated on the device before the remote
backend confirmed the record, or a :class:`RemoteId` assigned by the backend. The
serialized form of a local id is ``tmp-<tick>`` (``tmp-<tick>-<suffix>`` for bulk
imports) so the tag survives a round trip through storage.
"""
import dataclasses
import datetime
import decimal
import enum
import logging
import random
import string
import time
from typing import Any, Dict, List, Optional, Type, Union

LOCAL_ID_PREFIX = 'tmp-'
SUFFIX_ALPHABET = string.digits + string.ascii_lowercase
SUFFIX_LENGTH = 9

GLOBAL_WALLET_ID = 'global'
GLOBAL_WALLET_NAME = 'Global'
GLOBAL_WALLET_COLOR = '#6366f1'
GLOBAL_WALLET_ICON = 'Globe'
DEFAULT_WALLET_ICON = 'Wallet2'


class EntityType(enum.StrEnum):
    """The record collections the engine keeps in sync."""
    Transactions = 'transactions'
    Wallets = 'wallets'
    CustomCategories = 'custom_categories'
    DashboardSettings = 'dashboard_settings'

    @property
    def collection(self) -> str:
        """Name of the remote collection."""
        return self.value

    @property
    def local_key(self) -> str:
        """Key of the record list in the local store."""
        return LOCAL_KEYS[self]

    @property
    def pending_key(self) -> Optional[str]:
        """Key of the pending queue in the local store, None when the type is not queued."""
        return PENDING_KEYS.get(self)


LOCAL_KEYS: Dict[EntityType, str] = {
    EntityType.Transactions: 'transactions',
    EntityType.Wallets: 'wallets',
    EntityType.CustomCategories: 'customCategories',
    EntityType.DashboardSettings: 'dashboardCards',
}

PENDING_KEYS: Dict[EntityType, str] = {
    EntityType.Transactions: 'pendingTransactions',
    EntityType.Wallets: 'pendingWallets',
    EntityType.CustomCategories: 'pendingCustomCategories',
}

LAST_SYNC_KEY = 'lastSync'


class TransactionType(enum.StrEnum):
    Income = 'income'
    Expense = 'expense'


@dataclasses.dataclass(frozen=True, order=True)
class LocalId:
    """Temporary id assigned on the device.

    Attributes:
        tick (int): Millisecond clock value at creation.
        suffix (str): Random base-36 suffix, set for records created in bulk.
    """
    tick: int
    suffix: str = ''

    is_temporary = True

    def __str__(self) -> str:
        if self.suffix:
            return f'{LOCAL_ID_PREFIX}{self.tick}-{self.suffix}'
        return f'{LOCAL_ID_PREFIX}{self.tick}'


@dataclasses.dataclass(frozen=True)
class RemoteId:
    """Id assigned by the remote backend."""
    value: str

    is_temporary = False

    def __str__(self) -> str:
        return self.value


RecordId = Union[LocalId, RemoteId]


def parse_id(value: Union[str, int, RecordId]) -> RecordId:
    """Restore a tagged id from its serialized form.

    Args:
        value: A serialized id, or an id that is already tagged.

    Returns:
        LocalId or RemoteId.

    Raises:
        ValueError: If the value is empty, or looks like a local id but is malformed.
    """
    if isinstance(value, (LocalId, RemoteId)):
        return value

    text = str(value).strip()
    if not text:
        raise ValueError('Record id is empty.')
    if not text.startswith(LOCAL_ID_PREFIX):
        return RemoteId(text)

    body = text[len(LOCAL_ID_PREFIX):]
    tick, _, suffix = body.partition('-')
    try:
        return LocalId(int(tick), suffix)
    except ValueError as ex:
        raise ValueError(f'Malformed temporary id: "{text}"') from ex


class TemporaryIdFactory:
    """Generates temporary ids from a millisecond clock.

    Single ids are strictly increasing even when two are requested within the same
    millisecond. Bulk ids keep the current tick and carry a random suffix instead, so
    a whole import shares the tick without colliding.
    """

    def __init__(self, clock=None) -> None:
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._last_tick = 0
        self._issued: set = set()

    def new(self, bulk: bool = False) -> LocalId:
        tick = self._clock()
        if not bulk:
            tick = max(tick, self._last_tick + 1)
            self._last_tick = tick
            return LocalId(tick)

        self._last_tick = max(tick, self._last_tick)
        while True:
            suffix = ''.join(random.choices(SUFFIX_ALPHABET, k=SUFFIX_LENGTH))
            local_id = LocalId(tick, suffix)
            if local_id not in self._issued:
                self._issued.add(local_id)
                return local_id


def _parse_date(value: Any) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    return datetime.date.fromisoformat(str(value).strip()[:10])


def _decimal(value: Any) -> decimal.Decimal:
    try:
        return decimal.Decimal(str(value))
    except decimal.InvalidOperation as ex:
        raise ValueError(f'"{value}" is not a decimal number.') from ex


def _optional(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None or value == '':
        return None
    return str(value)


class Record:
    """Shared serialization helpers for the record dataclasses."""
    id: RecordId

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Record':
        raise NotImplementedError

    def to_payload(self) -> Dict[str, Any]:
        """Return the remote insert payload: the record without its id and creation stamp."""
        payload = self.to_dict()
        payload.pop('id', None)
        payload.pop('created_at', None)
        return payload


@dataclasses.dataclass
class Transaction(Record):
    """A single income or expense.

    The amount is stored non-negative, ``type`` carries the sign. ``wallet_id`` of
    None means the transaction is not assigned to any wallet.
    """
    id: RecordId
    amount: decimal.Decimal
    type: TransactionType
    category: str
    description: str
    date: datetime.date
    time: Optional[str] = None
    subcategory: Optional[str] = None
    wallet_id: Optional[str] = None
    created_at: Optional[str] = None

    def __post_init__(self) -> None:
        self.type = TransactionType(self.type)
        if self.amount < 0:
            raise ValueError(f'Transaction amount must be non-negative, got {self.amount}.')
        if self.wallet_id == GLOBAL_WALLET_ID:
            self.wallet_id = None

    @property
    def signed_amount(self) -> decimal.Decimal:
        if self.type == TransactionType.Income:
            return self.amount
        return -self.amount

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'id': str(self.id),
            'amount': str(self.amount),
            'type': self.type.value,
            'category': self.category,
            'description': self.description,
            'date': self.date.isoformat(),
        }
        for key in ('time', 'subcategory', 'wallet_id', 'created_at'):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        return cls(
            id=parse_id(data['id']),
            amount=_decimal(data['amount']),
            type=TransactionType(data['type']),
            category=str(data['category']),
            description=str(data.get('description') or ''),
            date=_parse_date(data['date']),
            time=_optional(data, 'time'),
            subcategory=_optional(data, 'subcategory'),
            wallet_id=_optional(data, 'wallet_id'),
            created_at=_optional(data, 'created_at'),
        )


@dataclasses.dataclass
class Wallet(Record):
    """A named wallet with a running balance.

    The balance is changed only by explicit delta calls, it is never recomputed from
    transactions.
    """
    id: RecordId
    name: str
    color: str
    icon: str = DEFAULT_WALLET_ICON
    balance: decimal.Decimal = decimal.Decimal(0)
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'id': str(self.id),
            'name': self.name,
            'color': self.color,
            'icon': self.icon,
            'balance': str(self.balance),
        }
        if self.created_at is not None:
            data['created_at'] = self.created_at
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Wallet':
        return cls(
            id=parse_id(data['id']),
            name=str(data['name']),
            color=str(data.get('color') or ''),
            icon=str(data.get('icon') or DEFAULT_WALLET_ICON),
            balance=_decimal(data.get('balance') or 0),
            created_at=_optional(data, 'created_at'),
        )


@dataclasses.dataclass
class CustomCategory(Record):
    id: RecordId
    name: str
    type: TransactionType
    created_at: Optional[str] = None

    def __post_init__(self) -> None:
        self.type = TransactionType(self.type)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'id': str(self.id),
            'name': self.name,
            'type': self.type.value,
        }
        if self.created_at is not None:
            data['created_at'] = self.created_at
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CustomCategory':
        return cls(
            id=parse_id(data['id']),
            name=str(data['name']),
            type=TransactionType(data['type']),
            created_at=_optional(data, 'created_at'),
        )


@dataclasses.dataclass
class DashboardCard(Record):
    """One card of the dashboard layout. The id is the card key, e.g. ``balance``."""
    id: str
    name: str
    icon: str
    enabled: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'icon': self.icon,
            'enabled': self.enabled,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DashboardCard':
        enabled = data.get('enabled', True)
        if isinstance(enabled, str):
            enabled = enabled.strip().lower() == 'true'
        return cls(
            id=str(data['id']),
            name=str(data.get('name') or data['id']),
            icon=str(data.get('icon') or ''),
            enabled=bool(enabled),
        )


RECORD_TYPES: Dict[EntityType, Type[Record]] = {
    EntityType.Transactions: Transaction,
    EntityType.Wallets: Wallet,
    EntityType.CustomCategories: CustomCategory,
    EntityType.DashboardSettings: DashboardCard,
}


def record_from_dict(entity_type: EntityType, data: Dict[str, Any]) -> Record:
    """Build the record class of an entity type from its serialized dict."""
    return RECORD_TYPES[entity_type].from_dict(data)


def records_from_dicts(entity_type: EntityType, rows: List[Dict[str, Any]]) -> List[Record]:
    """Build records from serialized rows, skipping rows that cannot be parsed."""
    records = []
    for row in rows:
        try:
            records.append(record_from_dict(entity_type, row))
        except (KeyError, ValueError, TypeError) as ex:
            logging.warning(f'Skipping malformed {entity_type.value} row {row!r}: {ex}')
    return records


DEFAULT_CATEGORIES: Dict[TransactionType, List[str]] = {
    TransactionType.Income: [
        'Gaji',
        'Bonus',
        'Freelance',
        'Investasi',
        'Bisnis',
        'Hadiah',
    ],
    TransactionType.Expense: [
        'Makanan',
        'Transportasi',
        'Belanja',
        'Tagihan',
        'Kesehatan',
        'Hiburan',
        'Pendidikan',
        'Rumah Tangga',
    ],
}


def default_dashboard_cards() -> List[DashboardCard]:
    """Return a fresh copy of the built-in dashboard layout."""
    return [
        DashboardCard('balance', 'Balance', '💰', True),
        DashboardCard('chart', 'Chart', '📊', True),
        DashboardCard('quickstats', 'Quick Stats', '⚡', True),
        DashboardCard('categorycharts', 'Category Charts', '📈', False),
        DashboardCard('health', 'Financial Health', '🏥', False),
        DashboardCard('insights', 'Spending Insights', '🔍', False),
        DashboardCard('trends', 'Spending Trends', '📈', False),
        DashboardCard('budget', 'Budget Tracker', '💰', False),
        DashboardCard('savings', 'Savings Goals', '🎯', False),
        DashboardCard('form', 'Tambah Transaksi', '➕', True),
        DashboardCard('list', 'Riwayat Transaksi', '📝', True),
    ]


DEFAULT_DASHBOARD_CARDS: List[DashboardCard] = default_dashboard_cards()
