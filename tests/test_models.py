# tests/test_models.py
"""
Unit tests for FinanceTracker.core.models
(tagged ids, the temporary id factory and record serialization).

Run with:
    python -m unittest tests.test_models
"""
import datetime
import decimal
import unittest

from FinanceTracker.core.models import (
    CustomCategory,
    DashboardCard,
    EntityType,
    LocalId,
    RemoteId,
    TemporaryIdFactory,
    Transaction,
    TransactionType,
    Wallet,
    default_dashboard_cards,
    parse_id,
    records_from_dicts,
)


class IdTests(unittest.TestCase):
    def test_local_id_serialization(self):
        self.assertEqual(str(LocalId(1700000000000)), 'tmp-1700000000000')
        self.assertEqual(str(LocalId(5, 'abc123xyz')), 'tmp-5-abc123xyz')
        self.assertTrue(LocalId(1).is_temporary)
        self.assertFalse(RemoteId('x').is_temporary)

    def test_parse_id(self):
        self.assertEqual(parse_id('tmp-42'), LocalId(42))
        self.assertEqual(parse_id('tmp-42-abc'), LocalId(42, 'abc'))
        self.assertEqual(parse_id('5f2c'), RemoteId('5f2c'))
        self.assertEqual(parse_id(LocalId(1)), LocalId(1))
        self.assertEqual(parse_id(7), RemoteId('7'))

    def test_parse_id_rejects_malformed(self):
        with self.assertRaises(ValueError):
            parse_id('')
        with self.assertRaises(ValueError):
            parse_id('tmp-notanumber')

    def test_local_and_remote_ids_never_equal(self):
        self.assertNotEqual(LocalId(1), RemoteId('tmp-1'))
        self.assertNotEqual(parse_id('tmp-1'), RemoteId('tmp-1'))


class TemporaryIdFactoryTests(unittest.TestCase):
    def test_single_ids_strictly_increase_on_a_frozen_clock(self):
        factory = TemporaryIdFactory(clock=lambda: 1000)
        ids = [factory.new() for _ in range(5)]
        self.assertEqual([i.tick for i in ids], [1000, 1001, 1002, 1003, 1004])
        self.assertEqual(len(set(ids)), 5)

    def test_bulk_ids_share_tick_and_are_unique(self):
        factory = TemporaryIdFactory(clock=lambda: 2000)
        ids = [factory.new(bulk=True) for _ in range(200)]
        self.assertEqual({i.tick for i in ids}, {2000})
        self.assertEqual(len(set(ids)), 200)
        for local_id in ids:
            self.assertEqual(len(local_id.suffix), 9)

    def test_single_after_bulk_does_not_collide(self):
        factory = TemporaryIdFactory(clock=lambda: 3000)
        bulk = factory.new(bulk=True)
        single = factory.new()
        self.assertNotEqual(bulk, single)
        self.assertGreater(single.tick, 3000 - 1)


class RecordTests(unittest.TestCase):
    def test_transaction_round_trip(self):
        t = Transaction(
            id=RemoteId('abc'),
            amount=decimal.Decimal('50000'),
            type='expense',
            category='Makanan',
            description='Lunch',
            date=datetime.date(2024, 1, 1),
            wallet_id='w1',
        )
        data = t.to_dict()
        self.assertEqual(data['amount'], '50000')
        self.assertEqual(data['date'], '2024-01-01')
        self.assertNotIn('time', data)
        self.assertEqual(Transaction.from_dict(data), t)

    def test_transaction_sign(self):
        base = dict(id=LocalId(1), category='c', description='d', date=datetime.date(2024, 1, 1))
        self.assertEqual(Transaction(amount=decimal.Decimal(5), type='income', **base).signed_amount, 5)
        self.assertEqual(Transaction(amount=decimal.Decimal(5), type='expense', **base).signed_amount, -5)

    def test_transaction_rejects_negative_amount(self):
        with self.assertRaises(ValueError):
            Transaction(id=LocalId(1), amount=decimal.Decimal(-1), type='expense', category='c',
                        description='d', date=datetime.date(2024, 1, 1))

    def test_global_wallet_id_is_never_stored(self):
        t = Transaction(id=LocalId(1), amount=decimal.Decimal(1), type='income', category='c',
                        description='d', date=datetime.date(2024, 1, 1), wallet_id='global')
        self.assertIsNone(t.wallet_id)
        self.assertNotIn('wallet_id', t.to_dict())

    def test_payload_has_no_id(self):
        w = Wallet(id=LocalId(1), name='Cash', color='#fff', created_at='2024')
        payload = w.to_payload()
        self.assertNotIn('id', payload)
        self.assertNotIn('created_at', payload)
        self.assertEqual(payload['balance'], '0')

    def test_wallet_from_remote_row(self):
        w = Wallet.from_dict({'id': 'r1', 'name': 'Bank', 'color': '#000', 'balance': '12.5'})
        self.assertEqual(w.id, RemoteId('r1'))
        self.assertEqual(w.balance, decimal.Decimal('12.5'))
        self.assertEqual(w.icon, 'Wallet2')

    def test_category_and_card(self):
        c = CustomCategory.from_dict({'id': 'tmp-9', 'name': 'Pets', 'type': 'expense'})
        self.assertEqual(c.type, TransactionType.Expense)
        self.assertTrue(c.id.is_temporary)

        card = DashboardCard.from_dict({'id': 'balance', 'name': 'Balance', 'icon': 'x', 'enabled': 'false'})
        self.assertFalse(card.enabled)

    def test_records_from_dicts_skips_malformed(self):
        rows = [
            {'id': 'a', 'name': 'ok', 'color': '#fff'},
            {'id': 'b'},
        ]
        with self.assertLogs(level='WARNING'):
            records = records_from_dicts(EntityType.Wallets, rows)
        self.assertEqual([str(r.id) for r in records], ['a'])

    def test_default_cards(self):
        cards = default_dashboard_cards()
        self.assertEqual(len(cards), 11)
        cards[0].enabled = False
        self.assertTrue(default_dashboard_cards()[0].enabled)

    def test_entity_keys(self):
        self.assertEqual(EntityType.CustomCategories.local_key, 'customCategories')
        self.assertEqual(EntityType.Transactions.pending_key, 'pendingTransactions')
        self.assertIsNone(EntityType.DashboardSettings.pending_key)
        self.assertEqual(EntityType.DashboardSettings.local_key, 'dashboardCards')
