"""Tests for FinanceTracker.services.transactions."""
import asyncio
import datetime
import decimal
from unittest.mock import patch

from FinanceTracker.core.models import (
    EntityType,
    LocalId,
    RemoteId,
    Transaction,
)
from FinanceTracker.core.adapters import settle_insert
from FinanceTracker.core.queue import PendingOp
from FinanceTracker.core.signals import signals
from FinanceTracker.services.transactions import describe_default
from FinanceTracker.status import status
from tests.base import BaseSyncTestCase, collect_signal, hold_inserts

D = decimal.Decimal


class WriteTests(BaseSyncTestCase):
    async def test_online_write_gets_server_id(self):
        with collect_signal(signals.recordsChanged) as changed:
            result = await self.transactions.write({
                'amount': '50.000', 'category': 'Food', 'description': 'Lunch',
                'type': 'expense', 'date': '2024-01-01',
            })

        records = self.store.load(EntityType.Transactions)
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].amount, D('50000'))
        self.assertIsInstance(records[0].id, RemoteId)
        self.assertEqual(records[0].id, result.id)
        self.assertEqual(records[0].date, datetime.date(2024, 1, 1))
        self.assertEqual(self.queue.count(EntityType.Transactions), 0)
        self.assertIn(('transactions',), changed)

    async def test_failed_insert_is_queued(self):
        self.backend.available = False
        result = await self.transactions.write(self.expense('50.000'))

        records = self.store.load(EntityType.Transactions)
        self.assertEqual(len(records), 1)
        self.assertIsInstance(records[0].id, LocalId)
        self.assertEqual(records[0].id, result.id)
        entries = self.queue.peek(EntityType.Transactions)
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].op, PendingOp.Insert)
        self.assertEqual(entries[0].record_id, result.id)

    async def test_offline_write_skips_remote(self):
        self.go_offline()
        await self.transactions.write(self.expense('10'))
        self.assertEqual(self.backend.calls, [])
        self.assertEqual(len(self.queue.drain_all(EntityType.Transactions)), 1)

    async def test_each_write_adds_one_unique_record(self):
        self.go_offline()
        ids = set()
        for amount in ('1', '2.500', '1.000.000', 7, D('3.5')):
            before = len(self.store.load(EntityType.Transactions))
            t = await self.transactions.write(self.expense(amount))
            after = self.store.load(EntityType.Transactions)
            self.assertEqual(len(after), before + 1)
            self.assertEqual(after[0].id, t.id)
            ids.add(t.id)
        self.assertEqual(len(ids), 5)
        amounts = [t.amount for t in reversed(self.store.load(EntityType.Transactions))]
        self.assertEqual(amounts, [D('1'), D('2500'), D('1000000'), D('7'), D('3.5')])

    async def test_newest_first(self):
        await self.transactions.write(self.expense('1', description='first'))
        await self.transactions.write(self.expense('2', description='second'))
        self.assertEqual([t.description for t in self.transactions.list()], ['second', 'first'])

    async def test_local_store_failure_fails_the_write(self):
        with patch.object(self.store, 'save', side_effect=status.LocalStoreException('disk full')):
            with self.assertRaises(status.LocalStoreException):
                await self.transactions.write(self.expense('10'))
        self.assertEqual(self.backend.calls, [])


class ValidationTests(BaseSyncTestCase):
    def test_validate(self):
        self.assertTrue(self.transactions.validate(self.expense('10')))
        self.assertFalse(self.transactions.validate(self.expense('0')))
        self.assertFalse(self.transactions.validate(self.expense('-5')))
        self.assertFalse(self.transactions.validate(self.expense('abc')))
        self.assertFalse(self.transactions.validate(self.expense('')))
        self.assertFalse(self.transactions.validate(self.expense('10', category='  ')))
        self.assertFalse(self.transactions.validate(self.expense('10', description=None)))

    async def test_invalid_write_raises(self):
        with self.assertRaises(status.ValidationException):
            await self.transactions.write(self.expense('10', category=''))
        self.assertEqual(self.store.load(EntityType.Transactions), [])

    def test_normalize_wallet_resolution(self):
        t = self.transactions.normalize(self.expense('10', wallet_id='w1'), 'w2')
        self.assertEqual(t.wallet_id, 'w2')
        t = self.transactions.normalize(self.expense('10', wallet_id='w1'), 'global')
        self.assertEqual(t.wallet_id, 'w1')
        t = self.transactions.normalize(self.expense('10'), None)
        self.assertIsNone(t.wallet_id)
        t = self.transactions.normalize(self.expense('10', wallet_id='global'))
        self.assertIsNone(t.wallet_id)

    def test_normalize_drops_empty_optionals(self):
        t = self.transactions.normalize(self.expense('10', time='', subcategory='  '))
        self.assertIsNone(t.time)
        self.assertIsNone(t.subcategory)
        self.assertIsNone(t.id)

    def test_normalize_bad_date(self):
        with self.assertRaises(status.ValidationException):
            self.transactions.normalize(self.expense('10', date='not a date'))

    def test_default_description(self):
        self.assertEqual(describe_default('income'), 'Pemasukan')
        self.assertEqual(describe_default('expense'), 'Pengeluaran')


class EditDeleteTests(BaseSyncTestCase):
    async def test_edit_temporary_folds_into_queued_insert(self):
        self.go_offline()
        t = await self.transactions.write(self.expense('10'))
        await self.transactions.edit(t.id, self.expense('25', description='Dinner'))

        entries = self.queue.peek(EntityType.Transactions)
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].op, PendingOp.Insert)
        self.assertEqual(entries[0].record.amount, D('25'))
        self.assertEqual(entries[0].record.description, 'Dinner')

    async def test_delete_temporary_discards_queued_insert(self):
        self.go_offline()
        t = await self.transactions.write(self.expense('10'))
        await self.transactions.delete(str(t.id))
        self.assertEqual(self.queue.count(EntityType.Transactions), 0)
        self.assertEqual(self.store.load(EntityType.Transactions), [])

        self.monitor.set_online(True)
        await self.orchestrator.run_full_sync()
        self.assertEqual(self.backend.rows('transactions'), [])

    async def test_online_edit_and_delete(self):
        t = await self.transactions.write(self.expense('10'))
        await self.transactions.edit(t.id, self.expense('20'))
        self.assertEqual(self.backend.rows('transactions')[0]['amount'], '20')
        self.assertEqual(self.transactions.get(t.id).created_at, t.created_at)

        await self.transactions.delete(t.id)
        self.assertEqual(self.backend.rows('transactions'), [])
        self.assertEqual(self.queue.count(EntityType.Transactions), 0)

    async def test_failed_remote_edit_is_queued(self):
        t = await self.transactions.write(self.expense('10'))
        self.backend.available = False
        await self.transactions.edit(t.id, self.expense('20'))
        entries = self.queue.peek(EntityType.Transactions)
        self.assertEqual([e.op for e in entries], [PendingOp.Update])
        self.assertEqual(entries[0].record.amount, D('20'))

    async def test_unknown_ids(self):
        with self.assertRaises(status.RecordNotFoundException):
            self.transactions.get('nope')
        with self.assertRaises(status.RecordNotFoundException):
            await self.transactions.edit('nope', self.expense('1'))
        with self.assertRaises(status.RecordNotFoundException):
            await self.transactions.delete('tmp-1')

    async def test_record_deleted_during_upload_is_removed_remotely(self):
        row = await self.backend.insert('transactions', self.expense('10'))
        uploaded = self.transactions.normalize(self.expense('10'), record_id=LocalId(1))
        stored = await settle_insert(self.store, self.queue, self.remotes[EntityType.Transactions],
                                     EntityType.Transactions, uploaded, Transaction.from_dict(row))
        self.assertIsNone(stored)
        self.assertEqual(self.backend.rows('transactions'), [])

    async def test_delete_while_write_is_uploading(self):
        started, release = hold_inserts(self.backend)
        write = asyncio.create_task(self.transactions.write(self.expense('1000')))
        await started.wait()
        temporary_id = self.transactions.list()[0].id
        await self.transactions.delete(temporary_id)
        release.set()
        await write

        self.assertEqual(self.transactions.list(), [])
        self.assertEqual(self.backend.rows('transactions'), [])
        self.assertEqual(self.queue.count(EntityType.Transactions), 0)

    async def test_edit_while_write_is_uploading(self):
        wallet = await self.wallets.create_wallet('Cash', '#fff')
        started, release = hold_inserts(self.backend)
        write = asyncio.create_task(self.transactions.write(self.expense('1000'), selected_wallet=str(wallet.id)))
        await started.wait()
        temporary_id = self.transactions.list()[0].id
        await self.transactions.edit(temporary_id, self.expense('5000', description='Dinner'))
        release.set()
        result = await write

        self.assertIsInstance(result.id, RemoteId)
        local = self.transactions.get(result.id)
        self.assertEqual(local.amount, D('5000'))
        self.assertEqual(local.description, 'Dinner')
        self.assertEqual(local.wallet_id, str(wallet.id))
        self.assertIsNotNone(local.created_at)
        rows = self.backend.rows('transactions')
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]['amount'], '5000')
        self.assertEqual(self.wallets.get(wallet.id).balance, D('-5000'))
        self.assertEqual(self.queue.count(EntityType.Transactions), 0)

    async def test_failed_update_after_edit_during_upload_is_queued(self):
        started, release = hold_inserts(self.backend)
        write = asyncio.create_task(self.transactions.write(self.expense('1000')))
        await started.wait()
        await self.transactions.edit(self.transactions.list()[0].id, self.expense('2000'))

        async def refuse_update(collection, row_id, patch):
            raise status.TransientRemoteException('timeout')

        with patch.object(self.backend, 'update', side_effect=refuse_update):
            release.set()
            result = await write

        entries = self.queue.peek(EntityType.Transactions)
        self.assertEqual([e.op for e in entries], [PendingOp.Update])
        self.assertEqual(entries[0].record_id, result.id)
        self.assertEqual(entries[0].record.amount, D('2000'))

    async def test_wallet_moves_before_the_id_is_assigned(self):
        wallet = await self.wallets.create_wallet('Cash', '#fff')
        calls = []
        new_id = self.id_factory.new
        apply_delta = self.wallets.apply_balance_delta

        def record_id(*args, **kwargs):
            calls.append('id')
            return new_id(*args, **kwargs)

        async def record_delta(*args, **kwargs):
            calls.append('delta')
            return await apply_delta(*args, **kwargs)

        with patch.object(self.id_factory, 'new', side_effect=record_id), \
                patch.object(self.wallets, 'apply_balance_delta', side_effect=record_delta):
            await self.transactions.write(self.expense('10'), selected_wallet=str(wallet.id))
            await self.transactions.import_transactions([self.expense('1'), self.expense('2')],
                                                        wallet_id=str(wallet.id))

        self.assertEqual(calls, ['delta', 'id', 'delta', 'id', 'delta', 'id'])


class WalletBalanceTests(BaseSyncTestCase):
    async def _wallets(self):
        a = await self.wallets.create_wallet('A', '#ff0000')
        b = await self.wallets.create_wallet('B', '#0000ff')
        return str(a.id), str(b.id)

    async def test_global_balance_scenario(self):
        a, b = await self._wallets()
        await self.transactions.write(self.income('100000'), selected_wallet=a)
        await self.transactions.write(self.expense('30000'), selected_wallet=a)
        await self.transactions.write(self.income('50000'), selected_wallet=b)

        self.assertEqual(self.wallets.global_wallet().balance, D('120000'))
        self.assertEqual(self.wallets.get(a).balance, D('70000'))
        self.assertEqual(self.wallets.get(b).balance, D('50000'))

        removed = await self.transactions.delete_transactions_by_wallet(b)
        self.assertEqual(len(removed), 1)
        self.assertEqual(self.wallets.global_wallet().balance, D('70000'))
        self.assertEqual([t.wallet_id for t in self.transactions.list()], [a, a])

    async def test_delete_by_wallet_keeps_everything_else(self):
        a, b = await self._wallets()
        await self.transactions.write(self.income('1'), selected_wallet=a)
        await self.transactions.write(self.income('2'), selected_wallet=b)
        await self.transactions.write(self.income('3'))
        self.go_offline()
        await self.transactions.write(self.income('4'), selected_wallet=b)

        await self.transactions.delete_transactions_by_wallet(b)
        remaining = sorted((t.wallet_id, t.amount) for t in self.transactions.list() if t.wallet_id)
        self.assertEqual(remaining, [(a, D('1'))])
        self.assertEqual(len([t for t in self.transactions.list() if t.wallet_id is None]), 1)

        # the uploaded record is queued for remote deletion, the temporary one is dropped
        entries = self.queue.peek(EntityType.Transactions)
        self.assertEqual([e.op for e in entries], [PendingOp.Delete])
        self.assertEqual(entries[0].record.amount, D('2'))

    async def test_delete_by_wallet_online_uses_delete_where(self):
        a, b = await self._wallets()
        await self.transactions.write(self.income('2'), selected_wallet=b)
        await self.transactions.delete_transactions_by_wallet(b)
        self.assertIn(('delete_where', 'transactions'), self.backend.calls)
        self.assertEqual(self.backend.rows('transactions'), [])

    async def test_global_invariant_over_a_sequence(self):
        a, b = await self._wallets()
        ops = []
        ops.append(await self.transactions.write(self.income('1.000'), selected_wallet=a))
        ops.append(await self.transactions.write(self.expense('250'), selected_wallet=b))
        ops.append(await self.transactions.write(self.expense('75')))
        self.go_offline()
        ops.append(await self.transactions.write(self.income('10'), selected_wallet=b))
        await self.transactions.edit(ops[1].id, self.income('300'))
        await self.transactions.delete(ops[2].id)
        self.monitor.set_online(True)
        await self.transactions.edit(ops[3].id, self.expense('40'))

        expected = sum((t.signed_amount for t in self.store.load(EntityType.Transactions)), D(0))
        self.assertEqual(self.wallets.global_wallet().balance, expected)
        self.assertEqual(expected, D('1000') + D('300') - D('40'))

    async def test_edit_moves_balance_between_wallets(self):
        a, b = await self._wallets()
        t = await self.transactions.write(self.expense('100'), selected_wallet=a)
        await self.transactions.edit(t.id, self.expense('200', wallet_id=b))
        self.assertEqual(self.wallets.get(a).balance, D('0'))
        self.assertEqual(self.wallets.get(b).balance, D('-200'))

    async def test_edit_keeps_wallet_by_default(self):
        a, _ = await self._wallets()
        t = await self.transactions.write(self.expense('100'), selected_wallet=a)
        edited = await self.transactions.edit(t.id, self.expense('150'))
        self.assertEqual(edited.wallet_id, a)
        self.assertEqual(self.wallets.get(a).balance, D('-150'))

    async def test_delete_reverts_balance(self):
        a, _ = await self._wallets()
        t = await self.transactions.write(self.income('100'), selected_wallet=a)
        await self.transactions.delete(t.id)
        self.assertEqual(self.wallets.get(a).balance, D('0'))

    async def test_filter_by_wallet(self):
        a, b = await self._wallets()
        await self.transactions.write(self.income('1'), selected_wallet=a)
        await self.transactions.write(self.income('2'), selected_wallet=b)
        self.assertEqual(len(self.transactions.filter_by_wallet(a)), 1)
        self.assertEqual(len(self.transactions.filter_by_wallet('global')), 2)
        self.assertEqual(len(self.transactions.filter_by_wallet(None)), 2)


class ImportTests(BaseSyncTestCase):
    async def test_import_prepends_in_input_order(self):
        await self.transactions.write(self.expense('1', description='old1'))
        await self.transactions.write(self.expense('2', description='old2'))

        items = [self.expense(str(i), description=f't{i}') for i in (1, 2, 3)]
        imported = await self.transactions.import_transactions(items)

        descriptions = [t.description for t in self.transactions.list()]
        self.assertEqual(descriptions, ['t1', 't2', 't3', 'old2', 'old1'])
        self.assertEqual(len({t.id for t in imported}), 3)

    async def test_offline_import_uses_unique_bulk_ids(self):
        self.go_offline()
        items = [self.expense('5') for _ in range(20)]
        imported = await self.transactions.import_transactions(items)
        self.assertEqual(len({t.id for t in imported}), 20)
        self.assertTrue(all(t.id.suffix for t in imported))
        self.assertEqual(self.queue.count(EntityType.Transactions), 20)

    async def test_invalid_import_writes_nothing(self):
        items = [self.expense('5'), self.expense('', description='broken')]
        with self.assertRaises(status.ValidationException):
            await self.transactions.import_transactions(items)
        self.assertEqual(self.store.load(EntityType.Transactions), [])

    async def test_import_into_wallet(self):
        wallet = await self.wallets.create_wallet('Cash', '#fff')
        await self.transactions.import_transactions([self.income('10'), self.income('5')], str(wallet.id))
        self.assertEqual(self.wallets.get(wallet.id).balance, D('15'))


class LoadTests(BaseSyncTestCase):
    async def test_load_prefers_remote(self):
        await self.backend.insert('transactions', self.expense('9', description='remote'))
        records = await self.transactions.load()
        self.assertEqual([t.description for t in records], ['remote'])
        self.assertEqual([t.description for t in self.store.load(EntityType.Transactions)], ['remote'])

    async def test_load_keeps_local_while_writes_are_queued(self):
        self.go_offline()
        await self.transactions.write(self.expense('1', description='local'))
        self.monitor.set_online(True)
        await self.backend.insert('transactions', self.expense('9', description='remote'))
        records = await self.transactions.refresh()
        self.assertEqual([t.description for t in records], ['local'])

    async def test_transient_failure_falls_back_to_local(self):
        await self.transactions.write(self.expense('1', description='local'))
        self.backend.available = False
        records = await self.transactions.load()
        self.assertEqual([t.description for t in records], ['local'])
        self.assertFalse(self.transactions.local_only)

    async def test_backend_unavailable_enters_local_only_mode(self):
        async def unavailable(*args, **kwargs):
            raise status.BackendUnavailableException('not signed in')

        self.backend.list = unavailable
        await self.transactions.load()
        self.assertTrue(self.transactions.local_only)

        calls = len(self.backend.calls)
        await self.transactions.write(self.expense('1'))
        self.assertEqual(len(self.backend.calls), calls)
        self.assertEqual(self.queue.count(EntityType.Transactions), 1)

    async def test_remote_push_reloads(self):
        unsubscribe = self.transactions.subscribe_remote()
        await self.backend.insert('transactions', self.expense('9', description='pushed'))
        for _ in range(10):
            await asyncio.sleep(0)
        unsubscribe()
        self.assertEqual([t.description for t in self.store.load(EntityType.Transactions)], ['pushed'])


class ResetTests(BaseSyncTestCase):
    async def test_reset_clears_local_queue_and_remote(self):
        await self.transactions.write(self.expense('1'))
        await self.categories.add_custom_category('expense', 'Pets')
        self.go_offline()
        await self.transactions.write(self.expense('2'))
        self.monitor.set_online(True)

        await self.transactions.reset_all()
        for entity_type in EntityType:
            self.assertEqual(self.store.load(entity_type), [])
        self.assertEqual(self.queue.count(EntityType.Transactions), 0)
        self.assertEqual(self.backend.rows('transactions'), [])
        self.assertEqual(self.backend.rows('custom_categories'), [])

    async def test_reset_clears_local_even_when_remote_fails(self):
        await self.transactions.write(self.expense('1'))
        self.backend.available = False
        self.go_offline()
        await self.transactions.write(self.expense('2'))
        self.monitor.set_online(True)

        with self.assertLogs(level='WARNING'):
            await self.transactions.reset_all()
        self.assertEqual(self.store.load(EntityType.Transactions), [])
        self.assertEqual(self.queue.count(EntityType.Transactions), 0)
        self.assertEqual(len(self.backend.rows('transactions')), 1)
