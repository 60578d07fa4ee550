"""Tests for FinanceTracker.services.categories and FinanceTracker.services.dashboard."""
from FinanceTracker.core.models import (
    DEFAULT_CATEGORIES,
    DashboardCard,
    EntityType,
    TransactionType,
    default_dashboard_cards,
)
from FinanceTracker.services.dashboard import normalize_cards
from FinanceTracker.status import status
from tests.base import BaseSyncTestCase


class CategoryServiceTests(BaseSyncTestCase):
    async def test_defaults_first_then_customs(self):
        await self.categories.add_custom_category('expense', 'Pets')
        names = self.categories.get_categories('expense')
        self.assertEqual(names[:len(DEFAULT_CATEGORIES[TransactionType.Expense])],
                         DEFAULT_CATEGORIES[TransactionType.Expense])
        self.assertEqual(names[-1], 'Pets')
        self.assertNotIn('Pets', self.categories.get_categories('income'))

    async def test_add_uploads(self):
        category = await self.categories.add_custom_category(TransactionType.Income, '  Rental ')
        self.assertEqual(category.name, 'Rental')
        self.assertFalse(category.id.is_temporary)
        self.assertEqual(self.backend.rows('custom_categories')[0]['name'], 'Rental')

    async def test_rejects_empty_duplicates_and_unknown_type(self):
        await self.categories.add_custom_category('expense', 'Pets')
        for name in ('', 'pets', 'Makanan', 'makanan'):
            with self.subTest(name=name):
                with self.assertRaises(status.ValidationException):
                    await self.categories.add_custom_category('expense', name)
        with self.assertRaises(status.ValidationException):
            await self.categories.add_custom_category('transfer', 'X')
        # same name is fine for the other type
        await self.categories.add_custom_category('income', 'Pets')

    def test_is_default(self):
        self.assertTrue(self.categories.is_default('expense', 'makanan'))
        self.assertFalse(self.categories.is_default('income', 'Makanan'))

    async def test_delete(self):
        category = await self.categories.add_custom_category('expense', 'Pets')
        await self.categories.delete_custom_category(category.id)
        self.assertEqual(self.categories.list(), [])
        self.assertEqual(self.backend.rows('custom_categories'), [])

    async def test_delete_by_name(self):
        await self.categories.add_custom_category('expense', 'Pets')
        await self.categories.delete_category_by_name('expense', 'pets')
        self.assertEqual(self.categories.list(), [])
        with self.assertRaises(status.ValidationException):
            await self.categories.delete_category_by_name('expense', 'Makanan')
        with self.assertRaises(status.RecordNotFoundException):
            await self.categories.delete_category_by_name('expense', 'Nope')

    async def test_offline_add_then_reset(self):
        await self.categories.add_custom_category('expense', 'Online')
        self.go_offline()
        await self.categories.add_custom_category('expense', 'Offline')
        self.assertEqual(self.queue.count(EntityType.CustomCategories), 1)

        await self.categories.reset_custom_categories()
        self.assertEqual(self.categories.list(), [])
        entries = self.queue.peek(EntityType.CustomCategories)
        # the uploaded category still has to be deleted remotely
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].record.name, 'Online')


class DashboardServiceTests(BaseSyncTestCase):
    def test_normalize_cards(self):
        cards = [
            DashboardCard('balance', 'Balance', 'x'),
            DashboardCard('breakdown', 'Breakdown', 'x'),
            DashboardCard('list', 'List', 'x'),
        ]
        ids = [c.id for c in normalize_cards(cards)]
        self.assertEqual(ids, ['balance', 'list', 'form', 'categorycharts'])

    async def test_defaults_when_nothing_stored(self):
        cards = await self.dashboard.load()
        self.assertEqual([c.id for c in cards], [c.id for c in default_dashboard_cards()])

    async def test_save_online_upserts_singleton(self):
        cards = await self.dashboard.load()
        await self.dashboard.save(cards)
        cards[1].enabled = False
        await self.dashboard.save(cards)

        rows = self.backend.rows('dashboard_settings')
        self.assertEqual(len(rows), 1)
        self.assertFalse(rows[0]['cards'][1]['enabled'])
        self.assertIn('updated_at', rows[0])

    async def test_remote_layout_wins_on_load(self):
        await self.backend.insert('dashboard_settings', {
            'cards': [{'id': 'balance', 'name': 'Balance', 'icon': 'x', 'enabled': False}],
        })
        cards = await self.dashboard.load()
        self.assertEqual([c.id for c in cards], ['balance'])
        self.assertEqual(len(self.store.load(EntityType.DashboardSettings)), 1)

    async def test_local_layout_is_normalized(self):
        self.go_offline()
        await self.dashboard.save([DashboardCard('breakdown', 'Breakdown', 'x'),
                                   DashboardCard('balance', 'Balance', 'x')])
        cards = await self.dashboard.load()
        self.assertEqual([c.id for c in cards], ['balance', 'form', 'list', 'categorycharts'])

    async def test_failed_remote_save_is_kept_locally(self):
        self.backend.available = False
        cards = default_dashboard_cards()[:2]
        with self.assertLogs(level='WARNING'):
            await self.dashboard.save(cards)
        self.assertEqual(len(self.store.load(EntityType.DashboardSettings)), 2)
