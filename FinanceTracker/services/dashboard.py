"""Dashboard layout: a single remote row holding the ordered card list."""
import datetime
import logging
from typing import List

from .base import EntityService
from ..core.models import (
    DashboardCard,
    EntityType,
    default_dashboard_cards,
    records_from_dicts,
)
from ..status import status

OBSOLETE_CARDS = {'breakdown'}
REQUIRED_CARDS = ('form', 'list', 'categorycharts')


def normalize_cards(cards: List[DashboardCard]) -> List[DashboardCard]:
    """Drop obsolete cards and append required cards missing from a stored layout."""
    defaults = {card.id: card for card in default_dashboard_cards()}
    result = [card for card in cards if card.id not in OBSOLETE_CARDS]
    present = {card.id for card in result}
    for card_id in REQUIRED_CARDS:
        if card_id not in present:
            result.append(defaults[card_id])
    return result


class DashboardSettingsService(EntityService):
    """Loads and saves the dashboard layout.

    The layout is not queued. A save that cannot reach the remote stays local and the
    orchestrator pushes the local layout on the next sync pass.
    """
    entity_type = EntityType.DashboardSettings

    async def load(self) -> List[DashboardCard]:
        """Return the remote layout, else the local layout, else the built-in layout."""
        if self.can_reach_remote:
            try:
                rows = await self.remote.list()
            except status.BackendUnavailableException:
                logging.warning('Remote backend unavailable, dashboard layout runs in local-only mode.')
                self.local_only = True
                rows = []
            except status.RemoteException as ex:
                logging.warning(f'Could not load the remote dashboard layout: {ex}')
                rows = []

            if rows and rows[0].get('cards'):
                cards = records_from_dicts(self.entity_type, rows[0]['cards'])
                self._save(cards)
                return cards

        cards = self.records()
        if cards:
            return normalize_cards(cards)
        return default_dashboard_cards()

    async def save(self, cards: List[DashboardCard]) -> List[DashboardCard]:
        """Store the layout locally, then write it to the remote singleton row."""
        cards = list(cards)
        self._save(cards)
        if not self.can_reach_remote:
            logging.debug('Dashboard layout saved locally only.')
            return cards
        try:
            await self.remote.upsert_singleton({
                'cards': [card.to_dict() for card in cards],
                'updated_at': datetime.datetime.now(datetime.timezone.utc).isoformat(),
            })
        except status.RemoteException as ex:
            logging.warning(f'Could not save the dashboard layout remotely, it is kept locally: {ex}')
        return cards

