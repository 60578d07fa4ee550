"""Full sync pass over every entity type.

:class:`SyncOrchestrator` moves from idle to syncing and back. Only one pass runs at a
time: a call made while a pass is in flight, or while offline, returns False without
doing anything. Each adapter runs in a fixed order and a failure in one of them is
logged without stopping the others.
"""
import datetime
import logging
from typing import List, Optional

from .adapters import EntitySyncAdapter
from .connectivity import ConnectivityMonitor
from .database import LocalStore
from .queue import PendingQueue
from .signals import signals
from ..status import status


class SyncOrchestrator:
    """Drives full sync passes.

    Args:
        store (LocalStore): Local record lists.
        queue (PendingQueue): Pending writes.
        monitor (ConnectivityMonitor): Connectivity and sync status.
        adapters (list[EntitySyncAdapter]): Adapters in the order they run.
        enabled (bool): False for sessions without a remote backend.
    """

    def __init__(
            self,
            store: LocalStore,
            queue: PendingQueue,
            monitor: ConnectivityMonitor,
            adapters: List[EntitySyncAdapter],
            enabled: bool = True,
    ) -> None:
        self.store = store
        self.queue = queue
        self.monitor = monitor
        self.adapters = adapters
        self.enabled = enabled

    @property
    def is_syncing(self) -> bool:
        return self.monitor.is_syncing

    def start(self) -> None:
        """Run a pass every time connectivity returns."""
        self.monitor.set_reconnect_handler(self.run_full_sync)

    def stop(self) -> None:
        self.monitor.set_reconnect_handler(None)

    async def run_full_sync(self) -> bool:
        """Upload pending writes and download the remote records for every entity type.

        Returns:
            bool: True if a pass ran, False if it was skipped.
        """
        if not self.enabled:
            logging.debug('Sync skipped: no remote backend configured.')
            return False
        if self.monitor.is_syncing:
            logging.debug('Sync skipped: a sync pass is already running.')
            return False
        if not self.monitor.is_online:
            logging.debug('Sync skipped: offline.')
            return False

        # Set before the first await so overlapping calls see the running pass
        self.monitor.set_syncing(True)
        signals.syncStarted.emit()
        logging.info('Sync pass started.')

        timestamp: Optional[str] = None
        try:
            for adapter in self.adapters:
                try:
                    await adapter.sync(self.store, self.queue)
                except Exception as ex:
                    logging.error(f'Sync of {adapter.entity_type.value} failed: {ex}', exc_info=True)

            timestamp = datetime.datetime.now(datetime.timezone.utc).isoformat()
            try:
                self.store.set_last_sync(timestamp)
            except status.LocalStoreException:
                logging.error('Could not persist the last sync time.')
            self.monitor.set_last_sync(timestamp)
        finally:
            self.monitor.set_syncing(False)

        logging.info(f'Sync pass finished at {timestamp}.')
        signals.syncFinished.emit(timestamp)
        return True
