"""Session: builds the engine's components and runs their lifecycle.

A session owns one settings instance, one local database and one remote backend.
Nothing is shared between sessions, so an application creates one session per
process and passes its services to the UI layer.

Example:

    .. code-block:: python

        session = Session()
        await session.start()
        await session.transactions.write({'amount': '50.000', 'category': 'Makanan',
                                          'description': 'Lunch', 'type': 'expense'})
        await session.stop()
"""
import logging
import pathlib
from typing import Callable, List, Optional, Union

from .core.adapters import default_adapters
from .core.auth import AuthManager
from .core.connectivity import ConnectivityMonitor, SyncStatus
from .core.database import DatabaseAPI, LocalStore
from .core.models import EntityType, TemporaryIdFactory
from .core.queue import PendingQueue
from .core.remote import MemoryBackend, RemoteBackend, RemoteStore
from .core.service import SheetsBackend
from .core.sync import SyncOrchestrator
from .log import log
from .services.base import EntityService
from .services.categories import CategoryService
from .services.dashboard import DashboardSettingsService
from .services.transactions import TransactionService
from .services.wallets import WalletService
from .settings.lib import SettingsAPI
from .status import status

_NOT_SET = object()


class Session:
    """Composition root of the engine.

    Args:
        root (str or Path): Application data directory. Defaults to the per-user location.
        backend (RemoteBackend): Remote backend to use instead of the configured one.
            Pass None for a session without remote.
        is_online (bool): Initial connectivity. None probes the configured host.
        log_level (int): Level of the root logger set up by the session. None leaves
            logging as configured by the host application.

    Attributes:
        log_tank (TankHandler): The in-memory log of the session, None when the session
            did not set up logging.
    """

    def __init__(
            self,
            root: Optional[Union[str, pathlib.Path]] = None,
            backend=_NOT_SET,
            is_online: Optional[bool] = None,
            log_level: Optional[int] = log.LOG_LEVEL,
    ) -> None:
        self.log_tank: Optional[log.TankHandler] = None
        if log_level is not None:
            self.log_tank = log.setup_logging(log_level=log_level)

        self.settings = SettingsAPI(root=root)
        remote_config = self.settings.get_section('remote')
        sync_config = self.settings.get_section('sync')
        self.sync_config = sync_config
        locale = self.settings['locale']

        self.database = DatabaseAPI(self.settings.db_path)
        self.store = LocalStore(self.database)
        self.queue = PendingQueue(self.database)
        self.auth_manager = AuthManager(self.settings)

        if backend is _NOT_SET:
            backend = self.create_backend(remote_config)
        self.backend: Optional[RemoteBackend] = backend

        if self.backend is None:
            is_online = False
        elif is_online is None and not isinstance(self.backend, SheetsBackend):
            is_online = True
        self.monitor = ConnectivityMonitor(
            is_online=is_online,
            last_sync=self.store.get_last_sync(),
            probe_host=sync_config['probe_host'],
            probe_port=sync_config['probe_port'],
            probe_timeout=sync_config['probe_timeout'],
        )

        id_factory = TemporaryIdFactory()
        remotes = {et: RemoteStore(self.backend, et.collection) for et in EntityType}

        self.wallets = WalletService(
            self.store, self.queue, remotes[EntityType.Wallets], self.monitor,
            id_factory=id_factory, locale=locale,
        )
        self.transactions = TransactionService(
            self.store, self.queue, remotes[EntityType.Transactions], self.monitor,
            wallets=self.wallets, locale=locale, id_factory=id_factory,
        )
        self.wallets.attach(self.transactions)
        self.categories = CategoryService(
            self.store, self.queue, remotes[EntityType.CustomCategories], self.monitor, id_factory=id_factory,
        )
        self.dashboard = DashboardSettingsService(
            self.store, self.queue, remotes[EntityType.DashboardSettings], self.monitor, id_factory=id_factory,
        )

        self.orchestrator = SyncOrchestrator(
            self.store,
            self.queue,
            self.monitor,
            default_adapters(self.backend, remotes[EntityType.Transactions]),
            enabled=self.backend is not None,
        )
        self._unsubscribers: List[Callable[[], None]] = []
        self._started = False

    def create_backend(self, remote_config: dict) -> Optional[RemoteBackend]:
        """Build the backend named by the ``remote.backend`` setting."""
        name = remote_config['backend']
        logging.debug(f'Using remote backend "{name}".')
        if name == 'none':
            return None
        if name == 'memory':
            return MemoryBackend()
        return SheetsBackend(
            remote_config['spreadsheet_id'],
            auth_manager=self.auth_manager,
            max_attempts=remote_config['max_attempts'],
            wait_seconds=remote_config['wait_seconds'],
        )

    @property
    def services(self) -> List[EntityService]:
        return [self.wallets, self.transactions, self.categories, self.dashboard]

    def get_status(self) -> SyncStatus:
        return self.monitor.get_status()

    def subscribe(self, callback: Callable[[SyncStatus], None]) -> Callable[[], None]:
        return self.monitor.subscribe(callback)

    async def sync(self) -> bool:
        return await self.orchestrator.run_full_sync()

    async def start(self) -> None:
        """Load every service, start connectivity polling and run the initial sync."""
        if self._started:
            return
        self._started = True

        for service in self.services:
            await service.load()
        if any(service.local_only for service in self.services):
            for service in self.services:
                service.local_only = True
            self.orchestrator.enabled = False
            logging.warning(status.get_message(status.Status.BackendUnavailable))

        self.orchestrator.start()
        if self.orchestrator.enabled:
            for service in self.services:
                self._unsubscribers.append(service.subscribe_remote())
            if isinstance(self.backend, SheetsBackend) and self.sync_config['poll_interval'] > 0:
                self.monitor.start(self.sync_config['poll_interval'])
            if self.sync_config['sync_on_start']:
                await self.orchestrator.run_full_sync()
        logging.info('Session started.')

    async def stop(self) -> None:
        """Stop polling, unregister the orchestrator and drop remote subscriptions."""
        if not self._started:
            return
        self._started = False

        self.orchestrator.stop()
        await self.monitor.stop()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        logging.info('Session stopped.')
