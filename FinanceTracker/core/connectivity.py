"""Online/offline tracking for the sync engine.

:class:`ConnectivityMonitor` owns the :class:`SyncStatus` and notifies subscribers of
every change. Reachability is decided by opening a TCP connection to the remote
host. A transition to online invokes the registered reconnect handler once, which is
how the sync orchestrator gets triggered.
"""
import asyncio
import dataclasses
import logging
import socket
from typing import Any, Awaitable, Callable, Optional, Set

from PySide6 import QtCore

from .signals import signals

DEFAULT_PROBE_HOST = 'sheets.googleapis.com'
DEFAULT_PROBE_PORT = 443
DEFAULT_PROBE_TIMEOUT = 3.0
DEFAULT_POLL_INTERVAL = 15.0

ReconnectHandler = Callable[[], Awaitable[Any]]


@dataclasses.dataclass
class SyncStatus:
    """Snapshot of the engine's connectivity.

    Attributes:
        is_online (bool): Whether the remote host is reachable.
        is_syncing (bool): Whether a full sync pass is running.
        last_sync (str): ISO-8601 time of the last finished pass, or None.
    """
    is_online: bool = False
    is_syncing: bool = False
    last_sync: Optional[str] = None


def probe(host: str = DEFAULT_PROBE_HOST, port: int = DEFAULT_PROBE_PORT,
          timeout: float = DEFAULT_PROBE_TIMEOUT) -> bool:
    """Return True if a TCP connection to ``host:port`` can be opened within ``timeout`` seconds."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError as ex:
        logging.debug(f'Reachability probe to {host}:{port} failed: {ex}')
        return False


class ConnectivityMonitor(QtCore.QObject):
    """Tracks connectivity and sync state and notifies subscribers.

    Subscribers are connected directly to :attr:`statusChanged`, so they are called
    synchronously and in registration order.

    Args:
        is_online (bool): Initial reachability. None probes the remote host.
        last_sync (str): Timestamp of the last finished pass, e.g. loaded from the local store.
        probe_host (str): Host used for reachability checks.
        probe_port (int): Port used for reachability checks.
        probe_timeout (float): Seconds to wait for a connection.
    """
    statusChanged = QtCore.Signal(object)

    def __init__(
            self,
            is_online: Optional[bool] = None,
            last_sync: Optional[str] = None,
            probe_host: str = DEFAULT_PROBE_HOST,
            probe_port: int = DEFAULT_PROBE_PORT,
            probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
            parent: Optional[QtCore.QObject] = None,
    ) -> None:
        super().__init__(parent=parent)
        self.probe_host = probe_host
        self.probe_port = probe_port
        self.probe_timeout = probe_timeout

        if is_online is None:
            is_online = self.probe()
        self._status = SyncStatus(is_online=is_online, last_sync=last_sync)

        self._reconnect_handler: Optional[ReconnectHandler] = None
        self._tasks: Set[asyncio.Task] = set()
        self._poll_task: Optional[asyncio.Task] = None
        logging.debug(f'Connectivity monitor created (online: {is_online}).')

    def probe(self) -> bool:
        return probe(self.probe_host, self.probe_port, self.probe_timeout)

    def get_status(self) -> SyncStatus:
        return dataclasses.replace(self._status)

    @property
    def is_online(self) -> bool:
        return self._status.is_online

    @property
    def is_syncing(self) -> bool:
        return self._status.is_syncing

    def _notify(self) -> None:
        self.statusChanged.emit(self.get_status())

    def subscribe(self, callback: Callable[[SyncStatus], None]) -> Callable[[], None]:
        """Register ``callback`` and call it once with the current status.

        Returns:
            A function that removes the subscription.
        """
        self.statusChanged.connect(callback, type=QtCore.Qt.ConnectionType.DirectConnection)
        callback(self.get_status())

        def unsubscribe() -> None:
            try:
                self.statusChanged.disconnect(callback)
            except (RuntimeError, TypeError):
                logging.debug('Connectivity subscriber was already removed.')

        return unsubscribe

    def set_reconnect_handler(self, handler: Optional[ReconnectHandler]) -> None:
        """Set the coroutine function invoked when connectivity returns, None to remove it."""
        self._reconnect_handler = handler

    def set_online(self, is_online: bool) -> Optional[asyncio.Task]:
        """Record a reachability change.

        Returns:
            The task running the reconnect handler when going online, otherwise None.
        """
        if is_online == self._status.is_online:
            return None

        self._status.is_online = is_online
        logging.info(f'Connectivity changed: {"online" if is_online else "offline"}.')
        self._notify()
        signals.connectivityChanged.emit(is_online)

        if is_online and self._reconnect_handler is not None:
            return self._schedule(self._reconnect_handler)
        return None

    def _schedule(self, handler: ReconnectHandler) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logging.warning('No running event loop; the reconnect handler was not scheduled.')
            return None

        task = loop.create_task(handler())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def set_syncing(self, is_syncing: bool) -> None:
        if is_syncing == self._status.is_syncing:
            return
        self._status.is_syncing = is_syncing
        self._notify()

    def set_last_sync(self, timestamp: Optional[str]) -> None:
        self._status.last_sync = timestamp
        self._notify()

    async def _poll(self, interval: float) -> None:
        while True:
            is_online = await asyncio.to_thread(self.probe)
            self.set_online(is_online)
            await asyncio.sleep(interval)

    def start(self, interval: float = DEFAULT_POLL_INTERVAL) -> asyncio.Task:
        """Start polling reachability every ``interval`` seconds on the running event loop."""
        if self._poll_task is None or self._poll_task.done():
            logging.debug(f'Polling connectivity every {interval} seconds.')
            self._poll_task = asyncio.get_running_loop().create_task(self._poll(interval))
        return self._poll_task

    async def stop(self) -> None:
        """Stop polling and wait for the polling task to finish."""
        if self._poll_task is None:
            return
        self._poll_task.cancel()
        try:
            await self._poll_task
        except asyncio.CancelledError:
            pass
        self._poll_task = None
        logging.debug('Stopped polling connectivity.')
