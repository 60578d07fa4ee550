"""Root logger setup and the in-memory log tank.

:class:`~FinanceTracker.session.Session` calls :func:`setup_logging` when it is created.
The engine logs every queued write, sync pass and connectivity change, so the tank
holds its recent history. A UI layer reads it back with :meth:`TankHandler.get_logs`,
or :meth:`TankHandler.engine_events` for the sync related records only.
"""
import logging
import sys
from typing import List, Optional, Tuple

from PySide6.QtCore import QtMsgType, qInstallMessageHandler

from ..core.signals import signals

LOG_LEVEL = logging.INFO
LOG_FORMAT = '[%(asctime)s] <%(module)s> %(levelname)s:  %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

#: Modules whose records describe queue, sync and connectivity activity
ENGINE_MODULES = ('queue', 'sync', 'adapters', 'connectivity')

LEVELS = (
    logging.DEBUG,
    logging.INFO,
    logging.WARNING,
    logging.ERROR,
    logging.CRITICAL,
)


def set_logging_level(level: int) -> None:
    """Set the level of the root logger and of its handlers.

    Raises:
        ValueError: If ``level`` is not one of the standard logging levels.
    """
    if not isinstance(level, int):
        raise ValueError('Logging level must be an integer.')
    if level not in LEVELS:
        raise ValueError('Invalid logging level. Use one of the standard logging levels, e.g., logging.DEBUG.')

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        handler.setLevel(level)


def qt_message_handler(mode, context, message):
    """Route Qt's own messages, e.g. signal connection warnings, through Python logging."""
    logger = logging.getLogger('Qt')
    message = message.strip()

    if mode == QtMsgType.QtDebugMsg:
        logger.debug(message)
    elif mode == QtMsgType.QtInfoMsg:
        logger.info(message)
    elif mode == QtMsgType.QtWarningMsg:
        logger.warning(message)
    elif mode == QtMsgType.QtCriticalMsg:
        logger.error(message)
    elif mode == QtMsgType.QtFatalMsg:
        logger.critical(message)


def setup_logging(
        enable_stream_handler: bool = True,
        enable_qt_handler: bool = True,
        log_level: int = LOG_LEVEL,
) -> 'TankHandler':
    """Configure the root logger for the engine.

    Handlers left by an earlier call are replaced, so a process that creates a new
    session gets a fresh tank.

    Args:
        enable_stream_handler (bool): Attach a stdout stream handler.
        enable_qt_handler (bool): Route Qt's own messages through Python logging.
        log_level (int): Level applied to the root logger and its handlers.

    Returns:
        TankHandler: The in-memory handler attached to the root logger.
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    if enable_stream_handler:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(formatter)
        root_logger.addHandler(stream_handler)

    tank_handler = TankHandler()
    tank_handler.setFormatter(formatter)
    root_logger.addHandler(tank_handler)

    set_logging_level(log_level)

    if enable_qt_handler:
        qInstallMessageHandler(qt_message_handler)

    return tank_handler


class TankHandler(logging.Handler):
    """Stores formatted log messages in memory.

    An error level record emits ``signals.showLogs`` so a UI layer can bring up its
    log view, e.g. when a sync pass of one entity type failed.

    Attributes:
        tank (list[tuple[int, str, str]]): Level, module and formatted message of
            every stored record.
    """

    def __init__(self) -> None:
        super().__init__()
        self.tank: List[Tuple[int, str, str]] = []

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
            self.tank.append((record.levelno, record.module, message))
            if record.levelno >= logging.ERROR:
                signals.showLogs.emit()
        except Exception:
            self.handleError(record)

    def get_logs(self, level: int = logging.NOTSET, modules: Optional[Tuple[str, ...]] = None) -> List[str]:
        """Return the stored messages at or above ``level``.

        Args:
            level (int): The minimum logging level.
            modules (tuple[str, ...], optional): Only return records logged by these modules.
        """
        return [
            msg for lvl, module, msg in self.tank
            if lvl >= level and (modules is None or module in modules)
        ]

    def engine_events(self, level: int = logging.INFO) -> List[str]:
        """Return the queue, sync and connectivity messages at or above ``level``."""
        return self.get_logs(level, ENGINE_MODULES)

    def clear_logs(self) -> None:
        self.tank.clear()
