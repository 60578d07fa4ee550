"""Application-wide Qt signals for FinanceTracker.

The engine has no user interface; these signals are the observer surface a UI layer
connects to. All connections are direct, so slots run synchronously on the emitting thread.
"""
from PySide6 import QtCore


class Signals(QtCore.QObject):
    """Centralized Qt signals for config, connectivity, sync and record events."""
    configSectionChanged = QtCore.Signal(str)
    metadataChanged = QtCore.Signal(str, object)

    connectivityChanged = QtCore.Signal(bool)

    syncStarted = QtCore.Signal()
    syncFinished = QtCore.Signal(str)  # ISO timestamp of the finished pass

    # Entity type value, e.g. 'transactions'
    recordsChanged = QtCore.Signal(str)
    recordQueued = QtCore.Signal(str, str)  # Entity type value, record id

    showLogs = QtCore.Signal()

    error = QtCore.Signal(str)


signals = Signals()
