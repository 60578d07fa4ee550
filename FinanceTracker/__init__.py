"""
FinanceTracker: offline-first persistence and synchronization engine for a personal finance tracker.

This package provides:

- :mod:`FinanceTracker.core` – Local store, pending queue, remote backends, connectivity and the sync orchestrator.
- :mod:`FinanceTracker.services` – Entity services validating input and driving local-first writes.
- :mod:`FinanceTracker.settings` – Settings management, schema validation and locale helpers.
- :mod:`FinanceTracker.status` – Status codes and the exception taxonomy.
- :mod:`FinanceTracker.log` – Logging setup and the in-memory log tank.

Use :class:`FinanceTracker.session.Session` to construct and start the engine.
"""

import sys

# Fail on Python < 3.11
if not (sys.version_info.major == 3 and sys.version_info.minor >= 11):
    raise RuntimeError('FinanceTracker requires Python 3.11 or higher.')

__version__ = '0.1.0'
__license__ = 'GPL-3.0'
__description__ = 'FinanceTracker: offline-first transactions, wallets and categories with remote sync.'
