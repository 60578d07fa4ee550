"""
Core of the engine: records, local persistence, the pending queue, remote backends,
connectivity tracking and the sync orchestrator.

Modules:

- :mod:`FinanceTracker.core.models` – Typed records, tagged ids and built-in defaults.
- :mod:`FinanceTracker.core.database` – SQLite key/value database and the local store.
- :mod:`FinanceTracker.core.queue` – Durable queue of writes awaiting remote confirmation.
- :mod:`FinanceTracker.core.remote` – Remote backend contract, in-memory backend and per-collection facade.
- :mod:`FinanceTracker.core.service` – Google Sheets remote backend.
- :mod:`FinanceTracker.core.auth` – Google OAuth2 credential management.
- :mod:`FinanceTracker.core.connectivity` – Online/offline status and subscribers.
- :mod:`FinanceTracker.core.adapters` – Per entity type upload and download behavior.
- :mod:`FinanceTracker.core.sync` – Single-flight full sync pass.
- :mod:`FinanceTracker.core.signals` – Application-wide Qt signals.
"""
