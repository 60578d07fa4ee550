"""
Entity services: the public write API of the engine.

Modules:

- :mod:`FinanceTracker.services.base` – Local-first create, edit and delete shared by all services.
- :mod:`FinanceTracker.services.transactions` – Transaction validation, writes, imports and reset.
- :mod:`FinanceTracker.services.wallets` – Wallets, balance deltas and the Global wallet.
- :mod:`FinanceTracker.services.categories` – Custom categories.
- :mod:`FinanceTracker.services.dashboard` – Dashboard layout.
"""
