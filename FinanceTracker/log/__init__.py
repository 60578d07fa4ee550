"""
Logging subsystem for FinanceTracker.

Modules:

- :mod:`FinanceTracker.log.log` – Root logger setup, Qt message bridge and the in-memory log tank.
"""
