"""
Settings package for FinanceTracker.

Modules:

- :mod:`FinanceTracker.settings.lib` – Config paths, schema validation and the settings API.
- :mod:`FinanceTracker.settings.locale` – Locale-aware amount parsing and formatting.
"""
