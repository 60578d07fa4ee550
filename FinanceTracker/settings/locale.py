"""
Module for parsing locale formatted amounts using Babel.

"""
import decimal
from typing import Any

from babel import Locale, numbers


def parse_amount(value: Any, locale: str) -> decimal.Decimal:
    """
    Parse a user-entered amount into a Decimal.

    Strings are read with the locale's grouping and decimal symbols, so "50.000" in
    ``id_ID`` is fifty thousand. Numbers are converted without locale rules.

    Args:
        value: The raw amount, a string or a number.
        locale (str): Locale string, e.g. 'id_ID'.

    Returns:
        decimal.Decimal: The parsed amount.

    Raises:
        ValueError: If the value cannot be parsed as a number.
    """
    if isinstance(value, bool):
        raise ValueError(f'"{value}" is not an amount.')
    if isinstance(value, decimal.Decimal):
        return value
    if isinstance(value, (int, float)):
        return decimal.Decimal(str(value))

    text = str(value).strip()
    if not text:
        raise ValueError('Amount is empty.')
    try:
        return numbers.parse_decimal(text, locale=Locale.parse(locale))
    except numbers.NumberFormatError as ex:
        raise ValueError(f'"{text}" is not a valid amount for locale {locale}.') from ex
