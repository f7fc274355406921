# hera/urp/core/presentation/locale.py
"""
Locale and currency rendering for human-facing formats (csv, excel, pdf).

Only a fixed set of locales is known; unknown tags fall back to the
language, then to ``en-US``.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "en-US"


@dataclass(frozen=True)
class LocaleSpec:
    tag: str
    decimal_sep: str
    group_sep: str
    date_pattern: str
    # "{symbol}{amount}" or "{amount} {symbol}"
    currency_pattern: str
    # xlsxwriter number format for currency cells ("{symbol}" is substituted)
    excel_currency: str


LOCALES: dict[str, LocaleSpec] = {
    spec.tag: spec
    for spec in (
        LocaleSpec("en-US", ".", ",", "%m/%d/%Y", "{symbol}{amount}", '"{symbol}"#,##0.00'),
        LocaleSpec("en-GB", ".", ",", "%d/%m/%Y", "{symbol}{amount}", '"{symbol}"#,##0.00'),
        LocaleSpec("en-IN", ".", ",", "%d/%m/%Y", "{symbol}{amount}", '"{symbol}"#,##0.00'),
        LocaleSpec("en-AE", ".", ",", "%d/%m/%Y", "{symbol} {amount}", '"{symbol}" #,##0.00'),
        LocaleSpec("de-DE", ",", ".", "%d.%m.%Y", "{amount} {symbol}", '#,##0.00 "{symbol}"'),
        LocaleSpec("fr-FR", ",", " ", "%d/%m/%Y", "{amount} {symbol}", '#,##0.00 "{symbol}"'),
        LocaleSpec("es-ES", ",", ".", "%d/%m/%Y", "{amount} {symbol}", '#,##0.00 "{symbol}"'),
        LocaleSpec("it-IT", ",", ".", "%d/%m/%Y", "{amount} {symbol}", '#,##0.00 "{symbol}"'),
        LocaleSpec("ja-JP", ".", ",", "%Y/%m/%d", "{symbol}{amount}", '"{symbol}"#,##0'),
    )
}

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "INR": "₹",
    "AED": "AED",
    "CHF": "CHF",
    "CAD": "CA$",
    "AUD": "A$",
    "SGD": "S$",
}

# ISO 4217 minor units that differ from 2
CURRENCY_DECIMALS = {"JPY": 0}


def get_locale(tag: str | None) -> LocaleSpec:
    if not tag:
        return LOCALES[DEFAULT_LOCALE]
    normalized = tag.replace("_", "-")
    if normalized in LOCALES:
        return LOCALES[normalized]
    language = normalized.split("-", 1)[0].lower()
    for spec in LOCALES.values():
        if spec.tag.split("-", 1)[0] == language:
            logger.debug("Locale %s not known, using %s", tag, spec.tag)
            return spec
    logger.debug("Locale %s not known, using %s", tag, DEFAULT_LOCALE)
    return LOCALES[DEFAULT_LOCALE]


def currency_symbol(currency: str) -> str:
    return CURRENCY_SYMBOLS.get(currency.upper(), currency.upper())


def format_number(value: Decimal | int | float, locale: LocaleSpec, decimals: int | None = 2) -> str:
    if decimals is None:
        text = f"{value:,}"
    else:
        quantized = Decimal(str(value)).quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP)
        text = f"{quantized:,.{decimals}f}"
    # Swap through a placeholder so "," and "." can exchange roles
    return text.replace(",", "\0").replace(".", locale.decimal_sep).replace("\0", locale.group_sep)


def format_currency(value: Decimal | int | float, locale: LocaleSpec, currency: str) -> str:
    decimals = CURRENCY_DECIMALS.get(currency.upper(), 2)
    amount = format_number(abs(Decimal(str(value))), locale, decimals)
    text = locale.currency_pattern.format(symbol=currency_symbol(currency), amount=amount)
    return f"-{text}" if Decimal(str(value)) < 0 else text


def format_date(value: date | datetime, locale: LocaleSpec) -> str:
    if isinstance(value, datetime):
        return value.strftime(f"{locale.date_pattern} %H:%M")
    return value.strftime(locale.date_pattern)


def excel_currency_format(locale: LocaleSpec, currency: str) -> str:
    fmt = locale.excel_currency.format(symbol=currency_symbol(currency))
    if CURRENCY_DECIMALS.get(currency.upper(), 2) == 0:
        fmt = fmt.replace("#,##0.00", "#,##0")
    return fmt


def render_value(value: Any, locale: LocaleSpec, currency: str | None = None) -> str:
    """
    Render one cell for text output.

    Decimals are treated as money: with a currency they get its symbol,
    otherwise two decimals. Integers keep no decimals.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return format_currency(value, locale, currency) if currency else format_number(value, locale)
    if isinstance(value, int):
        return format_number(value, locale, decimals=None)
    if isinstance(value, float):
        return format_number(value, locale)
    if isinstance(value, (date, datetime)):
        return format_date(value, locale)
    if isinstance(value, (list, tuple)):
        return " > ".join(str(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, default=str, sort_keys=True)
    return str(value)
