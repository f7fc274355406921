# tests/core/presentation/test_locale.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from hera.urp.core.presentation.locale import (
    excel_currency_format,
    format_currency,
    format_number,
    get_locale,
    render_value,
)


class TestGetLocale:
    def test_exact(self):
        assert get_locale("fr-FR").tag == "fr-FR"

    def test_underscore(self):
        assert get_locale("de_DE").tag == "de-DE"

    def test_language_fallback(self):
        assert get_locale("de-AT").tag == "de-DE"

    def test_unknown_falls_back_to_default(self):
        assert get_locale("xx-YY").tag == "en-US"
        assert get_locale(None).tag == "en-US"


class TestFormatting:
    @pytest.mark.parametrize(
        "tag,expected",
        [
            ("en-US", "1,234,567.89"),
            ("de-DE", "1.234.567,89"),
            ("fr-FR", "1 234 567,89"),
        ],
    )
    def test_number_separators(self, tag, expected):
        assert format_number(Decimal("1234567.885"), get_locale(tag)) == expected

    def test_round_half_up(self):
        assert format_number(Decimal("0.125"), get_locale("en-US")) == "0.13"

    def test_currency(self):
        assert format_currency(Decimal("10"), get_locale("en-US"), "USD") == "$10.00"
        assert format_currency(Decimal("-10"), get_locale("de-DE"), "EUR") == "-10,00 €"

    def test_zero_decimal_currency(self):
        assert format_currency(Decimal("1500.4"), get_locale("ja-JP"), "JPY") == "¥1,500"

    def test_unknown_currency_uses_code(self):
        assert format_currency(Decimal("1"), get_locale("en-US"), "XYZ") == "XYZ1.00"

    def test_excel_formats(self):
        assert excel_currency_format(get_locale("en-US"), "USD") == '"$"#,##0.00'
        assert excel_currency_format(get_locale("en-US"), "JPY") == '"¥"#,##0'


class TestRenderValue:
    locale = get_locale("en-GB")

    def test_scalars(self):
        assert render_value(None, self.locale) == ""
        assert render_value(True, self.locale) == "true"
        assert render_value(1200, self.locale) == "1,200"
        assert render_value(2.5, self.locale) == "2.50"

    def test_dates(self):
        assert render_value(date(2024, 3, 1), self.locale) == "01/03/2024"
        assert render_value(datetime(2024, 3, 1, 9, 5), self.locale) == "01/03/2024 09:05"

    def test_path_and_mapping(self):
        assert render_value(["a", "b"], self.locale) == "a > b"
        assert render_value({"b": 1, "a": 2}, self.locale) == '{"a": 2, "b": 1}'

    def test_decimal_with_and_without_currency(self):
        assert render_value(Decimal("3"), self.locale) == "3.00"
        assert render_value(Decimal("3"), self.locale, "GBP") == "£3.00"
