# hera/urp/core/presentation/formatter.py
"""
PresentationFormatter: convert a recipe payload into an output format.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Mapping

from hera.urp.core.context import ExecutionContext
from hera.urp.core.errors import UnsupportedFormatError
from hera.urp.core.presentation.locale import DEFAULT_LOCALE, get_locale
from hera.urp.core.presentation.records import columns_of, to_records
from hera.urp.core.presentation.renderers import render_csv, render_excel, render_pdf

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("json", "table", "csv", "excel", "pdf")

_MEDIA_TYPES = {
    "json": ("application/json", "json"),
    "table": ("application/json", "json"),
    "csv": ("text/csv", "csv"),
    "excel": ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", "xlsx"),
    "pdf": ("application/pdf", "pdf"),
}


@dataclass
class FormattedOutput:
    """
    Formatted report output.

    ``content`` is the raw payload for ``json``, a ``{columns, rows}`` dict
    for ``table``, text for ``csv`` and bytes for ``excel`` and ``pdf``.
    """

    format: str
    content: Any
    media_type: str
    extension: str
    metadata: dict[str, Any] = field(default_factory=dict)


class PresentationFormatter:
    """
    Formats payloads into ``json``, ``table``, ``csv``, ``excel`` or ``pdf``.

    Locale and currency only affect the rendered formats; ``json`` and
    ``table`` carry raw values.

    Config keys (as a recipe step):
        data: Payload to format (required)
        format: Output format (default ``json``)
        locale, currency, title: Rendering options
    """

    name: ClassVar[str] = "presentation_formatter"
    aliases: ClassVar[tuple[str, ...]] = ("presentationFormatter", "format")

    def __init__(self, default_locale: str = DEFAULT_LOCALE, default_currency: str | None = None) -> None:
        self.default_locale = default_locale
        self.default_currency = default_currency
        self._renderers: dict[str, Callable[..., FormattedOutput]] = {
            "json": self._json,
            "table": self._table,
            "csv": self._csv,
            "excel": self._excel,
            "pdf": self._pdf,
        }

    async def run(self, config: Mapping[str, Any], context: ExecutionContext) -> FormattedOutput:
        return self.format(
            config.get("data"),
            config.get("format") or "json",
            locale=config.get("locale"),
            currency=config.get("currency"),
            title=config.get("title"),
        )

    @property
    def formats(self) -> tuple[str, ...]:
        return tuple(self._renderers)

    def format(
        self,
        data: Any,
        format: str = "json",
        locale: str | None = None,
        currency: str | None = None,
        title: str | None = None,
    ) -> FormattedOutput:
        """
        Raises:
            UnsupportedFormatError: If ``format`` is not one of SUPPORTED_FORMATS
        """
        renderer = self._renderers.get(format)
        if renderer is None:
            raise UnsupportedFormatError(format, self._renderers)

        options = {
            "locale": locale or self.default_locale,
            "currency": currency or self.default_currency,
            "title": title or "Report",
        }
        output = renderer(data, **options)
        logger.debug("Formatted payload as %s (%s)", format, options["locale"])
        return output

    # -- renderers ---------------------------------------------------------

    def _json(self, data: Any, **_: Any) -> FormattedOutput:
        return _output("json", data)

    def _table(self, data: Any, **_: Any) -> FormattedOutput:
        records = to_records(data)
        columns = columns_of(records)
        rows = [[r.get(c) for c in columns] for r in records]
        return _output("table", {"columns": columns, "rows": rows})

    def _csv(self, data: Any, *, locale: str, currency: str | None, **_: Any) -> FormattedOutput:
        records = to_records(data)
        text = render_csv(records, columns_of(records), get_locale(locale), currency)
        return _output("csv", text)

    def _excel(self, data: Any, *, locale: str, currency: str | None, title: str) -> FormattedOutput:
        records = to_records(data)
        content = render_excel(
            records, columns_of(records), get_locale(locale), currency, sheet_name=title
        )
        return _output("excel", content)

    def _pdf(self, data: Any, *, locale: str, currency: str | None, title: str) -> FormattedOutput:
        records = to_records(data)
        content = render_pdf(records, columns_of(records), get_locale(locale), currency, title=title)
        return _output("pdf", content)


def _output(format: str, content: Any) -> FormattedOutput:
    media_type, extension = _MEDIA_TYPES[format]
    return FormattedOutput(format=format, content=content, media_type=media_type, extension=extension)
