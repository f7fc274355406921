# hera/urp/core/presentation/renderers.py
"""
Text and binary renderers for csv, excel and pdf output.

All renderers take flat records (see ``records.to_records``).
"""
from __future__ import annotations

import html
import io
import logging
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping, Sequence

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from hera.urp.core.presentation.locale import (
    LocaleSpec,
    excel_currency_format,
    render_value,
)

logger = logging.getLogger(__name__)

# Excel's maximum row limit (excluding header)
EXCEL_MAX_ROWS = 1_048_575

# Sheet names: at most 31 characters, none of []:*?/\, no leading or trailing quote
EXCEL_SHEET_NAME_MAX = 31
_SHEET_NAME_FORBIDDEN = re.compile(r"[\[\]:*?/\\]")


def _frame(records: Sequence[Mapping[str, Any]], columns: list[str]) -> pd.DataFrame:
    # object dtype keeps None and Decimal as-is
    return pd.DataFrame(
        [[r.get(c) for c in columns] for r in records], columns=columns, dtype=object
    )


def render_csv(
    records: Sequence[Mapping[str, Any]],
    columns: list[str],
    locale: LocaleSpec,
    currency: str | None = None,
) -> str:
    if not columns:
        return ""
    df = _frame(records, columns)
    for column in columns:
        df[column] = df[column].map(lambda v: render_value(v, locale, currency)).astype(object)
    # Comma-decimal locales use ';' so amounts don't split fields
    sep = ";" if locale.decimal_sep == "," else ","
    return df.to_csv(index=False, sep=sep)


def render_excel(
    records: Sequence[Mapping[str, Any]],
    columns: list[str],
    locale: LocaleSpec,
    currency: str | None = None,
    sheet_name: str = "Report",
) -> bytes:
    df = _frame(records, columns)
    if len(df) > EXCEL_MAX_ROWS:
        logger.warning(
            "Report has %d rows, exceeding Excel's limit of %d; truncating",
            len(df),
            EXCEL_MAX_ROWS,
        )
        df = df.head(EXCEL_MAX_ROWS)

    money_columns = [c for c in columns if _is_money(df[c])]
    for column in columns:
        if column in money_columns:
            df[column] = df[column].map(lambda v: float(v) if v is not None else None)
        else:
            df[column] = df[column].map(_excel_cell)

    safe_name = excel_sheet_name(sheet_name)
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="xlsxwriter") as writer:
        df.to_excel(writer, sheet_name=safe_name, index=False)
        workbook = writer.book
        worksheet = writer.sheets[safe_name]

        header_format = workbook.add_format(
            {
                "bold": True,
                "text_wrap": True,
                "valign": "top",
                "fg_color": "#D7E4BC",
                "border": 1,
            }
        )
        money_format = workbook.add_format(
            {"num_format": excel_currency_format(locale, currency) if currency else "#,##0.00"}
        )

        for col_num, value in enumerate(df.columns.values):
            worksheet.write(0, col_num, value, header_format)

        for col_num, column in enumerate(df.columns):
            width = len(str(column))
            if len(df):
                width = max(width, int(df[column].astype(str).map(len).max()))
            cell_format = money_format if column in money_columns else None
            worksheet.set_column(col_num, col_num, min(width + 2, 50), cell_format)

    logger.debug("Rendered %d rows to xlsx", len(df))
    return buffer.getvalue()


def render_pdf(
    records: Sequence[Mapping[str, Any]],
    columns: list[str],
    locale: LocaleSpec,
    currency: str | None = None,
    title: str = "Report",
) -> bytes:
    styles = getSampleStyleSheet()
    cell_style = ParagraphStyle(name="TableCell", parent=styles["BodyText"], fontSize=7, leading=8.4)
    header_style = ParagraphStyle(
        name="TableHeader", parent=cell_style, fontName="Helvetica-Bold"
    )

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        leftMargin=0.4 * inch,
        rightMargin=0.4 * inch,
        topMargin=0.4 * inch,
        bottomMargin=0.4 * inch,
        title=title,
    )

    story: list[Any] = [Paragraph(html.escape(title), styles["Heading1"]), Spacer(1, 8)]
    if not records or not columns:
        story.append(Paragraph("No data available.", styles["BodyText"]))
    else:
        rows = [[Paragraph(html.escape(c), header_style) for c in columns]]
        for record in records:
            rows.append(
                [
                    Paragraph(html.escape(render_value(record.get(c), locale, currency)), cell_style)
                    for c in columns
                ]
            )
        table = Table(rows, repeatRows=1)
        table.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#d9e6f2")),
                    ("VALIGN", (0, 0), (-1, -1), "TOP"),
                    ("GRID", (0, 0), (-1, -1), 0.3, colors.HexColor("#bcccdc")),
                    ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f7fafc")]),
                ]
            )
        )
        story.append(table)

    doc.build(story)
    logger.debug("Rendered %d rows to pdf", len(records))
    return buffer.getvalue()


def _is_money(series: pd.Series) -> bool:
    values = [v for v in series if v is not None]
    return bool(values) and all(isinstance(v, Decimal) for v in values)


def _excel_cell(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str, date, datetime)):
        return value
    if isinstance(value, (list, tuple)):
        return " > ".join(str(v) for v in value)
    return str(value)


def excel_sheet_name(title: str | None) -> str:
    """Turn a report title into a name Excel accepts for a worksheet."""
    name = _SHEET_NAME_FORBIDDEN.sub("-", title or "").strip().strip("'").strip()
    if not name:
        return "Report"
    if name.lower() == "history":
        # Reserved by Excel
        return f"{name} report"
    if len(name) > EXCEL_SHEET_NAME_MAX:
        name = name[: EXCEL_SHEET_NAME_MAX - 3].rstrip("'") + "..."
    return name
