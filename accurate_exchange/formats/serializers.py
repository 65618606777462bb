"""
Export serializers: column-keyed rows to CSV, XLSX, or JSON bytes.
"""

import csv
import io
from typing import Any, Dict, Iterable, List, Sequence

import openpyxl
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from ..constants import ExportFormat
from ..utils.json_utils import dumps

MEDIA_TYPES = {
    ExportFormat.CSV: "text/csv; charset=utf-8",
    ExportFormat.XLSX: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ExportFormat.JSON: "application/json",
}


def _plain(value: Any) -> Any:
    """Whole floats become ints so quantities read ``5`` rather than ``5.0``."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _normalized(columns: Sequence[str], rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [{column: _plain(row.get(column, "")) for column in columns} for row in rows]


def to_csv(columns: Sequence[str], rows: Iterable[Dict[str, Any]]) -> bytes:
    buffer = io.StringIO(newline="")
    writer = csv.DictWriter(buffer, fieldnames=list(columns), quoting=csv.QUOTE_MINIMAL)
    writer.writeheader()
    writer.writerows(_normalized(columns, rows))
    return buffer.getvalue().encode("utf-8")


def to_xlsx(columns: Sequence[str], rows: Iterable[Dict[str, Any]], title: str = "Export") -> bytes:
    """Single sheet: bold header row followed by one row per record."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = title[:31]

    ws.append(list(columns))
    header_font = Font(bold=True)
    for cell in ws[1]:
        cell.font = header_font

    for row in _normalized(columns, rows):
        ws.append([row[column] for column in columns])

    for index, column in enumerate(columns, start=1):
        ws.column_dimensions[get_column_letter(index)].width = max(12, len(column) + 2)

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def to_json(columns: Sequence[str], rows: Iterable[Dict[str, Any]]) -> bytes:
    return dumps(_normalized(columns, rows), indent=2, ensure_ascii=False).encode("utf-8")


def serialize(
    export_format: ExportFormat,
    columns: Sequence[str],
    rows: Iterable[Dict[str, Any]],
    title: str = "Export",
) -> bytes:
    """Serialize rows in the requested format."""
    if export_format == ExportFormat.CSV:
        return to_csv(columns, rows)
    if export_format == ExportFormat.XLSX:
        return to_xlsx(columns, rows, title=title)
    return to_json(columns, rows)
