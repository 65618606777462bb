"""
Import file parsers.

CSV, XLSX, and JSON uploads are turned into rows keyed by canonical field
names. Columns are recognised by loose header matching (``Item Code``,
``itemCode``, ``item code`` ...), and dates are normalised to YYYY-MM-DD
where they are recognisable; anything else is left for row validation.
"""

import csv
import io
import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import openpyxl

from ..constants import ExportFormat
from ..exceptions import ErrorCode, ValidationError, validation_failed
from ..utils.json_utils import loads

# (canonical field, header fragments) in match order
COLUMN_PATTERNS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("item_code", ("itemcode", "item code", "item_code")),
    ("item_name", ("itemname", "item name", "item_name")),
    ("type", ("type",)),
    ("quantity", ("quantity",)),
    ("unit", ("unit",)),
    ("date", ("date",)),
    ("reference_number", ("reference", "adjustment number", "adjustment no")),
    ("warehouse", ("warehouse",)),
    ("description", ("description",)),
)
REQUIRED_COLUMNS = ("item_code", "type", "quantity", "unit", "date")

_DMY = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


def normalize_date(value: Any) -> Any:
    """YYYY-MM-DD for dates, datetimes, and D/M/YYYY strings; other values unchanged."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        text = value.strip()
        match = _DMY.match(text)
        if match:
            day, month, year = match.groups()
            return f"{year}-{int(month):02d}-{int(day):02d}"
        return text
    return value


def map_headers(headers: Sequence[Any]) -> Dict[str, int]:
    """
    Locate each canonical column in a header row.

    Raises:
        ValidationError: If a required column is missing
    """
    normalized = [str(h or "").strip().lower() for h in headers]
    mapping: Dict[str, int] = {}
    for field, fragments in COLUMN_PATTERNS:
        for index, header in enumerate(normalized):
            if index in mapping.values():
                continue
            if any(fragment in header for fragment in fragments):
                mapping[field] = index
                break

    missing = [field for field in REQUIRED_COLUMNS if field not in mapping]
    if missing:
        raise ValidationError(
            f"Import file is missing required columns: {', '.join(missing)}",
            field="columns",
            reason="missing required columns",
            error_code=ErrorCode.MISSING_REQUIRED,
            missing=missing,
        )
    return mapping


def _record(mapping: Dict[str, int], values: Sequence[Any]) -> Dict[str, Any]:
    record: Dict[str, Any] = {}
    for field, index in mapping.items():
        value = values[index] if index < len(values) else None
        if isinstance(value, str):
            value = value.strip()
        record[field] = "" if value is None else value
    record["date"] = normalize_date(record.get("date"))
    return record


def _is_blank(values: Sequence[Any]) -> bool:
    return all(v is None or (isinstance(v, str) and not v.strip()) for v in values)


def _from_table(table: List[Sequence[Any]], source: str) -> List[Dict[str, Any]]:
    table = [row for row in table if not _is_blank(row)]
    if len(table) < 2:
        raise validation_failed("file", source, "must have a header row and at least one data row")
    mapping = map_headers(table[0])
    return [_record(mapping, row) for row in table[1:]]


def parse_csv(content: bytes) -> List[Dict[str, Any]]:
    text = content.decode("utf-8-sig")
    return _from_table(list(csv.reader(io.StringIO(text))), "csv")


def parse_xlsx(content: bytes) -> List[Dict[str, Any]]:
    wb = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    try:
        if not wb.worksheets:
            raise validation_failed("file", "xlsx", "must contain at least one worksheet")
        table = [list(row) for row in wb.worksheets[0].iter_rows(values_only=True)]
    finally:
        wb.close()
    return _from_table(table, "xlsx")


def parse_json(content: bytes) -> List[Dict[str, Any]]:
    try:
        data = loads(content)
    except ValueError as e:
        raise validation_failed("file", "json", "is not valid JSON", cause=e)
    if not isinstance(data, list) or not data:
        raise validation_failed("file", "json", "must be a non-empty array of objects")

    records = []
    for entry in data:
        if not isinstance(entry, dict):
            raise validation_failed("file", "json", "every element must be an object")
        keys = list(entry.keys())
        mapping = map_headers(keys)
        records.append(_record(mapping, [entry[k] for k in keys]))
    return records


def detect_format(filename: str) -> ExportFormat:
    extension = (filename or "").rsplit(".", 1)[-1].lower()
    try:
        return ExportFormat(extension)
    except ValueError:
        raise validation_failed("filename", filename, "must end in .csv, .xlsx, or .json")


def parse_import_file(filename: str, content: bytes, file_format: Optional[ExportFormat] = None) -> List[Dict[str, Any]]:
    """
    Parse an uploaded file into import rows.

    Raises:
        ValidationError: If the format is unsupported or required columns are missing
    """
    file_format = file_format or detect_format(filename)
    if file_format == ExportFormat.CSV:
        return parse_csv(content)
    if file_format == ExportFormat.XLSX:
        return parse_xlsx(content)
    return parse_json(content)
