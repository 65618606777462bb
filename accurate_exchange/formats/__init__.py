"""File formats for bulk export and import."""

from .parsers import detect_format, map_headers, normalize_date, parse_import_file
from .serializers import MEDIA_TYPES, serialize, to_csv, to_json, to_xlsx

__all__ = [
    "detect_format",
    "map_headers",
    "normalize_date",
    "parse_import_file",
    "MEDIA_TYPES",
    "serialize",
    "to_csv",
    "to_json",
    "to_xlsx",
]
