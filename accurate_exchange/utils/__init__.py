"""Utility modules for Accurate Exchange."""

from .crud_helpers import (
    create_record,
    delete_record,
    get_record,
    get_record_by_id,
    list_records,
    update_record,
)
from .json_utils import dumps, loads
from .logger import ContextAwareLogger, CorrelationIdFilter, configure_logging, get_logger

__all__ = [
    # CRUD
    "create_record",
    "delete_record",
    "get_record",
    "get_record_by_id",
    "list_records",
    "update_record",
    # JSON
    "dumps",
    "loads",
    # Logging
    "ContextAwareLogger",
    "CorrelationIdFilter",
    "configure_logging",
    "get_logger",
]
