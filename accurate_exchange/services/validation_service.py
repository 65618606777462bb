"""
Pre-dispatch validation of import rows.

A row must have the right shape, a date inside the accepted window, an item
code that exists in Accurate, and a unit matching the item's registered unit.
Item lookups are memoized for the lifetime of one validator (one job).
"""

import threading
from datetime import date, timedelta
from typing import Any, Callable, Dict, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from ..accurate.dispatcher import SigningCredential
from ..accurate.resources import ResourceAdapter
from ..config import ImportConfig, get_config
from ..exceptions import BaseError, row_invalid
from ..utils.logger import get_logger

_PYDANTIC_PREFIXES = ("Value error, ", "Assertion failed, ")


def _field_names(model: Any) -> Dict[str, str]:
    """Map every accepted alias of a row model to its canonical field name."""
    names: Dict[str, str] = {}
    for name, info in model.model_fields.items():
        names[name] = name
        alias = info.validation_alias
        for choice in getattr(alias, "choices", None) or ([alias] if isinstance(alias, str) else []):
            if isinstance(choice, str):
                names[choice] = name
    return names


def _reason(message: str) -> str:
    for prefix in _PYDANTIC_PREFIXES:
        if message.startswith(prefix):
            return message[len(prefix):]
    return message


class RowValidator:
    """Validates the rows of one import against one credential."""

    def __init__(
        self,
        resource: ResourceAdapter,
        credential: SigningCredential,
        config: Optional[ImportConfig] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.resource = resource
        self.credential = credential
        self.config = config or get_config().imports
        self._today = today or date.today
        self._field_names = _field_names(resource.row_model)
        self._items: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self.logger = get_logger()

    @property
    def lookups(self) -> int:
        return len(self._items)

    def lookup_item(self, code: str) -> Optional[Any]:
        """Resolve an item code once per validator."""
        with self._lock:
            if code in self._items:
                return self._items[code]
        item = self.resource.lookup_item(self.credential, code)
        with self._lock:
            self._items[code] = item
        return item

    def validate(self, row_index: int, raw: Any) -> Any:
        """
        Validate one raw row.

        Returns:
            The parsed row model

        Raises:
            ValidationError: With the failing field and reason
        """
        if not isinstance(raw, Mapping):
            raise row_invalid(row_index, "row", "must be a mapping of column to value")

        try:
            row = self.resource.parse_row(raw)
        except PydanticValidationError as e:
            first = e.errors()[0]
            loc = first.get("loc") or ("row",)
            field = self._field_names.get(str(loc[0]), str(loc[0]))
            raise row_invalid(row_index, field, _reason(first.get("msg", "invalid")))

        self._check_date(row_index, row)
        self._check_item(row_index, row)
        return row

    def _check_date(self, row_index: int, row: Any) -> None:
        value = getattr(row, "adjustment_date", None)
        if value is None:
            return
        latest = self._today() + timedelta(days=self.config.max_future_days)
        if value < self.config.earliest_date or value > latest:
            raise row_invalid(
                row_index,
                "adjustment_date",
                f"{value.isoformat()} is outside "
                f"{self.config.earliest_date.isoformat()}..{latest.isoformat()}",
            )

    def _check_item(self, row_index: int, row: Any) -> None:
        code = row.item_code
        try:
            item = self.lookup_item(code)
        except BaseError as e:
            # Retried by resuming the job
            raise row_invalid(row_index, "item_code", f"lookup failed: {e.message}")
        except PydanticValidationError as e:
            raise row_invalid(
                row_index, "item_code", f"lookup failed: malformed item record ({e.error_count()} errors)"
            )

        if item is None:
            raise row_invalid(row_index, "item_code", f"'{code}' not found in Accurate")

        registered = getattr(item, "unit_name", None)
        unit = getattr(row, "unit", None)
        if registered and unit and unit.strip().lower() != registered.strip().lower():
            raise row_invalid(
                row_index, "unit", f"'{unit}' does not match item unit '{registered}'"
            )
