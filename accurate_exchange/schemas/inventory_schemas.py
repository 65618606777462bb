"""
Row shapes for inventory adjustment import and export.

ExportRow serializes to the spreadsheet column names; ImportRow accepts those
same column names (as well as snake_case and camelCase keys) so an exported
file can be imported back unchanged.
"""

from datetime import date, datetime
from typing import Any, Dict, Optional, Sequence

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from ..constants import AdjustmentType

ADJUSTMENT_COLUMNS = (
    "Adjustment Number",
    "Date",
    "Item Name",
    "Item Code",
    "Type",
    "Quantity",
    "Unit",
    "Warehouse",
    "Description",
)


def parse_date(value: Any) -> date:
    """
    Parse an ISO (YYYY-MM-DD) or Accurate (DD/MM/YYYY) date.

    Raises:
        ValueError: If the value matches neither format
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value or "").strip()
    for fmt in ("%Y-%m-%d", "%d/%m/%Y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"'{text}' is not a YYYY-MM-DD or DD/MM/YYYY date")


def to_accurate_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


class ExportRow(BaseModel):
    """One projected inventory adjustment line."""

    model_config = ConfigDict(populate_by_name=True)

    adjustment_number: str = Field(default="", serialization_alias="Adjustment Number")
    date: str = Field(default="", serialization_alias="Date")
    item_name: str = Field(default="", serialization_alias="Item Name")
    item_code: str = Field(default="", serialization_alias="Item Code")
    type: str = Field(default="", serialization_alias="Type")
    quantity: float = Field(default=0, serialization_alias="Quantity")
    unit: str = Field(default="", serialization_alias="Unit")
    warehouse: str = Field(default="", serialization_alias="Warehouse")
    description: str = Field(default="", serialization_alias="Description")

    def to_record(self) -> Dict[str, Any]:
        """Column-name keyed record, in column order."""
        return self.model_dump(by_alias=True)


def _aliases(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class ImportRow(BaseModel):
    """A source row for ``item-adjustment/save.do``, validated before dispatch."""

    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    item_code: str = Field(..., min_length=1, validation_alias=_aliases("item_code", "itemCode", "Item Code"))
    item_name: Optional[str] = Field(None, validation_alias=_aliases("item_name", "itemName", "Item Name"))
    type: AdjustmentType = Field(..., validation_alias=_aliases("type", "Type"))
    quantity: float = Field(..., gt=0, validation_alias=_aliases("quantity", "Quantity"))
    unit: str = Field(..., min_length=1, validation_alias=_aliases("unit", "Unit"))
    adjustment_date: date = Field(
        ..., validation_alias=_aliases("adjustment_date", "date", "adjustmentDate", "Date")
    )
    reference_number: Optional[str] = Field(
        None,
        validation_alias=_aliases("reference_number", "referenceNumber", "Adjustment Number"),
    )
    warehouse: Optional[str] = Field(None, validation_alias=_aliases("warehouse", "Warehouse"))
    description: Optional[str] = Field(None, validation_alias=_aliases("description", "Description"))

    @field_validator("type", mode="before")
    @classmethod
    def parse_type(cls, v: Any) -> AdjustmentType:
        if isinstance(v, AdjustmentType):
            return v
        try:
            return AdjustmentType.parse(str(v or ""))
        except ValueError:
            raise ValueError("must be ADJUSTMENT_IN, ADJUSTMENT_OUT, Penambahan or Pengurangan") from None

    @field_validator("adjustment_date", mode="before")
    @classmethod
    def parse_adjustment_date(cls, v: Any) -> date:
        return parse_date(v)

    @field_validator("item_name", "reference_number", "warehouse", "description")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    def to_line(self) -> Dict[str, Any]:
        """One ``detailItem`` entry."""
        line: Dict[str, Any] = {
            "itemNo": self.item_code,
            "quantity": self.quantity,
            "itemAdjustmentType": self.type.value,
            "unitCost": 0,
        }
        if self.warehouse:
            line["warehouseName"] = self.warehouse
        return line


def adjustment_payload(rows: Sequence[ImportRow]) -> Dict[str, Any]:
    """
    Request body for ``item-adjustment/save.do``.

    The header (date, number, description) comes from the first row; every
    row contributes one detail line.
    """
    if not rows:
        raise ValueError("an adjustment needs at least one row")
    head = rows[0]
    payload: Dict[str, Any] = {
        "transDate": to_accurate_date(head.adjustment_date),
        "detailItem": [row.to_line() for row in rows],
    }
    if head.reference_number:
        payload["number"] = head.reference_number
    description = next((row.description for row in rows if row.description), None)
    if description:
        payload["description"] = description
    return payload
