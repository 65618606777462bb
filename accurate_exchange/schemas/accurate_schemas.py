"""
Pydantic models for Accurate API payloads.

Accurate wraps most responses as ``{"s": bool, "d": ...}``; when ``s`` is false
``d`` carries a list of human-readable messages instead of data. These models
validate each endpoint's payload at the boundary and ignore unknown fields.
"""

from typing import Any, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class AccurateModel(BaseModel):
    """Base for provider payloads: lenient about extra fields."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TokenGrant(AccurateModel):
    """Result of an OAuth code or refresh-token exchange."""

    api_token: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("access_token", "api_token", "token")
    )
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None


class DatabaseEntry(AccurateModel):
    """One database the token can open."""

    id: Union[int, str]
    alias: Optional[str] = None
    is_default: bool = Field(default=False, validation_alias=AliasChoices("default", "isDefault"))


class ResolvedDatabase(AccurateModel):
    """Host and session obtained by opening a database."""

    host: str
    session: Optional[str] = None
    database_id: Optional[str] = None


class OpenDbResponse(AccurateModel):
    """Payload of ``open-db.do``."""

    s: bool = True
    host: Optional[str] = None
    session: Optional[str] = None
    d: Any = None


class NamedRef(AccurateModel):
    name: Optional[str] = None


class ItemRef(AccurateModel):
    id: Optional[Union[int, str]] = None
    name: Optional[str] = None
    no: Optional[str] = None


class PageInfo(AccurateModel):
    page: int = 1
    page_size: int = Field(default=0, validation_alias=AliasChoices("pageSize", "page_size"))
    page_count: int = Field(default=0, validation_alias=AliasChoices("pageCount", "page_count"))
    row_count: Optional[int] = Field(default=None, validation_alias=AliasChoices("rowCount", "row_count"))


class AdjustmentSummary(AccurateModel):
    """An item adjustment as returned by ``list.do``."""

    id: Union[int, str]
    number: Optional[str] = None
    trans_date: Optional[str] = Field(default=None, validation_alias=AliasChoices("transDate", "trans_date"))
    description: Optional[str] = None


class AdjustmentListPage(AccurateModel):
    """One page of ``item-adjustment/list.do``."""

    s: bool = True
    d: List[AdjustmentSummary] = Field(default_factory=list)
    sp: Optional[PageInfo] = None


class AdjustmentLine(AccurateModel):
    """One item line inside an adjustment detail."""

    item: Optional[ItemRef] = None
    detail_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("detailName", "detail_name"))
    quantity: float = 0
    item_unit: Optional[NamedRef] = Field(
        default=None, validation_alias=AliasChoices("itemUnit", "unit", "item_unit")
    )
    warehouse: Optional[NamedRef] = None
    item_adjustment_type: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("itemAdjustmentType", "item_adjustment_type")
    )
    item_adjustment_type_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("itemAdjustmentTypeName", "type")
    )

    @property
    def adjustment_type(self) -> str:
        return self.item_adjustment_type or self.item_adjustment_type_name or ""


class AdjustmentDetail(AccurateModel):
    """Payload ``d`` of ``item-adjustment/detail.do``."""

    id: Union[int, str]
    number: Optional[str] = None
    trans_date: Optional[str] = Field(default=None, validation_alias=AliasChoices("transDate", "trans_date"))
    description: Optional[str] = None
    detail_item: List[AdjustmentLine] = Field(
        default_factory=list, validation_alias=AliasChoices("detailItem", "detail_item")
    )


class SaveResult(AccurateModel):
    """Payload ``d`` of a successful ``save.do``: record id and its number."""

    id: Union[int, str]
    number: Optional[str] = Field(default=None, validation_alias=AliasChoices("r", "number"))


class ItemRecord(AccurateModel):
    """An inventory item from ``item/list.do``."""

    id: Union[int, str]
    name: Optional[str] = None
    no: Optional[str] = None
    unit_name: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def extract_unit(cls, data: Any) -> Any:
        """Flatten the primary unit, reported either nested or as ``unit1Name``."""
        if isinstance(data, dict) and "unit_name" not in data:
            unit = data.get("unit1")
            if isinstance(unit, dict) and unit.get("name"):
                data = {**data, "unit_name": unit["name"]}
            elif data.get("unit1Name"):
                data = {**data, "unit_name": data["unit1Name"]}
        return data
