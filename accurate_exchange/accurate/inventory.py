"""
Inventory adjustment resource.

Export pages through ``item-adjustment/list.do`` and expands each entry with
``detail.do`` into one row per item line. Import submits one ``save.do``
call per row, except that rows sharing a date and reference number are sent
together as the lines of one adjustment.
"""

from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..constants import AccurateEndpoint, ResourceType
from ..exceptions import ProviderError, validation_failed
from ..schemas import (
    ADJUSTMENT_COLUMNS,
    AdjustmentDetail,
    AdjustmentListPage,
    AdjustmentSummary,
    ExportRow,
    ImportRow,
    ItemRecord,
    SaveResult,
    adjustment_payload,
    parse_date,
    to_accurate_date,
)
from .dispatcher import ApiRequest, SigningCredential
from .resources import ResourceAdapter, register_resource

ITEM_FIELDS = "id,name,no,unit1"


def _filter_date(field: str, value: Any) -> str:
    try:
        return to_accurate_date(parse_date(value))
    except ValueError as e:
        raise validation_failed(field, value, "must be YYYY-MM-DD or DD/MM/YYYY", cause=e)


def build_list_params(
    page: int, page_size: int, filters: Optional[Mapping[str, Any]] = None
) -> Dict[str, Any]:
    """Query string for ``list.do``: paging plus the optional transaction date range."""
    params: Dict[str, Any] = {"sp.page": page, "sp.pageSize": page_size}
    filters = filters or {}
    if filters.get("start_date"):
        params["filter.transDate.start"] = _filter_date("start_date", filters["start_date"])
    if filters.get("end_date"):
        params["filter.transDate.end"] = _filter_date("end_date", filters["end_date"])
    return params


def _iso_date(value: Optional[str]) -> str:
    if not value:
        return ""
    try:
        return parse_date(value).isoformat()
    except ValueError:
        return value


def project_detail(detail: AdjustmentDetail) -> List[Dict[str, Any]]:
    """One column-keyed record per detail line."""
    rows = []
    for line in detail.detail_item:
        item = line.item
        rows.append(
            ExportRow(
                adjustment_number=detail.number or "",
                date=_iso_date(detail.trans_date),
                item_name=(item.name if item and item.name else line.detail_name) or "",
                item_code=(item.no if item else None) or "",
                type=line.adjustment_type,
                quantity=line.quantity,
                unit=(line.item_unit.name if line.item_unit else None) or "",
                warehouse=(line.warehouse.name if line.warehouse else None) or "",
                description=detail.description or "",
            ).to_record()
        )
    return rows


@register_resource
class InventoryAdjustmentResource(ResourceAdapter):
    """Accurate item adjustments (stock in/out corrections)."""

    resource_type = ResourceType.INVENTORY_ADJUSTMENT
    columns = ADJUSTMENT_COLUMNS
    row_model = ImportRow

    def check_filters(self, filters: Mapping[str, Any]) -> None:
        build_list_params(1, 1, filters)

    def list_page(
        self,
        credential: SigningCredential,
        page: int,
        page_size: int,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> List[AdjustmentSummary]:
        response = self.dispatcher.dispatch(
            credential,
            ApiRequest(
                method="GET",
                path=AccurateEndpoint.ITEM_ADJUSTMENT_LIST.value,
                params=build_list_params(page, page_size, filters),
            ),
        )
        return AdjustmentListPage.model_validate(response.payload()).d

    def get_detail(self, credential: SigningCredential, adjustment_id: Any) -> AdjustmentDetail:
        response = self.dispatcher.dispatch(
            credential,
            ApiRequest(
                method="GET",
                path=AccurateEndpoint.ITEM_ADJUSTMENT_DETAIL.value,
                params={"id": str(adjustment_id)},
            ),
        )
        return AdjustmentDetail.model_validate(response.payload().get("d") or {})

    def expand(self, credential: SigningCredential, summary: AdjustmentSummary) -> List[Dict[str, Any]]:
        return project_detail(self.get_detail(credential, summary.id))

    def _find_items(self, credential: SigningCredential, params: List[tuple]) -> List[ItemRecord]:
        response = self.dispatcher.dispatch(
            credential,
            ApiRequest(
                method="GET",
                path=AccurateEndpoint.ITEM_LIST.value,
                params=[("fields", ITEM_FIELDS), *params],
            ),
        )
        return [ItemRecord.model_validate(item) for item in response.payload().get("d") or []]

    def lookup_item(self, credential: SigningCredential, code: str) -> Optional[ItemRecord]:
        """Exact match on item number first, then a keyword search."""
        exact = self._find_items(
            credential, [("filter.no.op", "EQUAL"), ("filter.no.val[0]", code)]
        )
        if exact:
            return exact[0]

        matches = self._find_items(
            credential, [("filter.keywords.op", "CONTAIN"), ("filter.keywords.val[0]", code)]
        )
        return matches[0] if matches else None

    def group_key(self, row: ImportRow) -> Optional[Tuple[date, str]]:
        """Rows with the same date and reference number are one adjustment."""
        if not row.reference_number:
            return None
        return (row.adjustment_date, row.reference_number)

    def detach(self, row: ImportRow) -> ImportRow:
        return row.model_copy(update={"reference_number": None})

    def save(self, credential: SigningCredential, rows: Sequence[ImportRow]) -> SaveResult:
        response = self.dispatcher.dispatch(
            credential,
            ApiRequest(
                method="POST",
                path=AccurateEndpoint.ITEM_ADJUSTMENT_SAVE.value,
                json=adjustment_payload(rows),
            ),
        )
        result = response.payload().get("d")
        if not isinstance(result, dict) or result.get("id") is None:
            raise ProviderError(
                "Accurate save response did not include a record id",
                status=response.status,
                body=response.text[:2000],
            )
        return SaveResult.model_validate(result)
