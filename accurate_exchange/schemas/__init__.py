"""Pydantic schemas for provider payloads, rows, credentials, and jobs."""

from .accurate_schemas import (
    AdjustmentDetail,
    AdjustmentLine,
    AdjustmentListPage,
    AdjustmentSummary,
    DatabaseEntry,
    ItemRecord,
    OpenDbResponse,
    PageInfo,
    ResolvedDatabase,
    SaveResult,
    TokenGrant,
)
from .credential_schemas import CredentialCreate, CredentialRead, CredentialTokenUpdate
from .inventory_schemas import (
    ADJUSTMENT_COLUMNS,
    ExportRow,
    ImportRow,
    adjustment_payload,
    parse_date,
    to_accurate_date,
)
from .job_schemas import JobItemRead, JobRead

__all__ = [
    # Provider payloads
    "AdjustmentDetail",
    "AdjustmentLine",
    "AdjustmentListPage",
    "AdjustmentSummary",
    "DatabaseEntry",
    "ItemRecord",
    "OpenDbResponse",
    "PageInfo",
    "ResolvedDatabase",
    "SaveResult",
    "TokenGrant",
    # Credentials
    "CredentialCreate",
    "CredentialRead",
    "CredentialTokenUpdate",
    # Rows
    "ADJUSTMENT_COLUMNS",
    "ExportRow",
    "ImportRow",
    "adjustment_payload",
    "parse_date",
    "to_accurate_date",
    # Jobs
    "JobItemRead",
    "JobRead",
]
