"""
Service layer for Accurate Exchange.

Services own the business operations: credential storage, the import job
ledger, row validation, bulk export and import, and the caller-facing facade.
"""

from .credential_service import CredentialService
from .exchange_service import ExchangeService, OperationResponse
from .export_service import ExportResult, ExportService
from .import_service import ImportService
from .job_service import ItemDraft, JobService, final_status
from .validation_service import RowValidator

__all__ = [
    "CredentialService",
    "ExchangeService",
    "OperationResponse",
    "ExportResult",
    "ExportService",
    "ImportService",
    "ItemDraft",
    "JobService",
    "final_status",
    "RowValidator",
]
