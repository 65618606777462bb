"""
Constants and enums for the Accurate Exchange integration core.

This module centralizes all magic strings and constants used throughout
the package to ensure consistency and maintainability.
"""

from enum import Enum


class LogLevel(str, Enum):
    """Standard logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EnvironmentVariable(str, Enum):
    """Standard environment variable names."""

    DATABASE_URL = "DATABASE_URL"
    APP_ENV = "APP_ENV"
    LOG_LEVEL = "LOG_LEVEL"
    DEBUG = "DEBUG"

    ACCURATE_CLIENT_ID = "ACCURATE_CLIENT_ID"
    ACCURATE_CLIENT_SECRET = "ACCURATE_CLIENT_SECRET"
    ACCURATE_REDIRECT_URI = "ACCURATE_REDIRECT_URI"
    ACCURATE_APP_KEY = "ACCURATE_APP_KEY"
    ACCURATE_SIGNATURE_SECRET = "ACCURATE_SIGNATURE_SECRET"
    ACCURATE_ACCOUNT_URL = "ACCURATE_ACCOUNT_URL"

    ACCURATE_REQUESTS_PER_SECOND = "ACCURATE_REQUESTS_PER_SECOND"
    ACCURATE_MAX_CONCURRENT = "ACCURATE_MAX_CONCURRENT"
    ACCURATE_TIMEOUT_SECONDS = "ACCURATE_TIMEOUT_SECONDS"


class JobStatus(str, Enum):
    """Lifecycle states of a bulk import job."""

    PENDING = "pending"
    RUNNING = "running"
    PARTIAL = "partial"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_final(self) -> bool:
        """Completed and failed jobs never dispatch again."""
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobItemStatus(str, Enum):
    """Outcome of a single row inside an import job."""

    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class ExportMode(str, Enum):
    """Bounded sample vs. exhaustive pagination."""

    PREVIEW = "preview"
    FULL = "full"


class ExportFormat(str, Enum):
    """Serialization formats supported by the export engine."""

    CSV = "csv"
    XLSX = "xlsx"
    JSON = "json"


class ResourceType(str, Enum):
    """Accurate resources supported for bulk operations."""

    INVENTORY_ADJUSTMENT = "inventory_adjustment"


class AdjustmentType(str, Enum):
    """Accurate item adjustment types accepted on import."""

    ADJUSTMENT_IN = "ADJUSTMENT_IN"
    ADJUSTMENT_OUT = "ADJUSTMENT_OUT"

    @classmethod
    def parse(cls, value: str) -> "AdjustmentType":
        """Resolve a raw value or one of its Indonesian labels."""
        normalized = (value or "").strip()
        alias = ADJUSTMENT_TYPE_ALIASES.get(normalized.lower())
        if alias is not None:
            return alias
        return cls(normalized.upper())


ADJUSTMENT_TYPE_ALIASES = {
    "penambahan": AdjustmentType.ADJUSTMENT_IN,
    "pengurangan": AdjustmentType.ADJUSTMENT_OUT,
    "in": AdjustmentType.ADJUSTMENT_IN,
    "out": AdjustmentType.ADJUSTMENT_OUT,
}


class AccurateEndpoint(str, Enum):
    """Provider endpoint paths (relative to the account or database host)."""

    OAUTH_AUTHORIZE = "/oauth/authorize"
    OAUTH_TOKEN = "/oauth/token"
    DB_LIST = "/api/db-list.do"
    OPEN_DB = "/api/open-db.do"

    ITEM_ADJUSTMENT_LIST = "/api/item-adjustment/list.do"
    ITEM_ADJUSTMENT_DETAIL = "/api/item-adjustment/detail.do"
    ITEM_ADJUSTMENT_SAVE = "/api/item-adjustment/save.do"
    ITEM_LIST = "/api/item/list.do"


class AccurateHeader(str, Enum):
    """Headers attached to authenticated provider calls."""

    TIMESTAMP = "X-Api-Timestamp"
    SIGNATURE = "X-Api-Signature"
    SESSION = "X-Session-ID"
    AUTHORIZATION = "Authorization"


OAUTH_SCOPES = (
    "item_adjustment_view",
    "item_adjustment_save",
    "item_adjustment_delete",
    "item_view",
    "warehouse_view",
    "unit_view",
)


# Numeric constants
class Limits:
    """System limits and thresholds."""

    PREVIEW_ROW_LIMIT = 20
    EXPORT_PAGE_SIZE = 100
    DEFAULT_REQUESTS_PER_SECOND = 8
    DEFAULT_MAX_CONCURRENT = 8
    MAX_RATE_LIMIT_RETRIES = 5
    MAX_SERVER_ERROR_RETRIES = 2
    DEFAULT_IMPORT_WORKERS = 8
    DEFAULT_DETAIL_WORKERS = 4


class Timeouts:
    """Timeout values in seconds."""

    EXTERNAL_API_CALL = 30
    RATE_LIMIT_WINDOW = 1.0
    BACKOFF_BASE = 0.5
    BACKOFF_MAX = 8.0
