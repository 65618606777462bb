"""
SQLAlchemy models and database management.

This module provides a common entry point for all models.
"""

from .db_base import (
    JSON,
    TimestampMixin,
    UUIDMixin,
    utc_now,
)
from .db_config import (
    Base,
    DatabaseManager,
    close_db,
    get_db_manager,
    get_development_config,
    import_all_models,
    initialize_db,
    set_db_manager,
)
from .db_credential_models import AccurateCredential
from .db_job_models import ImportJob, JobItem

__all__ = [
    # Base definitions
    "Base",
    "JSON",
    "TimestampMixin",
    "UUIDMixin",
    "utc_now",
    # Management
    "DatabaseManager",
    "close_db",
    "get_db_manager",
    "get_development_config",
    "import_all_models",
    "initialize_db",
    "set_db_manager",
    # Models
    "AccurateCredential",
    "ImportJob",
    "JobItem",
]
