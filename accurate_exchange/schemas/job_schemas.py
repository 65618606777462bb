"""
Pydantic schemas for import jobs and their items.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..constants import JobItemStatus, JobStatus


class JobItemRead(BaseModel):
    """Outcome of one source row."""

    row_index: int
    status: JobItemStatus
    source_record: Dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    remote_id: Optional[str] = None
    remote_number: Optional[str] = None
    attempts: int = 0

    model_config = ConfigDict(from_attributes=True)


class JobRead(BaseModel):
    """Job status as reported to callers."""

    id: str
    credential_id: str
    resource_type: str
    status: JobStatus
    total_rows: int
    succeeded_rows: int
    failed_rows: int
    error_message: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    items: List[JobItemRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_final(self) -> bool:
        return self.status.is_final
