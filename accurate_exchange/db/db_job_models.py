"""
Bulk import job ledger.

An ImportJob owns one JobItem per source row. Counters on the job are moved
with SQL increments so outcomes can be applied in any order.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from ..constants import JobItemStatus, JobStatus
from .db_base import JSON, TimestampMixin, UUIDMixin
from .db_config import Base


class ImportJob(Base, UUIDMixin, TimestampMixin):
    """A bulk import of one resource type against one credential."""

    __tablename__ = "import_jobs"

    credential_id = Column(
        String(36),
        ForeignKey("accurate_credentials.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    owner_id = Column(String(100), nullable=False, index=True)
    resource_type = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default=JobStatus.PENDING.value)

    total_rows = Column(Integer, nullable=False, default=0)
    succeeded_rows = Column(Integer, nullable=False, default=0)
    failed_rows = Column(Integer, nullable=False, default=0)

    error_message = Column(Text, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    credential = relationship("AccurateCredential", back_populates="jobs")
    items = relationship(
        "JobItem",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="JobItem.row_index",
    )

    def __repr__(self) -> str:
        return (
            f"<ImportJob id={self.id} status={self.status} "
            f"{self.succeeded_rows}+{self.failed_rows}/{self.total_rows}>"
        )


class JobItem(Base, UUIDMixin, TimestampMixin):
    """One source row of an import job and its dispatch outcome."""

    __tablename__ = "import_job_items"

    job_id = Column(
        String(36),
        ForeignKey("import_jobs.id", ondelete="CASCADE"),
        nullable=False,
    )
    row_index = Column(Integer, nullable=False)
    source_record = Column(JSON, nullable=False)
    status = Column(String(20), nullable=False, default=JobItemStatus.PENDING.value)
    error_message = Column(Text, nullable=True)

    remote_id = Column(String(64), nullable=True)
    remote_number = Column(String(64), nullable=True)
    attempts = Column(Integer, nullable=False, default=0)

    job = relationship("ImportJob", back_populates="items")

    __table_args__ = (
        Index("ix_job_item_row", "job_id", "row_index", unique=True),
        Index("ix_job_item_status", "job_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<JobItem job_id={self.job_id} row_index={self.row_index} status={self.status}>"
