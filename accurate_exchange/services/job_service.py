"""
Ledger of import jobs and their per-row items.

All outcome writes are compare-and-set UPDATE statements: an item moves only
if it is still in the state the caller saw, and job counters move in SQL
(``col = col + 1``). Outcomes may therefore be applied in any order and a
repeated outcome is a no-op.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..constants import JobItemStatus, JobStatus
from ..db.db_base import utc_now
from ..db.db_job_models import ImportJob, JobItem
from ..exceptions import BaseError, ErrorCode, not_found
from ..utils.logger import get_logger


@dataclass
class ItemDraft:
    """A row as it enters the ledger."""

    row_index: int
    source_record: Dict[str, Any]
    status: JobItemStatus = JobItemStatus.PENDING
    error_message: Optional[str] = None


def final_status(total: int, succeeded: int, failed: int) -> JobStatus:
    """Terminal status implied by the counters."""
    if total > 0 and succeeded == total:
        return JobStatus.COMPLETED
    if succeeded > 0:
        return JobStatus.PARTIAL
    return JobStatus.FAILED


class JobService:
    """Persistence for ImportJob / JobItem with atomic transitions."""

    def __init__(self, session: Session):
        self.session = session
        self.logger = get_logger()

    def _commit(self, action: str) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise BaseError(
                f"Failed to {action}: {str(e)}", error_code=ErrorCode.DATABASE_ERROR, cause=e
            )
        self.session.expire_all()

    def create_job(
        self,
        credential_id: str,
        owner_id: str,
        resource_type: str,
        items: Sequence[ItemDraft],
    ) -> ImportJob:
        """Create a pending job; pre-rejected drafts count as failed rows immediately."""
        failed = sum(1 for item in items if item.status == JobItemStatus.ERROR)
        job = ImportJob(
            credential_id=credential_id,
            owner_id=owner_id,
            resource_type=resource_type,
            status=JobStatus.PENDING.value,
            total_rows=len(items),
            succeeded_rows=0,
            failed_rows=failed,
        )
        job.items = [
            JobItem(
                row_index=item.row_index,
                source_record=item.source_record,
                status=item.status.value,
                error_message=item.error_message,
                attempts=0,
            )
            for item in items
        ]
        self.session.add(job)
        self._commit("create import job")

        self.logger.info(
            "Import job created",
            extra={
                "job_id": job.id,
                "credential_id": credential_id,
                "total_rows": len(items),
                "prevalidation_failures": failed,
            },
        )
        return job

    def create_failed_job(
        self,
        credential_id: str,
        owner_id: str,
        resource_type: str,
        error_message: str,
    ) -> ImportJob:
        """Record a batch that failed a precondition; nothing will ever be dispatched."""
        now = utc_now()
        job = ImportJob(
            credential_id=credential_id,
            owner_id=owner_id,
            resource_type=resource_type,
            status=JobStatus.FAILED.value,
            total_rows=0,
            succeeded_rows=0,
            failed_rows=0,
            error_message=error_message,
            completed_at=now,
        )
        self.session.add(job)
        self._commit("create import job")
        self.logger.warning(
            "Import job rejected",
            extra={"job_id": job.id, "credential_id": credential_id, "reason": error_message},
        )
        return job

    def get_job(self, job_id: str, owner_id: Optional[str] = None) -> ImportJob:
        """
        Fetch a job, optionally scoped to an owner.

        Raises:
            NotFoundError: If it does not exist or belongs to another owner
        """
        query = self.session.query(ImportJob).filter(ImportJob.id == job_id)
        if owner_id is not None:
            query = query.filter(ImportJob.owner_id == owner_id)
        job = query.first()
        if job is None:
            raise not_found("ImportJob", job_id=job_id)
        return job

    def list_items(self, job_id: str, statuses: Optional[Iterable[JobItemStatus]] = None) -> List[JobItem]:
        query = self.session.query(JobItem).filter(JobItem.job_id == job_id)
        if statuses is not None:
            query = query.filter(JobItem.status.in_([s.value for s in statuses]))
        return query.order_by(JobItem.row_index).all()

    def transition(self, job_id: str, expected: Iterable[JobStatus], new: JobStatus) -> bool:
        """Move the job to ``new`` only if it is currently in one of ``expected``."""
        values: Dict[str, Any] = {"status": new.value, "updated_at": utc_now()}
        if new.is_final or new == JobStatus.PARTIAL:
            values["completed_at"] = utc_now()
        elif new == JobStatus.RUNNING:
            values["completed_at"] = None

        result = self.session.execute(
            update(ImportJob)
            .where(ImportJob.id == job_id, ImportJob.status.in_([s.value for s in expected]))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self._commit("transition import job")
        moved = result.rowcount == 1
        if moved:
            self.logger.info(
                "Import job transitioned", extra={"job_id": job_id, "job_status": new.value}
            )
        return moved

    def revalidate_item(self, item_id: str, job_id: str, source_record: Dict[str, Any]) -> bool:
        """Return an ``error`` item to ``pending`` for another attempt (counters move on outcome)."""
        result = self.session.execute(
            update(JobItem)
            .where(JobItem.id == item_id, JobItem.status == JobItemStatus.ERROR.value)
            .values(
                status=JobItemStatus.PENDING.value,
                error_message=None,
                source_record=source_record,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            self.session.execute(
                update(ImportJob)
                .where(ImportJob.id == job_id)
                .values(failed_rows=ImportJob.failed_rows - 1, updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
        self._commit("reset import item")
        return result.rowcount == 1

    def refresh_error(self, item_id: str, message: str) -> bool:
        """Replace the message of an item that is still in ``error``."""
        result = self.session.execute(
            update(JobItem)
            .where(JobItem.id == item_id, JobItem.status == JobItemStatus.ERROR.value)
            .values(error_message=message, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        self._commit("update import item")
        return result.rowcount == 1

    def mark_item_success(
        self,
        item_id: str,
        job_id: str,
        remote_id: str,
        remote_number: Optional[str] = None,
    ) -> bool:
        """pending -> success; increments ``succeeded_rows``."""
        result = self.session.execute(
            update(JobItem)
            .where(JobItem.id == item_id, JobItem.status == JobItemStatus.PENDING.value)
            .values(
                status=JobItemStatus.SUCCESS.value,
                remote_id=remote_id,
                remote_number=remote_number,
                error_message=None,
                attempts=JobItem.attempts + 1,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            self.session.execute(
                update(ImportJob)
                .where(ImportJob.id == job_id)
                .values(succeeded_rows=ImportJob.succeeded_rows + 1, updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
        self._commit("record import success")
        return result.rowcount == 1

    def mark_item_error(self, item_id: str, job_id: str, message: str, attempted: bool = True) -> bool:
        """pending -> error; increments ``failed_rows``."""
        values: Dict[str, Any] = {
            "status": JobItemStatus.ERROR.value,
            "error_message": message,
            "updated_at": utc_now(),
        }
        if attempted:
            values["attempts"] = JobItem.attempts + 1

        result = self.session.execute(
            update(JobItem)
            .where(JobItem.id == item_id, JobItem.status == JobItemStatus.PENDING.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            self.session.execute(
                update(ImportJob)
                .where(ImportJob.id == job_id)
                .values(failed_rows=ImportJob.failed_rows + 1, updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
        self._commit("record import failure")
        return result.rowcount == 1

    def fail_pending_items(self, job_id: str, message: str) -> int:
        """Mark every still-pending item as error (used when dispatch aborts)."""
        pending = self.list_items(job_id, [JobItemStatus.PENDING])
        return sum(1 for item in pending if self.mark_item_error(item.id, job_id, message, attempted=False))

    def finalize(self, job_id: str) -> ImportJob:
        """Move a running job to the terminal status its counters imply."""
        job = self.get_job(job_id)
        status = final_status(job.total_rows, job.succeeded_rows, job.failed_rows)
        self.transition(job_id, [JobStatus.RUNNING], status)
        job = self.get_job(job_id)
        self.logger.info(
            "Import job finished",
            extra={
                "job_id": job_id,
                "job_status": job.status,
                "total_rows": job.total_rows,
                "succeeded_rows": job.succeeded_rows,
                "failed_rows": job.failed_rows,
            },
        )
        return job
