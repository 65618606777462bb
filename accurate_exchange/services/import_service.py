"""
Bulk import job engine.

Lifecycle: ``pending -> running -> completed | partial | failed``.

Rows are validated when the job is created; rejected rows are stored as
``error`` items and never dispatched. ``run_job`` submits pending rows on a
worker pool (the dispatcher's per-credential ceiling bounds real parallelism)
and applies each outcome from the coordinating thread as an atomic ledger
update. Rows the resource groups together (an adjustment's lines sharing a
date and reference number) go out in one save and share its outcome; every
row keeps its own job item. A worker failure of any kind is recorded against
its rows, and every submitted save is drained before the job is finalized.

A ``partial`` job can be run again: only its ``error`` rows are re-validated
and re-dispatched. Cancelling a running job is not supported.
"""

from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Any, Dict, Hashable, List, Mapping, Optional, Sequence, Set, Tuple

from sqlalchemy.orm import Session

from ..accurate.dispatcher import CredentialView, Dispatcher
from ..accurate.resources import ResourceAdapter, get_resource
from ..config import ImportConfig, get_config
from ..constants import JobItemStatus, JobStatus
from ..context.operation_context import operation
from ..db.db_credential_models import AccurateCredential
from ..db.db_job_models import ImportJob
from ..exceptions import BaseError, RecordRejectedError, ValidationError
from ..utils.logger import get_logger
from .job_service import ItemDraft, JobService
from .validation_service import RowValidator


def _source_record(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, Mapping):
        return {str(k): v for k, v in raw.items()}
    return {"value": raw}


def _failure_message(error: BaseError) -> str:
    if isinstance(error, RecordRejectedError):
        return "; ".join(error.messages)
    if isinstance(error, ValidationError):
        return error.message
    return f"{error.error_kind}: {error.message}"


class ImportService:
    """Creates and runs bulk import jobs."""

    def __init__(
        self,
        session: Session,
        dispatcher: Dispatcher,
        config: Optional[ImportConfig] = None,
    ):
        self.session = session
        self.dispatcher = dispatcher
        self.config = config or get_config().imports
        self.jobs = JobService(session)
        self.logger = get_logger()

    def _credential(self, job: ImportJob) -> CredentialView:
        return CredentialView.of(self.session.get(AccurateCredential, job.credential_id))

    def _batch_problem(self, rows: Any) -> Optional[str]:
        if rows is None or isinstance(rows, (str, bytes, Mapping)):
            return "rows must be a list of records"
        try:
            rows = list(rows)
        except TypeError:
            return "rows must be a list of records"
        if not rows:
            return "import batch is empty"
        bad = [index for index, row in enumerate(rows, start=1) if not isinstance(row, Mapping)]
        if bad:
            return f"rows {', '.join(str(i) for i in bad[:10])} are not records"
        return None

    @operation(name="import_service.create_job")
    def create_job(
        self,
        credential: AccurateCredential,
        resource_type: Any,
        rows: Sequence[Any],
    ) -> ImportJob:
        """
        Validate rows and record a pending job.

        Rows are indexed from 1 in submission order. A malformed batch yields a
        job that is already ``failed`` with ``error_message`` set.

        Raises:
            ValidationError: For an unknown resource type
        """
        resource = get_resource(resource_type, self.dispatcher)

        problem = self._batch_problem(rows)
        if problem:
            return self.jobs.create_failed_job(
                credential.id, credential.owner_id, resource.resource_type.value, problem
            )

        validator = RowValidator(resource, CredentialView.of(credential), self.config)
        drafts: List[ItemDraft] = []
        for row_index, raw in enumerate(rows, start=1):
            draft = ItemDraft(row_index=row_index, source_record=_source_record(raw))
            try:
                validator.validate(row_index, raw)
            except ValidationError as e:
                draft.status = JobItemStatus.ERROR
                draft.error_message = e.message
            drafts.append(draft)

        return self.jobs.create_job(
            credential.id, credential.owner_id, resource.resource_type.value, drafts
        )

    def _submit_group(self, resource: ResourceAdapter, credential: CredentialView, rows: List[Any]):
        return resource.save(credential, rows)

    def _revalidate_errors(
        self, job: ImportJob, resource: ResourceAdapter, credential: CredentialView
    ) -> None:
        validator = RowValidator(resource, credential, self.config)
        for item in self.jobs.list_items(job.id, [JobItemStatus.ERROR]):
            try:
                validator.validate(item.row_index, item.source_record)
            except ValidationError as e:
                self.jobs.refresh_error(item.id, e.message)
                continue
            self.jobs.revalidate_item(item.id, job.id, item.source_record)

    @operation(name="import_service.run_job")
    def run_job(self, job_id: str, owner_id: Optional[str] = None) -> ImportJob:
        """
        Dispatch a job's pending rows and finalize it.

        ``completed`` and ``failed`` jobs are returned unchanged. A ``partial``
        job resumes with its ``error`` rows only. Success rows are never
        resubmitted.
        """
        job = self.jobs.get_job(job_id, owner_id)
        status = JobStatus(job.status)

        if status.is_final:
            self.logger.info(
                "Import job already final", extra={"job_id": job_id, "job_status": status.value}
            )
            return job
        if status == JobStatus.RUNNING:
            # Another runner owns it; report current state
            return job

        resource = get_resource(job.resource_type, self.dispatcher)
        credential = self._credential(job)

        if not self.jobs.transition(job_id, [status], JobStatus.RUNNING):
            return self.jobs.get_job(job_id)

        try:
            if status == JobStatus.PARTIAL:
                self._revalidate_errors(job, resource, credential)
            self._dispatch_pending(job_id, resource, credential)
        except Exception as e:
            message = f"Dispatch aborted: {type(e).__name__}: {e}"
            self.jobs.fail_pending_items(job_id, message)
            self.jobs.finalize(job_id)
            raise

        return self.jobs.finalize(job_id)

    def _claimed_keys(self, job_id: str, resource: ResourceAdapter) -> Set[Hashable]:
        """Group keys already used by records this job has saved."""
        claimed: Set[Hashable] = set()
        for item in self.jobs.list_items(job_id, [JobItemStatus.SUCCESS]):
            key = resource.group_key(resource.parse_row(item.source_record))
            if key is not None:
                claimed.add(key)
        return claimed

    def _group_rows(
        self, job_id: str, resource: ResourceAdapter, parsed: Dict[str, Any]
    ) -> List[List[Tuple[str, Any]]]:
        """
        Partition pending rows into provider records, in row order.

        Rows whose group was already saved by an earlier run are detached and
        saved on their own, so a group key is never submitted twice.
        """
        claimed = self._claimed_keys(job_id, resource)
        groups: Dict[Hashable, List[Tuple[str, Any]]] = {}
        for item_id, row in parsed.items():
            key = resource.group_key(row)
            if key is not None and key in claimed:
                row = resource.detach(row)
                key = resource.group_key(row)
            groups.setdefault(item_id if key is None else key, []).append((item_id, row))
        return list(groups.values())

    def _dispatch_pending(
        self, job_id: str, resource: ResourceAdapter, credential: CredentialView
    ) -> None:
        pending = [
            (item.id, item.source_record)
            for item in self.jobs.list_items(job_id, [JobItemStatus.PENDING])
        ]
        if not pending:
            return

        parsed: Dict[str, Any] = {}
        for item_id, source_record in pending:
            try:
                parsed[item_id] = resource.parse_row(source_record)
            except ValueError as e:
                # pydantic's ValidationError is a ValueError
                self.jobs.mark_item_error(item_id, job_id, f"invalid source record: {e}", attempted=False)
        if not parsed:
            return

        groups = self._group_rows(job_id, resource, parsed)
        executor = ThreadPoolExecutor(
            max_workers=min(self.config.max_workers, len(groups)), thread_name_prefix="import-row"
        )
        try:
            futures: Dict[Future, List[str]] = {
                executor.submit(
                    self._submit_group, resource, credential, [row for _, row in members]
                ): [item_id for item_id, _ in members]
                for members in groups
            }
            # Every future is drained before returning
            for future in as_completed(futures):
                item_ids = futures[future]
                try:
                    result = future.result()
                except BaseError as e:
                    self._fail_items(job_id, item_ids, _failure_message(e))
                    continue
                except Exception as e:
                    self.logger.error(
                        "Row dispatch failed with unexpected exception",
                        extra={"job_id": job_id, "row_count": len(item_ids), "error_type": type(e).__name__},
                        exc_info=True,
                    )
                    self._fail_items(job_id, item_ids, f"{type(e).__name__}: {e}")
                    continue
                for item_id in item_ids:
                    self.jobs.mark_item_success(
                        item_id,
                        job_id,
                        remote_id=str(result.id),
                        remote_number=getattr(result, "number", None),
                    )
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

    def _fail_items(self, job_id: str, item_ids: List[str], message: str) -> None:
        for item_id in item_ids:
            self.jobs.mark_item_error(item_id, job_id, message)
