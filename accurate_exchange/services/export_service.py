"""
Bulk export of Accurate records.

Rows are produced lazily: list pages are fetched one at a time and each
entry's detail is fetched on a small worker pool, in list order. Preview
mode stops after a bounded sample; full mode pages until a short page.
"""

from concurrent.futures import Future, ThreadPoolExecutor
from datetime import UTC, datetime
from typing import Any, Dict, Iterator, List, Mapping, Optional

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..accurate.dispatcher import Dispatcher, SigningCredential
from ..accurate.resources import ResourceAdapter, get_resource
from ..config import ExportConfig, get_config
from ..constants import ExportFormat, ExportMode
from ..context.operation_context import operation
from ..exceptions import BaseError, ExportAbortedError, validation_failed
from ..formats.serializers import MEDIA_TYPES, serialize
from ..utils.logger import get_logger


class ExportResult(BaseModel):
    """A serialized export ready to hand to the caller."""

    content: bytes
    media_type: str
    filename: str
    row_count: int


def _coerce_mode(mode: Any) -> ExportMode:
    try:
        return ExportMode(mode)
    except ValueError:
        raise validation_failed("mode", mode, "must be 'preview' or 'full'")


def _coerce_format(export_format: Any) -> ExportFormat:
    try:
        return ExportFormat(export_format)
    except ValueError:
        raise validation_failed("format", export_format, "must be 'csv', 'xlsx', or 'json'")


class ExportService:
    """Streams projected rows for a resource and serializes them."""

    def __init__(self, dispatcher: Dispatcher, config: Optional[ExportConfig] = None):
        self.dispatcher = dispatcher
        self.config = config or get_config().export
        self.logger = get_logger()

    def iter_rows(
        self,
        credential: SigningCredential,
        resource_type: Any,
        filters: Optional[Mapping[str, Any]] = None,
        mode: Any = ExportMode.FULL,
    ) -> Iterator[Dict[str, Any]]:
        """
        Lazily yield column-keyed rows.

        Argument errors are raised immediately; provider errors surface while
        iterating, as ExportAbortedError carrying the rows already produced.
        Closing the iterator cancels outstanding detail fetches.

        Raises:
            ValidationError: For an unknown resource type, mode, or filter
        """
        resource = get_resource(resource_type, self.dispatcher)
        mode = _coerce_mode(mode)
        filters = dict(filters or {})
        resource.check_filters(filters)
        return self._generate(resource, credential, filters, mode)

    def _generate(
        self,
        resource: ResourceAdapter,
        credential: SigningCredential,
        filters: Dict[str, Any],
        mode: ExportMode,
    ) -> Iterator[Dict[str, Any]]:
        preview = mode == ExportMode.PREVIEW
        limit = self.config.preview_limit if preview else None
        page_size = self.config.preview_limit if preview else self.config.page_size
        produced = 0
        page = 1

        executor = ThreadPoolExecutor(
            max_workers=self.config.detail_workers, thread_name_prefix="export-detail"
        )
        try:
            while True:
                try:
                    summaries = resource.list_page(credential, page, page_size, filters)
                except (BaseError, PydanticValidationError) as e:
                    raise self._aborted(e, produced, page)

                futures: List[Future] = [
                    executor.submit(resource.expand, credential, summary) for summary in summaries
                ]
                try:
                    for future in futures:
                        try:
                            rows = future.result()
                        except (BaseError, PydanticValidationError) as e:
                            raise self._aborted(e, produced, page)
                        for row in rows:
                            yield row
                            produced += 1
                            if limit is not None and produced >= limit:
                                return
                finally:
                    for future in futures:
                        future.cancel()

                if preview or len(summaries) < page_size:
                    return
                page += 1
        finally:
            executor.shutdown(wait=True, cancel_futures=True)
            self.logger.info(
                "Export stream closed",
                extra={
                    "resource_type": resource.resource_type.value,
                    "export_mode": mode.value,
                    "rows_exported": produced,
                    "pages": page,
                },
            )

    def _aborted(self, error: Exception, produced: int, page: int) -> ExportAbortedError:
        message = getattr(error, "message", None) or str(error)
        return ExportAbortedError(
            f"Export aborted on page {page} after {produced} rows: {message}",
            rows_exported=produced,
            cause=error,
            page=page,
        )

    @operation(name="export_service.export")
    def export(
        self,
        credential: SigningCredential,
        resource_type: Any,
        filters: Optional[Mapping[str, Any]] = None,
        mode: Any = ExportMode.FULL,
        export_format: Any = ExportFormat.CSV,
    ) -> ExportResult:
        """Materialize and serialize an export."""
        export_format = _coerce_format(export_format)
        resource = get_resource(resource_type, self.dispatcher)
        mode = _coerce_mode(mode)

        rows = list(self.iter_rows(credential, resource.resource_type, filters, mode))
        content = serialize(
            export_format, resource.columns, rows, title=resource.resource_type.value
        )
        stamp = datetime.now(UTC).strftime("%Y%m%d%H%M%S")
        return ExportResult(
            content=content,
            media_type=MEDIA_TYPES[export_format],
            filename=f"{resource.resource_type.value}_{mode.value}_{stamp}.{export_format.value}",
            row_count=len(rows),
        )
