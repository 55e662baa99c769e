"""
Export session controller.
"""

import time
from typing import Any, List, Mapping, Optional, Sequence

from docport.common.cancellation import CancellationToken
from docport.common.logging_config import (
    PerformanceTracker,
    get_structured_logger,
    session_context,
)
from docport.common.metrics import track_session
from docport.errors import DocportError, ErrorRecord, FileAccessError
from docport.export.exporter import ExportResult, export_csv, export_json, gather_fields
from docport.ingest.types import FileType
from docport.progress import Progress, ProgressCallback
from docport.session.base import BaseSession, SessionSummary
from docport.session.state import ControllerState, InvalidTransitionError, SessionStatus
from docport.storage.adapter import StoreConnectionError, StoreError

logger = get_structured_logger(__name__)


class ExportSession(BaseSession):
    """
    Controller for one export.

    The filter and projection are handed to the store; CSV columns are either
    chosen with ``set_fields`` or gathered from the documents.
    """

    direction = "export"

    def _on_open(self) -> None:
        self.filter: Optional[Mapping[str, Any]] = None
        self.projection: Optional[Sequence[str]] = None
        self.fields: Optional[List[str]] = None

    def set_query(
        self,
        filter: Optional[Mapping[str, Any]] = None,
        projection: Optional[Sequence[str]] = None,
    ) -> None:
        self._require_opened()
        self.filter = dict(filter) if filter else None
        self.projection = list(projection) if projection else None
        self.fields = None

    def set_fields(self, fields: Sequence[str]) -> None:
        """Fix the CSV columns instead of gathering them."""
        self._require_opened()
        self.fields = list(fields)

    def gather_fields(self, cancel_token: Optional[CancellationToken] = None) -> List[str]:
        """Collect the CSV columns of the documents to export."""
        self._require_opened()
        result = gather_fields(
            self.store,
            self.namespace,
            filter=self.filter,
            projection=self.projection,
            batch_size=self.settings.export_batch_size,
            cancel_token=cancel_token,
        )
        if not result.aborted:
            self.fields = result.fields
        return result.fields

    def _require_opened(self) -> None:
        if self.machine.state != ControllerState.OPENED:
            raise InvalidTransitionError(
                f"Export must be opened, not {self.machine.state.value}")

    def start(
        self,
        output_path: str,
        file_type: FileType = FileType.JSON,
        delimiter: str = ",",
        on_progress: Optional[ProgressCallback] = None,
    ) -> Optional[SessionSummary]:
        """
        Run the export to completion on the calling thread.

        Returns:
            The summary, or None if an export is already running
        """
        file_type = FileType(file_type)
        if file_type == FileType.UNKNOWN:
            raise ValueError("Choose csv, json or jsonl")
        token = self._begin_run()
        if token is None:
            return None
        try:
            with session_context(self.session_id):
                return self._run(token, output_path, file_type, delimiter, on_progress)
        finally:
            self._release_run(token)

    @track_session("export")
    def _run(
        self,
        token: CancellationToken,
        output_path: str,
        file_type: FileType,
        delimiter: str,
        on_progress: Optional[ProgressCallback],
    ) -> SessionSummary:
        start_time = time.monotonic()
        result = ExportResult()
        status = SessionStatus.FAILED

        def progress_callback(progress: Progress) -> None:
            self._on_progress(progress)
            if on_progress is not None:
                on_progress(progress)

        logger.info(
            "Export started",
            namespace=self.namespace,
            path=output_path,
            file_type=file_type.value,
        )

        try:
            with PerformanceTracker("export", logger.logger, namespace=self.namespace):
                result = self._export(token, output_path, file_type, delimiter, progress_callback)
            status = SessionStatus.CANCELED if result.aborted else SessionStatus.COMPLETED
        except StoreConnectionError as e:
            if token.cancelled:
                result.aborted = True
                status = SessionStatus.CANCELED
            else:
                self._record_error(ErrorRecord.from_exception(e))
            logger.error("Backing store unavailable", error=str(e))
        except (DocportError, StoreError) as e:
            self._record_error(ErrorRecord.from_exception(e))
            logger.error("Export failed", error=str(e))
        finally:
            self._end_run(token, status)

        summary = self._summarize(
            start_time,
            docs_processed=result.docs_written,
            docs_written=result.docs_written,
            aborted=result.aborted,
        )
        logger.info("Export finished", **summary.to_dict())
        return summary

    def _export(
        self,
        token: CancellationToken,
        output_path: str,
        file_type: FileType,
        delimiter: str,
        progress_callback: ProgressCallback,
    ) -> ExportResult:
        try:
            output = open(output_path, "wb")
        except OSError as e:
            raise FileAccessError(f"Unable to create {output_path}: {e}") from e

        options = dict(
            filter=self.filter,
            projection=self.projection,
            batch_size=self.settings.export_batch_size,
            cancel_token=token,
            progress_callback=progress_callback,
            progress_interval=self.settings.progress_interval_seconds,
        )
        with output:
            if file_type == FileType.CSV:
                return export_csv(
                    self.store,
                    self.namespace,
                    output,
                    fields=self.fields,
                    delimiter=delimiter,
                    **options,
                )
            return export_json(self.store, self.namespace, output, variant=file_type, **options)
