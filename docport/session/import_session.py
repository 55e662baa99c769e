"""
Import session controller.

Owns one import from file selection to the terminal summary: format
detection, CSV listing and background type analysis, user overrides, the
import run itself and its error log.
"""

import dataclasses
import os
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

from docport.common.cancellation import CancellationToken
from docport.common.logging_config import (
    PerformanceTracker,
    get_structured_logger,
    session_context,
)
from docport.common.metrics import analyze_runs_total, track_session
from docport.config.settings import Settings
from docport.errors import DocportError, ErrorRecord, FileAccessError
from docport.ingest.csv_analyzer import AnalyzeResult, analyze_csv_fields
from docport.ingest.csv_fields import build_preview_values, group_csv_fields, list_csv_fields
from docport.ingest.error_log import ErrorLog, get_error_log_path
from docport.ingest.format_detector import detect_format
from docport.ingest.importer import ImportResult, import_csv, import_json
from docport.ingest.json_fields import list_json_fields
from docport.ingest.types import (
    CSV_DELIMITERS,
    CSVField,
    CSVFieldType,
    FieldDescriptor,
    InputDescriptor,
)
from docport.progress import ErrorCallback, Progress, ProgressCallback
from docport.session.base import BaseSession, SessionSummary
from docport.session.state import ControllerState, InvalidTransitionError, SessionStatus
from docport.storage.adapter import DocumentStore, StoreConnectionError, StoreError

logger = get_structured_logger(__name__)

FinishedCallback = Callable[[str, Dict[str, Any]], None]


class ImportSession(BaseSession):
    """
    Controller for one import.

    Typical use::

        session = ImportSession(store)
        session.open("db.people")
        session.select_file("people.csv")
        session.wait_for_analysis()
        session.set_field_type("age", "int")
        summary = session.start()

    ``cancel()`` and ``connection_lost()`` may be called from other threads.
    """

    direction = "import"

    def __init__(
        self,
        store: DocumentStore,
        settings: Optional[Settings] = None,
        on_finished: Optional[FinishedCallback] = None,
    ):
        self.on_finished = on_finished
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="docport-analyze")
        self._analyze_token: Optional[CancellationToken] = None
        self._analyze_future: Optional[Future] = None
        super().__init__(store, settings)

    def _clear_selection(self) -> None:
        self.input: Optional[InputDescriptor] = None
        self.fields: List[FieldDescriptor] = []
        self.header_fields: List[str] = []
        self.preview_values: List[List[str]] = []
        self.preview_docs: List[Dict[str, Any]] = []
        self.analyze_status = SessionStatus.UNSPECIFIED
        self.analyze_result: Optional[AnalyzeResult] = None
        self.analyze_error: Optional[Exception] = None
        self.analyze_progress = Progress()
        self.error_log_path = None

    def open(self, namespace: str) -> bool:
        if not self.run_active:
            self._cancel_analysis("reopened")
        return super().open(namespace)

    def _on_open(self) -> None:
        self._clear_selection()
        self.stop_on_errors = False
        self.ignore_blanks = True

    def shutdown(self) -> None:
        """Cancel analysis and stop the analyzer worker."""
        self._cancel_analysis("shutdown")
        self._executor.shutdown(wait=True)

    # ========== File selection ==========

    def select_file(self, path: str) -> InputDescriptor:
        """
        Select the source file and detect its format.

        CSV files are listed right away and analyzed in the background.

        Raises:
            FileAccessError: If the file does not exist or cannot be read
            FormatDetectionError: If the format cannot be determined
        """
        self._require_opened()
        if not os.path.isfile(path):
            raise FileAccessError(f"File {path} not found")
        try:
            size = os.path.getsize(path)
            with open(path, "rb") as source:
                detected = detect_format(source, self.settings.detect_sample_bytes)
        except OSError as e:
            raise FileAccessError(f"Unable to read {path}: {e}") from e

        self._cancel_analysis("file changed")
        with self._lock:
            self._clear_selection()
            self.input = InputDescriptor(
                path=path,
                size=size,
                file_type=detected.type,
                delimiter=detected.csv_delimiter,
            )
        logger.info(
            "File selected",
            path=path,
            size=size,
            file_type=detected.type.value,
            delimiter=detected.csv_delimiter,
        )

        if self.input.is_csv:
            self._load_csv_preview()
        else:
            self._load_json_preview()
        return self.input

    def _require_opened(self) -> None:
        if self.machine.state != ControllerState.OPENED:
            raise InvalidTransitionError(
                f"Import must be opened, not {self.machine.state.value}")

    def _load_csv_preview(self) -> None:
        descriptor = self.input
        try:
            with open(descriptor.path, "rb") as source:
                listed = list_csv_fields(source, descriptor.delimiter, self.settings.preview_rows)
        except (DocportError, OSError) as e:
            # Most likely the file is not a CSV with this delimiter
            logger.error("Failed to load preview rows", error=str(e))
            with self._lock:
                self.analyze_status = SessionStatus.FAILED
                self.analyze_error = e
            return

        fields, field_map = group_csv_fields(listed.header_fields)
        with self._lock:
            self.header_fields = listed.header_fields
            self.fields = list(fields)
            self.preview_values = build_preview_values(fields, field_map, listed.preview)
        self._start_analysis()

    def _load_json_preview(self) -> None:
        descriptor = self.input
        try:
            with open(descriptor.path, "rb") as source:
                listed = list_json_fields(source, descriptor.file_type, self.settings.preview_rows)
        except (DocportError, OSError) as e:
            logger.error("Failed to load preview documents", error=str(e))
            with self._lock:
                self.analyze_error = e
            return
        with self._lock:
            self.fields = list(listed.fields)
            self.preview_docs = listed.preview

    # ========== Field analysis ==========

    def _start_analysis(self) -> None:
        """Run the type analyzer; an in-flight run is cancelled and awaited first."""
        self._cancel_analysis("superseded")
        token = CancellationToken()
        with self._lock:
            descriptor = self.input
            self._analyze_token = token
            self.analyze_status = SessionStatus.STARTED
            self.analyze_error = None
            self.analyze_progress = Progress(bytes_total=descriptor.size)
            self._analyze_future = self._executor.submit(
                self._analyze, descriptor, self.ignore_blanks, token)

    def _analyze(
        self,
        descriptor: InputDescriptor,
        ignore_blanks: bool,
        token: CancellationToken,
    ) -> Optional[AnalyzeResult]:
        try:
            with session_context(self.session_id), open(descriptor.path, "rb") as source:
                with PerformanceTracker("analyze_csv", logger.logger, path=descriptor.path):
                    result = analyze_csv_fields(
                        source,
                        descriptor.delimiter,
                        ignore_blanks=ignore_blanks,
                        cancel_token=token,
                        progress_callback=self._on_analyze_progress,
                        progress_interval=self.settings.progress_interval_seconds,
                        bytes_total=descriptor.size,
                    )
        except Exception as e:
            # The listed fields stay usable with their current types
            analyze_runs_total.labels(outcome="failed").inc()
            logger.error(
                "Failed to analyze CSV fields",
                error=str(e),
                error_type=type(e).__name__,
            )
            with self._lock:
                if self._analyze_token is token:
                    self.analyze_status = SessionStatus.FAILED
                    self.analyze_error = e
                    self._analyze_token = None
            return None

        analyze_runs_total.labels(outcome="aborted" if result.aborted else "completed").inc()
        with self._lock:
            if self._analyze_token is token:
                self._apply_analysis(result)
                self._analyze_token = None
        return result

    def _apply_analysis(self, result: AnalyzeResult) -> None:
        for csv_field in self.fields:
            detection = result.fields.get(csv_field.path)
            if detection is None:
                continue
            csv_field.result = detection
            # A type chosen by the user wins over the detected one
            if not csv_field.overridden:
                csv_field.type = detection.detected
        self.analyze_result = result
        self.analyze_status = (
            SessionStatus.CANCELED if result.aborted else SessionStatus.COMPLETED)

    def _on_analyze_progress(self, progress: Progress) -> None:
        self.analyze_progress = progress

    def _cancel_analysis(self, reason: str) -> Optional[AnalyzeResult]:
        """Cancel the analyzer and wait until it has stopped."""
        with self._lock:
            token, future = self._analyze_token, self._analyze_future
        if token is not None:
            token.cancel(reason)
        if future is None:
            return None
        return future.result()

    @property
    def is_analyzing(self) -> bool:
        future = self._analyze_future
        return future is not None and not future.done()

    def wait_for_analysis(self, timeout: Optional[float] = None) -> Optional[AnalyzeResult]:
        """Block until the current analysis finishes."""
        future = self._analyze_future
        if future is None:
            return None
        return future.result(timeout=timeout)

    def skip_analyze(self) -> Optional[AnalyzeResult]:
        """Stop analysis early and keep the types detected so far."""
        if self.is_analyzing:
            logger.info("Skipping CSV analysis")
        return self._cancel_analysis("skipped")

    def cancel(self) -> bool:
        """
        Cancel the import, or only the analyzer when no import is running.

        Returns:
            True if something was cancelled
        """
        if not self.run_active and self.is_analyzing:
            self._cancel_analysis("user")
            logger.info("CSV analysis canceled by user")
            return True
        return super().cancel()

    def connection_lost(self) -> None:
        with self._lock:
            token = self._analyze_token
        if token is not None:
            token.cancel("disconnected")
        super().connection_lost()

    # ========== Options ==========

    def _find_field(self, path: str) -> FieldDescriptor:
        for descriptor in self.fields:
            if descriptor.path == path:
                return descriptor
        raise KeyError(path)

    def toggle_include_field(self, path: str) -> bool:
        """
        Include or exclude a field.

        Returns:
            The new inclusion flag
        """
        with self._lock:
            descriptor = self._find_field(path)
            descriptor.checked = not descriptor.checked
            return descriptor.checked

    def set_field_type(self, path: str, field_type) -> None:
        """
        Set the type values of a CSV field are cast to.

        Setting a type also includes the field.
        """
        target = CSVFieldType(field_type)
        with self._lock:
            descriptor = self._find_field(path)
            if not isinstance(descriptor, CSVField):
                raise ValueError(f"Only CSV fields have a type: {path}")
            descriptor.type = target
            descriptor.checked = True
            descriptor.overridden = True

    def set_delimiter(self, delimiter: str) -> None:
        """Change the CSV delimiter; listing and analysis run again."""
        if delimiter not in CSV_DELIMITERS:
            raise ValueError(f"Unsupported delimiter: {delimiter!r}")
        self._require_opened()
        if self.input is None or not self.input.is_csv:
            return
        self._cancel_analysis("delimiter changed")
        with self._lock:
            self.input = dataclasses.replace(self.input, delimiter=delimiter)
        logger.info("Delimiter changed", delimiter=delimiter)
        self._load_csv_preview()

    def set_stop_on_errors(self, stop_on_errors: bool) -> None:
        self.stop_on_errors = bool(stop_on_errors)

    def set_ignore_blanks(self, ignore_blanks: bool) -> None:
        self.ignore_blanks = bool(ignore_blanks)

    @property
    def transform(self) -> Dict[str, CSVFieldType]:
        """Target type of every included CSV field."""
        return {
            f.path: f.type for f in self.fields
            if isinstance(f, CSVField) and f.checked
        }

    @property
    def exclude(self) -> List[str]:
        return [f.path for f in self.fields if not f.checked]

    # ========== Run ==========

    def start(
        self,
        on_progress: Optional[ProgressCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Optional[SessionSummary]:
        """
        Run the import to completion on the calling thread.

        A running analysis is cancelled first and its partial result is used.

        Returns:
            The summary, or None if an import is already running

        Raises:
            InvalidTransitionError: If the session is not opened, no file
                was selected or the selected CSV has no fields
        """
        if self.run_active:
            self._refuse_in_progress()
            return None
        if self.machine.state == ControllerState.OPENED:
            if self.input is None:
                raise InvalidTransitionError("No file selected")
            if self.input.is_csv and not self.fields:
                reason = self.analyze_error or "empty header"
                raise InvalidTransitionError(
                    f"No fields to import from {self.input.path}: {reason}")

        self.skip_analyze()
        token = self._begin_run()
        if token is None:
            return None
        try:
            with session_context(self.session_id):
                return self._run(token, on_progress, on_error)
        finally:
            self._release_run(token)

    @track_session("import")
    def _run(
        self,
        token: CancellationToken,
        on_progress: Optional[ProgressCallback],
        on_error: Optional[ErrorCallback],
    ) -> SessionSummary:
        start_time = time.monotonic()
        descriptor = self.input
        result = ImportResult()
        error_log: Optional[ErrorLog] = None
        status = SessionStatus.FAILED

        def progress_callback(progress: Progress) -> None:
            self._on_progress(progress)
            if on_progress is not None:
                on_progress(progress)

        def error_callback(record: ErrorRecord) -> None:
            self._record_error(record)
            if error_log is not None and not error_log.closed:
                error_log.write(record)
            if on_error is not None:
                on_error(record)

        logger.info(
            "Import started",
            namespace=self.namespace,
            path=descriptor.path,
            file_type=descriptor.file_type.value,
            size=descriptor.size,
            delimiter=descriptor.delimiter,
            ignore_blanks=self._effective_ignore_blanks,
            stop_on_errors=self.stop_on_errors,
            exclude=self.exclude,
        )

        try:
            self.error_log_path = get_error_log_path(
                self.settings.user_data_path, descriptor.path)
            error_log = ErrorLog(self.error_log_path).open()
            with PerformanceTracker("import", logger.logger, namespace=self.namespace):
                result = self._import(descriptor, token, progress_callback, error_callback)
            if result.aborted:
                status = SessionStatus.CANCELED
            elif self.error_count:
                status = SessionStatus.COMPLETED_WITH_ERRORS
            else:
                status = SessionStatus.COMPLETED
        except DocportError as e:
            partial = getattr(e, "result", None)
            if partial is not None:
                # Already reported by the pipeline
                result = partial
            else:
                error_callback(e.to_record())
            logger.error("Import failed", error=str(e), docs_written=result.docs_written)
        except StoreConnectionError as e:
            if token.cancelled:
                result.aborted = True
                status = SessionStatus.CANCELED
            else:
                error_callback(ErrorRecord.from_exception(e))
            logger.error("Backing store unavailable", error=str(e))
        except StoreError as e:
            error_callback(ErrorRecord.from_exception(e))
            logger.error("Import failed", error=str(e))
        finally:
            if error_log is not None:
                error_log.close()
            self._end_run(token, status)

        summary = self._summarize(
            start_time,
            docs_processed=result.docs_processed,
            docs_written=result.docs_written,
            aborted=result.aborted,
            error_log_path=self.error_log_path,
        )
        logger.info("Import finished", **summary.to_dict())
        self._emit_finished(summary)
        return summary

    @property
    def _effective_ignore_blanks(self) -> bool:
        return self.ignore_blanks and self.input is not None and self.input.is_csv

    def _import(
        self,
        descriptor: InputDescriptor,
        token: CancellationToken,
        progress_callback: ProgressCallback,
        error_callback: ErrorCallback,
    ) -> ImportResult:
        try:
            source = open(descriptor.path, "rb")
        except OSError as e:
            raise FileAccessError(f"Unable to open {descriptor.path}: {e}") from e

        options = dict(
            stop_on_errors=self.stop_on_errors,
            batch_size=self.settings.import_batch_size,
            cancel_token=token,
            progress_callback=progress_callback,
            error_callback=error_callback,
            progress_interval=self.settings.progress_interval_seconds,
            bytes_total=descriptor.size,
        )
        with source:
            if descriptor.is_csv:
                return import_csv(
                    source,
                    self.store,
                    self.namespace,
                    descriptor.delimiter,
                    self.transform,
                    ignore_blanks=self._effective_ignore_blanks,
                    **options,
                )
            return import_json(
                source,
                self.store,
                self.namespace,
                descriptor.file_type,
                exclude=self.exclude,
                **options,
            )

    def _emit_finished(self, summary: SessionSummary) -> None:
        # Nothing is announced for failed runs or a store that went away
        if self.on_finished is None or self._disconnected:
            return
        if summary.status == SessionStatus.FAILED:
            return
        descriptor = self.input
        self.on_finished("import-finished", {
            "ns": self.namespace,
            "size": descriptor.size,
            "file_type": "csv" if descriptor.is_csv else "json",
            "docs_written": summary.docs_written,
            "json_variant": descriptor.json_variant,
            "delimiter": descriptor.delimiter,
            "ignore_blanks": self._effective_ignore_blanks,
            "stop_on_errors": self.stop_on_errors,
            "has_excluded": bool(self.exclude),
            "has_transformed": bool(self.transform),
        })
