"""
Import pipeline.

Streams a CSV or JSON source through the record transformer into a
``DocumentWriter``. Row-scoped errors are reported through the error callback
and the run continues, unless stop-on-errors is set, in which case the
documents accepted so far are flushed and the error is raised with the partial
``ImportResult`` attached as ``error.result``.
"""

import logging
from dataclasses import dataclass
from typing import BinaryIO, Iterable, Mapping, Optional

from docport.common.cancellation import CancellationToken
from docport.common.metrics import documents_failed_total
from docport.common.throttle import Throttle
from docport.errors import DocportError, ErrorRecord, ParseError
from docport.ingest.csv_fields import iter_csv_records, normalize_header
from docport.ingest.json_reader import iter_json_records
from docport.ingest.streams import CountingReader, open_text
from docport.ingest.transform import CSVRowTransformer, JSONDocumentTransformer
from docport.ingest.types import CSVFieldType, FileType
from docport.ingest.writer import DocumentWriter
from docport.progress import ErrorCallback, Progress, ProgressCallback
from docport.storage.adapter import DocumentStore

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    """Counters of one import run."""
    docs_processed: int = 0
    docs_written: int = 0
    aborted: bool = False
    error_count: int = 0


class _ImportRun:
    """State shared by the CSV and JSON loops."""

    def __init__(
        self,
        input: BinaryIO,
        store: DocumentStore,
        namespace: str,
        stop_on_errors: bool,
        batch_size: int,
        cancel_token: Optional[CancellationToken],
        progress_callback: Optional[ProgressCallback],
        error_callback: Optional[ErrorCallback],
        progress_interval: float,
        bytes_total: Optional[int],
    ):
        self.reader = CountingReader(input)
        self.stop_on_errors = stop_on_errors
        self.cancel_token = cancel_token or CancellationToken()
        self.error_callback = error_callback
        self.bytes_total = bytes_total
        self.result = ImportResult()
        self.throttled = Throttle(progress_callback, progress_interval)
        self.writer = DocumentWriter(
            store,
            namespace,
            batch_size=batch_size,
            stop_on_errors=stop_on_errors,
            error_callback=self.record_error,
        )

    @property
    def cancelled(self) -> bool:
        return self.cancel_token.cancelled

    def record_error(self, record: ErrorRecord) -> None:
        self.result.error_count += 1
        documents_failed_total.labels(direction="import", kind=record.kind).inc()
        if self.error_callback is not None:
            self.error_callback(record)

    def row_error(self, error: DocportError) -> None:
        """Report a row-scoped error; terminal with stop-on-errors."""
        if self.stop_on_errors:
            raise error
        self.record_error(error.to_record())

    def write(self, document, index: int) -> None:
        self.writer.write(document, index, self.cancel_token)
        self.progress()

    def progress(self) -> None:
        self.result.docs_written = self.writer.docs_written
        self.throttled(Progress(
            bytes_processed=self.reader.bytes_read,
            bytes_total=self.bytes_total,
            docs_processed=self.result.docs_processed,
            docs_written=self.writer.docs_written,
        ))

    def finish(self) -> None:
        """Flush the last batch unless cancelled."""
        if self.cancelled or not self.writer.flush(self.cancel_token):
            self.result.aborted = True

    def fail(self, error: DocportError) -> None:
        """Persist what was accepted before ``error`` and attach the result."""
        if not self.cancelled:
            try:
                self.writer.flush(self.cancel_token)
            except DocportError as flush_error:
                logger.warning(f"Flush after error failed: {flush_error}")
        self.result.docs_written = self.writer.docs_written
        self.record_error(error.to_record())
        error.result = self.result

    def close(self) -> None:
        self.progress()
        self.throttled.flush()


def import_csv(
    input: BinaryIO,
    store: DocumentStore,
    namespace: str,
    delimiter: str,
    field_types: Mapping[str, CSVFieldType],
    ignore_blanks: bool = True,
    stop_on_errors: bool = False,
    batch_size: int = 1000,
    cancel_token: Optional[CancellationToken] = None,
    progress_callback: Optional[ProgressCallback] = None,
    error_callback: Optional[ErrorCallback] = None,
    progress_interval: float = 1.0,
    bytes_total: Optional[int] = None,
) -> ImportResult:
    """
    Import a CSV file.

    Args:
        input: Binary stream positioned at the start of the file
        store: Backing store to write to
        namespace: Target ``database.collection``
        delimiter: Column delimiter
        field_types: Target type per included grouped field path; columns
            of other fields are skipped
        ignore_blanks: Omit blank cells from documents
        stop_on_errors: Stop at the first parse, cast or write error
        batch_size: Documents per insert
        cancel_token: Checked before every row and every batch
        progress_callback: Receives throttled progress; the final progress
            is always delivered
        error_callback: Receives every row-scoped error record
        progress_interval: Minimum seconds between progress callbacks
        bytes_total: File size reported alongside progress

    Returns:
        ImportResult; ``aborted`` is set when the token was cancelled

    Raises:
        DocportError: A row-scoped error with stop_on_errors, or a malformed
            stream; ``error.result`` holds the partial counts
        StoreConnectionError: If the backing store is unreachable
    """
    run = _ImportRun(
        input, store, namespace, stop_on_errors, batch_size, cancel_token,
        progress_callback, error_callback, progress_interval, bytes_total)
    text = open_text(run.reader)

    try:
        records = iter_csv_records(text, delimiter)
        header = next(records, None)
        if header is not None:
            transformer = CSVRowTransformer(
                normalize_header(header), field_types, ignore_blanks=ignore_blanks)
            for index, row in enumerate(records):
                if run.cancelled:
                    break
                run.result.docs_processed += 1
                try:
                    document, cast_errors = transformer.transform(row, index)
                except ParseError as e:
                    run.row_error(e)
                    continue
                for cast_error in cast_errors:
                    run.row_error(cast_error)
                run.write(document, index)
        run.finish()
    except DocportError as e:
        run.fail(e)
        raise
    finally:
        text.detach()
        run.close()

    logger.info(
        f"Imported {run.result.docs_written}/{run.result.docs_processed} CSV rows "
        f"into {namespace}{' (aborted)' if run.result.aborted else ''}"
    )
    return run.result


def import_json(
    input: BinaryIO,
    store: DocumentStore,
    namespace: str,
    variant: FileType,
    exclude: Optional[Iterable[str]] = None,
    stop_on_errors: bool = False,
    batch_size: int = 1000,
    cancel_token: Optional[CancellationToken] = None,
    progress_callback: Optional[ProgressCallback] = None,
    error_callback: Optional[ErrorCallback] = None,
    progress_interval: float = 1.0,
    bytes_total: Optional[int] = None,
) -> ImportResult:
    """
    Import a JSON array or JSON lines file.

    Values keep their parsed types; ``exclude`` removes dotted paths. A bad
    JSON line is a row-scoped error, a malformed JSON array ends the run.
    Other arguments behave as in ``import_csv``.
    """
    run = _ImportRun(
        input, store, namespace, stop_on_errors, batch_size, cancel_token,
        progress_callback, error_callback, progress_interval, bytes_total)
    transformer = JSONDocumentTransformer(exclude)

    try:
        for record in iter_json_records(run.reader, variant):
            if run.cancelled:
                break
            run.result.docs_processed += 1
            if record.error is not None:
                run.row_error(record.error)
                continue
            try:
                document = transformer.transform(record.value, record.index)
            except ParseError as e:
                run.row_error(e)
                continue
            run.write(document, record.index)
        run.finish()
    except DocportError as e:
        run.fail(e)
        raise
    finally:
        run.close()

    logger.info(
        f"Imported {run.result.docs_written}/{run.result.docs_processed} JSON documents "
        f"into {namespace}{' (aborted)' if run.result.aborted else ''}"
    )
    return run.result
