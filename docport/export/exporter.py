"""
Export pipeline.

Reads a namespace through the backing store cursor and writes a JSON array,
JSON lines or CSV byte stream. CSV headers come from a gathering pass over the
same cursor so every document shape gets a column.
"""

import csv
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, BinaryIO, Dict, List, Mapping, Optional, Sequence

from docport.common import jsonutil
from docport.common.cancellation import CancellationToken
from docport.common.throttle import Throttle
from docport.ingest.streams import CountingWriter, open_text_writer
from docport.ingest.types import FileType
from docport.progress import Progress, ProgressCallback
from docport.storage.adapter import DocumentStore

logger = logging.getLogger(__name__)


@dataclass
class ExportResult:
    """Counters of one export run."""
    docs_written: int = 0
    aborted: bool = False


@dataclass
class GatherFieldsResult:
    """Flattened CSV column names in first-seen order."""
    fields: List[str] = field(default_factory=list)
    docs_processed: int = 0
    aborted: bool = False


def flatten_document(document: Mapping[str, Any], prefix: str = "") -> Dict[str, Any]:
    """
    Flatten a document into CSV header names.

    Sub-documents become ``a.b`` and array elements ``tags[0]``, the same
    notation the CSV importer reads back.
    """
    flat: Dict[str, Any] = {}
    for key, value in document.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        _flatten_value(flat, path, value)
    return flat


def _flatten_value(flat: Dict[str, Any], path: str, value: Any) -> None:
    if isinstance(value, Mapping) and value:
        flat.update(flatten_document(value, path))
    elif isinstance(value, list) and value:
        for index, item in enumerate(value):
            _flatten_value(flat, f"{path}[{index}]", item)
    else:
        flat[path] = value


def format_csv_value(value: Any) -> str:
    """Render one flattened value as a CSV cell."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        # Only empty containers reach here
        return jsonutil.dumps(value)
    return str(value)


def gather_fields(
    store: DocumentStore,
    namespace: str,
    filter: Optional[Mapping[str, Any]] = None,
    projection: Optional[Sequence[str]] = None,
    batch_size: int = 1000,
    cancel_token: Optional[CancellationToken] = None,
) -> GatherFieldsResult:
    """
    Collect the CSV columns needed to export a namespace.

    Returns:
        GatherFieldsResult; ``aborted`` is set when the token was cancelled
    """
    cancel_token = cancel_token or CancellationToken()
    result = GatherFieldsResult()
    seen = set()
    for document in store.find(namespace, filter=filter, projection=projection, batch_size=batch_size):
        if cancel_token.cancelled:
            result.aborted = True
            break
        result.docs_processed += 1
        for path in flatten_document(document):
            if path not in seen:
                seen.add(path)
                result.fields.append(path)
    return result


def export_json(
    store: DocumentStore,
    namespace: str,
    output: BinaryIO,
    variant: FileType = FileType.JSON,
    filter: Optional[Mapping[str, Any]] = None,
    projection: Optional[Sequence[str]] = None,
    batch_size: int = 1000,
    cancel_token: Optional[CancellationToken] = None,
    progress_callback: Optional[ProgressCallback] = None,
    progress_interval: float = 1.0,
) -> ExportResult:
    """
    Export a namespace as a JSON array or JSON lines.

    Dates are written as ``{"$date": ...}``. A cancelled array export is still
    closed so the partial output parses.

    Args:
        store: Backing store to read from
        namespace: Source ``database.collection``
        output: Binary stream receiving UTF-8 JSON
        variant: FileType.JSON or FileType.JSONL
        filter: Equality filter passed to the store
        projection: Dotted field paths to export
        batch_size: Documents fetched per round trip
        cancel_token: Checked before every document
        progress_callback: Receives throttled progress; the final progress
            is always delivered
        progress_interval: Minimum seconds between progress callbacks

    Raises:
        StoreConnectionError: If the backing store is unreachable
    """
    if variant not in (FileType.JSON, FileType.JSONL):
        raise ValueError(f"Not a JSON variant: {variant}")
    cancel_token = cancel_token or CancellationToken()
    counting = CountingWriter(output)
    text = open_text_writer(counting)
    throttled = Throttle(progress_callback, progress_interval)
    result = ExportResult()

    try:
        if variant == FileType.JSON:
            text.write("[")
        for document in store.find(namespace, filter=filter, projection=projection, batch_size=batch_size):
            if cancel_token.cancelled:
                result.aborted = True
                break
            encoded = jsonutil.dumps(document)
            if variant == FileType.JSON:
                text.write(("," if result.docs_written else "") + "\n" + encoded)
            else:
                text.write(encoded + "\n")
            result.docs_written += 1
            throttled(_progress(counting, result))
        if variant == FileType.JSON:
            text.write("\n]\n" if result.docs_written else "]\n")
    finally:
        text.flush()
        text.detach()
        throttled(_progress(counting, result))
        throttled.flush()

    logger.info(
        f"Exported {result.docs_written} documents from {namespace} as {variant.value}"
        f"{' (aborted)' if result.aborted else ''}"
    )
    return result


def export_csv(
    store: DocumentStore,
    namespace: str,
    output: BinaryIO,
    fields: Optional[Sequence[str]] = None,
    delimiter: str = ",",
    filter: Optional[Mapping[str, Any]] = None,
    projection: Optional[Sequence[str]] = None,
    batch_size: int = 1000,
    cancel_token: Optional[CancellationToken] = None,
    progress_callback: Optional[ProgressCallback] = None,
    progress_interval: float = 1.0,
) -> ExportResult:
    """
    Export a namespace as CSV.

    When ``fields`` is not given a gathering pass collects the columns first.
    Other arguments behave as in ``export_json``.
    """
    cancel_token = cancel_token or CancellationToken()
    if fields is None:
        gathered = gather_fields(store, namespace, filter, projection, batch_size, cancel_token)
        if gathered.aborted:
            return ExportResult(aborted=True)
        fields = gathered.fields

    counting = CountingWriter(output)
    text = open_text_writer(counting)
    throttled = Throttle(progress_callback, progress_interval)
    result = ExportResult()

    try:
        writer = csv.writer(text, delimiter=delimiter, lineterminator="\n")
        writer.writerow(fields)
        for document in store.find(namespace, filter=filter, projection=projection, batch_size=batch_size):
            if cancel_token.cancelled:
                result.aborted = True
                break
            flat = flatten_document(document)
            writer.writerow([format_csv_value(flat.get(name)) for name in fields])
            result.docs_written += 1
            throttled(_progress(counting, result))
    finally:
        text.flush()
        text.detach()
        throttled(_progress(counting, result))
        throttled.flush()

    logger.info(
        f"Exported {result.docs_written} documents from {namespace} as csv"
        f"{' (aborted)' if result.aborted else ''}"
    )
    return result


def _progress(counting: CountingWriter, result: ExportResult) -> Progress:
    return Progress(
        bytes_processed=counting.bytes_written,
        docs_processed=result.docs_written,
        docs_written=result.docs_written,
    )
