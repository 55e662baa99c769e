"""
CSV field type analysis.

Streams a whole CSV file and counts, per logical field, how many cells match
each candidate type. Cancellation yields a best-effort result computed from the
rows read so far.
"""

import logging
from dataclasses import dataclass, field
from typing import BinaryIO, Dict, List, Optional

from docport.common.cancellation import CancellationToken
from docport.common.throttle import Throttle
from docport.ingest.csv_fields import (
    csv_header_name_to_field_name,
    iter_csv_records,
    normalize_header,
)
from docport.ingest.csv_types import detect_field_type, detect_value_type
from docport.ingest.streams import CountingReader, open_text
from docport.ingest.types import FieldDetection
from docport.progress import Progress, ProgressCallback

logger = logging.getLogger(__name__)

MAX_SAMPLE_VALUES = 5


@dataclass
class AnalyzeResult:
    """Detection results for every logical field of a CSV file."""
    total_rows: int = 0
    aborted: bool = False
    bytes_processed: int = 0
    fields: Dict[str, FieldDetection] = field(default_factory=dict)

    def detected_types(self) -> Dict[str, str]:
        return {path: d.detected.value for path, d in self.fields.items()}


def analyze_csv_fields(
    input: BinaryIO,
    delimiter: str,
    ignore_blanks: bool = True,
    cancel_token: Optional[CancellationToken] = None,
    progress_callback: Optional[ProgressCallback] = None,
    progress_interval: float = 1.0,
    bytes_total: Optional[int] = None,
) -> AnalyzeResult:
    """
    Analyze the type of every CSV field.

    Args:
        input: Binary stream positioned at the start of the file
        delimiter: Column delimiter
        ignore_blanks: Exclude blank cells from type voting
        cancel_token: Checked before every row
        progress_callback: Receives throttled byte progress; the final
            progress is always delivered
        progress_interval: Minimum seconds between progress callbacks
        bytes_total: File size reported alongside progress

    Returns:
        AnalyzeResult; ``aborted`` is set when the token was cancelled

    Raises:
        ParseError: If the input is not valid UTF-8 CSV
    """
    counting = CountingReader(input)
    text = open_text(counting)
    throttled = Throttle(progress_callback, progress_interval)
    result = AnalyzeResult()

    header: List[str] = []
    columns: List[str] = []

    try:
        for row in iter_csv_records(text, delimiter):
            if cancel_token is not None and cancel_token.cancelled:
                result.aborted = True
                break

            if not header:
                header = normalize_header(row)
                columns = [csv_header_name_to_field_name(name) for name in header]
                for path in columns:
                    result.fields.setdefault(path, FieldDetection())
                continue

            result.total_rows += 1
            for path, value in zip(columns, row):
                _vote(result.fields[path], value, ignore_blanks)

            throttled(Progress(
                bytes_processed=counting.bytes_read,
                bytes_total=bytes_total,
                docs_processed=result.total_rows,
            ))
    finally:
        text.detach()
        result.bytes_processed = counting.bytes_read
        throttled(Progress(
            bytes_processed=result.bytes_processed,
            bytes_total=bytes_total,
            docs_processed=result.total_rows,
        ))
        throttled.flush()

    for detection in result.fields.values():
        detection.detected = detect_field_type(detection.types)

    logger.info(
        f"Analyzed {result.total_rows} CSV rows "
        f"({'aborted' if result.aborted else 'complete'})"
    )
    return result


def _vote(detection: FieldDetection, value: str, ignore_blanks: bool) -> None:
    value_type = detect_value_type(value, ignore_blanks=ignore_blanks)
    if value_type is None:
        detection.blank_count += 1
        return
    detection.types[value_type] = detection.types.get(value_type, 0) + 1
    if len(detection.sample_values) < MAX_SAMPLE_VALUES:
        detection.sample_values.append(value)
