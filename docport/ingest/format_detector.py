"""
Input format detection.

Sniffs a bounded prefix of a byte stream and classifies it as a JSON array,
JSON lines or CSV. For CSV the delimiter is the candidate that splits the
sampled lines into the most consistent number of columns.
"""

import codecs
import csv
import io
import json
import logging
from dataclasses import dataclass
from typing import BinaryIO, List, Optional, Tuple

import ijson

from docport.errors import FormatDetectionError
from docport.ingest.types import CSV_DELIMITERS, FileType

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_BYTES = 64 * 1024
MAX_SAMPLE_LINES = 50
# Share of sampled rows that must agree with the header's column count
MIN_CSV_CONSISTENCY = 0.9
# Bytes scanned past the sample when the first JSON line does not fit in it
MAX_FIRST_DOCUMENT_BYTES = 16 * 1024 * 1024

_TOP_LEVEL_STARTS = {"start_map", "start_array", "string", "number", "boolean", "null"}


@dataclass(frozen=True)
class DetectedFormat:
    """Result of format detection."""
    type: FileType
    csv_delimiter: Optional[str] = None


def detect_format(input: BinaryIO, sample_bytes: int = DEFAULT_SAMPLE_BYTES) -> DetectedFormat:
    """
    Detect the format of a byte stream from its prefix.

    Args:
        input: Readable binary stream positioned at the start of the file
        sample_bytes: Maximum number of bytes to read

    Returns:
        DetectedFormat with the file type and, for CSV, the delimiter

    Raises:
        FormatDetectionError: If the prefix is empty, binary, not UTF-8, or
            no format scores above the confidence threshold
    """
    raw = input.read(sample_bytes)
    peeked = input.read(1) if len(raw) == sample_bytes else b""
    at_eof = not peeked

    if not raw:
        raise FormatDetectionError("Cannot determine the file type: file is empty")
    if b"\x00" in raw:
        raise FormatDetectionError("Cannot determine the file type: binary content")

    try:
        # Incremental decoding tolerates a multi-byte sequence cut at the end
        text = codecs.getincrementaldecoder("utf-8-sig")().decode(raw, final=at_eof)
    except UnicodeDecodeError as e:
        raise FormatDetectionError(
            f"Cannot determine the file type: input is not UTF-8 ({e.reason})") from e

    lines = _complete_lines(text, at_eof)
    stripped = text.lstrip()
    if not stripped:
        raise FormatDetectionError("Cannot determine the file type: file is blank")

    if stripped.startswith("["):
        return DetectedFormat(type=FileType.JSON)

    if stripped.startswith("{"):
        if lines:
            is_jsonl = _looks_like_jsonl(lines)
        else:
            # The first line is longer than the sample
            head = raw[len(codecs.BOM_UTF8):] if raw.startswith(codecs.BOM_UTF8) else raw
            is_jsonl = _has_second_value(_ContinuedSample(head + peeked, input))
        return DetectedFormat(type=FileType.JSONL if is_jsonl else FileType.JSON)

    delimiter = _guess_csv_delimiter(lines)
    if delimiter is None:
        raise FormatDetectionError("Cannot determine the file type")

    logger.debug(f"Detected CSV with delimiter {delimiter!r}")
    return DetectedFormat(type=FileType.CSV, csv_delimiter=delimiter)


def _complete_lines(text: str, at_eof: bool) -> List[str]:
    lines = text.splitlines()
    if not at_eof and lines and not text.endswith(("\n", "\r")):
        # Last line was cut by the sample boundary
        lines = lines[:-1]
    return [line for line in lines[:MAX_SAMPLE_LINES] if line.strip()]


def _looks_like_jsonl(lines: List[str]) -> bool:
    if not lines:
        return False
    for line in lines:
        try:
            value = json.loads(line)
        except ValueError:
            return False
        if not isinstance(value, dict):
            return False
    return True


def _has_second_value(stream: BinaryIO) -> bool:
    """
    Scan top-level JSON values until a second one starts.

    Input that turns invalid after the first value is still JSON lines;
    the bad line is reported when it is imported.
    """
    first_done = False
    seen = 0
    try:
        for prefix, event, _ in ijson.parse(stream, multiple_values=True):
            if prefix != "":
                continue
            if event in _TOP_LEVEL_STARTS:
                seen += 1
                if seen > 1:
                    return True
            if event in ("end_map", "end_array"):
                first_done = True
    except ijson.JSONError:
        return first_done
    return False


class _ContinuedSample(io.RawIOBase):
    """The sampled bytes followed by a bounded read of the rest of the input."""

    def __init__(self, head: bytes, rest: BinaryIO, limit: int = MAX_FIRST_DOCUMENT_BYTES):
        self._head = head
        self._rest = rest
        self._remaining = limit

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        if self._head:
            data, self._head = self._head[:len(buffer)], self._head[len(buffer):]
        elif self._remaining > 0:
            data = self._rest.read(min(len(buffer), self._remaining))
            self._remaining -= len(data)
        else:
            return 0
        size = len(data)
        buffer[:size] = data
        return size


def _score_delimiter(lines: List[str], delimiter: str) -> Tuple[float, int]:
    """Return (consistency, header column count) for one candidate."""
    try:
        rows = list(csv.reader(io.StringIO("\n".join(lines)), delimiter=delimiter))
    except csv.Error:
        return (0.0, 0)
    if not rows:
        return (0.0, 0)
    columns = len(rows[0])
    matching = sum(1 for row in rows if len(row) == columns)
    return (matching / len(rows), columns)


def _guess_csv_delimiter(lines: List[str]) -> Optional[str]:
    if not lines:
        return None

    best: Optional[str] = None
    best_consistency = 0.0
    for delimiter in CSV_DELIMITERS:
        consistency, columns = _score_delimiter(lines, delimiter)
        if columns < 2 or consistency < MIN_CSV_CONSISTENCY:
            continue
        # Earlier candidates win ties
        if consistency > best_consistency:
            best, best_consistency = delimiter, consistency

    if best is not None:
        return best

    # A single-column file is still CSV as long as every row has one cell
    consistency, columns = _score_delimiter(lines, ",")
    if columns == 1 and consistency == 1.0:
        return ","
    return None
