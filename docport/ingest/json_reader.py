"""
Streaming JSON readers.

JSON arrays are parsed incrementally with ijson so large files are never
loaded whole. JSON lines are parsed one line at a time; a bad line is a
row-scoped error and reading continues.
"""

from dataclasses import dataclass
from typing import Any, Iterator, Optional

import ijson

from docport.common import jsonutil
from docport.errors import ParseError
from docport.ingest.streams import CountingReader, open_text
from docport.ingest.types import FileType

_BOM = b"\xef\xbb\xbf"


@dataclass(frozen=True)
class JSONRecord:
    """One entry of a JSON source: a parsed value or a row-scoped error."""
    index: int
    value: Any = None
    error: Optional[ParseError] = None


def iter_json_records(
    reader: CountingReader,
    variant: FileType,
) -> Iterator[JSONRecord]:
    """
    Iterate the documents of a JSON array or JSON lines stream.

    Args:
        reader: Counting reader over the source bytes
        variant: FileType.JSON or FileType.JSONL

    Raises:
        ParseError: If a JSON array is malformed; the rest of the stream
            cannot be recovered
    """
    if variant == FileType.JSONL:
        yield from _iter_json_lines(reader)
    elif variant == FileType.JSON:
        yield from _iter_json_array(reader)
    else:
        raise ValueError(f"Not a JSON variant: {variant}")


def _iter_json_lines(reader: CountingReader) -> Iterator[JSONRecord]:
    text = open_text(reader)
    index = 0
    try:
        for line in text:
            if not line.strip():
                continue
            try:
                value = jsonutil.loads(line)
            except ValueError as e:
                yield JSONRecord(index=index, error=ParseError(
                    f"Invalid JSON on line {index + 1}: {e}",
                    index=index,
                    data=line.rstrip("\r\n")[:1000],
                ))
            else:
                yield JSONRecord(index=index, value=value)
            index += 1
    except UnicodeDecodeError as e:
        raise ParseError(f"Input is not valid UTF-8: {e}") from e
    finally:
        text.detach()


def _iter_json_array(reader: CountingReader) -> Iterator[JSONRecord]:
    buffered = _PeekReader(reader)
    first = buffered.peek_non_space()
    # A single top-level object is imported as one document
    prefix = "item" if first == b"[" else ""
    index = 0
    try:
        for value in ijson.items(buffered, prefix, use_float=True):
            yield JSONRecord(index=index, value=jsonutil.revive(value))
            index += 1
    except ijson.JSONError as e:
        raise ParseError(f"Invalid JSON after document {index}: {e}", index=index) from e


class _PeekReader:
    """Binary reader that can look at the first significant byte."""

    def __init__(self, reader: CountingReader):
        self._reader = reader
        self._buffer = b""

    def peek_non_space(self) -> bytes:
        while True:
            chunk = self._reader.read(4096)
            if not chunk:
                break
            self._buffer += chunk
            if self._buffer.startswith(_BOM):
                self._buffer = self._buffer[len(_BOM):]
            stripped = self._buffer.lstrip()
            if stripped:
                return stripped[:1]
        return b""

    def read(self, size: int = -1) -> bytes:
        if self._buffer:
            data, self._buffer = self._buffer, b""
            if size is not None and 0 <= size < len(data):
                data, self._buffer = data[:size], data[size:]
            return data
        return self._reader.read(size)
