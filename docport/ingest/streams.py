"""
Byte-counting stream wrappers.

Stages read the source through ``CountingReader`` (and exports write through
``CountingWriter``) so progress can be reported in bytes while the text
layer decodes UTF-8 lazily.
"""

import io
from typing import BinaryIO, TextIO


class CountingReader(io.RawIOBase):
    """Raw reader that counts the bytes pulled from the wrapped stream."""

    def __init__(self, source: BinaryIO):
        self._source = source
        self.bytes_read = 0

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        data = self._source.read(len(buffer))
        if not data:
            return 0
        size = len(data)
        buffer[:size] = data
        self.bytes_read += size
        return size

    def close(self) -> None:
        # The underlying file belongs to the caller
        super().close()


def open_text(reader: CountingReader) -> TextIO:
    """
    Decode a counting reader as UTF-8 text.

    A leading byte order mark is dropped and newlines are passed through
    untranslated so the csv module can handle quoted line breaks.
    """
    return io.TextIOWrapper(
        io.BufferedReader(reader), encoding="utf-8-sig", newline="")


class CountingWriter(io.RawIOBase):
    """Raw writer that counts the bytes pushed to the wrapped stream."""

    def __init__(self, target: BinaryIO):
        self._target = target
        self.bytes_written = 0

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        size = len(data)
        self._target.write(bytes(data))
        self.bytes_written += size
        return size


def open_text_writer(writer: CountingWriter) -> TextIO:
    """Encode text as UTF-8 into a counting writer."""
    return io.TextIOWrapper(
        io.BufferedWriter(writer), encoding="utf-8", newline="")
