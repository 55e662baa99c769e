"""
Error taxonomy for the import/export pipeline.

Row-scoped errors (parse, cast, write) are captured as ``ErrorRecord`` entries
and do not unwind the pipeline unless stop-on-errors is set. Setup errors
(format detection, file access) end a run before any document is processed.
Cancellation is never an exception; it is reported through ``aborted``.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from docport.common import jsonutil


class DocportError(Exception):
    """Base exception for the pipeline."""

    kind = "error"

    def __init__(
        self,
        message: str,
        index: Optional[int] = None,
        data: Any = None,
    ):
        super().__init__(message)
        self.index = index
        self.data = data

    def to_record(self) -> "ErrorRecord":
        return ErrorRecord(
            name=type(self).__name__,
            message=str(self),
            kind=self.kind,
            index=self.index,
            data=self.data,
        )


class FormatDetectionError(DocportError):
    """Input could not be classified as CSV, JSON or JSON lines."""

    kind = "format"


class FileAccessError(DocportError):
    """Source file missing/unreadable or error log path unwritable."""

    kind = "file"


class ParseError(DocportError):
    """Malformed row or line. The row is dropped."""

    kind = "parse"


class FieldCastError(DocportError):
    """A value could not be cast to the field's target type."""

    kind = "cast"

    def __init__(self, message: str, path: str, index: Optional[int] = None, data: Any = None):
        super().__init__(message, index=index, data=data)
        self.path = path


class WriteError(DocportError):
    """The backing store rejected a document."""

    kind = "write"


@dataclass(frozen=True)
class ErrorRecord:
    """Immutable description of one failed row/document."""

    name: str
    message: str
    kind: str = "error"
    index: Optional[int] = None
    data: Any = field(default=None, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "name": self.name,
            "message": self.message,
            "kind": self.kind,
        }
        if self.index is not None:
            result["index"] = self.index
        if self.data is not None:
            result["data"] = self.data
        return result

    def to_json(self) -> str:
        return jsonutil.dumps(self.to_dict())

    @classmethod
    def from_exception(cls, error: BaseException, index: Optional[int] = None) -> "ErrorRecord":
        if isinstance(error, DocportError):
            record = error.to_record()
            if index is not None and record.index is None:
                return cls(record.name, record.message, record.kind, index, record.data)
            return record
        return cls(name=type(error).__name__, message=str(error), index=index)
