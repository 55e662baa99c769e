"""
Field and input descriptors for the import pipeline.

CSV and JSON fields are distinct variants selected by the detected file type:
a CSV field carries a target type and its detection result, a JSON field only
a path and an inclusion flag.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union


class FileType(str, Enum):
    """Input file classification."""
    CSV = "csv"
    JSON = "json"
    JSONL = "jsonl"
    UNKNOWN = "unknown"


class CSVFieldType(str, Enum):
    """Types a CSV cell can be detected as or cast to."""
    INT = "int"
    LONG = "long"
    DOUBLE = "double"
    BOOLEAN = "boolean"
    DATE = "date"
    OBJECT_ID = "objectId"
    UUID = "uuid"
    NULL = "null"
    STRING = "string"
    MIXED = "mixed"  # Guess the type of every value individually


CSV_DELIMITERS = (",", "\t", ";", " ")


@dataclass(frozen=True)
class InputDescriptor:
    """Selected source file. Immutable once analysis starts."""
    path: str
    size: int
    file_type: FileType
    delimiter: Optional[str] = None

    @property
    def is_csv(self) -> bool:
        return self.file_type == FileType.CSV

    @property
    def json_variant(self) -> Optional[str]:
        if self.file_type in (FileType.JSON, FileType.JSONL):
            return self.file_type.value
        return None


@dataclass
class FieldDetection:
    """Per-field type votes from one analyzer run."""
    types: Dict[CSVFieldType, int] = field(default_factory=dict)
    detected: CSVFieldType = CSVFieldType.MIXED
    sample_values: List[str] = field(default_factory=list)
    blank_count: int = 0

    def to_dict(self) -> dict:
        return {
            "types": {t.value: n for t, n in self.types.items()},
            "detected": self.detected.value,
            "sample_values": list(self.sample_values),
            "blank_count": self.blank_count,
        }


@dataclass
class CSVField:
    """
    One logical CSV column.

    ``path`` is the grouped header name; ``tags[]`` stands for every
    ``tags[N]`` column and ``items[].name`` for every ``items[N].name``.
    """
    path: str
    is_array: bool = False
    checked: bool = True
    type: CSVFieldType = CSVFieldType.MIXED
    result: Optional[FieldDetection] = None
    overridden: bool = False


@dataclass
class JSONField:
    """A dotted path seen in sampled JSON documents."""
    path: str
    checked: bool = True


FieldDescriptor = Union[CSVField, JSONField]
