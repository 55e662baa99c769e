"""
CSV header handling and preview listing.

Header names encode document structure:
- ``a.b`` is the sub-field ``b`` of the sub-document ``a``
- ``tags[0]``, ``tags[1]`` are elements of the array ``tags``
- ``items[0].name`` is a field of the first element of ``items``

Array columns are grouped into one logical field (``tags[]``,
``items[].name``) for listing, analysis and type selection.
"""

import csv
import json
import re
from dataclasses import dataclass, field
from typing import BinaryIO, Dict, Iterator, List, TextIO, Tuple, Union

from docport.errors import ParseError
from docport.ingest.streams import CountingReader, open_text
from docport.ingest.types import CSVField

_ARRAY_INDEX = re.compile(r"\[(\d+)\]")
_PATH_TOKEN = re.compile(r"([^.\[\]]+)|\[(\d+)\]")

PathComponent = Union[str, int]


@dataclass
class ListCSVFieldsResult:
    """Header names and the first rows of a CSV file."""
    header_fields: List[str] = field(default_factory=list)
    preview: List[List[str]] = field(default_factory=list)


def csv_header_name_to_field_name(name: str) -> str:
    """Collapse array indexes: ``tags[3]`` -> ``tags[]``."""
    return _ARRAY_INDEX.sub("[]", name)


def parse_header_name(name: str) -> List[PathComponent]:
    """
    Split a header name into document path components.

    ``items[2].name`` -> ``["items", 2, "name"]``
    """
    components: List[PathComponent] = []
    for key, index in _PATH_TOKEN.findall(name):
        components.append(int(index) if index else key)
    if not components or not isinstance(components[0], str):
        raise ParseError(f"Invalid CSV header name: {name!r}")
    return components


def iter_csv_records(text: TextIO, delimiter: str) -> Iterator[List[str]]:
    """
    Yield the non-blank rows of a CSV text stream.

    Raises:
        ParseError: On undecodable bytes or input the csv module rejects
    """
    reader = csv.reader(text, delimiter=delimiter)
    try:
        for row in reader:
            if row:
                yield row
    except (csv.Error, UnicodeDecodeError) as e:
        raise ParseError(f"Malformed CSV near line {reader.line_num}: {e}") from e


def normalize_header(row: List[str]) -> List[str]:
    return [name.strip() for name in row]


def list_csv_fields(
    input: BinaryIO,
    delimiter: str,
    preview_rows: int = 10,
) -> ListCSVFieldsResult:
    """
    Read the header and a bounded preview window of a CSV stream.

    Blank lines are skipped. Preview rows are padded or truncated to the
    header width.

    Raises:
        ParseError: If the file has no header or is not valid UTF-8 CSV
    """
    text = open_text(CountingReader(input))
    result = ListCSVFieldsResult()

    try:
        for row in iter_csv_records(text, delimiter):
            if not result.header_fields:
                result.header_fields = normalize_header(row)
                continue
            if len(result.preview) >= preview_rows:
                break
            width = len(result.header_fields)
            result.preview.append((row + [""] * width)[:width])
    finally:
        text.detach()

    if not result.header_fields:
        raise ParseError("CSV file has no header row")
    return result


def group_csv_fields(header_fields: List[str]) -> Tuple[List[CSVField], Dict[str, List[int]]]:
    """
    Merge array columns into logical fields.

    Returns:
        Tuple of (fields in header order, grouped path -> column indexes)
    """
    field_map: Dict[str, List[int]] = {}
    fields: List[CSVField] = []
    for index, name in enumerate(header_fields):
        unique_name = csv_header_name_to_field_name(name)
        if unique_name in field_map:
            field_map[unique_name].append(index)
            continue
        field_map[unique_name] = [index]
        fields.append(CSVField(
            # foo[] is an array, foo[].bar is not even though its cells are
            # grouped for the preview
            path=unique_name,
            is_array=unique_name.endswith("[]"),
        ))
    return fields, field_map


def build_preview_values(
    fields: List[CSVField],
    field_map: Dict[str, List[int]],
    preview: List[List[str]],
) -> List[List[str]]:
    """
    Render preview rows with one cell per logical field.

    Grouped cells skip blanks; ``foo[]`` renders as a JSON array and
    ``foo[].bar`` as a comma-joined list of samples.
    """
    values: List[List[str]] = []
    for row in preview:
        transformed: List[str] = []
        for csv_field in fields:
            indexes = field_map[csv_field.path]
            if len(indexes) == 1:
                transformed.append(_cell(row, indexes[0]))
                continue
            cell_values = [
                value for value in (_cell(row, i) for i in indexes) if value
            ]
            if csv_field.is_array:
                transformed.append(json.dumps(cell_values, indent=2))
            else:
                transformed.append(", ".join(cell_values))
        values.append(transformed)
    return values


def _cell(row: List[str], index: int) -> str:
    return row[index] if index < len(row) else ""
