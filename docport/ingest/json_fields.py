"""
JSON field listing.

Samples the first documents of a JSON source and flattens them into dotted
paths so fields can be included or excluded before the import starts.
"""

from dataclasses import dataclass, field
from typing import Any, BinaryIO, Dict, List

from docport.ingest.json_reader import iter_json_records
from docport.ingest.streams import CountingReader
from docport.ingest.types import FileType, JSONField


@dataclass
class ListJSONFieldsResult:
    """Paths and sampled documents of a JSON source."""
    fields: List[JSONField] = field(default_factory=list)
    preview: List[Dict[str, Any]] = field(default_factory=list)


def flatten_paths(
    obj: Dict[str, Any],
    max_depth: int = 3,
    parent_path: str = "",
    current_depth: int = 0,
) -> List[str]:
    """
    Flatten a nested document into dotted paths.

    Sub-documents inside arrays are reported under ``name[]``.

    Args:
        obj: The document to flatten
        max_depth: Maximum nesting depth to traverse
        parent_path: Current path prefix
        current_depth: Current nesting level

    Returns:
        Paths in document order
    """
    paths: List[str] = []
    if not isinstance(obj, dict):
        return paths

    for key, value in obj.items():
        path = f"{parent_path}.{key}" if parent_path else key
        depth = current_depth + 1
        paths.append(path)

        if isinstance(value, dict) and depth < max_depth:
            paths.extend(flatten_paths(value, max_depth, path, depth))
        elif isinstance(value, list) and depth < max_depth:
            for item in value:
                if isinstance(item, dict):
                    paths.extend(flatten_paths(item, max_depth, f"{path}[]", depth))

    return paths


def list_json_fields(
    input: BinaryIO,
    variant: FileType,
    preview_docs: int = 10,
    max_depth: int = 3,
) -> ListJSONFieldsResult:
    """
    Sample the first documents of a JSON source.

    Unparseable JSON lines are skipped; a malformed JSON array raises
    ParseError.
    """
    result = ListJSONFieldsResult()
    seen = set()
    for record in iter_json_records(CountingReader(input), variant):
        if len(result.preview) >= preview_docs:
            break
        if record.error is not None or not isinstance(record.value, dict):
            continue
        result.preview.append(record.value)
        for path in flatten_paths(record.value, max_depth):
            if path not in seen:
                seen.add(path)
                result.fields.append(JSONField(path=path))
    return result
