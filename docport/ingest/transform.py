"""
Record transformation.

Turns raw CSV rows and parsed JSON objects into the documents written to the
backing store, honouring field inclusion and per-field target types.
"""

import copy
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from docport.errors import FieldCastError, ParseError
from docport.ingest.csv_fields import (
    PathComponent,
    csv_header_name_to_field_name,
    parse_header_name,
)
from docport.ingest.csv_types import cast_value
from docport.ingest.types import CSVFieldType


class _Column:
    __slots__ = ("name", "components", "target")

    def __init__(self, name: str, components: List[PathComponent], target: CSVFieldType):
        self.name = name
        self.components = components
        self.target = target


class CSVRowTransformer:
    """
    Converts CSV rows into nested documents.

    Only columns whose grouped path appears in ``field_types`` are kept.
    Cast failures keep the raw string and are reported alongside the
    document; a row with the wrong number of cells is rejected.
    """

    def __init__(
        self,
        header_fields: List[str],
        field_types: Mapping[str, CSVFieldType],
        ignore_blanks: bool = True,
    ):
        self.header_fields = list(header_fields)
        self.ignore_blanks = ignore_blanks
        self._columns: List[Optional[_Column]] = []
        for name in self.header_fields:
            grouped = csv_header_name_to_field_name(name)
            if grouped not in field_types:
                self._columns.append(None)
                continue
            self._columns.append(
                _Column(name, parse_header_name(name), CSVFieldType(field_types[grouped])))

    def transform(self, row: List[str], index: int) -> Tuple[Dict[str, Any], List[FieldCastError]]:
        """
        Build one document.

        Args:
            row: Raw cells
            index: Row number used in error records (0 = first data row)

        Returns:
            Tuple of (document, field-level cast errors)

        Raises:
            ParseError: If the cell count differs from the header
        """
        if len(row) != len(self.header_fields):
            raise ParseError(
                f"Row {index} has {len(row)} fields, expected {len(self.header_fields)}",
                index=index,
                data=row,
            )

        document: Dict[str, Any] = {}
        array_positions: Dict[Tuple[PathComponent, ...], Dict[int, int]] = {}
        errors: List[FieldCastError] = []

        for column, raw in zip(self._columns, row):
            if column is None:
                continue
            if raw == "":
                if self.ignore_blanks:
                    continue
                value: Any = ""
            else:
                try:
                    value = cast_value(raw, column.target)
                except (ValueError, OverflowError) as e:
                    errors.append(FieldCastError(
                        f"Cannot cast {column.name}={raw!r} to {column.target.value}: {e}",
                        path=column.name,
                        index=index,
                        data=raw,
                    ))
                    value = raw
            if not _place_value(document, column.components, value, array_positions):
                errors.append(FieldCastError(
                    f"Field {column.name} conflicts with another column",
                    path=column.name,
                    index=index,
                    data=raw,
                ))

        return document, errors


def _place_value(
    document: Dict[str, Any],
    components: List[PathComponent],
    value: Any,
    array_positions: Dict[Tuple[PathComponent, ...], Dict[int, int]],
) -> bool:
    """
    Set ``value`` at a header path inside ``document``.

    Array indexes from the header are mapped to compact positions so that
    skipped blank elements do not leave holes.
    """
    container: Any = document
    for depth, component in enumerate(components):
        last = depth == len(components) - 1
        next_component = None if last else components[depth + 1]

        if isinstance(component, int):
            if not isinstance(container, list):
                return False
            positions = array_positions.setdefault(tuple(components[:depth]), {})
            if component not in positions:
                positions[component] = len(container)
                container.append(None if last else _empty_for(next_component))
            position = positions[component]
            if last:
                container[position] = value
                return True
            container = container[position]
            continue

        if not isinstance(container, dict):
            return False
        if last:
            if component in container and isinstance(container[component], (dict, list)):
                return False
            container[component] = value
            return True
        if component not in container:
            container[component] = _empty_for(next_component)
        elif not isinstance(container[component], (dict, list)):
            return False
        container = container[component]
    return True


def _empty_for(component: Optional[PathComponent]) -> Any:
    return [] if isinstance(component, int) else {}


class JSONDocumentTransformer:
    """Applies field exclusion to parsed JSON documents; types are kept as-is."""

    def __init__(self, exclude: Optional[Iterable[str]] = None):
        self.exclude = sorted(set(exclude or ()), key=len, reverse=True)

    def transform(self, document: Mapping[str, Any], index: int) -> Dict[str, Any]:
        if not isinstance(document, Mapping):
            raise ParseError(
                f"Document {index} is a {type(document).__name__}, expected an object",
                index=index,
                data=document,
            )
        if not self.exclude:
            return dict(document)
        result = copy.deepcopy(dict(document))
        for path in self.exclude:
            _remove_path(result, path.split("."))
        return result


def _remove_path(container: Any, parts: List[str]) -> None:
    if isinstance(container, list):
        for item in container:
            _remove_path(item, parts)
        return
    if not isinstance(container, dict):
        return
    head = parts[0]
    if head.endswith("[]"):
        head = head[:-2]
    if head not in container:
        return
    if len(parts) == 1:
        del container[head]
        return
    _remove_path(container[head], parts[1:])
