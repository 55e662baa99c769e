"""
Export pipeline: cursor-driven JSON, JSON lines and CSV writers.
"""

from docport.export.exporter import (
    ExportResult,
    GatherFieldsResult,
    export_csv,
    export_json,
    flatten_document,
    gather_fields,
)

__all__ = [
    "ExportResult",
    "GatherFieldsResult",
    "export_csv",
    "export_json",
    "flatten_document",
    "gather_fields",
]
