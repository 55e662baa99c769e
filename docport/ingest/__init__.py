"""
Import pipeline stages.

Provides format detection, CSV field listing and type analysis, record
transformation, and batched writes to a backing store.
"""

from docport.ingest.types import (
    CSVField,
    CSVFieldType,
    FieldDescriptor,
    FieldDetection,
    FileType,
    InputDescriptor,
    JSONField,
)
from docport.ingest.format_detector import DetectedFormat, detect_format
from docport.ingest.csv_fields import (
    build_preview_values,
    csv_header_name_to_field_name,
    group_csv_fields,
    list_csv_fields,
)
from docport.ingest.csv_analyzer import AnalyzeResult, analyze_csv_fields
from docport.ingest.json_fields import list_json_fields
from docport.ingest.transform import CSVRowTransformer, JSONDocumentTransformer
from docport.ingest.writer import DocumentWriter
from docport.ingest.importer import ImportResult, import_csv, import_json
from docport.ingest.error_log import ErrorLog, get_error_log_path

__all__ = [  # ruff: noqa: RUF022
    # Descriptors
    "CSVField",
    "CSVFieldType",
    "FieldDescriptor",
    "FieldDetection",
    "FileType",
    "InputDescriptor",
    "JSONField",
    # Detection and listing
    "DetectedFormat",
    "detect_format",
    "build_preview_values",
    "csv_header_name_to_field_name",
    "group_csv_fields",
    "list_csv_fields",
    "list_json_fields",
    # Analysis
    "AnalyzeResult",
    "analyze_csv_fields",
    # Transformation and writing
    "CSVRowTransformer",
    "JSONDocumentTransformer",
    "DocumentWriter",
    "ImportResult",
    "import_csv",
    "import_json",
    # Error log
    "ErrorLog",
    "get_error_log_path",
]
