"""
Per-import error log.

Every row/document error of an import is appended as one JSON line to
``<user_data>/ImportErrorLogs/import-<basename>.log``.
"""

import logging
import os
from pathlib import Path
from typing import Optional, TextIO

from docport.errors import ErrorRecord, FileAccessError

logger = logging.getLogger(__name__)

ERROR_LOG_DIR = "ImportErrorLogs"


def get_error_log_path(user_data_path: str, file_name: str) -> Path:
    """
    Build the error log path for a source file, creating parent directories.

    Raises:
        FileAccessError: If the log directory cannot be created
    """
    log_dir = Path(user_data_path) / ERROR_LOG_DIR
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FileAccessError(f"Unable to create import error log directory: {e}") from e
    return log_dir / f"import-{os.path.basename(file_name)}.log"


class ErrorLog:
    """
    Append-only JSON-lines error log.

    Use as a context manager so the file is closed on every exit path.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.count = 0
        self._file: Optional[TextIO] = None

    def open(self) -> "ErrorLog":
        try:
            self._file = open(self.path, "w", encoding="utf-8")
        except OSError as e:
            raise FileAccessError(f"Unable to create import error log file: {e}") from e
        return self

    def write(self, record: ErrorRecord) -> None:
        if self._file is None:
            raise RuntimeError("Error log is not open")
        self._file.write(record.to_json() + "\n")
        self.count += 1

    def close(self) -> None:
        if self._file is not None and not self._file.closed:
            self._file.close()
            logger.debug(f"Closed error log {self.path} ({self.count} errors)")

    @property
    def closed(self) -> bool:
        return self._file is None or self._file.closed

    def __enter__(self) -> "ErrorLog":
        if self._file is None:
            self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
