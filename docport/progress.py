"""
Progress payload and callback signatures shared by import and export.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from docport.errors import ErrorRecord


@dataclass(frozen=True)
class Progress:
    """Snapshot of a running analyze/import/export."""
    bytes_processed: int = 0
    bytes_total: Optional[int] = None
    docs_processed: int = 0
    docs_written: int = 0

    @property
    def fraction(self) -> Optional[float]:
        if not self.bytes_total:
            return None
        return min(1.0, self.bytes_processed / self.bytes_total)


ProgressCallback = Callable[[Progress], None]
ErrorCallback = Callable[[ErrorRecord], None]
