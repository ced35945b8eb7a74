"""
Exporter Base

Output-directory handling, result metadata and error wrapping shared by the
CSV, Excel and PDF exporters.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional

from config.settings import ExportConfig
from export_analysis.core.errors import ExportError

logger = logging.getLogger(__name__)


@dataclass
class ExportResult:
    """A written export file."""
    success: bool
    filepath: str
    size: int
    row_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "filepath": self.filepath,
            "size": self.size,
            "row_count": self.row_count,
        }


class BaseExporter(ABC):
    """Writes records to a file under the export directory."""

    format_name = "File"
    default_filename = "export"

    def __init__(self, output_dir: Optional[str] = None):
        self.output_dir = Path(output_dir or ExportConfig().export_dir)

    @abstractmethod
    def write(self, data: Any, filepath: Path, **options) -> int:
        """Write the file and return the number of data rows written."""

    def export(self, data: Any, filename: Optional[str] = None, **options) -> ExportResult:
        """
        Write ``data`` to ``<output_dir>/<filename>``.

        Raises:
            ExportError: "<Format> export failed: <message>"
        """
        try:
            if not data:
                raise ValueError("No data to export")

            self.output_dir.mkdir(parents=True, exist_ok=True)
            filepath = self.output_dir / (filename or self.default_filename)
            row_count = self.write(data, filepath, **options)
        except Exception as e:
            logger.error(f"{self.format_name} export failed: {e}")
            raise ExportError(
                f"{self.format_name} export failed: {e}",
                context={"format": self.format_name, "filename": filename},
            ) from e

        size = filepath.stat().st_size
        logger.info(f"Wrote {row_count} rows to {filepath} ({size} bytes)")
        return ExportResult(success=True, filepath=str(filepath), size=size, row_count=row_count)
