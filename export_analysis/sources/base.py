"""
Source Connector Base

Shared result container and helpers for connectors that pull records from
external systems. A connector fails fast on missing credentials (at
construction) and wraps transport failures in SourceExportError; a record
that cannot be flattened is logged, kept out of the result and reported in
SourceResult.errors.
"""
import time
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Dict, Any, Optional, Callable, Iterable

from config.settings import ExportConfig
from export_analysis.core.errors import SourceExportError
from export_analysis.core.records import Dataset, parse_date

logger = logging.getLogger(__name__)


@dataclass
class SourceResult:
    """Records fetched from a source, with metadata."""
    data: Dataset
    source: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    retrieved_at: datetime = field(default_factory=datetime.now)

    @property
    def row_count(self) -> int:
        return len(self.data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": self.data,
            "source": self.source,
            "metadata": self.metadata,
            "errors": self.errors,
            "retrieved_at": self.retrieved_at.isoformat(),
            "row_count": self.row_count,
        }


class BaseSource(ABC):
    """Base class for source connectors."""

    name = "source"
    display_name = "Source"

    def __init__(self, export_config: Optional[ExportConfig] = None):
        self.export_config = export_config or ExportConfig()

    @abstractmethod
    def fetch(self, **options) -> SourceResult:
        """Fetch records; transport errors propagate unwrapped."""

    def export(self, **options) -> SourceResult:
        """
        Fetch records from the source.

        Raises:
            SourceExportError: "<Source> export failed: <message>"
        """
        try:
            result = self.fetch(**options)
        except SourceExportError:
            raise
        except Exception as e:
            logger.error(f"{self.display_name} export failed: {e}")
            raise SourceExportError(
                f"{self.display_name} export failed: {e}",
                context={"source": self.name},
            ) from e

        logger.info(f"Exported {result.row_count} records from {self.display_name}")
        if result.errors:
            logger.warning(f"{len(result.errors)} {self.display_name} records skipped")
        return result

    def pause(self) -> None:
        """Fixed delay between successive API calls."""
        delay_ms = self.export_config.request_delay_ms
        if delay_ms > 0:
            time.sleep(delay_ms / 1000)

    def flatten_all(
        self,
        items: Iterable[Dict[str, Any]],
        flatten: Callable[[Dict[str, Any]], Dict[str, Any]],
        errors: List[str],
    ) -> Dataset:
        """Flatten raw API objects, collecting per-item failures into ``errors``."""
        records = []
        for item in items:
            try:
                records.append(flatten(item))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                item_id = item.get("id") if isinstance(item, dict) else None
                message = f"{self.display_name} record {item_id}: {e}"
                logger.warning(f"Skipping {message}")
                errors.append(message)
        return records


def to_float(value: Any) -> Optional[float]:
    """Parse a numeric API string ("12.50"); None stays None."""
    if value is None:
        return None
    return float(value)


def iso_from_epoch(seconds: Optional[int]) -> Optional[str]:
    """Epoch seconds to an ISO-8601 UTC string."""
    if seconds is None:
        return None
    return parse_date(seconds * 1000).isoformat()


def epoch_seconds(value: Any) -> Optional[int]:
    """A date-like value as epoch seconds (None passes through)."""
    if value is None:
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError(f"Invalid date: {value!r}")
    return int(parsed.timestamp())


def iso_date(value: Any) -> Optional[str]:
    """A date-like value as an ISO-8601 UTC string (None passes through)."""
    if value is None:
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError(f"Invalid date: {value!r}")
    return parsed.isoformat()
