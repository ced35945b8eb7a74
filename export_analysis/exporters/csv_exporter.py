"""
CSV Exporter

RFC 4180 output through pandas: CRLF row endings, minimal quoting, one
header row holding every field in first-seen order. Records without a field
get an empty cell.
"""
import csv
import logging
from pathlib import Path

import pandas as pd

from export_analysis.core.records import Dataset, all_field_names
from export_analysis.exporters.base import BaseExporter

logger = logging.getLogger(__name__)


class CSVExporter(BaseExporter):
    """Write records as a CSV file."""

    format_name = "CSV"
    default_filename = "export.csv"

    def write(
        self,
        data: Dataset,
        filepath: Path,
        delimiter: str = ",",
        include_headers: bool = True,
    ) -> int:
        columns = all_field_names(data)
        # object dtype keeps ints as ints and None as empty cells
        df = pd.DataFrame(data, columns=columns, dtype=object)

        df.to_csv(
            filepath,
            sep=delimiter,
            header=include_headers,
            index=False,
            quoting=csv.QUOTE_MINIMAL,
            lineterminator="\r\n",
            encoding="utf-8",
        )
        return len(df)
