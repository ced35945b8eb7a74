"""
Excel Exporter

Writes one worksheet per SheetSpec with a styled header row (upper-cased
titles), an auto-filter, a number format on numeric columns, alternating
row fill and auto-fit column widths.
"""
import math
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Any, Optional

import openpyxl
from openpyxl.styles import Font, PatternFill, Alignment
from openpyxl.utils import get_column_letter

from config.export_styles import get_report_style
from export_analysis.core.records import Dataset, all_field_names, as_number, is_missing, is_number
from export_analysis.exporters.base import BaseExporter

logger = logging.getLogger(__name__)

# Excel's sheet-name limit
MAX_SHEET_NAME = 31


@dataclass
class SheetSpec:
    """A named worksheet and its records."""
    name: str
    data: Dataset


def header_title(column: str) -> str:
    """Column name as a header: order_total -> ORDER TOTAL."""
    return column.replace("_", " ").upper()


def _is_numeric_column(data: Dataset, column: str) -> bool:
    """Whether the first non-missing value of a column is a number."""
    for record in data:
        value = record.get(column)
        if not is_missing(value):
            return is_number(value)
    return False


def _cell_value(value: Any) -> Any:
    """Coerce a record value into something openpyxl can store."""
    value = as_number(value)
    if isinstance(value, float) and math.isnan(value):
        return None
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    return str(value)


class ExcelExporter(BaseExporter):
    """Write records (or several named sheets) to an .xlsx workbook."""

    format_name = "Excel"
    default_filename = "export.xlsx"

    def __init__(self, output_dir: Optional[str] = None):
        super().__init__(output_dir)
        self.style = get_report_style()
        self._setup_styles()

    def _setup_styles(self):
        """Create reusable cell styles."""
        colors = self.style.colors
        typography = self.style.typography

        self.header_fill = PatternFill(
            start_color=colors.argb(colors.header_bg),
            end_color=colors.argb(colors.header_bg),
            fill_type="solid",
        )
        self.header_font = Font(
            name=typography.family,
            size=typography.header_size,
            bold=True,
            color=colors.argb(colors.text_light),
        )
        self.data_font = Font(name=typography.family, size=typography.body_size)
        self.alt_row_fill = PatternFill(
            start_color=colors.argb(colors.alt_row_bg),
            end_color=colors.argb(colors.alt_row_bg),
            fill_type="solid",
        )

    def export(self, data: Any = None, filename: Optional[str] = None, **options):
        """
        Write a workbook.

        Args:
            data: Records for a single "Data" sheet (ignored when ``sheets``
                is given)
            filename: Output file name (default export.xlsx)
            sheets: Optional list of SheetSpec for a multi-sheet workbook
        """
        sheets = options.pop("sheets", None) or [SheetSpec("Data", data or [])]
        return super().export(sheets, filename, **options)

    def write(self, sheets: List[SheetSpec], filepath: Path, **_) -> int:
        wb = openpyxl.Workbook()
        wb.remove(wb.active)

        row_count = 0
        for sheet in sheets:
            if not sheet.data:
                logger.debug(f"Skipping empty sheet '{sheet.name}'")
                continue
            self._add_worksheet(wb, sheet.name, sheet.data)
            row_count += len(sheet.data)

        if not wb.worksheets:
            raise ValueError("No data to export")

        wb.save(filepath)
        return row_count

    def _add_worksheet(self, wb, name: str, data: Dataset):
        ws = wb.create_sheet(title=name[:MAX_SHEET_NAME])
        columns = all_field_names(data)

        # Header row
        for col_idx, column in enumerate(columns, 1):
            cell = ws.cell(row=1, column=col_idx, value=header_title(column))
            cell.font = self.header_font
            cell.fill = self.header_fill
            cell.alignment = Alignment(horizontal="center", vertical="center")

        numeric_columns = {column for column in columns if _is_numeric_column(data, column)}

        # Data rows
        for row_idx, record in enumerate(data, 2):
            for col_idx, column in enumerate(columns, 1):
                cell = ws.cell(row=row_idx, column=col_idx, value=_cell_value(record.get(column)))
                cell.font = self.data_font
                if column in numeric_columns:
                    cell.number_format = self.style.number_format
                if row_idx % 2 == 1:
                    cell.fill = self.alt_row_fill

        ws.auto_filter.ref = f"A1:{get_column_letter(len(columns))}1"
        ws.freeze_panes = "A2"

        # Auto-fit columns
        for col_idx, column in enumerate(columns, 1):
            max_length = max(
                len(header_title(column)),
                max((len(str(record.get(column, ""))) for record in data), default=0),
            )
            ws.column_dimensions[get_column_letter(col_idx)].width = min(
                max_length + 2, self.style.max_column_width
            )

        return ws
