"""
PDF Report Exporter

Renders a tabular report with matplotlib: a title and generation timestamp,
the first ``max_rows`` records split over landscape pages, a
"... and N more rows" footer when rows were left out, and an optional
summary page of key/value results.
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Dict, Any, Optional

import matplotlib
matplotlib.use('Agg')  # Non-interactive backend
import matplotlib.pyplot as plt
from matplotlib.backends.backend_pdf import PdfPages

from config.export_styles import get_report_style
from export_analysis.core.records import Dataset, all_field_names
from export_analysis.exporters.base import BaseExporter

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROWS = 50


def format_cell(value: Any, limit: int) -> str:
    """Cell text truncated to ``limit`` characters; None renders empty."""
    if value is None:
        return ""
    return str(value)[:limit]


def flatten_summary(summary: Dict[str, Any], prefix: str = "") -> List[List[str]]:
    """Nested result dicts as ``[["a.b", "value"], ...]`` rows."""
    rows = []
    for key, value in summary.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            rows.extend(flatten_summary(value, f"{name}."))
        elif isinstance(value, float):
            rows.append([name, f"{value:,.4g}"])
        elif isinstance(value, list):
            rows.append([name, f"{len(value)} items"])
        else:
            rows.append([name, str(value)])
    return rows


class PDFExporter(BaseExporter):
    """Write records as a paginated PDF table."""

    format_name = "PDF"
    default_filename = "report.pdf"

    def __init__(self, output_dir: Optional[str] = None, max_rows: int = DEFAULT_MAX_ROWS):
        super().__init__(output_dir)
        self.max_rows = max_rows
        self.style = get_report_style()

    def write(
        self,
        data: Dataset,
        filepath: Path,
        title: str = "Data Report",
        summary: Optional[Dict[str, Any]] = None,
    ) -> int:
        shown = data[:self.max_rows]
        hidden = len(data) - len(shown)
        columns = all_field_names(data)
        generated = f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}"

        rows_per_page = self.style.rows_per_page
        pages = [shown[i:i + rows_per_page] for i in range(0, len(shown), rows_per_page)]

        with plt.rc_context(self.style.get_matplotlib_rcparams()):
            with PdfPages(filepath) as pdf:
                for page_number, page_rows in enumerate(pages, 1):
                    fig = self._table_page(
                        columns,
                        page_rows,
                        title=title if page_number == 1 else f"{title} (page {page_number})",
                        subtitle=generated if page_number == 1 else None,
                        footer=f"... and {hidden} more rows"
                        if hidden > 0 and page_number == len(pages) else None,
                    )
                    pdf.savefig(fig)
                    plt.close(fig)

                if summary:
                    fig = self._summary_page(summary)
                    pdf.savefig(fig)
                    plt.close(fig)

                info = pdf.infodict()
                info["Title"] = title
                info["CreationDate"] = datetime.now()

        return len(shown)

    def _new_page(self, title: str, subtitle: Optional[str] = None):
        colors = self.style.colors
        fig, ax = plt.subplots(figsize=self.style.page_size)
        ax.axis('off')
        fig.suptitle(title, fontsize=self.style.typography.title_size,
                     fontweight='bold', color=colors.text_dark)
        if subtitle:
            fig.text(0.5, 0.91, subtitle, ha='center',
                     fontsize=self.style.typography.small_size, color=colors.text_muted)
        return fig, ax

    def _style_table(self, table, column_count: int):
        colors = self.style.colors
        table.auto_set_font_size(False)
        table.set_fontsize(self.style.typography.small_size)
        for (row, _), cell in table.get_celld().items():
            cell.set_edgecolor(colors.border)
            if row == 0:
                cell.set_facecolor(colors.header_bg)
                cell.set_text_props(color=colors.text_light, fontweight='bold')
            elif row % 2 == 0:
                cell.set_facecolor(colors.alt_row_bg)
        table.auto_set_column_width(list(range(column_count)))

    def _table_page(
        self,
        columns: List[str],
        rows: Dataset,
        title: str,
        subtitle: Optional[str] = None,
        footer: Optional[str] = None,
    ):
        limit = self.style.cell_char_limit
        fig, ax = self._new_page(title, subtitle)

        cell_text = [[format_cell(record.get(column), limit) for column in columns] for record in rows]
        table = ax.table(
            cellText=cell_text,
            colLabels=[format_cell(column, limit) for column in columns],
            loc='upper center',
            cellLoc='left',
        )
        self._style_table(table, len(columns))

        if footer:
            fig.text(0.5, 0.03, footer, ha='center',
                     fontsize=self.style.typography.body_size, style='italic')
        return fig

    def _summary_page(self, summary: Dict[str, Any]):
        fig, ax = self._new_page("Summary")
        table = ax.table(
            cellText=flatten_summary(summary) or [["(none)", ""]],
            colLabels=["Metric", "Value"],
            loc='upper center',
            cellLoc='left',
        )
        self._style_table(table, 2)
        return fig
