"""
File exporters for CSV, Excel and PDF output.
"""
from export_analysis.exporters.base import BaseExporter, ExportResult
from export_analysis.exporters.csv_exporter import CSVExporter
from export_analysis.exporters.excel import ExcelExporter, SheetSpec
from export_analysis.exporters.pdf import PDFExporter

__all__ = [
    "BaseExporter",
    "ExportResult",
    "CSVExporter",
    "ExcelExporter",
    "SheetSpec",
    "PDFExporter",
]
