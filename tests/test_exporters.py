"""
Tests for the CSV, Excel and PDF exporters.
"""
from decimal import Decimal

import openpyxl
import pytest

from export_analysis.core.errors import ExportError
from export_analysis.exporters.csv_exporter import CSVExporter
from export_analysis.exporters.excel import ExcelExporter, SheetSpec, header_title
from export_analysis.exporters.pdf import PDFExporter, flatten_summary, format_cell


@pytest.fixture
def records():
    return [
        {"id": 1, "name": "Widget, large", "price": 9.5, "note": None},
        {"id": 2, "name": 'Say "hi"', "price": 12, "note": "ok"},
    ]


class TestCSVExporter:
    """Tests for CSV output."""

    def test_writes_rfc4180(self, tmp_path, records):
        result = CSVExporter(str(tmp_path)).export(records, "out.csv")

        content = (tmp_path / "out.csv").read_bytes().decode("utf-8")
        assert content == (
            'id,name,price,note\r\n'
            '1,"Widget, large",9.5,\r\n'
            '2,"Say ""hi""",12,ok\r\n'
        )
        assert result.success is True
        assert result.row_count == 2
        assert result.size == len(content.encode("utf-8"))

    def test_header_is_union_of_fields(self, tmp_path):
        data = [{"a": 1}, {"a": 2, "extra": "kept"}, {"b": 3, "a": 4}]
        CSVExporter(str(tmp_path)).export(data, "out.csv")
        assert (tmp_path / "out.csv").read_text().splitlines() == [
            "a,extra,b",
            "1,,",
            "2,kept,",
            "4,,3",
        ]

    def test_delimiter_and_no_header(self, tmp_path):
        CSVExporter(str(tmp_path)).export([{"a": 1, "b": 2}], "out.csv", delimiter=";", include_headers=False)
        assert (tmp_path / "out.csv").read_text().strip() == "1;2"

    def test_creates_output_directory(self, tmp_path):
        target = tmp_path / "nested" / "dir"
        CSVExporter(str(target)).export([{"a": 1}])
        assert (target / "export.csv").exists()

    def test_empty_data_raises(self, tmp_path):
        with pytest.raises(ExportError) as exc_info:
            CSVExporter(str(tmp_path)).export([], "out.csv")
        assert str(exc_info.value).startswith("CSV export failed:")


class TestExcelExporter:
    """Tests for styled workbooks."""

    def test_header_and_formatting(self, tmp_path):
        data = [{"order_total": 10.5, "customer_name": "A"}, {"order_total": 3, "customer_name": "B"}]
        result = ExcelExporter(str(tmp_path)).export(data, "out.xlsx")

        wb = openpyxl.load_workbook(result.filepath)
        ws = wb["Data"]
        assert ws["A1"].value == "ORDER TOTAL"
        assert ws["B1"].value == "CUSTOMER NAME"
        assert ws["A1"].font.bold is True
        assert ws["A1"].alignment.horizontal == "center"
        assert ws["A1"].alignment.vertical == "center"
        assert ws.auto_filter.ref == "A1:B1"
        assert ws["A2"].value == 10.5
        assert ws["A2"].number_format == "#,##0.00"
        assert ws["B2"].number_format == "General"
        assert result.row_count == 2

    def test_decimal_cells_are_numbers(self, tmp_path):
        data = [{"total": Decimal("12.50")}, {"total": Decimal("3")}]
        result = ExcelExporter(str(tmp_path)).export(data, "out.xlsx")

        ws = openpyxl.load_workbook(result.filepath)["Data"]
        assert ws["A2"].value == 12.5
        assert ws["A2"].number_format == "#,##0.00"
        assert ws["A3"].value == 3

    def test_union_of_fields_across_records(self, tmp_path):
        data = [{"id": 1}, {"id": 2, "note": "late"}]
        result = ExcelExporter(str(tmp_path)).export(data, "out.xlsx")

        ws = openpyxl.load_workbook(result.filepath)["Data"]
        assert [cell.value for cell in ws[1]] == ["ID", "NOTE"]
        assert ws["B2"].value is None
        assert ws["B3"].value == "late"

    def test_multiple_sheets_skip_empty(self, tmp_path):
        sheets = [
            SheetSpec("Orders", [{"id": 1}]),
            SheetSpec("Empty", []),
            SheetSpec("Customers", [{"id": 9}, {"id": 10}]),
        ]
        result = ExcelExporter(str(tmp_path)).export(filename="multi.xlsx", sheets=sheets)

        wb = openpyxl.load_workbook(result.filepath)
        assert wb.sheetnames == ["Orders", "Customers"]
        assert result.row_count == 3

    def test_no_data_raises(self, tmp_path):
        with pytest.raises(ExportError) as exc_info:
            ExcelExporter(str(tmp_path)).export([], "out.xlsx")
        assert str(exc_info.value).startswith("Excel export failed:")

    def test_header_title(self):
        assert header_title("net_revenue_usd") == "NET REVENUE USD"


class TestPDFExporter:
    """Tests for PDF reports."""

    def test_writes_pdf_with_row_cap(self, tmp_path):
        data = [{"id": i, "label": f"row {i}"} for i in range(60)]
        result = PDFExporter(str(tmp_path), max_rows=50).export(
            data, "report.pdf", title="Test Report", summary={"total": 60}
        )

        content = (tmp_path / "report.pdf").read_bytes()
        assert content.startswith(b"%PDF")
        assert result.row_count == 50
        assert result.size == len(content)

    def test_empty_data_raises(self, tmp_path):
        with pytest.raises(ExportError):
            PDFExporter(str(tmp_path)).export([], "report.pdf")

    def test_format_cell_truncates(self):
        assert format_cell("x" * 30, 20) == "x" * 20
        assert format_cell(None, 20) == ""
        assert format_cell(0, 20) == "0"

    def test_flatten_summary(self):
        rows = flatten_summary({"trend": {"slope": 1.5, "direction": "up"}, "items": [1, 2]})
        assert rows == [["trend.slope", "1.5"], ["trend.direction", "up"], ["items", "2 items"]]
