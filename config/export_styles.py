"""
Report Styling

Centralized colors and fonts for Excel workbooks and PDF reports so both
output formats share one look.
"""
from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass
class ColorPalette:
    """Report color configuration."""
    primary: str = "#4472C4"           # Blue
    accent: str = "#132E57"            # Navy

    # Background colors
    header_bg: str = "#4472C4"         # Header row
    alt_row_bg: str = "#F2F2F2"        # Alternating rows
    border: str = "#808080"

    # Text colors
    text_light: str = "#FFFFFF"
    text_dark: str = "#132E57"
    text_muted: str = "#808080"

    @staticmethod
    def argb(hex_color: str) -> str:
        """Convert '#RRGGBB' to the 'FFRRGGBB' form openpyxl expects."""
        return "FF" + hex_color.lstrip('#').upper()


@dataclass
class Typography:
    """Font configuration."""
    family: str = "Calibri"
    pdf_family: str = "DejaVu Sans"
    title_size: int = 18
    header_size: int = 10
    body_size: int = 9
    small_size: int = 8


@dataclass
class ReportStyle:
    """Complete styling for exported reports."""
    colors: ColorPalette = field(default_factory=ColorPalette)
    typography: Typography = field(default_factory=Typography)

    # Excel
    number_format: str = '#,##0.00'
    max_column_width: int = 50

    # PDF (matplotlib, inches)
    page_size: tuple = (11.0, 8.5)     # US letter, landscape
    rows_per_page: int = 25
    cell_char_limit: int = 20
    dpi: int = 100

    def get_matplotlib_rcparams(self) -> Dict:
        """Get matplotlib rcParams for consistent PDF styling."""
        return {
            'font.family': 'sans-serif',
            'font.sans-serif': [self.typography.pdf_family, 'Arial'],
            'font.size': self.typography.body_size,
            'figure.titlesize': self.typography.title_size,
            'figure.dpi': self.dpi,
            'savefig.dpi': self.dpi,
            'figure.facecolor': 'white',
        }


_report_style: Optional[ReportStyle] = None

def get_report_style() -> ReportStyle:
    """Get the shared report style."""
    global _report_style
    if _report_style is None:
        _report_style = ReportStyle()
    return _report_style
