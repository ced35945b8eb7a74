"""
Export and Analysis Orchestrator

Wires sources, transformers, analyzers and exporters together:

    source -> (clean -> calculate) -> file
    file or records -> trend | comparison | anomaly analysis

Configuration is read once (AppConfig) and handed to each component.
"""
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Dict, Any, Optional, Union

import pandas as pd

from config.settings import AppConfig, get_config
from export_analysis.core.errors import DataError, UnsupportedOptionError
from export_analysis.core.records import (
    Dataset,
    field_names,
    first_date_field,
    first_numeric_field,
    is_number,
)
from export_analysis.sources.base import BaseSource, SourceResult
from export_analysis.sources.google_analytics import GoogleAnalyticsSource
from export_analysis.sources.shopify import ShopifySource
from export_analysis.sources.stripe_source import StripeSource
from export_analysis.sources.database import DatabaseSource
from export_analysis.transformers.cleaner import CleaningOptions, clean_data
from export_analysis.transformers.calculator import Calculation, apply_calculations
from export_analysis.analyzers.trends import analyze_trend, detect_seasonality
from export_analysis.analyzers.comparison import period_over_period
from export_analysis.analyzers.anomaly import detect_anomalies
from export_analysis.exporters.base import ExportResult
from export_analysis.exporters.csv_exporter import CSVExporter
from export_analysis.exporters.excel import ExcelExporter
from export_analysis.exporters.pdf import PDFExporter

logger = logging.getLogger(__name__)

SOURCES = ["google-analytics", "shopify", "stripe", "database"]
ANALYSIS_TYPES = ["trend", "comparison", "anomaly"]
OUTPUT_FORMATS = ["csv", "excel", "xlsx", "pdf"]
FILE_TYPES = [".csv", ".json", ".xlsx"]

FORECAST_PERIODS = 3


@dataclass
class ExportRun:
    """A completed source export: what was fetched and where it was written."""
    source: SourceResult
    output: ExportResult

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source.source,
            "row_count": self.source.row_count,
            "errors": self.source.errors,
            "metadata": self.source.metadata,
            "output": self.output.to_dict(),
        }


class DataExporter:
    """
    Entry point for exports and analyses.

    Usage:
        exporter = DataExporter(get_config())
        run = exporter.export("shopify", output_format="excel", type="orders")
        results = exporter.analyze("exports/shopify-export.csv", "trend")
    """

    def __init__(self, config: Optional[AppConfig] = None):
        self.config = config or get_config()

    # ==================== SOURCES ====================

    def create_source(self, name: str, **options) -> BaseSource:
        """
        Build a connector by name.

        Args:
            name: "google-analytics", "shopify", "stripe" or "database"
            db_type: Database engine for the database source (default mysql)
        """
        export_config = self.config.export

        if name == "google-analytics":
            return GoogleAnalyticsSource(self.config.google_analytics, export_config)
        if name == "shopify":
            return ShopifySource(self.config.shopify, export_config)
        if name == "stripe":
            return StripeSource(self.config.stripe, export_config)
        if name == "database":
            db_type = options.get("db_type") or "mysql"
            try:
                db_config = self.config.database(db_type)
            except ValueError:
                raise UnsupportedOptionError("database type", db_type, ["mysql", "postgres"]) from None
            return DatabaseSource(db_config, export_config, engine=options.get("engine"))

        raise UnsupportedOptionError("source", name, SOURCES)

    def export(
        self,
        source: Union[str, BaseSource],
        output_format: str = "csv",
        filename: Optional[str] = None,
        cleaning: Optional[Union[CleaningOptions, Dict[str, Any]]] = None,
        calculations: Optional[List[Union[Calculation, Dict[str, Any]]]] = None,
        **options,
    ) -> ExportRun:
        """
        Fetch from a source, optionally transform, and write a file.

        Extra keyword options (type, start_date, end_date, limit, query, ...)
        are passed to the connector.
        """
        if isinstance(source, BaseSource):
            connector = source
        else:
            connector = self.create_source(source, db_type=options.pop("db_type", None))

        logger.info(f"Exporting from {connector.name}")
        result = connector.export(**options)

        data = result.data
        if cleaning or calculations:
            data = self.transform(data, cleaning, calculations)

        output = self.export_to_file(output_format, data, filename or f"{connector.name}-export")
        return ExportRun(source=replace(result, data=data), output=output)

    # ==================== TRANSFORMS ====================

    def transform(
        self,
        data: Dataset,
        cleaning: Optional[Union[CleaningOptions, Dict[str, Any]]] = None,
        calculations: Optional[List[Union[Calculation, Dict[str, Any]]]] = None,
    ) -> Dataset:
        """
        Clean, then apply calculations in order.

        Currency rates and target default to the pipeline settings when the
        cleaning options do not set them.
        """
        result = data
        if cleaning is not None:
            options = cleaning if isinstance(cleaning, CleaningOptions) else CleaningOptions(**cleaning)
            pipeline = self.config.pipeline
            if options.currency_fields:
                options = replace(
                    options,
                    currency_rates=options.currency_rates if options.currency_rates is not None
                    else dict(pipeline.currency_rates),
                    target_currency=options.target_currency or pipeline.target_currency,
                )
            result = clean_data(result, options)

        if calculations:
            result = apply_calculations(result, calculations)

        return result

    # ==================== ANALYSIS ====================

    def analyze(
        self,
        data_or_file: Union[Dataset, str, Path],
        analysis_type: str,
        field: Optional[str] = None,
        value_field: Optional[str] = None,
        date_field: Optional[str] = None,
        metrics: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        Run one analysis and return JSON-ready results.

        Args:
            data_or_file: Records, or a .csv/.json/.xlsx path
            analysis_type: "trend", "comparison" or "anomaly"
            field: Field for anomaly detection (default: first numeric field)
            value_field: Value field for trends (default: first numeric field)
            date_field: Date field for trends (default: first field whose
                name contains "date" or "time")
            metrics: Metrics to compare (default: every numeric field)

        Raises:
            DataError: The dataset is empty or has no numeric field
            UnsupportedOptionError: Unknown analysis type
        """
        if analysis_type not in ANALYSIS_TYPES:
            raise UnsupportedOptionError("analysis type", analysis_type, ANALYSIS_TYPES)

        data = data_or_file if isinstance(data_or_file, list) else self.load_data(data_or_file)
        if not data:
            raise DataError("No data to analyze")

        logger.info(f"Running {analysis_type} analysis on {len(data)} records")
        pipeline = self.config.pipeline

        if analysis_type == "trend":
            value_field = value_field or self._require_numeric_field(data)
            date_field = date_field or first_date_field(data)
            trend = analyze_trend(data, value_field, date_field)
            seasonality = detect_seasonality(
                data, value_field, date_field, threshold=pipeline.seasonality_threshold
            )
            return {
                "analysis": "trend",
                "value_field": value_field,
                "date_field": date_field,
                "trend": trend.to_dict(),
                "seasonality": seasonality.to_dict(),
                "forecast": trend.forecast(FORECAST_PERIODS),
            }

        if analysis_type == "comparison":
            # First half is the previous period, second half the current one
            midpoint = len(data) // 2
            previous, current = data[:midpoint], data[midpoint:]
            metrics = metrics or [name for name in field_names(data) if is_number(data[0].get(name))]
            comparison = period_over_period(current, previous, metrics)
            return {
                "analysis": "comparison",
                "previous_count": len(previous),
                "current_count": len(current),
                "metrics": {metric: result.to_dict() for metric, result in comparison.items()},
            }

        field = field or value_field or self._require_numeric_field(data)
        anomalies = detect_anomalies(
            data,
            field,
            threshold=pipeline.zscore_threshold,
            multiplier=pipeline.iqr_multiplier,
        )
        return {"analysis": "anomaly", "field": field, **anomalies.to_dict()}

    @staticmethod
    def _require_numeric_field(data: Dataset) -> str:
        name = first_numeric_field(data)
        if name is None:
            raise DataError("No numeric field found to analyze")
        return name

    # ==================== FILES ====================

    def export_to_file(
        self,
        fmt: str,
        data: Dataset,
        filename: Optional[str] = None,
        **options,
    ) -> ExportResult:
        """
        Write records in a format; ``filename`` is given without extension.

        Extra options go to the exporter (title/summary for PDF, sheets for
        Excel, delimiter/include_headers for CSV).
        """
        output_dir = self.config.export.export_dir

        if fmt == "csv":
            exporter = CSVExporter(output_dir)
            name = f"{filename or 'export'}.csv"
        elif fmt in ("excel", "xlsx"):
            exporter = ExcelExporter(output_dir)
            name = f"{filename or 'export'}.xlsx"
        elif fmt == "pdf":
            exporter = PDFExporter(output_dir, max_rows=self.config.pipeline.pdf_max_rows)
            name = f"{filename or 'report'}.pdf"
        else:
            raise UnsupportedOptionError("output format", fmt, OUTPUT_FORMATS)

        result = exporter.export(data, name, **options)
        logger.info(f"Exported to: {result.filepath}")
        return result

    def load_data(self, path: Union[str, Path]) -> Dataset:
        """
        Load records from a .csv, .json (array of objects) or .xlsx file.

        Empty cells come back as None.
        """
        path = Path(path)
        suffix = path.suffix.lower()
        if suffix not in FILE_TYPES:
            raise UnsupportedOptionError("file type", suffix or str(path), FILE_TYPES)
        if not path.exists():
            raise DataError(f"File not found: {path}", context={"path": str(path)})

        if suffix == ".csv":
            df = pd.read_csv(path)
        elif suffix == ".json":
            df = pd.read_json(path, orient="records", convert_dates=False)
        else:
            df = pd.read_excel(path, engine="openpyxl")

        df = df.astype(object).where(pd.notna(df), None)
        records = df.to_dict(orient="records")
        logger.info(f"Loaded {len(records)} records from {path}")
        return records


_data_exporter: Optional[DataExporter] = None

def get_data_exporter(config: Optional[AppConfig] = None) -> DataExporter:
    """Get the shared DataExporter (a new one when a config is passed)."""
    global _data_exporter
    if config is not None:
        return DataExporter(config)
    if _data_exporter is None:
        _data_exporter = DataExporter()
    return _data_exporter
