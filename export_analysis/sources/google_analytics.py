"""
Google Analytics 4 Source

Runs a GA4 Data API report and returns one record per row: dimensions as
strings, metrics as floats. Authentication uses a service-account key file
through google-auth's AuthorizedSession.
"""
import logging
from typing import List, Dict, Any, Optional, Sequence

import requests
from google.auth.transport.requests import AuthorizedSession
from google.oauth2 import service_account

from config.settings import GoogleAnalyticsConfig, ExportConfig
from export_analysis.core.errors import ConfigurationError
from export_analysis.core.records import Dataset
from export_analysis.sources.base import BaseSource, SourceResult

logger = logging.getLogger(__name__)

GA_DATA_API = "https://analyticsdata.googleapis.com/v1beta"
GA_SCOPES = ["https://www.googleapis.com/auth/analytics.readonly"]

AVAILABLE_METRICS = [
    "sessions",
    "totalUsers",
    "newUsers",
    "screenPageViews",
    "bounceRate",
    "averageSessionDuration",
    "conversions",
    "eventCount",
]

AVAILABLE_DIMENSIONS = [
    "date",
    "country",
    "city",
    "deviceCategory",
    "browser",
    "operatingSystem",
    "pagePath",
    "pageTitle",
    "sessionSource",
    "sessionMedium",
    "sessionCampaignName",
]


def transform_report(report: Dict[str, Any], errors: Optional[List[str]] = None) -> Dataset:
    """
    Flatten a runReport response into records.

    A row whose metric values cannot be parsed is skipped and described in
    ``errors``.
    """
    dimension_names = [h["name"] for h in report.get("dimensionHeaders", [])]
    metric_names = [h["name"] for h in report.get("metricHeaders", [])]

    data = []
    for position, row in enumerate(report.get("rows", [])):
        try:
            record = {
                name: value.get("value")
                for name, value in zip(dimension_names, row.get("dimensionValues", []))
            }
            for name, value in zip(metric_names, row.get("metricValues", [])):
                record[name] = float(value["value"])
        except (KeyError, TypeError, ValueError) as e:
            message = f"Google Analytics row {position}: {e}"
            logger.warning(f"Skipping {message}")
            if errors is not None:
                errors.append(message)
            continue
        data.append(record)
    return data


class GoogleAnalyticsSource(BaseSource):
    """GA4 property connector."""

    name = "google-analytics"
    display_name = "Google Analytics"

    def __init__(
        self,
        config: Optional[GoogleAnalyticsConfig] = None,
        export_config: Optional[ExportConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(export_config)
        self.config = config or GoogleAnalyticsConfig()

        if not self.config.property_id:
            raise ConfigurationError("GA_PROPERTY_ID is required")
        if not self.config.credentials_path:
            raise ConfigurationError("GA_CREDENTIALS_PATH is required")

        self._session = session

    def _get_session(self) -> requests.Session:
        """Get or create the authorized session."""
        if self._session is None:
            credentials = service_account.Credentials.from_service_account_file(
                self.config.credentials_path, scopes=GA_SCOPES
            )
            self._session = AuthorizedSession(credentials)
        return self._session

    def fetch(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        metrics: Sequence[str] = ("sessions", "totalUsers", "screenPageViews"),
        dimensions: Sequence[str] = ("date",),
        limit: int = 10000,
        **_,
    ) -> SourceResult:
        body = {
            "dateRanges": [{
                "startDate": start_date or "30daysAgo",
                "endDate": end_date or "today",
            }],
            "dimensions": [{"name": name} for name in dimensions],
            "metrics": [{"name": name} for name in metrics],
            "limit": limit,
        }

        url = f"{GA_DATA_API}/properties/{self.config.property_id}:runReport"
        response = self._get_session().post(
            url, json=body, timeout=self.export_config.http_timeout_seconds
        )
        response.raise_for_status()

        errors: List[str] = []
        data = transform_report(response.json(), errors)

        return SourceResult(
            data=data,
            source=self.name,
            metadata={
                "property_id": self.config.property_id,
                "date_range": {"start_date": start_date, "end_date": end_date},
                "row_count": len(data),
            },
            errors=errors,
        )
