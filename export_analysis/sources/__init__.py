"""
Source connectors for external systems.
"""
from export_analysis.sources.base import BaseSource, SourceResult
from export_analysis.sources.google_analytics import GoogleAnalyticsSource
from export_analysis.sources.shopify import ShopifySource
from export_analysis.sources.stripe_source import StripeSource
from export_analysis.sources.database import DatabaseSource

__all__ = [
    "BaseSource",
    "SourceResult",
    "GoogleAnalyticsSource",
    "ShopifySource",
    "StripeSource",
    "DatabaseSource",
]
