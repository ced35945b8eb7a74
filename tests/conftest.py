"""
Shared fixtures for the export/analysis tests.
"""
import pytest

from config.settings import (
    AppConfig,
    ExportConfig,
    PipelineSettings,
    GoogleAnalyticsConfig,
    ShopifyConfig,
    StripeConfig,
    DatabaseConfig,
)


@pytest.fixture
def daily_sales():
    """Five days of steadily increasing revenue."""
    return [
        {"id": 1, "date": "2024-01-01", "revenue": 100, "orders": 10},
        {"id": 2, "date": "2024-01-02", "revenue": 120, "orders": 12},
        {"id": 3, "date": "2024-01-03", "revenue": 150, "orders": 14},
        {"id": 4, "date": "2024-01-04", "revenue": 160, "orders": 15},
        {"id": 5, "date": "2024-01-05", "revenue": 200, "orders": 18},
    ]


@pytest.fixture
def export_config(tmp_path):
    """Export settings writing under tmp_path with no request delay."""
    return ExportConfig(
        export_dir=str(tmp_path / "exports"),
        request_delay_ms=0,
        http_timeout_seconds=5,
    )


@pytest.fixture
def pipeline_settings():
    return PipelineSettings(
        target_currency="USD",
        currency_rates={"EUR": 1.1, "GBP": 1.25},
    )


@pytest.fixture
def app_config(export_config, pipeline_settings):
    """AppConfig built without reading the environment or pipeline.yaml."""
    return AppConfig(
        google_analytics=GoogleAnalyticsConfig(property_id="", credentials_path=""),
        shopify=ShopifyConfig(shop_url="test-shop.myshopify.com", access_token="shpat_test"),
        stripe=StripeConfig(api_key="sk_test_123"),
        mysql=DatabaseConfig(engine="mysql", host="localhost", port=3306),
        postgres=DatabaseConfig(engine="postgres", host="", port=5432),
        export=export_config,
        pipeline=pipeline_settings,
        log_level="DEBUG",
    )
