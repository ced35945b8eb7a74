"""
Tests for the source connectors.

HTTP connectors run against Mock sessions; the database connector runs
against an in-memory SQLite engine.
"""
import logging
from decimal import Decimal
from unittest.mock import MagicMock, Mock

import pytest
import requests
from sqlalchemy import create_engine, text

from config.settings import DatabaseConfig, GoogleAnalyticsConfig, ShopifyConfig, StripeConfig
from export_analysis.core.errors import (
    ConfigurationError,
    ErrorCategory,
    SourceExportError,
    UnsupportedOptionError,
    classify_error,
)
from export_analysis.sources.base import epoch_seconds, iso_from_epoch
from export_analysis.sources.database import DatabaseSource, build_url
from export_analysis.sources.google_analytics import GoogleAnalyticsSource, transform_report
from export_analysis.sources.shopify import ShopifySource, flatten_order
from export_analysis.sources.stripe_source import StripeSource, flatten_charge


def make_response(payload, links=None):
    response = Mock()
    response.json.return_value = payload
    response.links = links or {}
    response.raise_for_status.return_value = None
    return response


class TestHelpers:
    """Tests for date conversion helpers."""

    def test_epoch_round_trip(self):
        assert epoch_seconds("2024-01-01") == 1704067200
        assert iso_from_epoch(1704067200) == "2024-01-01T00:00:00+00:00"
        assert epoch_seconds(None) is None

    def test_invalid_date_raises(self):
        with pytest.raises(ValueError):
            epoch_seconds("not a date")


class TestShopifySource:
    """Tests for the Shopify connector."""

    @pytest.fixture
    def config(self):
        return ShopifyConfig(shop_url="test-shop.myshopify.com", access_token="shpat_test")

    def test_missing_credentials(self, export_config):
        with pytest.raises(ConfigurationError):
            ShopifySource(ShopifyConfig(shop_url="", access_token=""), export_config, Mock())

    def test_follows_link_header(self, config, export_config):
        next_url = "https://test-shop.myshopify.com/admin/api/2024-01/orders.json?page_info=abc"
        session = Mock()
        session.get.side_effect = [
            make_response(
                {"orders": [{"id": 1, "total_price": "10.50", "line_items": [{}, {}]}]},
                links={"next": {"url": next_url}},
            ),
            make_response({"orders": [{"id": 2, "total_price": "4.00", "customer": {"id": 77}}]}),
        ]
        source = ShopifySource(config, export_config, session)

        result = source.export(type="orders", start_date="2024-01-01")

        assert [r["id"] for r in result.data] == [1, 2]
        assert result.data[0]["total_price"] == 10.5
        assert result.data[0]["item_count"] == 2
        assert result.data[1]["customer_id"] == 77
        first_call, second_call = session.get.call_args_list
        assert first_call.args[0] == "https://test-shop.myshopify.com/admin/api/2024-01/orders.json"
        assert first_call.kwargs["params"]["created_at_min"] == "2024-01-01T00:00:00+00:00"
        assert first_call.kwargs["params"]["status"] == "any"
        assert second_call.args[0] == next_url
        assert second_call.kwargs["params"] is None
        session.headers.update.assert_called_once()

    def test_stops_at_limit(self, config, export_config):
        session = Mock()
        session.get.return_value = make_response(
            {"products": [{"id": i} for i in range(3)]},
            links={"next": {"url": "https://example/next"}},
        )
        result = ShopifySource(config, export_config, session).fetch(type="products", limit=2)
        assert result.row_count == 2
        assert session.get.call_count == 1

    def test_bad_record_is_reported(self, config, export_config, caplog):
        session = Mock()
        session.get.return_value = make_response({"customers": [{"id": 5}, {"email": "x@example.com"}]})

        with caplog.at_level(logging.WARNING):
            result = ShopifySource(config, export_config, session).export(type="customers")

        assert [r["id"] for r in result.data] == [5]
        assert len(result.errors) == 1
        assert "Skipping Shopify record" in caplog.text

    def test_transport_error_is_wrapped(self, config, export_config):
        session = Mock()
        session.get.side_effect = requests.ConnectionError("connection refused")

        with pytest.raises(SourceExportError) as exc_info:
            ShopifySource(config, export_config, session).export()

        assert str(exc_info.value) == "Shopify export failed: connection refused"
        assert isinstance(exc_info.value.__cause__, requests.ConnectionError)

    def test_unknown_type(self, config, export_config):
        with pytest.raises(UnsupportedOptionError):
            ShopifySource(config, export_config, Mock()).fetch(type="refunds")

    def test_flatten_order_requires_id(self):
        with pytest.raises(KeyError):
            flatten_order({"name": "#1001"})


class TestStripeSource:
    """Tests for the Stripe connector."""

    def test_missing_key(self, export_config):
        with pytest.raises(ConfigurationError):
            StripeSource(StripeConfig(api_key=""), export_config, Mock())

    def test_cursor_pagination(self, export_config):
        session = Mock()
        session.get.side_effect = [
            make_response({
                "data": [{"id": "pi_1", "amount": 1999, "currency": "usd", "created": 1704067200}],
                "has_more": True,
            }),
            make_response({
                "data": [{"id": "pi_2", "amount": 500, "currency": "eur", "created": 1704153600}],
                "has_more": False,
            }),
        ]
        source = StripeSource(StripeConfig(api_key="sk_test"), export_config, session)

        result = source.export(type="payments", start_date="2024-01-01", end_date="2024-01-31")

        assert session.auth == ("sk_test", "")
        assert [r["amount"] for r in result.data] == [19.99, 5.0]
        assert result.data[1]["currency"] == "EUR"
        assert result.data[0]["created"] == "2024-01-01T00:00:00+00:00"

        first_call, second_call = session.get.call_args_list
        assert first_call.args[0] == "https://api.stripe.com/v1/payment_intents"
        assert first_call.kwargs["params"]["created[gte]"] == 1704067200
        assert "created[lte]" in first_call.kwargs["params"]
        assert second_call.kwargs["params"]["starting_after"] == "pi_1"

    def test_invalid_date_is_wrapped(self, export_config):
        source = StripeSource(StripeConfig(api_key="sk_test"), export_config, Mock())
        with pytest.raises(SourceExportError) as exc_info:
            source.export(start_date="yesterday-ish")
        assert str(exc_info.value).startswith("Stripe export failed:")

    def test_flatten_charge(self):
        record = flatten_charge({"id": "ch_1", "amount": 250, "currency": "gbp", "paid": True})
        assert record["amount"] == 2.5
        assert record["currency"] == "GBP"
        assert record["created"] is None


class TestGoogleAnalyticsSource:
    """Tests for the GA4 connector."""

    REPORT = {
        "dimensionHeaders": [{"name": "date"}],
        "metricHeaders": [{"name": "sessions"}, {"name": "bounceRate"}],
        "rows": [
            {"dimensionValues": [{"value": "20240101"}],
             "metricValues": [{"value": "120"}, {"value": "0.45"}]},
            {"dimensionValues": [{"value": "20240102"}],
             "metricValues": [{"value": "n/a"}, {"value": "0.5"}]},
        ],
    }

    def test_transform_report(self):
        errors = []
        data = transform_report(self.REPORT, errors)
        assert data == [{"date": "20240101", "sessions": 120.0, "bounceRate": 0.45}]
        assert len(errors) == 1

    def test_missing_property(self, export_config):
        with pytest.raises(ConfigurationError):
            GoogleAnalyticsSource(GoogleAnalyticsConfig(property_id="", credentials_path="key.json"), export_config)

    def test_fetch_posts_report_request(self, export_config):
        session = Mock()
        session.post.return_value = make_response(self.REPORT)
        config = GoogleAnalyticsConfig(property_id="123456", credentials_path="key.json")
        source = GoogleAnalyticsSource(config, export_config, session=session)

        result = source.export(start_date="2024-01-01", end_date="2024-01-31", metrics=["sessions"])

        url = session.post.call_args.args[0]
        body = session.post.call_args.kwargs["json"]
        assert url.endswith("/properties/123456:runReport")
        assert body["dateRanges"] == [{"startDate": "2024-01-01", "endDate": "2024-01-31"}]
        assert body["metrics"] == [{"name": "sessions"}]
        assert result.row_count == 1
        assert result.metadata["property_id"] == "123456"


class TestDatabaseSource:
    """Tests for the SQL connector."""

    @pytest.fixture
    def engine(self):
        engine = create_engine("sqlite://")
        with engine.begin() as connection:
            connection.execute(text("CREATE TABLE orders (id INTEGER, total REAL)"))
            connection.execute(text("INSERT INTO orders VALUES (1, 9.5), (2, 20.0)"))
        return engine

    def test_runs_query(self, engine, export_config):
        source = DatabaseSource(DatabaseConfig(engine="mysql"), export_config, engine)
        result = source.export(query="SELECT id, total FROM orders ORDER BY id")
        assert result.data == [{"id": 1, "total": 9.5}, {"id": 2, "total": 20.0}]
        assert result.metadata["type"] == "mysql"

    def test_decimal_columns_become_floats(self, export_config):
        engine = MagicMock()
        connection = engine.connect.return_value.__enter__.return_value
        connection.execute.return_value.mappings.return_value.all.return_value = [
            {"id": 1, "total": Decimal("9.50")},
            {"id": 2, "total": Decimal("20.00")},
        ]
        source = DatabaseSource(DatabaseConfig(engine="postgres"), export_config, engine)

        result = source.export(query="SELECT id, total FROM orders")

        assert result.data == [{"id": 1, "total": 9.5}, {"id": 2, "total": 20.0}]
        assert all(type(r["total"]) is float for r in result.data)

    def test_query_required(self, engine, export_config):
        source = DatabaseSource(DatabaseConfig(engine="postgres"), export_config, engine)
        with pytest.raises(SourceExportError, match="SQL query is required"):
            source.export()

    def test_sql_error_is_wrapped(self, engine, export_config):
        source = DatabaseSource(DatabaseConfig(engine="mysql"), export_config, engine)
        with pytest.raises(SourceExportError, match="^Database export failed:"):
            source.export(query="SELECT * FROM missing_table")

    def test_connection_check(self, engine, export_config):
        source = DatabaseSource(DatabaseConfig(engine="mysql"), export_config, engine)
        assert source.test_connection() is True

    def test_missing_host(self, export_config):
        with pytest.raises(ConfigurationError, match="DB_POSTGRES_HOST"):
            DatabaseSource(DatabaseConfig(engine="postgres", host=""), export_config)

    def test_unknown_engine(self, export_config):
        with pytest.raises(UnsupportedOptionError):
            DatabaseSource(DatabaseConfig(engine="oracle", host="db"), export_config)

    def test_build_url(self):
        url = build_url(DatabaseConfig(engine="postgres", host="db", port=5432, user="app", database="shop"))
        assert url.drivername == "postgresql+psycopg2"
        assert url.host == "db"
        assert url.database == "shop"


class TestErrorClassification:
    """Tests for classifying connector failures."""

    def test_http_status_categories(self):
        for status, category in [
            (401, ErrorCategory.AUTHENTICATION_FAILED),
            (429, ErrorCategory.RATE_LIMITED),
            (500, ErrorCategory.DATA_SOURCE_UNAVAILABLE),
        ]:
            response = requests.Response()
            response.status_code = status
            assert classify_error(requests.HTTPError(response=response)).category == category

    def test_wrapped_timeout_is_refined(self):
        try:
            try:
                raise requests.Timeout("read timed out")
            except requests.Timeout as e:
                raise SourceExportError("Stripe export failed: read timed out") from e
        except SourceExportError as wrapped:
            classified = classify_error(wrapped)

        assert classified.category == ErrorCategory.DATA_RETRIEVAL_TIMEOUT
        assert classified.user_message.startswith("Stripe export failed")

    def test_configuration_error(self):
        classified = classify_error(ConfigurationError("STRIPE_API_KEY is required"))
        assert classified.category == ErrorCategory.CONFIGURATION_ERROR
        assert classified.user_message == "Configuration problem: STRIPE_API_KEY is required"
