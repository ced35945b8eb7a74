"""
Configuration settings for the Data Export & Analysis tool.

Credentials and runtime knobs come from environment variables, never hardcoded.
Pipeline tuning (currency rates, thresholds) lives in config/pipeline.yaml and
is loaded once into an immutable PipelineSettings object.
"""
import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).parent
DEFAULT_PIPELINE_FILE = CONFIG_DIR / "pipeline.yaml"


@dataclass
class GoogleAnalyticsConfig:
    """Google Analytics 4 Data API configuration."""
    property_id: str = field(default_factory=lambda: os.getenv("GA_PROPERTY_ID", ""))
    credentials_path: str = field(default_factory=lambda: os.getenv("GA_CREDENTIALS_PATH", ""))


@dataclass
class ShopifyConfig:
    """Shopify Admin API configuration."""
    shop_url: str = field(default_factory=lambda: os.getenv("SHOPIFY_SHOP_URL", ""))
    access_token: str = field(default_factory=lambda: os.getenv("SHOPIFY_ACCESS_TOKEN", ""))
    api_version: str = field(default_factory=lambda: os.getenv("SHOPIFY_API_VERSION", "2024-01"))


@dataclass
class StripeConfig:
    """Stripe API configuration."""
    api_key: str = field(default_factory=lambda: os.getenv("STRIPE_API_KEY", ""))


@dataclass
class DatabaseConfig:
    """Connection settings for a single database engine."""
    engine: str
    host: str = ""
    port: int = 0
    user: str = ""
    password: str = ""
    database: str = ""

    @classmethod
    def from_env(cls, engine: str) -> "DatabaseConfig":
        """
        Build a config from DB_<ENGINE>_* variables.

        Args:
            engine: "mysql" or "postgres"
        """
        prefix = f"DB_{engine.upper()}_"
        default_port = "3306" if engine == "mysql" else "5432"
        return cls(
            engine=engine,
            host=os.getenv(prefix + "HOST", ""),
            port=int(os.getenv(prefix + "PORT", default_port)),
            user=os.getenv(prefix + "USER", ""),
            password=os.getenv(prefix + "PASSWORD", ""),
            database=os.getenv(prefix + "DATABASE", ""),
        )


@dataclass
class ExportConfig:
    """File output and HTTP courtesy settings."""
    export_dir: str = field(default_factory=lambda: os.getenv("EXPORT_DIR", "./exports"))
    # Fixed pause between successive API calls (client-side rate-limit courtesy)
    request_delay_ms: int = field(
        default_factory=lambda: int(os.getenv("REQUEST_DELAY_MS", "500"))
    )
    http_timeout_seconds: float = field(
        default_factory=lambda: float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))
    )


@dataclass(frozen=True)
class PipelineSettings:
    """
    Transform/analysis tuning loaded from pipeline.yaml.

    Loaded once at process start and never mutated afterwards.
    """
    target_currency: str = "USD"
    currency_rates: Dict[str, float] = field(default_factory=dict)
    seasonality_threshold: float = 0.15
    zscore_threshold: float = 3.0
    iqr_multiplier: float = 1.5
    pdf_max_rows: int = 50

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "PipelineSettings":
        currency = raw.get("currency", {}) or {}
        analysis = raw.get("analysis", {}) or {}
        export = raw.get("export", {}) or {}
        return cls(
            target_currency=currency.get("target", "USD"),
            currency_rates={k: float(v) for k, v in (currency.get("rates") or {}).items()},
            seasonality_threshold=float(analysis.get("seasonality_threshold", 0.15)),
            zscore_threshold=float(analysis.get("zscore_threshold", 3.0)),
            iqr_multiplier=float(analysis.get("iqr_multiplier", 1.5)),
            pdf_max_rows=int(export.get("pdf_max_rows", 50)),
        )


def load_pipeline_settings(path: Optional[Path] = None) -> PipelineSettings:
    """
    Load pipeline settings from YAML.

    Falls back to defaults when the file does not exist. A file that exists
    but cannot be parsed is a configuration error and propagates.
    """
    import yaml

    path = Path(path or os.getenv("PIPELINE_CONFIG", DEFAULT_PIPELINE_FILE))
    if not path.exists():
        logger.warning(f"Pipeline config not found at {path}. Using defaults.")
        return PipelineSettings()

    with open(path, 'r', encoding='utf-8') as f:
        raw = yaml.safe_load(f) or {}
    logger.info(f"Loaded pipeline config from {path}")
    return PipelineSettings.from_dict(raw)


@dataclass
class AppConfig:
    """Main application configuration."""
    google_analytics: GoogleAnalyticsConfig = field(default_factory=GoogleAnalyticsConfig)
    shopify: ShopifyConfig = field(default_factory=ShopifyConfig)
    stripe: StripeConfig = field(default_factory=StripeConfig)
    mysql: DatabaseConfig = field(default_factory=lambda: DatabaseConfig.from_env("mysql"))
    postgres: DatabaseConfig = field(default_factory=lambda: DatabaseConfig.from_env("postgres"))
    export: ExportConfig = field(default_factory=ExportConfig)
    pipeline: PipelineSettings = field(default_factory=load_pipeline_settings)

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    def database(self, engine: str) -> DatabaseConfig:
        """Get the connection settings for an engine name."""
        if engine == "mysql":
            return self.mysql
        if engine in ("postgres", "postgresql"):
            return self.postgres
        raise ValueError(f"Unsupported database type: {engine}")


def get_config() -> AppConfig:
    """Factory function to get application configuration."""
    return AppConfig()
