"""
SQL Database Source

Runs a read query against MySQL or PostgreSQL through SQLAlchemy and
returns the rows as records.
"""
import logging
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, URL

from config.settings import DatabaseConfig, ExportConfig
from export_analysis.core.errors import ConfigurationError, UnsupportedOptionError, SourceExportError
from export_analysis.core.records import as_number
from export_analysis.sources.base import BaseSource, SourceResult

logger = logging.getLogger(__name__)

# engine name -> SQLAlchemy driver name
DRIVERS = {
    "mysql": "mysql+pymysql",
    "postgres": "postgresql+psycopg2",
    "postgresql": "postgresql+psycopg2",
}


def build_url(config: DatabaseConfig) -> URL:
    """SQLAlchemy URL for a configured engine."""
    driver = DRIVERS.get(config.engine)
    if driver is None:
        raise UnsupportedOptionError("database type", config.engine, list(DRIVERS))
    return URL.create(
        driver,
        username=config.user or None,
        password=config.password or None,
        host=config.host or None,
        port=config.port or None,
        database=config.database or None,
    )


class DatabaseSource(BaseSource):
    """MySQL/PostgreSQL connector."""

    name = "database"
    display_name = "Database"

    def __init__(
        self,
        config: Optional[DatabaseConfig] = None,
        export_config: Optional[ExportConfig] = None,
        engine: Optional[Engine] = None,
    ):
        super().__init__(export_config)
        self.config = config or DatabaseConfig.from_env("mysql")

        if self.config.engine not in DRIVERS:
            raise UnsupportedOptionError("database type", self.config.engine, list(DRIVERS))
        if engine is None and not self.config.host:
            prefix = "MYSQL" if self.config.engine == "mysql" else "POSTGRES"
            raise ConfigurationError(f"DB_{prefix}_HOST is required")

        self._engine = engine

    def get_engine(self) -> Engine:
        """Get or create the SQLAlchemy engine."""
        if self._engine is None:
            self._engine = create_engine(build_url(self.config), pool_pre_ping=True)
        return self._engine

    def fetch(self, query: Optional[str] = None, **_) -> SourceResult:
        if not query:
            raise SourceExportError("Database export failed: SQL query is required")

        with self.get_engine().connect() as connection:
            rows = connection.execute(text(query)).mappings().all()

        # DECIMAL/NUMERIC columns come back as Decimal
        data = [{key: as_number(value) for key, value in row.items()} for row in rows]
        return SourceResult(
            data=data,
            source=self.name,
            metadata={"type": self.config.engine, "row_count": len(data)},
        )

    def test_connection(self) -> bool:
        """
        Run ``SELECT 1``.

        Raises:
            SourceExportError: "Connection failed: <message>"
        """
        try:
            with self.get_engine().connect() as connection:
                connection.execute(text("SELECT 1"))
        except Exception as e:
            raise SourceExportError(
                f"Connection failed: {e}", context={"source": self.name}
            ) from e
        logger.info(f"Database connection to {self.config.engine} OK")
        return True
