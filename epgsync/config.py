from pathlib import Path
import logging

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)


class CustomSettings(BaseSettings):
    """Application settings loaded from environment variables.

    Validates configuration at startup to catch misconfiguration early.
    """

    database_path: str = "./data/epgsync.db"
    input_id: str = "epgsync"
    xmltv_source: str | None = None
    m3u_source: str | None = None

    full_sync_window_sec: int = 60 * 60 * 24 * 14  # 2 weeks
    short_sync_window_sec: int = 60 * 60  # 1 hour
    batch_operation_count: int = 100  # Store payload limit per batch
    sync_max_concurrency: int = 4
    store_timeout_sec: float = 30.0

    download_timeout_sec: float = 120.0
    download_max_retries: int = 3
    parse_timeout_sec: int = 600  # XML parsing timeout, 0 disables timeout

    log_level: str = "INFO"
    server_host: str = "0.0.0.0"
    server_port: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("xmltv_source", "m3u_source", mode="before")
    @classmethod
    def parse_source(cls, value):
        """Treat blank source URLs as unset."""
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value

    @field_validator("xmltv_source", "m3u_source", mode="after")
    @classmethod
    def validate_source(cls, value, info):
        """Validate listing source URLs are HTTP/HTTPS."""
        if value is None:
            return value
        if not value.lower().startswith(("http://", "https://")):
            raise ValueError(f"{info.field_name} must be HTTP/HTTPS: {value}")
        return value

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, value: str) -> str:
        """Validate database path is accessible."""
        if value == ":memory:":
            return value
        path = Path(value)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            return value
        except (OSError, PermissionError) as exc:
            raise ValueError(f"Cannot access database path '{value}': {exc}") from exc

    @field_validator(
        "full_sync_window_sec",
        "short_sync_window_sec",
        "batch_operation_count",
        "sync_max_concurrency",
        "download_max_retries",
        "server_port",
    )
    @classmethod
    def validate_positive_ints(cls, value: int, info) -> int:
        """Ensure integer settings are positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("store_timeout_sec", "download_timeout_sec")
    @classmethod
    def validate_positive_floats(cls, value: float, info) -> float:
        """Ensure timeouts are positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("parse_timeout_sec")
    @classmethod
    def validate_parse_timeout(cls, value: int) -> int:
        """Validate XML parsing timeout (seconds)."""
        if value < 0:
            raise ValueError("parse_timeout_sec must be >= 0")
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate log level name."""
        normalized = value.upper()
        allowed = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
        if normalized not in allowed:
            raise ValueError(f"log_level must be one of {sorted(allowed)}")
        return normalized

    @model_validator(mode="after")
    def validate_sync_configuration(self):
        """Validate cross-field configuration."""
        if not self.xmltv_source:
            logger.warning(
                "No XMLTV source configured - sync will not retrieve any programs"
            )

        if self.short_sync_window_sec > self.full_sync_window_sec:
            raise ValueError(
                "short_sync_window_sec must not exceed full_sync_window_sec"
            )

        return self

    def __init__(self, **data):
        """Initialize settings and log configuration."""
        super().__init__(**data)

        logger.info("Configuration loaded:")
        logger.info("  Database: %s", self.database_path)
        logger.info("  Input ID: %s", self.input_id)
        logger.info("  XMLTV Source: %s", "configured" if self.xmltv_source else "none")
        logger.info("  M3U Source: %s", "configured" if self.m3u_source else "none")
        logger.info("  Full Sync Window: %ss", self.full_sync_window_sec)
        logger.info("  Short Sync Window: %ss", self.short_sync_window_sec)
        logger.info("  Batch Operation Count: %s", self.batch_operation_count)
        logger.info("  Sync Concurrency: %s", self.sync_max_concurrency)
        logger.info("  Store Timeout: %.1fs", self.store_timeout_sec)
        logger.info(
            "  Parse Timeout: %s seconds",
            self.parse_timeout_sec or "disabled",
        )


settings = CustomSettings()


def setup_logging() -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
