"""
Configuration management for entodm.

Settings are read from environment variables with the ENTODM_ prefix,
using pydantic-settings. Every setting has a default suitable for local
development against a MongoDB on localhost.

Invariants:
    - Explicit arguments to init() override environment settings
    - Secrets embedded in the connection URL are never logged

How to change safely:
    - Add new settings with defaults that keep existing deployments working
    - Map new driver options in client_options() rather than at call sites
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any
from urllib.parse import urlsplit

from pydantic import Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class StoreBackend(Enum):
    """Supported document store backends."""

    MONGO = "mongo"
    MEMORY = "memory"


class OdmSettings(BaseSettings):
    """Store connection and logging configuration loaded from environment."""

    backend: StoreBackend = Field(default=StoreBackend.MONGO, description="Store backend")
    url: str = Field(
        default="mongodb://localhost:27017/entodm",
        description="MongoDB connection string",
    )
    database: str | None = Field(
        default=None,
        description="Database name (defaults to the one named in the URL)",
    )

    # Driver settings
    server_selection_timeout_ms: int = Field(default=5000, description="Server selection timeout")
    connect_timeout_ms: int = Field(default=10000, description="Socket connect timeout")
    app_name: str = Field(default="entodm", description="Application name reported to the server")
    tz_aware: bool = Field(default=False, description="Return timezone-aware datetimes")

    log_level: str = Field(default="WARNING", description="Level for the entodm logger")

    model_config = {"env_prefix": "ENTODM_"}

    def client_options(self) -> dict[str, Any]:
        """Keyword arguments for the MongoDB client."""
        return {
            "serverSelectionTimeoutMS": self.server_selection_timeout_ms,
            "connectTimeoutMS": self.connect_timeout_ms,
            "appname": self.app_name,
            "tz_aware": self.tz_aware,
        }

    @property
    def redacted_url(self) -> str:
        """Connection URL with credentials removed, safe for logs."""
        return redact_url(self.url)


def redact_url(url: str) -> str:
    """Strip user info from a connection string."""
    parts = urlsplit(url)
    if "@" not in parts.netloc:
        return url
    host = parts.netloc.rsplit("@", 1)[1]
    return parts._replace(netloc=f"***@{host}").geturl()


def setup_logging(settings: OdmSettings | None = None) -> None:
    """Configure the entodm logger.

    Only the package logger is touched; the root logger and its handlers
    belong to the application.

    Args:
        settings: Settings to read the level from (loaded from env if omitted)
    """
    settings = settings or OdmSettings()
    level = getattr(logging, settings.log_level.upper(), logging.WARNING)

    package_logger = logging.getLogger("entodm")
    package_logger.setLevel(level)

    if not any(isinstance(h, logging.StreamHandler) for h in package_logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(handler)

    # The driver logs heartbeats and topology changes at DEBUG
    logging.getLogger("pymongo").setLevel(max(level, logging.INFO))
