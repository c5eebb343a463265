"""
Configuration for the ArFS SDK.

Uses pydantic-settings for environment variable loading. Every setting can
be overridden with an ``ARFS_`` prefixed variable, e.g. ``ARFS_GATEWAY_URL``.

Invariants:
    - All settings have sensible defaults for the public gateway
    - Wallet material is never part of the settings
"""

from __future__ import annotations

import logging
from typing import Optional

import json_log_formatter
from pydantic import Field
from pydantic_settings import BaseSettings

from .types import DEFAULT_APP_NAME, DEFAULT_APP_VERSION


class Settings(BaseSettings):
    """SDK configuration loaded from environment."""

    # Ledger gateway
    gateway_url: str = Field(default="https://arweave.net", description="Ledger gateway base URL")
    request_timeout: float = Field(default=30.0, description="HTTP request timeout seconds")
    page_size: int = Field(default=100, ge=1, le=100, description="Edges requested per query page")

    # Protocol identity
    app_name: str = Field(default=DEFAULT_APP_NAME, description="Value of the App-Name tag")
    app_version: str = Field(default=DEFAULT_APP_VERSION, description="Value of the App-Version tag")

    # Writes
    dry_run: bool = Field(default=False, description="Sign transactions but never submit them")
    max_chunk_retries: Optional[int] = Field(
        default=5, ge=0, description="Retries per chunk before giving up; None retries without limit"
    )
    chunk_retry_delay: float = Field(default=1.0, ge=0, description="Seconds between chunk retries")

    # Community tip
    community_contract_id: str = Field(
        default="-8A6RexFkpfWwuyVO98wzSFZh0d6VJuI-buTJvlwOJQ",
        description="Community token contract ID",
    )
    contract_cache_url: str = Field(
        default="https://v2.cache.verto.exchange",
        description="Contract state cache endpoint",
    )

    # Status
    default_confirmations: int = Field(default=15, ge=1, description="Confirmations for a mined tx")

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_format: str = Field(default="text", description="Log format: text or json")

    model_config = {"env_prefix": "ARFS_"}

    @property
    def graphql_url(self) -> str:
        """Full GraphQL endpoint of the gateway."""
        return f"{self.gateway_url.rstrip('/')}/graphql"


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings.

    Args:
        settings: SDK settings
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
