"""Configuration objects and constants for the ingestion pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)
DEFAULT_ASSET_ROOT = Path("public/images/projects")
DEFAULT_PUBLIC_PREFIX = "/images/projects"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class IngestConfig:
    """Top-level settings that control fetching, extraction and asset storage."""

    asset_root: Path = DEFAULT_ASSET_ROOT
    public_prefix: str = DEFAULT_PUBLIC_PREFIX
    page_timeout: float = 30.0
    image_timeout: float = 30.0
    check_timeout: float = 5.0
    batch_size: int = 3
    # Off by default; LISTING_INGEST_VERIFY_TLS=1 turns certificate checks on.
    verify_tls: bool = False
    user_agent: str = DEFAULT_USER_AGENT

    @classmethod
    def from_env(cls) -> "IngestConfig":
        """Build a config, letting LISTING_INGEST_* variables override defaults."""
        config = cls()
        asset_root = os.getenv("LISTING_INGEST_ASSET_ROOT")
        if asset_root:
            config.asset_root = Path(asset_root).expanduser()
        public_prefix = os.getenv("LISTING_INGEST_PUBLIC_PREFIX")
        if public_prefix:
            config.public_prefix = public_prefix.rstrip("/")
        verify_tls = os.getenv("LISTING_INGEST_VERIFY_TLS")
        if verify_tls is not None:
            config.verify_tls = verify_tls.strip().lower() in _TRUTHY
        return config
