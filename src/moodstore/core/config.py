"""
Configuration management for moodstore.

Uses pydantic-settings for environment variable binding.
All settings can be overridden via environment variables with MOODSTORE_ prefix.
"""

import logging
import sys
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable binding."""

    model_config = SettingsConfigDict(
        env_prefix="MOODSTORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==========================================
    # Data Storage
    # ==========================================
    data_dir: Path = Path("data")
    """Root directory of the document tree (global config, users/, logs/)."""

    # ==========================================
    # Version Ledger
    # ==========================================
    repo_root: Path = Path(".")
    """Root of the git working tree. Must contain data_dir."""

    git_binary: str = "git"
    ledger_branch: str = "main"

    ledger_author_name: str = "mood-ledger"
    ledger_author_email: str = "ledger@moodstore.local"
    """Identity used for every ledger commit."""

    # ==========================================
    # Logging
    # ==========================================
    log_level: str = "INFO"
    log_file: Path | None = None


# Global settings instance
settings = Settings()


def setup_logging(level: str | None = None) -> None:
    """Configure application logging."""
    log_level = level or settings.log_level

    handlers: list[logging.Handler] = [
        logging.StreamHandler(sys.stdout),
    ]

    if settings.log_file:
        handlers.append(logging.FileHandler(settings.log_file))

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        handlers=handlers,
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name."""
    return logging.getLogger(f"moodstore.{name}")
