"""
Configuration management for the trading backend.

Handles loading, validating, and persisting application configuration.
"""

import json
import logging
import os
from decimal import Decimal
from pathlib import Path
from urllib.parse import urlparse

from .models import AppConfig

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = Path.home() / ".papertrade"


def resolve_user_path(value: str) -> Path:
    expanded = os.path.expandvars(os.path.expanduser(str(value).strip()))
    return Path(expanded)


def resolve_ledger_path(config: AppConfig) -> Path:
    """Ledger database path, falling back to ~/.papertrade/ledger.sqlite."""
    configured = config.ledger_path.strip()
    if configured:
        return resolve_user_path(configured)
    return DEFAULT_STATE_DIR / "ledger.sqlite"


class ConfigManager:
    """
    Manages application configuration.

    Handles loading from disk, validation, and persistence.
    """

    DEFAULT_CONFIG_PATH = DEFAULT_STATE_DIR / "config.json"

    def __init__(self, config_path: Path | None = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to config file (defaults to ~/.papertrade/config.json)
        """
        self.config_path = config_path or self.DEFAULT_CONFIG_PATH
        self._config: AppConfig | None = None

    def get_config(self) -> AppConfig:
        """
        Get current configuration, loading from disk if needed.

        Returns:
            Current AppConfig
        """
        if self._config is None:
            self._config = self._load_config()
        return self._config

    def set_config(self, config: AppConfig) -> AppConfig:
        """
        Update configuration and persist to disk.

        Args:
            config: New configuration

        Returns:
            Updated configuration
        """
        self._config = config
        self._save_config(config)
        return config

    def _load_config(self) -> AppConfig:
        """Load configuration from disk or return defaults."""
        if not self.config_path.exists():
            logger.info("Config file not found at %s, using defaults", self.config_path)
            return self._default_config()

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return AppConfig(**data)
        except Exception as e:
            logger.error("Failed to load config from %s: %s", self.config_path, e)
            return self._default_config()

    def _save_config(self, config: AppConfig) -> None:
        """
        Save configuration to disk.

        Args:
            config: Configuration to save
        """
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, "w", encoding="utf-8") as f:
                json.dump(config.model_dump(mode="json"), f, indent=2, ensure_ascii=False)
            logger.info("Saved config to %s", self.config_path)
        except Exception as e:
            logger.error("Failed to save config to %s: %s", self.config_path, e)
            # Don't raise - keep runtime available even if persistence fails

    def _default_config(self) -> AppConfig:
        """Create default configuration."""
        return AppConfig()


class ConfigValidator:
    """
    Validates configuration values.

    Ensures configuration is within acceptable ranges and formats.
    """

    @staticmethod
    def validate_app_config(config: AppConfig) -> list[str]:
        """
        Validate complete application configuration.

        Args:
            config: Config to validate

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if config.default_initial_balance <= Decimal("0"):
            errors.append("default_initial_balance must be positive")

        if config.trade_max_attempts < 1:
            errors.append("trade_max_attempts must be at least 1")

        if config.valuation_max_workers < 1:
            errors.append("valuation_max_workers must be at least 1")

        if not config.price_board.strip():
            errors.append("price_board cannot be empty")

        result = urlparse(config.price_api_base.strip())
        if not all([result.scheme, result.netloc]):
            errors.append("price_api_base must be a valid URL")

        for idx, symbol in enumerate(config.featured_symbols):
            if not symbol.strip():
                errors.append(f"featured_symbols[{idx}]: symbol cannot be empty")

        return errors


def apply_env_overrides(config: AppConfig) -> AppConfig:
    """
    Overlay environment variables on a loaded configuration.

    Recognized variables: PAPERTRADE_LEDGER_PATH, PSX_API_BASE.
    """
    update: dict[str, str] = {}
    ledger_env = os.getenv("PAPERTRADE_LEDGER_PATH", "").strip()
    if ledger_env:
        update["ledger_path"] = ledger_env
    api_env = os.getenv("PSX_API_BASE", "").strip()
    if api_env:
        update["price_api_base"] = api_env
    if not update:
        return config
    return config.model_copy(update=update)


def create_config_manager(config_path: str | None = None) -> ConfigManager:
    """
    Factory function to create ConfigManager.

    Args:
        config_path: Optional path to config file, else PAPERTRADE_CONFIG_PATH or the default

    Returns:
        ConfigManager instance
    """
    raw = config_path or os.getenv("PAPERTRADE_CONFIG_PATH", "").strip()
    path = resolve_user_path(raw) if raw else None
    return ConfigManager(config_path=path)
