"""
Configuration loader module.

Loads application configuration from YAML files and environment variables.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_FEED_URL = "https://www.tcmb.gov.tr/kurlar/today.xml"


@dataclass
class FXConfig:
    """Daily exchange-rate feed configuration."""

    feed_url: str = DEFAULT_FEED_URL
    timeout_seconds: int = 10
    fallback_usd: float = 33.0
    fallback_eur: float = 35.5
    parse_strategy: str = "xml"  # "xml" or "scan"


@dataclass
class PricingConfig:
    """Line item pricing configuration."""

    default_vat_rate: float = 0.20
    local_currency: str = "TRY"


@dataclass
class ReportingConfig:
    """Dashboard reporting configuration."""

    default_group_name: str = "Diğer"


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_file: str | None = None


@dataclass
class AppConfig:
    """
    Main application configuration.

    Aggregates all configuration sections into a single object.
    """

    fx: FXConfig = field(default_factory=FXConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    reporting: ReportingConfig = field(default_factory=ReportingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_env(env_file: Path = Path(".env")) -> None:
    """
    Load environment variables from .env file.

    Args:
        env_file: Path to .env file.
    """
    if env_file.exists():
        load_dotenv(env_file)
        logger.debug(f"Loaded environment from: {env_file}")
    else:
        logger.debug(f"No .env file found at: {env_file}")


def load_config(config_file: Path = Path("config/config.yaml")) -> AppConfig:
    """
    Load application configuration from YAML file.

    Environment overrides (FX_FEED_URL, LOG_LEVEL) are applied last.

    Args:
        config_file: Path to configuration YAML file.

    Returns:
        AppConfig: Loaded configuration object.

    Raises:
        yaml.YAMLError: If config file is invalid.
    """
    config_file = Path(config_file)
    if not config_file.exists():
        logger.warning(f"Config file not found: {config_file}. Using defaults.")
        return _apply_env_overrides(AppConfig())

    with open(config_file, encoding="utf-8") as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None:
        return _apply_env_overrides(AppConfig())

    config = _parse_config(raw_config)
    logger.info(f"Loaded configuration from: {config_file}")
    return _apply_env_overrides(config)


def _parse_config(raw: dict[str, Any]) -> AppConfig:
    """
    Parse raw YAML dict into AppConfig dataclass.

    Args:
        raw: Raw dictionary from YAML file.

    Returns:
        AppConfig: Parsed configuration object.
    """
    fx_raw = raw.get("fx") or {}
    fx = FXConfig(
        feed_url=fx_raw.get("feed_url", DEFAULT_FEED_URL),
        timeout_seconds=fx_raw.get("timeout_seconds", 10),
        fallback_usd=fx_raw.get("fallback_usd", 33.0),
        fallback_eur=fx_raw.get("fallback_eur", 35.5),
        parse_strategy=fx_raw.get("parse_strategy", "xml"),
    )

    pricing_raw = raw.get("pricing") or {}
    pricing = PricingConfig(
        default_vat_rate=pricing_raw.get("default_vat_rate", 0.20),
        local_currency=pricing_raw.get("local_currency", "TRY"),
    )

    reporting_raw = raw.get("reporting") or {}
    reporting = ReportingConfig(
        default_group_name=reporting_raw.get("default_group_name", "Diğer"),
    )

    logging_raw = raw.get("logging") or {}
    logging_config = LoggingConfig(
        level=logging_raw.get("level", "INFO"),
        format=logging_raw.get("format", "text"),
        log_file=logging_raw.get("log_file"),
    )

    return AppConfig(
        fx=fx,
        pricing=pricing,
        reporting=reporting,
        logging=logging_config,
    )


def _apply_env_overrides(config: AppConfig) -> AppConfig:
    feed_url = get_env_var("FX_FEED_URL")
    if feed_url:
        config.fx.feed_url = feed_url

    log_level = get_env_var("LOG_LEVEL")
    if log_level:
        config.logging.level = log_level

    return config


def get_env_var(key: str, default: str | None = None) -> str | None:
    """
    Get an environment variable with optional default.

    Args:
        key: Environment variable name.
        default: Default value if not set.

    Returns:
        Environment variable value or default.
    """
    return os.environ.get(key, default)
