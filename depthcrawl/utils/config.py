"""
Configuration management for the crawler.
"""

import yaml
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union
from dataclasses import dataclass, field, fields


class ConfigError(ValueError):
    """Raised when configuration values are invalid."""
    pass


@dataclass
class CrawlerConfig:
    """Configuration for crawler behavior."""
    seed_url: str = "https://golang.org/"
    max_depth: int = 4
    dedup_key: str = "content"
    fetcher: str = "fixture"
    fixture: Optional[str] = None
    fetch_timeout: Optional[float] = None
    user_agent: str = "depthcrawl/1.0"
    request_timeout: float = 30


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"
    file: Optional[str] = None
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    json: bool = False


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    metrics_enabled: bool = False
    prometheus_port: int = 8000


@dataclass
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)


def _build_section(section_cls, name: str, data: Optional[Dict[str, Any]]):
    if data is None:
        return section_cls()
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration section '{name}' must be a mapping")

    known = {f.name for f in fields(section_cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown keys in '{name}' section: {', '.join(unknown)}")

    return section_cls(**data)


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        self.config_path = Path(config_path) if config_path else None
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file, or defaults if no path is set."""
        config_data: Dict[str, Any] = {}

        if self.config_path is not None:
            if not self.config_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

            with open(self.config_path, 'r') as file:
                try:
                    config_data = yaml.safe_load(file) or {}
                except yaml.YAMLError as e:
                    raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e

            if not isinstance(config_data, dict):
                raise ConfigError("Configuration file must contain a mapping")

        unknown = sorted(set(config_data) - {'crawler', 'logging', 'monitoring'})
        if unknown:
            raise ConfigError(f"Unknown configuration sections: {', '.join(unknown)}")

        self._config = Config(
            crawler=_build_section(CrawlerConfig, 'crawler', config_data.get('crawler')),
            logging=_build_section(LoggingConfig, 'logging', config_data.get('logging')),
            monitoring=_build_section(MonitoringConfig, 'monitoring', config_data.get('monitoring'))
        )

        validate_config(self._config)
        return self._config

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ValueError("Configuration not loaded. Call load_config() first.")
        return self._config


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_config(config: Config):
    """Validate configuration values."""
    crawler = config.crawler

    if not isinstance(crawler.seed_url, str) or not crawler.seed_url:
        raise ConfigError("seed_url must be a non-empty string")

    if isinstance(crawler.max_depth, bool) or not isinstance(crawler.max_depth, int) \
            or crawler.max_depth < 1:
        raise ConfigError("max_depth must be a positive integer")

    if crawler.dedup_key not in ('content', 'url'):
        raise ConfigError("dedup_key must be 'content' or 'url'")

    if crawler.fetcher not in ('fixture', 'http'):
        raise ConfigError("fetcher must be 'fixture' or 'http'")

    if crawler.fetch_timeout is not None and \
            (not _is_number(crawler.fetch_timeout) or crawler.fetch_timeout <= 0):
        raise ConfigError("fetch_timeout must be a positive number")

    if not _is_number(crawler.request_timeout) or crawler.request_timeout <= 0:
        raise ConfigError("request_timeout must be a positive number")

    if not isinstance(config.logging.level, str) or \
            config.logging.level.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
        raise ConfigError(f"Unknown log level: {config.logging.level}")

    if isinstance(config.monitoring.prometheus_port, bool) or \
            not isinstance(config.monitoring.prometheus_port, int):
        raise ConfigError("prometheus_port must be an integer")

    logging.getLogger(__name__).debug("Configuration validation passed")


# Global config manager instance
config_manager = ConfigManager()


def get_config() -> Config:
    """Get the global configuration instance."""
    return config_manager.config


def load_config(config_path: Optional[Union[str, Path]] = None) -> Config:
    """Load configuration from file, or defaults when no path is given."""
    global config_manager
    config_manager = ConfigManager(config_path)
    return config_manager.load_config()
