"""
Configuration management for the crawler.
"""

import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, field, fields, replace

from ..exceptions import ConfigError


DEFAULT_SEED_URL = "https://news.ycombinator.com"


@dataclass
class CrawlerOptions:
    """Configuration for one crawl run."""
    domain_csv: str = "domains.csv"
    proxy_csv: str = "proxies.csv"
    rounds: int = 5
    max_parallel: int = 80
    min_delay_ms: int = 100
    max_delay_ms: int = 3000
    flush_interval_sec: float = 60
    seed_url: str = DEFAULT_SEED_URL
    request_timeout: float = 8
    user_agent: str = "PCrawler/Percent"


@dataclass
class ProxyCheckConfig:
    """Configuration for the proxy liveness checker."""
    probe_url: str = "http://www.google.com"
    timeout: float = 5
    max_concurrent_checks: int = 20
    recheck: bool = False


@dataclass
class RssConfig:
    """Configuration for the RSS ingestion tool."""
    input_file: str = "RSS_Links.txt"
    items_file: str = "RSS_OUT.txt"
    titles_file: str = "RSS_OUT2.txt"
    ngrams_file: str = "RSS_OUT3.txt"
    request_timeout: float = 15


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"
    file: str = "logs/crawler.log"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    json: bool = False


@dataclass
class Config:
    """Main configuration class."""
    crawler: CrawlerOptions = field(default_factory=CrawlerOptions)
    proxy_check: ProxyCheckConfig = field(default_factory=ProxyCheckConfig)
    rss: RssConfig = field(default_factory=RssConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _build_section(cls, data: Optional[Dict[str, Any]], section: str):
    """Build a config dataclass from a YAML mapping, rejecting unknown keys."""
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigError(f"Section '{section}' must be a mapping")

    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown keys in section '{section}': {', '.join(sorted(unknown))}")

    return cls(**data)


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise ConfigError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, 'r') as file:
                config_data = yaml.safe_load(file) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_path}: {e}")

        if not isinstance(config_data, dict):
            raise ConfigError(f"Configuration root must be a mapping: {self.config_path}")

        self._config = Config(
            crawler=_build_section(CrawlerOptions, config_data.get('crawler'), 'crawler'),
            proxy_check=_build_section(ProxyCheckConfig, config_data.get('proxy_check'), 'proxy_check'),
            rss=_build_section(RssConfig, config_data.get('rss'), 'rss'),
            logging=_build_section(LoggingConfig, config_data.get('logging'), 'logging'),
        )

        self._validate_config()
        return self._config

    def _validate_config(self):
        """Validate configuration values."""
        if not self._config:
            raise ConfigError("Configuration not loaded")

        validate_options(self._config.crawler)

        if self._config.proxy_check.max_concurrent_checks < 1:
            raise ConfigError("max_concurrent_checks must be at least 1")

        if self._config.proxy_check.timeout <= 0:
            raise ConfigError("proxy_check timeout must be positive")

        logging.getLogger(__name__).debug("Configuration validation passed")

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ConfigError("Configuration not loaded. Call load_config() first.")
        return self._config


def validate_options(options: CrawlerOptions):
    """Validate crawl run options, raising ConfigError on the first problem."""
    if not options.domain_csv or not options.proxy_csv:
        raise ConfigError("domain_csv and proxy_csv must be set")

    if options.rounds < 1:
        raise ConfigError("rounds must be at least 1")

    if options.max_parallel < 1:
        raise ConfigError("max_parallel must be at least 1")

    if options.min_delay_ms < 0:
        raise ConfigError("min_delay_ms must be non-negative")

    if options.max_delay_ms < options.min_delay_ms:
        raise ConfigError("max_delay_ms must not be below min_delay_ms")

    if options.flush_interval_sec <= 0:
        raise ConfigError("flush_interval_sec must be positive")

    if options.request_timeout <= 0:
        raise ConfigError("request_timeout must be positive")


def override_options(options: CrawlerOptions, **overrides) -> CrawlerOptions:
    """Return a copy of options with every non-None override applied."""
    changes = {key: value for key, value in overrides.items() if value is not None}
    updated = replace(options, **changes)
    validate_options(updated)
    return updated


# Global config manager instance
config_manager = ConfigManager()


def get_config() -> Config:
    """Get the global configuration instance."""
    return config_manager.config


def load_config(config_path: str = "config.yaml") -> Config:
    """Load configuration from file."""
    global config_manager
    config_manager = ConfigManager(config_path)
    return config_manager.load_config()
