"""
Utility modules for the crawler.
"""

from .config import (
    Config, ConfigManager, CrawlerOptions, ProxyCheckConfig, RssConfig,
    LoggingConfig, load_config, get_config, override_options, validate_options
)
from .logger import LogSink, ProgressSink, setup_logging

__all__ = [
    'Config', 'ConfigManager', 'CrawlerOptions', 'ProxyCheckConfig', 'RssConfig',
    'LoggingConfig', 'load_config', 'get_config', 'override_options', 'validate_options',
    'LogSink', 'ProgressSink', 'setup_logging'
]
