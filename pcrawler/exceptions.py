"""
Exception types shared across the crawler package.
"""


class CrawlerError(Exception):
    """Base exception for crawler failures."""
    pass


class ConfigError(CrawlerError):
    """Raised when the configuration file is missing or invalid."""
    pass


class StorageError(CrawlerError):
    """Raised when a table cannot be read or written."""
    pass
