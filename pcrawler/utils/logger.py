"""
Logging utilities for the crawler.
"""

import logging
import logging.handlers
import json
import sys
from pathlib import Path
from typing import Callable, Optional
from datetime import datetime, timezone

from .config import LoggingConfig


# The only output surface the crawler core exposes to its host
ProgressSink = Callable[[str], None]


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'where': f"{record.module}.{record.funcName}:{record.lineno}",
        }
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


# Loggers whose records say nothing about the crawl itself
_NOISY_LOGGERS = ('aiohttp.access', 'aiohttp.client', 'asyncio')


class PerformanceFilter(logging.Filter):
    """Drops transport-level chatter from high-volume handlers."""

    def __init__(self, suppress_modules: Optional[tuple] = None):
        super().__init__()
        self.suppress_modules = tuple(suppress_modules or _NOISY_LOGGERS)

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith(self.suppress_modules):
            return False
        # Pool bookkeeping and unclosed-session warnings at DEBUG
        return not (record.levelno == logging.DEBUG and
                    any(word in record.getMessage().lower() for word in ('connection pool', 'unclosed')))


class LogSink:
    """
    Progress sink that forwards each line to a logger.

    Instances are plain callables taking one text line, so they can be
    passed anywhere a ProgressSink is expected.
    """

    def __init__(self, logger: Optional[logging.Logger] = None, level: int = logging.INFO):
        self.logger = logger or logging.getLogger('pcrawler.progress')
        self.level = level

    def __call__(self, line: str):
        self.logger.log(self.level, line)


# (file name next to the main log, level, max bytes, backups); empty name is the main log
_FILE_TARGETS = (
    ('', logging.DEBUG, 50 * 1024 * 1024, 5),
    ('errors.log', logging.ERROR, 10 * 1024 * 1024, 3),
)
_QUIET_LIBRARIES = ('aiohttp', 'asyncio', 'urllib3')


def _rotating_handler(path: Path, level: int, max_bytes: int, backups: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backups, encoding='utf-8')
    handler.setLevel(level)
    return handler


def setup_logging(config: LoggingConfig,
                  enable_json: Optional[bool] = None,
                  enable_performance_filtering: bool = True) -> logging.Logger:
    """
    Route crawler logs to stdout, the main log file and an errors-only file.

    Args:
        config: Logging configuration
        enable_json: Force JSON formatted logging on or off (defaults to config.json)
        enable_performance_filtering: Drop transport-level noise from stdout and the main log

    Returns:
        Configured root logger
    """
    main_log = Path(config.file)
    main_log.parent.mkdir(parents=True, exist_ok=True)

    use_json = config.json if enable_json is None else enable_json
    formatter = JSONFormatter() if use_json else logging.Formatter(config.format)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.INFO)
    handlers = [console]
    for suffix, level, max_bytes, backups in _FILE_TARGETS:
        path = main_log.parent / suffix if suffix else main_log
        handlers.append(_rotating_handler(path, level, max_bytes, backups))

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))
    root_logger.handlers.clear()

    for handler in handlers:
        handler.setFormatter(formatter)
        # Errors are kept whole, whatever module they come from
        if enable_performance_filtering and handler.level < logging.ERROR:
            handler.addFilter(PerformanceFilter())
        root_logger.addHandler(handler)

    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.debug(f"Logging to {main_log} at {config.level} (json={use_json})")
    return root_logger


def log_system_info():
    """Log the host the crawler is running on."""
    import platform
    import psutil

    memory_gb = psutil.virtual_memory().total / 1024 ** 3
    logging.getLogger(__name__).info(
        f"Host: {platform.platform()}, Python {platform.python_version()}, "
        f"{psutil.cpu_count()} CPUs, {memory_gb:.1f} GB RAM"
    )
