"""
Standalone tools that work on the crawler's output.
"""

from .proxy_checker import ProxyChecker, ProxyCheckResult
from .rss_reader import RssReader

__all__ = ['ProxyChecker', 'ProxyCheckResult', 'RssReader']
