"""
Storage layer for the crawl tables.
"""

from .tables import TableStore, DOMAIN_HEADER, PROXY_HEADER
from ..exceptions import StorageError

__all__ = ['TableStore', 'StorageError', 'DOMAIN_HEADER', 'PROXY_HEADER']
