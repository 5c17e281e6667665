"""
Crawler core components.
"""

from .state import CrawlState, CancellationToken, ProxyCandidate, RunCounters, root_domain, url_root
from .rate_controller import RateController
from .extractor import ExtractionEngine, ExtractionResult
from .fetcher import WebFetcher, FetchResult
from .worker import FetchWorker, WorkerOutcome

__all__ = [
    'CrawlState', 'CancellationToken', 'ProxyCandidate', 'RunCounters', 'root_domain', 'url_root',
    'RateController',
    'ExtractionEngine', 'ExtractionResult',
    'WebFetcher', 'FetchResult',
    'FetchWorker', 'WorkerOutcome'
]
