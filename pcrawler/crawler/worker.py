"""
The unit of crawl work: one gated, rate-limited fetch of one URL.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional

from .extractor import ExtractionEngine
from .fetcher import FetchResult, WebFetcher
from .rate_controller import RateController
from .state import CancellationToken, CrawlState, url_root


class WorkerOutcome(Enum):
    """How a single worker invocation ended."""
    FETCHED = "fetched"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


class FetchWorker:
    """
    Fetches one URL under the shared concurrency gate and per-host delay.

    All side effects go through the injected CrawlState, so any number of
    crawl() calls may run concurrently against one worker instance.
    """

    def __init__(self, state: CrawlState, rate_controller: RateController,
                 fetcher: WebFetcher, semaphore: asyncio.Semaphore,
                 token: CancellationToken):
        self.state = state
        self.rate_controller = rate_controller
        self.fetcher = fetcher
        self.semaphore = semaphore
        self.token = token
        self.extractor = ExtractionEngine(state)
        self.logger = logging.getLogger(__name__)

    async def crawl(self, url: str) -> WorkerOutcome:
        """
        Crawl a single URL.

        The slot is held for the whole call, including the delay, and is
        released on every exit path.
        """
        async with self.semaphore:
            if self.token.is_cancelled:
                return WorkerOutcome.CANCELLED

            root = url_root(url)
            if root is None:
                self.logger.debug(f"Skipping unparsable URL: {url}")
                return WorkerOutcome.SKIPPED

            if not self.state.mark_processed(root):
                return WorkerOutcome.SKIPPED

            self.state.record_visit(root)

            delay_ms = self.rate_controller.delay(root)
            if not await self.token.sleep(delay_ms / 1000):
                return WorkerOutcome.CANCELLED

            result = await self._fetch_unless_cancelled(url)
            if result is None:
                self.logger.debug(f"Fetch of {url} abandoned on cancellation")
                return WorkerOutcome.CANCELLED

            if not result.ok:
                self.rate_controller.on_failure(root)
                self.logger.debug(f"Failed to fetch {url}: {result.error}")
                return WorkerOutcome.FAILED

            self.rate_controller.on_success(root)
            self.extractor.extract(url, result.content)
            return WorkerOutcome.FETCHED

    async def _fetch_unless_cancelled(self, url: str) -> Optional[FetchResult]:
        """
        Fetch url, abandoning the request if the token fires first.

        Returns:
            The fetch result, or None if cancellation won the race. A fetch
            that completes in the same step as the cancel still counts.
        """
        fetch_task = asyncio.ensure_future(self.fetcher.fetch(url))
        cancel_task = asyncio.ensure_future(self.token.wait())
        try:
            await asyncio.wait({fetch_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancel_task.cancel()
            if not fetch_task.done():
                fetch_task.cancel()
                await asyncio.gather(fetch_task, return_exceptions=True)

        if fetch_task.cancelled():
            return None

        try:
            return fetch_task.result()
        except Exception as e:
            self.logger.error(f"Unexpected error fetching {url}: {e}")
            return FetchResult(url=url, status_code=0, error=str(e))
