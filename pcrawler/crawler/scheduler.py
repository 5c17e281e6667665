"""
Crawl scheduler that drives bounded-concurrency rounds over the domain frontier.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Dict, List, Optional

from .fetcher import WebFetcher
from .rate_controller import RateController
from .state import CancellationToken, CrawlState, frontier_url, url_root
from .worker import FetchWorker, WorkerOutcome
from ..exceptions import StorageError
from ..storage.tables import TableStore
from ..utils.config import CrawlerOptions, validate_options
from ..utils.logger import LogSink, ProgressSink


class CrawlPhase(Enum):
    """Lifecycle of a crawl run."""
    IDLE = "idle"
    ROUND_RUNNING = "round_running"
    ROUND_COMPLETE = "round_complete"
    FINISHED = "finished"
    CANCELLED = "cancelled"


class CrawlerScheduler:
    """
    Runs a fixed number of crawl rounds.

    Each round fetches every frontier domain once, least-visited first, with
    at most max_parallel fetches in flight. Domains discovered during a round
    form the next round's frontier. Both tables are flushed on a timer and
    once more when the run ends, including after cancellation.
    """

    def __init__(self, options: CrawlerOptions, sink: Optional[ProgressSink] = None,
                 fetcher: Optional[WebFetcher] = None, store: Optional[TableStore] = None):
        validate_options(options)

        self.options = options
        self.sink = sink or LogSink()
        self.logger = logging.getLogger(__name__)

        self.store = store or TableStore(options.domain_csv, options.proxy_csv)
        self.fetcher = fetcher
        self._owns_fetcher = fetcher is None

        self.rate_controller = RateController(options.min_delay_ms, options.max_delay_ms)
        self.token = CancellationToken()
        self.state: Optional[CrawlState] = None

        self.phase = CrawlPhase.IDLE
        self.current_round = 0
        self.is_running = False
        self.outcomes: Dict[WorkerOutcome, int] = {outcome: 0 for outcome in WorkerOutcome}
        self.start_time = 0.0

        self._stop_flushing: Optional[asyncio.Event] = None

    async def run(self, token: Optional[CancellationToken] = None) -> CrawlState:
        """
        Execute a full crawl run.

        Args:
            token: Cancellation signal to honour (defaults to self.token)

        Returns:
            The crawl state as it stood after the final flush
        """
        if self.is_running:
            raise RuntimeError("Crawler is already running")

        if token is not None:
            self.token = token

        self.state = self.store.load_state()
        self.state.reset_run()

        self.is_running = True
        self.start_time = time.time()
        self.current_round = 0
        self.outcomes = {outcome: 0 for outcome in WorkerOutcome}

        if self.fetcher is None:
            self.fetcher = WebFetcher(
                user_agent=self.options.user_agent,
                request_timeout=self.options.request_timeout,
                max_connections=self.options.max_parallel
            )
        await self.fetcher.start()

        self._stop_flushing = asyncio.Event()
        flush_task = asyncio.create_task(self._flush_periodically())

        try:
            frontier = self._seed_frontier()
            self.logger.info(f"Starting crawl: {self.options.rounds} rounds, "
                             f"{len(frontier)} seed URLs, {self.options.max_parallel} parallel")

            for round_number in range(1, self.options.rounds + 1):
                if self.token.is_cancelled:
                    break
                await self._run_round(round_number, frontier)
                frontier = [frontier_url(domain) for domain in self.state.unprocessed_domains()]

            self.phase = CrawlPhase.CANCELLED if self.token.is_cancelled else CrawlPhase.FINISHED

        finally:
            self._stop_flushing.set()
            await asyncio.gather(flush_task, return_exceptions=True)
            await self.flush()

            if self._owns_fetcher:
                await self.fetcher.close()
                self.fetcher = None

            self.is_running = False
            self._log_final_stats()

        return self.state

    def _seed_frontier(self) -> List[str]:
        """Frontier for round one: every known domain, or the seed URL if none are known."""
        if self.state.domains:
            return [frontier_url(domain) for domain in self.state.domains]

        seed = self.options.seed_url
        root = url_root(seed)
        if root is not None:
            self.state.register_domain(root)
        return [seed]

    def _build_batch(self, frontier: List[str]) -> List[str]:
        """Deduplicate the frontier and order it least-visited first, ties by domain name."""
        unique = list(dict.fromkeys(frontier))

        def sort_key(url: str):
            root = url_root(url)
            if root is None:
                return (0, url)
            return (self.state.visit_count(root), root)

        return sorted(unique, key=sort_key)

    async def _run_round(self, round_number: int, frontier: List[str]):
        """Dispatch one round's batch and wait for every job to finish."""
        self.phase = CrawlPhase.ROUND_RUNNING
        self.current_round = round_number
        self.sink(f"Round {round_number}/{self.options.rounds}")

        batch = self._build_batch(frontier)
        total = len(batch)
        completed = 0
        self.state.counters.percent = 0

        worker = FetchWorker(
            state=self.state,
            rate_controller=self.rate_controller,
            fetcher=self.fetcher,
            semaphore=asyncio.Semaphore(self.options.max_parallel),
            token=self.token
        )

        async def run_job(url: str):
            nonlocal completed
            try:
                outcome = await worker.crawl(url)
                self.outcomes[outcome] += 1
            finally:
                completed += 1
                self._report_progress(completed, total)

        results = await asyncio.gather(*(run_job(url) for url in batch), return_exceptions=True)
        for url, result in zip(batch, results):
            if isinstance(result, Exception):
                self.logger.error(f"Worker for {url} raised: {result}")

        self.phase = CrawlPhase.ROUND_COMPLETE
        self.logger.info(f"Round {round_number} complete: {total} URLs dispatched, "
                         f"{len(self.state.domains)} domains known")

    def _report_progress(self, completed: int, total: int):
        """Emit a progress line when the completed percentage goes up."""
        if total <= 0:
            return
        percent = int(completed * 100 / total)
        counters = self.state.counters
        if counters.advance_percent(percent):
            self.sink(f"{percent}% - Links:{counters.links_found} - Proxies:{counters.proxies_found}")

    async def _flush_periodically(self):
        """Flush both tables every flush_interval_sec until the run ends."""
        while True:
            try:
                await asyncio.wait_for(self._stop_flushing.wait(),
                                       timeout=self.options.flush_interval_sec)
                return
            except asyncio.TimeoutError:
                try:
                    await self.flush()
                except Exception as e:
                    # Keep the timer alive; the next tick retries
                    self.logger.error(f"Periodic flush raised: {e}", exc_info=True)

    async def flush(self) -> bool:
        """
        Persist the current state. A failed write is reported and the run goes on.

        Returns:
            True if both tables were written
        """
        if self.state is None:
            return False

        try:
            await self.store.flush(self.state)
        except StorageError as e:
            self.logger.error(f"Flush failed: {e}")
            self.sink(f"Flush failed: {e}")
            return False

        self.sink(f"CSV saved ({len(self.state.domains)} domains, {len(self.state.proxies)} proxies)")
        return True

    def stop_crawling(self):
        """Request a graceful stop of the current run."""
        self.logger.info("Stopping crawler...")
        self.token.cancel()

    def _log_final_stats(self):
        """Log final crawl statistics."""
        counters = self.state.counters
        elapsed = time.time() - self.start_time

        self.logger.info("=== CRAWL COMPLETED ===" if self.phase == CrawlPhase.FINISHED
                         else "=== CRAWL STOPPED ===")
        self.logger.info(f"Rounds run: {self.current_round}/{self.options.rounds}")
        self.logger.info(f"Links found: {counters.links_found}")
        self.logger.info(f"Proxies found: {counters.proxies_found}")
        self.logger.info(f"Domains known: {len(self.state.domains)}")
        self.logger.info(f"Fetch outcomes: {self.get_stats()['outcomes']}")
        self.logger.info(f"Rate controller: {self.rate_controller.get_stats()}")
        self.logger.info(f"Total time: {elapsed:.2f} seconds")

    def get_stats(self) -> Dict:
        """Get current crawl statistics."""
        counters = self.state.counters if self.state else None
        return {
            'phase': self.phase.value,
            'round': self.current_round,
            'rounds': self.options.rounds,
            'links_found': counters.links_found if counters else 0,
            'proxies_found': counters.proxies_found if counters else 0,
            'percent': counters.percent if counters else 0,
            'outcomes': {outcome.value: count for outcome, count in self.outcomes.items()},
            'is_running': self.is_running
        }
