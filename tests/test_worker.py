"""Unit tests for the fetch worker."""

from __future__ import annotations

import asyncio
import time

import pytest

from pcrawler.crawler.rate_controller import RateController
from pcrawler.crawler.state import CancellationToken, CrawlState
from pcrawler.crawler.worker import FetchWorker, WorkerOutcome

from conftest import FakeFetcher


class ExplodingFetcher(FakeFetcher):
    async def fetch(self, url: str):
        self.requested.append(url)
        raise RuntimeError("boom")


def make_worker(fetcher, state=None, controller=None, slots=1, token=None):
    state = state or CrawlState()
    controller = controller or RateController(min_delay_ms=0, max_delay_ms=0)
    semaphore = asyncio.Semaphore(slots)
    worker = FetchWorker(
        state=state,
        rate_controller=controller,
        fetcher=fetcher,
        semaphore=semaphore,
        token=token or CancellationToken(),
    )
    return worker, state, controller, semaphore


class TestFetchWorker:
    """Tests for FetchWorker.crawl."""

    @pytest.mark.asyncio
    async def test_success_extracts_and_resets_delay(self) -> None:
        fetcher = FakeFetcher({"https://www.site.com": "1.2.3.4:8080 http://other.org/x"})
        controller = RateController(min_delay_ms=0, max_delay_ms=100)
        controller.host_delays["site.com"] = 0
        worker, state, _, semaphore = make_worker(fetcher, controller=controller)

        outcome = await worker.crawl("https://www.site.com")

        assert outcome == WorkerOutcome.FETCHED
        assert state.visit_count("site.com") == 1
        assert "1.2.3.4:8080" in state.proxies
        assert state.domains["other.org"] == 0
        assert controller.delay("site.com") == 0
        assert not semaphore.locked()

    @pytest.mark.asyncio
    async def test_failure_counts_visit_and_backs_off(self) -> None:
        fetcher = FakeFetcher()
        controller = RateController(min_delay_ms=1, max_delay_ms=100)
        worker, state, _, semaphore = make_worker(fetcher, controller=controller)

        outcome = await worker.crawl("https://down.com")

        assert outcome == WorkerOutcome.FAILED
        assert state.visit_count("down.com") == 1
        assert controller.delay("down.com") == 2
        assert state.counters.links_found == 0
        assert not semaphore.locked()

    @pytest.mark.asyncio
    async def test_already_processed_domain_is_skipped(self) -> None:
        fetcher = FakeFetcher({"https://site.com": ""})
        worker, state, controller, semaphore = make_worker(fetcher)
        state.mark_processed("site.com")

        outcome = await worker.crawl("https://www.site.com")

        assert outcome == WorkerOutcome.SKIPPED
        assert fetcher.requested == []
        assert state.visit_count("site.com") == 0
        assert "site.com" not in controller.host_delays
        assert not semaphore.locked()

    @pytest.mark.asyncio
    async def test_same_domain_fetched_once_per_run(self) -> None:
        fetcher = FakeFetcher({"https://site.com": "", "https://www.site.com": ""})
        worker, state, _, _ = make_worker(fetcher, slots=4)

        outcomes = await asyncio.gather(
            worker.crawl("https://site.com"),
            worker.crawl("https://www.site.com"),
        )

        assert sorted(o.value for o in outcomes) == ["fetched", "skipped"]
        assert len(fetcher.requested) == 1
        assert state.visit_count("site.com") == 1

    @pytest.mark.asyncio
    async def test_unparsable_url_is_skipped(self) -> None:
        fetcher = FakeFetcher()
        worker, state, _, semaphore = make_worker(fetcher)

        outcome = await worker.crawl("http://[broken")

        assert outcome == WorkerOutcome.SKIPPED
        assert fetcher.requested == []
        assert state.domains == {}
        assert not semaphore.locked()

    @pytest.mark.asyncio
    async def test_cancelled_token_stops_before_work(self) -> None:
        fetcher = FakeFetcher({"https://site.com": ""})
        token = CancellationToken()
        token.cancel()
        worker, state, _, semaphore = make_worker(fetcher, token=token)

        outcome = await worker.crawl("https://site.com")

        assert outcome == WorkerOutcome.CANCELLED
        assert fetcher.requested == []
        assert state.visit_count("site.com") == 0
        assert not semaphore.locked()

    @pytest.mark.asyncio
    async def test_cancel_during_delay_skips_fetch(self) -> None:
        fetcher = FakeFetcher({"https://site.com": ""})
        token = CancellationToken()
        controller = RateController(min_delay_ms=5000, max_delay_ms=5000)
        worker, state, _, semaphore = make_worker(fetcher, controller=controller, token=token)

        task = asyncio.create_task(worker.crawl("https://site.com"))
        await asyncio.sleep(0.01)
        token.cancel()
        outcome = await asyncio.wait_for(task, timeout=1)

        assert outcome == WorkerOutcome.CANCELLED
        assert fetcher.requested == []
        assert not semaphore.locked()

    @pytest.mark.asyncio
    async def test_cancel_interrupts_inflight_fetch(self) -> None:
        fetcher = FakeFetcher({"https://slow.com": "1.2.3.4:8080"}, delay=3.0)
        token = CancellationToken()
        controller = RateController(min_delay_ms=1, max_delay_ms=100)
        worker, state, _, semaphore = make_worker(fetcher, controller=controller, token=token)

        task = asyncio.create_task(worker.crawl("https://slow.com"))
        await asyncio.sleep(0.05)
        assert fetcher.requested == ["https://slow.com"]

        started = time.monotonic()
        token.cancel()
        outcome = await asyncio.wait_for(task, timeout=1)

        assert outcome == WorkerOutcome.CANCELLED
        assert time.monotonic() - started < 0.5
        assert state.visit_count("slow.com") == 1
        assert state.proxies == {}
        # Abandoned requests are not failures, so no backoff
        assert controller.delay("slow.com") == 1
        assert not semaphore.locked()

    @pytest.mark.asyncio
    async def test_fetch_finishing_with_cancel_still_extracts(self) -> None:
        token = CancellationToken()
        fetcher = FakeFetcher({"https://site.com": "1.2.3.4:8080"}, on_fetch=lambda url: token.cancel())
        worker, state, _, _ = make_worker(fetcher, token=token)

        outcome = await worker.crawl("https://site.com")

        assert outcome == WorkerOutcome.FETCHED
        assert "1.2.3.4:8080" in state.proxies

    @pytest.mark.asyncio
    async def test_delay_applied_before_request(self) -> None:
        fetched_at = []
        fetcher = FakeFetcher({"https://site.com": ""}, on_fetch=lambda url: fetched_at.append(time.monotonic()))
        controller = RateController(min_delay_ms=50, max_delay_ms=100)
        worker, _, _, _ = make_worker(fetcher, controller=controller)

        start = time.monotonic()
        await worker.crawl("https://site.com")

        assert fetched_at[0] - start >= 0.045

    @pytest.mark.asyncio
    async def test_fetcher_exception_is_isolated(self) -> None:
        fetcher = ExplodingFetcher()
        controller = RateController(min_delay_ms=1, max_delay_ms=100)
        worker, state, _, semaphore = make_worker(fetcher, controller=controller)

        outcome = await worker.crawl("https://site.com")

        assert outcome == WorkerOutcome.FAILED
        assert controller.delay("site.com") == 2
        assert state.visit_count("site.com") == 1
        assert not semaphore.locked()

    @pytest.mark.asyncio
    async def test_visit_count_grows_by_one_per_run(self) -> None:
        fetcher = FakeFetcher({"https://site.com": ""})
        worker, state, _, _ = make_worker(fetcher)

        await worker.crawl("https://site.com")
        state.reset_run()
        await worker.crawl("https://site.com")

        assert state.visit_count("site.com") == 2

    @pytest.mark.asyncio
    async def test_semaphore_bounds_concurrency(self) -> None:
        in_flight = 0
        peak = 0

        class TrackingFetcher(FakeFetcher):
            async def fetch(self, url: str):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0.01)
                in_flight -= 1
                return await super().fetch(url)

        worker, _, _, _ = make_worker(TrackingFetcher(), slots=2)
        await asyncio.gather(*(worker.crawl(f"https://d{i}.com") for i in range(6)))

        assert peak == 2
