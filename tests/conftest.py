"""Shared fixtures and fakes for the crawler test suite."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from pcrawler.crawler.fetcher import FetchResult
from pcrawler.utils.config import CrawlerOptions


class FakeFetcher:
    """In-memory stand-in for WebFetcher: known URLs succeed, everything else fails."""

    def __init__(self, pages: Optional[Dict[str, str]] = None,
                 delay: float = 0.0,
                 on_fetch: Optional[Callable[[str], None]] = None) -> None:
        self.pages = pages or {}
        self.delay = delay
        self.on_fetch = on_fetch
        self.requested: List[str] = []
        self.started = False
        self.closed = False

    async def start(self) -> None:
        self.started = True

    async def close(self) -> None:
        self.closed = True

    async def fetch(self, url: str) -> FetchResult:
        self.requested.append(url)
        if self.on_fetch:
            self.on_fetch(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        if url in self.pages:
            return FetchResult(url=url, status_code=200, content=self.pages[url])
        return FetchResult(url=url, status_code=0, error="Connection refused")


class RecordingSink:
    """Progress sink that keeps every line it receives."""

    def __init__(self) -> None:
        self.lines: List[str] = []

    def __call__(self, line: str) -> None:
        self.lines.append(line)

    def matching(self, prefix: str) -> List[str]:
        return [line for line in self.lines if line.startswith(prefix)]


@pytest.fixture
def options(tmp_path: Path) -> CrawlerOptions:
    """Fast crawl options writing into a temporary directory."""
    return CrawlerOptions(
        domain_csv=str(tmp_path / "domains.csv"),
        proxy_csv=str(tmp_path / "proxies.csv"),
        rounds=1,
        max_parallel=4,
        min_delay_ms=0,
        max_delay_ms=0,
        flush_interval_sec=60,
        seed_url="https://seed.test",
    )


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


def read_lines(path: str) -> List[str]:
    return Path(path).read_text(encoding="utf-8").splitlines()
