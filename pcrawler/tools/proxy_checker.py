"""
Liveness checker for harvested proxy candidates.

Each candidate gets a single HTTP probe routed through it. The result
overwrites the candidate's status in the proxy table.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import aiohttp
from aiohttp import ClientError, ClientSession, ClientTimeout

from ..crawler.state import PENDING, CancellationToken, ProxyCandidate
from ..storage.tables import TableStore
from ..utils.config import ProxyCheckConfig
from ..utils.logger import LogSink, ProgressSink


STATUS_OK = "OK"
STATUS_FAILED = "FAILED"


@dataclass
class ProxyCheckResult:
    """Outcome of probing one proxy."""
    proxy: str
    ok: bool
    latency_ms: Optional[int] = None
    error: Optional[str] = None


class ProxyChecker:
    """Probes proxies by fetching a known URL through each of them."""

    def __init__(self, config: Optional[ProxyCheckConfig] = None,
                 sink: Optional[ProgressSink] = None,
                 token: Optional[CancellationToken] = None):
        self.config = config or ProxyCheckConfig()
        self.sink = sink or LogSink()
        self.token = token or CancellationToken()
        self.logger = logging.getLogger(__name__)

    async def check(self, proxy: str, session: ClientSession) -> ProxyCheckResult:
        """
        Probe a single proxy.

        A 2xx response counts as alive. Any transport error, timeout or other
        status counts as a failure.
        """
        start = time.monotonic()
        try:
            async with session.get(self.config.probe_url, proxy=f"http://{proxy}") as response:
                latency_ms = int((time.monotonic() - start) * 1000)
                if 200 <= response.status < 300:
                    return ProxyCheckResult(proxy=proxy, ok=True, latency_ms=latency_ms)
                return ProxyCheckResult(proxy=proxy, ok=False, error=f"HTTP {response.status}")

        except asyncio.TimeoutError:
            return ProxyCheckResult(proxy=proxy, ok=False, error="Timeout")
        except (ClientError, ValueError) as e:
            return ProxyCheckResult(proxy=proxy, ok=False, error=str(e) or type(e).__name__)

    async def check_all(self, proxies: Iterable[str]) -> List[ProxyCheckResult]:
        """Probe every proxy with bounded concurrency, reporting each result line."""
        semaphore = asyncio.Semaphore(self.config.max_concurrent_checks)
        timeout = ClientTimeout(total=self.config.timeout)

        async with aiohttp.ClientSession(timeout=timeout) as session:

            async def check_one(proxy: str) -> Optional[ProxyCheckResult]:
                async with semaphore:
                    if self.token.is_cancelled:
                        return None
                    result = await self.check(proxy, session)
                    self.sink(f"{proxy}: {STATUS_OK if result.ok else STATUS_FAILED}")
                    return result

            results = await asyncio.gather(*(check_one(p) for p in proxies))

        return [r for r in results if r is not None]

    async def check_table(self, store: TableStore) -> Dict[str, int]:
        """
        Check the proxies in the store's proxy table and save the results.

        Only PENDING candidates are probed unless config.recheck is set.

        Returns:
            Counts of alive and dead proxies among those checked
        """
        proxies = store.load_proxies()
        targets = [
            proxy for proxy, candidate in sorted(proxies.items())
            if self.config.recheck or candidate.status == PENDING
        ]
        self.logger.info(f"Checking {len(targets)} of {len(proxies)} proxies via {self.config.probe_url}")

        results = await self.check_all(targets)
        for result in results:
            proxies[result.proxy] = ProxyCandidate(
                status=STATUS_OK if result.ok else STATUS_FAILED,
                latency_ms=result.latency_ms if result.ok else None
            )

        await asyncio.to_thread(store.save_proxies, sorted(proxies.items()))

        alive = sum(1 for r in results if r.ok)
        dead = len(results) - alive
        self.sink(f"Proxy check complete: {alive} alive, {dead} dead")
        return {'alive': alive, 'dead': dead}
