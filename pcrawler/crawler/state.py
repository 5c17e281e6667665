"""
Shared crawl state: domain visit counts, proxy candidates, seen links and run counters.

Every structure here is owned by one CrawlState instance that the scheduler
creates and hands to each worker. All mutation happens on the event loop
thread, so each add-if-absent or add-or-update call is atomic with respect
to other workers (there is no await between the check and the write).
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple
from urllib.parse import urlparse


PENDING = "PENDING"


def root_domain(host: str) -> str:
    """
    Reduce a hostname to its last two dot-separated labels.

    The result is lower-cased, so www.Example.com and example.com share a key.
    Hosts with fewer than two labels are returned unchanged (lower-cased).
    """
    labels = host.strip().rstrip('.').lower().split('.')
    if len(labels) >= 2:
        return f"{labels[-2]}.{labels[-1]}"
    return labels[0]


def parse_host(url: str) -> Optional[str]:
    """Return the host of an absolute http(s) URL, or None if it does not parse as one."""
    try:
        parsed = urlparse(url)
        if parsed.scheme.lower() not in ('http', 'https'):
            return None
        # Touching .port validates the netloc
        parsed.port
        host = parsed.hostname
    except ValueError:
        return None

    if not host:
        return None
    return host


def url_root(url: str) -> Optional[str]:
    """Root domain of an absolute URL, or None for unparsable input."""
    host = parse_host(url)
    if host is None:
        return None
    return root_domain(host)


def frontier_url(domain: str) -> str:
    """URL that represents a root domain in the frontier."""
    return f"https://{domain}"


@dataclass
class ProxyCandidate:
    """A proxy address found in page content."""
    status: str = PENDING
    latency_ms: Optional[int] = None


@dataclass
class RunCounters:
    """Run-scoped counters read by the progress reporter."""
    links_found: int = 0
    proxies_found: int = 0
    percent: int = 0

    def reset(self):
        self.links_found = 0
        self.proxies_found = 0
        self.percent = 0

    def advance_percent(self, percent: int) -> bool:
        """Store percent if it is larger than the last reported value. Returns True if stored."""
        if percent > self.percent:
            self.percent = percent
            return True
        return False


class CancellationToken:
    """Set-once cancellation latch shared by the scheduler, workers and flush timer."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self):
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self):
        await self._event.wait()

    async def sleep(self, seconds: float) -> bool:
        """
        Sleep for the given time unless cancelled first.

        Returns:
            True if the full delay elapsed, False if cancellation cut it short
        """
        if self.is_cancelled:
            return False
        if seconds <= 0:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return True
        return False


class CrawlState:
    """
    Aggregate of every structure the crawl mutates.

    domains and proxies are persisted; seen_links, processed and counters
    live only for the current run.
    """

    def __init__(self, domains: Optional[Dict[str, int]] = None,
                 proxies: Optional[Dict[str, ProxyCandidate]] = None):
        self.domains: Dict[str, int] = {}
        self.proxies: Dict[str, ProxyCandidate] = {}
        self.seen_links: Set[str] = set()
        self.processed: Set[str] = set()
        self.counters = RunCounters()

        if domains:
            self.load_domains(domains.items())
        if proxies:
            self.proxies.update(proxies)

    def load_domains(self, rows: Iterable[Tuple[str, int]]):
        """Merge persisted domain rows, canonicalising their keys."""
        for domain, count in rows:
            self.domains[root_domain(domain)] = count

    def reset_run(self):
        """Forget per-run state before a new run starts."""
        self.seen_links.clear()
        self.processed.clear()
        self.counters.reset()

    # Domains

    def register_domain(self, domain: str) -> bool:
        """Add a domain with a zero visit count if absent. Returns True if added."""
        key = domain.lower()
        if key in self.domains:
            return False
        self.domains[key] = 0
        return True

    def record_visit(self, domain: str) -> int:
        """Increment a domain's visit counter and return the new value."""
        key = domain.lower()
        self.domains[key] = self.domains.get(key, 0) + 1
        return self.domains[key]

    def visit_count(self, domain: str) -> int:
        return self.domains.get(domain.lower(), 0)

    def mark_processed(self, domain: str) -> bool:
        """Insert a domain into the processed set. Returns True if it was not there yet."""
        key = domain.lower()
        if key in self.processed:
            return False
        self.processed.add(key)
        return True

    def unprocessed_domains(self) -> List[str]:
        return [domain for domain in self.domains if domain not in self.processed]

    # Discoveries

    def add_proxy(self, proxy: str) -> bool:
        """Record a proxy candidate if unseen. Returns True and counts it when new."""
        if proxy in self.proxies:
            return False
        self.proxies[proxy] = ProxyCandidate()
        self.counters.proxies_found += 1
        return True

    def add_link(self, link: str) -> bool:
        """Record a link if unseen (case-insensitive). Returns True and counts it when new."""
        key = link.casefold()
        if key in self.seen_links:
            return False
        self.seen_links.add(key)
        self.counters.links_found += 1
        return True

    # Snapshots for persistence

    def domain_rows(self) -> List[Tuple[str, int]]:
        return sorted(self.domains.items())

    def proxy_rows(self) -> List[Tuple[str, ProxyCandidate]]:
        return sorted(self.proxies.items())
