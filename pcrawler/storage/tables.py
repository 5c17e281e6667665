"""
CSV persistence for the domain visit table and the proxy candidate table.
"""

import asyncio
import csv
import logging
import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..crawler.state import CrawlState, ProxyCandidate
from ..exceptions import StorageError


DOMAIN_HEADER = ('domain', 'call_count')
PROXY_HEADER = ('proxy', 'status', 'latency_ms')


def _is_ascii_number(text: str) -> bool:
    # str.isdigit() also accepts characters such as '²' that int() rejects
    return text.isascii() and text.isdigit()


class TableStore:
    """
    Loads and saves the two crawl tables.

    Each table has its own lock, so the domain and proxy tables can be
    written at the same time while two writes of one table never overlap.
    Files are written to a temporary sibling and renamed into place, so a
    reader never observes a half-written table.
    """

    def __init__(self, domain_csv: str, proxy_csv: str):
        self.domain_path = Path(domain_csv)
        self.proxy_path = Path(proxy_csv)
        self.logger = logging.getLogger(__name__)

        self._domain_lock = asyncio.Lock()
        self._proxy_lock = asyncio.Lock()

        self.stats = {
            'flushes': 0,
            'flush_errors': 0,
            'skipped_rows': 0
        }

    # Loading

    def _read_rows(self, path: Path) -> List[List[str]]:
        """
        Read every data row after the header. A missing file yields no rows.

        Lines are parsed one at a time, so a line that is not valid UTF-8 or
        not valid CSV is skipped without losing the rest of the table.

        Raises:
            StorageError: If the file exists but cannot be opened or read
        """
        if not path.exists():
            self.logger.info(f"No existing table at {path}, starting empty")
            return []

        try:
            with open(path, 'r', encoding='utf-8', errors='replace', newline='') as f:
                lines = f.read().splitlines()
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}")

        rows = []
        for line in lines[1:]:
            if '\ufffd' in line:
                self.stats['skipped_rows'] += 1
                continue
            try:
                rows.append(next(csv.reader([line]), []))
            except csv.Error as e:
                self.logger.debug(f"Unreadable row in {path}: {e}")
                self.stats['skipped_rows'] += 1
        return rows

    def load_domains(self) -> Dict[str, int]:
        """Load the domain table, skipping malformed rows."""
        domains: Dict[str, int] = {}
        for row in self._read_rows(self.domain_path):
            parsed = self._parse_domain_row(row)
            if parsed is None:
                self.stats['skipped_rows'] += 1
                continue
            domain, count = parsed
            domains[domain] = count

        self.logger.info(f"Loaded {len(domains)} domains from {self.domain_path}")
        return domains

    def load_proxies(self) -> Dict[str, ProxyCandidate]:
        """Load the proxy table, skipping malformed rows."""
        proxies: Dict[str, ProxyCandidate] = {}
        for row in self._read_rows(self.proxy_path):
            parsed = self._parse_proxy_row(row)
            if parsed is None:
                self.stats['skipped_rows'] += 1
                continue
            proxy, candidate = parsed
            proxies[proxy] = candidate

        self.logger.info(f"Loaded {len(proxies)} proxies from {self.proxy_path}")
        return proxies

    def load_state(self) -> CrawlState:
        """Build a CrawlState from both tables."""
        return CrawlState(domains=self.load_domains(), proxies=self.load_proxies())

    @staticmethod
    def _parse_domain_row(row: Sequence[str]) -> Optional[Tuple[str, int]]:
        if len(row) != 2:
            return None
        domain = row[0].strip()
        count = row[1].strip()
        if not domain or not _is_ascii_number(count):
            return None
        return domain, int(count)

    @staticmethod
    def _parse_proxy_row(row: Sequence[str]) -> Optional[Tuple[str, ProxyCandidate]]:
        if len(row) < 2:
            return None
        proxy = row[0].strip()
        status = row[1].strip()
        if not proxy or not status:
            return None

        latency = None
        if len(row) > 2 and row[2].strip():
            if not _is_ascii_number(row[2].strip()):
                return None
            latency = int(row[2].strip())

        return proxy, ProxyCandidate(status=status, latency_ms=latency)

    # Saving

    def _write_table(self, path: Path, header: Sequence[str], rows: Iterable[Sequence]):
        """Write header and rows to path atomically."""
        tmp_path = path.with_name(f"{path.name}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8', newline='') as f:
                writer = csv.writer(f, lineterminator='\n')
                writer.writerow(header)
                writer.writerows(rows)
                f.flush()
                os.fsync(f.fileno())

            os.replace(tmp_path, path)

        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}")

    def save_domains(self, rows: Iterable[Tuple[str, int]]):
        """Write domain rows (already sorted) to the domain table."""
        self._write_table(self.domain_path, DOMAIN_HEADER, rows)

    def save_proxies(self, rows: Iterable[Tuple[str, ProxyCandidate]]):
        """Write proxy rows (already sorted) to the proxy table."""
        self._write_table(
            self.proxy_path,
            PROXY_HEADER,
            (
                (proxy, candidate.status, '' if candidate.latency_ms is None else candidate.latency_ms)
                for proxy, candidate in rows
            )
        )

    async def _flush_domains(self, rows: List[Tuple[str, int]]):
        async with self._domain_lock:
            await asyncio.to_thread(self.save_domains, rows)

    async def _flush_proxies(self, rows: List[Tuple[str, ProxyCandidate]]):
        async with self._proxy_lock:
            await asyncio.to_thread(self.save_proxies, rows)

    async def flush(self, state: CrawlState):
        """
        Persist both tables from the live crawl state.

        Rows are snapshotted on the event loop, then written off-loop, so
        workers keep running while the files are written. Each row copies
        one complete key/value pair; the snapshot as a whole may be slightly
        behind the live state by the time it lands on disk.

        Raises:
            StorageError: If either table could not be written
        """
        domain_rows = state.domain_rows()
        proxy_rows = [
            (proxy, ProxyCandidate(candidate.status, candidate.latency_ms))
            for proxy, candidate in state.proxy_rows()
        ]

        results = await asyncio.gather(
            self._flush_domains(domain_rows),
            self._flush_proxies(proxy_rows),
            return_exceptions=True
        )

        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            self.stats['flush_errors'] += 1
            for error in errors:
                # Task cancellation and interpreter exits pass through unchanged
                if not isinstance(error, Exception):
                    raise error
            raise StorageError("; ".join(str(e) or type(e).__name__ for e in errors))

        self.stats['flushes'] += 1
        self.logger.debug(f"Flushed {len(domain_rows)} domains and {len(proxy_rows)} proxies")

    def get_stats(self) -> Dict[str, int]:
        """Get storage statistics."""
        return self.stats.copy()
