"""
Web page fetcher backed by a pooled aiohttp session.
"""

import asyncio
import aiohttp
import logging
import time
from typing import Optional, Dict
from dataclasses import dataclass
from aiohttp import ClientSession, ClientTimeout, ClientError


@dataclass
class FetchResult:
    """Result of a fetch operation."""
    url: str
    status_code: int
    content: Optional[str] = None
    error: Optional[str] = None
    fetch_time: float = 0.0
    content_type: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.content is not None


class WebFetcher:
    """
    Fetches web pages with a short per-request timeout.

    Any non-2xx status, timeout or transport error is reported through
    FetchResult.error rather than raised.
    """

    def __init__(self, user_agent: str, request_timeout: float = 8,
                 max_connections: int = 80, max_content_size: int = 10 * 1024 * 1024):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.max_connections = max_connections
        self.max_content_size = max_content_size

        self.logger = logging.getLogger(__name__)
        self.session: Optional[ClientSession] = None

        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'total_bytes_downloaded': 0
        }

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def start(self):
        """Initialize the fetcher session."""
        if self.session is None:
            timeout = ClientTimeout(total=self.request_timeout)
            headers = {
                'User-Agent': self.user_agent,
                'Accept-Encoding': 'gzip, deflate',
            }

            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers=headers,
                connector=aiohttp.TCPConnector(
                    limit=self.max_connections * 2,
                    ttl_dns_cache=300,
                    use_dns_cache=True
                )
            )
            self.logger.info("WebFetcher session started")

    async def close(self):
        """Close the fetcher session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.info("WebFetcher session closed")

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch a single URL.

        Args:
            url: The URL to fetch

        Returns:
            FetchResult object containing the body or error information
        """
        if self.session is None:
            await self.start()

        start_time = time.time()
        self.stats['total_requests'] += 1

        try:
            async with self.session.get(url) as response:
                content_type = response.headers.get('content-type', '').lower()

                if not 200 <= response.status < 300:
                    self.stats['failed_requests'] += 1
                    self.logger.debug(f"HTTP {response.status} from {url}")
                    return FetchResult(
                        url=url,
                        status_code=response.status,
                        error=f"HTTP {response.status}",
                        content_type=content_type,
                        fetch_time=time.time() - start_time
                    )

                content = await self._read_content_safely(response)
                if content is None:
                    self.stats['failed_requests'] += 1
                    return FetchResult(
                        url=url,
                        status_code=response.status,
                        error="Unreadable or oversized body",
                        content_type=content_type,
                        fetch_time=time.time() - start_time
                    )

                self.stats['successful_requests'] += 1
                self.stats['total_bytes_downloaded'] += len(content)
                self.logger.debug(f"Fetched {url}: {response.status} ({len(content)} chars)")

                return FetchResult(
                    url=url,
                    status_code=response.status,
                    content=content,
                    content_type=content_type,
                    fetch_time=time.time() - start_time
                )

        except asyncio.TimeoutError:
            error_msg = "Request timeout"
            self.logger.debug(f"Timeout fetching {url}")

        except ClientError as e:
            error_msg = f"Client error: {e}"
            self.logger.debug(f"Client error fetching {url}: {e}")

        except ValueError as e:
            # yarl rejects some URLs that the link pattern lets through
            error_msg = f"Invalid URL: {e}"
            self.logger.debug(f"Invalid URL {url}: {e}")

        self.stats['failed_requests'] += 1
        return FetchResult(
            url=url,
            status_code=0,
            error=error_msg,
            fetch_time=time.time() - start_time
        )

    async def _read_content_safely(self, response) -> Optional[str]:
        """
        Read response content with a size limit.

        Returns:
            Content string or None if too large
        """
        content_length = response.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > self.max_content_size:
            self.logger.debug(f"Content too large ({content_length} bytes): {response.url}")
            return None

        content_bytes = b''
        async for chunk in response.content.iter_chunked(8192):
            content_bytes += chunk
            if len(content_bytes) > self.max_content_size:
                self.logger.debug(f"Content exceeded size limit during reading: {response.url}")
                return None

        encoding = response.charset or 'utf-8'
        try:
            return content_bytes.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            # Proxy and link patterns are ASCII, so lossy decoding is harmless
            return content_bytes.decode('utf-8', errors='ignore')

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        return self.stats.copy()

    def reset_stats(self):
        """Reset statistics counters."""
        for key in self.stats:
            self.stats[key] = 0
