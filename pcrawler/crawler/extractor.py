"""
Pattern-based extraction of proxy addresses and absolute links from raw page bodies.
"""

import re
import logging
from dataclasses import dataclass, field
from typing import List

from .state import CrawlState, url_root


PROXY_PATTERN = re.compile(r'\b(?:(?:\d{1,3}\.){3}\d{1,3}):\d{2,5}\b')
LINK_PATTERN = re.compile(r'''https?://[^\s'"<>]+''', re.IGNORECASE)


@dataclass
class ExtractionResult:
    """What one page contributed that had not been seen before."""
    url: str
    new_proxies: List[str] = field(default_factory=list)
    new_links: List[str] = field(default_factory=list)
    new_domains: List[str] = field(default_factory=list)


class ExtractionEngine:
    """
    Scans page bodies for proxy candidates and outbound links.

    The body is treated as plain text: no HTML parsing is done, so addresses
    and links inside scripts, comments or attributes are found too.
    """

    def __init__(self, state: CrawlState):
        self.state = state
        self.logger = logging.getLogger(__name__)

    def extract(self, url: str, body: str) -> ExtractionResult:
        """
        Record every proxy and link in body into the crawl state.

        Args:
            url: The page the body came from (used for logging only)
            body: Raw response text

        Returns:
            ExtractionResult listing only the values this call added
        """
        result = ExtractionResult(url=url)

        for match in PROXY_PATTERN.finditer(body):
            proxy = match.group(0)
            if self.state.add_proxy(proxy):
                result.new_proxies.append(proxy)

        for match in LINK_PATTERN.finditer(body):
            link = match.group(0)
            if not self.state.add_link(link):
                continue
            result.new_links.append(link)

            # Unparsable links still count as found, they just name no domain
            root = url_root(link)
            if root is None:
                continue
            if self.state.register_domain(root):
                result.new_domains.append(root)

        self.logger.debug(f"Extracted from {url}: {len(result.new_proxies)} proxies, "
                          f"{len(result.new_links)} links, {len(result.new_domains)} domains")
        return result
