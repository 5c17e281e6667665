"""
RSS ingestion: dumps feed items to text files and builds word n-gram frequency tables.
"""

import asyncio
import logging
import re
from collections import Counter
from pathlib import Path
from typing import Dict, List, Optional

import aiohttp
from aiohttp import ClientError, ClientTimeout
from bs4 import BeautifulSoup

from ..crawler.state import CancellationToken
from ..utils.config import RssConfig
from ..utils.logger import LogSink, ProgressSink


ITEM_FIELDS = ('title', 'description', 'link', 'category', 'pubDate')
SEPARATOR = "--------------------------------"

_img_pattern = re.compile(r'<img\s+[^>]*/?>', re.IGNORECASE)
_word_split_pattern = re.compile(r'\W+')


def remove_image_tags(text: str) -> str:
    if not text:
        return text
    return _img_pattern.sub('', text)


def count_ngrams(text: str, n: int, counts: Counter):
    """Add every n-word sequence of text (lower-cased, split on non-word characters) to counts."""
    if not text:
        return
    words = [w for w in _word_split_pattern.split(text.lower()) if w]
    for i in range(len(words) - n + 1):
        counts[' '.join(words[i:i + n])] += 1


def format_ngrams(counts: Counter) -> str:
    """Entries seen more than once, most frequent first, ties alphabetical."""
    entries = sorted(
        ((ngram, count) for ngram, count in counts.items() if count > 1),
        key=lambda item: (-item[1], item[0])
    )
    return ''.join(f"{ngram}: {count}\n" for ngram, count in entries)


def parse_items(document: str) -> List[Dict[str, str]]:
    """
    Extract the item fields of an RSS document.

    Missing fields are reported as N/A and image tags are stripped.

    Raises:
        ValueError: If the document contains no XML elements at all
    """
    soup = BeautifulSoup(document, 'xml')
    if soup.find() is None:
        raise ValueError("Document is not XML")

    items = []
    for item in soup.find_all('item'):
        record = {}
        for name in ITEM_FIELDS:
            element = item.find(name, recursive=False)
            value = element.get_text() if element is not None else "N/A"
            record[name] = remove_image_tags(value)
        items.append(record)
    return items


class RssReader:
    """Reads a list of feed URLs and writes item dumps plus n-gram statistics."""

    def __init__(self, config: Optional[RssConfig] = None,
                 sink: Optional[ProgressSink] = None,
                 token: Optional[CancellationToken] = None):
        self.config = config or RssConfig()
        self.sink = sink or LogSink()
        self.token = token or CancellationToken()
        self.logger = logging.getLogger(__name__)

        self.ngram_counts: Dict[int, Counter] = {1: Counter(), 2: Counter(), 3: Counter()}

    async def run(self) -> int:
        """
        Process every feed listed in the input file.

        Returns:
            Number of feeds that were fetched and written
        """
        input_path = Path(self.config.input_file)
        if not input_path.exists():
            self.sink(f"Input file \"{input_path}\" not found.")
            return 0

        items_path = Path(self.config.items_file)
        titles_path = Path(self.config.titles_file)
        ngrams_path = Path(self.config.ngrams_file)
        for path in (items_path, titles_path, ngrams_path):
            path.write_text('', encoding='utf-8')

        links = [line.strip() for line in input_path.read_text(encoding='utf-8').splitlines()]
        processed = 0
        self.ngram_counts = {1: Counter(), 2: Counter(), 3: Counter()}
        self.logger.info(f"Reading {sum(1 for link in links if link)} feeds from {input_path}")

        timeout = ClientTimeout(total=self.config.request_timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            for link in links:
                if self.token.is_cancelled:
                    break
                if not link:
                    continue

                try:
                    async with session.get(link) as response:
                        response.raise_for_status()
                        document = await response.text()
                    items = parse_items(document)
                except (asyncio.TimeoutError, ClientError, ValueError) as e:
                    self.sink(f"Error fetching {link}: {str(e) or type(e).__name__}")
                    continue

                self._append_feed(link, items, items_path, titles_path)
                processed += 1
                self.sink(f"Content of {link} saved.")

        ngrams_path.write_text(self._format_all_ngrams(), encoding='utf-8')
        self.logger.info(f"Processed {processed} feeds, n-gram table written to {ngrams_path}")
        self.sink("All feeds processed.")
        return processed

    def _append_feed(self, link: str, items: List[Dict[str, str]], items_path: Path, titles_path: Path):
        full = [f"----- Content of {link} -----\n"]
        brief = [f"----- Title & Description of {link} -----\n"]

        for item in items:
            full.append(f"Title: {item['title']}\n")
            full.append(f"Description: {item['description']}\n")
            full.append(f"Link: {item['link']}\n")
            full.append(f"Category: {item['category']}\n")
            full.append(f"PubDate: {item['pubDate']}\n")
            full.append(SEPARATOR + "\n")

            brief.append(f"Title: {item['title']}\n")
            brief.append(f"Description: {item['description']}\n")
            brief.append(SEPARATOR + "\n")

            combined = f"{item['title']} {item['description']}"
            for n, counts in self.ngram_counts.items():
                count_ngrams(combined, n, counts)

        with open(items_path, 'a', encoding='utf-8') as f:
            f.write(''.join(full))
        with open(titles_path, 'a', encoding='utf-8') as f:
            f.write(''.join(brief))

    def _format_all_ngrams(self) -> str:
        labels = {1: "Unigrams", 2: "Bigrams", 3: "Trigrams"}
        sections = []
        for n, counts in self.ngram_counts.items():
            sections.append(f"----- Word frequency ({labels[n]}) -----\n")
            sections.append(format_ngrams(counts) + "\n")
        return ''.join(sections)
