#!/usr/bin/env python3
"""
Main entry point for the proxy crawler.
"""

import asyncio
import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from pcrawler import __version__
from pcrawler.crawler.scheduler import CrawlerScheduler
from pcrawler.crawler.state import CancellationToken
from pcrawler.exceptions import CrawlerError
from pcrawler.storage.tables import TableStore
from pcrawler.tools.proxy_checker import ProxyChecker
from pcrawler.tools.rss_reader import RssReader
from pcrawler.utils.config import Config, load_config, override_options
from pcrawler.utils.logger import LogSink, log_system_info, setup_logging


class CrawlerApp:
    """Command-line host for the crawler and its tools."""

    def __init__(self):
        self.scheduler: Optional[CrawlerScheduler] = None
        self.logger = logging.getLogger(__name__)
        self.token = CancellationToken()
        self.sink = LogSink()

    def setup_signal_handlers(self):
        """Route SIGINT/SIGTERM to the cancellation token for a graceful stop."""
        loop = asyncio.get_running_loop()

        def request_stop(signum):
            if self.token.is_cancelled:
                return
            self.logger.info(f"Received signal {signum}, initiating shutdown...")
            self.token.cancel()

        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, request_stop, signum)
            except NotImplementedError:
                # Windows event loops do not support signal handlers
                signal.signal(signum, lambda s, frame: loop.call_soon_threadsafe(request_stop, s))

    async def run(self, args: argparse.Namespace) -> int:
        """Load configuration and dispatch the selected command."""
        try:
            config = load_config(args.config)
            if args.log_level:
                config.logging.level = args.log_level
            setup_logging(config.logging, enable_json=True if args.json_logs else None)
            log_system_info()
            self.setup_signal_handlers()

            self.logger.info(f"Configuration loaded from: {args.config}")

            command = args.command or 'crawl'
            if command == 'crawl':
                await self.crawl(config, args)
            elif command == 'check-proxies':
                await self.check_proxies(config, args)
            elif command == 'rss':
                await self.read_feeds(config)

        except CrawlerError as e:
            self.logger.error(f"Fatal error: {e}")
            return 1

        except Exception as e:
            self.logger.error(f"Fatal error: {e}", exc_info=True)
            return 1

        return 0

    async def crawl(self, config: Config, args: argparse.Namespace):
        options = override_options(
            config.crawler,
            rounds=getattr(args, 'rounds', None),
            max_parallel=getattr(args, 'max_parallel', None),
            domain_csv=getattr(args, 'domain_csv', None),
            proxy_csv=getattr(args, 'proxy_csv', None),
            seed_url=getattr(args, 'seed_url', None),
        )

        self.logger.info("=== PROXY CRAWLER STARTING ===")
        self.logger.info(f"Domain table: {options.domain_csv}")
        self.logger.info(f"Proxy table: {options.proxy_csv}")
        self.logger.info(f"Rounds: {options.rounds}")
        self.logger.info(f"Max parallel fetches: {options.max_parallel}")
        self.logger.info(f"Host delay: {options.min_delay_ms}-{options.max_delay_ms}ms")
        self.logger.info(f"Flush interval: {options.flush_interval_sec}s")

        self.scheduler = CrawlerScheduler(options, sink=self.sink)
        try:
            await self.scheduler.run(self.token)
        finally:
            self.logger.info("=== PROXY CRAWLER FINISHED ===")

    async def check_proxies(self, config: Config, args: argparse.Namespace):
        proxy_csv = getattr(args, 'proxy_csv', None) or config.crawler.proxy_csv
        if getattr(args, 'recheck', False):
            config.proxy_check.recheck = True

        store = TableStore(config.crawler.domain_csv, proxy_csv)
        checker = ProxyChecker(config.proxy_check, sink=self.sink, token=self.token)
        await checker.check_table(store)

    async def read_feeds(self, config: Config):
        reader = RssReader(config.rss, sink=self.sink, token=self.token)
        await reader.run()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Proxy-harvesting web crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                               # Crawl with default config.yaml
  python main.py --config my_config.yaml crawl --rounds 2
  python main.py crawl --max-parallel 20       # Gentler crawl
  python main.py check-proxies --recheck       # Probe every proxy in the table
  python main.py rss                           # Ingest feeds listed in RSS_Links.txt
        """
    )

    parser.add_argument(
        '--config',
        default='config.yaml',
        help='Path to configuration file (default: config.yaml)'
    )
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Override the configured log level'
    )
    parser.add_argument(
        '--json-logs',
        action='store_true',
        help='Emit logs as JSON lines'
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'PCrawler {__version__}'
    )

    subparsers = parser.add_subparsers(dest='command')

    crawl = subparsers.add_parser('crawl', help='Run the crawler (default)')
    crawl.add_argument('--rounds', type=int, help='Number of crawl rounds')
    crawl.add_argument('--max-parallel', type=int, help='Maximum parallel fetches')
    crawl.add_argument('--domain-csv', help='Path of the domain table')
    crawl.add_argument('--proxy-csv', help='Path of the proxy table')
    crawl.add_argument('--seed-url', help='URL to start from when the domain table is empty')

    check = subparsers.add_parser('check-proxies', help='Probe harvested proxies')
    check.add_argument('--proxy-csv', help='Path of the proxy table')
    check.add_argument('--recheck', action='store_true', help='Probe every proxy, not just PENDING ones')

    subparsers.add_parser('rss', help='Ingest RSS feeds and compute n-gram frequencies')

    return parser


def main():
    """Main entry point."""
    args = build_parser().parse_args()

    if not Path(args.config).exists():
        print(f"Error: Configuration file '{args.config}' not found.")
        print("Please create a config.yaml file or specify a different path with --config")
        return 1

    app = CrawlerApp()
    try:
        return asyncio.run(app.run(args))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1


if __name__ == '__main__':
    sys.exit(main())
