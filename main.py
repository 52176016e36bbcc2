#!/usr/bin/env python3
"""
Main entry point for the depth-limited crawler.
"""

import asyncio
import argparse
import logging
import signal
import sys
from typing import List, Optional

from depthcrawl import __version__
from depthcrawl.crawler.fetcher import FakeFetcher, Fetcher, WebFetcher
from depthcrawl.crawler.scheduler import CrawlerScheduler, CrawlReport
from depthcrawl.storage.visited import DedupKey
from depthcrawl.utils.config import Config, load_config, validate_config
from depthcrawl.utils.logger import setup_logging, log_system_info
from depthcrawl.utils.monitoring import CrawlMetrics
from depthcrawl.utils.reporting import JsonLinesReporter, PlainReporter, Reporter


class CrawlerApp:
    """Main application class for the crawler."""

    def __init__(self, stream=None):
        self.scheduler: Optional[CrawlerScheduler] = None
        self.logger = logging.getLogger(__name__)
        self.stream = stream or sys.stdout

    def build_fetcher(self, config: Config) -> Fetcher:
        """Create the retrieval backend named by the configuration."""
        crawler = config.crawler
        if crawler.fetcher == 'http':
            return WebFetcher(
                user_agent=crawler.user_agent,
                request_timeout=crawler.request_timeout
            )
        if crawler.fixture:
            return FakeFetcher.from_yaml(crawler.fixture)
        return FakeFetcher.sample()

    def build_reporter(self, json_output: bool) -> Reporter:
        if json_output:
            return JsonLinesReporter(self.stream)
        return PlainReporter(self.stream)

    def setup_signal_handlers(self):
        """Stop the running crawl on SIGINT/SIGTERM."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum):
            self.logger.info(f"Received signal {signum}, initiating shutdown...")
            if self.scheduler:
                self.scheduler.stop()

        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, signal_handler, signum)
            except (NotImplementedError, RuntimeError):
                # add_signal_handler is unavailable on some platforms/threads
                self.logger.debug(f"Signal handler for {signum} not installed")

    async def run(self, config: Config, json_output: bool = False) -> int:
        """Run one traversal and return a process exit code."""
        metrics = None
        try:
            self.setup_signal_handlers()

            crawler = config.crawler
            self.logger.info("=== CRAWLER STARTING ===")
            self.logger.info(f"Seed: {crawler.seed_url}")
            self.logger.info(f"Max depth: {crawler.max_depth}")
            self.logger.info(f"Fetcher: {crawler.fetcher}")
            self.logger.info(f"Dedup key: {crawler.dedup_key}")

            if config.monitoring.metrics_enabled:
                metrics = CrawlMetrics()
                metrics.start_server(config.monitoring.prometheus_port)

            reporter = self.build_reporter(json_output)

            async with self.build_fetcher(config) as fetcher:
                self.scheduler = CrawlerScheduler(
                    fetcher,
                    reporter=reporter,
                    dedup_key=DedupKey(crawler.dedup_key),
                    fetch_timeout=crawler.fetch_timeout,
                    metrics=metrics
                )
                report = await self.scheduler.crawl(crawler.seed_url, crawler.max_depth)

            reporter.flush()
            self._log_summary(report)

        except Exception as e:
            self.logger.error(f"Fatal error: {e}", exc_info=True)
            return 1

        finally:
            self.logger.info("=== CRAWLER FINISHED ===")

        return 0

    def _log_summary(self, report: CrawlReport):
        if report.cancelled:
            self.logger.warning("Crawl was stopped before completion")
        self.logger.info(f"Distinct keys found: {len(report.found_keys())}, "
                         f"errors reported: {len(report.errors())}")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Depth-limited concurrent crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  depthcrawl                                  # crawl the built-in fixture, depth 4
  depthcrawl --depth 1                        # only the seed page
  depthcrawl --dedup-key url                  # dedup on node id instead of content
  depthcrawl --fixture graph.yaml --seed a    # crawl a custom fixture
  depthcrawl --fetcher http --seed https://example.com/ --depth 2
  depthcrawl --config config.yaml --json      # JSON-lines output
        """
    )

    parser.add_argument('--config', help='Path to YAML configuration file')
    parser.add_argument('--seed', help='Seed node id / URL')
    parser.add_argument('--depth', type=int, help='Maximum crawl depth (positive integer)')
    parser.add_argument('--dedup-key', choices=['content', 'url'],
                        help='Deduplicate on fetched content or on node id')
    parser.add_argument('--fetcher', choices=['fixture', 'http'], help='Retrieval backend')
    parser.add_argument('--fixture', help='YAML page table for the fixture fetcher')
    parser.add_argument('--timeout', type=float, help='Per-fetch timeout in seconds')
    parser.add_argument('--json', action='store_true', help='Emit JSON lines instead of text')
    parser.add_argument('--metrics-port', type=int, help='Expose Prometheus metrics on this port')
    parser.add_argument('--log-level', help='Logging level (DEBUG, INFO, ...)')
    parser.add_argument('--version', action='version', version=f'depthcrawl {__version__}')

    return parser.parse_args(argv)


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Command line values take precedence over the config file."""
    crawler = config.crawler
    if args.seed is not None:
        crawler.seed_url = args.seed
    if args.depth is not None:
        crawler.max_depth = args.depth
    if args.dedup_key is not None:
        crawler.dedup_key = args.dedup_key
    if args.fetcher is not None:
        crawler.fetcher = args.fetcher
    if args.fixture is not None:
        crawler.fixture = args.fixture
    if args.timeout is not None:
        crawler.fetch_timeout = args.timeout
    if args.metrics_port is not None:
        config.monitoring.metrics_enabled = True
        config.monitoring.prometheus_port = args.metrics_port
    if args.log_level is not None:
        config.logging.level = args.log_level

    validate_config(config)
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = apply_overrides(load_config(args.config), args)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    setup_logging(config.logging)
    log_system_info()

    app = CrawlerApp()
    try:
        return asyncio.run(app.run(config, json_output=args.json))
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
