"""
Traversal coordinator: runs one asyncio task per visit, shares a visited-set
across them and detects when the whole traversal has finished.
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional, Set
from dataclasses import dataclass

from .fetcher import Fetcher, FetchResult, RetrievalFailure
from .tracker import WorkTracker
from ..storage.visited import DedupKey, VisitedSet
from ..utils.logger import get_crawler_logger
from ..utils.monitoring import CrawlMetrics
from ..utils.reporting import Reporter, VisitEvent


@dataclass
class CrawlStats:
    """Statistics for one traversal."""
    start_time: float
    fetches: int = 0
    found: int = 0
    failed: int = 0
    duplicates: int = 0
    depth_exhausted: int = 0
    tasks_spawned: int = 0

    @property
    def elapsed_time(self) -> float:
        return time.time() - self.start_time

    def to_dict(self) -> Dict:
        return {
            'fetches': self.fetches,
            'found': self.found,
            'failed': self.failed,
            'duplicates': self.duplicates,
            'depth_exhausted': self.depth_exhausted,
            'tasks_spawned': self.tasks_spawned,
            'elapsed_time': self.elapsed_time
        }


@dataclass
class CrawlReport:
    """Outcome of a finished traversal."""
    seed: str
    max_depth: int
    events: List[VisitEvent]
    visited: Dict[str, bool]
    stats: CrawlStats
    cancelled: bool = False

    def found_keys(self) -> Set[str]:
        return {key for key, found in self.visited.items() if found}

    def errors(self) -> List[str]:
        return [event.error for event in self.events if not event.found]


class CrawlContext:
    """
    State owned by a single traversal and passed to each of its tasks.
    """

    def __init__(self, fetcher: Fetcher, reporter: Optional[Reporter] = None,
                 dedup_key: DedupKey = DedupKey.CONTENT):
        self.fetcher = fetcher
        self.reporter = reporter
        self.dedup_key = dedup_key

        self.visited = VisitedSet()
        self.tracker = WorkTracker()
        self.stats = CrawlStats(start_time=time.time())

        self.events: List[VisitEvent] = []
        self.tasks: Set[asyncio.Task] = set()
        self.failures: List[BaseException] = []
        self.stopped = False

    def emit(self, event: VisitEvent):
        """Send an event to the observation channel."""
        self.events.append(event)
        if self.reporter is not None:
            self.reporter.report(event)

    def cancel(self):
        """Cancel every live task; each still releases its work unit."""
        self.stopped = True
        for task in list(self.tasks):
            task.cancel()


class CrawlerScheduler:
    """
    Coordinates concurrent, depth-limited traversals.

    Each crawl() call gets its own CrawlContext, so several traversals can
    run on one scheduler at the same time.
    """

    def __init__(self, fetcher: Fetcher, reporter: Optional[Reporter] = None,
                 dedup_key: DedupKey = DedupKey.CONTENT,
                 fetch_timeout: Optional[float] = None,
                 metrics: Optional[CrawlMetrics] = None):
        self.fetcher = fetcher
        self.reporter = reporter
        self.dedup_key = dedup_key
        self.fetch_timeout = fetch_timeout
        self.metrics = metrics

        self.logger = logging.getLogger(__name__)
        self.url_logger = get_crawler_logger(__name__)
        self._contexts: Set[CrawlContext] = set()

    @property
    def is_running(self) -> bool:
        return bool(self._contexts)

    async def crawl(self, seed: str, max_depth: int) -> CrawlReport:
        """
        Crawl from seed, following links up to max_depth hops.

        Returns once every spawned task has finished. Retrieval failures are
        reported as events; any other exception raised by a visit is
        re-raised here after the traversal drains.
        """
        ctx = CrawlContext(self.fetcher, self.reporter, self.dedup_key)
        self._contexts.add(ctx)

        self.logger.info(f"Starting crawl: seed={seed} max_depth={max_depth} "
                         f"dedup_key={self.dedup_key.value}")

        try:
            self._spawn(ctx, seed, max_depth)
            await ctx.tracker.wait()
        except asyncio.CancelledError:
            ctx.cancel()
            raise
        finally:
            self._contexts.discard(ctx)

        self._log_final_stats(ctx)

        if ctx.failures:
            raise ctx.failures[0]

        return CrawlReport(
            seed=seed,
            max_depth=max_depth,
            events=list(ctx.events),
            visited=ctx.visited.snapshot(),
            stats=ctx.stats,
            cancelled=ctx.stopped
        )

    def _spawn(self, ctx: CrawlContext, url: str, depth: int):
        """Register a unit of work, then start a task for it."""
        if ctx.stopped:
            return

        ctx.tracker.add(1)
        ctx.stats.tasks_spawned += 1
        if self.metrics:
            self.metrics.task_started()

        task = asyncio.create_task(self._run_visit(ctx, url, depth))
        ctx.tasks.add(task)

        def _finished(finished_task: asyncio.Task):
            ctx.tasks.discard(finished_task)
            if self.metrics:
                self.metrics.task_finished()
            ctx.tracker.done()

        task.add_done_callback(_finished)

    async def _run_visit(self, ctx: CrawlContext, url: str, depth: int):
        try:
            await self.visit(ctx, url, depth)
        except Exception as e:
            self.logger.error(f"Unexpected error visiting {url}: {e}", exc_info=True)
            ctx.failures.append(e)

    async def visit(self, ctx: CrawlContext, url: str, depth: int):
        """
        Visit one node: fetch it, dedup on the shared visited-set, report
        the outcome and spawn a task per outbound link with depth - 1.

        The lock is held only for the visited-set check and write, never
        across the fetch.
        """
        if depth <= 0:
            ctx.stats.depth_exhausted += 1
            self._record('depth_exhausted')
            return

        result: Optional[FetchResult] = None
        failure: Optional[RetrievalFailure] = None
        try:
            result = await self._fetch(ctx, url)
        except RetrievalFailure as e:
            failure = e

        content = result.content if result is not None else None
        key = ctx.dedup_key.key_for(url, content)

        if not await ctx.visited.check_and_record(key, failure is None):
            ctx.stats.duplicates += 1
            self._record('duplicate')
            self.url_logger.log_url_event(logging.DEBUG, url, f"Skipping already visited key {key!r}",
                                          depth=depth)
            return

        if failure is not None:
            ctx.stats.failed += 1
            self._record('failed')
            self.url_logger.log_url_event(logging.DEBUG, url, f"Fetch failed: {failure.message}",
                                          depth=depth)
            ctx.emit(VisitEvent(url=url, depth=depth, found=False, error=failure.message))
            return

        ctx.stats.found += 1
        self._record('found')
        ctx.emit(VisitEvent(url=url, depth=depth, found=True, content=content))

        for link in result.links:
            self._spawn(ctx, link, depth - 1)

    async def _fetch(self, ctx: CrawlContext, url: str) -> FetchResult:
        start_time = time.time()
        try:
            if self.fetch_timeout is None:
                return await ctx.fetcher.fetch(url)
            try:
                return await asyncio.wait_for(ctx.fetcher.fetch(url), self.fetch_timeout)
            except asyncio.TimeoutError:
                raise RetrievalFailure(f"timeout fetching {url}", url)
        finally:
            ctx.stats.fetches += 1
            if self.metrics:
                self.metrics.observe_fetch(time.time() - start_time)

    def _record(self, outcome: str):
        if self.metrics:
            self.metrics.record_visit(outcome)

    def _log_final_stats(self, ctx: CrawlContext):
        stats = ctx.stats
        self.logger.info("=== CRAWL COMPLETED ===" if not ctx.stopped else "=== CRAWL STOPPED ===")
        self.logger.info(f"Tasks spawned: {stats.tasks_spawned}")
        self.logger.info(f"Fetches: {stats.fetches}")
        self.logger.info(f"Found: {stats.found}")
        self.logger.info(f"Failed: {stats.failed}")
        self.logger.info(f"Duplicates skipped: {stats.duplicates}")
        self.logger.info(f"Depth exhausted: {stats.depth_exhausted}")
        self.logger.info(f"Total time: {stats.elapsed_time:.2f} seconds")
        self.logger.debug(f"Visited-set stats: {ctx.visited.get_stats()}")

    def stop(self):
        """Stop every running traversal; crawl() returns once tasks unwind."""
        if self._contexts:
            self.logger.info("Stopping crawler...")
        for ctx in list(self._contexts):
            ctx.cancel()

    def get_stats(self) -> Dict:
        """Stats of every traversal currently running."""
        return {
            'running_crawls': len(self._contexts),
            'crawls': [ctx.stats.to_dict() for ctx in self._contexts]
        }


async def crawl(seed: str, max_depth: int, fetcher: Fetcher,
                reporter: Optional[Reporter] = None, **kwargs) -> CrawlReport:
    """Run a single traversal with a throwaway scheduler."""
    scheduler = CrawlerScheduler(fetcher, reporter=reporter, **kwargs)
    return await scheduler.crawl(seed, max_depth)


def run_crawl(seed: str, max_depth: int, fetcher: Fetcher,
              reporter: Optional[Reporter] = None, **kwargs) -> CrawlReport:
    """Blocking wrapper around crawl()."""
    return asyncio.run(crawl(seed, max_depth, fetcher, reporter=reporter, **kwargs))
