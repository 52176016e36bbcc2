"""
Crawler core components.
"""

from .fetcher import (
    Fetcher, FetchResult, RetrievalFailure, NotFound,
    FakeFetcher, WebFetcher, SAMPLE_FIXTURE
)
from .parser import ContentParser, ParsedContent
from .tracker import WorkTracker
from .scheduler import CrawlerScheduler, CrawlContext, CrawlReport, CrawlStats, crawl, run_crawl

__all__ = [
    'Fetcher', 'FetchResult', 'RetrievalFailure', 'NotFound',
    'FakeFetcher', 'WebFetcher', 'SAMPLE_FIXTURE',
    'ContentParser', 'ParsedContent',
    'WorkTracker',
    'CrawlerScheduler', 'CrawlContext', 'CrawlReport', 'CrawlStats',
    'crawl', 'run_crawl'
]
