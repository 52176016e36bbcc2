"""
Retrieval capability used by the crawler: given a node id, return its content
and the ids it links to, or raise RetrievalFailure.
"""

import asyncio
import aiohttp
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
from dataclasses import dataclass, field
from aiohttp import ClientSession, ClientTimeout, ClientError
import yaml

from .parser import ContentParser


class RetrievalFailure(Exception):
    """Raised when a node cannot be fetched."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.url = url


class NotFound(RetrievalFailure):
    """Raised when the fetcher does not know the requested node."""

    def __init__(self, url: str):
        super().__init__(f"not found: {url}", url)


@dataclass
class FetchResult:
    """Result of a successful fetch."""
    url: str
    content: str
    links: List[str] = field(default_factory=list)
    fetch_time: float = 0.0


class Fetcher:
    """Abstract base class for retrieval backends."""

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch a single node.

        Raises:
            RetrievalFailure: if the node cannot be retrieved
        """
        raise NotImplementedError

    async def close(self):
        """Release any resources held by the fetcher."""
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


PageSpec = Union[Tuple[str, Sequence[str]], Mapping[str, Any]]


# Canned four-page graph; https://golang.org/cmd/ is linked but absent.
SAMPLE_FIXTURE: Dict[str, Tuple[str, List[str]]] = {
    "https://golang.org/": (
        "The Go Programming Language",
        [
            "https://golang.org/pkg/",
            "https://golang.org/cmd/",
        ],
    ),
    "https://golang.org/pkg/": (
        "Packages",
        [
            "https://golang.org/",
            "https://golang.org/cmd/",
            "https://golang.org/pkg/fmt/",
            "https://golang.org/pkg/os/",
        ],
    ),
    "https://golang.org/pkg/fmt/": (
        "Package fmt",
        [
            "https://golang.org/",
            "https://golang.org/pkg/",
        ],
    ),
    "https://golang.org/pkg/os/": (
        "Package os",
        [
            "https://golang.org/",
            "https://golang.org/pkg/",
        ],
    ),
}


class FakeFetcher(Fetcher):
    """
    Fetcher that returns canned results from an in-memory page table.

    Unknown ids raise NotFound. An optional per-fetch delay lets tests force
    tasks to interleave.
    """

    def __init__(self, pages: Mapping[str, PageSpec], delay: float = 0.0):
        self.pages: Dict[str, Tuple[str, List[str]]] = {
            url: self._normalize_page(url, page) for url, page in pages.items()
        }
        self.delay = delay
        self.calls: List[str] = []
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _normalize_page(url: str, page: PageSpec) -> Tuple[str, List[str]]:
        if isinstance(page, Mapping):
            if 'content' not in page:
                raise ValueError(f"Fixture page {url!r} has no content")
            return str(page['content']), [str(link) for link in page.get('links') or []]
        content, links = page
        return str(content), [str(link) for link in links]

    @classmethod
    def sample(cls, delay: float = 0.0) -> 'FakeFetcher':
        """Create a fetcher over the built-in golang.org fixture."""
        return cls(SAMPLE_FIXTURE, delay=delay)

    @classmethod
    def from_yaml(cls, path: Union[str, Path], delay: float = 0.0) -> 'FakeFetcher':
        """
        Load a page table from a YAML file.

        The file holds a mapping of id -> {content, links}, either at the top
        level or under a ``pages`` key.
        """
        fixture_path = Path(path)
        if not fixture_path.exists():
            raise FileNotFoundError(f"Fixture file not found: {fixture_path}")

        with open(fixture_path, 'r') as file:
            data = yaml.safe_load(file) or {}

        pages = data.get('pages', data) if isinstance(data, dict) else None
        if not isinstance(pages, dict):
            raise ValueError(f"Fixture file must contain a mapping of pages: {fixture_path}")

        return cls(pages, delay=delay)

    async def fetch(self, url: str) -> FetchResult:
        start_time = time.time()
        self.calls.append(url)

        if self.delay:
            await asyncio.sleep(self.delay)

        page = self.pages.get(url)
        if page is None:
            self.logger.debug(f"Fixture has no page for {url}")
            raise NotFound(url)

        content, links = page
        return FetchResult(
            url=url,
            content=content,
            links=list(links),
            fetch_time=time.time() - start_time
        )


class WebFetcher(Fetcher):
    """
    Fetches pages over HTTP and extracts their title and outbound links.
    """

    def __init__(self, user_agent: str = "depthcrawl/1.0", request_timeout: float = 30,
                 max_size: int = 10 * 1024 * 1024):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.max_size = max_size

        self.logger = logging.getLogger(__name__)
        self.parser = ContentParser()

        self.session: Optional[ClientSession] = None

        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'total_bytes_downloaded': 0
        }

    async def __aenter__(self):
        await self.start()
        return self

    async def start(self):
        """Initialize the HTTP session."""
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=ClientTimeout(total=self.request_timeout),
                headers={'User-Agent': self.user_agent}
            )
            self.logger.info("WebFetcher session started")

    async def close(self):
        """Close the HTTP session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.info("WebFetcher session closed")

    async def fetch(self, url: str) -> FetchResult:
        if self.session is None:
            await self.start()

        start_time = time.time()
        self.stats['total_requests'] += 1

        try:
            async with self.session.get(url) as response:
                if response.status >= 400:
                    if response.status == 404:
                        raise NotFound(url)
                    raise RetrievalFailure(f"HTTP {response.status} fetching {url}", url)

                content_type = response.headers.get('content-type', '').lower()
                if not self._is_text_content(content_type):
                    raise RetrievalFailure(f"non-text content at {url}: {content_type}", url)

                body = await self._read_body(url, response)
                html = self._decode(body, response.charset)

            parsed = self.parser.parse(url, html)

        except RetrievalFailure:
            self.stats['failed_requests'] += 1
            raise
        except asyncio.TimeoutError:
            self.stats['failed_requests'] += 1
            self.logger.warning(f"Timeout fetching {url}")
            raise RetrievalFailure(f"timeout fetching {url}", url)
        except ClientError as e:
            self.stats['failed_requests'] += 1
            self.logger.warning(f"Client error fetching {url}: {e}")
            raise RetrievalFailure(f"client error fetching {url}: {e}", url) from e
        except Exception as e:
            self.stats['failed_requests'] += 1
            self.logger.error(f"Unexpected error fetching {url}: {e}")
            raise RetrievalFailure(f"unexpected error fetching {url}: {e}", url) from e

        self.stats['successful_requests'] += 1
        self.stats['total_bytes_downloaded'] += len(body)

        fetch_time = time.time() - start_time
        self.logger.debug(f"Fetched {url}: {len(body)} bytes, {len(parsed.links)} links")

        return FetchResult(
            url=url,
            content=parsed.title or parsed.text,
            links=parsed.links,
            fetch_time=fetch_time
        )

    async def _read_body(self, url: str, response) -> bytes:
        """Read the response body in chunks, stopping once max_size is exceeded."""
        content_length = response.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > self.max_size:
            raise RetrievalFailure(f"content too large at {url}: {content_length} bytes", url)

        body = b''
        async for chunk in response.content.iter_chunked(8192):
            body += chunk
            if len(body) > self.max_size:
                raise RetrievalFailure(
                    f"content too large at {url}: over {self.max_size} bytes", url)
        return body

    def _decode(self, body: bytes, charset: Optional[str]) -> str:
        encoding = charset or 'utf-8'
        try:
            return body.decode(encoding)
        except (LookupError, UnicodeDecodeError):
            self.logger.debug(f"Could not decode body as {encoding}, trying fallbacks")

        for fallback_encoding in ('utf-8', 'cp1252'):
            try:
                return body.decode(fallback_encoding)
            except UnicodeDecodeError:
                continue

        return body.decode('utf-8', errors='ignore')

    def _is_text_content(self, content_type: str) -> bool:
        """Check if content type is HTML or XML text."""
        text_types = [
            'text/html',
            'text/plain',
            'application/xhtml+xml',
            'text/xml',
            'application/xml'
        ]

        return any(text_type in content_type for text_type in text_types)

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        return self.stats.copy()
