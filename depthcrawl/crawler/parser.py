"""
HTML parser for extracting a page's title, text and outbound links.
"""

import re
import logging
from typing import List, Optional
from urllib.parse import urljoin, urlparse, urlunparse
from dataclasses import dataclass, field
from bs4 import BeautifulSoup, Comment


@dataclass
class ParsedContent:
    """Container for parsed page content."""
    url: str
    title: Optional[str] = None
    text: str = ""
    links: List[str] = field(default_factory=list)


class ContentParser:
    """
    Parses HTML into the pieces the crawler needs: a title used as the page
    content, the visible text as a fallback, and links in document order.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.whitespace_pattern = re.compile(r'\s+')

    def parse(self, url: str, html_content: str) -> ParsedContent:
        """
        Parse HTML content.

        Args:
            url: The URL of the page, used to resolve relative links
            html_content: Raw HTML content

        Returns:
            ParsedContent with title, text and links
        """
        soup = BeautifulSoup(html_content, 'lxml')

        for script in soup(["script", "style", "noscript"]):
            script.decompose()

        for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()

        parsed_content = ParsedContent(url=url)

        title_tag = soup.find('title')
        if title_tag:
            parsed_content.title = self._clean_text(title_tag.get_text()) or None

        body = soup.find('body') or soup
        parsed_content.text = self._clean_text(body.get_text(separator=' ', strip=True))
        parsed_content.links = self._extract_links(soup, url)

        self.logger.debug(f"Parsed {url}: title={parsed_content.title!r}, "
                          f"{len(parsed_content.links)} links")

        return parsed_content

    def _extract_links(self, soup: BeautifulSoup, base_url: str) -> List[str]:
        """Extract absolute http(s) links, first occurrence wins."""
        links = {}

        for link in soup.find_all('a', href=True):
            href = link['href'].strip()
            if not href or href.startswith('#'):
                continue

            normalized_url = self._normalize_url(urljoin(base_url, href))
            if self._is_valid_url(normalized_url):
                links.setdefault(normalized_url, None)

        return list(links)

    def _normalize_url(self, url: str) -> str:
        """Lowercase the host and drop the fragment."""
        parsed = urlparse(url)
        return urlunparse((
            parsed.scheme,
            parsed.netloc.lower(),
            parsed.path,
            parsed.params,
            parsed.query,
            ''
        ))

    def _is_valid_url(self, url: str) -> bool:
        parsed = urlparse(url)
        return parsed.scheme in ('http', 'https') and bool(parsed.netloc)

    def _clean_text(self, text: str) -> str:
        if not text:
            return ""
        return self.whitespace_pattern.sub(' ', text.strip())
