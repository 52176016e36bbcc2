"""
Depth-limited Concurrent Crawler

Visits a link graph from a seed node up to a fixed depth, one asyncio task
per visit, reporting each piece of content at most once.
"""

__version__ = "1.0.0"
__author__ = "Alex Nguyen"
__description__ = "A bounded-depth concurrent graph crawler with shared deduplication"
