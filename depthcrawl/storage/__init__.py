"""
Storage layer for the crawler.
"""

from .visited import VisitedSet, DedupKey

__all__ = ['VisitedSet', 'DedupKey']
