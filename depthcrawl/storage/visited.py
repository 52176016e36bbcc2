"""
Visited-set shared by every task of one traversal.
"""

import asyncio
import logging
from enum import Enum
from typing import Dict, List, Optional


class DedupKey(Enum):
    """What a visit is deduplicated on."""
    CONTENT = "content"
    URL = "url"

    def key_for(self, url: str, content: Optional[str]) -> str:
        """
        Derive the dedup key for a visit.

        With CONTENT, a failed fetch has no content and maps to the empty
        string, so only the first failure of a traversal is recorded.
        """
        if self is DedupKey.URL:
            return url
        return content or ""


class VisitedSet:
    """
    Mapping of dedup key -> outcome (True found, False failed).

    All mutation goes through check_and_record(), which holds the lock for
    the check and the write only.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._visited: Dict[str, bool] = {}
        self._lock = asyncio.Lock()

        self.stats = {
            'total_checks': 0,
            'duplicates': 0
        }

    async def check_and_record(self, key: str, found: bool) -> bool:
        """
        Record key with its outcome unless it is already present.

        Returns:
            True if the key was new and has been recorded, False if it was
            already present
        """
        async with self._lock:
            self.stats['total_checks'] += 1
            if key in self._visited:
                self.stats['duplicates'] += 1
                return False
            self._visited[key] = found

        self.logger.debug(f"Recorded {key!r} as {'found' if found else 'failed'}")
        return True

    def __contains__(self, key: str) -> bool:
        return key in self._visited

    def __len__(self) -> int:
        return len(self._visited)

    def snapshot(self) -> Dict[str, bool]:
        """Copy of the current mapping."""
        return dict(self._visited)

    def found_keys(self) -> List[str]:
        return [key for key, found in self._visited.items() if found]

    def failed_keys(self) -> List[str]:
        return [key for key, found in self._visited.items() if not found]

    def get_stats(self) -> Dict[str, int]:
        """Get visited-set statistics."""
        return {
            **self.stats,
            'total_found': len(self.found_keys()),
            'total_failed': len(self.failed_keys())
        }
