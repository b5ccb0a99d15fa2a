"""
Per-run crawl state: listing deduplication and quota tracking.

The state lives for one crawl run and is never written to disk. Page
handlers run concurrently, so every check-and-update goes through a single
asyncio lock.
"""

import asyncio
from typing import Iterable, List, Set, Tuple

from extractors.normalizer import Listing, identity_key
from extractors.pagination import canonicalize


class CrawlState:
    """
    Dedup and quota tracker for a single crawl run.

    Tracks identity keys of emitted listings, page URLs already queued,
    the number of listings saved and the number of pages visited.
    """

    def __init__(self, results_wanted: int, max_pages: int):
        """
        Initialize the crawl state.

        Args:
            results_wanted: Maximum number of listings to emit
            max_pages: Maximum number of pages to visit
        """
        self.results_wanted = results_wanted
        self.max_pages = max_pages

        self.saved_count = 0
        self.pages_visited = 0
        self.seen_keys: Set[str] = set()
        self.seen_pages: Set[str] = set()

        self._lock = asyncio.Lock()

    @property
    def quota_reached(self) -> bool:
        return self.saved_count >= self.results_wanted

    def _admit(self, listing: Listing) -> bool:
        if self.quota_reached:
            return False

        key = identity_key(listing)
        if key is None or key in self.seen_keys:
            return False

        self.seen_keys.add(key)
        self.saved_count += 1
        return True

    async def admit(self, listing: Listing) -> bool:
        """
        Admit a single listing if it is new and the quota allows it.

        Listings without an identity key are rejected and not recorded.

        Returns:
            True if the listing should be emitted
        """
        async with self._lock:
            return self._admit(listing)

    async def admit_page(self, listings: Iterable[Listing]) -> Tuple[List[Listing], int]:
        """
        Admit a page's listings in page order.

        Admission stops as soon as the quota is reached, so earlier listings
        on the page win and nothing past the quota is kept.

        Args:
            listings: Normalized listings in page order

        Returns:
            Tuple of (admitted listings, number rejected as duplicates)
        """
        admitted = []
        duplicates = 0
        async with self._lock:
            for listing in listings:
                if self.quota_reached:
                    break
                if self._admit(listing):
                    admitted.append(listing)
                elif identity_key(listing) is not None:
                    duplicates += 1
        return admitted, duplicates

    async def record_page_visit(self) -> int:
        """Count a handled page. Returns the new total."""
        async with self._lock:
            self.pages_visited += 1
            return self.pages_visited

    async def should_continue(self, page_no: int) -> bool:
        """
        Check whether a page after ``page_no`` should be enqueued.

        Returns:
            True while both the listing quota and the page limit allow more
        """
        async with self._lock:
            return self.saved_count < self.results_wanted and page_no < self.max_pages

    async def claim_page(self, url: str) -> bool:
        """
        Mark a page URL as queued.

        Returns:
            True if the URL was not queued before during this run
        """
        canonical_url = canonicalize(url)
        async with self._lock:
            if canonical_url in self.seen_pages:
                return False
            self.seen_pages.add(canonical_url)
            return True

    def has_claimed_page(self, url: str) -> bool:
        """Check if a page URL has been queued."""
        return canonicalize(url) in self.seen_pages

    def summary(self) -> dict:
        """Counters for the end-of-run report."""
        return {
            'saved_count': self.saved_count,
            'results_wanted': self.results_wanted,
            'pages_visited': self.pages_visited,
            'max_pages': self.max_pages,
            'unique_keys': len(self.seen_keys),
        }
