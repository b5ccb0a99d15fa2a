"""
Exceptions raised by the fetch substrate and the page handler.

Parse problems inside a page are not exceptions: extraction strategies
report "no data" as an empty result instead.
"""

from typing import Optional


class CrawlError(Exception):
    """Base class for crawl-level errors."""


class PageFetchFailure(CrawlError):
    """Raised when a page could not be downloaded (network or HTTP error)."""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None):
        super().__init__(f"{reason} ({url})")
        self.url = url
        self.reason = reason
        self.status_code = status_code


class BlockDetected(CrawlError):
    """Raised when a response carries an anti-automation signature.

    The request is retried with a fresh session and counts against the
    URL's retry budget.
    """

    def __init__(self, url: str, signature: str):
        super().__init__(f"Blocked by anti-bot protection: {signature} ({url})")
        self.url = url
        self.signature = signature
