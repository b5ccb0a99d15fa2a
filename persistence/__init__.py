"""
State and output for listing crawl runs.

CrawlState tracks deduplication and quotas for one run in memory;
the dataset store writes listings and page logs to disk.
"""

from .crawl_state import CrawlState
from .dataset import DatasetStore, JSONLDatasetStore, read_listings

__all__ = ['CrawlState', 'DatasetStore', 'JSONLDatasetStore', 'read_listings']
