"""
Extractors for listing search pages.

This package contains pure, unit-testable functions that find listings
in a parsed page, normalize them and plan the next page.
"""

from .listing_page import (
    ExtractionResult,
    extract_raw_listings,
    extract_listings,
    find_block_signature,
    parse_html
)
from .normalizer import Listing, normalize_listing, identity_key
from .pagination import next_page_url, normalize_url, canonicalize

__all__ = [
    'ExtractionResult',
    'extract_raw_listings',
    'extract_listings',
    'find_block_signature',
    'parse_html',
    'Listing',
    'normalize_listing',
    'identity_key',
    'next_page_url',
    'normalize_url',
    'canonicalize'
]
