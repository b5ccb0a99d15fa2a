"""
Pagination planning for listing search pages.

The next page is found without knowing the page count up front:

1. an explicit "next" link on the page, resolved against the current URL
2. otherwise the page counter in the URL path is incremented
   (``/NY/`` -> ``/NY/2_p/`` -> ``/NY/3_p/``)
"""

import logging
import re
from typing import Optional
from urllib.parse import urljoin, urlparse, urlsplit, urlunparse, urlunsplit, parse_qs, urlencode

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

# Next-link selectors, tried in order
NEXT_LINK_SELECTORS = (
    'a[rel~="next"]',
    'link[rel~="next"]',
    'a[data-testid="pagination-next"]',
    'a[aria-label*="Next" i]',
)

PAGE_SEGMENT_RE = re.compile(r'/\d+_p/?$')

TRACKING_PARAMS = {
    'utm_source', 'utm_medium', 'utm_campaign', 'utm_term', 'utm_content',
    'fbclid', 'gclid', 'msclkid', 'mc_cid', 'mc_eid',
    '_ga', '_gl', 'ref', 'source'
}


def normalize_url(base_url: str, href: str) -> str:
    """
    Convert a relative URL to an absolute URL.

    Args:
        base_url: The base URL to resolve against
        href: The href attribute (may be relative or absolute)

    Returns:
        Absolute URL string
    """
    return urljoin(base_url, href)


def canonicalize(url: str, strip_tracking_params: bool = True) -> str:
    """
    Canonicalize a page URL for the seen-page set by:
    - Removing fragments
    - Optionally removing common tracking parameters
    - Removing trailing slashes (except for root path)

    Args:
        url: URL to canonicalize
        strip_tracking_params: Whether to remove tracking parameters

    Returns:
        Canonicalized URL string
    """
    parsed = urlparse(url)

    path = parsed.path.rstrip('/') if parsed.path != '/' else parsed.path

    query = parsed.query
    if strip_tracking_params and query:
        params = parse_qs(query, keep_blank_values=True)
        filtered_params = {k: v for k, v in params.items() if k not in TRACKING_PARAMS}
        query = urlencode(filtered_params, doseq=True) if filtered_params else ''

    return urlunparse((
        parsed.scheme,
        parsed.netloc.lower(),
        path,
        parsed.params,
        query,
        ''  # No fragment
    ))


def find_next_link(soup: BeautifulSoup, current_url: str) -> Optional[str]:
    """
    Resolve the page's explicit next-page link.

    Args:
        soup: Parsed page
        current_url: URL of the page, used to resolve relative hrefs

    Returns:
        Absolute URL, or None if the page has no usable next link

    Raises:
        ValueError: If the href cannot be resolved
    """
    for selector in NEXT_LINK_SELECTORS:
        link = soup.select_one(selector)
        if link is None:
            continue

        href = link.get('href', '').strip()
        if not href or href.startswith('#') or href.startswith('javascript:'):
            continue

        absolute_url = normalize_url(current_url, href)
        # urljoin is lenient; force a full parse so malformed hosts surface here
        urlsplit(absolute_url).port
        return absolute_url

    return None


def increment_page_url(current_url: str, page_no: int) -> str:
    """
    Build the URL of page ``page_no + 1`` from the current URL.

    Replaces a trailing ``/<n>_p/`` segment or appends one.

    Args:
        current_url: URL of the current page
        page_no: 1-based index of the current page

    Returns:
        Absolute URL of the next page
    """
    parts = urlsplit(current_url)

    path = PAGE_SEGMENT_RE.sub('/', parts.path)
    if not path.endswith('/'):
        path += '/'
    path += f"{page_no + 1}_p/"

    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, ''))


def next_page_url(soup: BeautifulSoup, current_url: str, page_no: int) -> Optional[str]:
    """
    Plan the next page to visit.

    Args:
        soup: Parsed current page
        current_url: URL of the current page
        page_no: 1-based index of the current page

    Returns:
        Absolute URL of the next page, or None if it cannot be determined
    """
    try:
        next_link = find_next_link(soup, current_url)
        if next_link:
            return next_link
        return increment_page_url(current_url, page_no)
    except ValueError as e:
        logger.warning(f"Error building next page URL: {e}")
        return None
