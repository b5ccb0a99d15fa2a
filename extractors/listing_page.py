"""
Pure extraction functions for listing search pages.

These functions are unit-testable and don't perform I/O. Given a parsed
page they locate the listing data using an ordered set of strategies:

1. ``next_data`` - the embedded Next.js application state (__NEXT_DATA__)
2. ``json_ld``   - schema.org linked-data blocks
3. ``markup``    - listing cards in the rendered HTML

The first strategy that yields any listings wins; results are never merged.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from bs4 import BeautifulSoup

import crawler_config
from .normalizer import Listing, dig, normalize_listing, to_text

logger = logging.getLogger(__name__)

RawListing = Dict[str, Any]

# Locations of the listings array inside __NEXT_DATA__; the schema differs
# between deployments so each path is probed in order
NEXT_DATA_LISTING_PATHS = (
    ('props', 'searchData', 'homes'),
    ('props', 'pageProps', 'searchData', 'homes'),
    ('props', 'pageProps', 'searchData', 'listings'),
    ('props', 'pageProps', 'listings'),
    ('props', 'searchData', 'listings'),
)

# schema.org types accepted as listings
LISTING_LD_TYPES = {
    'RealEstateListing',
    'Product',
    'SingleFamilyResidence',
    'House',
    'Apartment',
    'Residence',
}

# Card selectors, most specific first; layouts are assumed not to overlap
CARD_SELECTORS = (
    "li[data-testid^='srp-home-card']",
    "div[data-testid='home-card-sale']",
    "div[data-testid='home-card-rent']",
    "div[data-testid*='property-card']",
    "article[data-testid*='home-card']",
    "li.property-card",
    "div.property-card",
)

PRICE_RE = re.compile(r'\$\s?\d[\d,]*(?:\.\d+)?\s*[KkMm]?\+?(?:\s*/\s*mo)?')
BEDS_RE = re.compile(r'(\d+(?:\.\d+)?)\s*(?:bd|bds|beds?|bedrooms?)\b', re.IGNORECASE)
BATHS_RE = re.compile(r'(\d+(?:\.\d+)?)\s*(?:ba|baths?|bathrooms?)\b', re.IGNORECASE)
SQFT_RE = re.compile(r'(\d[\d,]*)\s*(?:sq\.?\s?ft\.?|sqft)(?!\s*lot)', re.IGNORECASE)
LOT_RE = re.compile(
    r'(\d[\d,.]*\s*(?:acres?|ac)\b(?:\s*lot)?|\d[\d,]*\s*(?:sq\.?\s?ft\.?|sqft)\s*lot)',
    re.IGNORECASE,
)
STREET_RE = re.compile(
    r'^\d+[A-Za-z]?\s+[\w.\' -]+?\b(?:St|Street|Ave|Avenue|Rd|Road|Blvd|Boulevard|Dr|Drive|'
    r'Ln|Lane|Way|Ct|Court|Pl|Place|Ter|Terrace|Pkwy|Parkway|Cir|Circle|Hwy|Highway|Sq|Loop)\b',
    re.IGNORECASE,
)
ZIP_LINE_RE = re.compile(r',\s*[A-Z]{2}\s+\d{5}(?:-\d{4})?\b')
LISTING_PATH_RE = re.compile(r'^(?:https?://[^/]+)?/(?:home|p|property|rental|builder-community)/')


@dataclass(frozen=True)
class ExtractionResult:
    """Outcome of running the extraction strategies over one page."""
    strategy: Optional[str] = None
    listings: List[RawListing] = field(default_factory=list)

    @property
    def matched(self) -> bool:
        return bool(self.listings)


def extract_from_next_data(soup: BeautifulSoup) -> List[RawListing]:
    """
    Read listings from the embedded __NEXT_DATA__ application state.

    Args:
        soup: Parsed page

    Returns:
        The raw ``homes`` objects, or an empty list if none were found
    """
    script = soup.select_one('script#__NEXT_DATA__')
    if script is None:
        logger.debug("No __NEXT_DATA__ found")
        return []

    try:
        data = json.loads(script.get_text())
    except ValueError as e:
        logger.warning(f"__NEXT_DATA__ parsing error: {e}")
        return []

    for path in NEXT_DATA_LISTING_PATHS:
        homes = dig(data, *path)
        if isinstance(homes, list):
            found = [home for home in homes if isinstance(home, dict)]
            if found:
                logger.debug(f"Found {len(found)} homes at {'.'.join(path)}")
                return found

    props = data.get('props') if isinstance(data, dict) else None
    keys = list(props.keys()) if isinstance(props, dict) else []
    logger.debug(f"No listings array in __NEXT_DATA__ (props keys: {keys})")
    return []


def _ld_items(data: Any) -> List[Dict[str, Any]]:
    """Flatten arrays, @graph containers and ItemList entries."""
    items = []
    stack = data if isinstance(data, list) else [data]
    for item in stack:
        if isinstance(item, list):
            items.extend(_ld_items(item))
            continue
        if not isinstance(item, dict):
            continue
        if '@graph' in item:
            items.extend(_ld_items(item['@graph']))
        if item.get('@type') == 'ItemList':
            elements = item.get('itemListElement')
            for element in elements if isinstance(elements, list) else []:
                if isinstance(element, dict):
                    items.extend(_ld_items(element.get('item', element)))
            continue
        items.append(item)
    return items


def _is_listing_type(item: Dict[str, Any]) -> bool:
    item_type = item.get('@type')
    types = item_type if isinstance(item_type, list) else [item_type]
    return any(isinstance(t, str) and t in LISTING_LD_TYPES for t in types)


def _ld_image(image: Any) -> Any:
    if isinstance(image, list):
        image = image[0] if image else None
    if isinstance(image, dict):
        return image.get('url') or image.get('contentUrl')
    return image


def _ld_address(address: Any) -> Optional[str]:
    # schema.org allows a plain-text address as well as a PostalAddress
    if isinstance(address, str):
        return to_text(address.split(',')[0])
    return to_text(dig(address, 'streetAddress'))


def _ld_to_raw(item: Dict[str, Any]) -> RawListing:
    address = item.get('address')
    offers = item.get('offers')
    if isinstance(offers, list):
        offers = offers[0] if offers else None
    about = item.get('about') if isinstance(item.get('about'), dict) else {}

    return {
        'price': dig(offers, 'price') or item.get('price'),
        'beds': item.get('numberOfBedrooms') or about.get('numberOfBedrooms'),
        'baths': item.get('numberOfBathroomsTotal') or about.get('numberOfBathroomsTotal'),
        'address': _ld_address(address) or item.get('name'),
        'full_address': address if isinstance(address, str) else None,
        'city': dig(address, 'addressLocality'),
        'state': dig(address, 'addressRegion'),
        'zip_code': dig(address, 'postalCode'),
        'url': item.get('url'),
        'image_url': _ld_image(item.get('image')),
    }


def extract_from_json_ld(soup: BeautifulSoup) -> List[RawListing]:
    """
    Read listings from schema.org JSON-LD blocks.

    Each block is parsed on its own; a malformed block is skipped without
    affecting the others.

    Args:
        soup: Parsed page

    Returns:
        Flat raw listing dicts, or an empty list
    """
    listings = []
    for script in soup.select('script[type="application/ld+json"]'):
        try:
            data = json.loads(script.get_text())
        except ValueError:
            logger.debug("Skipping malformed JSON-LD block")
            continue

        for item in _ld_items(data):
            if _is_listing_type(item):
                listings.append(_ld_to_raw(item))

    return listings


def _first_match(pattern: re.Pattern, text: str, group: int = 0) -> Optional[str]:
    match = pattern.search(text)
    return match.group(group).strip() if match else None


def _card_address(card) -> Optional[str]:
    address = card.select_one('[data-testid="property-address"], address')
    if address is not None:
        return address.get_text(' ', strip=True) or None

    for fragment in card.stripped_strings:
        if STREET_RE.search(fragment) or ZIP_LINE_RE.search(fragment):
            return fragment
    return None


def _card_url(card) -> Optional[str]:
    for link in card.select('a[href]'):
        href = link.get('href', '').strip()
        if LISTING_PATH_RE.match(href):
            return href
    return None


def _card_to_raw(card) -> Optional[RawListing]:
    text = card.get_text(' ', strip=True)
    raw = {
        'price': _first_match(PRICE_RE, text),
        'beds': _first_match(BEDS_RE, text, 1),
        'baths': _first_match(BATHS_RE, text, 1),
        'sqft': _first_match(SQFT_RE, text, 1),
        'lot_size': _first_match(LOT_RE, text, 1),
        'address': _card_address(card),
        'url': _card_url(card),
    }
    image = card.select_one('img[src]')
    if image is not None:
        raw['image_url'] = image.get('src')

    if not (raw['price'] or raw['address'] or raw['url']):
        return None
    return raw


def extract_from_markup(soup: BeautifulSoup) -> List[RawListing]:
    """
    Read listings from rendered listing cards.

    Selectors are tried in order and the first one with matches is used.

    Args:
        soup: Parsed page

    Returns:
        Flat raw listing dicts for cards with a price, address or url
    """
    for selector in CARD_SELECTORS:
        cards = soup.select(selector)
        if not cards:
            continue
        logger.debug(f"Card selector '{selector}' matched {len(cards)} elements")
        return [raw for raw in (_card_to_raw(card) for card in cards) if raw]
    return []


EXTRACTION_STRATEGIES: Tuple[Tuple[str, Callable[[BeautifulSoup], List[RawListing]]], ...] = (
    ('next_data', extract_from_next_data),
    ('json_ld', extract_from_json_ld),
    ('markup', extract_from_markup),
)


def extract_raw_listings(soup: BeautifulSoup) -> ExtractionResult:
    """
    Run the extraction strategies in priority order.

    Args:
        soup: Parsed page

    Returns:
        ExtractionResult of the first strategy that found listings, or an
        empty result when none did
    """
    for name, strategy in EXTRACTION_STRATEGIES:
        listings = strategy(soup)
        if listings:
            return ExtractionResult(strategy=name, listings=listings)
    return ExtractionResult()


def extract_listings(soup: BeautifulSoup) -> Tuple[Optional[str], List[Listing]]:
    """
    Extract and normalize the listings on a page, dropping noise records.

    Args:
        soup: Parsed page

    Returns:
        Tuple of (strategy name or None, canonical listings in page order)
    """
    result = extract_raw_listings(soup)
    listings = [normalize_listing(raw) for raw in result.listings]
    kept = [listing for listing in listings if not listing.is_noise()]

    dropped = len(listings) - len(kept)
    if dropped:
        logger.debug(f"Dropped {dropped} records without price, address or url")

    return result.strategy, kept


def find_block_signature(soup: BeautifulSoup) -> Optional[str]:
    """
    Check a page for anti-automation markers.

    Args:
        soup: Parsed page

    Returns:
        The matched marker, or None if the page looks normal
    """
    title = soup.title.get_text() if soup.title else ''
    for marker in crawler_config.BLOCK_TITLE_MARKERS:
        if marker in title:
            return f"title: {title.strip()}"

    for element_id in crawler_config.BLOCK_ELEMENT_IDS:
        if soup.find(id=element_id) is not None:
            return f"element: #{element_id}"

    return None


def parse_html(html: str) -> BeautifulSoup:
    """Parse page HTML with lxml."""
    return BeautifulSoup(html or '', 'lxml')
