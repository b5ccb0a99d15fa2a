"""
Record normalization for listing pages.

Raw listings arrive in whatever shape the matching extraction strategy
produced: the nested ``homes[]`` objects of the embedded Next.js state, or
flat dicts built from linked data and card markup. Each canonical field is
read through an ordered chain of accessors; the first non-empty value wins.
"""

import math
import re
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import urljoin

from pydantic import BaseModel

import crawler_config


class Listing(BaseModel):
    """Canonical listing record. Every field is independently nullable."""

    price: Optional[str] = None
    beds: Optional[str] = None
    baths: Optional[str] = None
    sqft: Optional[str] = None
    lot_size: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    property_type: Optional[str] = None
    listing_by: Optional[str] = None
    image_url: Optional[str] = None
    url: Optional[str] = None

    def is_noise(self) -> bool:
        """A record without price, address and url carries nothing useful."""
        return self.price is None and self.address is None and self.url is None


LISTING_FIELDS = tuple(Listing.model_fields)

_SCHEME_RE = re.compile(r'^[a-z][a-z0-9+.\-]*://', re.IGNORECASE)
_WHITESPACE_RE = re.compile(r'\s+')
_FULL_LOCATION_RE = re.compile(
    r',\s*(?P<city>[^,]+?),\s*(?P<state>[A-Z]{2})\s*(?P<zip>\d{5}(?:-\d{4})?)?\s*$'
)

Accessor = Callable[[Dict[str, Any]], Any]


def dig(obj: Any, *path) -> Any:
    """
    Walk nested dicts/lists without raising.

    Args:
        obj: Object to walk
        *path: Keys (str) or list indexes (int)

    Returns:
        The value at the path, or None if any step is missing
    """
    for key in path:
        if isinstance(key, int):
            if not isinstance(obj, list) or not -len(obj) <= key < len(obj):
                return None
            obj = obj[key]
        elif isinstance(obj, dict):
            obj = obj.get(key)
        else:
            return None
        if obj is None:
            return None
    return obj


def to_text(value: Any) -> Optional[str]:
    """Coerce a scalar to a stripped string; containers and blanks become None."""
    if value is None or isinstance(value, (dict, list, tuple, set, bool)):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = _WHITESPACE_RE.sub(' ', str(value)).strip()
    return text or None


def format_price(value: Any) -> Optional[str]:
    """Format a numeric price with US grouping (1250000 -> "$1,250,000")."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        cleaned = value.replace(',', '').replace('$', '').strip()
        try:
            value = float(cleaned)
        except ValueError:
            return to_text(value)
    if not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    if not math.isfinite(number):
        return None
    if number.is_integer():
        return f"${int(value):,}"
    return f"${value:,.2f}"


def absolute_url(value: Any, base_url: str = crawler_config.BASE_URL) -> Optional[str]:
    """Join a relative path against the site origin; absolute URLs pass through."""
    text = to_text(value)
    if text is None:
        return None
    if _SCHEME_RE.match(text):
        return text
    return urljoin(base_url + '/', text)


def strip_label(value: Any, label: str) -> Optional[str]:
    """Drop a trailing unit label ("3 Beds" -> "3")."""
    text = to_text(value)
    if text is None:
        return None
    return to_text(re.sub(rf'\s*{label}\b\.?', '', text, flags=re.IGNORECASE))


def digits_only(value: Any) -> Optional[str]:
    """Strip units and thousands separators ("1,850 sqft" -> "1850")."""
    text = to_text(value)
    if text is None:
        return None
    text = re.sub(r'sq\.?\s*ft\.?|sqft', '', text, flags=re.IGNORECASE)
    text = re.sub(r'[^\d.]', '', text).strip('.')
    return text or None


def _flat_address_part(*keys) -> Accessor:
    def accessor(raw):
        address = raw.get('address')
        if not isinstance(address, dict):
            return None
        for key in keys:
            if address.get(key):
                return address[key]
        return None
    return accessor


def _full_location_part(group: str) -> Accessor:
    def accessor(raw):
        full = to_text(dig(raw, 'location', 'fullLocation') or raw.get('full_address'))
        if not full:
            return None
        match = _FULL_LOCATION_RE.search(full)
        return match.group(group) if match else None
    return accessor


def _listing_agent(raw):
    agent = dig(raw, 'attribution', 'listingAgent')
    if isinstance(agent, dict):
        return agent.get('name')
    return agent


FIELD_CHAINS: Dict[str, Tuple[Accessor, ...]] = {
    'price': (
        lambda raw: to_text(dig(raw, 'price', 'formattedPrice')),
        lambda raw: format_price(dig(raw, 'price', 'price')),
        lambda raw: format_price(raw.get('price')) if not isinstance(raw.get('price'), dict) else None,
    ),
    'beds': (
        lambda raw: strip_label(dig(raw, 'bedrooms', 'formattedValue'), 'beds?'),
        lambda raw: to_text(dig(raw, 'bedrooms', 'value')),
        lambda raw: strip_label(raw.get('beds'), 'beds?'),
    ),
    'baths': (
        lambda raw: strip_label(dig(raw, 'bathrooms', 'formattedValue'), 'baths?'),
        lambda raw: to_text(dig(raw, 'bathrooms', 'value')),
        lambda raw: strip_label(raw.get('baths'), 'baths?'),
    ),
    'sqft': (
        lambda raw: digits_only(dig(raw, 'floorSpace', 'formattedDimension')),
        lambda raw: digits_only(dig(raw, 'floorSpace', 'value')),
        lambda raw: digits_only(raw.get('sqft')),
    ),
    'lot_size': (
        lambda raw: to_text(dig(raw, 'lotSize', 'formattedDimension')),
        lambda raw: to_text(raw.get('lot_size')),
    ),
    'address': (
        lambda raw: to_text(dig(raw, 'location', 'streetAddress')),
        lambda raw: to_text(dig(raw, 'location', 'formattedStreetLine')),
        lambda raw: to_text(raw.get('address')),
        lambda raw: to_text(_flat_address_part('streetAddress', 'name')(raw)),
    ),
    'city': (
        lambda raw: to_text(dig(raw, 'location', 'city')),
        lambda raw: to_text(raw.get('city')),
        lambda raw: to_text(_flat_address_part('addressLocality', 'city')(raw)),
        lambda raw: to_text(_full_location_part('city')(raw)),
    ),
    'state': (
        lambda raw: to_text(dig(raw, 'location', 'stateCode')),
        lambda raw: to_text(raw.get('state')),
        lambda raw: to_text(_flat_address_part('addressRegion', 'state')(raw)),
        lambda raw: to_text(_full_location_part('state')(raw)),
    ),
    'zip_code': (
        lambda raw: to_text(dig(raw, 'location', 'zipCode')),
        lambda raw: to_text(raw.get('zip_code')),
        lambda raw: to_text(_flat_address_part('postalCode', 'zip_code')(raw)),
        lambda raw: to_text(_full_location_part('zip')(raw)),
    ),
    'property_type': (
        lambda raw: to_text(dig(raw, 'propertyType', 'value')),
        lambda raw: to_text(dig(raw, 'propertyType', 'formattedValue')),
        lambda raw: to_text(raw.get('property_type')),
    ),
    'listing_by': (
        lambda raw: to_text(dig(raw, 'activeListing', 'provider', 'broker', 'name')),
        lambda raw: to_text(_listing_agent(raw)),
        lambda raw: to_text(raw.get('listing_by')),
    ),
    'image_url': (
        lambda raw: absolute_url(dig(raw, 'media', 'heroImage', 'url', 'medium')),
        lambda raw: absolute_url(dig(raw, 'media', 'photos', 0, 'url', 'medium')),
        lambda raw: absolute_url(raw.get('image_url')),
    ),
    'url': (
        lambda raw: absolute_url(raw.get('url')),
    ),
}


def first_present(raw: Dict[str, Any], chain: Tuple[Accessor, ...]) -> Optional[str]:
    """Return the first accessor result that is a non-empty string."""
    for accessor in chain:
        value = accessor(raw)
        if isinstance(value, str) and value:
            return value
    return None


def normalize_listing(raw: Dict[str, Any]) -> Listing:
    """
    Map a raw, strategy-shaped listing onto the canonical Listing.

    Args:
        raw: Raw listing dict from any extraction strategy

    Returns:
        Listing with all 13 fields set to a string or None
    """
    if not isinstance(raw, dict):
        return Listing()
    return Listing(**{name: first_present(raw, FIELD_CHAINS[name]) for name in LISTING_FIELDS})


def identity_key(listing: Listing) -> Optional[str]:
    """
    Dedup key for a listing: its url, else its normalized full address.

    Returns:
        Key string, or None when the listing has neither
    """
    if listing.url:
        return listing.url

    if not listing.address:
        return None

    locality = ' '.join(part.strip() for part in (listing.state, listing.zip_code) if part)
    parts = [listing.address, listing.city, locality]
    full_address = ', '.join(part.strip() for part in parts if part and part.strip())
    return _WHITESPACE_RE.sub(' ', full_address).strip().lower()
