"""
Run input for the listing crawler.

Loads and validates the crawl input (from a YAML/JSON file, CLI flags or
both) and derives the start URL when none is given.
"""

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import yaml

import crawler_config

LISTING_TYPES = ('buy', 'rent')


def _positive_int(value: Any, default: int) -> int:
    """Coerce to an int >= 1; non-numeric values fall back to the default."""
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return max(1, int(number))


def build_start_url(location: str, listing_type: str) -> str:
    """
    Derive the search URL for a location.

    Args:
        location: Free-text region, e.g. "NY" or "Brooklyn, NY"
        listing_type: 'buy' or 'rent'

    Returns:
        Absolute start URL
    """
    loc_path = quote('_'.join(location.upper().split()), safe='')
    template = crawler_config.START_URL_TEMPLATES.get(
        listing_type, crawler_config.START_URL_TEMPLATES['buy']
    )
    return template.format(location=loc_path)


@dataclass
class CrawlInput:
    """
    Complete input for one crawl run.
    """
    start_url: Optional[str] = None
    location: str = crawler_config.DEFAULT_LOCATION
    listing_type: str = crawler_config.DEFAULT_LISTING_TYPE
    results_wanted: int = crawler_config.DEFAULT_RESULTS_WANTED
    max_pages: int = crawler_config.DEFAULT_MAX_PAGES
    proxy_urls: List[str] = field(default_factory=list)

    @property
    def initial_url(self) -> str:
        return self.start_url or build_start_url(self.location, self.listing_type)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CrawlInput':
        """
        Create a CrawlInput from a dictionary (input file or CLI flags).

        Args:
            data: Input dictionary

        Returns:
            CrawlInput instance

        Raises:
            ValueError: If a field is invalid
        """
        start_url = data.get('start_url') or None
        if start_url is not None and not isinstance(start_url, str):
            raise ValueError("'start_url' must be a string")

        location = data.get('location') or crawler_config.DEFAULT_LOCATION
        if not isinstance(location, str) or not location.strip():
            raise ValueError("'location' must be a non-empty string")

        listing_type = data.get('listing_type') or crawler_config.DEFAULT_LISTING_TYPE
        if listing_type not in LISTING_TYPES:
            raise ValueError(f"Invalid listing_type: {listing_type} (expected one of {', '.join(LISTING_TYPES)})")

        proxy_urls = data.get('proxy_urls') or []
        if isinstance(proxy_urls, str):
            proxy_urls = [proxy_urls]
        if not isinstance(proxy_urls, list):
            raise ValueError("'proxy_urls' must be a list")

        return cls(
            start_url=start_url.strip() if start_url else None,
            location=location.strip(),
            listing_type=listing_type,
            results_wanted=_positive_int(data.get('results_wanted'), crawler_config.DEFAULT_RESULTS_WANTED),
            max_pages=_positive_int(data.get('max_pages'), crawler_config.DEFAULT_MAX_PAGES),
            proxy_urls=[str(p) for p in proxy_urls],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'start_url': self.start_url,
            'location': self.location,
            'listing_type': self.listing_type,
            'results_wanted': self.results_wanted,
            'max_pages': self.max_pages,
            'proxy_urls': list(self.proxy_urls),
        }


def load_input(file_path: str) -> Dict[str, Any]:
    """
    Load raw input values from a YAML or JSON file.

    Args:
        file_path: Path to the input file

    Returns:
        Dictionary of input values

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If the file does not contain a mapping
        yaml.YAMLError: If YAML parsing fails
    """
    path = Path(file_path)

    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {file_path}")

    with open(path, 'r', encoding='utf-8') as f:
        if path.suffix == '.json':
            data = json.load(f)
        else:
            data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ValueError("Input file must contain a dictionary")

    return data


def validate_input(crawl_input: CrawlInput) -> List[str]:
    """
    Validate an input and return a list of warnings (not errors).

    Args:
        crawl_input: Input to validate

    Returns:
        List of warning messages (empty if no warnings)
    """
    warnings = []

    url = crawl_input.start_url
    if url and not url.startswith('http://') and not url.startswith('https://'):
        warnings.append(f"URL may be invalid (missing http/https): {url}")

    if url and crawl_input.location != crawler_config.DEFAULT_LOCATION:
        warnings.append("start_url is set; location is ignored")

    if crawl_input.max_pages > 100:
        warnings.append(f"max_pages is very high: {crawl_input.max_pages}")

    if crawl_input.results_wanted > 5000:
        warnings.append(f"results_wanted is very high: {crawl_input.results_wanted}")

    if not crawl_input.proxy_urls:
        warnings.append("No proxies configured - requests go out directly")

    return warnings
