"""
Listing Crawler CLI

Crawls a paginated real-estate search and writes canonical listing
records to a JSONL dataset:
- Derives the search URL from a location, or starts from a given URL
- Extracts listings from embedded data, linked data or page markup
- Deduplicates listings across pages and stops at the requested count
- Rotates sessions when anti-bot protection kicks in
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import yaml

import crawler_config
from crawl_input import CrawlInput, load_input, validate_input
from fetcher import BrowserFetcher, CurlFetcher
from listing_crawler import run_listing_crawl
from persistence.dataset import JSONLDatasetStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Real-estate listing crawler',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Crawl homes for sale in New York (defaults: 20 results, 5 pages)
  python crawler.py --location NY

  # Rentals, more results
  python crawler.py --location "Brooklyn, NY" --listing-type rent --results-wanted 100

  # Start from an explicit search URL, using a real browser
  python crawler.py --start-url https://www.trulia.com/CA/San_Francisco/ --browser

  # Input from a file (flags override file values)
  python crawler.py --input input.yaml --max-pages 2

  # Debug tools
  python crawler.py --dump-html https://www.trulia.com/NY/
        """
    )

    # Run input
    parser.add_argument('--input', help='Input file (YAML or JSON)')
    parser.add_argument('--start-url', help='Search URL to start from')
    parser.add_argument('--location', help=f'Location to search (default: {crawler_config.DEFAULT_LOCATION})')
    parser.add_argument('--listing-type', choices=['buy', 'rent'],
                        help=f'Listing type (default: {crawler_config.DEFAULT_LISTING_TYPE})')
    parser.add_argument('--results-wanted', type=int,
                        help=f'Number of listings to save (default: {crawler_config.DEFAULT_RESULTS_WANTED})')
    parser.add_argument('--max-pages', type=int,
                        help=f'Maximum search pages to visit (default: {crawler_config.DEFAULT_MAX_PAGES})')
    parser.add_argument('--proxy', nargs='+', dest='proxy_urls', help='Proxy URLs to rotate through')

    # Crawl options
    parser.add_argument('--concurrency', type=int, default=crawler_config.MAX_CONCURRENCY,
                        help='Pages fetched at the same time')
    parser.add_argument('--output', default='output', help='Output directory')

    # Browser options
    parser.add_argument('--browser', action='store_true', help='Fetch pages with Playwright instead of curl_cffi')
    parser.add_argument('--headless', action='store_true', help='Run browser in headless mode')
    parser.add_argument('--visible', action='store_true', help='Run browser in visible mode')

    # Debug options
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')
    parser.add_argument('--dump-html', metavar='URL',
                        help='Dump HTML content for a URL and exit')

    return parser


def resolve_input(args) -> CrawlInput:
    """Merge the input file (if any) with CLI flags; flags win."""
    data = load_input(args.input) if args.input else {}

    overrides = {
        'start_url': args.start_url,
        'location': args.location,
        'listing_type': args.listing_type,
        'results_wanted': args.results_wanted,
        'max_pages': args.max_pages,
        'proxy_urls': args.proxy_urls,
    }
    data.update({k: v for k, v in overrides.items() if v is not None})

    return CrawlInput.from_dict(data)


def make_fetcher(args, crawl_input: CrawlInput, headless):
    if args.browser:
        return BrowserFetcher(headless=headless, session_dir=str(Path(args.output) / 'browser_session'))
    return CurlFetcher(proxy_urls=crawl_input.proxy_urls)


def main(argv=None) -> int:
    """Main entry point with argument parsing."""
    args = build_parser().parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Determine headless mode
    headless = None
    if args.headless:
        headless = True
    elif args.visible:
        headless = False

    try:
        crawl_input = resolve_input(args)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        logger.error(f"Invalid input: {e}")
        return 1

    if args.dump_html:
        return asyncio.run(_dump_html(args.dump_html, make_fetcher(args, crawl_input, headless)))

    for warning in validate_input(crawl_input):
        logger.warning(warning)

    try:
        asyncio.run(run_listing_crawl(
            crawl_input,
            make_fetcher(args, crawl_input, headless),
            JSONLDatasetStore(args.output),
            max_concurrency=args.concurrency
        ))
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=args.verbose)
        return 1

    return 0


async def _dump_html(url, fetcher) -> int:
    """Dump HTML content for a URL."""
    logger.info(f"Dumping HTML for: {url}")

    try:
        html = await fetcher.fetch_page(url)
    except Exception as e:
        logger.error(f"Failed to fetch page: {e}")
        return 1
    finally:
        await fetcher.close()

    output_file = Path("debug_dump.html")
    output_file.write_text(html, encoding='utf-8')
    logger.info(f"HTML saved to: {output_file}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
