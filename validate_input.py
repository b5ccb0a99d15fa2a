"""
Simple script to validate a crawl input file.

Usage:
    python validate_input.py input.yaml
"""

import sys
import logging

from crawl_input import CrawlInput, load_input, validate_input

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


def main():
    if len(sys.argv) < 2:
        print("Usage: python validate_input.py <input_file>")
        sys.exit(1)

    input_file = sys.argv[1]

    try:
        logger.info(f"Loading input: {input_file}")
        crawl_input = CrawlInput.from_dict(load_input(input_file))

        logger.info("✓ Input loaded successfully")
        if crawl_input.start_url:
            logger.info(f"  Start URL: {crawl_input.start_url}")
        else:
            logger.info(f"  Location: {crawl_input.location} ({crawl_input.listing_type})")
            logger.info(f"  Derived URL: {crawl_input.initial_url}")
        logger.info(f"  Results wanted: {crawl_input.results_wanted}")
        logger.info(f"  Max pages: {crawl_input.max_pages}")
        logger.info(f"  Proxies: {len(crawl_input.proxy_urls)}")

        warnings = validate_input(crawl_input)
        if warnings:
            logger.warning("Validation warnings:")
            for warning in warnings:
                logger.warning(f"  - {warning}")
        else:
            logger.info("✓ No validation warnings")

        logger.info("")
        logger.info("Input is valid and ready to use!")
        logger.info(f"Run with: python crawler.py --input {input_file}")

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        sys.exit(1)
    except ValueError as e:
        logger.error(f"Invalid input: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Error: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
