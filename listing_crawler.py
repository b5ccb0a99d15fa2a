"""
Listing Crawler - paginated listing search crawling.

This module implements the crawl loop, which:
1. Fetches search result pages with a small pool of concurrent workers
2. Extracts listings from each page (embedded data, linked data, markup)
3. Deduplicates listings and stops at the requested result count
4. Derives the next search page until the page limit is reached
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Optional, Tuple

from bs4 import BeautifulSoup

import crawler_config
from crawl_input import CrawlInput
from errors import BlockDetected, PageFetchFailure
from extractors.listing_page import extract_listings, find_block_signature, parse_html
from extractors.pagination import next_page_url
from fetcher import Fetcher
from persistence.crawl_state import CrawlState
from persistence.dataset import DatasetStore

logger = logging.getLogger(__name__)


@dataclass
class PageRequest:
    """A queued search page."""
    url: str
    page_no: int
    retry_count: int = 0


@dataclass
class PageContext:
    """A fetched page being handled."""
    url: str
    page_no: int
    soup: BeautifulSoup


class ListingCrawler:
    """
    Crawls listing search pages until the result quota or page limit is hit.

    Page handlers run concurrently (bounded by ``max_concurrency``) and share
    one CrawlState, which serializes admission and page claims.
    """

    def __init__(self, crawl_input: CrawlInput, fetcher: Fetcher,
                 dataset: DatasetStore,
                 max_concurrency: int = crawler_config.MAX_CONCURRENCY,
                 max_retries: int = crawler_config.MAX_RETRIES,
                 browse_delay: Tuple[float, float] = crawler_config.BROWSE_DELAY):
        """
        Initialize the listing crawler.

        Args:
            crawl_input: Run input (start URL, quota, page limit)
            fetcher: Page fetcher
            dataset: Output dataset
            max_concurrency: Number of pages handled at the same time
            max_retries: Retries per page URL before it is abandoned
            browse_delay: (min, max) seconds to pause before paginating
        """
        self.crawl_input = crawl_input
        self.fetcher = fetcher
        self.dataset = dataset
        self.max_concurrency = max(1, max_concurrency)
        self.max_retries = max_retries
        self.browse_delay = browse_delay

        self.state: Optional[CrawlState] = None
        self._queue: Optional[asyncio.Queue] = None

        # Statistics
        self.stats = {
            'pages_handled': 0,
            'pages_blocked': 0,
            'pages_failed': 0,
            'pages_empty': 0,
            'listings_found': 0,
            'duplicates': 0,
        }

    async def enqueue(self, url: str, page_no: int) -> None:
        """Add a search page to the queue."""
        await self._queue.put(PageRequest(url=url, page_no=page_no))

    async def handle_page(self, ctx: PageContext, html: str) -> None:
        """
        Handle one fetched search page.

        Args:
            ctx: Page context
            html: Raw page HTML (kept for debug snapshots)

        Raises:
            BlockDetected: If the page is an anti-bot page
        """
        signature = find_block_signature(ctx.soup)
        if signature:
            logger.error(f"BLOCKED on page {ctx.page_no}! {signature}")
            raise BlockDetected(ctx.url, signature)

        await self.state.record_page_visit()
        self.stats['pages_handled'] += 1

        strategy, listings = extract_listings(ctx.soup)
        self.stats['listings_found'] += len(listings)

        if listings:
            logger.info(f"  Extracted {len(listings)} listings from {strategy}")
        else:
            logger.warning(f"  No listings found on page {ctx.page_no}")
            self.stats['pages_empty'] += 1
            await self.dataset.save_debug_page(ctx.page_no, html)

        admitted, duplicates = await self.state.admit_page(listings)
        self.stats['duplicates'] += duplicates

        await self.dataset.push_data(admitted)
        if admitted:
            logger.info(f"  Saved {len(admitted)} listings "
                        f"(total: {self.state.saved_count}/{self.state.results_wanted})")
        if duplicates:
            logger.info(f"  Skipped {duplicates} duplicate listings")

        await self.dataset.append_page_log({
            'url': ctx.url,
            'page_no': ctx.page_no,
            'status': 'success',
            'strategy': strategy,
            'found': len(listings),
            'saved': len(admitted),
            'duplicates': duplicates,
        })

        if self.browse_delay[1] > 0:
            await asyncio.sleep(random.uniform(*self.browse_delay))

        await self._paginate(ctx)

    async def _paginate(self, ctx: PageContext) -> None:
        if not await self.state.should_continue(ctx.page_no):
            logger.info(f"  Not paginating past page {ctx.page_no} (quota or page limit reached)")
            return

        next_url = next_page_url(ctx.soup, ctx.url, ctx.page_no)
        if not next_url:
            logger.info(f"  No next page after page {ctx.page_no}")
            return

        if not await self.state.claim_page(next_url):
            logger.info(f"  Next page already visited: {next_url}")
            return

        await self.enqueue(next_url, ctx.page_no + 1)
        logger.info(f"  Queued page {ctx.page_no + 1}: {next_url}")

    async def _process_request(self, request: PageRequest) -> None:
        logger.info(f"Page {request.page_no}: {request.url}")
        try:
            html = await self.fetcher.fetch_page(request.url)
            ctx = PageContext(url=request.url, page_no=request.page_no, soup=parse_html(html))
            await self.handle_page(ctx, html)
        except BlockDetected as e:
            self.stats['pages_blocked'] += 1
            self.fetcher.retire_session()
            await self._retry_or_fail(request, e)
        except PageFetchFailure as e:
            await self._retry_or_fail(request, e)

    async def _retry_or_fail(self, request: PageRequest, error: Exception) -> None:
        if request.retry_count < self.max_retries:
            request.retry_count += 1
            logger.warning(f"  Retrying page {request.page_no} "
                           f"({request.retry_count}/{self.max_retries}): {error}")
            await self._queue.put(request)
            return

        logger.error(f"Failed: {request.url} - {error}")
        self.stats['pages_failed'] += 1
        await self.dataset.append_page_log({
            'url': request.url,
            'page_no': request.page_no,
            'status': 'error',
            'error': str(error),
        })

    async def _worker(self, worker_id: int) -> None:
        """Pull page requests off the queue until cancelled."""
        while True:
            request = await self._queue.get()
            try:
                await self._process_request(request)
            finally:
                self._queue.task_done()

    async def crawl(self) -> int:
        """
        Run the crawl to completion.

        Returns:
            Number of listings saved

        Raises:
            Exception: Anything unexpected raised while handling a page
                (e.g. the dataset failing to write) ends the run
        """
        start_url = self.crawl_input.initial_url
        self.state = CrawlState(self.crawl_input.results_wanted, self.crawl_input.max_pages)
        self._queue = asyncio.Queue()

        logger.info("Starting listing crawl")
        logger.info(f"URL: {start_url}")
        logger.info(f"Target: {self.state.results_wanted} listings, max {self.state.max_pages} pages")

        await self.dataset.start_run()
        await self.state.claim_page(start_url)
        await self.enqueue(start_url, 1)

        workers = [
            asyncio.create_task(self._worker(i))
            for i in range(self.max_concurrency)
        ]
        drained = asyncio.create_task(self._queue.join())

        try:
            # Workers only finish by raising; the queue draining means done
            await asyncio.wait([drained, *workers], return_when=asyncio.FIRST_COMPLETED)
            for worker in workers:
                if worker.done() and not worker.cancelled() and worker.exception():
                    raise worker.exception()
        finally:
            drained.cancel()
            for worker in workers:
                worker.cancel()
            await asyncio.gather(drained, *workers, return_exceptions=True)

            summary = dict(self.stats, **self.state.summary())
            logger.info("=" * 60)
            logger.info("Listing crawl complete!")
            logger.info(f"Pages handled: {self.stats['pages_handled']}")
            logger.info(f"Pages blocked: {self.stats['pages_blocked']}")
            logger.info(f"Pages failed: {self.stats['pages_failed']}")
            logger.info(f"Duplicates skipped: {self.stats['duplicates']}")
            logger.info(f"Saved {self.state.saved_count} listings.")
            logger.info("=" * 60)

        await self.dataset.save_summary(summary)
        return self.state.saved_count


async def run_listing_crawl(crawl_input: CrawlInput, fetcher: Fetcher,
                            dataset: DatasetStore,
                            max_concurrency: int = crawler_config.MAX_CONCURRENCY) -> int:
    """
    Run a listing crawl and release the fetcher afterwards.

    Args:
        crawl_input: Run input
        fetcher: Page fetcher (closed when the crawl ends)
        dataset: Output dataset
        max_concurrency: Number of pages handled at the same time

    Returns:
        Number of listings saved
    """
    crawler = ListingCrawler(
        crawl_input=crawl_input,
        fetcher=fetcher,
        dataset=dataset,
        max_concurrency=max_concurrency
    )

    try:
        return await crawler.crawl()
    finally:
        await fetcher.close()
