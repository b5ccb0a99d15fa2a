"""
Page fetching for the listing crawler.

Two interchangeable fetchers:
- CurlFetcher: curl_cffi with browser TLS/header impersonation (default)
- BrowserFetcher: Playwright-driven Chromium for pages that need a browser

Both rotate their session when asked to (after a block) and raise
PageFetchFailure or BlockDetected instead of returning bad pages. Retrying
is left to the crawler's request loop.
"""

import asyncio
import json
import logging
import random
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Tuple

from curl_cffi.requests import AsyncSession
from curl_cffi.requests import exceptions as requests_exceptions

import crawler_config
from errors import BlockDetected, PageFetchFailure

# Try to import Playwright for browser-based fetching
try:
    from playwright.async_api import async_playwright, Error as PlaywrightError
    PLAYWRIGHT_AVAILABLE = True
except ImportError:
    PLAYWRIGHT_AVAILABLE = False

logger = logging.getLogger(__name__)


class Fetcher(Protocol):
    """Interface the crawler fetches pages through."""

    async def fetch_page(self, url: str) -> str:
        """Return the page HTML or raise PageFetchFailure / BlockDetected."""
        ...

    def retire_session(self) -> None:
        """Drop the current session; the next fetch starts a fresh one."""
        ...

    async def close(self) -> None:
        """Release network resources."""
        ...


def _check_status(url: str, status_code: int) -> None:
    if status_code in crawler_config.BLOCK_STATUS_CODES:
        raise BlockDetected(url, f"HTTP {status_code}")
    if status_code >= 400:
        raise PageFetchFailure(url, f"HTTP {status_code}", status_code)


class CurlFetcher:
    """Fetch pages with curl_cffi, impersonating real browsers."""

    def __init__(self, proxy_urls: Optional[List[str]] = None,
                 impersonate_targets: Optional[List[str]] = None,
                 max_usage: int = crawler_config.SESSION_MAX_USAGE,
                 navigation_delay: Tuple[float, float] = crawler_config.NAVIGATION_DELAY,
                 timeout: float = crawler_config.REQUEST_TIMEOUT,
                 session_factory: Callable[..., AsyncSession] = AsyncSession):
        """
        Initialize the fetcher.

        Args:
            proxy_urls: Proxies to rotate through, one per session (None = direct)
            impersonate_targets: curl_cffi browser targets to rotate through
            max_usage: Requests per session before it is replaced
            navigation_delay: (min, max) seconds to wait before each request
            timeout: Request timeout in seconds
            session_factory: Callable creating a curl_cffi AsyncSession
        """
        self.proxy_urls = proxy_urls or []
        self.impersonate_targets = impersonate_targets or crawler_config.IMPERSONATE_TARGETS
        self.max_usage = max_usage
        self.navigation_delay = navigation_delay
        self.timeout = timeout
        self.session_factory = session_factory

        self._session: Optional[AsyncSession] = None
        self._usage = 0
        self._sessions_created = 0
        self._retired: List[AsyncSession] = []

    def _new_session(self) -> AsyncSession:
        index = self._sessions_created
        self._sessions_created += 1

        kwargs = {
            'impersonate': self.impersonate_targets[index % len(self.impersonate_targets)],
            'timeout': self.timeout,
        }
        if self.proxy_urls:
            proxy = self.proxy_urls[index % len(self.proxy_urls)]
            kwargs['proxies'] = {'http': proxy, 'https': proxy}

        logger.debug(f"Starting session #{self._sessions_created} ({kwargs['impersonate']})")
        return self.session_factory(**kwargs)

    def _acquire_session(self) -> AsyncSession:
        if self._session is not None and self._usage >= self.max_usage:
            self.retire_session()
        if self._session is None:
            self._session = self._new_session()
            self._usage = 0
        self._usage += 1
        return self._session

    def retire_session(self) -> None:
        # Closed in close(); other in-flight requests may still use it
        if self._session is not None:
            self._retired.append(self._session)
            self._session = None

    async def fetch_page(self, url: str) -> str:
        """
        Fetch a page.

        Args:
            url: URL to fetch

        Returns:
            HTML content

        Raises:
            BlockDetected: On block status codes
            PageFetchFailure: On transport errors and other HTTP errors
        """
        await asyncio.sleep(random.uniform(*self.navigation_delay))

        session = self._acquire_session()
        try:
            response = await session.get(url, headers=crawler_config.DEFAULT_HEADERS)
        except requests_exceptions.RequestException as e:
            raise PageFetchFailure(url, str(e)) from e

        _check_status(url, response.status_code)
        return response.text

    async def close(self) -> None:
        self.retire_session()
        for session in self._retired:
            try:
                await session.close()
            except Exception as e:
                logger.debug(f"Could not close session: {e}")
        self._retired.clear()


class BrowserFetcher:
    """Fetch pages with a Playwright-controlled Chromium."""

    def __init__(self, headless: Optional[bool] = None,
                 navigation_delay: Tuple[float, float] = crawler_config.NAVIGATION_DELAY,
                 timeout: float = crawler_config.REQUEST_TIMEOUT,
                 session_dir: str = "output/browser_session"):
        """
        Initialize the browser fetcher.

        Args:
            headless: Run browser in headless mode (None = use config default)
            navigation_delay: (min, max) seconds to wait before each request
            timeout: Navigation timeout in seconds
            session_dir: Directory where cookies are kept between runs
        """
        if not PLAYWRIGHT_AVAILABLE:
            raise RuntimeError("Playwright is not installed; run: pip install playwright && playwright install")

        self.headless = headless if headless is not None else crawler_config.HEADLESS
        self.navigation_delay = navigation_delay
        self.timeout = timeout
        self.session_dir = Path(session_dir)
        self.session_dir.mkdir(parents=True, exist_ok=True)
        self.cookies_file = self.session_dir / 'cookies.json'

        self._playwright = None
        self._browser = None
        self._context = None
        self._retired = []
        self._lock = asyncio.Lock()

    async def _ensure_context(self):
        async with self._lock:
            if self._browser is None:
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self.headless,
                    args=[
                        '--disable-blink-features=AutomationControlled',
                        '--disable-dev-shm-usage',
                        '--no-sandbox',
                        '--disable-setuid-sandbox',
                    ]
                )
                mode = "headless" if self.headless else "visible"
                logger.info(f"Playwright browser initialized ({mode} mode)")

            if self._context is None:
                self._context = await self._browser.new_context(
                    viewport={
                        'width': 1920 + random.randint(-100, 100),
                        'height': 1080 + random.randint(-100, 100),
                    },
                    user_agent='Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
                               '(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36',
                    locale='en-US',
                    timezone_id='America/New_York',
                )
                await self._context.add_init_script(
                    "Object.defineProperty(navigator, 'webdriver', {get: () => undefined});"
                )
                if self.cookies_file.exists():
                    try:
                        cookies = json.loads(self.cookies_file.read_text(encoding='utf-8'))
                        await self._context.add_cookies(cookies)
                        logger.info("Loaded saved session cookies")
                    except (ValueError, PlaywrightError) as e:
                        logger.warning(f"Could not load cookies: {e}")

            return self._context

    async def fetch_page(self, url: str) -> str:
        await asyncio.sleep(random.uniform(*self.navigation_delay))

        context = await self._ensure_context()
        page = await context.new_page()
        try:
            response = await page.goto(url, wait_until='domcontentloaded',
                                       timeout=self.timeout * 1000)
            if response is not None:
                _check_status(url, response.status)
            html = await page.content()

            try:
                cookies = await context.cookies()
                self.cookies_file.write_text(json.dumps(cookies), encoding='utf-8')
            except PlaywrightError as e:
                logger.debug(f"Could not save cookies: {e}")

            return html
        except PlaywrightError as e:
            raise PageFetchFailure(url, str(e)) from e
        finally:
            try:
                await page.close()
            except PlaywrightError as e:
                logger.debug(f"Could not close page: {e}")

    def retire_session(self) -> None:
        # Closed in close(); in-flight pages may still use it
        if self._context is not None:
            self._retired.append(self._context)
            self._context = None
        if self.cookies_file.exists():
            self.cookies_file.unlink()

    async def _close_context(self, context) -> None:
        try:
            await context.close()
        except PlaywrightError as e:
            logger.debug(f"Error closing context: {e}")

    async def close(self) -> None:
        """Clean up Playwright browser resources."""
        if self._context is not None:
            self._retired.append(self._context)
            self._context = None
        for context in self._retired:
            await self._close_context(context)
        self._retired.clear()
        if self._browser:
            try:
                await self._browser.close()
                logger.info("Browser closed")
            except PlaywrightError as e:
                logger.warning(f"Error closing browser: {e}")
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
