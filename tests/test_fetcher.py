"""
Unit tests for the page fetchers.

curl_cffi sessions and Playwright objects are replaced with mocks, so no
requests leave the machine.
"""

import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

from curl_cffi.requests import exceptions as requests_exceptions

from errors import BlockDetected, PageFetchFailure
from fetcher import BrowserFetcher, CurlFetcher


def fake_response(status_code=200, text="<html></html>"):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    return response


class SessionFactory:
    """Records created sessions and the arguments they were created with."""

    def __init__(self, response=None, error=None):
        self.response = response or fake_response()
        self.error = error
        self.sessions = []
        self.kwargs = []

    def __call__(self, **kwargs):
        session = MagicMock()
        session.get = AsyncMock(return_value=self.response, side_effect=self.error)
        session.close = AsyncMock()
        self.sessions.append(session)
        self.kwargs.append(kwargs)
        return session


def make_fetcher(factory, **kwargs):
    return CurlFetcher(navigation_delay=(0, 0), session_factory=factory, **kwargs)


class TestCurlFetcher(unittest.IsolatedAsyncioTestCase):

    async def test_returns_html(self):
        factory = SessionFactory(fake_response(text="<html>ok</html>"))
        fetcher = make_fetcher(factory)

        html = await fetcher.fetch_page("https://www.trulia.com/NY/")

        self.assertEqual(html, "<html>ok</html>")
        factory.sessions[0].get.assert_awaited_once()

    async def test_block_status(self):
        fetcher = make_fetcher(SessionFactory(fake_response(status_code=403)))

        with self.assertRaises(BlockDetected) as ctx:
            await fetcher.fetch_page("https://www.trulia.com/NY/")

        self.assertEqual(ctx.exception.signature, "HTTP 403")

    async def test_error_status(self):
        fetcher = make_fetcher(SessionFactory(fake_response(status_code=500)))

        with self.assertRaises(PageFetchFailure) as ctx:
            await fetcher.fetch_page("https://www.trulia.com/NY/")

        self.assertEqual(ctx.exception.status_code, 500)

    async def test_transport_error(self):
        error = requests_exceptions.RequestException("connection reset")
        fetcher = make_fetcher(SessionFactory(error=error))

        with self.assertRaises(PageFetchFailure):
            await fetcher.fetch_page("https://www.trulia.com/NY/")

    async def test_session_replaced_after_max_usage(self):
        factory = SessionFactory()
        fetcher = make_fetcher(factory, max_usage=2)

        for _ in range(5):
            await fetcher.fetch_page("https://www.trulia.com/NY/")

        self.assertEqual(len(factory.sessions), 3)
        self.assertEqual([s.get.await_count for s in factory.sessions], [2, 2, 1])

    async def test_retire_session(self):
        """A retired session is not reused and is closed with the fetcher."""
        factory = SessionFactory()
        fetcher = make_fetcher(factory)

        await fetcher.fetch_page("https://www.trulia.com/NY/")
        fetcher.retire_session()
        await fetcher.fetch_page("https://www.trulia.com/NY/")
        await fetcher.close()

        self.assertEqual(len(factory.sessions), 2)
        for session in factory.sessions:
            session.close.assert_awaited_once()

    async def test_rotation_of_targets_and_proxies(self):
        factory = SessionFactory()
        fetcher = make_fetcher(factory, max_usage=1,
                               impersonate_targets=["chrome120", "edge101"],
                               proxy_urls=["http://p1:8000", "http://p2:8000"])

        for _ in range(3):
            await fetcher.fetch_page("https://www.trulia.com/NY/")

        self.assertEqual([k['impersonate'] for k in factory.kwargs],
                         ["chrome120", "edge101", "chrome120"])
        self.assertEqual([k['proxies']['https'] for k in factory.kwargs],
                         ["http://p1:8000", "http://p2:8000", "http://p1:8000"])

    async def test_no_proxy_by_default(self):
        factory = SessionFactory()
        fetcher = make_fetcher(factory)

        await fetcher.fetch_page("https://www.trulia.com/NY/")

        self.assertNotIn('proxies', factory.kwargs[0])


def fake_playwright(status=200, html="<html>browser</html>"):
    """Build a mocked async_playwright() entry point and its page."""
    page = MagicMock()
    page.goto = AsyncMock(return_value=MagicMock(status=status))
    page.content = AsyncMock(return_value=html)
    page.close = AsyncMock()

    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    context.add_init_script = AsyncMock()
    context.add_cookies = AsyncMock()
    context.cookies = AsyncMock(return_value=[{'name': 'session', 'value': 'abc'}])
    context.close = AsyncMock()

    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()

    playwright = MagicMock()
    playwright.chromium.launch = AsyncMock(return_value=browser)
    playwright.stop = AsyncMock()

    entry = MagicMock()
    entry.return_value.start = AsyncMock(return_value=playwright)
    return entry, playwright, browser, context, page


class TestBrowserFetcher(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.session_dir = Path(self.temp_dir.name) / "browser_session"

    def tearDown(self):
        self.temp_dir.cleanup()

    def make_fetcher(self):
        return BrowserFetcher(headless=True, navigation_delay=(0, 0),
                              session_dir=str(self.session_dir))

    async def test_fetch_page_saves_cookies(self):
        entry, playwright, browser, context, page = fake_playwright()
        fetcher = self.make_fetcher()

        with patch('fetcher.async_playwright', entry):
            html = await fetcher.fetch_page("https://www.trulia.com/NY/")

        self.assertEqual(html, "<html>browser</html>")
        page.close.assert_awaited_once()
        cookies = json.loads(fetcher.cookies_file.read_text(encoding='utf-8'))
        self.assertEqual(cookies[0]['name'], 'session')

    async def test_block_status(self):
        entry, playwright, browser, context, page = fake_playwright(status=429)
        fetcher = self.make_fetcher()

        with patch('fetcher.async_playwright', entry):
            with self.assertRaises(BlockDetected):
                await fetcher.fetch_page("https://www.trulia.com/NY/")

        page.close.assert_awaited_once()

    async def test_retire_session(self):
        """The context is set aside and its cookies are discarded."""
        entry, playwright, browser, context, page = fake_playwright()
        fetcher = self.make_fetcher()

        with patch('fetcher.async_playwright', entry):
            await fetcher.fetch_page("https://www.trulia.com/NY/")
            self.assertTrue(fetcher.cookies_file.exists())

            fetcher.retire_session()

            self.assertIsNone(fetcher._context)
            self.assertEqual(fetcher._retired, [context])
            self.assertFalse(fetcher.cookies_file.exists())

            await fetcher.fetch_page("https://www.trulia.com/NY/")

        self.assertEqual(browser.new_context.await_count, 2)
        playwright.chromium.launch.assert_awaited_once()

    async def test_close_releases_everything(self):
        entry, playwright, browser, context, page = fake_playwright()
        fetcher = self.make_fetcher()

        with patch('fetcher.async_playwright', entry):
            await fetcher.fetch_page("https://www.trulia.com/NY/")
            fetcher.retire_session()
            await fetcher.close()

        context.close.assert_awaited_once()
        browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()
        self.assertEqual(fetcher._retired, [])



if __name__ == '__main__':
    unittest.main()
