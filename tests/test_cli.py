"""
Tests for the command line entry point.
"""

import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, patch

import crawler


class TestResolveInput(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.input_file = Path(self.temp_dir.name) / "input.yaml"
        self.input_file.write_text(
            "location: Austin, TX\nlisting_type: rent\nmax_pages: 2\n", encoding='utf-8'
        )

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_flags_override_file(self):
        args = crawler.build_parser().parse_args(
            ['--input', str(self.input_file), '--max-pages', '4']
        )

        crawl_input = crawler.resolve_input(args)

        self.assertEqual(crawl_input.location, "Austin, TX")
        self.assertEqual(crawl_input.listing_type, "rent")
        self.assertEqual(crawl_input.max_pages, 4)

    def test_flags_only(self):
        args = crawler.build_parser().parse_args(['--location', 'NJ', '--proxy', 'http://p:1'])

        crawl_input = crawler.resolve_input(args)

        self.assertEqual(crawl_input.initial_url, "https://www.trulia.com/NJ/")
        self.assertEqual(crawl_input.proxy_urls, ['http://p:1'])


class TestMain(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_missing_input_file(self):
        self.assertEqual(crawler.main(['--input', 'does-not-exist.yaml']), 1)

    def test_malformed_input_file(self):
        input_file = Path(self.temp_dir.name) / "input.yaml"
        input_file.write_text("location: [NY\nmax_pages: 2\n", encoding='utf-8')

        with self.assertLogs(level='ERROR') as logs:
            code = crawler.main(['--input', str(input_file)])

        self.assertEqual(code, 1)
        self.assertIn("Invalid input", logs.output[0])

    def test_successful_run(self):
        with patch('crawler.run_listing_crawl', new=AsyncMock(return_value=12)) as run:
            code = crawler.main(['--location', 'NY', '--output', self.temp_dir.name])

        self.assertEqual(code, 0)
        crawl_input = run.await_args.args[0]
        self.assertEqual(crawl_input.initial_url, "https://www.trulia.com/NY/")

    def test_fatal_error(self):
        failing = AsyncMock(side_effect=RuntimeError("disk full"))
        with patch('crawler.run_listing_crawl', new=failing):
            code = crawler.main(['--output', self.temp_dir.name])

        self.assertEqual(code, 1)


if __name__ == '__main__':
    unittest.main()
