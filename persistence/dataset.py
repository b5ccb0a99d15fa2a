"""
Dataset output for crawl runs.

Listings are appended to a JSONL file one batch per page, next to an
append-only page log and HTML snapshots of pages where nothing was found.
"""

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from extractors.normalizer import Listing


class DatasetStore(Protocol):
    """
    Interface the crawler writes results through.

    Lets tests and other backends stand in for the JSONL files.
    """

    async def start_run(self) -> None:
        """Discard output left by a previous run."""
        ...

    async def push_data(self, listings: List[Listing]) -> None:
        """Append one page's batch of admitted listings (may be empty)."""
        ...

    async def append_page_log(self, entry: Dict[str, Any]) -> None:
        """Append an entry to the page log."""
        ...

    async def save_debug_page(self, page_no: int, html: str) -> None:
        """Keep the HTML of a page that yielded no listings."""
        ...

    async def save_summary(self, summary: Dict[str, Any]) -> None:
        """Write the end-of-run summary."""
        ...


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class JSONLDatasetStore:
    """
    JSONL-backed implementation of DatasetStore.

    A run starts by clearing the files of the previous run in the same
    directory, so the dataset always matches the latest summary.

    Layout of ``output_dir``::

        listings.jsonl        one Listing per line
        pages.jsonl           one entry per handled page
        debug/debug-page-N.html
        summary.json
    """

    def __init__(self, output_dir: str = "output"):
        """
        Initialize the dataset store.

        Args:
            output_dir: Directory for output files
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        self.listings_file = self.output_dir / "listings.jsonl"
        self.pages_log_file = self.output_dir / "pages.jsonl"
        self.summary_file = self.output_dir / "summary.json"
        self.debug_dir = self.output_dir / "debug"

        self.items_written = 0

    def _clear_previous_run(self) -> None:
        for path in (self.listings_file, self.pages_log_file, self.summary_file):
            if path.exists():
                path.unlink()
        if self.debug_dir.is_dir():
            for path in self.debug_dir.glob("debug-page-*.html"):
                path.unlink()

    async def start_run(self) -> None:
        await asyncio.to_thread(self._clear_previous_run)
        self.items_written = 0

    def _append_lines(self, path: Path, rows: List[Dict[str, Any]]) -> None:
        with open(path, 'a', encoding='utf-8') as f:
            for row in rows:
                f.write(json.dumps(row, ensure_ascii=False) + '\n')

    async def push_data(self, listings: List[Listing]) -> None:
        if not listings:
            return
        rows = [listing.model_dump() for listing in listings]
        await asyncio.to_thread(self._append_lines, self.listings_file, rows)
        self.items_written += len(rows)

    async def append_page_log(self, entry: Dict[str, Any]) -> None:
        row = dict(entry, timestamp=_timestamp())
        await asyncio.to_thread(self._append_lines, self.pages_log_file, [row])

    async def save_debug_page(self, page_no: int, html: str) -> None:
        self.debug_dir.mkdir(exist_ok=True)
        path = self.debug_dir / f"debug-page-{page_no}.html"
        await asyncio.to_thread(path.write_text, html, encoding='utf-8')

    async def save_summary(self, summary: Dict[str, Any]) -> None:
        payload = dict(summary, finished_at=_timestamp())
        text = json.dumps(payload, indent=2)
        await asyncio.to_thread(self.summary_file.write_text, text, encoding='utf-8')


def read_listings(path: Path, offset: int = 0, limit: Optional[int] = None) -> List[Listing]:
    """
    Read listings back from a JSONL file.

    Args:
        path: listings.jsonl file
        offset: Number of records to skip
        limit: Maximum number of records to return (None = all)

    Returns:
        Listing records in file order
    """
    listings = []
    with open(path, 'r', encoding='utf-8') as f:
        for index, line in enumerate(f):
            if index < offset:
                continue
            if limit is not None and len(listings) >= limit:
                break
            line = line.strip()
            if line:
                listings.append(Listing.model_validate_json(line))
    return listings
