"""
Listing Dataset Server

Lightweight HTTP server for crawl output: lists datasets, pages through
their listings and serves raw files for download.

Usage:
    python data_server.py
    # or: python -m uvicorn data_server:app --port 8081

Environment variables:
    LISTING_DATA_DIR  - Directory holding dataset directories (default: output)
    LISTING_DATA_PORT - Port to listen on (default: 8081)
"""

import json
import mimetypes
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import FileResponse
from pydantic import BaseModel

from extractors.normalizer import Listing
from persistence.dataset import read_listings

DATA_DIR = Path(os.environ.get("LISTING_DATA_DIR", "output"))


@asynccontextmanager
async def lifespan(app):
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    yield


app = FastAPI(
    title="Listing Dataset Server",
    description="HTTP access to crawled listing datasets",
    version="1.0.0",
    lifespan=lifespan,
)


class DatasetInfo(BaseModel):
    name: str
    listings: int
    modified: str
    summary: Optional[dict] = None


class ListingPage(BaseModel):
    dataset: str
    offset: int
    limit: int
    items: List[Listing]


def _resolve(path: str) -> Path:
    """Resolve a path inside DATA_DIR, refusing anything outside it."""
    base = DATA_DIR.resolve()
    target = (base / path).resolve()
    if target != base and base not in target.parents:
        raise HTTPException(status_code=403, detail="Access denied")
    return target


def _dataset_dir(name: str) -> Path:
    target = _resolve(name)
    if not (target / "listings.jsonl").is_file():
        raise HTTPException(status_code=404, detail="Dataset not found")
    return target


def dataset_info(directory: Path) -> DatasetInfo:
    """Describe a dataset directory."""
    listings_file = directory / "listings.jsonl"
    with open(listings_file, 'r', encoding='utf-8') as f:
        count = sum(1 for line in f if line.strip())

    summary = None
    summary_file = directory / "summary.json"
    if summary_file.is_file():
        try:
            summary = json.loads(summary_file.read_text(encoding='utf-8'))
        except ValueError:
            summary = None

    mtime = listings_file.stat().st_mtime
    name = "." if directory.resolve() == DATA_DIR.resolve() else str(directory.relative_to(DATA_DIR))
    return DatasetInfo(
        name=name,
        listings=count,
        modified=datetime.fromtimestamp(mtime, tz=timezone.utc).isoformat(),
        summary=summary,
    )


@app.get("/health")
async def health():
    return {"status": "ok", "data_dir": str(DATA_DIR)}


@app.get("/api/datasets", response_model=List[DatasetInfo])
async def list_datasets():
    """List every directory under DATA_DIR that holds a listings file."""
    if not DATA_DIR.exists():
        return []
    directories = sorted({p.parent for p in DATA_DIR.rglob("listings.jsonl")})
    return [dataset_info(d) for d in directories]


@app.get("/api/datasets/{name:path}/listings", response_model=ListingPage)
async def get_listings(name: str, offset: int = Query(0, ge=0),
                       limit: int = Query(100, ge=1, le=1000)):
    """Page through a dataset's listings in discovery order."""
    directory = _dataset_dir(name)
    items = read_listings(directory / "listings.jsonl", offset=offset, limit=limit)
    return ListingPage(dataset=name, offset=offset, limit=limit, items=items)


@app.get("/api/datasets/{name:path}/pages")
async def get_page_log(name: str):
    """Return a dataset's page log."""
    directory = _dataset_dir(name)
    pages_file = directory / "pages.jsonl"
    if not pages_file.is_file():
        return []
    with open(pages_file, 'r', encoding='utf-8') as f:
        return [json.loads(line) for line in f if line.strip()]


@app.get("/files/{path:path}")
async def download_file(path: str):
    """Download a file from the data directory."""
    target = _resolve(path)
    if not target.exists() or not target.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    media_type, _ = mimetypes.guess_type(str(target))
    return FileResponse(target, media_type=media_type or "application/octet-stream")


if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("LISTING_DATA_PORT", "8081"))
    uvicorn.run(app, host="0.0.0.0", port=port)
