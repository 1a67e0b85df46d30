"""Shared test helpers: in-memory fetcher, fixture loading, page builder."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from exercise_catalog.config import CrawlConfig
from exercise_catalog.errors import FetchError
from exercise_catalog.scraping import encoder

FIXTURES = Path(__file__).parent / "fixtures"

SITEMAP_URL = "https://musclewiki.com/sitemap.xml"
PUSH_UP_URL = "https://musclewiki.com/exercise/push-up"
PUSH_UP_MP4 = "https://media.musclewiki.com/media/uploads/videos/branded/male-Bodyweight-push-up-front.mp4"
PUSH_UP_JPG = "https://media.musclewiki.com/media/uploads/og-male-Bodyweight-push-up-front.jpg"


class FakeFetcher:
    """Serves canned responses by exact URL; anything else is a 404."""

    def __init__(
        self,
        texts: Optional[Dict[str, str]] = None,
        json_docs: Optional[Dict[str, Any]] = None,
        binaries: Optional[Dict[str, bytes]] = None,
    ):
        self.texts = texts or {}
        self.json_docs = json_docs or {}
        self.binaries = binaries or {}
        self.calls: List[str] = []
        self.headers: List[Optional[Dict[str, str]]] = []

    def _lookup(self, table: Dict[str, Any], url: str, headers) -> Any:
        self.calls.append(url)
        self.headers.append(headers)
        if url not in table:
            raise FetchError(url, 404, "Not Found")
        return table[url]

    async def fetch_text(self, url: str, headers=None) -> str:
        return self._lookup(self.texts, url, headers)

    async def fetch_json(self, url: str, headers=None) -> Any:
        return self._lookup(self.json_docs, url, headers)

    async def fetch_bytes(self, url: str, headers=None) -> bytes:
        return self._lookup(self.binaries, url, headers)


def load_fixture(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


def make_page(name: str, equipment: str = "", muscle: str = "Chest", difficulty: str = "", extra_body: str = "") -> str:
    """Minimal exercise page with one ExerciseAction JSON-LD block."""
    ld: Dict[str, Any] = {"@context": "https://schema.org", "@type": "ExerciseAction", "name": name, "muscleGroup": muscle}
    if equipment:
        ld["equipment"] = equipment
    if difficulty:
        ld["difficulty"] = difficulty
    return (
        "<html><head>"
        f'<script type="application/ld+json">{json.dumps(ld)}</script>'
        f"</head><body><main>{extra_body}</main></body></html>"
    )


def make_config(root: Path, **overrides) -> CrawlConfig:
    base = dict(
        sitemap_url=SITEMAP_URL,
        out_root=root / "public" / "data" / "exercises",
        manifest_path=root / "public" / "data" / "exercises.manifest.json",
        public_root=root / "public",
        raw_root=root / "raw",
        progress=False,
    )
    base.update(overrides)
    return CrawlConfig(**base)


@pytest.fixture
def push_up_html() -> str:
    return load_fixture("push_up.html")


@pytest.fixture
def sitemap_xml() -> str:
    return load_fixture("sitemap.xml")


@pytest.fixture
def no_ffmpeg(monkeypatch):
    monkeypatch.setattr("shutil.which", lambda name: None)
    encoder.has_ffmpeg.cache_clear()
    yield
    encoder.has_ffmpeg.cache_clear()
