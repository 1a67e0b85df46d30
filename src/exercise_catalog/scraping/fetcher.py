# -*- coding: utf-8 -*-
"""
Source fetcher
==============
- HttpFetcher: testo / JSON / binari su una sola aiohttp.ClientSession
- url_candidates + fetch_bytes_with_fallbacks: il CDN è case-sensitive a
  giorni alterni, si prova l'URL originale e poi le varianti minuscole
- extract_exercise_urls: <loc> della sitemap sotto /exercise/
- MuscleWikiApi: listing paginato + dettaglio per id
"""

from __future__ import annotations

import asyncio
import re
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlparse, urlunparse

import aiohttp

from exercise_catalog.config import SITE_BASE, USER_AGENT
from exercise_catalog.errors import FetchError
from exercise_catalog.utils import dedupe, get_logger

logger = get_logger("fetcher")

BINARY_TIMEOUT = aiohttp.ClientTimeout(total=120)


class HttpFetcher:
    """
    Wrapper minimo su aiohttp. Va usato come context manager asincrono:

        async with HttpFetcher() as fetcher:
            html = await fetcher.fetch_text(url)
    """

    def __init__(self, user_agent: str = USER_AGENT):
        self.user_agent = user_agent
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "HttpFetcher":
        self._session = aiohttp.ClientSession(headers={"user-agent": self.user_agent})
        return self

    async def __aexit__(self, *exc) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("HttpFetcher usato fuori da 'async with'")
        return self._session

    async def _get(self, url: str, headers: Optional[Dict[str, str]], kind: str,
                   timeout: Optional[aiohttp.ClientTimeout] = None) -> Any:
        kwargs: Dict[str, Any] = {"headers": headers or {}}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            async with self.session.get(url, **kwargs) as r:
                if r.status >= 400:
                    body = ""
                    if kind == "json":
                        body = await r.text(errors="replace")
                    raise FetchError(url, r.status, r.reason or "", body)
                if kind == "text":
                    return await r.text()
                if kind == "json":
                    return await r.json(content_type=None)
                return await r.read()
        except aiohttp.ClientError as e:
            raise FetchError(url, None, f"{type(e).__name__}: {e}") from e
        except asyncio.TimeoutError as e:
            raise FetchError(url, None, "timeout") from e
        except ValueError as e:  # JSONDecodeError, UnicodeDecodeError
            raise FetchError(url, None, f"invalid body: {e}") from e

    async def fetch_text(self, url: str, headers: Optional[Dict[str, str]] = None) -> str:
        return await self._get(url, headers, "text")

    async def fetch_json(self, url: str, headers: Optional[Dict[str, str]] = None) -> Any:
        return await self._get(url, headers, "json")

    async def fetch_bytes(self, url: str, headers: Optional[Dict[str, str]] = None) -> bytes:
        return await self._get(url, headers, "bytes", timeout=BINARY_TIMEOUT)


# ------------------------------------------------------------
# Download binari con URL di riserva
# ------------------------------------------------------------
def url_candidates(url: str) -> List[str]:
    """
    [originale, ultimo segmento minuscolo, path intero minuscolo],
    senza duplicati.
    """
    out = [url]
    try:
        p = urlparse(url)
    except ValueError:
        return out
    segments = p.path.split("/")
    last = segments[-1]
    if last and last.lower() != last:
        segments[-1] = last.lower()
        out.append(urlunparse(p._replace(path="/".join(segments))))
    if p.path.lower() != p.path:
        out.append(urlunparse(p._replace(path=p.path.lower())))
    return dedupe(out)


async def fetch_bytes_with_fallbacks(fetcher, url: str, headers: Optional[Dict[str, str]] = None) -> bytes:
    """Primo candidato che risponde; altrimenti rilancia l'ultimo errore."""
    last_error: Optional[Exception] = None
    for candidate in url_candidates(url):
        try:
            return await fetcher.fetch_bytes(candidate, headers)
        except FetchError as e:
            logger.debug(f"download fallito {candidate}: {e}")
            last_error = e
    raise last_error or FetchError(url, None, "download failed")


# ------------------------------------------------------------
# Sitemap
# ------------------------------------------------------------
def extract_exercise_urls(xml: str, base: str = SITE_BASE) -> List[str]:
    """URL esercizio da <loc>, limitati al prefisso <base>/exercise/."""
    prefix = re.escape(base.rstrip("/") + "/exercise/")
    found = re.findall(rf"<loc>\s*({prefix}[^<\s]+)\s*</loc>", xml)
    return dedupe(found)


def url_slug(url: str) -> str:
    """'https://musclewiki.com/exercise/push-up/' → 'push-up'."""
    tail = url.split("/exercise/", 1)[1] if "/exercise/" in url else ""
    return tail.rstrip("/")


# ------------------------------------------------------------
# API
# ------------------------------------------------------------
PAGE_KEYS = ("results", "data", "exercises", "items")


def page_items(payload: Any) -> List[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for k in PAGE_KEYS:
            if isinstance(payload.get(k), list):
                return payload[k]
    return []


def page_total(payload: Any) -> Optional[int]:
    if not isinstance(payload, dict):
        return None
    for k in ("total", "count"):
        v = payload.get(k)
        if isinstance(v, int) and not isinstance(v, bool):
            return v
    return None


def item_id(raw: Any) -> str:
    if not isinstance(raw, dict):
        return ""
    for k in ("id", "ID", "exerciseId", "ExerciseId"):
        if raw.get(k) is not None and str(raw[k]).strip():
            return str(raw[k]).strip()
    return ""


class MuscleWikiApi:
    """Client per l'API MuscleWiki (RapidAPI)."""

    def __init__(self, fetcher, api_key: str, base_url: str):
        self.fetcher = fetcher
        self.base_url = base_url.rstrip("/")
        self.headers = {
            "x-rapidapi-key": api_key,
            "x-rapidapi-host": urlparse(self.base_url).netloc,
        }

    async def list_exercises(self, page_size: int = 100, max_pages: int = 200) -> List[Any]:
        """
        Scorre il listing con limit/offset finché:
        pagina vuota, pagina corta, totale dichiarato raggiunto,
        pagina già vista (endpoint che ignora la paginazione) o max_pages.
        """
        items: List[Any] = []
        seen_ids = set()
        last_batch: List[Any] = []
        offset = 0
        for page in range(max_pages):
            url = f"{self.base_url}/exercises?limit={page_size}&offset={offset}"
            payload = await self.fetcher.fetch_json(url, self.headers)
            batch = page_items(payload)
            if not batch:
                break
            ids = [item_id(x) for x in batch]
            if page > 0 and (batch == last_batch or all(i and i in seen_ids for i in ids)):
                break
            last_batch = batch
            seen_ids.update(i for i in ids if i)
            items.extend(batch)
            logger.debug(f"listing pagina {page + 1}: {len(batch)} (tot {len(items)})")
            total = page_total(payload)
            if len(batch) < page_size or (total is not None and len(items) >= total):
                break
            offset += len(batch)
        return items

    async def get_exercise(self, exercise_id: str) -> Any:
        return await self.fetcher.fetch_json(f"{self.base_url}/exercises/{quote(str(exercise_id), safe='')}", self.headers)
