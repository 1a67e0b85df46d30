"""Eccezioni della pipeline di ingestione."""

from __future__ import annotations

from typing import Optional


class CatalogError(Exception):
    """Base per tutti gli errori del catalogo."""


class FetchError(CatalogError):
    """Status HTTP non 2xx o errore di trasporto (status=None)."""

    def __init__(self, url: str, status: Optional[int] = None, reason: str = "", body: str = ""):
        self.url = url
        self.status = status
        self.reason = reason
        self.body = body
        head = f"{status} {reason}".strip() if status is not None else (reason or "fetch failed")
        msg = f"{head} @ {url}"
        if body:
            msg += f" :: {body[:200]}"
        super().__init__(msg)


class ExtractionError(CatalogError):
    """Nessun dato strutturato utilizzabile nel documento sorgente."""


class EncodeError(CatalogError):
    """Il processo ffmpeg è uscito con codice diverso da zero."""

    def __init__(self, returncode: Optional[int], stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        msg = f"ffmpeg exit {returncode}"
        tail = stderr.strip().splitlines()[-1:] if stderr else []
        if tail:
            msg += f": {tail[0]}"
        super().__init__(msg)


class ConfigError(CatalogError):
    """Configurazione mancante o non valida: fatale all'avvio."""
