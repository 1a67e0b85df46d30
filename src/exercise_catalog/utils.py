# -*- coding: utf-8 -*-
"""Utility comuni: logging, normalizzazione testo, slug, file."""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import unicodedata
from pathlib import Path
from typing import Any, Callable, Hashable, Iterable, List, Optional, TypeVar
from urllib.parse import urlparse

T = TypeVar("T")

# ------------------------------------------------------------
# Logging
# ------------------------------------------------------------
logger = logging.getLogger("exercise_catalog")
if not logger.handlers:
    logger.setLevel(logging.INFO)
    h = logging.StreamHandler()
    h.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    logger.addHandler(h)


def get_logger(name: str) -> logging.Logger:
    """Logger figlio di 'exercise_catalog' (eredita handler e livello)."""
    return logger.getChild(name)


def set_verbose(verbose: bool) -> None:
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


# ------------------------------------------------------------
# Testo
# ------------------------------------------------------------
SPACE = re.compile(r"\s+")
NON_ALNUM = re.compile(r"[^a-z0-9]+")


def norm(x: Any) -> str:
    """Normalizza spazi e trim."""
    return SPACE.sub(" ", str(x if x is not None else "").strip())


def strip_accents(s: str) -> str:
    decomposed = unicodedata.normalize("NFD", s)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def slugify(s: Any) -> str:
    """'Flexión  Básica!' → 'flexion-basica'."""
    text = strip_accents(str(s if s is not None else "").lower())
    return NON_ALNUM.sub("-", text).strip("-")


def safe_file(s: Any) -> str:
    return slugify(s) or "file"


def collation_key(s: Any):
    """
    Ordinamento "base" (tipo localeCompare 'es', sensitivity base):
    ignora accenti e maiuscole, a parità usa il valore grezzo.
    """
    raw = str(s if s is not None else "")
    return (strip_accents(raw).casefold(), raw)


def dedupe(seq: Iterable[T], key: Optional[Callable[[T], Hashable]] = None) -> List[T]:
    """Rimuove i duplicati mantenendo l'ordine."""
    seen, out = set(), []
    for x in seq:
        k = key(x) if key else x
        if k in seen:
            continue
        seen.add(k)
        out.append(x)
    return out


def unique_sorted(values: Iterable[Any]) -> List[Any]:
    return sorted({v for v in values if v}, key=collation_key)


# ------------------------------------------------------------
# File / URL
# ------------------------------------------------------------
def ext_from_url(url: str) -> str:
    """Estensione del path dell'URL ('.mp4'), '' se assente."""
    try:
        return os.path.splitext(urlparse(url).path)[1]
    except ValueError:
        return ""


def file_ok(path: Path, min_bytes: int = 1) -> bool:
    """True se il file esiste ed è almeno min_bytes."""
    try:
        return path.is_file() and path.stat().st_size >= min_bytes
    except OSError:
        return False


def read_json(path: Path) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def dump_json(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2)


def write_json(path: Path, data: Any) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_json(data), encoding="utf-8")


def write_json_atomic(path: Path, data: Any) -> None:
    """Scrive su un file temporaneo accanto al target e poi os.replace."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(dump_json(data))
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
