# -*- coding: utf-8 -*-
"""
Configurazione del catalogo
===========================
Costanti delle tassonomie chiuse, percorsi di default e `CrawlConfig`,
l'unico oggetto che le pipeline (sitemap e API) si passano in giro.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, List, Optional, Tuple

from dotenv import find_dotenv, load_dotenv

from exercise_catalog.errors import ConfigError

# ------------------------------------------------------------
# Tassonomie chiuse
# ------------------------------------------------------------
ALLOWED_EQUIPMENT: Tuple[str, ...] = (
    "Bodyweight", "Kettlebells", "Stretches", "Band",
    "TRX", "Yoga", "Cardio", "Recovery",
)
VALID_GROUPS: Tuple[str, ...] = ("push", "pull", "piernas", "core", "movilidad")
DEFAULT_GROUP = "movilidad"
ANGLES: Tuple[str, ...] = ("front", "side")
WILDCARD = "todos"
UNKNOWN = "Unknown"

# ------------------------------------------------------------
# Sorgente (MuscleWiki)
# ------------------------------------------------------------
PROVIDER = "MuscleWiki"
SITE_BASE = "https://musclewiki.com"
SITEMAP_URL = f"{SITE_BASE}/sitemap.xml"
API_BASE = "https://musclewiki-api.p.rapidapi.com"
API_KEY_ENV = "MUSCLEWIKI_API_KEY"
USER_AGENT = "Mozilla/5.0 (compatible; CalisteniaBot/1.0)"

# ------------------------------------------------------------
# Percorsi di default (relativi alla cwd, come la gallery li serve)
# ------------------------------------------------------------
PUBLIC_ROOT = Path("public")
OUT_ROOT = PUBLIC_ROOT / "data" / "exercises"
MANIFEST_PATH = PUBLIC_ROOT / "data" / "exercises.manifest.json"
RAW_ROOT_CRAWL = Path("data") / "raw" / "musclewiki-crawl"
RAW_ROOT_API = Path("data") / "raw" / "musclewiki"

DEFAULT_CONCURRENCY = 4
POSTER_OFFSET = "00:00:00.200"


def parse_csv(value: Optional[str]) -> List[str]:
    """'a, b,,c' → ['a', 'b', 'c']."""
    if not value:
        return []
    return [v.strip() for v in str(value).split(",") if v.strip()]


def parse_angles(value: Optional[str]) -> Tuple[str, ...]:
    angles = [a.lower() for a in parse_csv(value)]
    return tuple(angles) if angles else ANGLES


def parse_scope(value: Optional[str]) -> FrozenSet[str]:
    scope = parse_csv(value)
    return frozenset(scope) if scope else frozenset(ALLOWED_EQUIPMENT)


@dataclass
class CrawlConfig:
    """
    Opzioni riconosciute da entrambe le pipeline.
    `raw_root=None` significa: usa la cartella raw di default della modalità.
    """
    sitemap_url: str = SITEMAP_URL
    api_base: str = API_BASE
    api_key: str = ""
    out_root: Path = OUT_ROOT
    manifest_path: Path = MANIFEST_PATH
    raw_root: Optional[Path] = None
    public_root: Path = PUBLIC_ROOT
    concurrency: int = DEFAULT_CONCURRENCY
    limit: Optional[int] = None
    dry_run: bool = False
    skip_media: bool = False
    resume: bool = False
    save_raw: bool = False
    transcode: bool = False
    gender: str = "male"
    angles: Tuple[str, ...] = ANGLES
    equipment_scope: FrozenSet[str] = field(default_factory=lambda: frozenset(ALLOWED_EQUIPMENT))
    progress: bool = True

    def __post_init__(self):
        self.out_root = Path(self.out_root)
        self.manifest_path = Path(self.manifest_path)
        self.public_root = Path(self.public_root)
        if self.raw_root is not None:
            self.raw_root = Path(self.raw_root)
        self.concurrency = max(1, int(self.concurrency or 1))
        self.gender = (self.gender or "male").lower()
        self.angles = tuple(a.lower() for a in self.angles) or ANGLES

    def raw_dir(self, default: Path) -> Path:
        return self.raw_root if self.raw_root is not None else default

    def in_scope(self, equipment: str) -> bool:
        """Equipaggiamento richiesto E supportato."""
        return equipment in self.equipment_scope and equipment in ALLOWED_EQUIPMENT


def load_api_key(explicit: Optional[str] = None) -> str:
    """
    Chiave API: argomento esplicito, altrimenti variabile d'ambiente
    (anche da un file .env nella cwd).
    """
    if explicit:
        return explicit.strip()
    load_dotenv(find_dotenv(usecwd=True), override=False)
    return os.getenv(API_KEY_ENV, "").strip()


def require_api_key(cfg: CrawlConfig) -> str:
    if not cfg.api_key:
        raise ConfigError(f"Missing --api-key or {API_KEY_ENV}")
    return cfg.api_key
