# -*- coding: utf-8 -*-
"""
Entry point a riga di comando.

  exercise-catalog crawl            sitemap + pagine HTML
  exercise-catalog sync             API MuscleWiki (serve la chiave)
  exercise-catalog rebuild-manifest solo dai meta.json su disco
  exercise-catalog validate         controlla il manifest (exit 1 se non valido)
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from exercise_catalog.config import (
    API_BASE,
    DEFAULT_CONCURRENCY,
    MANIFEST_PATH,
    OUT_ROOT,
    PUBLIC_ROOT,
    SITEMAP_URL,
    CrawlConfig,
    load_api_key,
    parse_angles,
    parse_scope,
    require_api_key,
)
from exercise_catalog.errors import CatalogError, ConfigError
from exercise_catalog.pipeline import crawl_sitemap, rebuild_manifest, sync_api
from exercise_catalog.scraping.fetcher import HttpFetcher
from exercise_catalog.utils import get_logger, set_verbose
from exercise_catalog.validator import exercise_count, validate_manifest

logger = get_logger("cli")


def _common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--out", type=Path, default=OUT_ROOT, help="Cartella per-esercizio")
    parser.add_argument("--manifest", type=Path, default=MANIFEST_PATH, help="Path del manifest JSON")
    parser.add_argument("--public-root", type=Path, default=PUBLIC_ROOT, help="Root servita dalla gallery")
    parser.add_argument("--dry-run", action="store_true", help="Nessuna scrittura su disco")


def _ingest(parser: argparse.ArgumentParser) -> None:
    _common(parser)
    parser.add_argument("--raw", type=Path, default=None, help="Cartella per gli artefatti raw")
    parser.add_argument("--concurrency", type=int, default=DEFAULT_CONCURRENCY, help="Esercizi in parallelo")
    parser.add_argument("--limit", type=int, default=None, help="Numero massimo di esercizi")
    parser.add_argument("--skip-media", action="store_true", help="Solo meta.json + manifest")
    parser.add_argument("--resume", action="store_true", help="Salta ciò che è già su disco")
    parser.add_argument("--save-raw", action="store_true", help="Salva HTML/JSON grezzi")
    parser.add_argument("--transcode", action="store_true", help="webm+mp4+poster con ffmpeg")
    parser.add_argument("--gender", default="male", help="male | female")
    parser.add_argument("--angles", default="front,side", help="Lista separata da virgole")
    parser.add_argument("--equipment", default=None, help="Equipaggiamenti ammessi, separati da virgole")
    parser.add_argument("--no-progress", action="store_true", help="Disattiva la barra tqdm")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="exercise-catalog", description="Catalogo esercizi offline da MuscleWiki")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log DEBUG")
    sub = parser.add_subparsers(dest="command", required=True)

    crawl = sub.add_parser("crawl", help="Sitemap + pagine HTML")
    _ingest(crawl)
    crawl.add_argument("--sitemap", default=SITEMAP_URL, help="URL della sitemap")

    sync = sub.add_parser("sync", help="API MuscleWiki (RapidAPI)")
    _ingest(sync)
    sync.add_argument("--api-base", default=API_BASE, help="Base URL dell'API")
    sync.add_argument("--api-key", default=None, help="Chiave API (default: MUSCLEWIKI_API_KEY)")

    rebuild = sub.add_parser("rebuild-manifest", help="Manifest dai meta.json su disco")
    _common(rebuild)

    validate = sub.add_parser("validate", help="Valida il manifest")
    validate.add_argument("manifest", nargs="?", type=Path, default=MANIFEST_PATH)
    validate.add_argument("--root", type=Path, default=None, help="Root del progetto (default: cwd)")
    return parser


def config_from_args(args: argparse.Namespace) -> CrawlConfig:
    cfg = CrawlConfig(
        out_root=args.out,
        manifest_path=args.manifest,
        public_root=args.public_root,
        dry_run=args.dry_run,
    )
    if args.command in ("crawl", "sync"):
        cfg.raw_root = args.raw
        cfg.concurrency = max(1, args.concurrency)
        cfg.limit = args.limit
        cfg.skip_media = args.skip_media
        cfg.resume = args.resume
        cfg.save_raw = args.save_raw
        cfg.transcode = args.transcode
        cfg.gender = args.gender.lower()
        cfg.angles = parse_angles(args.angles)
        cfg.equipment_scope = parse_scope(args.equipment)
        cfg.progress = not args.no_progress
    if args.command == "crawl":
        cfg.sitemap_url = args.sitemap
    if args.command == "sync":
        cfg.api_base = args.api_base
        cfg.api_key = load_api_key(args.api_key)
    return cfg


async def _run_ingest(cfg: CrawlConfig, command: str):
    async with HttpFetcher() as fetcher:
        if command == "crawl":
            return await crawl_sitemap(cfg, fetcher)
        return await sync_api(cfg, fetcher)


def run_validate(manifest: Path, root: Optional[Path]) -> int:
    errors = validate_manifest(manifest, root)
    for err in errors:
        print(f"ERROR: {err}", file=sys.stderr)
    if errors:
        return 1
    print(f"Manifest OK: {exercise_count(manifest)} exercises")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    set_verbose(args.verbose)

    if args.command == "validate":
        return run_validate(args.manifest, args.root)

    cfg = config_from_args(args)
    if args.command == "rebuild-manifest":
        rebuild_manifest(cfg)
        return 0

    if args.command == "sync":
        try:
            require_api_key(cfg)
        except ConfigError as e:
            logger.error(str(e))
            return 1
    try:
        asyncio.run(_run_ingest(cfg, args.command))
    except CatalogError as e:
        # sitemap o listing irraggiungibili o illeggibili: niente da processare
        logger.error(str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
