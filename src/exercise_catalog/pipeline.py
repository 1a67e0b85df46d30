# -*- coding: utf-8 -*-
"""
Pipeline di ingestione
======================
Due sorgenti alternative, stessi stadi a valle:

  crawl_sitemap : sitemap.xml → pagine HTML → extractor → normalizer
  sync_api      : listing paginato → dettaglio per id → normalizer

poi, per ogni esercizio (worker pool limitato da Semaphore):
  meta.json → sync media per angolo → entry del manifest dal disco

Ogni worker ritorna un ItemResult (ok / failed / skipped); l'orchestratore li
raccoglie a pool svuotato e solo allora scrive manifest, failures.json e gli
artefatti raw. In dry-run non si scrive nulla.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from tqdm import tqdm

from exercise_catalog.config import RAW_ROOT_API, RAW_ROOT_CRAWL, CrawlConfig, require_api_key
from exercise_catalog.manifest import MODE_API, MODE_HTML, build_entry, build_manifest, load_record, rebuild_from_disk, write_manifest
from exercise_catalog.models import FAILED, OK, SKIPPED, ExerciseRecord, ItemResult, RunSummary
from exercise_catalog.scraping.extractor import ListItem, parse_exercise_page, parse_list_item
from exercise_catalog.scraping.fetcher import MuscleWikiApi, extract_exercise_urls, url_slug
from exercise_catalog.scraping.media import sync_media
from exercise_catalog.scraping.normalizer import (
    normalize_detail,
    normalize_list_item,
    normalize_page,
    sitemap_url_allowed,
)
from exercise_catalog.scraping.state import MEDIA, META, META_FILE, clear_stage, index_existing, mark_stage, stages_complete
from exercise_catalog.utils import collation_key, dedupe, dump_json, get_logger, safe_file, write_json

logger = get_logger("pipeline")


@dataclass
class RunOutcome:
    manifest: Dict[str, Any]
    summary: RunSummary
    failures: List[Dict[str, Any]] = field(default_factory=list)


# ------------------------------------------------------------
# Worker pool
# ------------------------------------------------------------
async def run_pool(
    items: Sequence[Any],
    worker: Callable[[Any], Awaitable[ItemResult]],
    concurrency: int,
    desc: str = "Processing",
    progress: bool = True,
    key: Callable[[Any], str] = str,
    key_field: str = "url",
) -> List[ItemResult]:
    """
    Esegue worker(item) su tutti gli elementi con al più `concurrency` task
    attivi. I risultati arrivano in ordine di completamento; un'eccezione
    sfuggita al worker diventa un risultato 'failed'.
    """
    sem = asyncio.Semaphore(max(1, concurrency))

    async def guarded(item: Any) -> ItemResult:
        async with sem:
            try:
                return await worker(item)
            except Exception as e:
                logger.error(f"FAIL {key(item)}: {e}")
                return ItemResult(key=key(item), status=FAILED, error=str(e), key_field=key_field)

    tasks = [asyncio.create_task(guarded(it)) for it in items]
    results: List[ItemResult] = []
    counts = {OK: 0, FAILED: 0, SKIPPED: 0}

    with tqdm(total=len(tasks), desc=desc, unit="ex", disable=not progress) as pbar:
        for fut in asyncio.as_completed(tasks):
            res = await fut
            results.append(res)
            counts[res.status] = counts.get(res.status, 0) + 1
            pbar.update(1)
            pbar.set_postfix(ok=counts[OK], fail=counts[FAILED], skip=counts[SKIPPED], refresh=False)
    return results


# ------------------------------------------------------------
# Stadi comuni per esercizio
# ------------------------------------------------------------
def required_stages(cfg: CrawlConfig) -> List[str]:
    return [META] if cfg.skip_media else [META, MEDIA]


def reuse_from_disk(cfg: CrawlConfig, item_dir: Optional[Path], key: str, key_field: str) -> Optional[ItemResult]:
    """Resume: esercizio già completo su disco → entry senza rete. None = da rifare."""
    if item_dir is None or not stages_complete(item_dir, required_stages(cfg)):
        return None
    try:
        record = load_record(item_dir)
    except (OSError, ValueError) as e:
        logger.warning(f"[RESUME] meta.json illeggibile in {item_dir}, rifaccio: {e}")
        return None
    logger.debug(f"[RESUME] {record.slug}: già completo")
    return ItemResult(
        key=key,
        status=OK,
        entry=build_entry(record, item_dir, cfg.public_root),
        key_field=key_field,
        name=record.name,
    )


def write_meta(item_dir: Path, record: ExerciseRecord) -> bool:
    """Scrive meta.json solo se il contenuto cambia (stessi byte altrimenti)."""
    path = item_dir / META_FILE
    text = dump_json(record.to_dict())
    if path.is_file() and path.read_text(encoding="utf-8") == text:
        return False
    item_dir.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return True


async def materialize(
    cfg: CrawlConfig,
    record: ExerciseRecord,
    fetcher,
    key: str,
    key_field: str,
    headers: Optional[Dict[str, str]] = None,
    raw: Any = None,
) -> ItemResult:
    """meta.json + media + entry (dal disco). In dry-run solo l'entry."""
    item_dir = cfg.out_root / record.slug
    if not cfg.dry_run:
        write_meta(item_dir, record)
        if not cfg.skip_media:
            failed = await sync_media(
                record, item_dir, fetcher, cfg.angles,
                transcode=cfg.transcode, resume=cfg.resume, headers=headers,
            )
            if failed:
                clear_stage(item_dir, MEDIA)
            else:
                mark_stage(item_dir, MEDIA)
    entry = build_entry(record, item_dir, cfg.public_root)
    logger.info(f"OK {record.slug}")
    return ItemResult(key=key, status=OK, entry=entry, key_field=key_field, name=record.name, raw=raw)


def skipped(key: str, key_field: str, record: ExerciseRecord) -> ItemResult:
    logger.info(f"SKIP {record.slug} (equipment {record.equipment} fuori scope)")
    return ItemResult(key=key, status=SKIPPED, key_field=key_field, name=record.name)


def finish(
    cfg: CrawlConfig,
    results: List[ItemResult],
    mode: str,
    raw_root: Path,
) -> RunOutcome:
    entries = [r.entry for r in results if r.ok and r.entry is not None]
    failures = [r.failure_dict() for r in results if r.status == FAILED]
    manifest = build_manifest(entries, mode=mode)
    summary = RunSummary.from_results(results, dry_run=cfg.dry_run)

    if not cfg.dry_run:
        write_manifest(manifest, cfg.manifest_path)
        if failures:
            write_json(raw_root / "failures.json", failures)

    logger.info("==== SUMMARY ====")
    for k, v in asdict(summary).items():
        logger.info(f"{k:>8}: {v}")
    logger.info(summary.line())
    return RunOutcome(manifest=manifest, summary=summary, failures=failures)


# ------------------------------------------------------------
# Sitemap + HTML
# ------------------------------------------------------------
def site_base(sitemap_url: str) -> str:
    p = urlparse(sitemap_url)
    return f"{p.scheme}://{p.netloc}"


async def crawl_sitemap(cfg: CrawlConfig, fetcher) -> RunOutcome:
    raw_root = cfg.raw_dir(RAW_ROOT_CRAWL)
    xml = await fetcher.fetch_text(cfg.sitemap_url)
    if not cfg.dry_run:
        raw_root.mkdir(parents=True, exist_ok=True)
        (raw_root / "sitemap.xml").write_text(xml, encoding="utf-8")

    urls = extract_exercise_urls(xml, site_base(cfg.sitemap_url))
    allowed = [u for u in urls if sitemap_url_allowed(u, cfg.equipment_scope)]
    logger.info(f"sitemap exercises: {len(urls)} (in scope: {len(allowed)})")
    if cfg.limit:
        allowed = allowed[:cfg.limit]
    existing = index_existing(cfg.out_root) if cfg.resume else {}

    async def worker(url: str) -> ItemResult:
        reused = reuse_from_disk(cfg, existing.get(url), url, "url") if cfg.resume else None
        if reused is not None:
            return reused
        try:
            html = await fetcher.fetch_text(url)
            record = normalize_page(parse_exercise_page(html, url), cfg.gender, cfg.angles)
            if not cfg.in_scope(record.equipment):
                return skipped(url, "url", record)
            return await materialize(cfg, record, fetcher, url, "url", raw=html if cfg.save_raw else None)
        except Exception as e:
            logger.error(f"FAIL {url}: {e}")
            return ItemResult(key=url, status=FAILED, error=str(e), key_field="url")

    results = await run_pool(allowed, worker, cfg.concurrency, desc="Crawl", progress=cfg.progress)

    if cfg.save_raw and not cfg.dry_run:
        for r in results:
            if r.raw is not None:
                (raw_root / f"{safe_file(url_slug(r.key) or 'page')}.html").write_text(r.raw, encoding="utf-8")
    return finish(cfg, results, MODE_HTML, raw_root)


# ------------------------------------------------------------
# API
# ------------------------------------------------------------
def candidate_stats(items: Sequence[ListItem]) -> Dict[str, List[Tuple[str, int]]]:
    """Conteggi per equipment, difficulty e muscle, in ordine alfabetico."""
    def by(attr: str) -> List[Tuple[str, int]]:
        counts = Counter(getattr(i, attr) for i in items)
        return sorted(counts.items(), key=lambda kv: collation_key(kv[0]))

    return {"equipment": by("equipment"), "difficulty": by("difficulty"), "muscle": by("muscle")}


def log_candidate_stats(items: Sequence[ListItem]) -> None:
    stats = candidate_stats(items)
    logger.info(f"Candidates: {len(items)}")
    logger.info(f"Equipment: {stats['equipment']}")
    logger.info(f"Difficulty: {stats['difficulty']}")
    logger.info(f"Muscle sample: {stats['muscle'][:20]}")


def list_items(listing: Iterable[Any]) -> List[ListItem]:
    parsed = (parse_list_item(raw) for raw in listing)
    return dedupe((normalize_list_item(i) for i in parsed if i is not None), key=lambda i: i.id)


async def sync_api(cfg: CrawlConfig, fetcher) -> RunOutcome:
    api = MuscleWikiApi(fetcher, require_api_key(cfg), cfg.api_base)
    raw_root = cfg.raw_dir(RAW_ROOT_API)

    listing = await api.list_exercises()
    if not cfg.dry_run:
        write_json(raw_root / "exercises-list.json", listing)

    items = list_items(listing)
    candidates = [i for i in items if cfg.in_scope(i.equipment)]
    logger.info(f"api exercises: {len(items)} (in scope: {len(candidates)})")
    if cfg.limit:
        candidates = candidates[:cfg.limit]
    log_candidate_stats(candidates)
    existing = index_existing(cfg.out_root) if cfg.resume else {}

    async def worker(item: ListItem) -> ItemResult:
        reused = reuse_from_disk(cfg, existing.get(item.id), item.id, "id") if cfg.resume else None
        if reused is not None:
            return reused
        try:
            detail = await api.get_exercise(item.id)
            record = normalize_detail(detail, item, cfg.gender, cfg.angles)
            if not cfg.in_scope(record.equipment):
                return skipped(item.id, "id", record)
            return await materialize(
                cfg, record, fetcher, item.id, "id",
                headers=api.headers, raw=detail if cfg.save_raw else None,
            )
        except Exception as e:
            logger.error(f"FAIL {item.id}: {e}")
            return ItemResult(key=item.id, status=FAILED, error=str(e), key_field="id", name=item.name)

    results = await run_pool(
        candidates, worker, cfg.concurrency, desc="Sync", progress=cfg.progress,
        key=lambda i: i.id, key_field="id",
    )

    if cfg.save_raw and not cfg.dry_run:
        for r in results:
            if r.raw is not None:
                write_json(raw_root / f"{safe_file(r.key)}.json", r.raw)
    return finish(cfg, results, MODE_API, raw_root)


# ------------------------------------------------------------
# Solo manifest
# ------------------------------------------------------------
def rebuild_manifest(cfg: CrawlConfig) -> Dict[str, Any]:
    """Manifest dai soli meta.json su disco, nessuna rete."""
    manifest = rebuild_from_disk(cfg.out_root, cfg.public_root, mode=MODE_API)
    if not cfg.dry_run:
        write_manifest(manifest, cfg.manifest_path)
    logger.info(f"rebuild: {len(manifest['exercises'])} esercizi")
    return manifest
