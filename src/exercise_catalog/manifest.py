# -*- coding: utf-8 -*-
"""
Manifest assembler
==================
Il manifest riflette il filesystem, non le intenzioni: per ogni esercizio si
ispeziona outRoot/<slug>/ e si sceglie la forma media per angolo

  {angle}.webm / {angle}.mp4 (+ poster-{angle}.jpg)  → {type: video, webm?, mp4?, poster?}
  solo poster-{angle}.jpg                             → {type: image, image, poster}
  {angle}.gif / {angle}.mov                           → {type: video, src}

Poi ordinamento per nome (collation base), filtri con 'todos' in testa,
scrittura atomica del documento intero.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from exercise_catalog.config import ANGLES, PROVIDER, PUBLIC_ROOT, WILDCARD
from exercise_catalog.models import ExerciseRecord
from exercise_catalog.scraping.normalizer import coerce_group
from exercise_catalog.scraping.state import META_FILE
from exercise_catalog.utils import collation_key, get_logger, read_json, unique_sorted, write_json_atomic

logger = get_logger("manifest")

MODE_HTML = "offline-crawled-html"
MODE_API = "offline-generated"

FILTER_FIELDS = {
    "groups": "group",
    "muscles": "muscle",
    "equipment": "equipment",
    "difficulties": "difficulty",
}


def public_path(item_dir: Path, public_root: Path = PUBLIC_ROOT) -> str:
    """
    Path servito dalla gallery: relativo alla public root se la cartella ci
    sta dentro ('public/data/exercises/x' → '/data/exercises/x').
    """
    item_dir = Path(item_dir)
    try:
        rel = item_dir.resolve().relative_to(Path(public_root).resolve()).as_posix()
    except ValueError:
        rel = item_dir.as_posix()
    return rel if rel.startswith("/") else f"/{rel}"


def media_from_dir(item_dir: Path, public_root: Path = PUBLIC_ROOT) -> Dict[str, Dict[str, str]]:
    rel = public_path(item_dir, public_root)
    media: Dict[str, Dict[str, str]] = {}
    for angle in ANGLES:
        webm = item_dir / f"{angle}.webm"
        mp4 = item_dir / f"{angle}.mp4"
        jpg = item_dir / f"poster-{angle}.jpg"
        raw = next((p for p in (item_dir / f"{angle}.gif", item_dir / f"{angle}.mov") if p.is_file()), None)
        if webm.is_file() or mp4.is_file():
            shape = {"type": "video"}
            if webm.is_file():
                shape["webm"] = f"{rel}/{webm.name}"
            if mp4.is_file():
                shape["mp4"] = f"{rel}/{mp4.name}"
            if jpg.is_file():
                shape["poster"] = f"{rel}/{jpg.name}"
            media[angle] = shape
        elif jpg.is_file():
            media[angle] = {"type": "image", "image": f"{rel}/{jpg.name}", "poster": f"{rel}/{jpg.name}"}
        elif raw is not None:
            media[angle] = {"type": "video", "src": f"{rel}/{raw.name}"}
    return media


def build_entry(record: ExerciseRecord, item_dir: Path, public_root: Path = PUBLIC_ROOT) -> Dict[str, Any]:
    """ManifestEntry da record + ispezione della cartella."""
    media = media_from_dir(Path(item_dir), public_root)
    group = coerce_group(record.group)
    return {
        "id": record.id,
        "slug": record.slug,
        "name": record.name,
        "muscle": record.muscle,
        "musclesSecondary": list(record.muscles_secondary),
        "equipment": record.equipment,
        "difficulty": record.difficulty,
        "group": group,
        "angles": list(media.keys()),
        "media": media,
        "tags": [str(t).lower() for t in (group, record.muscle, record.equipment, record.difficulty) if t],
    }


def find_slug_collisions(entries: List[Dict[str, Any]]) -> Dict[str, List[str]]:
    """slug → id distinti che lo condividono (solo le collisioni)."""
    by_slug: Dict[str, List[str]] = defaultdict(list)
    for e in entries:
        ex_id = str(e.get("id"))
        if ex_id not in by_slug[e.get("slug")]:
            by_slug[e.get("slug")].append(ex_id)
    return {slug: ids for slug, ids in by_slug.items() if len(ids) > 1}


def build_filters(exercises: List[Dict[str, Any]]) -> Dict[str, List[str]]:
    return {
        key: [WILDCARD] + [v for v in unique_sorted(e.get(field) for e in exercises) if v != WILDCARD]
        for key, field in FILTER_FIELDS.items()
    }


def build_manifest(
    entries: List[Dict[str, Any]],
    mode: str = MODE_API,
    provider: str = PROVIDER,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    exercises = sorted(entries, key=lambda e: collation_key(e.get("name", "")))
    for slug, ids in find_slug_collisions(exercises).items():
        logger.warning(f"slug duplicato '{slug}': {', '.join(ids)} (la cartella è condivisa)")
    stamp = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return {
        "generatedAt": stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "source": {"provider": provider, "mode": mode},
        "filters": build_filters(exercises),
        "exercises": exercises,
    }


def write_manifest(manifest: Dict[str, Any], path: Path) -> None:
    write_json_atomic(Path(path), manifest)
    logger.info(f"Manifest → {path} ({len(manifest.get('exercises', []))} esercizi)")


def load_record(item_dir: Path) -> ExerciseRecord:
    return ExerciseRecord.from_dict(read_json(Path(item_dir) / META_FILE))


def rebuild_from_disk(out_root: Path, public_root: Path = PUBLIC_ROOT, mode: str = MODE_API) -> Dict[str, Any]:
    """Manifest ricostruito solo dai meta.json e dai file presenti."""
    entries: List[Dict[str, Any]] = []
    out_root = Path(out_root)
    dirs = sorted(p for p in out_root.iterdir() if p.is_dir()) if out_root.is_dir() else []
    for item_dir in dirs:
        if not (item_dir / META_FILE).is_file():
            continue
        try:
            record = load_record(item_dir)
        except (OSError, ValueError) as e:
            logger.warning(f"meta.json illeggibile in {item_dir}: {e}")
            continue
        entries.append(build_entry(record, item_dir, public_root))
    return build_manifest(entries, mode=mode)
