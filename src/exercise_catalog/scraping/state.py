# -*- coding: utf-8 -*-
"""
Stato di resume, come funzioni pure sul filesystem.

Stage per esercizio (cartella outRoot/<slug>/):
  meta   → meta.json presente
  media  → marker .media.done (scritto solo se nessun angolo è fallito)
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable

from exercise_catalog.utils import get_logger, read_json

logger = get_logger("state")

META = "meta"
MEDIA = "media"
META_FILE = "meta.json"


def marker_path(item_dir: Path, stage: str) -> Path:
    if stage == META:
        return Path(item_dir) / META_FILE
    return Path(item_dir) / f".{stage}.done"


def stage_complete(item_dir: Path, stage: str) -> bool:
    return marker_path(item_dir, stage).is_file()


def stages_complete(item_dir: Path, stages: Iterable[str]) -> bool:
    return all(stage_complete(item_dir, s) for s in stages)


def mark_stage(item_dir: Path, stage: str) -> None:
    if stage == META:
        raise ValueError("lo stage meta coincide con meta.json")
    p = marker_path(item_dir, stage)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.touch()


def clear_stage(item_dir: Path, stage: str) -> None:
    if stage != META:
        marker_path(item_dir, stage).unlink(missing_ok=True)


def index_existing(out_root: Path) -> Dict[str, Path]:
    """id sorgente → cartella esercizio, leggendo ogni meta.json."""
    index: Dict[str, Path] = {}
    out_root = Path(out_root)
    if not out_root.is_dir():
        return index
    for item_dir in sorted(p for p in out_root.iterdir() if p.is_dir()):
        meta = item_dir / META_FILE
        if not meta.is_file():
            continue
        try:
            ex_id = str(read_json(meta).get("id") or "")
        except (OSError, ValueError, AttributeError) as e:
            logger.warning(f"meta.json illeggibile {meta}: {e}")
            continue
        if ex_id:
            index[ex_id] = item_dir
    return index
