# -*- coding: utf-8 -*-
"""
Validatore del manifest: raccoglie tutte le violazioni, non si ferma alla prima.

Controlli:
- slug presente e unico
- gruppo nella tassonomia chiusa
- ogni file media referenziato esiste su disco ('/x' → <root>/public/x)
- ogni valore di filtro (tranne 'todos') compare in almeno un esercizio
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

from exercise_catalog.config import ANGLES, MANIFEST_PATH, VALID_GROUPS, WILDCARD
from exercise_catalog.manifest import FILTER_FIELDS, find_slug_collisions
from exercise_catalog.utils import read_json

MEDIA_KEYS = ("webm", "mp4", "poster", "image", "src")


def resolve_static_path(p: str, root: Path, public_dir: str = "public") -> Path:
    if p.startswith("/"):
        return Path(root) / public_dir / p[1:]
    return Path(root) / p


def check_exercises(exercises: List[Dict[str, Any]], root: Path, public_dir: str = "public") -> List[str]:
    errors: List[str] = []
    for ex in exercises:
        slug = ex.get("slug")
        if not slug:
            errors.append(f"missing slug for {ex.get('name') or ex.get('id')}")
        if ex.get("group") not in VALID_GROUPS:
            errors.append(f"invalid group {ex.get('group')} in {slug}")
        media = ex.get("media") or {}
        for angle in ANGLES:
            shape = media.get(angle)
            if not shape:
                continue
            for key in MEDIA_KEYS:
                ref = shape.get(key)
                if ref and not resolve_static_path(ref, root, public_dir).exists():
                    errors.append(f"missing media {angle}.{key}: {ref} ({slug})")
    for slug, ids in find_slug_collisions([e for e in exercises if e.get("slug")]).items():
        errors.append(f"duplicate slug {slug}: {', '.join(ids)}")
    return errors


def check_filters(manifest: Dict[str, Any], exercises: List[Dict[str, Any]]) -> List[str]:
    errors: List[str] = []
    present = {key: {e.get(f) for e in exercises if e.get(f)} for key, f in FILTER_FIELDS.items()}
    for key, values in (manifest.get("filters") or {}).items():
        if key not in present:
            continue
        for v in values or []:
            if v != WILDCARD and v not in present[key]:
                errors.append(f"filter value not present: filters.{key} -> {v}")
    return errors


def validate_manifest(
    path: Path = MANIFEST_PATH,
    root: Optional[Path] = None,
    public_dir: str = "public",
) -> List[str]:
    """Lista di violazioni (vuota = manifest valido)."""
    path = Path(path)
    root = Path(root) if root is not None else Path.cwd()
    if not path.is_file():
        return [f"manifest not found: {path}"]
    try:
        manifest = read_json(path)
    except ValueError as e:
        return [f"manifest is not valid JSON: {path} ({e})"]
    if not isinstance(manifest, dict):
        return [f"manifest root is not an object: {path}"]

    exercises = manifest.get("exercises")
    exercises = [e for e in exercises if isinstance(e, dict)] if isinstance(exercises, list) else []
    return check_exercises(exercises, root, public_dir) + check_filters(manifest, exercises)


def exercise_count(path: Path) -> int:
    exercises = read_json(Path(path)).get("exercises")
    return len(exercises) if isinstance(exercises, list) else 0
