"""Tests for the manifest validator (all violations collected, never fail-fast)."""

from __future__ import annotations

from pathlib import Path

from exercise_catalog.manifest import build_entry, build_manifest, write_manifest
from exercise_catalog.models import ExerciseRecord
from exercise_catalog.utils import write_json
from exercise_catalog.validator import resolve_static_path, validate_manifest


def _setup(tmp_path: Path, records):
    """Writes per-exercise dirs + manifest under tmp_path/public like the gallery expects."""
    public = tmp_path / "public"
    out_root = public / "data" / "exercises"
    entries = []
    for rec in records:
        item = out_root / rec.slug
        item.mkdir(parents=True, exist_ok=True)
        (item / "front.mp4").write_bytes(b"x")
        (item / "poster-front.jpg").write_bytes(b"x")
        entries.append(build_entry(rec, item, public))
    manifest = build_manifest(entries)
    path = public / "data" / "exercises.manifest.json"
    write_manifest(manifest, path)
    return path, manifest


def _rec(slug, name, **kw):
    base = dict(id=slug, slug=slug, name=name, muscle="Chest", equipment="Bodyweight", difficulty="Beginner", group="push")
    base.update(kw)
    return ExerciseRecord(**base)


def test_valid_manifest(tmp_path):
    path, _ = _setup(tmp_path, [_rec("a", "A"), _rec("b", "B", group="core", muscle="Abdominals")])
    assert validate_manifest(path, tmp_path) == []


def test_missing_manifest(tmp_path):
    errors = validate_manifest(tmp_path / "nope.json", tmp_path)
    assert len(errors) == 1
    assert errors[0].startswith("manifest not found")


def test_invalid_json(tmp_path):
    path = tmp_path / "m.json"
    path.write_text("{", encoding="utf-8")
    assert validate_manifest(path, tmp_path)[0].startswith("manifest is not valid JSON")


def test_collects_every_violation(tmp_path):
    path, manifest = _setup(tmp_path, [_rec("a", "A"), _rec("b", "B")])
    (tmp_path / "public" / "data" / "exercises" / "a" / "front.mp4").unlink()
    manifest["exercises"][1]["group"] = "arms"
    manifest["exercises"].append({"id": "x", "name": "No Slug", "group": "push"})
    manifest["filters"]["muscles"].append("Forearms")
    write_json(path, manifest)

    errors = validate_manifest(path, tmp_path)
    assert "missing media front.mp4: /data/exercises/a/front.mp4 (a)" in errors
    assert "invalid group arms in b" in errors
    assert "missing slug for No Slug" in errors
    assert "filter value not present: filters.muscles -> Forearms" in errors
    assert len(errors) == 4


def test_duplicate_slug_fails(tmp_path):
    path, manifest = _setup(tmp_path, [_rec("a", "A")])
    dup = dict(manifest["exercises"][0], id="other")
    manifest["exercises"].append(dup)
    write_json(path, manifest)
    assert validate_manifest(path, tmp_path) == ["duplicate slug a: a, other"]


def test_wildcard_is_not_checked(tmp_path):
    path, manifest = _setup(tmp_path, [_rec("a", "A")])
    assert manifest["filters"]["groups"][0] == "todos"
    assert validate_manifest(path, tmp_path) == []


def test_static_path_resolution(tmp_path):
    assert resolve_static_path("/data/x.mp4", tmp_path) == tmp_path / "public" / "data" / "x.mp4"
    assert resolve_static_path("data/x.mp4", tmp_path) == tmp_path / "data" / "x.mp4"
