# -*- coding: utf-8 -*-
"""
Modelli dati della pipeline.

- MediaCandidate: un URL media scoperto in estrazione (effimero)
- ExerciseRecord: record canonico, persistito come meta.json
- ItemResult / RunSummary: esito di un elemento e riassunto del run
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from exercise_catalog.config import UNKNOWN


@dataclass(frozen=True)
class MediaCandidate:
    url: str
    kind: str  # "image" | "video"
    gender: Optional[str] = None  # "male" | "female" | None
    angle: Optional[str] = None  # "front" | "side" | None

    @property
    def is_video(self) -> bool:
        return self.kind == "video"

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "kind": self.kind, "gender": self.gender, "angle": self.angle}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "MediaCandidate":
        return cls(
            url=str(d.get("url") or ""),
            kind=str(d.get("kind") or "image"),
            gender=d.get("gender"),
            angle=d.get("angle"),
        )


@dataclass
class ExerciseRecord:
    id: str
    slug: str
    name: str
    muscle: str = UNKNOWN
    muscles_secondary: List[str] = field(default_factory=list)
    equipment: str = UNKNOWN
    difficulty: str = UNKNOWN
    force: str = ""
    group: str = "movilidad"
    steps: List[str] = field(default_factory=list)
    media_refs: Dict[str, MediaCandidate] = field(default_factory=dict)
    poster_refs: Dict[str, str] = field(default_factory=dict)
    source_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Forma JSON di meta.json (chiavi camelCase, ordine stabile)."""
        out: Dict[str, Any] = {"id": self.id}
        if self.source_url:
            out["sourceUrl"] = self.source_url
        out.update({
            "slug": self.slug,
            "name": self.name,
            "muscle": self.muscle,
            "musclesSecondary": list(self.muscles_secondary),
            "equipment": self.equipment,
            "difficulty": self.difficulty,
            "force": self.force,
            "group": self.group,
            "steps": list(self.steps),
            "mediaRefs": {a: m.to_dict() for a, m in self.media_refs.items()},
            "posterRefs": dict(self.poster_refs),
        })
        return out

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ExerciseRecord":
        refs = d.get("mediaRefs") or {}
        return cls(
            id=str(d.get("id") or ""),
            slug=str(d.get("slug") or ""),
            name=str(d.get("name") or ""),
            muscle=str(d.get("muscle") or UNKNOWN),
            muscles_secondary=[str(m) for m in d.get("musclesSecondary") or []],
            equipment=str(d.get("equipment") or UNKNOWN),
            difficulty=str(d.get("difficulty") or UNKNOWN),
            force=str(d.get("force") or ""),
            group=str(d.get("group") or ""),
            steps=[str(s) for s in d.get("steps") or []],
            media_refs={a: MediaCandidate.from_dict(m) for a, m in refs.items() if isinstance(m, dict)},
            poster_refs={a: str(u) for a, u in (d.get("posterRefs") or {}).items() if u},
            source_url=d.get("sourceUrl"),
        )


OK = "ok"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass
class ItemResult:
    """
    Esito di un singolo elemento della coda. Ogni worker ne restituisce uno:
    l'orchestratore li raccoglie a pool svuotato.
    """
    key: str
    status: str
    entry: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    key_field: str = "url"
    name: Optional[str] = None
    raw: Optional[Any] = None  # HTML o JSON grezzo, salvato solo con save_raw

    @property
    def ok(self) -> bool:
        return self.status == OK

    def failure_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {self.key_field: self.key}
        if self.name:
            out["name"] = self.name
        out["error"] = self.error or ""
        return out


@dataclass
class RunSummary:
    total: int = 0
    ok: int = 0
    failed: int = 0
    skipped: int = 0
    dry_run: bool = False

    @classmethod
    def from_results(cls, results: List[ItemResult], dry_run: bool = False) -> "RunSummary":
        s = cls(total=len(results), dry_run=dry_run)
        for r in results:
            if r.status == OK:
                s.ok += 1
            elif r.status == SKIPPED:
                s.skipped += 1
            else:
                s.failed += 1
        return s

    def line(self) -> str:
        return f"done ok={self.ok} fail={self.failed} skipped={self.skipped} dryRun={str(self.dry_run).lower()}"
