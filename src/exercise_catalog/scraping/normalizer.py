# -*- coding: utf-8 -*-
"""
Normalizer
==========
Vocabolario grezzo → tassonomia canonica:
- equipaggiamento: tabella sinonimi + inferenza dal prefisso dello slug URL
- muscolo: trim/spazi + euristiche sul nome per gli 'Unknown' (solo API)
- gruppo: cascata di regole a priorità fissa (prima che matcha vince)
- slug: {muscle, equipment, difficulty, group, name} slugificati e uniti
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Optional, Sequence

from exercise_catalog.config import ALLOWED_EQUIPMENT, DEFAULT_GROUP, UNKNOWN, VALID_GROUPS
from exercise_catalog.models import ExerciseRecord
from exercise_catalog.scraping import extractor
from exercise_catalog.scraping.extractor import ListItem, ParsedPage
from exercise_catalog.scraping.fetcher import item_id, url_slug
from exercise_catalog.scraping.media import select_angles, select_poster_refs
from exercise_catalog.utils import norm, slugify

UNSUPPORTED = "Unsupported"

# ------------------------------------------------------------
# Equipaggiamento
# ------------------------------------------------------------
EQUIPMENT_SYNONYMS = {
    "Bodyweight": "Bodyweight",
    "Kettlebell": "Kettlebells",
    "Kettlebells": "Kettlebells",
    "Band": "Band",
    "Resistance Band": "Band",
    "TRX": "TRX",
    "Yoga": "Yoga",
    "Stretches": "Stretches",
    "Stretch": "Stretches",
    "Cardio": "Cardio",
    "Recovery": "Recovery",
}

SLUG_EQUIPMENT = {
    "kettlebell": "Kettlebells",
    "kettlebells": "Kettlebells",
    "trx": "TRX",
    "band": "Band",
    "resistance-band": "Band",
    "yoga": "Yoga",
    "stretch": "Stretches",
    "stretches": "Stretches",
    "cardio": "Cardio",
    "recovery": "Recovery",
    "bodyweight": "Bodyweight",
    "pull-ups": "Bodyweight",
    "push-ups": "Bodyweight",
    "chin-ups": "Bodyweight",
    "box-dips": "Bodyweight",
    "bench-dips": "Bodyweight",
    "crunches": "Bodyweight",
    "glute-bridge": "Bodyweight",
    "bulgarian-split-squat": "Bodyweight",
}

UNSUPPORTED_RE = re.compile(r"(^|-)(barbell|dumbbell|machine|smith|cable)(-|$)")


def normalize_equipment(value: Any) -> str:
    s = norm(value)
    return EQUIPMENT_SYNONYMS.get(s, s)


def infer_equipment_from_slug(slug: str) -> str:
    """
    Prefissi di 3, 2, 1 token dello slug (poi lo slug intero) contro la tabella.
    Se nulla matcha e compare un attrezzo non supportato → 'Unsupported'.
    Stringa vuota = nessun segnale.
    """
    slug = str(slug or "").lower()
    tokens = [t for t in slug.split("-") if t]
    for candidate in ("-".join(tokens[:3]), "-".join(tokens[:2]), tokens[0] if tokens else "", slug):
        if candidate in SLUG_EQUIPMENT:
            return SLUG_EQUIPMENT[candidate]
    if UNSUPPORTED_RE.search(slug):
        return UNSUPPORTED
    return ""


def sitemap_url_allowed(url: str, scope: Iterable[str]) -> bool:
    """Filtro pre-fetch: nessun segnale → tieni; Unsupported → scarta."""
    guessed = infer_equipment_from_slug(url_slug(url))
    if not guessed:
        return True
    if guessed == UNSUPPORTED:
        return False
    return guessed in set(scope) and guessed in ALLOWED_EQUIPMENT


# ------------------------------------------------------------
# Muscoli / difficoltà
# ------------------------------------------------------------
def normalize_muscle(value: Any) -> str:
    return norm(value) or UNKNOWN


def normalize_difficulty(value: Any) -> str:
    return norm(value) or UNKNOWN


MUSCLE_BY_NAME = (
    (re.compile(r"cervical|chin tucks?|levator scapulae"), "Neck"),
    (re.compile(r"radial deviation"), "Forearms"),
    (re.compile(r"elliptical"), "Calves"),
    (re.compile(r"shoulder|rotator cuff|scapular protraction|reverse expansion teardrops"), "Shoulders"),
)


def resolve_unknown_muscle(muscle: str, name: str) -> str:
    """Solo per 'Unknown': prova a dedurre il muscolo dal nome."""
    if str(muscle).lower() != UNKNOWN.lower():
        return muscle
    n = str(name or "").lower()
    for rx, resolved in MUSCLE_BY_NAME:
        if rx.search(n):
            return resolved
    return muscle


# ------------------------------------------------------------
# Gruppo (cascata: l'ordine è parte del contratto)
# ------------------------------------------------------------
MOBILITY_EQUIPMENT = ("stretches", "yoga", "recovery")
CORE_RE = re.compile(r"abs|abdominal|oblique|core|lower back|erector")
LEGS_RE = re.compile(r"quad|hamstring|glute|calf|calves|adductor|abductor|leg")
PULL_RE = re.compile(r"lat|back|bicep|forearm|rear delt|trap|rhomboid")
PUSH_RE = re.compile(r"pectoral|chest|tricep|shoulder|deltoid")
MOBILITY_NAME_RE = re.compile(r"stretch|mobility|recovery|yoga")


def classify_group(muscle: str, equipment: str, name: str, force: str = "") -> str:
    m = str(muscle or "").lower()
    e = str(equipment or "").lower()
    n = str(name or "").lower()
    f = str(force or "").lower()
    if e in MOBILITY_EQUIPMENT:
        return "movilidad"
    if CORE_RE.search(m):
        return "core"
    if LEGS_RE.search(m):
        return "piernas"
    if PULL_RE.search(m):
        return "pull"
    if PUSH_RE.search(m):
        return "push"
    if MOBILITY_NAME_RE.search(n):
        return "movilidad"
    if f == "pull":
        return "pull"
    if f == "push":
        return "push"
    if e == "cardio":
        return "piernas"
    return "movilidad"


def coerce_group(group: Optional[str]) -> str:
    return group if group in VALID_GROUPS else DEFAULT_GROUP


def build_slug(muscle: str, equipment: str, difficulty: str, group: str, name: str) -> str:
    parts = (slugify(x) for x in (muscle, equipment, difficulty, group, name))
    return "-".join(p for p in parts if p)


# ------------------------------------------------------------
# Record canonici
# ------------------------------------------------------------
def normalize_page(parsed: ParsedPage, gender: str, angles: Sequence[str]) -> ExerciseRecord:
    """ParsedPage (modalità sitemap) → ExerciseRecord."""
    name = parsed.name or parsed.url_slug.replace("-", " ")
    equipment = normalize_equipment(
        infer_equipment_from_slug(parsed.url_slug) or parsed.equipment or UNKNOWN
    )
    difficulty = normalize_difficulty(parsed.difficulty)
    muscle = normalize_muscle(parsed.muscle_group[0] if parsed.muscle_group else UNKNOWN)
    group = classify_group(muscle, equipment, name, parsed.force)
    steps = parsed.steps or extractor.steps_from_html(parsed.description_html)
    return ExerciseRecord(
        id=parsed.url,
        source_url=parsed.url,
        slug=build_slug(muscle, equipment, difficulty, group, name),
        name=name,
        muscle=muscle,
        muscles_secondary=[normalize_muscle(m) for m in parsed.secondary_muscle_groups],
        equipment=equipment,
        difficulty=difficulty,
        force=parsed.force,
        group=group,
        steps=list(steps),
        media_refs=select_angles(parsed.media, gender, angles, parsed.images),
        poster_refs=select_poster_refs(parsed.images, gender, angles),
    )


def normalize_list_item(item: ListItem) -> ListItem:
    """Normalizza la riga di listing (serve al filtro per equipaggiamento)."""
    item.equipment = normalize_equipment(item.equipment)
    item.difficulty = normalize_difficulty(item.difficulty)
    item.muscle = resolve_unknown_muscle(normalize_muscle(item.muscle), item.name)
    return item


def normalize_detail(detail: Any, fallback: ListItem, gender: str, angles: Sequence[str]) -> ExerciseRecord:
    """Dettaglio API → ExerciseRecord; i campi mancanti cadono sulla riga del listing."""
    pick = extractor.pick_field
    ex_id = item_id(detail) or fallback.id
    name = pick(detail, extractor.NAME_KEYS) or fallback.name
    equipment = normalize_equipment(pick(detail, extractor.EQUIPMENT_KEYS) or fallback.equipment or UNKNOWN)
    difficulty = normalize_difficulty(pick(detail, extractor.DIFFICULTY_KEYS) or fallback.difficulty)
    muscle = resolve_unknown_muscle(
        normalize_muscle(pick(detail, extractor.MUSCLE_KEYS) or fallback.muscle),
        name,
    )
    force = pick(detail, extractor.FORCE_KEYS).lower()
    group = classify_group(muscle, equipment, name, force)

    candidates = extractor.media_candidates_from_payload(detail)
    images = [c.url for c in candidates if not c.is_video]
    return ExerciseRecord(
        id=ex_id,
        slug=build_slug(muscle, equipment, difficulty, group, name),
        name=name,
        muscle=muscle,
        muscles_secondary=[normalize_muscle(m) for m in extractor.secondary_muscles(detail)],
        equipment=equipment,
        difficulty=difficulty,
        force=force,
        group=group,
        steps=extractor.extract_instructions(detail),
        media_refs=select_angles(candidates, gender, angles, images),
        poster_refs=select_poster_refs(images, gender, angles),
    )
