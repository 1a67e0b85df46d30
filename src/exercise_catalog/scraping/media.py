# -*- coding: utf-8 -*-
"""
Media selector + sync
=====================
Selezione (pura):
  per ogni angolo richiesto, ordina i candidati per punteggio e applica la
  catena di fallback:
    gender+angle video → gender+angle qualsiasi → angle video → angle qualsiasi
    → immagine dichiarata (gender/angle via regex, poi la prima)
    → miglior candidato del pool
  None solo se pool e immagini sono entrambi vuoti.

Sync (I/O):
  download con URL di riserva → transcodifica webm+mp4+poster (ffmpeg)
  oppure copia grezza; immagini → poster-{angle}.jpg
"""

from __future__ import annotations

import re
import shutil
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from exercise_catalog.errors import EncodeError, FetchError
from exercise_catalog.models import ExerciseRecord, MediaCandidate
from exercise_catalog.scraping import encoder
from exercise_catalog.scraping.extractor import parse_media_url
from exercise_catalog.scraping.fetcher import fetch_bytes_with_fallbacks
from exercise_catalog.utils import ext_from_url, file_ok, get_logger, safe_file

logger = get_logger("media")

RAW_VIDEO_EXTS = (".webm", ".mp4", ".mov", ".gif")


# ------------------------------------------------------------
# Ranking e selezione
# ------------------------------------------------------------
def _url_path(url: str) -> str:
    return str(url or "").lower().split("?", 1)[0]


def rank_media(m: MediaCandidate, gender: Optional[str] = None) -> int:
    """webm > mp4 > gif > immagine, +4 gender corrispondente, +2 angolo noto."""
    u = _url_path(m.url)
    score = 0
    if u.endswith(".webm"):
        score += 40
    if u.endswith(".mp4"):
        score += 30
    if u.endswith(".gif"):
        score += 10
    if gender and m.gender == gender:
        score += 4
    if m.angle:
        score += 2
    return score


def _image_for(images: Sequence[str], gender: str, angle: str) -> Optional[str]:
    g, a = re.escape(gender), re.escape(angle)
    both = re.compile(f"{g}.*{a}|{a}.*{g}", re.IGNORECASE)
    only_angle = re.compile(a, re.IGNORECASE)
    return (
        next((u for u in images if both.search(u)), None)
        or next((u for u in images if only_angle.search(u)), None)
        or (images[0] if images else None)
    )


def select_angles(
    candidates: Sequence[MediaCandidate],
    gender: str,
    angles: Sequence[str],
    images: Sequence[str] = (),
) -> Dict[str, MediaCandidate]:
    """Un MediaCandidate per angolo (gli angoli senza nulla restano assenti)."""
    # sorted è stabile: a parità di punteggio vince l'ordine di scoperta
    ranked = sorted(candidates, key=lambda m: rank_media(m, gender), reverse=True)
    refs: Dict[str, MediaCandidate] = {}
    for angle in angles:
        hit = (
            next((m for m in ranked if m.gender == gender and m.angle == angle and m.is_video), None)
            or next((m for m in ranked if m.gender == gender and m.angle == angle), None)
            or next((m for m in ranked if m.angle == angle and m.is_video), None)
            or next((m for m in ranked if m.angle == angle), None)
        )
        if hit is None:
            img = _image_for(images, gender, angle)
            if img:
                hit = parse_media_url(img)
        if hit is None and ranked:
            hit = ranked[0]
        if hit is not None:
            refs[angle] = hit
    return refs


def select_poster_refs(images: Sequence[str], gender: str, angles: Sequence[str]) -> Dict[str, str]:
    refs: Dict[str, str] = {}
    for angle in angles:
        hit = _image_for(images, gender, angle)
        if hit:
            refs[angle] = hit
    return refs


# ------------------------------------------------------------
# Sync su disco
# ------------------------------------------------------------
def angle_files(item_dir: Path, angle: str) -> Dict[str, Path]:
    return {
        "webm": item_dir / f"{angle}.webm",
        "mp4": item_dir / f"{angle}.mp4",
        "poster": item_dir / f"poster-{angle}.jpg",
        "gif": item_dir / f"{angle}.gif",
        "mov": item_dir / f"{angle}.mov",
    }


def angle_present(item_dir: Path, angle: str) -> bool:
    """Per il resume: basta un qualunque file non vuoto dell'angolo."""
    return any(file_ok(p) for p in angle_files(item_dir, angle).values())


async def sync_angle(
    record: ExerciseRecord,
    angle: str,
    item_dir: Path,
    fetcher,
    transcode: bool,
    resume: bool,
    headers: Optional[Dict[str, str]] = None,
) -> bool:
    """
    Scarica e materializza i media di un angolo. Ritorna True se c'era
    qualcosa da fare (o già presente), False se non c'è nessun riferimento.
    Solleva FetchError / EncodeError / OSError: li gestisce sync_media.
    """
    ref = record.media_refs.get(angle)
    if ref is None or not ref.url:
        return False
    files = angle_files(item_dir, angle)
    poster_path = files["poster"]
    if resume and angle_present(item_dir, angle):
        logger.debug(f"[RESUME] {record.slug} {angle}: già presente")
        return True

    ext = (ext_from_url(ref.url) or (".mp4" if ref.is_video else ".jpg")).lower()
    item_dir.mkdir(parents=True, exist_ok=True)
    had_poster = poster_path.exists()

    with tempfile.TemporaryDirectory(prefix="exercise-media-") as tmpdir:
        tmp = Path(tmpdir) / f"{safe_file(record.slug)}-{angle}{ext}"
        tmp.write_bytes(await fetch_bytes_with_fallbacks(fetcher, ref.url, headers))

        poster_url = record.poster_refs.get(angle)
        if poster_url and not poster_path.exists():
            try:
                poster_path.write_bytes(await fetch_bytes_with_fallbacks(fetcher, poster_url, headers))
            except FetchError as e:
                logger.debug(f"poster {record.slug} {angle} non scaricato: {e}")

        if ref.is_video or ext == ".gif":
            if transcode and encoder.has_ffmpeg():
                try:
                    await encoder.convert_to_webm(tmp, files["webm"])
                    await encoder.convert_to_mp4(tmp, files["mp4"])
                    if not poster_path.exists():
                        await encoder.extract_poster(tmp, poster_path)
                except EncodeError:
                    # angolo assente: niente file a metà
                    files["webm"].unlink(missing_ok=True)
                    files["mp4"].unlink(missing_ok=True)
                    if not had_poster:
                        poster_path.unlink(missing_ok=True)
                    raise
            else:
                out_ext = ext if ext in RAW_VIDEO_EXTS else ".gif"
                shutil.copyfile(tmp, item_dir / f"{angle}{out_ext}")
        elif not poster_path.exists():
            shutil.copyfile(tmp, poster_path)
    return True


async def sync_media(
    record: ExerciseRecord,
    item_dir: Path,
    fetcher,
    angles: Sequence[str],
    transcode: bool = False,
    resume: bool = False,
    headers: Optional[Dict[str, str]] = None,
) -> List[str]:
    """
    Sync di tutti gli angoli richiesti; un errore lascia l'angolo assente
    ma non interrompe l'esercizio. Ritorna gli angoli falliti.
    """
    failed: List[str] = []
    for angle in angles:
        try:
            await sync_angle(record, angle, item_dir, fetcher, transcode, resume, headers)
        except (FetchError, EncodeError, OSError) as e:
            logger.warning(f"WARN media {record.slug} {angle}: {e}")
            failed.append(angle)
    return failed
