# -*- coding: utf-8 -*-
"""Wrapper asincrono su ffmpeg (webm, mp4, frame poster)."""

from __future__ import annotations

import asyncio
import shutil
from functools import lru_cache
from pathlib import Path
from typing import Optional

from exercise_catalog.config import POSTER_OFFSET
from exercise_catalog.errors import EncodeError
from exercise_catalog.utils import get_logger

logger = get_logger("encoder")


def ffmpeg_bin() -> Optional[str]:
    """Path a ffmpeg se nel PATH, altrimenti None."""
    return shutil.which("ffmpeg")


@lru_cache(maxsize=1)
def has_ffmpeg() -> bool:
    ok = ffmpeg_bin() is not None
    if not ok:
        logger.warning("ffmpeg non trovato nel PATH: copia grezza dei media.")
    return ok


async def run_ffmpeg(*args: str) -> None:
    """
    Lancia `ffmpeg -y -loglevel error <args>` senza bloccare il loop;
    exit code diverso da zero → EncodeError, e l'output parziale
    (ultimo argomento) viene rimosso.
    """
    ffmpeg = ffmpeg_bin() or "ffmpeg"
    proc = await asyncio.create_subprocess_exec(
        ffmpeg, "-y", "-loglevel", "error", *args,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.PIPE,
    )
    _, stderr = await proc.communicate()
    if proc.returncode != 0:
        Path(args[-1]).unlink(missing_ok=True)
        raise EncodeError(proc.returncode, stderr.decode("utf-8", errors="replace") if stderr else "")


async def convert_to_webm(src: Path, dest: Path) -> None:
    await run_ffmpeg(
        "-i", str(src), "-an",
        "-c:v", "libvpx-vp9", "-crf", "34", "-b:v", "0", "-pix_fmt", "yuv420p",
        str(dest),
    )


async def convert_to_mp4(src: Path, dest: Path) -> None:
    await run_ffmpeg(
        "-i", str(src), "-an",
        "-c:v", "libx264", "-preset", "veryfast", "-crf", "28",
        "-movflags", "+faststart", "-pix_fmt", "yuv420p",
        str(dest),
    )


async def extract_poster(src: Path, dest: Path, offset: str = POSTER_OFFSET) -> None:
    await run_ffmpeg("-ss", offset, "-i", str(src), "-frames:v", "1", str(dest))
