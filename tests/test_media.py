"""Tests for media ranking/selection and the per-angle sync (download, copy, transcode)."""

from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path

import pytest

from conftest import FakeFetcher
from exercise_catalog.errors import EncodeError
from exercise_catalog.manifest import media_from_dir
from exercise_catalog.models import ExerciseRecord, MediaCandidate
from exercise_catalog.scraping import encoder
from exercise_catalog.scraping.media import angle_present, rank_media, select_angles, select_poster_refs, sync_media

CDN = "https://media.musclewiki.com/media/uploads"


def _cand(name: str, kind: str = "video", gender=None, angle=None) -> MediaCandidate:
    return MediaCandidate(url=f"{CDN}/{name}", kind=kind, gender=gender, angle=angle)


def _record(**overrides) -> ExerciseRecord:
    base = dict(id="1", slug="chest-bodyweight-beginner-push-push-up", name="Push Up")
    base.update(overrides)
    return ExerciseRecord(**base)


class TestRanking:
    def test_container_order(self):
        webm = rank_media(_cand("a.webm"))
        mp4 = rank_media(_cand("a.mp4"))
        gif = rank_media(_cand("a.gif"))
        jpg = rank_media(_cand("a.jpg", kind="image"))
        assert webm > mp4 > gif > jpg

    def test_bonuses(self):
        assert rank_media(_cand("a.mp4", gender="male", angle="front"), "male") == 36
        assert rank_media(_cand("a.mp4?x=1", gender="female"), "male") == 30


class TestSelection:
    def test_exact_gender_angle_video_wins(self):
        pool = [
            _cand("female-front.webm", gender="female", angle="front"),
            _cand("male-front.jpg", kind="image", gender="male", angle="front"),
            _cand("male-front.mp4", gender="male", angle="front"),
        ]
        assert select_angles(pool, "male", ["front"])["front"].url.endswith("male-front.mp4")

    def test_gender_angle_any_kind_before_other_gender(self):
        pool = [
            _cand("female-side.webm", gender="female", angle="side"),
            _cand("male-side.jpg", kind="image", gender="male", angle="side"),
        ]
        assert select_angles(pool, "male", ["side"])["side"].url.endswith("male-side.jpg")

    def test_angle_video_any_gender(self):
        pool = [_cand("female-side.mp4", gender="female", angle="side"), _cand("side.jpg", kind="image", angle="side")]
        assert select_angles(pool, "male", ["side"])["side"].url.endswith("female-side.mp4")

    def test_declared_images_before_pool_fallback(self):
        pool = [_cand("male-front.mp4", gender="male", angle="front")]
        images = [f"{CDN}/og-female-front.jpg", f"{CDN}/og-male-side.jpg"]
        refs = select_angles(pool, "male", ["front", "side"], images)
        assert refs["side"].url == f"{CDN}/og-male-side.jpg"
        assert refs["side"].kind == "image"

    def test_never_empty_when_pool_has_anything(self):
        pool = [_cand("female-side.gif", gender="female", angle="side")]
        refs = select_angles(pool, "male", ["front", "side"])
        assert set(refs) == {"front", "side"}
        assert refs["front"].url.endswith("female-side.gif")

    def test_untagged_pool_still_fills_angles(self):
        refs = select_angles([_cand("clip.mp4")], "female", ["front", "side"])
        assert refs["front"].url.endswith("clip.mp4")
        assert refs["side"].url.endswith("clip.mp4")

    def test_empty_pool_and_images(self):
        assert select_angles([], "male", ["front", "side"]) == {}

    def test_equal_scores_keep_discovery_order(self):
        pool = [_cand("first-front.mp4", angle="front"), _cand("second-front.mp4", angle="front")]
        assert select_angles(pool, "male", ["front"])["front"].url.endswith("first-front.mp4")

    def test_poster_refs(self):
        images = [f"{CDN}/a.jpg", f"{CDN}/male-side.jpg", f"{CDN}/front-male.jpg"]
        refs = select_poster_refs(images, "male", ["front", "side"])
        assert refs == {"front": f"{CDN}/front-male.jpg", "side": f"{CDN}/male-side.jpg"}
        assert select_poster_refs([], "male", ["front"]) == {}


class TestSync:
    def test_raw_copy_without_ffmpeg(self, tmp_path, no_ffmpeg):
        record = _record(
            media_refs={"front": _cand("male-front.mp4", gender="male", angle="front")},
            poster_refs={"front": f"{CDN}/poster-front.jpg"},
        )
        fetcher = FakeFetcher(binaries={f"{CDN}/male-front.mp4": b"MP4", f"{CDN}/poster-front.jpg": b"JPG"})
        failed = asyncio.run(sync_media(record, tmp_path, fetcher, ["front", "side"], transcode=True))
        assert failed == []
        assert (tmp_path / "front.mp4").read_bytes() == b"MP4"
        assert (tmp_path / "poster-front.jpg").read_bytes() == b"JPG"
        assert not (tmp_path / "front.webm").exists()
        assert not any(p.name.startswith("side") for p in tmp_path.iterdir())

    def test_image_ref_becomes_poster(self, tmp_path, no_ffmpeg):
        record = _record(media_refs={"side": _cand("og-side.jpg", kind="image", angle="side")})
        fetcher = FakeFetcher(binaries={f"{CDN}/og-side.jpg": b"IMG"})
        assert asyncio.run(sync_media(record, tmp_path, fetcher, ["side"])) == []
        assert (tmp_path / "poster-side.jpg").read_bytes() == b"IMG"

    def test_lowercase_fallback_url(self, tmp_path, no_ffmpeg):
        record = _record(media_refs={"front": _cand("Male-Front.GIF", angle="front")})
        fetcher = FakeFetcher(binaries={f"{CDN}/male-front.gif": b"GIF"})
        assert asyncio.run(sync_media(record, tmp_path, fetcher, ["front"])) == []
        assert fetcher.calls == [f"{CDN}/Male-Front.GIF", f"{CDN}/male-front.gif"]
        assert (tmp_path / "front.gif").read_bytes() == b"GIF"

    def test_download_failure_leaves_angle_absent(self, tmp_path, no_ffmpeg):
        record = _record(media_refs={"front": _cand("gone.mp4", angle="front")})
        failed = asyncio.run(sync_media(record, tmp_path, FakeFetcher(), ["front"]))
        assert failed == ["front"]
        assert list(tmp_path.iterdir()) == []

    def test_resume_skips_present_angle(self, tmp_path, no_ffmpeg):
        (tmp_path / "front.mp4").write_bytes(b"OLD")
        record = _record(media_refs={"front": _cand("male-front.mp4", angle="front")})
        fetcher = FakeFetcher()
        assert asyncio.run(sync_media(record, tmp_path, fetcher, ["front"], resume=True)) == []
        assert fetcher.calls == []
        assert (tmp_path / "front.mp4").read_bytes() == b"OLD"

    def test_transcode_produces_webm_mp4_poster(self, tmp_path, monkeypatch):
        calls = []

        async def fake_ffmpeg(*args):
            calls.append(args)
            Path(args[-1]).write_bytes(b"OUT")

        monkeypatch.setattr("shutil.which", lambda name: "/usr/bin/ffmpeg")
        monkeypatch.setattr(encoder, "run_ffmpeg", fake_ffmpeg)
        encoder.has_ffmpeg.cache_clear()
        try:
            record = _record(media_refs={"front": _cand("male-front.gif", angle="front")})
            fetcher = FakeFetcher(binaries={f"{CDN}/male-front.gif": b"GIF"})
            assert asyncio.run(sync_media(record, tmp_path, fetcher, ["front"], transcode=True)) == []
        finally:
            encoder.has_ffmpeg.cache_clear()

        assert sorted(p.name for p in tmp_path.iterdir()) == ["front.mp4", "front.webm", "poster-front.jpg"]
        webm_args, mp4_args, poster_args = calls
        assert "libvpx-vp9" in webm_args
        assert "libx264" in mp4_args and "+faststart" in mp4_args
        assert poster_args[:2] == ("-ss", "00:00:00.200")
        assert "-frames:v" in poster_args

    def test_encoder_failure_is_a_warning(self, tmp_path, monkeypatch):
        async def broken_ffmpeg(*args):
            raise EncodeError(1, "first line\nInvalid data found")

        monkeypatch.setattr("shutil.which", lambda name: "/usr/bin/ffmpeg")
        monkeypatch.setattr(encoder, "run_ffmpeg", broken_ffmpeg)
        encoder.has_ffmpeg.cache_clear()
        try:
            record = _record(media_refs={"front": _cand("male-front.mp4", angle="front")})
            fetcher = FakeFetcher(binaries={f"{CDN}/male-front.mp4": b"MP4"})
            assert asyncio.run(sync_media(record, tmp_path, fetcher, ["front"], transcode=True)) == ["front"]
        finally:
            encoder.has_ffmpeg.cache_clear()

    def test_encode_error_message(self):
        assert str(EncodeError(1, "first line\nInvalid data found\n")) == "ffmpeg exit 1: Invalid data found"


FFMPEG_SCRIPT = """#!/bin/sh
for last; do :; done
echo "$@" >> "$(dirname "$0")/calls.txt"
echo partial > "$last"
if [ -n "$FFMPEG_FAIL" ]; then
  echo "Invalid data found when processing input" >&2
  exit 1
fi
"""


@pytest.fixture
def fake_ffmpeg(tmp_path, monkeypatch):
    """An `ffmpeg` shell script on PATH that writes its output file; exits 1 when FFMPEG_FAIL is set."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    script = bin_dir / "ffmpeg"
    script.write_text(FFMPEG_SCRIPT, encoding="utf-8")
    script.chmod(0o755)
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
    monkeypatch.delenv("FFMPEG_FAIL", raising=False)
    encoder.has_ffmpeg.cache_clear()
    yield bin_dir
    encoder.has_ffmpeg.cache_clear()


@pytest.mark.skipif(sys.platform == "win32", reason="shell script as ffmpeg")
class TestFfmpegProcess:
    def test_run_ffmpeg_success(self, tmp_path, fake_ffmpeg):
        dest = tmp_path / "out.webm"
        asyncio.run(encoder.run_ffmpeg("-i", "in.mp4", str(dest)))
        assert dest.read_text(encoding="utf-8") == "partial\n"
        calls = (fake_ffmpeg / "calls.txt").read_text(encoding="utf-8").splitlines()
        assert calls == [f"-y -loglevel error -i in.mp4 {dest}"]

    def test_run_ffmpeg_failure_removes_output(self, tmp_path, fake_ffmpeg, monkeypatch):
        monkeypatch.setenv("FFMPEG_FAIL", "1")
        dest = tmp_path / "out.mp4"
        with pytest.raises(EncodeError) as exc:
            asyncio.run(encoder.run_ffmpeg("-i", "in.mp4", str(dest)))
        assert exc.value.returncode == 1
        assert str(exc.value) == "ffmpeg exit 1: Invalid data found when processing input"
        assert not dest.exists()

    def test_transcode_with_real_process(self, tmp_path, fake_ffmpeg):
        item = tmp_path / "item"
        record = _record(media_refs={"front": _cand("male-front.mp4", angle="front")})
        fetcher = FakeFetcher(binaries={f"{CDN}/male-front.mp4": b"MP4"})
        assert asyncio.run(sync_media(record, item, fetcher, ["front"], transcode=True)) == []
        assert sorted(p.name for p in item.iterdir()) == ["front.mp4", "front.webm", "poster-front.jpg"]
        assert len((fake_ffmpeg / "calls.txt").read_text(encoding="utf-8").splitlines()) == 3

    def test_failed_encode_leaves_angle_absent(self, tmp_path, fake_ffmpeg, monkeypatch):
        monkeypatch.setenv("FFMPEG_FAIL", "1")
        item = tmp_path / "item"
        record = _record(
            media_refs={"front": _cand("male-front.mp4", angle="front")},
            poster_refs={"front": f"{CDN}/male-front.jpg"},
        )
        fetcher = FakeFetcher(binaries={f"{CDN}/male-front.mp4": b"MP4", f"{CDN}/male-front.jpg": b"JPG"})
        assert asyncio.run(sync_media(record, item, fetcher, ["front"], transcode=True)) == ["front"]

        assert list(item.iterdir()) == []
        assert "front" not in media_from_dir(item, tmp_path)
        assert not angle_present(item, "front")

    def test_failed_encode_keeps_earlier_poster(self, tmp_path, fake_ffmpeg, monkeypatch):
        monkeypatch.setenv("FFMPEG_FAIL", "1")
        item = tmp_path / "item"
        item.mkdir()
        (item / "poster-front.jpg").write_bytes(b"OLD")
        record = _record(media_refs={"front": _cand("male-front.mp4", angle="front")})
        fetcher = FakeFetcher(binaries={f"{CDN}/male-front.mp4": b"MP4"})
        assert asyncio.run(sync_media(record, item, fetcher, ["front"], transcode=True)) == ["front"]
        assert [p.name for p in item.iterdir()] == ["poster-front.jpg"]
