"""Tests for scenesmith/services/stitcher.py (FFmpeg faked in conftest)."""

import pytest

from scenesmith.errors import DownloadFailed, ValidationError
from scenesmith.services.stitcher import Stitcher


def read(store, key):
    with open(store.local_path(key), "rb") as f:
        return f.read()


class TestStitch:

    async def test_concatenates_in_given_order(self, store):
        clips = [store.save_bytes(f"p1/scenes/scene_0{n}.mp4", f"c{n}".encode()).url for n in (1, 2, 3)]
        result = await Stitcher(store).stitch("p1", [clips[2], clips[0], clips[1]])

        assert result.video_url == "/media/p1/final/final_output.mp4"
        assert result.scene_count == 3
        assert result.has_music is False
        assert read(store, result.storage_key) == b"c3|c1|c2|"

    async def test_restitch_overwrites_same_key(self, store):
        one = store.save_bytes("p2/scenes/scene_01.mp4", b"old").url
        stitcher = Stitcher(store)
        first = await stitcher.stitch("p2", [one])

        store.save_bytes("p2/scenes/scene_01.mp4", b"new")
        second = await stitcher.stitch("p2", [one])

        assert first.storage_key == second.storage_key
        assert read(store, second.storage_key) == b"new|"

    async def test_music_muxed_with_default_volume(self, store):
        from scenesmith.config import get_settings

        clip = store.save_bytes("p3/scenes/scene_01.mp4", b"c1").url
        music = store.save_bytes("p3/music/track.mp3", b"mp3").url
        result = await Stitcher(store).stitch("p3", [clip], audio_url=music)

        assert result.has_music is True
        expected = f"+audio@{get_settings().DEFAULT_MUSIC_VOLUME:.2f}".encode()
        assert read(store, result.storage_key) == b"c1|" + expected

    async def test_no_clips(self, store):
        with pytest.raises(ValidationError):
            await Stitcher(store).stitch("p4", [])

    async def test_missing_clip(self, store):
        with pytest.raises(DownloadFailed):
            await Stitcher(store).stitch("p5", ["/media/p5/scenes/missing.mp4"])


class TestAddAudio:

    async def test_replaces_final_video(self, store):
        video = store.save_bytes("p6/final/final_output.mp4", b"joined").url
        music = store.save_bytes("p6/music/track.mp3", b"mp3").url

        result = await Stitcher(store).add_audio("p6", video, music, volume=0.3, scene_count=2)

        assert result.video_url == video
        assert result.scene_count == 2
        assert read(store, result.storage_key) == b"joined+audio@0.30"


class TestThumbnail:

    async def test_still_stored_under_final(self, store):
        video = store.save_bytes("p9/final/final_output.mp4", b"video").url
        url = await Stitcher(store).extract_thumbnail("p9", video)
        assert url == "/media/p9/final/thumbnail.jpg"
        assert read(store, "p9/final/thumbnail.jpg") == b"jpeg@0.5"

    async def test_missing_video_gives_no_thumbnail(self, store):
        assert await Stitcher(store).extract_thumbnail("p9", "/media/p9/final/missing.mp4") is None
        assert not store.exists("p9/final/thumbnail.jpg")
