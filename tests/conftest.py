"""Pytest configuration and shared fixtures.

Puts ``backend/`` on ``sys.path`` and points the settings at a throwaway
SQLite database and media volume before any scenesmith module is imported.
Providers and FFmpeg are replaced by in-process fakes.
"""
import asyncio
import os
import sys
import tempfile

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
BACKEND = os.path.join(ROOT, "backend")
if BACKEND not in sys.path:
    sys.path.insert(0, BACKEND)

_TMP = tempfile.mkdtemp(prefix="scenesmith_tests_")
os.environ["DB_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["USE_MOCK_API"] = "true"
os.environ["MEDIA_VOLUME"] = os.path.join(_TMP, "media")
os.environ["MEDIA_BASE_URL"] = "/media"
os.environ["REDIS_URL"] = "redis://127.0.0.1:1/0"
os.environ["OPENROUTER_API_KEY"] = ""
os.environ["OPENROUTER_API_KEYS"] = ""

import pytest  # noqa: E402

from scenesmith.database import Base, engine  # noqa: E402
from scenesmith.services import media  # noqa: E402
from scenesmith.services.providers.base import (  # noqa: E402
    GenerationProvider,
    ImageRequest,
    MusicRequest,
    VideoRequest,
)
from scenesmith.services.storage import MediaStore, get_media_store  # noqa: E402


class FakeProvider(GenerationProvider):
    """Records every request and writes small placeholder objects to the store.

    ``failures`` maps a prompt substring to an exception (or a list of
    exceptions consumed one per call) raised for matching video prompts;
    prompts containing a ``hang`` marker never finish. ``log`` keeps the
    call order across all request kinds.
    """

    name = "fake"

    def __init__(self, store: MediaStore):
        self.store = store
        self.log: list[tuple[str, str]] = []
        self.hang: set[str] = set()
        self.video_requests: list[VideoRequest] = []
        self.image_requests: list[ImageRequest] = []
        self.music_requests: list[MusicRequest] = []
        self.failures: dict[str, object] = {}

    def _failure_for(self, prompt: str):
        for marker, failure in self.failures.items():
            if marker not in prompt:
                continue
            if isinstance(failure, list):
                return failure.pop(0) if failure else None
            return failure
        return None

    async def generate_video(self, request, *, timeout):
        self.video_requests.append(request)
        self.log.append(("video", request.prompt))
        if any(marker in request.prompt for marker in self.hang):
            await asyncio.sleep(3600)
        failure = self._failure_for(request.prompt)
        if failure is not None:
            raise failure
        n = len(self.video_requests)
        return self.store.save_bytes(f"transient/fake/video_{n}.mp4", f"clip:{request.prompt}".encode()).url

    async def generate_image(self, request, *, timeout):
        self.image_requests.append(request)
        self.log.append(("image", request.prompt))
        n = len(self.image_requests)
        return self.store.save_bytes(f"transient/fake/image_{n}.png", b"png-bytes").url

    async def generate_music(self, request, *, timeout):
        self.music_requests.append(request)
        self.log.append(("music", request.prompt))
        n = len(self.music_requests)
        return self.store.save_bytes(f"transient/fake/music_{n}.mp3", b"mp3-bytes").url


def _fake_extract(video_path, first_path, last_path):
    for path in (first_path, last_path):
        with open(path, "wb") as f:
            f.write(b"jpeg")
    return 0.5, 1.5


def _fake_frame(video_path, output_path, timestamp):
    with open(output_path, "wb") as f:
        f.write(f"jpeg@{timestamp:g}".encode())


def _fake_concat(clip_paths, output_path):
    with open(output_path, "wb") as out:
        for path in clip_paths:
            with open(path, "rb") as f:
                out.write(f.read())
            out.write(b"|")


def _fake_mux(video_path, audio_path, output_path, volume=0.5):
    with open(output_path, "wb") as out:
        with open(video_path, "rb") as f:
            out.write(f.read())
        out.write(f"+audio@{volume:.2f}".encode())


@pytest.fixture(autouse=True)
def fake_ffmpeg(monkeypatch):
    """Swap the FFmpeg helpers for byte-level fakes."""
    monkeypatch.setattr(media, "extract_first_last_frames", _fake_extract)
    monkeypatch.setattr(media, "extract_frame", _fake_frame)
    monkeypatch.setattr(media, "concat_clips", _fake_concat)
    monkeypatch.setattr(media, "mux_audio", _fake_mux)


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    """Keep cancellation and pub/sub off the network."""
    from scenesmith.services import cancellation, pipeline, pubsub

    monkeypatch.setattr(pipeline, "clear_cancel", cancellation._local_flags.discard)
    monkeypatch.setattr(pubsub, "_publish_sync", lambda project_id, payload: None)
    cancellation._local_flags.clear()


@pytest.fixture(autouse=True)
async def database():
    """Fresh tables for every test."""
    import scenesmith.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest.fixture
def store() -> MediaStore:
    return get_media_store()


@pytest.fixture
def fake_provider(store) -> FakeProvider:
    return FakeProvider(store)
