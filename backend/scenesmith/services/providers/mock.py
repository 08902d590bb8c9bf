"""Mock provider for USE_MOCK_API mode.

Renders placeholder media locally (FFmpeg colour clips, Pillow images, sine
tones) into the transient area of the media store and returns their public
URLs, so the full pipeline runs without provider credentials.
"""

from __future__ import annotations

import asyncio
import io
import logging
import os
import tempfile
import uuid

from PIL import Image, ImageDraw, ImageFont

from scenesmith.services import media
from scenesmith.services.providers.base import (
    GenerationProvider,
    ImageRequest,
    MusicRequest,
    VideoRequest,
)
from scenesmith.services.storage import MediaStore, get_media_store

logger = logging.getLogger(__name__)

_SIZES = {
    "16:9": (1280, 720),
    "9:16": (720, 1280),
    "1:1": (720, 720),
    "4:3": (960, 720),
    "3:4": (720, 960),
}
_PALETTE = ["0x23233C", "0x3C2323", "0x233C23", "0x23303C", "0x3C3623"]


def _size_for(aspect_ratio: str) -> tuple[int, int]:
    return _SIZES.get(aspect_ratio, _SIZES["16:9"])


class MockProvider(GenerationProvider):
    name = "mock"

    def __init__(self, store: MediaStore | None = None, clip_seconds: float = 2.0) -> None:
        self.store = store or get_media_store()
        self.clip_seconds = clip_seconds
        self._counter = 0

    def _key(self, ext: str) -> str:
        return self.store.object_key(None, "mock", f"{uuid.uuid4().hex}.{ext}")

    async def generate_video(self, request: VideoRequest, *, timeout: float) -> str:
        self._counter += 1
        width, height = _size_for(request.aspect_ratio)
        color = _PALETTE[self._counter % len(_PALETTE)]
        duration = min(request.duration or self.clip_seconds, self.clip_seconds)

        fd, tmp_path = tempfile.mkstemp(suffix=".mp4")
        os.close(fd)
        try:
            await asyncio.to_thread(
                media.render_placeholder_clip, tmp_path, duration, color, f"{width}x{height}",
            )
            stored = self.store.save_file(self._key("mp4"), tmp_path)
        finally:
            os.remove(tmp_path)
        logger.info("[MOCK] video rendered: %s", stored.key)
        return stored.url

    async def generate_image(self, request: ImageRequest, *, timeout: float) -> str:
        data = await asyncio.to_thread(_render_image, request.prompt, _size_for(request.aspect_ratio))
        stored = self.store.save_bytes(self._key("png"), data)
        logger.info("[MOCK] image rendered: %s", stored.key)
        return stored.url

    async def generate_music(self, request: MusicRequest, *, timeout: float) -> str:
        ext = request.audio_format if request.audio_format in ("mp3", "wav") else "mp3"
        fd, tmp_path = tempfile.mkstemp(suffix=f".{ext}")
        os.close(fd)
        try:
            await asyncio.to_thread(media.render_tone, tmp_path, 10.0)
            stored = self.store.save_file(self._key(ext), tmp_path)
        finally:
            os.remove(tmp_path)
        logger.info("[MOCK] music rendered: %s", stored.key)
        return stored.url


def _render_image(prompt: str, size: tuple[int, int]) -> bytes:
    """Solid colour PNG with the prompt written on it."""
    img = Image.new("RGB", size, color=(35, 35, 60))
    draw = ImageDraw.Draw(img)
    font = ImageFont.load_default()
    wrapped = prompt[:100] + "..." if len(prompt) > 100 else prompt
    draw.text((40, 40), wrapped, fill=(180, 180, 220), font=font)
    draw.text((40, size[1] - 40), "[MOCK IMAGE]", fill=(100, 100, 140), font=font)
    buf = io.BytesIO()
    img.save(buf, "PNG")
    return buf.getvalue()
