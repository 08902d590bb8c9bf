from __future__ import annotations
"""Final video assembly: ordered concat plus optional music bed.

The output always lands on the same per-project key
(``{project_id}/final/final_output.mp4``), so stitching again after a scene
edit replaces the previous final video instead of adding another one.
"""

import asyncio
import logging
import os
import tempfile
from dataclasses import dataclass

from scenesmith.config import get_settings
from scenesmith.errors import SceneSmithError, ValidationError
from scenesmith.services import media
from scenesmith.services.storage import MediaStore, get_media_store

logger = logging.getLogger(__name__)
settings = get_settings()

FINAL_FILENAME = "final_output.mp4"
THUMBNAIL_FILENAME = "thumbnail.jpg"
# Past the fade-in black of most clips
THUMBNAIL_TIMESTAMP = 0.5


@dataclass
class StitchResult:
    video_url: str
    storage_key: str
    scene_count: int
    has_music: bool


class Stitcher:
    def __init__(self, store: MediaStore | None = None) -> None:
        self._store = store

    @property
    def store(self) -> MediaStore:
        return self._store or get_media_store()

    def final_key(self, project_id: str) -> str:
        return self.store.object_key(project_id, "final", FINAL_FILENAME)

    def thumbnail_key(self, project_id: str) -> str:
        return self.store.object_key(project_id, "final", THUMBNAIL_FILENAME)

    async def stitch(
        self,
        project_id: str,
        clip_urls: list[str],
        audio_url: str | None = None,
        volume: float | None = None,
    ) -> StitchResult:
        """Concatenate clips in the given order, then mux audio if supplied."""
        if not clip_urls:
            raise ValidationError("No completed scene clips to stitch")
        volume = settings.DEFAULT_MUSIC_VOLUME if volume is None else volume

        with tempfile.TemporaryDirectory(prefix="scenesmith_stitch_") as tmp:
            local_clips = []
            for i, url in enumerate(clip_urls, start=1):
                path = os.path.join(tmp, f"clip_{i:02d}.mp4")
                await self.store.fetch_to_file(url, path)
                local_clips.append(path)

            joined = os.path.join(tmp, "joined.mp4")
            await asyncio.to_thread(media.concat_clips, local_clips, joined)
            output = joined

            if audio_url:
                output = await self._mux(tmp, joined, audio_url, volume)

            stored = self.store.save_file(self.final_key(project_id), output)

        logger.info(
            "Stitched %d clips for project=%s (music=%s)",
            len(clip_urls), project_id[:8], bool(audio_url),
        )
        return StitchResult(
            video_url=stored.url,
            storage_key=stored.key,
            scene_count=len(clip_urls),
            has_music=bool(audio_url),
        )

    async def add_audio(
        self,
        project_id: str,
        video_url: str,
        audio_url: str,
        volume: float | None = None,
        scene_count: int = 0,
    ) -> StitchResult:
        """Mux audio over an existing video and store it as the final output."""
        volume = settings.DEFAULT_MUSIC_VOLUME if volume is None else volume
        with tempfile.TemporaryDirectory(prefix="scenesmith_audio_") as tmp:
            video_path = os.path.join(tmp, "video.mp4")
            await self.store.fetch_to_file(video_url, video_path)
            output = await self._mux(tmp, video_path, audio_url, volume)
            stored = self.store.save_file(self.final_key(project_id), output)

        logger.info("Merged audio into final video for project=%s", project_id[:8])
        return StitchResult(
            video_url=stored.url,
            storage_key=stored.key,
            scene_count=scene_count,
            has_music=True,
        )

    async def extract_thumbnail(self, project_id: str, video_url: str) -> str | None:
        """Store a still of the final video as the project thumbnail.

        Returns its URL, or None when the frame could not be taken; a
        missing thumbnail never fails the video it belongs to.
        """
        try:
            with tempfile.TemporaryDirectory(prefix="scenesmith_thumb_") as tmp:
                video_path = os.path.join(tmp, "video.mp4")
                await self.store.fetch_to_file(video_url, video_path)
                still = os.path.join(tmp, THUMBNAIL_FILENAME)
                await asyncio.to_thread(media.extract_frame, video_path, still, THUMBNAIL_TIMESTAMP)
                stored = self.store.save_file(self.thumbnail_key(project_id), still)
        except SceneSmithError as e:
            logger.warning("No thumbnail for project=%s: %s", project_id[:8], e.message)
            return None
        return stored.url

    async def _mux(self, tmp: str, video_path: str, audio_url: str, volume: float) -> str:
        ext = os.path.splitext(audio_url.split("?", 1)[0])[1] or ".mp3"
        audio_path = os.path.join(tmp, f"music{ext}")
        await self.store.fetch_to_file(audio_url, audio_path)
        output = os.path.join(tmp, "with_audio.mp4")
        await asyncio.to_thread(media.mux_audio, video_path, audio_path, output, volume)
        return output


_stitcher = Stitcher()


def get_stitcher() -> Stitcher:
    return _stitcher
