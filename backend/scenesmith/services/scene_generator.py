from __future__ import annotations
"""Scene clip generation: provider call, download, frame extraction, upload.

One ``generate_scene`` call:
1. builds the provider request (prompt + style, references, continuity input)
2. waits for the provider to finish (poll deadline → ProviderTimeout)
3. downloads the clip and extracts first/last frames with FFmpeg
4. stores clip and frames under fixed per-scene keys

The whole chain runs inside BaseGenService.execute, so a retriable failure
at any step (timeout, network, download, upload) is retried once.
"""

import asyncio
import logging
import os
import tempfile
from dataclasses import dataclass, field
from typing import Any

from scenesmith.config import get_settings
from scenesmith.services import media
from scenesmith.services.base_gen_service import BaseGenService, GenServiceConfig
from scenesmith.services.continuity import ContinuityInputs
from scenesmith.services.providers import GenerationProvider, VideoRequest, get_provider
from scenesmith.services.storage import MediaStore, get_media_store

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class StyleParams:
    style: str | None = None
    mood: str | None = None
    color_palette: str | None = None
    pacing: str | None = None

    def suffix(self) -> str:
        parts = [
            f"{label}: {value}"
            for label, value in (
                ("Style", self.style),
                ("Mood", self.mood),
                ("Color palette", self.color_palette),
                ("Pacing", self.pacing),
            )
            if value
        ]
        return ". ".join(parts)


@dataclass
class SceneRequest:
    project_id: str
    scene_number: int
    prompt: str
    model_id: str
    aspect_ratio: str = "16:9"
    duration: float | None = None
    style: StyleParams = field(default_factory=StyleParams)
    continuity: ContinuityInputs = field(default_factory=ContinuityInputs)


@dataclass
class SceneClip:
    video_url: str
    first_frame_url: str
    last_frame_url: str


def compose_prompt(prompt: str, style: StyleParams) -> str:
    suffix = style.suffix()
    if not suffix:
        return prompt.strip()
    return f"{prompt.strip().rstrip('.')}. {suffix}."


class SceneGenerator(BaseGenService[SceneClip]):
    """Video generation for one scene on top of the configured provider."""

    service_name = "scene_gen"

    def __init__(
        self,
        provider: GenerationProvider | None = None,
        store: MediaStore | None = None,
        config: GenServiceConfig | None = None,
    ) -> None:
        super().__init__(config or GenServiceConfig(
            max_retries=settings.GENERATION_MAX_RETRIES,
            timeout=settings.SCENE_GENERATION_TIMEOUT,
        ))
        self._provider = provider
        self._store = store

    @property
    def provider(self) -> GenerationProvider:
        return self._provider or get_provider()

    @property
    def store(self) -> MediaStore:
        return self._store or get_media_store()

    async def generate_scene(self, request: SceneRequest) -> SceneClip:
        result = await self.execute(request=request)
        logger.info(
            "Scene %d of project=%s generated in %dms (retries=%d)",
            request.scene_number, request.project_id[:8], result.latency_ms, result.retries_used,
        )
        return result.data

    async def _generate(self, **kwargs: Any) -> SceneClip:
        request: SceneRequest = kwargs["request"]
        continuity = request.continuity
        video_request = VideoRequest(
            prompt=compose_prompt(request.prompt, request.style),
            model_id=request.model_id,
            aspect_ratio=request.aspect_ratio,
            duration=request.duration,
            start_image_url=continuity.start_image_url,
            reference_image_urls=continuity.provider_reference_urls,
            continue_from_video_url=continuity.previous_video_url,
        )
        logger.info(
            "Submitting scene %d (project=%s, continuity=%s, refs=%d)",
            request.scene_number, request.project_id[:8], continuity.kind,
            len(video_request.reference_image_urls),
        )
        output_url = await self.provider.generate_video(video_request, timeout=self.config.timeout)
        return await self._store_outputs(request, output_url)

    async def _store_outputs(self, request: SceneRequest, output_url: str) -> SceneClip:
        store = self.store
        stem = f"scene_{request.scene_number:02d}"
        with tempfile.TemporaryDirectory(prefix="scenesmith_") as tmp:
            clip_path = os.path.join(tmp, f"{stem}.mp4")
            first_path = os.path.join(tmp, f"{stem}_first.jpg")
            last_path = os.path.join(tmp, f"{stem}_last.jpg")

            await store.fetch_to_file(output_url, clip_path)
            await asyncio.to_thread(media.extract_first_last_frames, clip_path, first_path, last_path)

            clip = store.save_file(store.object_key(request.project_id, "scenes", f"{stem}.mp4"), clip_path)
            first = store.save_file(store.object_key(request.project_id, "frames", f"{stem}_first.jpg"), first_path)
            last = store.save_file(store.object_key(request.project_id, "frames", f"{stem}_last.jpg"), last_path)

        return SceneClip(video_url=clip.url, first_frame_url=first.url, last_frame_url=last.url)

    def _estimate_cost(self, **kwargs: Any) -> float:
        return 0.40


_scene_generator = SceneGenerator()


def get_scene_generator() -> SceneGenerator:
    """Return the singleton SceneGenerator for metrics access."""
    return _scene_generator
