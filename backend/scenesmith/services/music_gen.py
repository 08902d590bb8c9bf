from __future__ import annotations
"""Music generation service: background track for the final video."""

import logging
import uuid
from typing import Any

from scenesmith.config import get_settings
from scenesmith.errors import ValidationError
from scenesmith.services.base_gen_service import BaseGenService, GenServiceConfig
from scenesmith.services.providers import GenerationProvider, MusicRequest, get_provider
from scenesmith.services.storage import MediaStore, StoredObject, get_media_store

logger = logging.getLogger(__name__)
settings = get_settings()

AUDIO_FORMATS = ("mp3", "wav", "pcm")


class MusicGenerator(BaseGenService[StoredObject]):

    service_name = "music_gen"

    def __init__(
        self,
        provider: GenerationProvider | None = None,
        store: MediaStore | None = None,
        config: GenServiceConfig | None = None,
    ) -> None:
        super().__init__(config or GenServiceConfig(
            max_retries=settings.GENERATION_MAX_RETRIES,
            timeout=settings.ASSET_GENERATION_TIMEOUT,
        ))
        self._provider = provider
        self._store = store

    @property
    def provider(self) -> GenerationProvider:
        return self._provider or get_provider()

    @property
    def store(self) -> MediaStore:
        return self._store or get_media_store()

    async def _generate(self, **kwargs: Any) -> StoredObject:
        request: MusicRequest = kwargs["request"]
        output_url = await self.provider.generate_music(request, timeout=self.config.timeout)
        data = await self.store.fetch_bytes(output_url)
        key = self.store.object_key(
            kwargs["project_id"], "music", f"{uuid.uuid4().hex}.{request.audio_format}",
        )
        return self.store.save_bytes(key, data)

    def _estimate_cost(self, **kwargs: Any) -> float:
        return 0.035

    async def generate_music(self, project_id: str, request: MusicRequest) -> str:
        """Generate a track and return its object store URL."""
        if not (request.lyrics or request.prompt):
            raise ValidationError("Music generation needs lyrics or a prompt")
        if request.audio_format not in AUDIO_FORMATS:
            raise ValidationError(f"Unsupported audio format: {request.audio_format}")
        result = await self.execute(request=request, project_id=project_id)
        logger.info("Music generated for project=%s: %s", project_id[:8], result.data.key)
        return result.data.url


_music_generator = MusicGenerator()


def get_music_generator() -> MusicGenerator:
    """Return the singleton MusicGenerator for metrics access."""
    return _music_generator
