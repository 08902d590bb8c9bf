from __future__ import annotations
"""Provider interface shared by the real and mock generation backends.

A provider turns a request into the URL of one finished artifact. Callers
download that URL into the object store; providers never touch the database.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass
class VideoRequest:
    """Everything a video provider receives for one scene clip."""
    prompt: str
    model_id: str
    aspect_ratio: str = "16:9"
    duration: float | None = None
    start_image_url: str | None = None
    reference_image_urls: list[str] = field(default_factory=list)
    continue_from_video_url: str | None = None


@dataclass
class ImageRequest:
    prompt: str
    model_id: str
    aspect_ratio: str = "16:9"


@dataclass
class MusicRequest:
    prompt: str = ""
    lyrics: str = ""
    bitrate: int = 256000
    sample_rate: int = 44100
    audio_format: str = "mp3"


class GenerationProvider(ABC):
    """Submit → poll → return output URL."""

    name: str = "provider"

    @abstractmethod
    async def generate_video(self, request: VideoRequest, *, timeout: float) -> str:
        ...

    @abstractmethod
    async def generate_image(self, request: ImageRequest, *, timeout: float) -> str:
        ...

    @abstractmethod
    async def generate_music(self, request: MusicRequest, *, timeout: float) -> str:
        ...

    async def aclose(self) -> None:
        """Release pooled connections, if any."""
