"""Generation provider implementations.

Each provider implements the async generation pattern:
  POST create prediction → poll status → return output URL
"""

from __future__ import annotations

from scenesmith.config import get_settings
from scenesmith.services.providers.base import (
    GenerationProvider,
    ImageRequest,
    MusicRequest,
    VideoRequest,
)

_provider: GenerationProvider | None = None


def get_provider() -> GenerationProvider:
    """Return the process-wide provider (mock when USE_MOCK_API is set)."""
    global _provider
    if _provider is None:
        settings = get_settings()
        if settings.USE_MOCK_API:
            from scenesmith.services.providers.mock import MockProvider
            _provider = MockProvider()
        else:
            from scenesmith.services.providers.replicate import ReplicateProvider
            _provider = ReplicateProvider()
    return _provider


def set_provider(provider: GenerationProvider | None) -> None:
    """Override the process-wide provider (tests, workers)."""
    global _provider
    _provider = provider


__all__ = [
    "GenerationProvider",
    "ImageRequest",
    "MusicRequest",
    "VideoRequest",
    "get_provider",
    "set_provider",
]
