from __future__ import annotations
"""Metrics API: generation service usage statistics."""

from fastapi import APIRouter

from scenesmith.services.asset_generator import get_asset_generator
from scenesmith.services.base_gen_service import BaseGenService
from scenesmith.services.music_gen import get_music_generator
from scenesmith.services.scene_generator import get_scene_generator

router = APIRouter()

_service_instances: dict[str, BaseGenService] = {}


def register_service(service: BaseGenService) -> None:
    """Register a generation service instance for metrics tracking."""
    _service_instances[service.service_name] = service


for _service in (get_scene_generator(), get_asset_generator(), get_music_generator()):
    register_service(_service)


@router.get("/generation")
async def generation_metrics():
    """Return usage statistics for all registered generation services."""
    return {"services": [svc.get_metrics() for svc in _service_instances.values()]}
