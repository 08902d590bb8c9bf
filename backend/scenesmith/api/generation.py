from __future__ import annotations
"""Generation endpoints: script planning, single scenes, full runs, stitching,
images and music.

These routes run inline and return the generated URLs. Long runs started
from the UI go through POST /projects/{id}/generate (Celery) instead.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from scenesmith.api.deps import ensure_not_generating, get_owned_project, get_user_id, load_owned_project
from scenesmith.config import get_settings
from scenesmith.database import get_db
from scenesmith.errors import ValidationError
from scenesmith.models.project import Project
from scenesmith.models.scene import Scene, SceneStatus
from scenesmith.schemas.generation import (
    FrameUrls,
    GenerateAllRequest,
    GenerateAllResponse,
    GenerateImageRequest,
    GenerateImageResponse,
    GenerateMusicRequest,
    GenerateMusicResponse,
    GenerateScriptResponse,
    PlannedSceneRead,
    SceneGenerateRequest,
    SceneGenerateResponse,
    StitchRequest,
    StitchResponse,
    StyleFields,
)
from scenesmith.services.asset_generator import AssetGenerator, get_asset_generator, list_project_assets
from scenesmith.services.continuity import ContinuityInputs, check_contiguous
from scenesmith.services.music_gen import MusicGenerator, get_music_generator
from scenesmith.services.pipeline import PipelineCoordinator
from scenesmith.services.providers.base import MusicRequest
from scenesmith.services.repository import list_scenes, renumber_scenes, replace_with_planned_scenes
from scenesmith.services.scene_generator import SceneGenerator, SceneRequest, StyleParams, get_scene_generator
from scenesmith.services.script_planner import plan_script
from scenesmith.services.stitcher import Stitcher, get_stitcher

logger = logging.getLogger(__name__)
settings = get_settings()
router = APIRouter()


def get_coordinator() -> PipelineCoordinator:
    return PipelineCoordinator()


def _style_for(body: StyleFields, project: Project) -> StyleParams:
    return StyleParams(
        style=body.style or project.style,
        mood=body.mood or project.mood,
        color_palette=body.color_palette or project.color_palette,
        pacing=body.pacing or project.pacing,
    )


def _clear_clip(scene: Scene) -> None:
    scene.video_url = None
    scene.first_frame_url = None
    scene.last_frame_url = None
    scene.status = SceneStatus.PENDING.value
    scene.error_message = None


@router.post("/projects/{project_id}/generate-script", response_model=GenerateScriptResponse)
async def generate_script(project: Project = Depends(get_owned_project), db: AsyncSession = Depends(get_db)):
    """Plan the project's scenes, replacing any existing ones."""
    ensure_not_generating(project)
    plan = await plan_script(project.prompt, project.duration, style=project.style, mood=project.mood)
    await replace_with_planned_scenes(db, project.id, plan.scenes)
    project.script = plan.script
    await db.flush()
    logger.info("Script planned for project=%s: %d scenes (%s)", project.id[:8], len(plan.scenes), plan.source)
    return GenerateScriptResponse(
        script=plan.script,
        scenes=[PlannedSceneRead.model_validate(s) for s in plan.scenes],
    )


@router.post("/projects/{project_id}/scenes/generate", response_model=SceneGenerateResponse)
async def generate_scene(
    body: SceneGenerateRequest,
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
    generator: SceneGenerator = Depends(get_scene_generator),
):
    """Generate (or regenerate) one scene and store its clip on the scene row."""
    ensure_not_generating(project)
    scene_number = body.scene_index + 1
    scenes = {s.scene_number: s for s in await list_scenes(db, project.id)}
    if scene_number > len(scenes) + 1:
        raise ValidationError(f"Scene index {body.scene_index} leaves a gap after scene {len(scenes)}")
    existing = scenes.get(scene_number)

    continuity = ContinuityInputs(
        reference_image_urls=list(body.reference_images),
        use_reference_frame=body.use_reference_frame,
    )
    if scene_number > 1:
        if body.previous_scene_video_url:
            continuity.previous_video_url = body.previous_scene_video_url
        elif body.continuous and body.previous_scene_last_frame:
            continuity.previous_last_frame_url = body.previous_scene_last_frame

    duration = body.duration or (existing.duration if existing else None)
    clip = await generator.generate_scene(SceneRequest(
        project_id=project.id,
        scene_number=scene_number,
        prompt=body.prompt,
        model_id=body.video_model_id or project.video_model_id or settings.DEFAULT_VIDEO_MODEL,
        aspect_ratio=body.aspect_ratio or project.aspect_ratio,
        duration=duration,
        style=_style_for(body, project),
        continuity=continuity,
    ))

    scene = existing or Scene(project_id=project.id, scene_number=scene_number, selected_asset_ids=[])
    scene.prompt = body.prompt
    scene.duration = duration
    scene.extend_previous = bool(continuity.previous_video_url)
    scene.video_url = clip.video_url
    scene.first_frame_url = clip.first_frame_url
    scene.last_frame_url = clip.last_frame_url
    scene.status = SceneStatus.COMPLETED.value
    scene.error_message = None
    if existing is None:
        db.add(scene)
    await db.flush()
    return SceneGenerateResponse(
        video_url=clip.video_url,
        first_frame_url=clip.first_frame_url,
        last_frame_url=clip.last_frame_url,
    )


@router.post("/projects/{project_id}/scenes/generate-all", response_model=GenerateAllResponse)
async def generate_all(
    body: GenerateAllRequest,
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
    coordinator: PipelineCoordinator = Depends(get_coordinator),
):
    """Run the whole pipeline inline for the given scene list.

    Scenes whose prompt, assets and extend flag are unchanged keep their
    clip, so a re-run after a failure only regenerates what is missing.
    """
    ensure_not_generating(project)
    ordered = sorted(body.scenes, key=lambda s: s.scene_index)
    check_contiguous([s.scene_index + 1 for s in ordered])

    owned = {a.id for a in await list_project_assets(db, project.id)}
    foreign = sorted({a for s in ordered for a in s.selected_asset_ids if a not in owned})
    if foreign:
        raise ValidationError(f"Assets do not belong to this project: {', '.join(foreign)}")

    for key in ("aspect_ratio", "style", "mood", "color_palette", "pacing", "video_model_id", "music_url"):
        value = getattr(body, key)
        if value is not None:
            setattr(project, key, value)
    project.parallel = body.parallel
    project.continuous = body.continuous
    project.use_reference_frame = body.use_reference_frame

    existing = {s.scene_number: s for s in await list_scenes(db, project.id)}
    default_duration = min(project.duration / len(ordered), settings.MAX_SCENE_SECONDS)
    scenes: list[Scene] = []
    for item in ordered:
        number = item.scene_index + 1
        scene = existing.pop(number, None)
        duration = item.duration or (scene.duration if scene and scene.duration else default_duration)
        if scene is None:
            scene = Scene(project_id=project.id, scene_number=number, status=SceneStatus.PENDING.value)
            db.add(scene)
        elif (
            scene.prompt != item.prompt
            or list(scene.selected_asset_ids or []) != item.selected_asset_ids
            or bool(scene.extend_previous) != item.extend_previous
            or scene.duration != duration
        ):
            _clear_clip(scene)
        scene.prompt = item.prompt
        scene.selected_asset_ids = list(item.selected_asset_ids)
        scene.extend_previous = item.extend_previous
        scene.duration = duration
        scenes.append(scene)

    for stale in existing.values():
        await db.delete(stale)
    await db.flush()
    await renumber_scenes(db, scenes)
    # The coordinator works in its own sessions
    await db.commit()

    result = await coordinator.run(project.id, asset_url_overrides=body.asset_id_to_url_map)
    return GenerateAllResponse(
        final_video_url=result.final_video_url,
        scene_urls=result.scene_urls,
        frame_urls=[FrameUrls(**f) for f in result.frame_urls],
    )


@router.post("/projects/{project_id}/stitch", response_model=StitchResponse)
async def stitch_project(
    body: StitchRequest,
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
    stitcher: Stitcher = Depends(get_stitcher),
):
    """Re-stitch the completed clips in scene order; overwrites the final video."""
    ensure_not_generating(project)
    clip_urls = [s.video_url for s in await list_scenes(db, project.id) if s.video_url]
    music_url = body.music_url or project.music_url
    volume = body.music_volume if body.music_volume is not None else project.music_volume

    result = await stitcher.stitch(project.id, clip_urls, music_url, volume)
    project.final_video_url = result.video_url
    project.thumbnail_url = await stitcher.extract_thumbnail(project.id, result.video_url)
    if body.music_url:
        project.music_url = body.music_url
    if body.music_volume is not None:
        project.music_volume = body.music_volume
    await db.flush()
    return StitchResponse(
        success=True,
        video_url=result.video_url,
        scene_count=result.scene_count,
        has_music=result.has_music,
    )


@router.post("/generate-image", response_model=GenerateImageResponse)
async def generate_image(
    body: GenerateImageRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    generator: AssetGenerator = Depends(get_asset_generator),
):
    """Generate a reference image; with projectId it becomes a numbered project asset."""
    if body.project_id:
        project = await load_owned_project(db, body.project_id, user_id)
        ensure_not_generating(project)
    asset = await generator.generate_asset(
        body.prompt,
        body.image_model_id,
        body.aspect_ratio,
        body.project_id,
    )
    return GenerateImageResponse(
        image_url=asset.url,
        asset_id=asset.asset_id,
        asset_number=asset.asset_number,
    )


@router.post("/projects/{project_id}/generate-music", response_model=GenerateMusicResponse)
async def generate_music(
    body: GenerateMusicRequest,
    project: Project = Depends(get_owned_project),
    db: AsyncSession = Depends(get_db),
    generator: MusicGenerator = Depends(get_music_generator),
):
    ensure_not_generating(project)
    music_url = await generator.generate_music(project.id, MusicRequest(
        prompt=body.prompt,
        lyrics=body.lyrics,
        bitrate=body.bitrate,
        sample_rate=body.sample_rate,
        audio_format=body.audio_format,
    ))
    project.music_url = music_url
    await db.flush()
    return GenerateMusicResponse(music_url=music_url)
