from __future__ import annotations
"""Pipeline coordinator: one end-to-end generation run for a project.

Stage order (each gated on the previous):
    plan → assets → scenes → stitch → audio → finalize

CRITICAL CONSTRAINTS:
1. The coordinator is the only writer of the ProgressTracker. Scene tasks
   report through an asyncio.Queue; a consumer task folds events in.
2. Cancellation and the whole-run timeout are checked between stages only;
   in-flight provider calls always run to completion or to their own deadline.
3. Re-running a project resumes: scenes that already have a clip and asset
   prompts that already have an asset are not generated again.
4. Any stage failure marks the project failed with the error message and
   aborts the remaining stages. There is no automatic pipeline retry.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from scenesmith.config import get_settings
from scenesmith.errors import (
    PersistenceWarning,
    PipelineCancelled,
    PipelineTimeout,
    SceneGenerationError,
    SceneSmithError,
    ValidationError,
)
from scenesmith.models.asset import MAX_ASSETS_PER_PROJECT
from scenesmith.models.project import Project, ProjectStatus
from scenesmith.models.scene import SceneStatus
from scenesmith.services import pubsub
from scenesmith.services.asset_generator import AssetGenerator, get_asset_generator
from scenesmith.services.cancellation import CancelCheck, clear_cancel, local_cancel_check
from scenesmith.services.continuity import (
    ContinuityFlags,
    EdgeKind,
    SceneSpec,
    build_scene_graph,
    resolve_inputs,
)
from scenesmith.services.progress import ProgressSnapshot, ProgressTracker, Stage
from scenesmith.services.repository import PipelineStore, ProjectState
from scenesmith.services.scene_generator import (
    SceneGenerator,
    SceneRequest,
    StyleParams,
    get_scene_generator,
)
from scenesmith.services.scheduler import SceneEvent, SceneOutcome, run_scenes
from scenesmith.services.script_planner import ScriptPlan, plan_script
from scenesmith.services.stitcher import Stitcher, get_stitcher

logger = logging.getLogger(__name__)
settings = get_settings()

Planner = Callable[..., Awaitable[ScriptPlan]]


class PipelineConfig(BaseModel):
    """Every option a run honours, validated once when the run starts."""

    model_config = ConfigDict(extra="forbid")

    project_id: str
    prompt: str = ""
    duration: float = Field(default=30, gt=0, le=600)
    aspect_ratio: str = "16:9"
    style: str | None = None
    mood: str | None = None
    color_palette: str | None = None
    pacing: str | None = None
    video_model_id: str = Field(default_factory=lambda: settings.DEFAULT_VIDEO_MODEL)
    image_model_id: str = Field(default_factory=lambda: settings.DEFAULT_IMAGE_MODEL)
    use_reference_frame: bool = False
    continuous: bool = False
    parallel: bool = False
    asset_prompts: list[str] = Field(default_factory=list, max_length=MAX_ASSETS_PER_PROJECT)
    music_url: str | None = None
    music_volume: float = Field(default_factory=lambda: settings.DEFAULT_MUSIC_VOLUME, ge=0, le=2)
    concurrency_limit: int = Field(default_factory=lambda: settings.SCENE_CONCURRENCY_LIMIT, ge=1)

    @classmethod
    def from_project(cls, project: Project) -> "PipelineConfig":
        values: dict[str, Any] = {
            "project_id": project.id,
            "prompt": project.prompt or "",
            "duration": project.duration,
            "aspect_ratio": project.aspect_ratio or "16:9",
            "style": project.style,
            "mood": project.mood,
            "color_palette": project.color_palette,
            "pacing": project.pacing,
            "use_reference_frame": bool(project.use_reference_frame),
            "continuous": bool(project.continuous),
            "parallel": bool(project.parallel),
            "asset_prompts": [p for p in (project.asset_prompts or []) if p and str(p).strip()],
            "music_url": project.music_url,
        }
        if project.video_model_id:
            values["video_model_id"] = project.video_model_id
        if project.image_model_id:
            values["image_model_id"] = project.image_model_id
        if project.music_volume is not None:
            values["music_volume"] = project.music_volume
        try:
            return cls(**values)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field_name = ".".join(str(p) for p in first.get("loc", ()))
            raise ValidationError(f"Invalid project configuration ({field_name}): {first.get('msg')}") from e

    @property
    def flags(self) -> ContinuityFlags:
        return ContinuityFlags(continuous=self.continuous, use_reference_frame=self.use_reference_frame)

    @property
    def style_params(self) -> StyleParams:
        return StyleParams(
            style=self.style, mood=self.mood, color_palette=self.color_palette, pacing=self.pacing,
        )


@dataclass
class PipelineRun:
    """In-memory state of one run; serialized as the project checkpoint."""
    project_id: str
    stage: str = Stage.PLAN.value
    percent: int = 0
    scene_status: dict[int, str] = field(default_factory=dict)
    completed_stages: list[str] = field(default_factory=list)
    error: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None

    def to_checkpoint(self) -> dict[str, Any]:
        return {
            "projectId": self.project_id,
            "stage": self.stage,
            "percent": self.percent,
            "completedStages": list(self.completed_stages),
            "scenes": {str(k): v for k, v in sorted(self.scene_status.items())},
            "error": self.error,
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass
class PipelineResult:
    project_id: str
    status: str
    final_video_url: str | None = None
    thumbnail_url: str | None = None
    scene_urls: list[str] = field(default_factory=list)
    frame_urls: list[dict[str, str | None]] = field(default_factory=list)
    error: str | None = None


async def _publish_progress(snapshot: ProgressSnapshot) -> None:
    await asyncio.to_thread(pubsub.publish_pipeline_progress, snapshot.project_id, snapshot.to_dict())


class PipelineCoordinator:
    """Sequences the stages of a run and owns its progress."""

    def __init__(
        self,
        *,
        store: PipelineStore | None = None,
        scene_generator: SceneGenerator | None = None,
        asset_generator: AssetGenerator | None = None,
        stitcher: Stitcher | None = None,
        planner: Planner | None = None,
        cancel_check: CancelCheck | None = None,
        timeout: float | None = None,
        publish: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store or PipelineStore()
        self.scene_generator = scene_generator or get_scene_generator()
        self.asset_generator = asset_generator or get_asset_generator()
        self.stitcher = stitcher or get_stitcher()
        self.planner = planner or plan_script
        self.cancel_check = cancel_check
        self.timeout = settings.PIPELINE_TIMEOUT if timeout is None else timeout
        self.publish = publish
        self.clock = clock

    # -- entry point ---------------------------------------------------------

    async def run(
        self,
        project_id: str,
        *,
        asset_url_overrides: dict[str, str] | None = None,
    ) -> PipelineResult:
        """Run every stage for a project; raises the triggering error on failure."""
        state = await self.store.load(project_id)
        if state.project.status == ProjectStatus.GENERATING.value:
            raise ValidationError("A generation run is already in progress for this project")
        config = PipelineConfig.from_project(state.project)

        run = PipelineRun(project_id=project_id)
        tracker = ProgressTracker(project_id, sinks=[self._progress_sink(run)])
        if self.publish:
            tracker.add_sink(_publish_progress)
        cancel_check = self.cancel_check or local_cancel_check(project_id)
        started = self.clock()

        await self.store.begin_run(project_id)
        await self._notify_project(project_id, ProjectStatus.GENERATING.value)
        logger.info(
            "Pipeline started for project=%s (%s, continuous=%s, scenes=%d)",
            project_id[:8], "parallel" if config.parallel else "sequential",
            config.continuous, len(state.scenes),
        )

        try:
            await self._checkpoint_gate(cancel_check, started)
            state = await self._stage_plan(state, config, tracker, run)

            await self._checkpoint_gate(cancel_check, started)
            state = await self._stage_assets(state, config, tracker, run)

            await self._checkpoint_gate(cancel_check, started)
            specs = await self._stage_scenes(state, config, tracker, run, asset_url_overrides or {})

            await self._checkpoint_gate(cancel_check, started)
            final_url = await self._stage_stitch(specs, config, tracker, run)

            await self._checkpoint_gate(cancel_check, started)
            final_url = await self._stage_audio(final_url, len(specs), config, tracker, run)

            await self._checkpoint_gate(cancel_check, started)
            await tracker.enter(Stage.FINALIZE, "Saving final video")
            thumbnail_url = await self.stitcher.extract_thumbnail(project_id, final_url)
            await self.store.finish_run(project_id, final_url, thumbnail_url)
            run.finished_at = datetime.now(timezone.utc)
            await self._close_stage(run, Stage.FINALIZE)
            await tracker.complete()
        except SceneSmithError as e:
            await self._record_failure(run, tracker, e.message, cancelled=isinstance(e, PipelineCancelled))
            raise
        except Exception as e:
            logger.exception("Pipeline crashed for project=%s", project_id[:8])
            await self._record_failure(run, tracker, f"Unexpected error: {e}")
            raise
        finally:
            await asyncio.to_thread(clear_cancel, project_id)

        await self._notify_project(project_id, ProjectStatus.COMPLETED.value)
        logger.info("Pipeline completed for project=%s: %s", project_id[:8], final_url)
        ordered = [specs[n] for n in sorted(specs)]
        return PipelineResult(
            project_id=project_id,
            status=ProjectStatus.COMPLETED.value,
            final_video_url=final_url,
            thumbnail_url=thumbnail_url,
            scene_urls=[s.video_url or "" for s in ordered],
            frame_urls=[{"first": s.first_frame_url, "last": s.last_frame_url} for s in ordered],
        )

    # -- stage helpers ---------------------------------------------------------

    async def _checkpoint_gate(self, cancel_check: CancelCheck, started: float) -> None:
        # cancel_check may block on Redis
        if await asyncio.to_thread(cancel_check):
            raise PipelineCancelled("Generation cancelled")
        if self.timeout and self.clock() - started > self.timeout:
            raise PipelineTimeout(f"Generation exceeded the {self.timeout:g}s time limit")

    def _progress_sink(self, run: PipelineRun):
        async def _sink(snapshot: ProgressSnapshot) -> None:
            run.stage = snapshot.stage
            run.percent = snapshot.percent
            await self.store.save_progress(snapshot)
        return _sink

    async def _close_stage(self, run: PipelineRun, stage: Stage) -> None:
        run.completed_stages.append(stage.value)
        await self.store.save_checkpoint(run.project_id, run.to_checkpoint())

    async def _record_failure(
        self, run: PipelineRun, tracker: ProgressTracker, message: str, *, cancelled: bool = False,
    ) -> None:
        run.error = message
        run.finished_at = datetime.now(timezone.utc)
        logger.error("Pipeline failed for project=%s at %s: %s", run.project_id[:8], run.stage, message)
        await tracker.fail(message, cancelled=cancelled)
        await self.store.fail_run(run.project_id, message)
        await self.store.save_checkpoint(run.project_id, run.to_checkpoint())
        await self._notify_project(run.project_id, ProjectStatus.FAILED.value, message)

    async def _notify_project(self, project_id: str, status: str, error: str | None = None) -> None:
        if self.publish:
            await asyncio.to_thread(pubsub.publish_project_update, project_id, status, error)

    async def _stage_plan(
        self, state: ProjectState, config: PipelineConfig, tracker: ProgressTracker, run: PipelineRun,
    ) -> ProjectState:
        if state.scenes:
            await tracker.enter(Stage.PLAN, f"Using {len(state.scenes)} existing scenes")
        else:
            await tracker.enter(Stage.PLAN, "Planning scenes")
            plan = await self.planner(
                config.prompt, config.duration, style=config.style, mood=config.mood,
            )
            await self.store.save_plan(config.project_id, plan.script, plan.scenes)
            logger.info(
                "Planned %d scenes for project=%s (%s)", len(plan.scenes), config.project_id[:8], plan.source,
            )
            state = await self.store.load(config.project_id)
        await tracker.advance(1.0)
        await self._close_stage(run, Stage.PLAN)
        return state

    async def _stage_assets(
        self, state: ProjectState, config: PipelineConfig, tracker: ProgressTracker, run: PipelineRun,
    ) -> ProjectState:
        existing = {a.prompt for a in state.assets if a.prompt}
        missing = [p for p in dict.fromkeys(config.asset_prompts) if p not in existing]
        await tracker.enter(Stage.ASSETS, f"Generating {len(missing)} assets" if missing else "Assets ready")

        if missing:
            semaphore = asyncio.Semaphore(min(settings.ASSET_CONCURRENCY_LIMIT, MAX_ASSETS_PER_PROJECT))
            done = 0

            async def _one(prompt: str):
                nonlocal done
                async with semaphore:
                    asset = await self.asset_generator.generate_asset(
                        prompt, config.image_model_id, config.aspect_ratio, config.project_id,
                    )
                done += 1
                await tracker.advance(done / len(missing), f"Generated {done}/{len(missing)} assets")
                return asset

            # Siblings are allowed to finish before the first failure is raised
            results = await asyncio.gather(*(_one(p) for p in missing), return_exceptions=True)
            failures = [r for r in results if isinstance(r, BaseException)]
            if failures:
                raise failures[0]
            state = await self.store.load(config.project_id)

        await tracker.advance(1.0)
        await self._close_stage(run, Stage.ASSETS)
        return state

    async def _stage_scenes(
        self,
        state: ProjectState,
        config: PipelineConfig,
        tracker: ProgressTracker,
        run: PipelineRun,
        asset_url_overrides: dict[str, str],
    ) -> dict[int, SceneSpec]:
        asset_urls = {a.id: a.url for a in state.assets}
        for asset_id, url in asset_url_overrides.items():
            if asset_id in asset_urls and url:
                asset_urls[asset_id] = url

        specs = {
            s.scene_number: SceneSpec(
                scene_number=s.scene_number,
                prompt=s.prompt,
                duration=s.duration,
                selected_asset_ids=list(s.selected_asset_ids or []),
                extend_previous=bool(s.extend_previous),
                scene_id=s.id,
                video_url=s.video_url,
                first_frame_url=s.first_frame_url,
                last_frame_url=s.last_frame_url,
            )
            for s in state.scenes
        }
        if not specs:
            raise ValidationError("Project has no scenes to generate")
        graph = build_scene_graph(list(specs.values()), config.flags)
        for spec in specs.values():
            # Fail before any generation if a scene references a foreign asset
            resolve_inputs(spec, None, config.flags, asset_urls)

        total = len(specs)
        await tracker.enter(Stage.SCENES, f"Generating {total} scenes")

        async def runner(n: int) -> SceneSpec:
            spec = specs[n]
            if spec.has_clip:
                return spec
            previous = specs.get(n - 1)
            for dep in graph.dependencies(n):
                ready = previous is not None and (
                    previous.video_url if dep.kind == EdgeKind.CLIP else previous.last_frame_url
                )
                if not ready:
                    raise SceneGenerationError(f"Scene {n} started before scene {dep.predecessor} was ready")

            inputs = resolve_inputs(spec, previous, config.flags, asset_urls)
            await self._write_scene(spec, status=SceneStatus.GENERATING.value, error_message=None)
            try:
                clip = await self.scene_generator.generate_scene(SceneRequest(
                    project_id=config.project_id,
                    scene_number=n,
                    prompt=spec.prompt,
                    model_id=config.video_model_id,
                    aspect_ratio=config.aspect_ratio,
                    duration=spec.duration,
                    style=config.style_params,
                    continuity=inputs,
                ))
            except Exception as e:
                await self._write_scene(
                    spec, status=SceneStatus.FAILED.value,
                    error_message=getattr(e, "message", None) or str(e),
                )
                raise

            spec.video_url = clip.video_url
            spec.first_frame_url = clip.first_frame_url
            spec.last_frame_url = clip.last_frame_url
            await self._write_scene(
                spec,
                status=SceneStatus.COMPLETED.value,
                video_url=clip.video_url,
                first_frame_url=clip.first_frame_url,
                last_frame_url=clip.last_frame_url,
                error_message=None,
            )
            return spec

        queue: asyncio.Queue = asyncio.Queue()
        consumer = asyncio.create_task(self._consume_scene_events(queue, specs, tracker, run, total))
        try:
            outcomes = await run_scenes(
                graph, runner, parallel=config.parallel, limit=config.concurrency_limit, events=queue,
            )
        finally:
            queue.put_nowait(None)
            await consumer

        self._raise_for_scene_failures(outcomes)
        await tracker.advance(1.0, f"All {total} scenes generated")
        await self._close_stage(run, Stage.SCENES)
        return specs

    async def _consume_scene_events(
        self,
        queue: asyncio.Queue,
        specs: dict[int, SceneSpec],
        tracker: ProgressTracker,
        run: PipelineRun,
        total: int,
    ) -> None:
        finished: set[int] = set()
        while True:
            event: SceneEvent | None = await queue.get()
            if event is None:
                return
            status = event.status.value
            run.scene_status[event.scene_number] = status
            if event.status == SceneStatus.SKIPPED:
                await self._write_scene(specs[event.scene_number], status=status, error_message=event.error)
            if event.status != SceneStatus.GENERATING:
                finished.add(event.scene_number)
            await tracker.scene_status(event.scene_number, status)
            if event.status in (SceneStatus.COMPLETED, SceneStatus.FAILED, SceneStatus.SKIPPED):
                await tracker.advance(len(finished) / total, f"Scene {event.scene_number} {status}")
            if self.publish:
                await asyncio.to_thread(
                    pubsub.publish_scene_update, run.project_id, event.scene_number, status,
                )

    async def _write_scene(self, spec: SceneSpec, **fields: Any) -> None:
        if not spec.scene_id:
            return
        try:
            await self.store.update_scene(spec.scene_id, **fields)
        except PersistenceWarning as e:
            logger.warning("%s", e)

    @staticmethod
    def _raise_for_scene_failures(outcomes: dict[int, SceneOutcome]) -> None:
        failed = [o for o in outcomes.values() if o.status == SceneStatus.FAILED]
        skipped = [o for o in outcomes.values() if o.status == SceneStatus.SKIPPED]
        if not failed and not skipped:
            return
        parts = [f"Scene {o.scene_number} failed: {o.error}" for o in failed]
        if skipped:
            parts.append("skipped scenes " + ", ".join(str(o.scene_number) for o in skipped))
        raise SceneGenerationError("; ".join(parts))

    async def _stage_stitch(
        self, specs: dict[int, SceneSpec], config: PipelineConfig, tracker: ProgressTracker, run: PipelineRun,
    ) -> str:
        clip_urls = [specs[n].video_url for n in sorted(specs)]
        await tracker.enter(Stage.STITCH, f"Stitching {len(clip_urls)} clips")
        result = await self.stitcher.stitch(config.project_id, clip_urls)
        await tracker.advance(1.0)
        await self._close_stage(run, Stage.STITCH)
        return result.video_url

    async def _stage_audio(
        self, video_url: str, scene_count: int, config: PipelineConfig,
        tracker: ProgressTracker, run: PipelineRun,
    ) -> str:
        if not config.music_url:
            await tracker.enter(Stage.AUDIO, "No music track, skipping")
        else:
            await tracker.enter(Stage.AUDIO, "Adding music")
            result = await self.stitcher.add_audio(
                config.project_id, video_url, config.music_url, config.music_volume, scene_count,
            )
            video_url = result.video_url
        await tracker.advance(1.0)
        await self._close_stage(run, Stage.AUDIO)
        return video_url
