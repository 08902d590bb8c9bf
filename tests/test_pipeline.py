"""Tests for scenesmith/services/pipeline.py

End-to-end coordinator runs against the SQLite test database, with a fake
provider and the byte-level FFmpeg fakes from conftest.
"""

import itertools
import json
import threading

import pytest
from sqlalchemy import update

from scenesmith.database import async_session_factory
from scenesmith.errors import (
    MediaProcessingError,
    PipelineCancelled,
    PipelineTimeout,
    ProviderRejected,
    SceneGenerationError,
    ValidationError,
)
from scenesmith.models.project import Project, ProjectStatus
from scenesmith.models.scene import Scene
from scenesmith.services.asset_generator import AssetGenerator
from scenesmith.services.base_gen_service import GenServiceConfig
from scenesmith.services.pipeline import PipelineConfig, PipelineCoordinator
from scenesmith.services.repository import PipelineStore
from scenesmith.services.scene_generator import SceneGenerator
from scenesmith.services.stitcher import Stitcher


class RecordingStitcher(Stitcher):
    def __init__(self, store, log):
        super().__init__(store)
        self.log = log

    async def stitch(self, project_id, clip_urls, audio_url=None, volume=None):
        self.log.append(("stitch", ",".join(clip_urls)))
        return await super().stitch(project_id, clip_urls, audio_url, volume)


async def make_project(scenes=(), **fields) -> str:
    values = {"owner_id": "local", "title": "Test", "prompt": "A lighthouse in a storm", "duration": 30}
    values.update(fields)
    async with async_session_factory() as session:
        project = Project(**values)
        session.add(project)
        await session.flush()
        for n, (prompt, extend) in enumerate(scenes, start=1):
            session.add(Scene(
                project_id=project.id, scene_number=n, prompt=prompt,
                extend_previous=extend, selected_asset_ids=[],
            ))
        await session.commit()
        return project.id


@pytest.fixture
def make_coordinator(fake_provider, store):
    def _make(scene_timeout=5.0, **kwargs):
        return PipelineCoordinator(
            scene_generator=SceneGenerator(
                provider=fake_provider, store=store,
                config=GenServiceConfig(max_retries=1, timeout=scene_timeout),
            ),
            asset_generator=AssetGenerator(provider=fake_provider, store=store),
            stitcher=RecordingStitcher(store, fake_provider.log),
            publish=False,
            **kwargs,
        )
    return _make


THREE_SCENES = [("scene one", False), ("scene two", True), ("scene three", False)]


class TestSequentialRun:

    async def test_example_call_order(self, make_coordinator, fake_provider, store):
        pid = await make_project(THREE_SCENES, asset_prompts=["red kite", "old lighthouse"])
        result = await make_coordinator().run(pid)

        kinds = [kind for kind, _ in fake_provider.log]
        assert kinds == ["image", "image", "video", "video", "video", "stitch"]
        assert {p for k, p in fake_provider.log[:2]} == {"red kite", "old lighthouse"}
        prompts = [p for k, p in fake_provider.log if k == "video"]
        assert ["scene one" in prompts[0], "scene two" in prompts[1], "scene three" in prompts[2]] == [True] * 3

        # Scene 2 extends scene 1's stored clip
        assert fake_provider.video_requests[1].continue_from_video_url == f"/media/{pid}/scenes/scene_01.mp4"
        assert fake_provider.video_requests[2].continue_from_video_url is None

        assert result.status == "completed"
        assert result.final_video_url == f"/media/{pid}/final/final_output.mp4"
        assert result.scene_urls == [f"/media/{pid}/scenes/scene_0{n}.mp4" for n in (1, 2, 3)]
        assert result.frame_urls[0]["last"] == f"/media/{pid}/frames/scene_01_last.jpg"

        state = await PipelineStore().load(pid)
        assert state.project.status == ProjectStatus.COMPLETED.value
        assert state.project.progress_percent == 100
        assert state.project.progress_stage == "completed"
        assert [s.status for s in state.scenes] == ["completed"] * 3
        assert [a.asset_number for a in state.assets] == [1, 2]
        checkpoint = json.loads(state.project.pipeline_checkpoint)
        assert checkpoint["completedStages"] == ["plan", "assets", "scenes", "stitch", "audio", "finalize"]
        assert store.exists(f"{pid}/final/final_output.mp4")
        assert result.thumbnail_url == f"/media/{pid}/final/thumbnail.jpg"
        assert state.project.thumbnail_url == result.thumbnail_url
        assert store.exists(f"{pid}/final/thumbnail.jpg")

    async def test_scene_timing_out_twice_fails_run(self, make_coordinator, fake_provider):
        pid = await make_project(THREE_SCENES)
        fake_provider.hang.add("scene two")

        with pytest.raises(SceneGenerationError, match="Scene 2 failed"):
            await make_coordinator(scene_timeout=0.05).run(pid)

        prompts = [r.prompt for r in fake_provider.video_requests]
        assert len(prompts) == 3
        assert "scene two" in prompts[1] and "scene two" in prompts[2]
        assert not any("scene three" in p for p in prompts)

        state = await PipelineStore().load(pid)
        assert state.project.status == ProjectStatus.FAILED.value
        assert "Scene 2 failed" in state.project.error_message
        assert [s.status for s in state.scenes] == ["completed", "failed", "skipped"]
        assert "deadline" in state.scenes[1].error_message
        assert "0.05s" in state.scenes[1].error_message

    async def test_plans_scenes_when_project_has_none(self, make_coordinator, fake_provider):
        pid = await make_project(duration=10)
        await make_coordinator().run(pid)

        state = await PipelineStore().load(pid)
        assert [s.scene_number for s in state.scenes] == [1, 2, 3]
        assert state.project.script.startswith("Scene 1")
        assert len(fake_provider.video_requests) == 3

    async def test_music_muxed_after_stitch(self, make_coordinator, store):
        music = store.save_bytes("transient/music/track.mp3", b"mp3")
        pid = await make_project(THREE_SCENES[:1], music_url=music.url, music_volume=0.8)
        await make_coordinator().run(pid)

        with open(store.local_path(f"{pid}/final/final_output.mp4"), "rb") as f:
            assert f.read().endswith(b"+audio@0.80")


class TestParallelRun:

    async def test_dependent_of_failed_scene_skipped(self, make_coordinator, fake_provider):
        pid = await make_project(THREE_SCENES, parallel=True)
        fake_provider.failures["scene one"] = ProviderRejected("policy violation")

        with pytest.raises(SceneGenerationError) as exc_info:
            await make_coordinator().run(pid)
        assert "skipped scenes 2" in exc_info.value.message

        state = await PipelineStore().load(pid)
        assert [s.status for s in state.scenes] == ["failed", "skipped", "completed"]
        assert state.scenes[2].video_url is not None
        assert state.project.status == ProjectStatus.FAILED.value

    async def test_rerun_resumes_from_existing_clips(self, make_coordinator, fake_provider):
        pid = await make_project(THREE_SCENES, parallel=True)
        fake_provider.failures["scene one"] = [ProviderRejected("policy violation")]
        with pytest.raises(SceneGenerationError):
            await make_coordinator().run(pid)
        calls_after_first_run = len(fake_provider.video_requests)

        result = await make_coordinator().run(pid)

        resumed = [r.prompt for r in fake_provider.video_requests[calls_after_first_run:]]
        assert len(resumed) == 2
        assert not any("scene three" in p for p in resumed)
        assert result.status == "completed"


class TestRunGuards:

    async def test_rejects_project_already_generating(self, make_coordinator):
        pid = await make_project(THREE_SCENES, status=ProjectStatus.GENERATING.value)
        with pytest.raises(ValidationError):
            await make_coordinator().run(pid)

    async def test_cancel_at_stage_boundary(self, make_coordinator, fake_provider):
        pid = await make_project(THREE_SCENES)
        with pytest.raises(PipelineCancelled):
            await make_coordinator(cancel_check=lambda: True).run(pid)

        state = await PipelineStore().load(pid)
        assert state.project.status == ProjectStatus.FAILED.value
        assert state.project.progress_stage == "cancelled"
        assert fake_provider.video_requests == []

    async def test_redis_calls_leave_the_event_loop(self, make_coordinator, monkeypatch):
        from scenesmith.services import pipeline, pubsub

        loop_thread = threading.get_ident()
        threads = {"cancel": set(), "publish": set(), "clear": set()}

        def cancel_check():
            threads["cancel"].add(threading.get_ident())
            return False

        monkeypatch.setattr(pubsub, "_publish_sync", lambda pid, msg: threads["publish"].add(threading.get_ident()))
        monkeypatch.setattr(pipeline, "clear_cancel", lambda pid: threads["clear"].add(threading.get_ident()))
        pid = await make_project(THREE_SCENES[:1])

        coordinator = make_coordinator(cancel_check=cancel_check)
        coordinator.publish = True
        await coordinator.run(pid)

        assert all(threads.values())
        assert loop_thread not in set().union(*threads.values())

    async def test_failed_thumbnail_keeps_final_video(self, make_coordinator, monkeypatch):
        from scenesmith.services import media

        def broken_frame(video_path, output_path, timestamp):
            raise MediaProcessingError("no frame")

        monkeypatch.setattr(media, "extract_frame", broken_frame)
        pid = await make_project(THREE_SCENES[:1])
        result = await make_coordinator().run(pid)

        assert result.thumbnail_url is None
        state = await PipelineStore().load(pid)
        assert state.project.status == ProjectStatus.COMPLETED.value
        assert state.project.thumbnail_url is None

    async def test_whole_run_timeout(self, make_coordinator, fake_provider):
        pid = await make_project(THREE_SCENES)
        clock = itertools.count(0, 20)
        with pytest.raises(PipelineTimeout):
            await make_coordinator(timeout=10, clock=lambda: next(clock)).run(pid)
        assert fake_provider.video_requests == []

    async def test_foreign_asset_rejected_before_generation(self, make_coordinator, fake_provider):
        pid = await make_project(THREE_SCENES)
        async with async_session_factory() as session:
            await session.execute(
                update(Scene)
                .where(Scene.project_id == pid, Scene.scene_number == 2)
                .values(selected_asset_ids=["not-ours"])
            )
            await session.commit()

        with pytest.raises(ValidationError):
            await make_coordinator().run(pid)
        assert fake_provider.video_requests == []


class TestPipelineConfig:

    async def test_invalid_project_configuration(self):
        pid = await make_project(duration=0)
        state = await PipelineStore().load(pid)
        with pytest.raises(ValidationError, match="duration"):
            PipelineConfig.from_project(state.project)
