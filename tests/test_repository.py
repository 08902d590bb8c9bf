"""Tests for scenesmith/services/repository.py"""

from datetime import timedelta

import pytest

from scenesmith.database import async_session_factory
from scenesmith.errors import NotFoundError
from scenesmith.models.project import Project, ProjectStatus
from scenesmith.models.scene import Scene, SceneStatus
from scenesmith.services.progress import ProgressSnapshot
from scenesmith.services.repository import (
    PipelineStore,
    list_scenes,
    recover_interrupted_runs,
    renumber_scenes,
    replace_with_planned_scenes,
    utcnow,
)
from scenesmith.services.script_planner import PlannedScene


async def make_project(durations=(), **fields) -> str:
    values = {"owner_id": "local", "title": "Repo", "prompt": "A quiet forest", "duration": 30}
    values.update(fields)
    async with async_session_factory() as session:
        project = Project(**values)
        session.add(project)
        await session.flush()
        for n, duration in enumerate(durations, start=1):
            session.add(Scene(
                project_id=project.id, scene_number=n, prompt=f"scene {n}",
                duration=duration, selected_asset_ids=[],
            ))
        await session.commit()
        return project.id


class TestRenumberScenes:

    async def test_reversed_order_gets_contiguous_numbers_and_timeline(self):
        pid = await make_project([4.0, 6.0, 5.0])
        async with async_session_factory() as session:
            scenes = await list_scenes(session, pid)
            await renumber_scenes(session, list(reversed(scenes)))
            await session.commit()

        async with async_session_factory() as session:
            scenes = await list_scenes(session, pid)
        assert [s.prompt for s in scenes] == ["scene 3", "scene 2", "scene 1"]
        assert [s.scene_number for s in scenes] == [1, 2, 3]
        assert [(s.start_time, s.end_time) for s in scenes] == [(0.0, 5.0), (5.0, 11.0), (11.0, 15.0)]

    async def test_gap_closed_after_delete(self):
        pid = await make_project([5.0, 5.0, 5.0])
        async with async_session_factory() as session:
            scenes = await list_scenes(session, pid)
            await session.delete(scenes[0])
            await session.flush()
            await renumber_scenes(session, await list_scenes(session, pid))
            await session.commit()

        async with async_session_factory() as session:
            scenes = await list_scenes(session, pid)
        assert [(s.scene_number, s.prompt) for s in scenes] == [(1, "scene 2"), (2, "scene 3")]


class TestReplaceWithPlannedScenes:

    async def test_existing_scenes_replaced(self):
        pid = await make_project([5.0, 5.0, 5.0, 5.0])
        planned = [
            PlannedScene(scene_number=1, prompt="open", duration=6.0, start_time=0.0, end_time=6.0),
            PlannedScene(scene_number=2, prompt="close", duration=4.0, start_time=6.0, end_time=10.0),
        ]
        async with async_session_factory() as session:
            await replace_with_planned_scenes(session, pid, planned)
            await session.commit()

        async with async_session_factory() as session:
            scenes = await list_scenes(session, pid)
        assert [(s.scene_number, s.prompt, s.end_time) for s in scenes] == [(1, "open", 6.0), (2, "close", 10.0)]
        assert all(s.status == SceneStatus.PENDING.value for s in scenes)


class TestRecoverInterruptedRuns:

    async def test_stuck_rows_reset(self):
        stuck = await make_project(
            [5.0], status=ProjectStatus.GENERATING.value, started_at=utcnow() - timedelta(hours=2),
        )
        done = await make_project([5.0], status=ProjectStatus.COMPLETED.value)
        async with async_session_factory() as session:
            scene = (await list_scenes(session, stuck))[0]
            scene.status = SceneStatus.GENERATING.value
            await session.commit()

        assert await recover_interrupted_runs() == (1, 1)

        state = await PipelineStore().load(stuck)
        assert state.project.status == ProjectStatus.FAILED.value
        assert "interrupted" in state.project.error_message
        assert state.scenes[0].status == SceneStatus.PENDING.value
        assert (await PipelineStore().load(done)).project.status == ProjectStatus.COMPLETED.value

    async def test_recent_run_left_alone(self):
        live = await make_project(
            [5.0], status=ProjectStatus.GENERATING.value, started_at=utcnow() - timedelta(minutes=5),
        )
        async with async_session_factory() as session:
            (await list_scenes(session, live))[0].status = SceneStatus.GENERATING.value
            await session.commit()

        assert await recover_interrupted_runs(older_than=3600) == (0, 0)

        state = await PipelineStore().load(live)
        assert state.project.status == ProjectStatus.GENERATING.value
        assert state.scenes[0].status == SceneStatus.GENERATING.value

    async def test_run_without_start_time_recovered(self):
        await make_project(status=ProjectStatus.GENERATING.value)
        assert await recover_interrupted_runs(older_than=3600) == (1, 0)

    async def test_nothing_to_recover(self):
        await make_project([5.0])
        assert await recover_interrupted_runs() == (0, 0)


class TestPipelineStore:

    async def test_load_missing_project(self):
        with pytest.raises(NotFoundError):
            await PipelineStore().load("no-such-project")

    async def test_run_lifecycle_fields(self):
        pid = await make_project()
        store = PipelineStore()

        await store.begin_run(pid)
        project = (await store.load(pid)).project
        assert project.status == ProjectStatus.GENERATING.value
        assert project.started_at is not None
        assert project.finished_at is None

        await store.save_progress(ProgressSnapshot(project_id=pid, percent=42, stage="scenes", message="Scene 2"))
        await store.fail_run(pid, "Scene 2 failed: boom")
        project = (await store.load(pid)).project
        assert project.progress_percent == 42
        assert project.progress_stage == "scenes"
        assert project.status == ProjectStatus.FAILED.value
        assert project.finished_at is not None
