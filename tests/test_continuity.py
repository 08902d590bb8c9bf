"""Tests for scenesmith/services/continuity.py"""

import pytest

from scenesmith.errors import ValidationError
from scenesmith.services.continuity import (
    ContinuityFlags,
    EdgeKind,
    SceneSpec,
    build_scene_graph,
    check_contiguous,
    resolve_inputs,
)


def _specs(*extend_flags):
    return [
        SceneSpec(scene_number=n, prompt=f"scene {n}", extend_previous=flag)
        for n, flag in enumerate(extend_flags, start=1)
    ]


class TestSceneGraph:

    def test_independent_scenes_have_no_edges(self):
        graph = build_scene_graph(_specs(False, False, False), ContinuityFlags())
        assert graph.order == [1, 2, 3]
        assert not graph.has_edges()

    def test_extend_previous_creates_clip_edge(self):
        graph = build_scene_graph(_specs(False, True, False), ContinuityFlags())
        assert [(d.predecessor, d.kind) for d in graph.dependencies(2)] == [(1, EdgeKind.CLIP)]
        assert graph.dependencies(3) == []
        assert graph.dependents(1) == [2]

    def test_continuous_mode_chains_frames(self):
        graph = build_scene_graph(_specs(False, False, True), ContinuityFlags(continuous=True))
        assert graph.dependencies(2)[0].kind == EdgeKind.FRAME
        # extend_previous wins over the frame edge
        assert graph.dependencies(3)[0].kind == EdgeKind.CLIP

    def test_scene_one_never_depends(self):
        graph = build_scene_graph(_specs(True, False), ContinuityFlags(continuous=True))
        assert graph.dependencies(1) == []

    def test_gap_in_numbers_rejected(self):
        specs = [SceneSpec(scene_number=1, prompt="a"), SceneSpec(scene_number=3, prompt="b")]
        with pytest.raises(ValidationError):
            build_scene_graph(specs, ContinuityFlags())

    def test_check_contiguous_accepts_any_order(self):
        check_contiguous([3, 1, 2])


class TestResolveInputs:

    def test_scene_one_gets_only_references(self):
        scene = SceneSpec(scene_number=1, prompt="a", selected_asset_ids=["x"], extend_previous=True)
        inputs = resolve_inputs(scene, None, ContinuityFlags(continuous=True), {"x": "/media/x.png"})
        assert inputs.kind == "none"
        assert inputs.reference_image_urls == ["/media/x.png"]

    def test_extend_previous_uses_clip(self):
        prev = SceneSpec(scene_number=1, prompt="a", video_url="/media/1.mp4", last_frame_url="/media/1.jpg")
        scene = SceneSpec(scene_number=2, prompt="b", extend_previous=True)
        inputs = resolve_inputs(scene, prev, ContinuityFlags(continuous=True), {})
        assert inputs.kind == "clip"
        assert inputs.previous_video_url == "/media/1.mp4"
        assert inputs.previous_last_frame_url is None

    def test_continuous_uses_last_frame_as_start_image(self):
        prev = SceneSpec(scene_number=1, prompt="a", video_url="/media/1.mp4", last_frame_url="/media/1.jpg")
        scene = SceneSpec(scene_number=2, prompt="b")
        inputs = resolve_inputs(scene, prev, ContinuityFlags(continuous=True, use_reference_frame=True), {})
        assert inputs.kind == "frame"
        assert inputs.start_image_url == "/media/1.jpg"
        assert inputs.provider_reference_urls == []

    def test_frame_sent_as_reference_when_not_start_image(self):
        prev = SceneSpec(scene_number=1, prompt="a", last_frame_url="/media/1.jpg")
        scene = SceneSpec(scene_number=2, prompt="b", selected_asset_ids=["x"])
        flags = ContinuityFlags(continuous=True, use_reference_frame=False)
        inputs = resolve_inputs(scene, prev, flags, {"x": "/media/x.png"})
        assert inputs.start_image_url is None
        assert inputs.provider_reference_urls == ["/media/x.png", "/media/1.jpg"]

    def test_no_continuity_without_flags(self):
        prev = SceneSpec(scene_number=1, prompt="a", video_url="/media/1.mp4", last_frame_url="/media/1.jpg")
        inputs = resolve_inputs(SceneSpec(scene_number=2, prompt="b"), prev, ContinuityFlags(), {})
        assert inputs.kind == "none"

    def test_unknown_asset_rejected(self):
        scene = SceneSpec(scene_number=1, prompt="a", selected_asset_ids=["other-project-asset"])
        with pytest.raises(ValidationError):
            resolve_inputs(scene, None, ContinuityFlags(), {"x": "/media/x.png"})
