"""Tests for scenesmith/services/script_planner.py"""

import pytest

from scenesmith.errors import ValidationError
from scenesmith.services import script_planner
from scenesmith.services.llm_client import LLMError
from scenesmith.services.script_planner import (
    choose_scene_count,
    llm_scene_bounds,
    parse_prompt,
    plan_scenes_template,
    plan_script,
    scene_count_bounds,
)


class TestSceneCountPolicy:

    @pytest.mark.parametrize("duration,bounds", [(10, (3, 5)), (30, (3, 5)), (45, (5, 8)), (60, (5, 8)), (61, (8, 15))])
    def test_bounds_by_duration(self, duration, bounds):
        assert scene_count_bounds(duration) == bounds

    def test_short_video_uses_minimum(self):
        assert choose_scene_count(10) == 3

    def test_count_grows_with_cap(self):
        assert choose_scene_count(25) == 4
        assert choose_scene_count(90) == 12

    def test_count_clamped_to_band_maximum(self):
        assert choose_scene_count(600) == 15


class TestTemplatePlanner:

    def test_25_seconds_gives_three_to_five_scenes(self):
        scenes = plan_scenes_template("A fox runs through a snowy forest at dawn", 25)
        assert 3 <= len(scenes) <= 5
        assert all(s.duration <= 8 for s in scenes)

    def test_90_seconds_gives_eight_to_twelve_scenes(self):
        scenes = plan_scenes_template("A city wakes up. Markets open. Trains depart. Night falls.", 90)
        assert 8 <= len(scenes) <= 12
        assert all(s.duration <= 8 for s in scenes)

    def test_numbers_contiguous_and_timeline_consecutive(self):
        scenes = plan_scenes_template("Sunrise over mountains, hikers climb, a storm passes, stars appear", 40)
        assert [s.scene_number for s in scenes] == list(range(1, len(scenes) + 1))
        assert scenes[0].start_time == 0
        for prev, cur in zip(scenes, scenes[1:]):
            assert cur.start_time == pytest.approx(prev.end_time)

    def test_opening_and_closing_framing(self):
        scenes = plan_scenes_template("One. Two. Three. Four. Five.", 40)
        assert len(scenes) == 5
        assert scenes[0].prompt.startswith("Opening scene")
        assert scenes[-1].prompt.startswith("Closing scene")
        assert "Maintain visual continuity" in scenes[1].prompt

    def test_style_and_mood_from_prompt(self):
        parsed = parse_prompt("A dramatic cinematic chase. No blood", 20)
        assert parsed.mood == "dramatic"
        assert parsed.style == "cinematic"
        assert parsed.constraints == "blood"
        scenes = plan_scenes_template("A dramatic cinematic chase. No blood", 20, parsed)
        assert "in cinematic style" in scenes[0].prompt

    def test_rejects_empty_prompt(self):
        with pytest.raises(ValidationError):
            plan_scenes_template("   ", 20)

    def test_rejects_non_positive_duration(self):
        with pytest.raises(ValidationError):
            plan_scenes_template("A prompt", 0)


class TestPlanScript:

    async def test_template_when_llm_disabled(self):
        plan = await plan_script("Waves crash on a rocky shore", 25, use_llm=False)
        assert plan.source == "template"
        assert plan.script.startswith("Scene 1")

    async def test_llm_plan_accepted(self, monkeypatch):
        async def fake_llm_call(system, user, **kwargs):
            return '```json\n{"script": "Tide story", "scenes": [' \
                   '{"prompt": "Waves", "duration": 6}, {"prompt": "Rocks", "duration": 12}, ' \
                   '{"prompt": "Gulls", "duration": 7}]}\n```'

        monkeypatch.setattr(script_planner, "llm_call", fake_llm_call)
        plan = await plan_script("Waves crash on a rocky shore", 25, use_llm=True)
        assert plan.source == "llm"
        assert plan.script == "Tide story"
        assert [s.duration for s in plan.scenes] == [6, 8, 7]
        assert plan.scenes[1].start_time == 6

    async def test_llm_plan_outside_policy_falls_back(self, monkeypatch):
        async def fake_llm_call(system, user, **kwargs):
            return '{"scenes": [{"prompt": "Only one"}]}'

        monkeypatch.setattr(script_planner, "llm_call", fake_llm_call)
        plan = await plan_script("Waves crash on a rocky shore", 25, use_llm=True)
        assert plan.source == "template"
        assert 3 <= len(plan.scenes) <= 5

    async def test_llm_error_falls_back(self, monkeypatch):
        async def failing_llm_call(system, user, **kwargs):
            raise LLMError("upstream down")

        monkeypatch.setattr(script_planner, "llm_call", failing_llm_call)
        plan = await plan_script("Waves crash on a rocky shore", 25, use_llm=True)
        assert plan.source == "template"

    async def test_llm_plan_over_template_count_falls_back(self, monkeypatch):
        prompts = []

        async def fake_llm_call(system, user, **kwargs):
            prompts.append(user)
            scenes = ", ".join(f'{{"prompt": "Shot {n}", "duration": 6}}' for n in range(1, 15))
            return f'{{"scenes": [{scenes}]}}'

        monkeypatch.setattr(script_planner, "llm_call", fake_llm_call)
        plan = await plan_script("A marathon through the city", 90, use_llm=True)
        assert plan.source == "template"
        assert 8 <= len(plan.scenes) <= 12
        assert "between 8 and 12" in prompts[0]

    @pytest.mark.parametrize("duration,bounds", [(25, (3, 4)), (60, (5, 8)), (90, (8, 12)), (600, (8, 15))])
    def test_llm_bounds_capped_at_template_count(self, duration, bounds):
        assert llm_scene_bounds(duration) == bounds
