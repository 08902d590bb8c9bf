from __future__ import annotations
"""Script planning: split a concept into timed scene prompts.

Scene-count policy by total duration:
- ≤ 30 s → 3 to 5 scenes
- ≤ 60 s → 5 to 8 scenes
- > 60 s → 8 to 15 scenes
and no scene longer than MAX_SCENE_SECONDS of footage.

The LLM planner (OpenRouter) is tried first when keys are configured; any
LLM failure or an answer outside the policy falls back to the template
planner, which always succeeds.
"""

import logging
import math
import re
from dataclasses import dataclass, field

from scenesmith.config import get_settings
from scenesmith.errors import ConfigurationError, ValidationError
from scenesmith.services.llm_client import LLMError, llm_call, llm_configured, parse_json_content

logger = logging.getLogger(__name__)
settings = get_settings()

MOOD_KEYWORDS = ["energetic", "calm", "mysterious", "joyful", "dramatic", "peaceful", "intense", "relaxed"]
STYLE_KEYWORDS = ["cinematic", "animated", "realistic", "abstract", "minimalist", "vibrant", "dark", "bright"]
_COMMON_WORDS = {"the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
                 "with", "by", "is", "are", "was", "were"}
_CONSTRAINT_PATTERNS = [
    re.compile(r"(?:\bno|\bavoid|\bdon't|\bdo not)\s+([^.,!?]+)", re.IGNORECASE),
    re.compile(r"(?:\bmust|\bshould|\binclude|\bhave)\s+([^.,!?]+)", re.IGNORECASE),
]


@dataclass
class ParsedPrompt:
    duration: float
    mood: str | None = None
    style: str | None = None
    constraints: str | None = None
    keywords: list[str] = field(default_factory=list)


@dataclass
class PlannedScene:
    scene_number: int
    prompt: str
    duration: float
    start_time: float
    end_time: float


@dataclass
class ScriptPlan:
    script: str
    scenes: list[PlannedScene]
    parsed: ParsedPrompt
    source: str = "template"


def parse_prompt(prompt: str, duration: float) -> ParsedPrompt:
    """Pick out mood/style keywords, constraints and up to 10 keywords."""
    lower = prompt.lower()
    mood = next((k for k in MOOD_KEYWORDS if k in lower), None)
    style = next((k for k in STYLE_KEYWORDS if k in lower), None)

    constraints = [
        m.group(1).strip()
        for pattern in _CONSTRAINT_PATTERNS
        for m in pattern.finditer(prompt)
        if m.group(1).strip()
    ]

    keywords: list[str] = []
    for word in lower.split():
        if len(word) > 3 and word not in _COMMON_WORDS and word not in keywords:
            keywords.append(word)

    return ParsedPrompt(
        duration=duration,
        mood=mood,
        style=style,
        constraints="; ".join(constraints) if constraints else None,
        keywords=keywords[:10],
    )


def scene_count_bounds(duration: float) -> tuple[int, int]:
    if duration <= 30:
        return 3, 5
    if duration <= 60:
        return 5, 8
    return 8, 15


def choose_scene_count(duration: float, max_scene_seconds: float | None = None) -> int:
    """Fewest scenes that keep each under the cap, clamped to the policy band."""
    cap = max_scene_seconds or settings.MAX_SCENE_SECONDS
    lo, hi = scene_count_bounds(duration)
    return min(max(math.ceil(duration / cap), lo), hi)


def llm_scene_bounds(duration: float) -> tuple[int, int]:
    """Scene counts accepted from an LLM plan: the policy band, capped at the template count."""
    lo, hi = scene_count_bounds(duration)
    return lo, max(lo, min(hi, choose_scene_count(duration)))


def _split_parts(prompt: str, parsed: ParsedPrompt, total: int) -> list[str]:
    if "\n" in prompt:
        parts = [p.strip() for p in prompt.split("\n") if p.strip()]
    else:
        parts = [p.strip() for p in re.split(r"[.!?]\s+", prompt) if p.strip()]

    if len(parts) < total and "," in prompt:
        comma_parts = [p.strip() for p in prompt.split(",") if len(p.strip()) > 10]
        if len(comma_parts) >= total:
            parts = comma_parts

    if len(parts) < total:
        if parsed.keywords:
            words = prompt.split()
            size = math.ceil(len(words) / total)
            parts = [" ".join(words[i * size:(i + 1) * size]) for i in range(total)]
        else:
            size = math.ceil(len(prompt) / total)
            parts = [prompt[i * size:(i + 1) * size].strip() for i in range(total)]
    return parts


def _scene_content(parts: list[str], scene_number: int, total: int) -> str:
    if len(parts) >= total:
        return parts[scene_number - 1]
    per_scene = math.ceil(len(parts) / total)
    start = min((scene_number - 1) * per_scene, len(parts) - 1)
    return ". ".join(parts[start:start + per_scene])


def _position_context(scene_number: int, total: int) -> str:
    position = scene_number / total
    if position <= 0.2:
        return "Opening scene, establishing shot: "
    if position >= 0.8:
        return "Closing scene, finale: "
    if 0.4 <= position <= 0.6:
        return "Middle scene, main action: "
    if scene_number > 1:
        return "Transition scene (continuing from previous scene, maintaining visual consistency): "
    return "Transition scene: "


def scene_prompt(
    parts: list[str], parsed: ParsedPrompt, scene_number: int, total: int,
    start_time: float, end_time: float,
) -> str:
    text = _position_context(scene_number, total) + (_scene_content(parts, scene_number, total) or "")
    if scene_number > 1:
        text += ". Maintain visual continuity with previous scenes, same style and aesthetic."
    style_mood = ", ".join(
        s for s in (
            parsed.style and f"in {parsed.style} style",
            parsed.mood and f"with {parsed.mood} mood",
        ) if s
    )
    if style_mood:
        text += f". {style_mood}"
    return f"{text} ({round(start_time)}s - {round(end_time)}s)"


def _timeline(durations: list[float]) -> list[tuple[float, float]]:
    spans, t = [], 0.0
    for d in durations:
        spans.append((round(t, 3), round(t + d, 3)))
        t += d
    return spans


def render_script(scenes: list[PlannedScene]) -> str:
    return "\n\n".join(
        f"Scene {s.scene_number} ({s.start_time:g}s - {s.end_time:g}s): {s.prompt}" for s in scenes
    )


def plan_scenes_template(prompt: str, duration: float, parsed: ParsedPrompt | None = None) -> list[PlannedScene]:
    """Deterministic planner over the concept text."""
    if duration <= 0:
        raise ValidationError("Duration must be positive")
    if not prompt or not prompt.strip():
        raise ValidationError("Prompt must not be empty")
    parsed = parsed or parse_prompt(prompt, duration)

    total = choose_scene_count(duration)
    each = round(min(duration / total, settings.MAX_SCENE_SECONDS), 3)
    parts = _split_parts(prompt.strip(), parsed, total)

    scenes = []
    for n, (start, end) in enumerate(_timeline([each] * total), start=1):
        scenes.append(PlannedScene(
            scene_number=n,
            prompt=scene_prompt(parts, parsed, n, total, start, end),
            duration=each,
            start_time=start,
            end_time=end,
        ))
    return scenes


_SYSTEM_PROMPT = (
    "You are a video director. Break the concept into sequential scenes for an AI "
    "video generator. Reply with JSON only: "
    '{"script": "<short narrative>", "scenes": [{"prompt": "<visual description>", '
    '"duration": <seconds>}]}'
)


def _llm_user_prompt(prompt: str, duration: float, parsed: ParsedPrompt, lo: int, hi: int) -> str:
    lines = [
        f"Concept: {prompt}",
        f"Total duration: {duration:g} seconds",
        f"Number of scenes: between {lo} and {hi}",
        f"Each scene at most {settings.MAX_SCENE_SECONDS:g} seconds",
    ]
    if parsed.style:
        lines.append(f"Style: {parsed.style}")
    if parsed.mood:
        lines.append(f"Mood: {parsed.mood}")
    if parsed.constraints:
        lines.append(f"Constraints: {parsed.constraints}")
    return "\n".join(lines)


def _validate_llm_plan(data: object, duration: float) -> tuple[str, list[PlannedScene]]:
    if not isinstance(data, dict) or not isinstance(data.get("scenes"), list):
        raise LLMError("LLM plan has no scene list")
    lo, hi = llm_scene_bounds(duration)
    raw = [s for s in data["scenes"] if isinstance(s, dict) and str(s.get("prompt", "")).strip()]
    if not lo <= len(raw) <= hi:
        raise LLMError(f"LLM planned {len(raw)} scenes, expected {lo}-{hi}")

    durations = []
    for s in raw:
        try:
            d = float(s.get("duration") or duration / len(raw))
        except (TypeError, ValueError):
            d = duration / len(raw)
        durations.append(round(min(max(d, 1.0), settings.MAX_SCENE_SECONDS), 3))

    scenes = [
        PlannedScene(n, str(s["prompt"]).strip(), d, start, end)
        for n, (s, d, (start, end)) in enumerate(zip(raw, durations, _timeline(durations)), start=1)
    ]
    script = str(data.get("script") or "").strip() or render_script(scenes)
    return script, scenes


async def plan_script(
    prompt: str,
    duration: float,
    *,
    style: str | None = None,
    mood: str | None = None,
    use_llm: bool | None = None,
) -> ScriptPlan:
    """Plan scenes for a concept; LLM first when available, template otherwise."""
    if not prompt or not prompt.strip():
        raise ValidationError("Prompt must not be empty")
    if duration <= 0:
        raise ValidationError("Duration must be positive")
    parsed = parse_prompt(prompt, duration)
    if style:
        parsed.style = style
    if mood:
        parsed.mood = mood

    if use_llm is None:
        use_llm = llm_configured() and not settings.USE_MOCK_API

    if use_llm:
        lo, hi = llm_scene_bounds(duration)
        try:
            content = await llm_call(
                _SYSTEM_PROMPT,
                _llm_user_prompt(prompt, duration, parsed, lo, hi),
                json_mode=True,
                caller="script_planner",
            )
            script, scenes = _validate_llm_plan(parse_json_content(content), duration)
            return ScriptPlan(script=script, scenes=scenes, parsed=parsed, source="llm")
        except (LLMError, ConfigurationError) as e:
            logger.warning("LLM planning failed, using template planner: %s", e)

    scenes = plan_scenes_template(prompt, duration, parsed)
    return ScriptPlan(script=render_script(scenes), scenes=scenes, parsed=parsed, source="template")
