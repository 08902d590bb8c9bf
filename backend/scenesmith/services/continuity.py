from __future__ import annotations
"""Continuity resolution between consecutive scenes.

Two pieces:
- ``build_scene_graph`` turns the per-scene ``extend_previous`` flags and the
  run-wide ``continuous`` flag into an explicit predecessor list per scene.
- ``resolve_inputs`` picks the continuity input handed to the video provider
  for one scene (previous clip, previous last frame, or nothing) and resolves
  the scene's selected assets to their URLs.

Edge kinds:
- ``clip``: scene N extends scene N-1 and needs its finished clip.
- ``frame``: continuous mode; scene N needs only scene N-1's last frame.
Scene 1 never has a predecessor, whatever its flags say.
"""

import enum
from dataclasses import dataclass, field

from scenesmith.errors import ValidationError


class EdgeKind(str, enum.Enum):
    CLIP = "clip"
    FRAME = "frame"


@dataclass
class SceneSpec:
    """Scheduler-facing view of one scene (decoupled from the ORM row)."""
    scene_number: int
    prompt: str
    duration: float | None = None
    selected_asset_ids: list[str] = field(default_factory=list)
    extend_previous: bool = False
    scene_id: str | None = None
    video_url: str | None = None
    first_frame_url: str | None = None
    last_frame_url: str | None = None

    @property
    def has_clip(self) -> bool:
        return bool(self.video_url)


@dataclass(frozen=True)
class ContinuityFlags:
    continuous: bool = False
    use_reference_frame: bool = True


@dataclass(frozen=True)
class Dependency:
    predecessor: int
    kind: EdgeKind


@dataclass
class SceneGraph:
    """Explicit DAG over scene numbers; edges point from predecessor to scene."""
    order: list[int]
    predecessors: dict[int, list[Dependency]]

    def dependencies(self, scene_number: int) -> list[Dependency]:
        return self.predecessors.get(scene_number, [])

    def dependents(self, scene_number: int) -> list[int]:
        return [
            n for n in self.order
            if any(d.predecessor == scene_number for d in self.dependencies(n))
        ]

    def has_edges(self) -> bool:
        return any(self.predecessors.values())


def check_contiguous(numbers: list[int]) -> None:
    """Scene numbers must be exactly 1..N."""
    if sorted(numbers) != list(range(1, len(numbers) + 1)):
        raise ValidationError(f"Scene numbers must be contiguous from 1, got {sorted(numbers)}")


def build_scene_graph(scenes: list[SceneSpec], flags: ContinuityFlags) -> SceneGraph:
    """Derive the dependency graph once, before scheduling."""
    ordered = sorted(scenes, key=lambda s: s.scene_number)
    check_contiguous([s.scene_number for s in ordered])

    predecessors: dict[int, list[Dependency]] = {}
    for scene in ordered:
        n = scene.scene_number
        if n == 1:
            predecessors[n] = []
        elif scene.extend_previous:
            predecessors[n] = [Dependency(n - 1, EdgeKind.CLIP)]
        elif flags.continuous:
            predecessors[n] = [Dependency(n - 1, EdgeKind.FRAME)]
        else:
            predecessors[n] = []
    return SceneGraph(order=[s.scene_number for s in ordered], predecessors=predecessors)


@dataclass
class ContinuityInputs:
    """What the scene generator sends alongside the prompt."""
    previous_video_url: str | None = None
    previous_last_frame_url: str | None = None
    reference_image_urls: list[str] = field(default_factory=list)
    use_reference_frame: bool = True

    @property
    def kind(self) -> str:
        if self.previous_video_url:
            return EdgeKind.CLIP.value
        if self.previous_last_frame_url:
            return EdgeKind.FRAME.value
        return "none"

    @property
    def start_image_url(self) -> str | None:
        if self.previous_last_frame_url and self.use_reference_frame:
            return self.previous_last_frame_url
        return None

    @property
    def provider_reference_urls(self) -> list[str]:
        """Reference images, plus the previous frame when it is not the start image."""
        urls = list(self.reference_image_urls)
        if self.previous_last_frame_url and not self.use_reference_frame:
            urls.append(self.previous_last_frame_url)
        return urls


def resolve_asset_urls(selected_ids: list[str], asset_urls: dict[str, str]) -> list[str]:
    """Map selected asset ids to URLs; unknown ids belong to another project."""
    missing = [a for a in selected_ids if a not in asset_urls]
    if missing:
        raise ValidationError(f"Selected assets not found in project: {', '.join(missing)}")
    return [asset_urls[a] for a in selected_ids]


def resolve_inputs(
    scene: SceneSpec,
    previous: SceneSpec | None,
    flags: ContinuityFlags,
    asset_urls: dict[str, str],
) -> ContinuityInputs:
    """Continuity input for one scene given its predecessor's current state."""
    inputs = ContinuityInputs(
        reference_image_urls=resolve_asset_urls(scene.selected_asset_ids, asset_urls),
        use_reference_frame=flags.use_reference_frame,
    )
    if previous is None or scene.scene_number == 1:
        return inputs

    if scene.extend_previous and previous.video_url:
        inputs.previous_video_url = previous.video_url
    elif flags.continuous and previous.last_frame_url:
        inputs.previous_last_frame_url = previous.last_frame_url
    return inputs
