from __future__ import annotations
"""Pipeline progress: stage bands, a never-decreasing percentage, snapshots.

Only the pipeline coordinator writes to a tracker. Each update is pushed to
the registered sinks (database row, Redis Pub/Sub); a failing sink is logged
and never stops the run.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class Stage(str, enum.Enum):
    PLAN = "plan"
    ASSETS = "assets"
    SCENES = "scenes"
    STITCH = "stitch"
    AUDIO = "audio"
    FINALIZE = "finalize"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Assets take the first slice of the generation band, scenes the rest
STAGE_BANDS: dict[Stage, tuple[int, int]] = {
    Stage.PLAN: (0, 15),
    Stage.ASSETS: (15, 25),
    Stage.SCENES: (25, 75),
    Stage.STITCH: (75, 90),
    Stage.AUDIO: (90, 98),
    Stage.FINALIZE: (98, 100),
}


@dataclass
class ProgressSnapshot:
    project_id: str
    stage: str
    percent: int
    message: str
    scenes: dict[int, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "projectId": self.project_id,
            "stage": self.stage,
            "percent": self.percent,
            "message": self.message,
            "scenes": {str(k): v for k, v in self.scenes.items()},
        }


ProgressSink = Callable[[ProgressSnapshot], Awaitable[None]]


class ProgressTracker:
    """Monotonic progress for one pipeline run."""

    def __init__(self, project_id: str, sinks: list[ProgressSink] | None = None) -> None:
        self.project_id = project_id
        self.stage: Stage = Stage.PLAN
        self.percent = 0
        self.message = "Queued"
        self.scenes: dict[int, str] = {}
        self._sinks = list(sinks or [])

    def add_sink(self, sink: ProgressSink) -> None:
        self._sinks.append(sink)

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            project_id=self.project_id,
            stage=self.stage.value,
            percent=self.percent,
            message=self.message,
            scenes=dict(self.scenes),
        )

    def _raise_to(self, value: float) -> None:
        self.percent = max(self.percent, min(100, int(value)))

    async def enter(self, stage: Stage, message: str) -> ProgressSnapshot:
        self.stage = stage
        self.message = message
        if stage in STAGE_BANDS:
            self._raise_to(STAGE_BANDS[stage][0])
        return await self._publish()

    async def advance(self, fraction: float, message: str | None = None) -> ProgressSnapshot:
        """Move within the current stage's band; fraction is clamped to [0, 1]."""
        start, end = STAGE_BANDS.get(self.stage, (self.percent, self.percent))
        fraction = min(max(fraction, 0.0), 1.0)
        self._raise_to(start + (end - start) * fraction)
        if message:
            self.message = message
        return await self._publish()

    async def scene_status(self, scene_number: int, status: str) -> ProgressSnapshot:
        self.scenes[scene_number] = status
        return await self._publish()

    async def complete(self, message: str = "Video ready") -> ProgressSnapshot:
        self.stage = Stage.COMPLETED
        self.message = message
        self._raise_to(100)
        return await self._publish()

    async def fail(self, message: str, *, cancelled: bool = False) -> ProgressSnapshot:
        self.stage = Stage.CANCELLED if cancelled else Stage.FAILED
        self.message = message
        return await self._publish()

    async def _publish(self) -> ProgressSnapshot:
        snap = self.snapshot()
        for sink in self._sinks:
            try:
                await sink(snap)
            except Exception as e:
                logger.warning("Progress sink failed for project=%s: %s", self.project_id[:8], e)
        return snap
