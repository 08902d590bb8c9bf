from __future__ import annotations
"""Scene scheduling over the continuity graph.

``run_scenes`` drives one runner coroutine per scene in either
- sequential mode: ascending scene order, first failure skips the rest; or
- bounded parallel mode: every scene whose predecessors completed is
  dispatched (at most ``limit`` in flight); dependents of a failed or
  skipped scene are skipped, independent siblings keep going.

Status changes are reported as ``SceneEvent`` objects on an optional
``asyncio.Queue`` so a single consumer can own progress bookkeeping.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from scenesmith.models.scene import SceneStatus
from scenesmith.services.continuity import SceneGraph

logger = logging.getLogger(__name__)

SceneRunner = Callable[[int], Awaitable[Any]]


@dataclass
class SceneOutcome:
    scene_number: int
    status: SceneStatus
    result: Any = None
    error: str | None = None


@dataclass
class SceneEvent:
    scene_number: int
    status: SceneStatus
    error: str | None = None


class _Emitter:
    def __init__(self, queue: asyncio.Queue | None) -> None:
        self.queue = queue

    def __call__(self, scene_number: int, status: SceneStatus, error: str | None = None) -> None:
        if self.queue is not None:
            self.queue.put_nowait(SceneEvent(scene_number, status, error))


async def _attempt(scene_number: int, runner: SceneRunner, emit: _Emitter) -> SceneOutcome:
    emit(scene_number, SceneStatus.GENERATING)
    try:
        result = await runner(scene_number)
    except Exception as e:
        logger.warning("Scene %d failed: %s", scene_number, e)
        message = getattr(e, "message", None) or str(e) or type(e).__name__
        emit(scene_number, SceneStatus.FAILED, message)
        return SceneOutcome(scene_number, SceneStatus.FAILED, error=message)
    emit(scene_number, SceneStatus.COMPLETED)
    return SceneOutcome(scene_number, SceneStatus.COMPLETED, result=result)


async def _run_sequential(graph: SceneGraph, runner: SceneRunner, emit: _Emitter) -> dict[int, SceneOutcome]:
    outcomes: dict[int, SceneOutcome] = {}
    failed_at: int | None = None
    for n in graph.order:
        if failed_at is not None:
            outcomes[n] = SceneOutcome(n, SceneStatus.SKIPPED, error=f"Scene {failed_at} failed")
            emit(n, SceneStatus.SKIPPED, outcomes[n].error)
            continue
        outcomes[n] = await _attempt(n, runner, emit)
        if outcomes[n].status != SceneStatus.COMPLETED:
            failed_at = n
    return outcomes


async def _run_parallel(
    graph: SceneGraph, runner: SceneRunner, emit: _Emitter, limit: int,
) -> dict[int, SceneOutcome]:
    outcomes: dict[int, SceneOutcome] = {}
    pending = list(graph.order)
    running: dict[asyncio.Task, int] = {}
    semaphore = asyncio.Semaphore(max(limit, 1))

    async def _bounded(n: int) -> SceneOutcome:
        async with semaphore:
            return await _attempt(n, runner, emit)

    def _blocked_by(n: int) -> int | None:
        for dep in graph.dependencies(n):
            outcome = outcomes.get(dep.predecessor)
            if outcome is not None and outcome.status != SceneStatus.COMPLETED:
                return dep.predecessor
        return None

    def _ready(n: int) -> bool:
        return all(
            outcomes.get(d.predecessor) is not None
            and outcomes[d.predecessor].status == SceneStatus.COMPLETED
            for d in graph.dependencies(n)
        )

    try:
        while pending or running:
            # Propagate failures down the chain before dispatching
            for n in list(pending):
                blocker = _blocked_by(n)
                if blocker is not None:
                    pending.remove(n)
                    error = f"Depends on scene {blocker}, which did not complete"
                    outcomes[n] = SceneOutcome(n, SceneStatus.SKIPPED, error=error)
                    emit(n, SceneStatus.SKIPPED, error)

            for n in [n for n in pending if _ready(n)]:
                pending.remove(n)
                running[asyncio.create_task(_bounded(n))] = n

            if not running:
                break

            done, _ = await asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                n = running.pop(task)
                outcomes[n] = task.result()
    finally:
        for task in running:
            task.cancel()

    for n in pending:
        outcomes[n] = SceneOutcome(n, SceneStatus.SKIPPED, error="Unresolvable dependency")
        emit(n, SceneStatus.SKIPPED, outcomes[n].error)
    return outcomes


async def run_scenes(
    graph: SceneGraph,
    runner: SceneRunner,
    *,
    parallel: bool = False,
    limit: int = 3,
    events: asyncio.Queue | None = None,
) -> dict[int, SceneOutcome]:
    """Run every scene in the graph; returns outcomes keyed by scene number."""
    emit = _Emitter(events)
    logger.info(
        "Scheduling %d scenes (%s, limit=%d)",
        len(graph.order), "parallel" if parallel else "sequential", limit,
    )
    if parallel:
        outcomes = await _run_parallel(graph, runner, emit, limit)
    else:
        outcomes = await _run_sequential(graph, runner, emit)
    return dict(sorted(outcomes.items()))
