"""Progress sinks for pipeline runs.

The orchestrator pushes one :class:`PipelineEvent` per state change to a
:class:`ProgressSink`. :class:`PipelineEventStream` is the in-memory
pub/sub used by the SSE endpoint; API consumers read it via ``async for``.
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Protocol, runtime_checkable

import structlog

from sre_team.models import PipelineEvent

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Canonical event type constants
# ---------------------------------------------------------------------------

EVENT_RUN_STARTED = "run_started"
EVENT_STAGE_RUNNING = "stage_running"
EVENT_STAGE_COMPLETED = "stage_completed"
EVENT_STAGE_FAILED = "stage_failed"
EVENT_RUN_FINISHED = "run_finished"


@runtime_checkable
class ProgressSink(Protocol):
    """Consumer of ordered pipeline progress events."""

    async def emit(self, event: PipelineEvent) -> None: ...


class RecordingSink:
    """Sink that keeps every event in memory, in order."""

    def __init__(self) -> None:
        self.events: list[PipelineEvent] = []

    async def emit(self, event: PipelineEvent) -> None:
        self.events.append(event)


class PipelineEventStream:
    """In-memory pub/sub for pipeline run events.

    Each subscriber gets its own ``asyncio.Queue``. History is kept per run
    so late subscribers replay everything before receiving live events.
    Re-emitting an event with an already-seen sequence number is a no-op.
    """

    def __init__(self, max_queue_size: int = 256) -> None:
        self._queues: dict[str, list[asyncio.Queue[PipelineEvent | None]]] = {}
        self._max_queue_size = max_queue_size
        self._history: dict[str, list[PipelineEvent]] = {}

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    async def emit(self, event: PipelineEvent) -> None:
        """Record *event* and fan it out to all subscribers of its run."""
        history = self._history.setdefault(event.run_id, [])
        if history and event.sequence <= history[-1].sequence:
            logger.debug(
                "event_duplicate_ignored",
                run_id=event.run_id,
                sequence=event.sequence,
            )
            return
        history.append(event)

        queues = self._queues.get(event.run_id, [])
        for queue in queues:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(
                    "event_queue_full",
                    run_id=event.run_id,
                    event_type=event.event_type,
                )

        logger.debug(
            "event_emitted",
            run_id=event.run_id,
            event_type=event.event_type,
            sequence=event.sequence,
            subscribers=len(queues),
        )

    # ------------------------------------------------------------------
    # Subscribing
    # ------------------------------------------------------------------

    async def subscribe(self, run_id: str) -> AsyncIterator[PipelineEvent]:
        """Yield events for *run_id* until the run finishes.

        The iterator terminates after the ``run_finished`` event or when
        :meth:`close` is called for the run.
        """
        queue: asyncio.Queue[PipelineEvent | None] = asyncio.Queue(
            maxsize=self._max_queue_size
        )
        self._queues.setdefault(run_id, []).append(queue)

        try:
            # Replay history so late joiners catch up
            last_sequence = 0
            for past_event in list(self._history.get(run_id, [])):
                last_sequence = past_event.sequence
                yield past_event
                if past_event.event_type == EVENT_RUN_FINISHED:
                    return

            while True:
                event = await queue.get()
                if event is None:
                    break
                if event.sequence <= last_sequence:
                    continue
                yield event
                if event.event_type == EVENT_RUN_FINISHED:
                    break
        finally:
            run_queues = self._queues.get(run_id, [])
            if queue in run_queues:
                run_queues.remove(queue)

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------

    def close(self, run_id: str) -> None:
        """Signal all subscribers of *run_id* to stop iterating."""
        for queue in self._queues.get(run_id, []):
            try:
                queue.put_nowait(None)
            except asyncio.QueueFull:
                logger.warning("event_queue_full_on_close", run_id=run_id)
        self._queues.pop(run_id, None)

    def get_history(self, run_id: str) -> list[PipelineEvent]:
        """Return all events emitted for a given run."""
        return list(self._history.get(run_id, []))

    def clear(self, run_id: str) -> None:
        """Remove all state associated with a run."""
        self.close(run_id)
        self._history.pop(run_id, None)
