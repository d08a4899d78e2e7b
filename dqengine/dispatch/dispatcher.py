"""Task dispatcher -- envelope in, correlated response out.

Each submitted envelope runs as its own asyncio task and yields a
``TaskHandle`` exposing the progress stream and the final outcome. The
response goes to the requester only; a completion notice is broadcast
to every other listener. Handler exceptions become failure responses,
never dropped envelopes.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import structlog
from pydantic import ValidationError

from dqengine.dispatch.bus import (
    COMPLETED_EVENT,
    PROGRESS_EVENT,
    RESPONSE_EVENT,
    EventBus,
    EventMessage,
)
from dqengine.dispatch.envelope import ProgressEvent, ResponseEnvelope, TaskEnvelope
from dqengine.dispatch.handlers import (
    TEAM_COORDINATION,
    QualityTaskHandler,
    SimulatedResponder,
)
from dqengine.dispatch.tasks import parse_task
from dqengine.quality.errors import DuplicateTask

logger = structlog.get_logger(__name__)

SHUTDOWN_ERROR = "cancelled: dispatcher shutting down"


class TaskState(StrEnum):
    RECEIVED = "received"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class TaskOutcome:
    response: ResponseEnvelope
    success: bool
    error: str | None = None


class TaskHandle:
    """Caller's view of one in-flight task."""

    def __init__(self, envelope: TaskEnvelope) -> None:
        self.envelope = envelope
        self.state = TaskState.RECEIVED
        self._progress: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()
        self._result: asyncio.Future[TaskOutcome] = (
            asyncio.get_running_loop().create_future()
        )

    @property
    def key(self) -> tuple[str, str | None]:
        return (self.envelope.from_, self.envelope.correlation_id)

    @property
    def done(self) -> bool:
        return self._result.done()

    async def progress_events(self) -> AsyncIterator[ProgressEvent]:
        """Progress updates in emission order; ends when the task finishes."""
        while True:
            event = await self._progress.get()
            if event is None:
                return
            yield event

    async def result(self) -> TaskOutcome:
        return await asyncio.shield(self._result)

    def _emit(self, event: ProgressEvent) -> None:
        self._progress.put_nowait(event)

    def _finish(self, outcome: TaskOutcome) -> None:
        self.state = TaskState.COMPLETED if outcome.success else TaskState.FAILED
        self._progress.put_nowait(None)
        if not self._result.done():
            self._result.set_result(outcome)


class TaskDispatcher:
    """Routes task envelopes to the quality handler or a simulated responder."""

    def __init__(
        self,
        handler: QualityTaskHandler,
        bus: EventBus,
        *,
        responder_id: str = "data-quality-agent",
        simulated: Mapping[str, SimulatedResponder] | None = None,
        fallback: SimulatedResponder | None = None,
    ) -> None:
        self._handler = handler
        self._bus = bus
        self._responder_id = responder_id
        self._simulated = dict(simulated or {})
        self._fallback = fallback or SimulatedResponder(delay=0.5)
        self._active: dict[TaskHandle, asyncio.Task[Any]] = {}
        self._correlated: dict[tuple[str, str], TaskHandle] = {}

    @property
    def in_flight(self) -> list[TaskHandle]:
        return [h for h in self._active if not h.done]

    def lookup(self, requester: str, correlation_id: str | None) -> TaskHandle | None:
        """Outstanding task for ``(requester, correlation_id)``, if any."""
        if correlation_id is None:
            return None
        return self._correlated.get((requester, correlation_id))

    def submit(self, envelope: TaskEnvelope) -> TaskHandle:
        """Start processing and return immediately.

        Raises DuplicateTask when the requester already has an outstanding
        task under the same correlation id. Envelopes without a correlation
        id are never rejected and cannot be looked up.
        """
        key = None
        if envelope.correlation_id is not None:
            key = (envelope.from_, envelope.correlation_id)
            if key in self._correlated:
                raise DuplicateTask(envelope.from_, envelope.correlation_id)

        handle = TaskHandle(envelope)
        if key is not None:
            self._correlated[key] = handle
        task = asyncio.create_task(self._run(handle))
        self._active[handle] = task
        task.add_done_callback(lambda _: self._release(handle))
        return handle

    async def dispatch(self, envelope: TaskEnvelope) -> TaskOutcome:
        """Submit and wait for the outcome."""
        return await self.submit(envelope).result()

    async def aclose(self) -> None:
        """Cancel outstanding work (shutdown).

        Every unfinished handle resolves to a failed outcome, so callers
        awaiting ``result()`` are released.
        """
        pending = dict(self._active)
        for task in pending.values():
            task.cancel()
        if pending:
            await asyncio.gather(*pending.values(), return_exceptions=True)
        for handle in pending:
            if not handle.done:
                self._conclude_failure(handle, self._responder_id, SHUTDOWN_ERROR)
            self._release(handle)

    def _release(self, handle: TaskHandle) -> None:
        self._active.pop(handle, None)
        if handle.envelope.correlation_id is None:
            return
        key = (handle.envelope.from_, handle.envelope.correlation_id)
        if self._correlated.get(key) is handle:
            del self._correlated[key]

    # ---------------------------------------------------------------
    # Execution
    # ---------------------------------------------------------------

    async def _run(self, handle: TaskHandle) -> None:
        envelope = handle.envelope
        task_name = envelope.payload.task
        log = logger.bind(
            correlation_id=envelope.correlation_id,
            task=task_name,
            requester=envelope.from_,
            target=envelope.to,
        )
        handle.state = TaskState.RUNNING
        log.info("task_received")

        async def progress(percent: int, stage: str) -> None:
            event = ProgressEvent(
                progress=percent,
                stage=stage,
                task=task_name,
                correlation_id=envelope.correlation_id,
            )
            handle._emit(event)
            self._bus.send(
                envelope.from_,
                EventMessage(
                    event_type=PROGRESS_EVENT,
                    source=self._responder_id,
                    data=event.to_wire(),
                ),
            )

        local = envelope.to == self._responder_id and task_name != TEAM_COORDINATION
        responder = self._responder_id if local else envelope.to
        try:
            await progress(10, f"Starting {task_name}...")
            if local:
                result = await self._handler.handle(parse_task(envelope.payload), progress)
            else:
                simulated = (
                    self._simulated.get(envelope.to)
                    or self._simulated.get(task_name)
                    or self._fallback
                )
                result = await simulated.respond(envelope)
        except asyncio.CancelledError:
            log.info("task_cancelled")
            self._conclude_failure(handle, responder, SHUTDOWN_ERROR)
            raise
        except ValidationError as exc:
            error = f"Invalid parameters: {exc.errors(include_url=False)}"
            await self._fail(handle, progress, responder, error, log)
            return
        except Exception as exc:  # noqa: BLE001 -- every failure gets a response
            log.exception("task_failed")
            error = str(exc) or type(exc).__name__
            await self._fail(handle, progress, responder, error, log)
            return

        await progress(100, f"{task_name} completed")
        response = ResponseEnvelope.reply_to(
            envelope, responder=responder, result=result, success=True,
        )
        self._publish(envelope, response)
        self._release(handle)
        handle._finish(TaskOutcome(response=response, success=True))
        log.info("task_completed")

    async def _fail(
        self, handle: TaskHandle, progress, responder: str, error: str, log,
    ) -> None:
        await progress(100, f"{handle.envelope.payload.task} failed: {error}")
        self._conclude_failure(handle, responder, error)
        log.warning("task_failed_response_sent", error=error)

    def _conclude_failure(self, handle: TaskHandle, responder: str, error: str) -> None:
        """Publish a failure response and resolve the handle."""
        if handle.done:
            return
        response = ResponseEnvelope.reply_to(
            handle.envelope,
            responder=responder,
            result={"success": False, "error": error},
            success=False,
        )
        self._publish(handle.envelope, response, error=error)
        self._release(handle)
        handle._finish(TaskOutcome(response=response, success=False, error=error))

    def _publish(
        self,
        request: TaskEnvelope,
        response: ResponseEnvelope,
        *,
        error: str | None = None,
    ) -> None:
        wire = response.to_wire()
        self._bus.send(
            request.from_,
            EventMessage(event_type=RESPONSE_EVENT, source=response.from_, data=wire),
        )
        notice: dict[str, Any] = {
            "task": request.payload.task,
            "from": response.from_,
            "to": request.from_,
            "correlationId": request.correlation_id,
            "success": error is None,
        }
        if error is not None:
            notice["error"] = error
        else:
            result = response.payload.result
            notice["data"] = result.get("data", result)
        self._bus.broadcast(
            EventMessage(event_type=COMPLETED_EVENT, source=response.from_, data=notice),
            exclude={request.from_},
        )
