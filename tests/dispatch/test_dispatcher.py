"""Tests for TaskDispatcher: correlation, event routing, failure handling."""

from __future__ import annotations

import asyncio

import pytest

from dqengine.dispatch.bus import COMPLETED_EVENT, PROGRESS_EVENT, RESPONSE_EVENT, EventBus
from dqengine.dispatch.dispatcher import SHUTDOWN_ERROR, TaskDispatcher, TaskState
from dqengine.dispatch.envelope import TaskEnvelope
from dqengine.dispatch.handlers import QualityTaskHandler, SimulatedResponder
from dqengine.quality.errors import DuplicateTask, StorageUnavailable


class FailingResponder(SimulatedResponder):
    async def respond(self, envelope):
        raise RuntimeError("collaborator offline")


class FakeHandler:
    """Records requests; emits one progress step; optionally raises or blocks."""

    def __init__(self, *, raises: Exception | None = None, block: bool = False) -> None:
        self.requests = []
        self._raises = raises
        self._block = block

    async def handle(self, request, progress):
        self.requests.append(request)
        await progress(50, "Halfway")
        if self._block:
            await asyncio.Event().wait()
        if self._raises is not None:
            raise self._raises
        return {"success": True, "data": {"task": request.task}, "message": "done"}


def _envelope(task: str = "identify-data-issues", *, to: str = "data-quality-agent",
              parameters: dict | None = None,
              correlation_id: str | None = "c1") -> TaskEnvelope:
    return TaskEnvelope.model_validate(
        {
            "from": "dashboard",
            "to": to,
            "payload": {"task": task, "parameters": parameters or {}},
            "correlationId": correlation_id,
        }
    )


async def _drain(subscription) -> list:
    subscription.close()
    return [event async for event in subscription.events()]


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


def _dispatcher(handler, bus, **kwargs) -> TaskDispatcher:
    kwargs.setdefault("fallback", SimulatedResponder(delay=0))
    return TaskDispatcher(handler, bus, **kwargs)


class TestSuccess:
    @pytest.mark.anyio
    async def test_response_correlated_to_requester(self, bus: EventBus) -> None:
        handler = FakeHandler()
        outcome = await _dispatcher(handler, bus).dispatch(_envelope(correlation_id="abc"))

        assert outcome.success is True
        response = outcome.response
        assert response.to == "dashboard"
        assert response.from_ == "data-quality-agent"
        assert response.correlation_id == "abc"
        assert response.payload.result["message"] == "done"
        assert handler.requests[0].task == "identify-data-issues"

    @pytest.mark.anyio
    async def test_requester_event_order(self, bus: EventBus) -> None:
        requester = bus.subscribe("dashboard")
        await _dispatcher(FakeHandler(), bus).dispatch(_envelope())

        events = await _drain(requester)
        kinds = [e.event_type for e in events]
        assert kinds == [PROGRESS_EVENT] * 3 + [RESPONSE_EVENT]
        assert [e.data["progress"] for e in events[:3]] == [10, 50, 100]
        assert events[0].data["stage"] == "Starting identify-data-issues..."
        assert events[0].data["correlationId"] == "c1"
        assert events[-1].data["correlationId"] == "c1"
        assert events[-1].data["type"] == "response"

    @pytest.mark.anyio
    async def test_completion_broadcast_excludes_requester(self, bus: EventBus) -> None:
        requester = bus.subscribe("dashboard")
        observer = bus.subscribe("monitor")
        await _dispatcher(FakeHandler(), bus).dispatch(_envelope())

        seen = await _drain(observer)
        assert [e.event_type for e in seen] == [COMPLETED_EVENT]
        assert seen[0].data == {
            "task": "identify-data-issues",
            "from": "data-quality-agent",
            "to": "dashboard",
            "correlationId": "c1",
            "success": True,
            "data": {"task": "identify-data-issues"},
        }
        assert COMPLETED_EVENT not in [e.event_type for e in await _drain(requester)]

    @pytest.mark.anyio
    async def test_progress_stream_and_lookup(self, bus: EventBus) -> None:
        dispatcher = _dispatcher(FakeHandler(), bus)
        handle = dispatcher.submit(_envelope(correlation_id="xyz"))
        assert dispatcher.lookup("dashboard", "xyz") is handle

        steps = [event.progress async for event in handle.progress_events()]
        assert steps == [10, 50, 100]
        outcome = await handle.result()
        assert outcome.success
        assert handle.state == TaskState.COMPLETED
        assert dispatcher.in_flight == []


class TestFailure:
    @pytest.mark.anyio
    async def test_handler_exception_becomes_failure_response(self, bus: EventBus) -> None:
        requester = bus.subscribe("dashboard")
        observer = bus.subscribe("monitor")
        dispatcher = _dispatcher(
            FakeHandler(raises=StorageUnavailable("Database is not connected")), bus,
        )
        outcome = await dispatcher.dispatch(_envelope())

        assert outcome.success is False
        assert outcome.error == "Database is not connected"
        assert outcome.response.payload.success is False
        assert outcome.response.payload.result == {
            "success": False,
            "error": "Database is not connected",
        }
        events = await _drain(requester)
        assert events[-2].data["stage"].startswith("identify-data-issues failed")
        assert events[-1].event_type == RESPONSE_EVENT
        notice = (await _drain(observer))[0]
        assert notice.data["success"] is False
        assert notice.data["error"] == "Database is not connected"

    @pytest.mark.anyio
    async def test_invalid_parameters(self, bus: EventBus) -> None:
        handler = FakeHandler()
        outcome = await _dispatcher(handler, bus).dispatch(
            _envelope("assess-specific-source"),
        )
        assert outcome.success is False
        assert outcome.error.startswith("Invalid parameters")
        assert handler.requests == []

    @pytest.mark.anyio
    async def test_collaborator_failure_names_collaborator(self, bus: EventBus) -> None:
        observer = bus.subscribe("monitor")
        dispatcher = _dispatcher(
            FakeHandler(), bus, simulated={"database-manager": FailingResponder(delay=0)},
        )
        outcome = await dispatcher.dispatch(_envelope("backup", to="database-manager"))

        assert outcome.success is False
        assert outcome.error == "collaborator offline"
        assert outcome.response.from_ == "database-manager"
        notice = (await _drain(observer))[0]
        assert notice.data["from"] == "database-manager"
        assert notice.source == "database-manager"

    @pytest.mark.anyio
    async def test_failed_state(self, bus: EventBus) -> None:
        dispatcher = _dispatcher(FakeHandler(raises=RuntimeError("boom")), bus)
        handle = dispatcher.submit(_envelope())
        outcome = await handle.result()
        assert outcome.error == "boom"
        assert handle.state == TaskState.FAILED


class TestRouting:
    @pytest.mark.anyio
    async def test_unknown_task_acknowledged(self, bus: EventBus) -> None:
        handler = QualityTaskHandler(assessor=None, aggregator=None, integrity=None)
        outcome = await _dispatcher(handler, bus).dispatch(_envelope("say-hello"))
        result = outcome.response.payload.result
        assert outcome.success
        assert result["data"] == {"task": "say-hello", "status": "completed"}
        assert result["message"] == "Task 'say-hello' completed"

    @pytest.mark.anyio
    async def test_simulated_collaborator(self, bus: EventBus) -> None:
        handler = FakeHandler()
        dispatcher = _dispatcher(
            handler, bus, simulated={"database-manager": SimulatedResponder(delay=0)},
        )
        outcome = await dispatcher.dispatch(_envelope("backup", to="database-manager"))
        assert handler.requests == []
        assert outcome.response.from_ == "database-manager"
        result = outcome.response.payload.result
        assert result["message"] == "Database backup completed"
        assert result["data"] == {"status": "completed", "agent": "database-manager"}

    @pytest.mark.anyio
    async def test_team_coordination_is_simulated(self, bus: EventBus) -> None:
        handler = FakeHandler()
        dispatcher = _dispatcher(
            handler, bus, simulated={"team-coordination": SimulatedResponder(delay=0)},
        )
        outcome = await dispatcher.dispatch(
            _envelope("team-coordination", parameters={"action": "form", "teamId": "t1"}),
        )
        result = outcome.response.payload.result
        assert handler.requests == []
        assert result["teamId"] == "t1"
        assert result["message"] == "Team form completed successfully"
        assert result["data"]["teamStatus"] == "active"

    @pytest.mark.anyio
    async def test_unknown_target_uses_fallback(self, bus: EventBus) -> None:
        outcome = await _dispatcher(FakeHandler(), bus).dispatch(
            _envelope("sync", to="mystery-agent"),
        )
        assert outcome.response.payload.result["message"] == "Task 'sync' processed"


class TestRegistry:
    @pytest.mark.anyio
    async def test_released_after_dispatch(self, bus: EventBus) -> None:
        dispatcher = _dispatcher(FakeHandler(), bus)
        outcome = await dispatcher.dispatch(_envelope(correlation_id="done-1"))
        assert outcome.success
        assert dispatcher.lookup("dashboard", "done-1") is None
        assert dispatcher.in_flight == []

    @pytest.mark.anyio
    async def test_released_after_failure(self, bus: EventBus) -> None:
        dispatcher = _dispatcher(FakeHandler(raises=RuntimeError("boom")), bus)
        await dispatcher.dispatch(_envelope(correlation_id="bad-1"))
        assert dispatcher.lookup("dashboard", "bad-1") is None
        assert dispatcher.in_flight == []

    @pytest.mark.anyio
    async def test_duplicate_in_flight_rejected(self, bus: EventBus) -> None:
        dispatcher = _dispatcher(FakeHandler(block=True), bus)
        first = dispatcher.submit(_envelope(correlation_id="dup"))
        await asyncio.sleep(0.01)

        with pytest.raises(DuplicateTask) as excinfo:
            dispatcher.submit(_envelope(correlation_id="dup"))
        assert excinfo.value.correlation_id == "dup"
        assert dispatcher.lookup("dashboard", "dup") is first
        assert dispatcher.in_flight == [first]
        await dispatcher.aclose()

    @pytest.mark.anyio
    async def test_correlation_id_reusable_after_completion(self, bus: EventBus) -> None:
        dispatcher = _dispatcher(FakeHandler(), bus)
        first = await dispatcher.dispatch(_envelope(correlation_id="again"))
        second = await dispatcher.dispatch(_envelope(correlation_id="again"))
        assert first.success and second.success

    @pytest.mark.anyio
    async def test_uncorrelated_envelopes_run_independently(self, bus: EventBus) -> None:
        handler = FakeHandler()
        dispatcher = _dispatcher(handler, bus)
        handles = [dispatcher.submit(_envelope(correlation_id=None)) for _ in range(2)]
        assert dispatcher.lookup("dashboard", None) is None

        outcomes = [await handle.result() for handle in handles]
        assert all(outcome.success for outcome in outcomes)
        assert outcomes[0].response.correlation_id is None
        assert len(handler.requests) == 2
        assert dispatcher.in_flight == []


class TestShutdown:
    @pytest.mark.anyio
    async def test_aclose_fails_running_task(self, bus: EventBus) -> None:
        requester = bus.subscribe("dashboard")
        dispatcher = _dispatcher(FakeHandler(block=True), bus)
        handle = dispatcher.submit(_envelope())
        waiter = asyncio.create_task(handle.result())
        await asyncio.sleep(0.01)
        assert dispatcher.in_flight == [handle]

        await dispatcher.aclose()
        outcome = await asyncio.wait_for(waiter, timeout=1.0)
        assert outcome.success is False
        assert outcome.error == SHUTDOWN_ERROR
        assert outcome.response.payload.result == {
            "success": False,
            "error": SHUTDOWN_ERROR,
        }
        assert handle.state == TaskState.FAILED
        assert dispatcher.in_flight == []
        assert dispatcher.lookup("dashboard", "c1") is None
        assert (await _drain(requester))[-1].event_type == RESPONSE_EVENT

    @pytest.mark.anyio
    async def test_aclose_fails_task_not_yet_started(self, bus: EventBus) -> None:
        handler = FakeHandler()
        dispatcher = _dispatcher(handler, bus)
        handle = dispatcher.submit(_envelope())

        await dispatcher.aclose()
        outcome = await asyncio.wait_for(handle.result(), timeout=1.0)
        assert outcome.success is False
        assert outcome.error == SHUTDOWN_ERROR
        assert outcome.response.from_ == "data-quality-agent"
        assert handler.requests == []
        steps = [event async for event in handle.progress_events()]
        assert steps == []
