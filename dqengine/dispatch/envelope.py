"""Wire envelopes for the task dispatch protocol.

JSON field names (``from``, ``correlationId``) are preserved through
aliases; serialize with ``to_wire()``.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from dqengine.models.common import DQEngineBase, UTCTimestamp, new_uuid7, utc_now


class TaskPayload(DQEngineBase):
    task: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class ResponsePayload(DQEngineBase):
    task: str
    result: dict[str, Any]
    success: bool


class _Envelope(DQEngineBase):
    id: str = Field(default_factory=lambda: f"msg_{new_uuid7()}")
    from_: str = Field(alias="from")
    to: str
    timestamp: UTCTimestamp = Field(default_factory=utc_now)
    priority: str = "medium"
    correlation_id: str | None = Field(default=None, alias="correlationId")


class TaskEnvelope(_Envelope):
    """Inbound request for work."""

    type: Literal["task"] = "task"
    payload: TaskPayload


class ResponseEnvelope(_Envelope):
    """Outbound reply; ``to`` is the requester, ``correlationId`` echoed."""

    type: Literal["response"] = "response"
    payload: ResponsePayload

    @classmethod
    def reply_to(
        cls,
        request: TaskEnvelope,
        *,
        responder: str,
        result: dict[str, Any],
        success: bool,
    ) -> ResponseEnvelope:
        return cls(
            id=f"response_{new_uuid7()}",
            from_=responder,
            to=request.from_,
            payload=ResponsePayload(
                task=request.payload.task,
                result=result,
                success=success,
            ),
            priority=request.priority,
            correlation_id=request.correlation_id,
        )


class ProgressEvent(DQEngineBase):
    """Intermediate status for one outstanding task."""

    progress: int = Field(ge=0, le=100)
    stage: str
    task: str | None = None
    correlation_id: str | None = Field(default=None, alias="correlationId")
