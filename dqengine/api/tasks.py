"""WebSocket transport for the task dispatch protocol.

GET /ws/{client_id}

Client frames are task envelopes. Server frames are bus events,
``{"event": ..., "data": ...}``: progress and responses addressed to
this client plus completion notices for everyone else's tasks. A frame
that is not a valid task envelope, or that reuses a correlation id still
in flight, is answered with an ``error`` event. The sender of every
envelope is the path ``client_id``; a ``from`` in the frame is ignored.
"""

import asyncio
import contextlib
import json
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from dqengine.api.dependencies import QualityServices
from dqengine.dispatch.bus import Subscription
from dqengine.dispatch.envelope import TaskEnvelope
from dqengine.models.common import utc_now
from dqengine.quality.errors import DuplicateTask

logger = logging.getLogger(__name__)

router = APIRouter(tags=["tasks"])

ERROR_EVENT = "error"


def _error_frame(error: str, details: Any = None) -> dict[str, Any]:
    data: dict[str, Any] = {"error": error, "timestamp": utc_now().isoformat()}
    if details is not None:
        data["details"] = details
    return {"event": ERROR_EVENT, "data": data}


def _parse_envelope(text: str, client_id: str) -> TaskEnvelope:
    frame = json.loads(text)
    if isinstance(frame, dict):
        frame["from"] = client_id
    return TaskEnvelope.model_validate(frame)


async def _forward(websocket: WebSocket, subscription: Subscription) -> None:
    async for event in subscription.events():
        await websocket.send_json(event.to_wire())


@router.websocket("/ws/{client_id}")
async def task_socket(websocket: WebSocket, client_id: str) -> None:
    services: QualityServices = websocket.app.state.services
    await websocket.accept()
    subscription = services.bus.subscribe(client_id)
    forwarder = asyncio.create_task(_forward(websocket, subscription))
    logger.info("Client %s connected", client_id)
    try:
        while True:
            text = await websocket.receive_text()
            try:
                envelope = _parse_envelope(text, client_id)
            except json.JSONDecodeError:
                await websocket.send_json(_error_frame("Frame is not valid JSON"))
                continue
            except ValidationError as exc:
                await websocket.send_json(
                    _error_frame(
                        "Invalid task envelope",
                        exc.errors(include_url=False, include_context=False, include_input=False),
                    )
                )
                continue
            try:
                services.dispatcher.submit(envelope)
            except DuplicateTask as exc:
                await websocket.send_json(_error_frame(str(exc)))
    except WebSocketDisconnect:
        logger.info("Client %s disconnected", client_id)
    finally:
        subscription.close()
        forwarder.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await forwarder
