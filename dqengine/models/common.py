"""Shared types, clock, ids and the base model for dqengine.

Wire-facing models keep their JSON names (``from``, ``correlationId``) as
field aliases; ``DQEngineBase.to_wire`` is the one place they are applied.
"""

from datetime import datetime, timezone
from typing import Annotated, Any
from uuid import UUID

from pydantic import BaseModel, Field
from uuid_extensions import uuid7


def utc_now() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(tz=timezone.utc)


def new_uuid7() -> UUID:
    """Generate a new time-sortable UUID v7."""
    return uuid7()


# --- Reusable annotated types ---

UUIDv7 = Annotated[UUID, Field(description="Time-sortable UUID v7.")]
UTCTimestamp = Annotated[
    datetime, Field(description="UTC timezone-aware timestamp.")
]
Score = Annotated[int, Field(ge=0, le=100, description="Integer quality score 0-100.")]


# --- Base model ---


class DQEngineBase(BaseModel):
    """Base for every dqengine model: accepts field names or aliases."""

    model_config = {
        "populate_by_name": True,
        "ser_json_timedelta": "iso8601",
        "protected_namespaces": (),
    }

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict under wire (alias) names."""
        return self.model_dump(by_alias=True, mode="json")
