"""Wire models for the queue message and the downstream HTTP exchange."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, StrictInt


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with a ``Z`` suffix and millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Message(BaseModel):
    """Queue payload ``{id, timestamp, data}``."""

    model_config = ConfigDict(frozen=True)

    id: StrictInt
    timestamp: str
    data: str


class ProcessRequest(BaseModel):
    """Body of ``POST /process``."""

    model_config = ConfigDict(populate_by_name=True)

    message_id: StrictInt = Field(..., alias="messageId")
    timestamp: str
    data: str

    @classmethod
    def from_message(cls, message: Message) -> ProcessRequest:
        return cls(
            message_id=message.id, timestamp=message.timestamp, data=message.data
        )


class ProcessResponse(BaseModel):
    """Body returned by the receiver for ``POST /process``."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message_id: StrictInt = Field(..., alias="messageId")
    processed_at: str = Field(..., alias="processedAt")
    baggage_received: dict[str, str] = Field(
        default_factory=dict, alias="baggageReceived"
    )
