"""MessageSerializer - JSON roundtrip for queue payloads."""

from __future__ import annotations

import json

from pydantic import ValidationError

from .exceptions import MalformedPayloadError
from .messages import Message


class MessageSerializer:
    """Serialize/deserialize Message to/from UTF-8 JSON bytes."""

    def serialize(self, message: Message) -> bytes:
        """Encode message to JSON bytes."""
        return json.dumps(message.model_dump(mode="json")).encode("utf-8")

    def deserialize(self, raw: bytes) -> Message:
        """Decode JSON bytes to Message.

        Raises MalformedPayloadError for invalid UTF-8, invalid JSON, or a
        document missing ``id``, ``timestamp`` or ``data``.
        """
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MalformedPayloadError(f"Body is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise MalformedPayloadError(
                f"Expected a JSON object, got {type(data).__name__}"
            )
        try:
            return Message.model_validate(data)
        except ValidationError as e:
            raise MalformedPayloadError(str(e)) from e
