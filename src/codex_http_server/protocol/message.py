"""Message envelope for the HTTP wire format.

A message is a flat JSON object: the optional ``id`` and
``routing_metadata`` sit next to the event payload fields, e.g.

    {"id": "42", "kind": "UserMessage", "message": "hi"}

``id`` is opaque and only ever echoed back. Absent ``id`` and
``routing_metadata`` are omitted from the encoded form.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, field_validator
from pydantic_core import PydanticSerializationError

from ..errors import MessageDecodeError, MessageEncodeError
from .events import ENVELOPE_KEYS, EVENT_TYPES, EventMsg, parse_event

# Older clients send the working directory under this key
LEGACY_ROUTING_KEY = "work_dir"


class Message(BaseModel):
    """HTTP message wrapper around a tagged event."""

    id: str | None = None
    routing_metadata: str | None = None
    payload: EventMsg

    @field_validator("payload")
    @classmethod
    def type_payload(cls, payload: EventMsg) -> EventMsg:
        """Narrow an untyped payload of a known kind to its event model."""
        if type(payload) is not EventMsg or payload.kind not in EVENT_TYPES:
            return payload
        try:
            return parse_event(payload.model_dump())
        except MessageDecodeError as e:
            raise ValueError(str(e)) from e

    @classmethod
    def new(cls, event: EventMsg) -> Message:
        """Create a message without an id."""
        return cls(payload=event)

    @classmethod
    def with_id(cls, event: EventMsg, id: str | None) -> Message:
        """Create a message carrying the given id."""
        return cls(id=id, payload=event)

    def to_dict(self) -> dict[str, Any]:
        """Flatten into the wire representation.

        Raises:
            MessageEncodeError: If the payload holds unserializable values or
                fields named like envelope keys
        """
        data: dict[str, Any] = {}
        if self.id is not None:
            data["id"] = self.id
        if self.routing_metadata is not None:
            data["routing_metadata"] = self.routing_metadata

        try:
            payload = self.payload.model_dump(mode="json")
        except PydanticSerializationError as e:
            raise MessageEncodeError(f"Cannot serialize {self.payload.kind} event: {e}") from e

        clash = ENVELOPE_KEYS.intersection(payload)
        if clash:
            raise MessageEncodeError(
                f"{self.payload.kind} event fields collide with envelope keys: {sorted(clash)}"
            )

        data.update(payload)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        """Build a message from its flat wire representation.

        Raises:
            MessageDecodeError: If the envelope or payload is invalid
        """
        fields = dict(data)
        id_ = fields.pop("id", None)
        routing = fields.pop("routing_metadata", None)
        legacy = fields.pop(LEGACY_ROUTING_KEY, None)
        if routing is None:
            routing = legacy

        if id_ is not None and not isinstance(id_, str):
            raise MessageDecodeError("Message 'id' must be a string")
        if routing is not None and not isinstance(routing, str):
            raise MessageDecodeError("Message 'routing_metadata' must be a string")

        return cls(id=id_, routing_metadata=routing, payload=parse_event(fields))

    def to_json(self) -> str:
        """Serialize to a JSON string."""
        try:
            return json.dumps(self.to_dict(), ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise MessageEncodeError(f"Cannot serialize message: {e}") from e

    @classmethod
    def from_json(cls, text: str | bytes) -> Message:
        """Parse a message from JSON text."""
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MessageDecodeError(f"Invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise MessageDecodeError("Message must be a JSON object")

        return cls.from_dict(data)


def encode(message: Message) -> bytes:
    """Encode a message to UTF-8 JSON bytes."""
    return message.to_json().encode("utf-8")


def decode(data: bytes | str) -> Message:
    """Decode a message from JSON bytes or text.

    Raises:
        MessageDecodeError: On malformed input
    """
    return Message.from_json(data)
