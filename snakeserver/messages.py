"""Messages exchanged with game clients over the web socket."""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any


class UnknownInputMessageTypeError(ValueError):
    """Raised when an input message names a type that does not exist."""

    def __init__(self, value: Any) -> None:
        super().__init__(f"unknown input message type: {value!r}")
        self.value = value


class InputMessageType(IntEnum):
    SNAKE_COMMAND = 0
    BROADCAST = 1

    @property
    def label(self) -> str:
        return _INPUT_LABELS[self]

    def __str__(self) -> str:
        return self.label

    def __format__(self, spec: str) -> str:
        return format(self.label, spec)

    @classmethod
    def from_json(cls, value: Any) -> InputMessageType:
        """Return the type whose JSON label is ``value``."""
        if isinstance(value, str):
            for member, label in _INPUT_LABELS.items():
                if label == value:
                    return member
        raise UnknownInputMessageTypeError(value)


_INPUT_LABELS = {
    InputMessageType.SNAKE_COMMAND: "snake",
    InputMessageType.BROADCAST: "broadcast",
}


class _Pairs(list):
    """Key/value pairs of one JSON object, in document order."""


def _match_key(key: str) -> str | None:
    if not key.isascii():
        return None
    folded = key.lower()
    return folded if folded in ("type", "payload") else None


@dataclass(frozen=True)
class InputMessage:
    type: InputMessageType = InputMessageType.SNAKE_COMMAND
    payload: str = ""

    @classmethod
    def decode(cls, data: bytes | str) -> InputMessage:
        """Decode a JSON object with ``type`` and ``payload`` members.

        Keys are matched ignoring ASCII case; unknown keys are skipped and
        null values leave a member at its default.
        """
        document = json.loads(data, object_pairs_hook=_Pairs)
        if not isinstance(document, _Pairs):
            raise ValueError("input message must be a JSON object")

        message_type = InputMessageType.SNAKE_COMMAND
        payload = ""
        for key, value in document:
            name = _match_key(key)
            if name == "type":
                if value is not None:
                    message_type = InputMessageType.from_json(value)
            elif name == "payload":
                if value is None:
                    continue
                if not isinstance(value, str):
                    raise ValueError(
                        f"cannot decode {type(value).__name__} into input message payload"
                    )
                payload = value
        return cls(type=message_type, payload=payload)


class OutputMessageType(IntEnum):
    GAME = 0
    PLAYER = 1
    BROADCAST = 2

    @property
    def label(self) -> str:
        return _OUTPUT_LABELS[self]

    def __str__(self) -> str:
        return self.label

    def __format__(self, spec: str) -> str:
        return format(self.label, spec)


_OUTPUT_LABELS = {
    OutputMessageType.GAME: "game",
    OutputMessageType.PLAYER: "player",
    OutputMessageType.BROADCAST: "broadcast",
}


def _output_label(value: Any) -> str:
    try:
        return OutputMessageType(value).label
    except (ValueError, TypeError):
        return "unknown"


def _encode_default(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return list(value)
    raise TypeError(f"object of type {type(value).__name__} is not JSON serializable")


@dataclass(frozen=True)
class OutputMessage:
    type: OutputMessageType
    payload: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"type": _output_label(self.type), "payload": self.payload}

    def encode(self) -> bytes:
        """Encode the message as compact UTF-8 JSON."""
        return json.dumps(
            self.to_dict(),
            separators=(",", ":"),
            ensure_ascii=False,
            default=_encode_default,
        ).encode("utf-8")