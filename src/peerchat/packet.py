from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from typing import Any, Mapping, Union

from .constants import ACK, ENCODING, ERR_BAD_JSON, ERR_UNKNOWN_TYPE_OR_SHAPE, LINE_TERMINATOR, MSG


class FrameKind(str, enum.Enum):
    MSG = MSG
    ACK = ACK


class FrameError(ValueError):
    """A frame that cannot be used; ``code`` is what goes back on the wire."""

    def __init__(self, code: str, detail: str = "") -> None:
        super().__init__(f"{code}: {detail}" if detail else code)
        self.code = code


def encode(record: Mapping[str, Any]) -> bytes:
    body = json.dumps(record, separators=(",", ":"), ensure_ascii=False)
    return body.encode(ENCODING) + LINE_TERMINATOR


def _load(line: Union[str, bytes]) -> Any:
    try:
        return json.loads(line)
    except ValueError as exc:
        # UnicodeDecodeError is a ValueError as well
        raise FrameError(ERR_BAD_JSON, str(exc)) from exc


@dataclass(frozen=True, slots=True)
class Message:
    sender: str
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": FrameKind.MSG.value, "from": self.sender, "text": self.text}

    def to_bytes(self) -> bytes:
        return encode(self.to_dict())

    @staticmethod
    def from_bytes(line: Union[str, bytes]) -> "Message":
        obj = _load(line)
        if (
            not isinstance(obj, dict)
            or obj.get("type") != FrameKind.MSG.value
            or not isinstance(obj.get("from"), str)
            or not isinstance(obj.get("text"), str)
        ):
            raise FrameError(ERR_UNKNOWN_TYPE_OR_SHAPE)
        return Message(sender=obj["from"], text=obj["text"])


@dataclass(frozen=True, slots=True)
class Ack:
    ok: bool
    received_at: int | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": FrameKind.ACK.value, "ok": self.ok}
        if self.received_at is not None:
            out["receivedAt"] = self.received_at
        if self.error is not None:
            out["error"] = self.error
        return out

    def to_bytes(self) -> bytes:
        return encode(self.to_dict())

    @staticmethod
    def from_bytes(line: Union[str, bytes]) -> "Ack":
        """Decode a reply frame; only unparseable bytes are an error.

        Any JSON value is taken as the peer's answer. Fields that are missing
        or mistyped fall back to a negative ack with no extras.
        """
        obj = _load(line)
        if not isinstance(obj, dict):
            obj = {}

        received_at = obj.get("receivedAt")
        error = obj.get("error")
        return Ack(
            ok=obj.get("ok") is True,
            # bool is an int subclass; a stray true here is not a timestamp
            received_at=received_at if isinstance(received_at, int) and not isinstance(received_at, bool) else None,
            error=error if isinstance(error, str) else None,
        )

    @staticmethod
    def accepted(received_at: int) -> "Ack":
        return Ack(ok=True, received_at=received_at)

    @staticmethod
    def rejected(error: str) -> "Ack":
        return Ack(ok=False, error=error)
