"""Line-delimited JSON frames spoken between the studio extension and the bridge.

Each frame is one UTF-8 JSON object followed by ``\\n``. Bodies may contain
newlines; JSON string escaping keeps them inside a single line on the wire.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from studio_runner.session.models import LogEvent, OutputLevel

PROTOCOL_VERSION = 1
# Only the hello frame is bounded; output bodies may be arbitrarily long.
MAX_HANDSHAKE_BYTES = 64 * 1024

HELLO = "hello"
WELCOME = "welcome"
REJECTED = "rejected"
OUTPUT = "output"
FINISHED = "finished"

REJECT_TOKEN_MISMATCH = "token_mismatch"


class FrameError(ValueError):
    """Raised when a frame cannot be decoded into a known message."""


@dataclass(slots=True, frozen=True)
class Hello:
    """First client frame carrying the session token."""

    token: str


@dataclass(slots=True, frozen=True)
class Finished:
    """Client frame announcing the script has run to completion."""


Frame = Hello | LogEvent | Finished


def encode_frame(payload: dict[str, Any]) -> bytes:
    """Serialize one frame using compact deterministic formatting."""

    return (json.dumps(payload, ensure_ascii=False, separators=(",", ":")) + "\n").encode("utf-8")


def encode_hello(token: str) -> bytes:
    return encode_frame({"type": HELLO, "token": token, "version": PROTOCOL_VERSION})


def encode_output(event: LogEvent) -> bytes:
    return encode_frame({"type": OUTPUT, "level": event.level.value, "body": event.body})


def encode_finished() -> bytes:
    return encode_frame({"type": FINISHED})


def encode_welcome() -> bytes:
    return encode_frame({"type": WELCOME, "version": PROTOCOL_VERSION})


def encode_rejected(reason: str) -> bytes:
    return encode_frame({"type": REJECTED, "reason": reason})


def load_frame(raw: bytes, *, max_bytes: int | None = None) -> dict[str, Any]:
    """Parse one raw line and validate top-level object type."""

    if max_bytes is not None and len(raw) > max_bytes:
        raise FrameError(f"Frame exceeds {max_bytes} bytes")
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as error:
        raise FrameError(f"Invalid frame encoding: {error}") from error
    if not isinstance(payload, dict):
        raise FrameError("Frame must be a JSON object")
    frame_type = payload.get("type")
    if not isinstance(frame_type, str) or not frame_type:
        raise FrameError("frame.type must be a non-empty string")
    return payload


def decode_client_frame(raw: bytes, *, max_bytes: int | None = None) -> Frame:
    """Deserialize and validate one frame sent by the studio extension."""

    payload = load_frame(raw, max_bytes=max_bytes)
    frame_type = payload["type"]
    if frame_type == HELLO:
        token = payload.get("token")
        if not isinstance(token, str):
            raise FrameError("hello.token must be a string")
        return Hello(token=token)
    if frame_type == OUTPUT:
        level_raw = payload.get("level")
        body = payload.get("body")
        try:
            level = OutputLevel(level_raw)
        except ValueError as error:
            raise FrameError(f"Unknown output level: {level_raw!r}") from error
        if not isinstance(body, str):
            raise FrameError("output.body must be a string")
        return LogEvent(level=level, body=body)
    if frame_type == FINISHED:
        return Finished()
    raise FrameError(f"Unknown frame type: {frame_type!r}")


def decode_server_reply(raw: bytes) -> tuple[bool, str | None]:
    """Decode the bridge's answer to a hello: ``(accepted, reason)``."""

    payload = load_frame(raw)
    if payload["type"] == WELCOME:
        return True, None
    if payload["type"] == REJECTED:
        reason = payload.get("reason")
        return False, str(reason) if reason is not None else None
    raise FrameError(f"Unexpected reply frame: {payload['type']!r}")
