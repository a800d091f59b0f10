"""Local stand-in for the studio application, for end-to-end tests and demos.

Reads the session variables set by the launcher, dials back into the bridge
and replays the script. Recognised script lines::

    print("text")      info("text")      warn("text")      error("text")
    --!disconnect      (drop the connection without a finished frame)

Arguments are JSON string literals, so ``"line one\\nline two"`` sends a
two-line body. Anything else is ignored.
"""

from __future__ import annotations

import json
import os
import re
import socket
import sys
from pathlib import Path

import rich_click as click

from studio_runner.session.launcher import (
    SESSION_ENV_HOST,
    SESSION_ENV_PORT,
    SESSION_ENV_SCRIPT,
    SESSION_ENV_TOKEN,
)
from studio_runner.session.models import LogEvent, OutputLevel
from studio_runner.session.protocol import (
    decode_server_reply,
    encode_finished,
    encode_hello,
    encode_output,
)

_CALL_PATTERN = re.compile(r"^(print|info|warn|error)\((.*)\)\s*$")
_DISCONNECT_DIRECTIVE = "--!disconnect"
_LEVELS = {
    "print": OutputLevel.PRINT,
    "info": OutputLevel.INFO,
    "warn": OutputLevel.WARNING,
    "error": OutputLevel.ERROR,
}


class BridgeClient:
    """Minimal client side of the bridge protocol."""

    def __init__(self, host: str, port: int, *, timeout_seconds: float = 10.0) -> None:
        self._socket = socket.create_connection((host, port), timeout=timeout_seconds)
        self._reader = self._socket.makefile("rb")

    def __enter__(self) -> BridgeClient:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def hello(self, token: str) -> tuple[bool, str | None]:
        self._socket.sendall(encode_hello(token))
        raw = self._reader.readline()
        if not raw:
            return False, "closed"
        return decode_server_reply(raw)

    def send(self, event: LogEvent) -> None:
        self._socket.sendall(encode_output(event))

    def send_raw(self, payload: bytes) -> None:
        self._socket.sendall(payload)

    def finish(self) -> None:
        self._socket.sendall(encode_finished())

    def close(self) -> None:
        self._reader.close()
        self._socket.close()


def parse_script(source: str) -> list[LogEvent | None]:
    """Translate script lines to events; ``None`` marks an abrupt disconnect."""

    steps: list[LogEvent | None] = []
    for line in source.splitlines():
        stripped = line.strip()
        if stripped == _DISCONNECT_DIRECTIVE:
            steps.append(None)
            break
        match = _CALL_PATTERN.match(stripped)
        if match is None:
            continue
        try:
            body = json.loads(match.group(2))
        except json.JSONDecodeError:
            continue
        if not isinstance(body, str):
            body = json.dumps(body)
        steps.append(LogEvent(level=_LEVELS[match.group(1)], body=body))
    return steps


@click.command()
@click.option("--place", default=None, help="Place file opened by the studio.")
@click.option("--token", default=None, help="Override the session token.")
def main(place: str | None, token: str | None) -> None:
    """Replay the session script against the bridge."""

    host = os.environ[SESSION_ENV_HOST]
    port = int(os.environ[SESSION_ENV_PORT])
    session_token = token if token is not None else os.environ[SESSION_ENV_TOKEN]
    steps = parse_script(Path(os.environ[SESSION_ENV_SCRIPT]).read_text("utf-8"))

    with BridgeClient(host, port) as client:
        accepted, reason = client.hello(session_token)
        if not accepted:
            click.echo(f"Bridge rejected session for {place}: {reason}", err=True)
            sys.exit(1)
        for step in steps:
            if step is None:
                return
            client.send(step)
        client.finish()


if __name__ == "__main__":  # pragma: no cover
    main()
