from __future__ import annotations

import allure
import pytest

from studio_runner.session.models import LogEvent, OutputLevel
from studio_runner.session.protocol import (
    Finished,
    FrameError,
    Hello,
    decode_client_frame,
    decode_server_reply,
    encode_finished,
    encode_hello,
    encode_output,
    encode_rejected,
    encode_welcome,
)

pytestmark = [
    allure.epic("Studio Runs"),
    allure.feature("Bridge Protocol"),
]


def test_output_frame_keeps_multiline_body_on_one_wire_line() -> None:
    event = LogEvent(level=OutputLevel.ERROR, body='first line\nsecond "quoted"\r\n\tthird ✓')

    raw = encode_output(event)

    assert raw.endswith(b"\n")
    assert raw.count(b"\n") == 1
    assert decode_client_frame(raw) == event


def test_hello_and_finished_frames_decode() -> None:
    frame = decode_client_frame(encode_hello("studio-runner-abc"))

    assert frame == Hello(token="studio-runner-abc")
    assert isinstance(decode_client_frame(encode_finished()), Finished)


def test_server_replies_decode() -> None:
    assert decode_server_reply(encode_welcome()) == (True, None)
    assert decode_server_reply(encode_rejected("token_mismatch")) == (False, "token_mismatch")


@pytest.mark.parametrize(
    ("raw", "message"),
    [
        (b"not json\n", "Invalid frame encoding"),
        (b"[1, 2]\n", "must be a JSON object"),
        (b'{"level": "print"}\n', "frame.type"),
        (b'{"type": "output", "level": "debug", "body": "x"}\n', "Unknown output level"),
        (b'{"type": "output", "level": "print", "body": 3}\n', "output.body"),
        (b'{"type": "hello", "token": null}\n', "hello.token"),
        (b'{"type": "shutdown"}\n', "Unknown frame type"),
    ],
)
def test_invalid_client_frames_are_rejected(raw: bytes, message: str) -> None:
    with pytest.raises(FrameError, match=message):
        decode_client_frame(raw)

