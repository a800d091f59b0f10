from __future__ import annotations

import allure

from studio_runner.session.models import LogEvent, OutputLevel
from studio_runner.stub_studio import parse_script

pytestmark = [
    allure.epic("Studio Runs"),
    allure.feature("Stub Studio"),
]


def test_parse_script_maps_calls_to_events_skips_bare_words_and_stops_at_disconnect() -> None:
    source = "\n".join(
        [
            "-- a comment",
            'print("plain")',
            '  warn("two\\nlines")  ',
            "local x = 1",
            "print(hello)",
            "error(42)",
            "--!disconnect",
            'print("unreachable")',
        ],
    )

    assert parse_script(source) == [
        LogEvent(level=OutputLevel.PRINT, body="plain"),
        LogEvent(level=OutputLevel.WARNING, body="two\nlines"),
        LogEvent(level=OutputLevel.ERROR, body="42"),
        None,
    ]
