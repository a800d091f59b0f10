from __future__ import annotations

import subprocess
from pathlib import Path

import allure
import pytest

from studio_runner.session.errors import LaunchFailedError
from studio_runner.session.launcher import (
    SESSION_ENV_HOST,
    SESSION_ENV_PLACE,
    SESSION_ENV_PORT,
    SESSION_ENV_SCRIPT,
    SESSION_ENV_TOKEN,
    LaunchRequest,
    StudioLauncher,
    build_run_args,
)
from studio_runner.session.models import RunConfiguration

pytestmark = [
    allure.epic("Studio Runs"),
    allure.feature("Studio Launch"),
]

_VALUES = {
    "studio": "C:\\Program Files\\Roblox\\RobloxStudioBeta.exe",
    "place": "/home/ci/.tmp/studio-runner-x1/studio-runner-place.rbxl",
    "host": "127.0.0.1",
    "port": "50312",
    "token": "studio-runner-abc",
    "script_file": "/home/ci/.tmp/studio-runner-x1/studio-runner-script.lua",
}


def _request(tmp_path: Path, template: str) -> LaunchRequest:
    return LaunchRequest(
        config=RunConfiguration(
            host="127.0.0.1",
            port=50312,
            place_path=tmp_path / "studio-runner-place.rbxl",
            session_token="studio-runner-abc",
            script_source='print("hello")\n',
        ),
        command_template=template,
        studio_executable="RobloxStudioBeta.exe",
        script_path=tmp_path / "studio-runner-script.lua",
    )


def test_posix_template_keeps_values_with_spaces_as_single_arguments() -> None:
    argv, head = build_run_args(
        command_template="wine {studio} {place} --port {port}",
        values=_VALUES,
        os_name="posix",
    )

    assert argv == ["wine", _VALUES["studio"], _VALUES["place"], "--port", "50312"]
    assert head == "wine"


def test_windows_template_quotes_values_outside_and_inside_quotes() -> None:
    values = {**_VALUES, "place": "C:\\Users\\ci\\My Places\\studio-runner-place.rbxl"}

    command, head = build_run_args(
        command_template='"{studio}" {place}',
        values=values,
        os_name="nt",
    )

    assert command == (
        '"C:\\Program Files\\Roblox\\RobloxStudioBeta.exe" '
        '"C:\\Users\\ci\\My Places\\studio-runner-place.rbxl"'
    )
    assert head == '"C:\\Program'


def test_template_without_place_is_rejected() -> None:
    with pytest.raises(LaunchFailedError, match=r"must include \{place\}"):
        build_run_args(command_template="wine {studio}", values=_VALUES, os_name="posix")


def test_empty_template_is_rejected() -> None:
    with pytest.raises(LaunchFailedError, match="empty"):
        build_run_args(command_template="   ", values=_VALUES, os_name="posix")


@pytest.mark.parametrize("os_name", ["posix", "nt"])
def test_unknown_placeholder_is_rejected(os_name: str) -> None:
    with pytest.raises(LaunchFailedError, match="Unsupported command template placeholder"):
        build_run_args(
            command_template="{studio} {place} {workdir}",
            values=_VALUES,
            os_name=os_name,
        )


def test_launch_passes_session_through_environment_and_script_file(
    tmp_path: Path,
    monkeypatch,
) -> None:
    calls: list[tuple[object, dict]] = []

    class _FakePopen:
        pid = 4242

        def __init__(self, args, **kwargs) -> None:
            calls.append((args, kwargs))

    monkeypatch.setattr(subprocess, "Popen", _FakePopen)
    request = _request(tmp_path, "wine {studio} {place}")

    launched = StudioLauncher().launch(request)

    assert launched.pid == 4242
    assert launched.command_head == "wine"
    assert request.script_path.read_text("utf-8") == 'print("hello")\n'
    args, kwargs = calls[0]
    assert args == ["wine", "RobloxStudioBeta.exe", str(request.config.place_path)]
    env = kwargs["env"]
    assert env[SESSION_ENV_HOST] == "127.0.0.1"
    assert env[SESSION_ENV_PORT] == "50312"
    assert env[SESSION_ENV_TOKEN] == "studio-runner-abc"
    assert env[SESSION_ENV_SCRIPT] == str(request.script_path)
    assert env[SESSION_ENV_PLACE] == str(request.config.place_path)
    assert kwargs["stdout"] is subprocess.DEVNULL


def test_launch_of_missing_command_is_a_launch_failure(tmp_path: Path) -> None:
    request = _request(tmp_path, "studio-runner-no-such-binary-7f3a {place}")

    with pytest.raises(LaunchFailedError, match="Studio command not found"):
        StudioLauncher().launch(request)


def test_windows_template_escaped_quote_does_not_open_a_quoted_span() -> None:
    values = {**_VALUES, "place": "C:\\My Places\\p.rbxl", "token": 'a"b'}

    command, _head = build_run_args(
        command_template='{studio} --label \\"{place} "--token={token}"',
        values=values,
        os_name="nt",
    )

    assert command.startswith('"C:\\Program Files\\Roblox\\RobloxStudioBeta.exe" ')
    assert command.endswith('--label \\""C:\\My Places\\p.rbxl" "--token=a\\"b"')
